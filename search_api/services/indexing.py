import logging
from typing import Any

from opensearchpy import OpenSearch

from search_api.models import BulkIndexRequest, BulkIndexResponse, BulkOperation

logger = logging.getLogger(__name__)


def build_bulk_actions(request: BulkIndexRequest, index: str) -> list[dict[str, Any]]:
    """Action/source pairs for the bulk API; ``delete`` actions have no source."""
    actions: list[dict[str, Any]] = []
    for doc in request.documents:
        if doc.op in (BulkOperation.UPDATE, BulkOperation.DELETE) and not doc.id:
            raise ValueError(f"{doc.op} requires a document id")
        meta: dict[str, Any] = {"_index": index}
        if doc.id:
            meta["_id"] = doc.id
        actions.append({doc.op.value: meta})
        if doc.op is BulkOperation.DELETE:
            continue
        actions.append({"doc": doc.source} if doc.op is BulkOperation.UPDATE else doc.source)
    return actions


def bulk_index(request: BulkIndexRequest, *, client: OpenSearch, index: str) -> BulkIndexResponse:
    """Send documents through the bulk API.

    Oversized bodies are split by the client's connection class, so the
    response may combine several bulk requests.
    """
    actions = build_bulk_actions(request, index)
    if not actions:
        return BulkIndexResponse()

    response = client.bulk(body=actions, refresh=request.refresh)
    result = BulkIndexResponse.model_validate(response)
    if result.errors:
        logger.warning("Bulk request for %d documents reported errors", len(request.documents))
    return result

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status
from opensearchpy import OpenSearch

from search_api.dependencies import get_client, get_index
from search_api.models import BulkIndexRequest, BulkIndexResponse
from search_api.services.indexing import bulk_index

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/index", tags=["index"])


@router.post("/bulk", response_model=BulkIndexResponse)
def index_bulk(
    body: BulkIndexRequest,
    client: Annotated[OpenSearch, Depends(get_client)],
    index: Annotated[str, Depends(get_index)],
) -> BulkIndexResponse:
    """Index, update or delete documents in one bulk call."""
    logger.info("Bulk request for %d documents", len(body.documents))
    try:
        return bulk_index(body, client=client, index=index)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc

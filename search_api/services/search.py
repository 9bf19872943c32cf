import logging
from pathlib import Path
from typing import Any

from opensearchpy import OpenSearch

from enhanced_search.instant_results import InstantResultsParams, build_instant_results_query
from enhanced_search.models import ObjectType, SearchMode, SearchRequest, SearchSettings
from enhanced_search.query_builder import build_search_query
from enhanced_search.query_enhancer import QueryEnhancer
from enhanced_search.query_repair import DEFAULT_REPAIRS, TERM_REPAIRS, apply_repairs
from search_api.models import SearchHit, SearchResponse

logger = logging.getLogger(__name__)


def index_for(index_name: str, object_type: ObjectType) -> str:
    """Posts live in the main index, terms and users in ``<index>-term`` / ``<index>-user``."""
    if object_type is ObjectType.POST:
        return index_name
    return f"{index_name}-{object_type.value}"


def parse_field_specs(specs: list[str] | None) -> list[tuple[str, float | None]]:
    """Parse ``field`` / ``field^boost`` strings into ``(field, boost)`` pairs."""
    fields: list[tuple[str, float | None]] = []
    for spec in specs or []:
        name, _, boost = spec.partition("^")
        name = name.strip()
        if not name:
            continue
        if not boost:
            fields.append((name, None))
            continue
        try:
            fields.append((name, float(boost)))
        except ValueError:
            logger.warning("Ignoring invalid boost %r for field %s", boost, name)
            fields.append((name, None))
    return fields


def parse_sort_specs(specs: list[str] | None) -> list[dict[str, Any]]:
    """Parse ``field`` / ``field:asc`` strings into sort clauses."""
    sort = []
    for spec in specs or []:
        field, _, order = spec.partition(":")
        if field:
            sort.append({field: {"order": "asc" if order.lower() == "asc" else "desc"}})
    return sort


def build_search_body(
    q: str,
    settings: SearchSettings,
    *,
    object_type: ObjectType = ObjectType.POST,
    mode: SearchMode | None = None,
    strict: bool | None = None,
    fields: list[tuple[str, float | None]] | None = None,
    autosuggest: bool | None = None,
    sort: list[dict[str, Any]] | None = None,
) -> dict[str, Any]:
    """Default query for ``q``, enhanced with the site settings, then repaired."""
    request = SearchRequest.from_settings(
        settings,
        q,
        object_type=object_type,
        mode=mode,
        strict=strict,
        fields=fields,
        autosuggest=autosuggest,
    )
    body = build_search_query(q, request.object_type)
    if sort:
        body["sort"] = sort
    body = QueryEnhancer(settings).enhance(body, request)
    repairs = TERM_REPAIRS if request.object_type is ObjectType.TERM else DEFAULT_REPAIRS
    return apply_repairs(body, repairs)


def _extract_hits(response: dict[str, Any]) -> list[SearchHit]:
    return [
        SearchHit(
            id=hit["_id"],
            score=hit.get("_score"),
            source=hit.get("_source") or {},
            highlight=hit.get("highlight"),
            matched_queries=hit.get("matched_queries") or [],
        )
        for hit in response["hits"]["hits"]
    ]


def _total(response: dict[str, Any]) -> int:
    total = response["hits"]["total"]
    return total["value"] if isinstance(total, dict) else int(total)


def search(
    q: str,
    *,
    client: OpenSearch,
    index: str,
    settings: SearchSettings,
    size: int = 20,
    offset: int = 0,
    object_type: ObjectType = ObjectType.POST,
    **options: Any,
) -> SearchResponse:
    body = build_search_body(q, settings, object_type=object_type, **options)
    response = client.search(index=index_for(index, object_type), body=body, size=size, from_=offset)
    return SearchResponse(total=_total(response), offset=offset, limit=size, items=_extract_hits(response))


def load_template(path: str | None) -> str | None:
    if not path:
        return None
    template = Path(path)
    if not template.is_file():
        logger.warning("Instant results template %s not found", path)
        return None
    return template.read_text(encoding="utf-8")


def instant_results(
    params: InstantResultsParams,
    template: str,
    *,
    client: OpenSearch,
    index: str,
) -> dict[str, Any]:
    """Run an instant-results search and return the raw engine response."""
    body = apply_repairs(build_instant_results_query(template, params))
    return client.search(index=index, body=body)

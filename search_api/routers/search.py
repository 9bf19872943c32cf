import logging
from typing import Annotated, Any

from fastapi import APIRouter, Depends, HTTPException, Query, status
from opensearchpy import OpenSearch

from enhanced_search.instant_results import InstantResultsParams
from enhanced_search.models import ObjectType, SearchMode, SearchSettings
from search_api.dependencies import (
    autosuggest_enabled,
    get_client,
    get_index,
    get_instant_results_template,
    get_settings,
)
from search_api.models import SearchResponse
from search_api.services import search as search_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/search", tags=["search"])

Client = Annotated[OpenSearch, Depends(get_client)]
Index = Annotated[str, Depends(get_index)]
Settings = Annotated[SearchSettings, Depends(get_settings)]


@router.get("", response_model=SearchResponse)
def search(
    client: Client,
    index: Index,
    settings: Settings,
    q: str = "",
    object_type: ObjectType = ObjectType.POST,
    mode: SearchMode | None = None,
    strict: bool | None = None,
    fields: Annotated[list[str] | None, Query()] = None,
    sort: Annotated[list[str] | None, Query()] = None,
    autosuggest: bool = False,
    size: Annotated[int, Query(ge=0, le=500)] = 20,
    offset: Annotated[int, Query(ge=0)] = 0,
) -> SearchResponse:
    """Full-text search with the site's search settings applied."""
    return search_service.search(
        q,
        client=client,
        index=index,
        settings=settings,
        size=size,
        offset=offset,
        object_type=object_type,
        mode=mode,
        strict=strict,
        fields=search_service.parse_field_specs(fields),
        sort=search_service.parse_sort_specs(sort),
        autosuggest=autosuggest,
    )


@router.get("/autosuggest", response_model=SearchResponse)
def autosuggest(
    client: Client,
    index: Index,
    settings: Settings,
    enabled: Annotated[bool, Depends(autosuggest_enabled)],
    q: str = "",
    size: Annotated[int, Query(ge=0, le=50)] = 10,
) -> SearchResponse:
    """As-you-type completion: a post search with the suggestion clause added."""
    if not enabled:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Autosuggest is disabled")
    return search_service.search(
        q,
        client=client,
        index=index,
        settings=settings,
        size=size,
        autosuggest=True,
    )


@router.get("/instant-results")
def instant_results(
    client: Client,
    index: Index,
    template: Annotated[str | None, Depends(get_instant_results_template)],
    search: str = "",
    per_page: int = 10,
    offset: int = 0,
    orderby: str = "date",
    order: str = "desc",
    highlight: str = "",
    relation: str = "or",
    post_type: str = "",
    min_price: float | None = None,
    max_price: float | None = None,
    tax: Annotated[list[str] | None, Query()] = None,
    term_relation: Annotated[list[str] | None, Query()] = None,
) -> dict[str, Any]:
    """Fill the saved instant-results template and return the raw engine response.

    Taxonomy filters are passed as ``tax=<slug>:<id>,<id>`` and their
    relations as ``term_relation=<slug>:<and|or>``.
    """
    if template is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No instant results template configured")

    params = InstantResultsParams(
        search=search,
        per_page=per_page,
        offset=offset,
        orderby=orderby,
        order=order,
        highlight=highlight,
        relation=relation,
        post_type=[p for p in post_type.split(",") if p],
        taxonomies=_parse_taxonomies(tax),
        term_relations=dict(_split_pair(spec) for spec in term_relation or [] if ":" in spec),
        min_price=min_price,
        max_price=max_price,
    )
    return search_service.instant_results(params, template, client=client, index=index)


def _split_pair(spec: str) -> tuple[str, str]:
    key, _, value = spec.partition(":")
    return key.strip(), value.strip()


def _parse_taxonomies(specs: list[str] | None) -> dict[str, list[int]]:
    taxonomies: dict[str, list[int]] = {}
    for spec in specs or []:
        slug, ids = _split_pair(spec)
        term_ids = [int(i) for i in ids.split(",") if i.strip().lstrip("-").isdigit()]
        if slug and term_ids:
            taxonomies.setdefault(slug, []).extend(term_ids)
    return taxonomies

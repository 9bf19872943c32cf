"""
Instant results: fill a saved search template from request parameters.

The template is a full ``_search`` body saved by the search plugin with
``{{ep_placeholder}}`` where the search text goes. Request parameters add
pagination, sorting, highlighting and facet filters (post type, taxonomy
terms, price range).
"""

import copy
import html
import re
from typing import Any

import orjson
from pydantic import BaseModel, Field

PLACEHOLDER = "{{ep_placeholder}}"
PRICE_FIELD = "meta._price.double"
RATING_FIELD = "meta._wc_average_rating.double"
POST_TYPE_FIELD = "post_type.raw"

_TAG_PATTERN = re.compile(r"[^A-Za-z0-9]")


class InstantResultsParams(BaseModel):
    search: str = ""
    per_page: int = 10
    offset: int = 0
    orderby: str = "date"
    order: str = "desc"
    highlight: str = ""
    relation: str = "or"
    post_type: list[str] = Field(default_factory=list)
    taxonomies: dict[str, list[int]] = Field(default_factory=dict)
    term_relations: dict[str, str] = Field(default_factory=dict)
    min_price: float | None = None
    max_price: float | None = None


def sanitize_string(value: str) -> str:
    return html.escape(value.strip(), quote=True)


def _replace_placeholder(node: Any, term: str) -> Any:
    if isinstance(node, str):
        return node.replace(PLACEHOLDER, term)
    if isinstance(node, dict):
        return {k: _replace_placeholder(v, term) for k, v in node.items()}
    if isinstance(node, list):
        return [_replace_placeholder(v, term) for v in node]
    return node


def _set_search_term(query: dict, params: InstantResultsParams) -> dict:
    term = sanitize_string(params.search)
    if term:
        return _replace_placeholder(query, term)
    query["query"] = {"match_all": {"boost": 1}}
    return query


def _set_pagination(query: dict, params: InstantResultsParams) -> None:
    if params.per_page > 1:
        query["size"] = params.per_page
    if params.offset > 1:
        query["from"] = params.offset


def _set_order(query: dict, params: InstantResultsParams) -> None:
    order = "desc" if params.order == "desc" else "asc"
    if params.orderby == "date":
        sort_clause = {"post_date": {"order": order}}
    elif params.orderby == "price":
        sort_clause = {PRICE_FIELD: {"order": order, "mode": "min" if order == "asc" else "max"}}
    elif params.orderby == "rating":
        sort_clause = {RATING_FIELD: {"order": order}}
    else:
        return
    query["sort"] = [sort_clause]


def _set_highlighting(query: dict, params: InstantResultsParams) -> None:
    query["highlight"] = {
        "type": "plain",
        "encoder": "html",
        "pre_tags": [""],
        "post_tags": [""],
        "fields": {
            "post_title": {"number_of_fragments": 0, "no_match_size": 9999},
            "post_content_plain": {"number_of_fragments": 2, "fragment_size": 200, "no_match_size": 200},
        },
    }
    tag = _TAG_PATTERN.sub("", params.highlight)
    if tag:
        query["highlight"]["pre_tags"] = [f"<{tag}>"]
        query["highlight"]["post_tags"] = [f"</{tag}>"]


def _values_filter(field: str, values: list[Any], relation: str) -> dict:
    if relation == "or":
        return {"terms": {field: values}}
    return {"bool": {"must": [{"term": {field: v}} for v in values]}}


def _collect_filters(params: InstantResultsParams, relation: str) -> dict[str, tuple[dict, str]]:
    """Filters keyed by facet name, with the relation each one uses."""
    filters: dict[str, tuple[dict, str]] = {}

    post_types = [t for t in (sanitize_string(p) for p in params.post_type) if t]
    if post_types:
        filters["post_type"] = (_values_filter(POST_TYPE_FIELD, post_types, relation), relation)

    for slug, term_ids in params.taxonomies.items():
        if not term_ids:
            continue
        tax_relation = "or" if params.term_relations.get(slug, relation) == "or" else "and"
        field = f"terms.{slug}.term_id"
        filters[slug] = (_values_filter(field, term_ids, tax_relation), tax_relation)

    if params.min_price is not None:
        filters["min_price"] = ({"range": {PRICE_FIELD: {"gte": params.min_price}}}, relation)
    if params.max_price is not None:
        filters["max_price"] = ({"range": {PRICE_FIELD: {"lte": params.max_price}}}, relation)
    return filters


def _combine(existing: dict, filters: list[dict], occurrence: str) -> dict:
    return {"bool": {"must": [existing, {"bool": {occurrence: filters}}]}}


def _apply_filters(query: dict, filters: dict[str, tuple[dict, str]], relation: str) -> None:
    if not filters:
        return
    occurrence = "must" if relation == "and" else "should"
    existing = query.get("post_filter") or {"match_all": {"boost": 1}}
    query["post_filter"] = _combine(existing, [f for f, _ in filters.values()], occurrence)

    if relation != "and" or not isinstance(query.get("aggs"), dict):
        return

    for agg_name, agg in query["aggs"].items():
        if not isinstance(agg, dict) or not agg.get("aggs"):
            continue
        # A facet using "or" between its own values must not be narrowed by itself
        new_filters = [f for name, (f, rel) in filters.items() if not (name == agg_name and rel == "or")]
        if new_filters:
            existing = agg.get("filter") or {"match_all": {"boost": 1}}
            agg["filter"] = _combine(existing, new_filters, occurrence)


def build_instant_results_query(template: dict | str | bytes, params: InstantResultsParams) -> dict[str, Any]:
    """Fill an instant-results template.

    Args:
        template: The saved ``_search`` body, as JSON text or a dict.
        params: Request parameters.

    Returns:
        The ``_search`` body to send.
    """
    query = orjson.loads(template) if isinstance(template, str | bytes) else copy.deepcopy(template)

    query = _set_search_term(query, params)
    _set_pagination(query, params)
    _set_order(query, params)
    _set_highlighting(query, params)

    relation = "or" if params.relation == "or" else "and"
    _apply_filters(query, _collect_filters(params, relation), relation)
    return query

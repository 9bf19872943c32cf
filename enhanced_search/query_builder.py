"""
Default search query builder.

Produces the query document the search plugin would normally generate before
any site-specific enhancement: a ``function_score`` around a ``bool.should``
with three ``multi_match`` clauses.

Basics for non-specialists
--------------------------
- **Full phrase** clause: the whole search text as a phrase, boosted highest.
- **All terms** clause: every word must match (``operator: and``); starts with
  no fuzziness. The enhancer gives it fuzziness in strict mode.
- **Any term** clause: any single word may match, with one edit of
  fuzziness. Loose, so strict mode removes it.

The output is what :class:`enhanced_search.query_enhancer.QueryEnhancer`
expects as input, and can be sent as the body of an OpenSearch ``_search``
request as-is.
"""

from typing import Any

from enhanced_search.models import ObjectType

PHRASE_BOOST = 4
ALL_TERMS_BOOST = 2
ANY_TERM_FUZZINESS = 1

# ---------------------------------------------------------------------------
# Field definitions
# ---------------------------------------------------------------------------

POST_FIELDS = [
    "post_title",
    "post_excerpt",
    "post_content",
    "post_author.display_name",
    "terms.post_tag.name",
    "terms.category.name",
]

TERM_FIELDS = [
    "name",
    "slug",
    "taxonomy",
    "description",
]

USER_FIELDS = [
    "user_login",
    "user_nicename",
    "display_name",
    "user_url",
    "user_email",
]

TYPE_FIELD = "post_type.raw"


def default_fields(object_type: ObjectType) -> list[str]:
    match object_type:
        case ObjectType.POST:
            return list(POST_FIELDS)
        case ObjectType.TERM:
            return list(TERM_FIELDS)
        case ObjectType.USER:
            return list(USER_FIELDS)


# ---------------------------------------------------------------------------
# Query-building blocks
# ---------------------------------------------------------------------------


def _search_clauses(search_text: str, fields: list[str]) -> list[dict]:
    return [
        {
            "multi_match": {
                "query": search_text,
                "type": "phrase",
                "fields": list(fields),
                "boost": PHRASE_BOOST,
            }
        },
        {
            "multi_match": {
                "query": search_text,
                "fields": list(fields),
                "boost": ALL_TERMS_BOOST,
                "fuzziness": 0,
                "operator": "and",
            }
        },
        {
            "multi_match": {
                "query": search_text,
                "fields": list(fields),
                "fuzziness": ANY_TERM_FUZZINESS,
            }
        },
    ]


def _highlight_json(fields: list[str]) -> dict:
    return {
        "type": "plain",
        "encoder": "html",
        "fields": {f: {"number_of_fragments": 0} for f in fields},
    }


def _function_score(query: dict) -> dict:
    return {
        "function_score": {
            "query": query,
            "functions": [{"exp": {"post_date_gmt": {"scale": "14d", "decay": 0.25, "offset": "7d"}}}],
            "score_mode": "avg",
            "boost_mode": "sum",
        }
    }


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def build_search_query(
    search_text: str,
    object_type: ObjectType = ObjectType.POST,
    fields: list[str] | None = None,
    filters: list[dict] | None = None,
) -> dict[str, Any]:
    """Build the default search document for one object type.

    Args:
        search_text: The search text, passed through untouched.
        object_type: Which kind of indexed object is searched; selects the
            default field list.
        fields: Overrides the default field list.
        filters: Optional filter clauses, attached as ``bool.filter``.

    Returns:
        A ``dict`` with ``query`` (and ``highlight`` when there is search
        text) suitable for an OpenSearch ``_search`` request body.
    """
    search_text = search_text.strip() if isinstance(search_text, str) else ""
    filters = filters or []
    if not search_text:
        if filters:
            return {"query": {"bool": {"filter": filters}}}
        return {"query": {"match_all": {}}}

    fields = list(fields) if fields else default_fields(object_type)
    query: dict[str, Any] = {"bool": {"should": _search_clauses(search_text, fields)}}
    if filters:
        query["bool"]["filter"] = filters

    # Only posts carry a publication date to decay on
    if object_type is ObjectType.POST:
        query = _function_score(query)

    return {"query": query, "highlight": _highlight_json(fields)}


def build_weighted_query(
    search_text: str,
    weights: dict[str, dict[str, float]],
) -> dict[str, Any]:
    """Build a post search where each post type gets its own field weights.

    Args:
        search_text: The search text.
        weights: ``{post_type: {field: weight}}``. Types whose weights are
            identical end up with identical ``must`` clauses; see
            :func:`enhanced_search.query_repair.consolidate_weighted_queries`.
    """
    search_text = search_text.strip() if isinstance(search_text, str) else ""
    if not search_text:
        return {"query": {"match_all": {}}}

    should = []
    for post_type, field_weights in weights.items():
        fields = [f"{f}^{w}" if w != 1 else f for f, w in field_weights.items()]
        should.append(
            {
                "bool": {
                    "must": [{"bool": {"should": _search_clauses(search_text, fields)}}],
                    "filter": [{"match": {TYPE_FIELD: post_type}}],
                }
            }
        )
    return {"query": _function_score({"bool": {"should": should}})}

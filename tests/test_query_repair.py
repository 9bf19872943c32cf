import itertools

from enhanced_search.query_builder import build_search_query, build_weighted_query
from enhanced_search.query_repair import (
    DEFAULT_REPAIRS,
    TERM_REPAIRS,
    apply_repairs,
    consolidate_weighted_queries,
    correct_term_sort_keys,
    repair_mime_type_filter,
    split_mime_types,
)


def _mime_document(values):
    return {
        "query": {
            "bool": {
                "must": [{"match_all": {}}],
                "filter": [
                    {"term": {"post_status": "inherit"}},
                    {"terms": {"post_mime_type": values}},
                ],
            }
        },
        "sort": [{"post_date": {"order": "desc"}}],
    }


def test_split_mime_types():
    exact, prefixes = split_mime_types(["image", "application/pdf", "video/*", "image/*", " ", "application/pdf"])
    assert exact == ["application/pdf"]
    assert prefixes == ["image/", "video/"]


def test_mime_filter_repair():
    document = _mime_document(["image", "application/pdf", "video/*", "image/*"])
    repaired = repair_mime_type_filter(document)

    filters = repaired["query"]["bool"]["filter"]
    assert filters[0] == {"term": {"post_status": "inherit"}}
    assert filters[1] == {
        "bool": {
            "should": [
                {"terms": {"post_mime_type": ["application/pdf"]}},
                {"prefix": {"post_mime_type": "image/"}},
                {"prefix": {"post_mime_type": "video/"}},
            ],
            "minimum_should_match": 1,
        }
    }
    assert repaired["sort"] == document["sort"]


def test_mime_filter_repair_prefixes_only():
    repaired = repair_mime_type_filter(_mime_document("image"))
    assert repaired["query"]["bool"]["filter"][1] == {
        "bool": {"should": [{"prefix": {"post_mime_type": "image/"}}], "minimum_should_match": 1}
    }


def test_mime_filter_repair_is_idempotent():
    document = _mime_document(["image", "application/pdf"])
    once = repair_mime_type_filter(document)
    assert repair_mime_type_filter(once) == once


def test_mime_filter_repair_noop():
    exact_only = _mime_document(["image/jpeg", "application/pdf"])
    assert repair_mime_type_filter(exact_only) == exact_only

    document = build_search_query("shoes")
    assert repair_mime_type_filter(document) == document


def _weighted_should(document):
    return document["query"]["function_score"]["query"]["bool"]["should"]


def test_weighted_queries_are_consolidated():
    document = build_weighted_query(
        "shoes",
        {
            "post": {"post_title": 2, "post_content": 1},
            "page": {"post_title": 2, "post_content": 1},
            "product": {"post_title": 5},
        },
    )
    consolidated = consolidate_weighted_queries(document)

    should = _weighted_should(consolidated)
    assert len(should) == 2
    assert should[0]["bool"]["filter"] == [{"terms": {"post_type.raw": ["post", "page"]}}]
    assert should[0]["bool"]["must"] == _weighted_should(document)[0]["bool"]["must"]
    assert should[1] == _weighted_should(document)[2]


def test_weighted_consolidation_is_idempotent():
    document = build_weighted_query("shoes", {"post": {"post_title": 2}, "page": {"post_title": 2}})
    once = consolidate_weighted_queries(document)
    assert consolidate_weighted_queries(once) == once


def test_weighted_consolidation_noop():
    distinct = build_weighted_query("shoes", {"post": {"post_title": 2}, "page": {"post_title": 3}})
    assert consolidate_weighted_queries(distinct) == distinct

    unweighted = build_search_query("shoes")
    assert consolidate_weighted_queries(unweighted) == unweighted


def test_sort_key_correction_list():
    document = {"sort": [{"term_id.long": {"order": "asc"}}, "count.long", {"name.sortable": "asc"}]}
    assert correct_term_sort_keys(document)["sort"] == [
        {"term_id": {"order": "asc"}},
        "count",
        {"name.sortable": "asc"},
    ]


def test_sort_key_correction_single_field():
    assert correct_term_sort_keys({"sort": "term_id.long"}) == {"sort": "term_id"}
    assert correct_term_sort_keys({"sort": {"parent.long": "desc"}}) == {"sort": {"parent": "desc"}}


def test_sort_key_correction_keeps_mapped_sub_fields():
    document = {"sort": ["count.long", "term_id.long"]}
    corrected = correct_term_sort_keys(document, long_fields={"count"})
    assert corrected["sort"] == ["count.long", "term_id"]


def test_sort_key_correction_noop():
    document = build_search_query("shoes")
    assert correct_term_sort_keys(document) == document


def test_repairs_commute():
    document = build_weighted_query("shoes", {"post": {"post_title": 2}, "page": {"post_title": 2}})
    document["post_filter"] = {"bool": {"filter": [{"terms": {"post_mime_type": ["image", "text/plain"]}}]}}
    document["sort"] = [{"menu_order.long": "asc"}]

    results = [apply_repairs(document, order) for order in itertools.permutations(TERM_REPAIRS)]
    assert all(result == results[0] for result in results)
    assert apply_repairs(results[0], TERM_REPAIRS) == results[0]


def test_default_repairs_keep_long_sort_keys():
    document = build_search_query("shoes")
    document["sort"] = [{"meta._price.long": {"order": "asc"}}]
    assert apply_repairs(document)["sort"] == [{"meta._price.long": {"order": "asc"}}]
    assert apply_repairs(document, TERM_REPAIRS)["sort"] == [{"meta._price": {"order": "asc"}}]


def test_mime_filter_repair_object_form():
    document = {
        "query": {"bool": {"filter": {"terms": {"post_mime_type": ["image", "application/pdf"]}}}},
        "post_filter": {"term": {"post_mime_type": "video"}},
    }
    repaired = repair_mime_type_filter(document)

    assert repaired["query"]["bool"]["filter"] == {
        "bool": {
            "should": [
                {"terms": {"post_mime_type": ["application/pdf"]}},
                {"prefix": {"post_mime_type": "image/"}},
            ],
            "minimum_should_match": 1,
        }
    }
    assert repaired["post_filter"] == {
        "bool": {"should": [{"prefix": {"post_mime_type": "video/"}}], "minimum_should_match": 1}
    }
    assert repair_mime_type_filter(repaired) == repaired

import copy
import logging

import pytest

from enhanced_search.fuzziness import resolve_fuzziness
from enhanced_search.models import (
    DEFAULT_AUTOSUGGEST_FIELDS,
    ObjectType,
    SearchMode,
    SearchRequest,
    SearchSettings,
)
from enhanced_search.query_builder import POST_FIELDS, build_search_query, build_weighted_query
from enhanced_search.query_enhancer import QueryEnhancer, boost_fields


def _settings(**kwargs):
    return SearchSettings(fuzziness=resolve_fuzziness("auto:4,7"), **kwargs)


def _post_should(document):
    return document["query"]["function_score"]["query"]["bool"]["should"]


def _multi_match_bodies(should):
    return [c["multi_match"] for c in should if "multi_match" in c]


def test_empty_search_text_is_noop():
    document = build_search_query("shoes")
    enhanced = QueryEnhancer(_settings()).enhance(document, SearchRequest(raw_text="   "))
    assert enhanced == document


def test_simple_strict_post():
    document = build_search_query("hte qick fox")
    request = SearchRequest(raw_text="hte qick fox", mode=SearchMode.SIMPLE, strict=True)
    enhanced = QueryEnhancer(_settings()).enhance(document, request)

    should = _post_should(enhanced)
    assert len(should) == 2
    phrase, all_terms = _multi_match_bodies(should)
    assert phrase["type"] == "phrase"
    assert "fuzziness" not in phrase
    assert all_terms["operator"] == "and"
    assert all_terms["fuzziness"] == "auto:4,7"
    assert all_terms["prefix_length"] == 1
    assert all_terms["max_expansions"] == 50
    assert all_terms["fuzzy_transpositions"] is True


def test_simple_loose_keeps_any_term_clause():
    document = build_search_query("hte qick fox")
    request = SearchRequest(raw_text="hte qick fox", strict=False)
    enhanced = QueryEnhancer(_settings()).enhance(document, request)
    assert _post_should(enhanced) == _post_should(document)


def test_input_document_is_not_modified():
    document = build_search_query("red shoes")
    original = copy.deepcopy(document)
    request = SearchRequest(raw_text="red shoes", fields=[("post_title", 3)], autosuggest=True)
    QueryEnhancer(_settings()).enhance(document, request)
    assert document == original


@pytest.mark.parametrize("object_type", [ObjectType.TERM, ObjectType.USER])
def test_strict_falls_back_to_phrase_for_other_object_types(object_type):
    document = build_search_query("red", object_type)
    request = SearchRequest(raw_text="red", object_type=object_type)
    enhanced = QueryEnhancer(_settings()).enhance(document, request)

    should = enhanced["query"]["bool"]["should"]
    assert len(should) == 2
    all_terms = _multi_match_bodies(should)[1]
    assert all_terms["type"] == "phrase"
    assert all_terms["slop"] == 5
    assert "fuzziness" not in all_terms
    assert "prefix_length" not in all_terms


def test_strict_falls_back_to_phrase_for_old_algorithm():
    document = build_search_query("red shoes")
    request = SearchRequest(raw_text="red shoes")
    enhanced = QueryEnhancer(_settings(algorithm_version="3.4")).enhance(document, request)
    all_terms = _multi_match_bodies(_post_should(enhanced))[1]
    assert all_terms["type"] == "phrase"
    assert all_terms["slop"] == 5


def test_advanced_mode_replaces_clauses():
    document = build_search_query("cats OR dogs")
    request = SearchRequest(raw_text="cats OR dogs", mode=SearchMode.ADVANCED, strict=True)
    enhanced = QueryEnhancer(_settings()).enhance(document, request)

    should = _post_should(enhanced)
    assert len(should) == 1
    clause = should[0]["simple_query_string"]
    assert clause["query"] == "(cats~1|cats) | (dogs~1|dogs)"
    assert clause["fields"] == POST_FIELDS
    assert clause["default_operator"] == "and"


def test_advanced_mode_uses_boosted_fields():
    document = build_search_query("shoes")
    request = SearchRequest(raw_text="shoes", mode=SearchMode.ADVANCED, fields=[("post_title", 2)])
    enhanced = QueryEnhancer(_settings()).enhance(document, request)
    fields = _post_should(enhanced)[0]["simple_query_string"]["fields"]
    assert fields[0] == "post_title^2.0"
    assert len(fields) == len(POST_FIELDS)


def test_field_boosts(caplog):
    settings = _settings(field_boost={"post_title": 3, 42: 2.0})
    request = SearchRequest(
        raw_text="shoes",
        strict=False,
        fields=[("post_content", 2), ("custom_field", None), ("meta.color", 1.5)],
    )
    enhanced = QueryEnhancer(settings).enhance(build_search_query("shoes"), request)

    expected = [
        "post_title^3.0",
        "post_excerpt",
        "post_content^2.0",
        "post_author.display_name",
        "terms.post_tag.name",
        "terms.category.name",
        "custom_field",
        "meta.color^1.5",
    ]
    for body in _multi_match_bodies(_post_should(enhanced)):
        assert body["fields"] == expected
    assert any("42" in r.getMessage() for r in caplog.records if r.levelno == logging.WARNING)


def test_request_boost_overrides_config():
    settings = _settings(field_boost={"post_title": 3})
    request = SearchRequest(raw_text="shoes", fields=[("post_title", 5), ("post_excerpt", None)])
    enhanced = QueryEnhancer(settings).enhance(build_search_query("shoes"), request)
    fields = _multi_match_bodies(_post_should(enhanced))[0]["fields"]
    assert fields[:2] == ["post_title^5.0", "post_excerpt"]


def test_boost_fields_replaces_in_place():
    assert boost_fields(["a", "b^2", "c"], {"b": 4.0, "d": 1.5}) == ["a", "b^4.0", "c", "d^1.5"]
    assert boost_fields(["a^2.0"], {"a": None}) == ["a^2.0"]


def test_autosuggest_clause():
    request = SearchRequest(raw_text="sho", autosuggest=True)
    enhanced = QueryEnhancer(_settings()).enhance(build_search_query("sho"), request)

    suggest = _post_should(enhanced)[-1]["multi_match"]
    assert suggest["_name"] == "autosuggest"
    assert suggest["fields"] == DEFAULT_AUTOSUGGEST_FIELDS
    assert suggest["fuzziness"] == "auto:4,7"
    assert suggest["prefix_length"] == 1


def test_weighted_query_clauses_are_all_enhanced():
    document = build_weighted_query("shoes", {"post": {"post_title": 2}, "page": {"post_title": 1}})
    request = SearchRequest(raw_text="shoes", mode=SearchMode.ADVANCED)
    enhanced = QueryEnhancer(_settings()).enhance(document, request)

    for clause in _post_should(enhanced):
        inner = clause["bool"]["must"][0]["bool"]["should"]
        assert len(inner) == 1
        assert inner[0]["simple_query_string"]["query"] == "(shoes~1|shoes)"


@pytest.mark.parametrize(
    "request_kwargs",
    [
        {"mode": SearchMode.SIMPLE, "strict": True},
        {"mode": SearchMode.SIMPLE, "strict": False},
        {"mode": SearchMode.ADVANCED, "strict": True},
        {"mode": SearchMode.SIMPLE, "autosuggest": True, "fields": [("post_title", 2)]},
        {"mode": SearchMode.ADVANCED, "autosuggest": True, "fields": [("new_field", 1.5)]},
        {"object_type": ObjectType.TERM},
    ],
)
def test_enhance_is_idempotent(request_kwargs):
    object_type = request_kwargs.get("object_type", ObjectType.POST)
    document = build_search_query("red shoes OR boots", object_type)
    request = SearchRequest(raw_text="red shoes OR boots", **request_kwargs)
    enhancer = QueryEnhancer(_settings(field_boost={"post_content": 1.2}))

    once = enhancer.enhance(document, request)
    twice = enhancer.enhance(once, request)
    assert twice == once

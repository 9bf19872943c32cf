"""
Site-specific rewriting of generated search documents.

:class:`QueryEnhancer` takes a document from
:func:`enhanced_search.query_builder.build_search_query` (or any document with
the same ``bool.should`` of ``multi_match`` clauses) and applies the site's
search settings: strict matching, advanced syntax, field boosts and
autosuggest. Running it twice with the same request gives the same document.
"""

import copy
import logging
from typing import Any

from enhanced_search.document import clause_kind, dedupe, is_search_clause, search_bools
from enhanced_search.models import (
    FUZZY_ALGORITHM_VERSION,
    ObjectType,
    SearchMode,
    SearchRequest,
    SearchSettings,
)
from enhanced_search.query_compiler import compile_advanced_query

logger = logging.getLogger(__name__)

AUTOSUGGEST_NAME = "autosuggest"
PHRASE_SLOP = 5

_FUZZY_KEYS = ("fuzziness", "prefix_length", "max_expansions", "fuzzy_transpositions")


def _version(value: str) -> tuple[int, ...]:
    parts = []
    for part in str(value).split("."):
        digits = "".join(ch for ch in part if ch.isdigit())
        parts.append(int(digits) if digits else 0)
    return tuple(parts)


def _body(clause: dict) -> dict:
    return clause[clause_kind(clause)]


def _is_autosuggest(clause: Any) -> bool:
    return is_search_clause(clause) and _body(clause).get("_name") == AUTOSUGGEST_NAME


def _is_all_terms(body: dict) -> bool:
    return str(body.get("operator", "")).lower() == "and"


def _is_any_term(body: dict) -> bool:
    return (
        "fuzziness" in body
        and not _is_all_terms(body)
        and body.get("type") not in ("phrase", "phrase_prefix")
    )


def boost_fields(fields: list[str], boosts: dict[str, float | None]) -> list[str]:
    """Apply ``field^boost`` notation, replacing existing entries in place."""
    out = list(fields)
    for field, boost in boosts.items():
        entry = field if boost is None else f"{field}^{boost}"
        for i, existing in enumerate(out):
            if existing.split("^", 1)[0] == field:
                if boost is not None:
                    out[i] = entry
                break
        else:
            out.append(entry)
    return out


class QueryEnhancer:
    """Apply search settings to generated query documents."""

    def __init__(self, settings: SearchSettings | None = None) -> None:
        self.settings = settings or SearchSettings()

    def enhance(self, document: dict[str, Any], request: SearchRequest) -> dict[str, Any]:
        """Return an enhanced copy of ``document``; the input is not modified."""
        document = copy.deepcopy(document)
        if not request.raw_text or not request.raw_text.strip():
            return document

        boosts = self._field_boosts(request)
        for bool_body in search_bools(document):
            bool_body["should"] = self._enhance_should(bool_body["should"], request, boosts)
        return document

    # ------------------------------------------------------------------

    def _enhance_should(
        self,
        should: list[Any],
        request: SearchRequest,
        boosts: dict[str, float | None],
    ) -> list[Any]:
        suggest = [c for c in should if _is_autosuggest(c)]
        clauses = [c for c in should if not _is_autosuggest(c)]

        if request.mode is SearchMode.ADVANCED:
            fields = self._clause_fields(clauses) or [f for f, _ in request.fields if isinstance(f, str)]
            clauses = [
                compile_advanced_query(
                    request.raw_text,
                    boost_fields(fields, boosts),
                    strict=request.strict,
                    fuzziness=self.settings.fuzziness,
                )
            ]
        else:
            for clause in clauses:
                if is_search_clause(clause) and isinstance(_body(clause).get("fields"), list):
                    body = _body(clause)
                    body["fields"] = boost_fields(body["fields"], boosts)
            if request.strict:
                clauses = self._strict(clauses, request.object_type)

        clauses.extend(suggest)
        if request.autosuggest:
            clauses.append(self._autosuggest_clause(request.raw_text))
        return dedupe(clauses)

    def _strict(self, clauses: list[Any], object_type: ObjectType) -> list[Any]:
        fuzzy = self._fuzzy_capable(object_type)
        params = self.settings.fuzziness
        out = []
        for clause in clauses:
            if clause_kind(clause) != "multi_match":
                out.append(clause)
                continue
            body = _body(clause)
            if _is_any_term(body):
                continue
            if _is_all_terms(body):
                if fuzzy:
                    body.pop("slop", None)
                    if body.get("type") == "phrase":
                        del body["type"]
                    body["fuzziness"] = params.engine_value
                    body["prefix_length"] = params.prefix_length
                    body["max_expansions"] = params.max_expansions
                    body["fuzzy_transpositions"] = params.transpositions
                else:
                    for key in _FUZZY_KEYS:
                        body.pop(key, None)
                    body["type"] = "phrase"
                    body["slop"] = PHRASE_SLOP
            out.append(clause)
        return out

    def _fuzzy_capable(self, object_type: ObjectType) -> bool:
        match object_type:
            case ObjectType.POST:
                return _version(self.settings.algorithm_version) >= _version(FUZZY_ALGORITHM_VERSION)
            case ObjectType.TERM | ObjectType.USER:
                # No fuzzy-capable field mapping for these
                return False

    def _field_boosts(self, request: SearchRequest) -> dict[str, float | None]:
        boosts: dict[str, float | None] = {}
        pairs = list(self.settings.field_boost.items()) + list(request.fields)
        for field, boost in pairs:
            if not isinstance(field, str) or not field:
                logger.warning("Skipping field boost for non-string field %r", field)
                continue
            if boost is None:
                boosts.setdefault(field, None)
                continue
            try:
                boosts[field] = float(boost)
            except (TypeError, ValueError):
                logger.warning("Skipping field boost %r for %s: not a number", boost, field)
        return boosts

    @staticmethod
    def _clause_fields(clauses: list[Any]) -> list[str]:
        for clause in clauses:
            if is_search_clause(clause):
                fields = _body(clause).get("fields")
                if isinstance(fields, list) and fields:
                    return list(fields)
        return []

    def _autosuggest_clause(self, raw_text: str) -> dict[str, Any]:
        params = self.settings.fuzziness
        return {
            "multi_match": {
                "query": raw_text,
                "fields": list(self.settings.autosuggest_fields),
                "fuzziness": params.engine_value,
                "prefix_length": params.prefix_length,
                "max_expansions": params.max_expansions,
                "fuzzy_transpositions": params.transpositions,
                "_name": AUTOSUGGEST_NAME,
            }
        }

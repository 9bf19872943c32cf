"""
Repair passes over finished query documents.

Each filter takes a document and returns a repaired copy. Filters are
idempotent, independent of each other, and leave the document alone when the
structure they fix is not present.
"""

import copy
import logging
from collections.abc import Callable, Collection, Iterable
from functools import reduce
from typing import Any

from enhanced_search.document import canonical_json, clause_kind, walk

logger = logging.getLogger(__name__)

MIME_TYPE_FIELD = "post_mime_type"
TYPE_FIELD = "post_type.raw"
LONG_SUFFIX = ".long"
CLAUSE_SLOTS = ("filter", "must", "should", "must_not", "post_filter")

RepairFilter = Callable[[dict[str, Any]], dict[str, Any]]


# ---------------------------------------------------------------------------
# MIME type filters
# ---------------------------------------------------------------------------


def split_mime_types(values: Iterable[Any]) -> tuple[list[str], list[str]]:
    """Split MIME type values into exact types and prefixes.

    ``image/jpeg`` is exact, while ``image`` and ``image/*`` both become the
    prefix ``image/``.
    """
    exact: list[str] = []
    prefixes: list[str] = []
    for value in values:
        value = str(value).strip()
        if not value:
            continue
        if value.endswith("*"):
            target, item = prefixes, value.rstrip("*")
        elif "/" not in value:
            target, item = prefixes, value + "/"
        else:
            target, item = exact, value
        if item and item not in target:
            target.append(item)
    return exact, prefixes


def _mime_values(clause: Any, field: str) -> list[Any] | None:
    kind = clause_kind(clause)
    if kind not in ("terms", "term") or not isinstance(clause[kind], dict):
        return None
    if field not in clause[kind]:
        return None
    value = clause[kind][field]
    if isinstance(value, dict):
        value = value.get("value")
    if isinstance(value, str):
        return value.split(",")
    if isinstance(value, list):
        return value
    return None


def repair_mime_type_filter(document: dict[str, Any], field: str = MIME_TYPE_FIELD) -> dict[str, Any]:
    """Rewrite MIME type filters mixing full types and type prefixes.

    A filter such as ``{"terms": {"post_mime_type": ["image", "application/pdf"]}}``
    cannot match ``image/jpeg``. It is replaced by an OR of an exact ``terms``
    clause and one ``prefix`` clause per prefix.
    """
    document = copy.deepcopy(document)
    targets = []
    for node in walk(document):
        if isinstance(node, list):
            slots = enumerate(node)
        else:
            # Single clause in object form, e.g. ``"filter": {"terms": ...}``
            slots = ((key, node[key]) for key in CLAUSE_SLOTS if key in node)
        for i, clause in slots:
            values = _mime_values(clause, field)
            if values is not None:
                targets.append((node, i, values))

    for node, i, values in targets:
        exact, prefixes = split_mime_types(values)
        if not prefixes:
            continue
        should: list[dict[str, Any]] = []
        if exact:
            should.append({"terms": {field: exact}})
        should.extend({"prefix": {field: prefix}} for prefix in prefixes)
        node[i] = {"bool": {"should": should, "minimum_should_match": 1}}
    return document


# ---------------------------------------------------------------------------
# Weighted queries
# ---------------------------------------------------------------------------


def _type_filter_values(clause: Any, type_field: str) -> list[Any] | None:
    kind = clause_kind(clause)
    if kind not in ("match", "term", "terms") or not isinstance(clause[kind], dict):
        return None
    value = clause[kind].get(type_field)
    if value is None:
        return None
    if isinstance(value, dict):
        value = value.get("query", value.get("value"))
    return list(value) if isinstance(value, list) else [value]


def _weighted_parts(clause: Any, type_field: str) -> tuple[bytes, list[Any]] | None:
    """``(key of everything but the type filter, types)`` for a per-type clause."""
    if clause_kind(clause) != "bool" or not isinstance(clause["bool"], dict):
        return None
    body = clause["bool"]
    if "must" not in body:
        return None
    filters = body.get("filter")
    if isinstance(filters, dict):
        filters = [filters]
    if not isinstance(filters, list) or len(filters) != 1:
        return None
    types = _type_filter_values(filters[0], type_field)
    if types is None:
        return None
    rest = {k: v for k, v in body.items() if k != "filter"}
    return canonical_json(rest), types


def _merge_weighted(clauses: list[Any], type_field: str) -> list[Any] | None:
    groups: dict[bytes, list[Any]] = {}
    counts: dict[bytes, int] = {}
    for clause in clauses:
        parts = _weighted_parts(clause, type_field)
        if parts is None:
            continue
        key, types = parts
        merged = groups.setdefault(key, [])
        merged.extend(t for t in types if t not in merged)
        counts[key] = counts.get(key, 0) + 1

    if not any(n > 1 for n in counts.values()):
        return None

    out = []
    emitted: set[bytes] = set()
    for clause in clauses:
        parts = _weighted_parts(clause, type_field)
        if parts is None or counts[parts[0]] == 1:
            out.append(clause)
            continue
        key = parts[0]
        if key in emitted:
            continue
        emitted.add(key)
        body = {k: v for k, v in clause["bool"].items() if k != "filter"}
        body["filter"] = [{"terms": {type_field: groups[key]}}]
        out.append({"bool": body})
    return out


def consolidate_weighted_queries(document: dict[str, Any], type_field: str = TYPE_FIELD) -> dict[str, Any]:
    """Merge per-type weighted clauses whose ``must`` parts are identical.

    Per-type weighting emits one ``bool{must, filter: <type>}`` clause per
    post type. Types sharing the same ``must`` are folded into a single clause
    filtered on all of them.
    """
    document = copy.deepcopy(document)
    lists = [node for node in walk(document.get("query")) if isinstance(node, list) and len(node) > 1]
    for node in lists:
        merged = _merge_weighted(node, type_field)
        if merged is not None:
            logger.debug("Consolidated %d weighted clauses into %d", len(node), len(merged))
            node[:] = merged
    return document


# ---------------------------------------------------------------------------
# Sort keys
# ---------------------------------------------------------------------------


def _fix_sort_key(key: str, long_fields: Collection[str]) -> str:
    if key.endswith(LONG_SUFFIX) and key[: -len(LONG_SUFFIX)] not in long_fields:
        return key[: -len(LONG_SUFFIX)]
    return key


def _fix_sort(sort: Any, long_fields: Collection[str]) -> Any:
    if isinstance(sort, str):
        return _fix_sort_key(sort, long_fields)
    if isinstance(sort, dict):
        return {_fix_sort_key(k, long_fields) if isinstance(k, str) else k: v for k, v in sort.items()}
    if isinstance(sort, list):
        return [_fix_sort(item, long_fields) for item in sort]
    return sort


def correct_term_sort_keys(document: dict[str, Any], long_fields: Collection[str] = frozenset()) -> dict[str, Any]:
    """Point ``<field>.long`` sort keys back at ``<field>``.

    Term indexes on some versions have no ``.long`` sub-field. Fields listed
    in ``long_fields`` do have one and are left alone.
    """
    document = copy.deepcopy(document)
    if "sort" in document:
        document["sort"] = _fix_sort(document["sort"], long_fields)
    return document


# ---------------------------------------------------------------------------
# Composition
# ---------------------------------------------------------------------------

DEFAULT_REPAIRS: tuple[RepairFilter, ...] = (
    repair_mime_type_filter,
    consolidate_weighted_queries,
)

# Only term indexes lack the ``.long`` sort sub-fields
TERM_REPAIRS: tuple[RepairFilter, ...] = (*DEFAULT_REPAIRS, correct_term_sort_keys)


def apply_repairs(document: dict[str, Any], filters: Iterable[RepairFilter] = DEFAULT_REPAIRS) -> dict[str, Any]:
    return reduce(lambda doc, repair: repair(doc), filters, document)

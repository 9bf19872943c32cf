"""Helpers for walking and comparing query documents (nested dicts and lists)."""

from collections.abc import Iterator
from typing import Any

import orjson

SEARCH_CLAUSE_KINDS = ("multi_match", "simple_query_string")


def canonical_json(value: Any) -> bytes:
    """Deterministic serialization used for structural equality."""
    return orjson.dumps(value, option=orjson.OPT_SORT_KEYS)


def dedupe(clauses: list[Any]) -> list[Any]:
    """Drop structurally identical clauses, keeping the first occurrence."""
    seen: set[bytes] = set()
    out = []
    for clause in clauses:
        key = canonical_json(clause)
        if key in seen:
            continue
        seen.add(key)
        out.append(clause)
    return out


def walk(node: Any) -> Iterator[Any]:
    """Yield every dict and list in the tree, parents before children."""
    if isinstance(node, dict):
        yield node
        for value in node.values():
            yield from walk(value)
    elif isinstance(node, list):
        yield node
        for value in node:
            yield from walk(value)


def clause_kind(clause: Any) -> str | None:
    """Return the single key of a leaf clause like ``{"multi_match": {...}}``."""
    if isinstance(clause, dict) and len(clause) == 1:
        return next(iter(clause))
    return None


def is_search_clause(clause: Any) -> bool:
    return clause_kind(clause) in SEARCH_CLAUSE_KINDS


def search_bools(document: dict[str, Any]) -> list[dict[str, Any]]:
    """Every ``bool`` body whose ``should`` array holds full-text search clauses."""
    found = []
    for node in walk(document.get("query")):
        if not isinstance(node, dict) or not isinstance(node.get("bool"), dict):
            continue
        should = node["bool"].get("should")
        if isinstance(should, list) and any(is_search_clause(c) for c in should):
            found.append(node["bool"])
    return found

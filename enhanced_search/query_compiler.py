"""
Compiler for the advanced search syntax.

Turns free text such as ``"red shoes" AND blue -green`` into an OpenSearch
``simple_query_string`` query. Quoted phrases are kept verbatim, ``AND``/``OR``
become ``+``/``|`` and plain words get a fuzzy alternative, e.g.
``(shoes~1|shoes)``, so an exact match still scores at least as well as a
fuzzy one.
"""

import re
from typing import Any

from enhanced_search.fuzziness import FuzzinessParams, resolve_fuzziness

# Quoted spans are captured, whitespace runs are separators
SPLIT_PATTERN = re.compile(r'("[^"]*")|\s+')

OPERATORS = {
    "OR": "|",
    "AND": "+",
}
PASSTHROUGH_TOKENS = {"|", "+", "-", "*", "(", ")", "~"}

# Optional leading -, + or (, a plain word, optional closing parentheses
WORD_PATTERN = re.compile(r'^([-+(]*)([^\s|+\-*()~"]+)(\)*)$')


def tokenize(raw_text: str) -> list[str]:
    """Split on whitespace, keeping double-quoted spans as single pieces."""
    if not raw_text:
        return []
    return [p for p in SPLIT_PATTERN.split(raw_text) if p and p.strip()]


def _annotate(token: str, fuzziness: FuzzinessParams) -> str:
    match = WORD_PATTERN.match(token)
    if match is None:
        return token
    lead, word, trail = match.groups()
    edits = fuzziness.edits_for(word)
    if not edits:
        return token
    return f"{lead}({word}~{edits}|{word}){trail}"


def compile_query_string(raw_text: str, fuzziness: Any = None) -> str:
    """Compile free text into ``simple_query_string`` syntax."""
    fuzziness = resolve_fuzziness(fuzziness)
    pieces = []
    for piece in tokenize(raw_text):
        if piece.startswith('"'):
            pieces.append(piece)
        elif piece in OPERATORS:
            pieces.append(OPERATORS[piece])
        elif piece in PASSTHROUGH_TOKENS:
            pieces.append(piece)
        else:
            pieces.append(_annotate(piece, fuzziness))
    return " ".join(pieces).strip()


def compile_advanced_query(
    raw_text: str,
    fields: list[str],
    *,
    strict: bool,
    fuzziness: Any = None,
) -> dict[str, Any]:
    """Build the ``simple_query_string`` clause for an advanced-mode search.

    Args:
        raw_text: The user's search text.
        fields: Search fields, optionally with ``^boost`` suffixes.
        strict: When true every term must match (``default_operator: and``).
        fuzziness: Any value accepted by :func:`resolve_fuzziness`.

    Returns:
        A ``{"simple_query_string": {...}}`` clause.
    """
    params = resolve_fuzziness(fuzziness)
    return {
        "simple_query_string": {
            "query": compile_query_string(raw_text, params),
            "fields": list(fields),
            "default_operator": "and" if strict else "or",
            "fuzzy_prefix_length": params.prefix_length,
            "fuzzy_max_expansions": params.max_expansions,
            "fuzzy_transpositions": params.transpositions,
        }
    }

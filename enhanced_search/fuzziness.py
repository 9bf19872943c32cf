"""
Fuzziness settings shared by the query enhancer and the advanced query compiler.

A fuzziness configuration can be a bare distance (``2``, ``"auto"``,
``"auto:4,7"``) or a mapping with ``distance``, ``prefix_length``,
``max_expansions`` and ``transpositions``. Bad values never raise: they are
logged and replaced with the defaults below.
"""

import logging
import re
from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel, ConfigDict

logger = logging.getLogger(__name__)

DEFAULT_DISTANCE = "auto:4,7"
DEFAULT_PREFIX_LENGTH = 1
DEFAULT_MAX_EXPANSIONS = 50
DEFAULT_TRANSPOSITIONS = True

# Thresholds used by a plain "auto" distance
AUTO_LOW = 3
AUTO_HIGH = 6

# Fixed distances only apply to terms longer than this
FIXED_DISTANCE_MIN_LENGTH = 3

DISTANCE_PATTERN = re.compile(r"^(?:[0-2]|auto(?::\d+,\d+)?)$", re.IGNORECASE)
_AUTO_PATTERN = re.compile(r"^auto(?::(\d+),(\d+))?$")


class FuzzinessParams(BaseModel):
    model_config = ConfigDict(frozen=True)

    distance: int | str = DEFAULT_DISTANCE
    prefix_length: int = DEFAULT_PREFIX_LENGTH
    max_expansions: int = DEFAULT_MAX_EXPANSIONS
    transpositions: bool = DEFAULT_TRANSPOSITIONS

    @property
    def is_auto(self) -> bool:
        return isinstance(self.distance, str)

    @property
    def auto_thresholds(self) -> tuple[int, int] | None:
        """``(low, high)`` for auto distances, ``None`` for fixed ones."""
        if not isinstance(self.distance, str):
            return None
        match = _AUTO_PATTERN.match(self.distance)
        if match is None or match.group(1) is None:
            return AUTO_LOW, AUTO_HIGH
        return int(match.group(1)), int(match.group(2))

    @property
    def engine_value(self) -> int | str:
        """Value for the ``fuzziness`` key of an OpenSearch query."""
        return self.distance

    def edits_for(self, term: str) -> int:
        """Number of edits a term may receive, based on its codepoint length."""
        length = len(term)
        thresholds = self.auto_thresholds
        if thresholds is None:
            if self.distance > 0 and length > FIXED_DISTANCE_MIN_LENGTH:
                return int(self.distance)
            return 0
        low, high = thresholds
        if length < low:
            return 0
        if length < high:
            return 1
        return 2


def _resolve_distance(value: Any) -> int | str:
    if isinstance(value, bool):
        logger.warning("Invalid fuzziness distance %r, using %s", value, DEFAULT_DISTANCE)
        return DEFAULT_DISTANCE
    text = str(value).strip().lower() if value is not None else ""
    if not DISTANCE_PATTERN.match(text):
        logger.warning("Invalid fuzziness distance %r, using %s", value, DEFAULT_DISTANCE)
        return DEFAULT_DISTANCE
    if text.isdigit():
        return int(text)
    return text


def _resolve_count(name: str, value: Any, default: int) -> int:
    if isinstance(value, bool) or not isinstance(value, int | str):
        logger.warning("Invalid fuzziness %s %r, using %d", name, value, default)
        return default
    try:
        number = int(value)
    except ValueError:
        logger.warning("Invalid fuzziness %s %r, using %d", name, value, default)
        return default
    if number < 0:
        logger.warning("Invalid fuzziness %s %r, using %d", name, value, default)
        return default
    return number


def _resolve_flag(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in ("true", "false", "1", "0"):
        return value.strip().lower() in ("true", "1")
    logger.warning("Invalid fuzziness transpositions %r, using %s", value, DEFAULT_TRANSPOSITIONS)
    return DEFAULT_TRANSPOSITIONS


def resolve_fuzziness(config: Any = None) -> FuzzinessParams:
    """Turn a fuzziness configuration value into validated parameters.

    Args:
        config: ``None``, a scalar distance, a mapping of settings or an
            existing :class:`FuzzinessParams`.

    Returns:
        A frozen :class:`FuzzinessParams`; missing or invalid values fall back
        to the defaults.
    """
    if isinstance(config, FuzzinessParams):
        return config
    if config is None:
        return FuzzinessParams()
    if not isinstance(config, Mapping):
        return FuzzinessParams(distance=_resolve_distance(config))

    params: dict[str, Any] = {}
    if "distance" in config:
        params["distance"] = _resolve_distance(config["distance"])
    if "prefix_length" in config:
        params["prefix_length"] = _resolve_count("prefix_length", config["prefix_length"], DEFAULT_PREFIX_LENGTH)
    if "max_expansions" in config:
        params["max_expansions"] = _resolve_count(
            "max_expansions", config["max_expansions"], DEFAULT_MAX_EXPANSIONS
        )
    if "transpositions" in config:
        params["transpositions"] = _resolve_flag(config["transpositions"])
    return FuzzinessParams(**params)

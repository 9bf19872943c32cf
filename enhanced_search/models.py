from __future__ import annotations

from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field

from enhanced_search.fuzziness import FuzzinessParams

DEFAULT_AUTOSUGGEST_FIELDS = ["term_suggest", "post_title.suggest"]

# Algorithm version from which the all-terms clause accepts fuzziness
FUZZY_ALGORITHM_VERSION = "3.5"


class SearchMode(StrEnum):
    SIMPLE = "simple"
    ADVANCED = "advanced"


class ObjectType(StrEnum):
    POST = "post"
    TERM = "term"
    USER = "user"


class SearchSettings(BaseModel):
    """Site-level search configuration, built once and passed to the enhancer."""

    mode: SearchMode = SearchMode.SIMPLE
    strict: bool = True
    field_boost: dict[Any, Any] = Field(default_factory=dict)
    fuzziness: FuzzinessParams = Field(default_factory=FuzzinessParams)
    autosuggest_fields: list[str] = Field(default_factory=lambda: list(DEFAULT_AUTOSUGGEST_FIELDS))
    algorithm_version: str = "4.0"


class SearchRequest(BaseModel):
    raw_text: str = ""
    fields: list[tuple[Any, float | None]] = Field(default_factory=list)
    mode: SearchMode = SearchMode.SIMPLE
    strict: bool = True
    object_type: ObjectType = ObjectType.POST
    autosuggest: bool = False

    @classmethod
    def from_settings(cls, settings: SearchSettings, raw_text: str, **overrides: Any) -> SearchRequest:
        """Request with mode and strictness defaulted from the site settings."""
        values: dict[str, Any] = {"mode": settings.mode, "strict": settings.strict}
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(raw_text=raw_text, **values)

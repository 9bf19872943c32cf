from __future__ import annotations

from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field


class BulkOperation(StrEnum):
    INDEX = "index"
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


class SearchHit(BaseModel):
    id: str
    score: float | None = None
    source: dict[str, Any] = Field(default_factory=dict)
    highlight: dict[str, list[str]] | None = None
    matched_queries: list[str] = Field(default_factory=list)


class SearchResponse(BaseModel):
    total: int
    offset: int
    limit: int
    items: list[SearchHit] = Field(default_factory=list)


class BulkDocument(BaseModel):
    id: str | None = None
    op: BulkOperation = BulkOperation.INDEX
    source: dict[str, Any] = Field(default_factory=dict)


class BulkIndexRequest(BaseModel):
    documents: list[BulkDocument] = Field(default_factory=list)
    refresh: bool = False


class BulkIndexResponse(BaseModel):
    took: int = 0
    errors: bool = False
    items: list[dict[str, Any]] = Field(default_factory=list)

from __future__ import annotations

from typing import Any, Literal

from pydantic import Field

from app.services.knowledge.models import CamelModel, LeadContext

LearnStatus = Literal["learned", "enqueued", "failed"]


class LearnResponse(CamelModel):
    conversation_id: str
    status: LearnStatus
    job_id: str | None = None
    is_successful: bool | None = None
    strategies: list[str] = Field(default_factory=list)
    vector_stored: bool | None = None


class BatchLearnRequest(CamelModel):
    calls: list[dict[str, Any]] = Field(min_length=1, max_length=500)


class BatchLearnItem(CamelModel):
    index: int
    conversation_id: str | None = None
    status: LearnStatus
    job_id: str | None = None
    error: str | None = None


class BatchLearnResponse(CamelModel):
    items: list[BatchLearnItem]
    learned: int = 0
    enqueued: int = 0
    failed: int = 0


class RecallRequest(LeadContext):
    timeout_seconds: float | None = Field(default=None, gt=0.0, le=300.0)


class SearchRequest(CamelModel):
    query: str = Field(min_length=1)
    industry: str | None = None
    min_qualification_score: float | None = Field(default=None, ge=0.0, le=100.0)
    limit: int = Field(default=10, ge=1, le=100)


class SearchResponse(CamelModel):
    query: str
    conversations: list[dict[str, Any]]
    count: int


class SchemaResponse(CamelModel):
    applied: list[str]
    count: int

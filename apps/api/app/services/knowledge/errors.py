from __future__ import annotations

from typing import Any


class KnowledgeEngineError(Exception):
    """Base class for every error raised by the learning/recall engine."""


class ValidationError(KnowledgeEngineError):
    """Malformed input rejected before any store access."""

    def __init__(self, message: str, errors: list[dict[str, Any]] | None = None) -> None:
        super().__init__(message)
        self.errors = errors or []


class GraphConflictError(KnowledgeEngineError):
    """A merge lost a race with a concurrent writer and may be retried."""


class GraphWriteError(KnowledgeEngineError):
    """An ingestion step failed; the call must be replayed by the trigger layer."""

    def __init__(self, conversation_id: str, step: int, step_name: str, cause: BaseException | None = None) -> None:
        super().__init__(f"ingestion step {step} ({step_name}) failed for conversation {conversation_id}: {cause}")
        self.conversation_id = conversation_id
        self.step = step
        self.step_name = step_name
        self.cause = cause


class GraphReadError(KnowledgeEngineError):
    def __init__(self, operation: str, cause: BaseException | None = None) -> None:
        super().__init__(f"graph read '{operation}' failed: {cause}")
        self.operation = operation
        self.cause = cause


class VectorWriteError(KnowledgeEngineError):
    def __init__(self, document_id: str, cause: BaseException | None = None) -> None:
        super().__init__(f"vector write for '{document_id}' failed: {cause}")
        self.document_id = document_id
        self.cause = cause


class VectorReadError(KnowledgeEngineError):
    def __init__(self, operation: str, cause: BaseException | None = None) -> None:
        super().__init__(f"vector query '{operation}' failed: {cause}")
        self.operation = operation
        self.cause = cause


class IndustryNotFoundError(KnowledgeEngineError):
    def __init__(self, industry: str) -> None:
        super().__init__(f"industry '{industry}' not found in knowledge graph")
        self.industry = industry

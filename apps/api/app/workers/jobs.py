from __future__ import annotations

import logging
from typing import Any

from app.services.knowledge.engine import KnowledgeEngine, build_knowledge_engine

logger = logging.getLogger(__name__)

_engine: KnowledgeEngine | None = None


def bind_engine(engine: KnowledgeEngine | None) -> None:
    """Install the engine owned by the current process (API startup or worker boot)."""
    global _engine
    _engine = engine


def get_worker_engine() -> KnowledgeEngine:
    global _engine
    if _engine is None:
        _engine = build_knowledge_engine()
        logger.info("worker_knowledge_engine_started")
    return _engine


def learn_from_call(payload: dict[str, Any]) -> dict[str, Any]:
    result = get_worker_engine().learner.learn_from_call(payload)
    return result.model_dump(by_alias=True)

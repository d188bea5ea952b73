from __future__ import annotations

from datetime import datetime, timezone

from fastapi import APIRouter, Depends

from app.api.v1.deps import get_knowledge_engine
from app.services.knowledge.engine import KnowledgeEngine

router = APIRouter(tags=["health"])


@router.get("/health")
def health(engine: KnowledgeEngine = Depends(get_knowledge_engine)) -> dict:
    return {
        "status": "ok",
        "graphBackend": type(engine.graph).__name__,
        "vectorCollection": engine.vectors.name if engine.vectors is not None else None,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends

from app.api.v1.deps import get_knowledge_engine
from app.api.v1.schemas import SchemaResponse
from app.services.knowledge.engine import KnowledgeEngine

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["admin"])


@router.post("/schema", response_model=SchemaResponse)
def apply_graph_schema(engine: KnowledgeEngine = Depends(get_knowledge_engine)) -> SchemaResponse:
    applied = engine.graph.apply_schema()
    logger.info("graph_schema_requested", extra={"statements": len(applied)})
    return SchemaResponse(applied=applied, count=len(applied))

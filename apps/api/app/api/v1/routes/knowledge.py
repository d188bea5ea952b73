from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status

from app.api.v1.deps import get_retriever
from app.api.v1.schemas import RecallRequest
from app.services.knowledge.errors import GraphReadError
from app.services.knowledge.models import Knowledge, LeadContext
from app.services.knowledge.retrieval import KnowledgeRetriever

router = APIRouter(prefix="/knowledge", tags=["knowledge"])


@router.post("/recall", response_model=Knowledge)
def recall(
    payload: RecallRequest,
    retriever: KnowledgeRetriever = Depends(get_retriever),
) -> Knowledge:
    lead = LeadContext.model_validate(payload.model_dump(exclude={"timeout_seconds"}))
    try:
        return retriever.retrieve_knowledge(lead, timeout_seconds=payload.timeout_seconds)
    except GraphReadError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={"message": "Knowledge graph unavailable", "operation": exc.operation},
        ) from exc

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status

from app.api.v1.deps import get_analytics
from app.api.v1.schemas import SearchRequest, SearchResponse
from app.services.knowledge.analytics import KnowledgeAnalytics
from app.services.knowledge.errors import VectorReadError

router = APIRouter(prefix="/search", tags=["search"])


@router.post("/conversations", response_model=SearchResponse)
def search_conversations(
    payload: SearchRequest,
    analytics: KnowledgeAnalytics = Depends(get_analytics),
) -> SearchResponse:
    try:
        conversations = analytics.search_conversations(
            payload.query,
            industry=payload.industry,
            min_qualification_score=payload.min_qualification_score,
            limit=payload.limit,
        )
    except VectorReadError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={"message": "Vector store unavailable", "operation": exc.operation},
        ) from exc
    return SearchResponse(query=payload.query, conversations=conversations, count=len(conversations))

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status

from app.api.v1.deps import get_analytics
from app.services.knowledge.analytics import KnowledgeAnalytics
from app.services.knowledge.errors import GraphReadError, IndustryNotFoundError

router = APIRouter(prefix="/analytics", tags=["analytics"])


def _unavailable(exc: GraphReadError) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail={"message": "Knowledge graph unavailable", "operation": exc.operation},
    )


@router.get("")
def get_analytics_rollups(analytics: KnowledgeAnalytics = Depends(get_analytics)) -> dict:
    try:
        return analytics.get_analytics()
    except GraphReadError as exc:
        raise _unavailable(exc) from exc


@router.get("/industries/{industry}")
def get_industry_insights(industry: str, analytics: KnowledgeAnalytics = Depends(get_analytics)) -> dict:
    try:
        return analytics.get_industry_insights(industry)
    except IndustryNotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Industry not found in knowledge graph",
        ) from exc
    except GraphReadError as exc:
        raise _unavailable(exc) from exc


@router.get("/recommendations")
def get_improvement_recommendations(analytics: KnowledgeAnalytics = Depends(get_analytics)) -> dict:
    try:
        return analytics.get_improvement_recommendations()
    except GraphReadError as exc:
        raise _unavailable(exc) from exc


@router.get("/statistics")
def get_statistics(analytics: KnowledgeAnalytics = Depends(get_analytics)) -> dict:
    try:
        return analytics.get_statistics()
    except GraphReadError as exc:
        raise _unavailable(exc) from exc

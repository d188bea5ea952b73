from __future__ import annotations

from fastapi import Request

from app.core.config import Settings, get_settings
from app.services.knowledge.analytics import KnowledgeAnalytics
from app.services.knowledge.engine import KnowledgeEngine
from app.services.knowledge.learning import CallLearner
from app.services.knowledge.retrieval import KnowledgeRetriever


def get_settings_dep() -> Settings:
    return get_settings()


def get_knowledge_engine(request: Request) -> KnowledgeEngine:
    return request.app.state.knowledge_engine


def get_learner(request: Request) -> CallLearner:
    return get_knowledge_engine(request).learner


def get_retriever(request: Request) -> KnowledgeRetriever:
    return get_knowledge_engine(request).retriever


def get_analytics(request: Request) -> KnowledgeAnalytics:
    return get_knowledge_engine(request).analytics

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from concurrent.futures import Future, ThreadPoolExecutor, wait
from typing import Any

from app.core.config import Settings, get_settings
from app.db.graph_store import GraphStore
from app.services.embeddings.vector_store import ConversationCollection
from app.services.knowledge.errors import GraphReadError, VectorReadError
from app.services.knowledge.models import (
    EffectiveSignal,
    IndustryInsights,
    Knowledge,
    LeadContext,
    ObjectionInsight,
    PatternInsight,
    SemanticMatch,
    SimilarLead,
    StrategySummary,
    parse_lead_context,
)
from app.services.knowledge.recommendations import synthesize_recommendations

logger = logging.getLogger(__name__)

SECTIONS = (
    "similar_leads",
    "successful_strategies",
    "relevant_objections",
    "industry_insights",
    "conversation_patterns",
    "effective_signals",
    "semantic_results",
)


class KnowledgeRetriever:
    def __init__(
        self,
        graph: GraphStore,
        vectors: ConversationCollection | None = None,
        *,
        settings: Settings | None = None,
    ) -> None:
        self._graph = graph
        self._vectors = vectors
        self._settings = settings or get_settings()

    def retrieve_knowledge(
        self,
        payload: LeadContext | Mapping[str, Any],
        *,
        timeout_seconds: float | None = None,
    ) -> Knowledge:
        lead = parse_lead_context(payload)
        timeout = timeout_seconds if timeout_seconds is not None else self._settings.retrieval_timeout_seconds
        queries = self._section_queries(lead)

        executor = ThreadPoolExecutor(
            max_workers=self._settings.retrieval_max_workers,
            thread_name_prefix="knowledge-recall",
        )
        try:
            futures: dict[str, Future] = {name: executor.submit(query) for name, query in queries.items()}
            wait(list(futures.values()), timeout=float(timeout))
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

        sections: dict[str, Any] = {}
        missing: list[str] = []
        for name in SECTIONS:
            future = futures[name]
            if not future.done() or future.cancelled():
                missing.append(name)
                continue
            try:
                sections[name] = future.result()
            except GraphReadError:
                raise
            except Exception as exc:
                raise GraphReadError(name, exc) from exc

        if missing:
            logger.warning(
                "knowledge_recall_partial",
                extra={"lead_id": lead.lead_id, "missing_sections": missing, "timeout_seconds": timeout},
            )

        knowledge = Knowledge(
            lead_id=lead.lead_id,
            similar_leads=[SimilarLead.model_validate(row) for row in sections.get("similar_leads", [])],
            successful_strategies=[
                StrategySummary.model_validate(row) for row in sections.get("successful_strategies", [])
            ],
            relevant_objections=[
                ObjectionInsight.model_validate(row) for row in sections.get("relevant_objections", [])
            ],
            industry_insights=self._industry_insights(sections.get("industry_insights")),
            conversation_patterns=[
                PatternInsight.model_validate(row) for row in sections.get("conversation_patterns", [])
            ],
            effective_signals=[EffectiveSignal.model_validate(row) for row in sections.get("effective_signals", [])],
            semantic_results=sections.get("semantic_results", []),
            partial=bool(missing),
            missing_sections=missing,
        )
        knowledge.recommendations = synthesize_recommendations(knowledge)
        return knowledge

    def _section_queries(self, lead: LeadContext) -> dict[str, Callable[[], Any]]:
        settings = self._settings
        graph = self._graph
        return {
            "similar_leads": lambda: graph.find_similar_leads(
                lead.industry,
                min_success_rate=settings.similar_leads_min_success_rate,
                min_total_calls=settings.similar_leads_min_total_calls,
                limit=settings.similar_leads_limit,
            ),
            "successful_strategies": lambda: graph.find_strategies(
                lead.industry,
                lead.company_size,
                min_confidence=settings.strategies_min_confidence,
                limit=settings.strategies_limit,
            ),
            "relevant_objections": lambda: graph.find_industry_objections(
                lead.industry,
                limit=settings.objections_limit,
                strategies_per_objection=settings.handling_strategies_per_objection,
            ),
            "industry_insights": lambda: graph.get_industry(lead.industry),
            "conversation_patterns": lambda: graph.find_industry_patterns(
                lead.industry,
                min_success_rate=settings.patterns_min_success_rate,
                limit=settings.patterns_limit,
            ),
            "effective_signals": lambda: graph.find_effective_signals(lead.industry, limit=settings.signals_limit),
            "semantic_results": lambda: self._semantic_neighbours(lead),
        }

    @staticmethod
    def _industry_insights(row: dict[str, Any] | None) -> IndustryInsights | None:
        if not row:
            return None
        return IndustryInsights(
            success_rate=row.get("success_rate") or 0.0,
            avg_qualification_score=row.get("avg_qualification_score"),
            total_calls=row.get("total_calls") or 0,
        )

    def _semantic_neighbours(self, lead: LeadContext) -> list[SemanticMatch]:
        if self._vectors is None or not lead.previous_interactions:
            return []
        query_text = " ".join(lead.previous_interactions)
        try:
            rows = self._vectors.query(
                query_text,
                n_results=self._settings.semantic_results_limit,
                where={"industry": lead.industry},
            )
        except Exception as exc:
            error = exc if isinstance(exc, VectorReadError) else VectorReadError("semantic_results", exc)
            logger.exception(
                "vector_query_failed",
                extra={"lead_id": lead.lead_id, "operation": error.operation, "error": str(error)},
            )
            return []
        return [
            SemanticMatch(
                conversation_id=row["id"],
                similarity=1.0 - float(row["distance"]),
                metadata=row.get("metadata") or {},
            )
            for row in rows
        ]

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from typing import Any

from app.db.graph_store import GraphStore
from app.services.embeddings.vector_store import ConversationCollection
from app.services.knowledge.errors import GraphReadError, IndustryNotFoundError, VectorReadError

logger = logging.getLogger(__name__)

TOP_INDUSTRIES_LIMIT = 10
TOP_SIGNALS_LIMIT = 10
TOP_SIGNALS_MIN_OCCURRENCES = 5
TOP_PATTERNS_LIMIT = 10
TOP_PATTERNS_MIN_OCCURRENCES = 5
COMMON_OBJECTIONS_LIMIT = 10
TOP_STRATEGIES_LIMIT = 15
TOP_STRATEGIES_MIN_USES = 3
LEARNING_PROGRESS_DAYS = 30

INSIGHT_STRATEGIES_MIN_CONFIDENCE = 0.5
INSIGHT_LIMIT = 10

IMPROVEMENT_LIMIT = 5
VELOCITY_WINDOW = timedelta(days=30)

UNDERPERFORMING_MESSAGE = "These industries have low success rates and need strategy improvement"
DIFFICULT_OBJECTIONS_MESSAGE = (
    "These objections are frequently encountered but rarely overcome. Develop better handling strategies."
)
LOW_CONFIDENCE_MESSAGE = "These strategies have low success rates. Consider retiring or refining them."
PROVEN_PATTERNS_MESSAGE = "These conversation patterns have high success rates. Train agents to use them more."


def _camel(key: str) -> str:
    head, *rest = key.split("_")
    return head + "".join(part[:1].upper() + part[1:] for part in rest)


def _camel_row(row: dict[str, Any]) -> dict[str, Any]:
    return {_camel(key): value for key, value in row.items()}


def _camel_rows(rows: list[dict[str, Any]]) -> list[dict[str, Any]]:
    return [_camel_row(row) for row in rows]


class KnowledgeAnalytics:
    def __init__(
        self,
        graph: GraphStore,
        vectors: ConversationCollection | None = None,
        *,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._graph = graph
        self._vectors = vectors
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def _read(self, operation: str, query: Callable[[], Any]) -> Any:
        try:
            return query()
        except GraphReadError:
            raise
        except Exception as exc:
            raise GraphReadError(operation, exc) from exc

    def get_analytics(self) -> dict[str, Any]:
        graph = self._graph
        overall = self._read("overall_stats", graph.get_overall_stats)
        return {
            "overall": _camel_row(overall),
            "topIndustries": _camel_rows(
                self._read("top_industries", lambda: graph.get_top_industries(limit=TOP_INDUSTRIES_LIMIT))
            ),
            "topBuyingSignals": _camel_rows(
                self._read(
                    "top_buying_signals",
                    lambda: graph.get_top_buying_signals(
                        min_occurrences=TOP_SIGNALS_MIN_OCCURRENCES, limit=TOP_SIGNALS_LIMIT
                    ),
                )
            ),
            "topPatterns": _camel_rows(
                self._read(
                    "top_patterns",
                    lambda: graph.get_top_patterns(
                        min_occurrences=TOP_PATTERNS_MIN_OCCURRENCES, limit=TOP_PATTERNS_LIMIT
                    ),
                )
            ),
            "commonObjections": _camel_rows(
                self._read("common_objections", lambda: graph.get_common_objections(limit=COMMON_OBJECTIONS_LIMIT))
            ),
            "topStrategies": _camel_rows(
                self._read(
                    "top_strategies",
                    lambda: graph.get_top_strategies(min_uses=TOP_STRATEGIES_MIN_USES, limit=TOP_STRATEGIES_LIMIT),
                )
            ),
            "learningProgress": _camel_rows(
                self._read("learning_progress", lambda: graph.get_learning_progress(days=LEARNING_PROGRESS_DAYS))
            ),
        }

    def get_industry_insights(self, industry: str) -> dict[str, Any]:
        graph = self._graph
        node = self._read("industry", lambda: graph.get_industry(industry))
        if node is None:
            raise IndustryNotFoundError(industry)

        strategies = self._read(
            "industry_strategies",
            lambda: graph.find_strategies(
                industry, None, min_confidence=INSIGHT_STRATEGIES_MIN_CONFIDENCE, limit=INSIGHT_LIMIT
            ),
        )
        objections = self._read(
            "industry_objections", lambda: graph.find_objection_frequency(industry, limit=INSIGHT_LIMIT)
        )
        signals = self._read("industry_signals", lambda: graph.find_effective_signals(industry, limit=INSIGHT_LIMIT))
        return {
            "industry": {
                "name": node["name"],
                "successRate": node["success_rate"],
                "avgQualificationScore": node.get("avg_qualification_score"),
                "totalCalls": node["total_calls"],
            },
            "topStrategies": _camel_rows(strategies),
            "commonObjections": _camel_rows(objections),
            "effectiveSignals": [
                {"name": row["name"], "successRate": row["success_rate"], "frequency": row["appearances"]}
                for row in signals
            ],
        }

    def get_improvement_recommendations(self) -> dict[str, Any]:
        graph = self._graph
        recommendations: list[dict[str, Any]] = []

        industries = self._read(
            "underperforming_industries",
            lambda: graph.find_underperforming_industries(min_calls=10, max_success_rate=0.3, limit=IMPROVEMENT_LIMIT),
        )
        if industries:
            recommendations.append(
                {
                    "type": "underperforming-industries",
                    "priority": "high",
                    "industries": _camel_rows(industries),
                    "message": UNDERPERFORMING_MESSAGE,
                }
            )

        objections = self._read(
            "difficult_objections",
            lambda: graph.find_difficult_objections(min_occurrences=5, max_overcome_rate=0.5, limit=IMPROVEMENT_LIMIT),
        )
        if objections:
            recommendations.append(
                {
                    "type": "difficult-objections",
                    "priority": "high",
                    "objections": _camel_rows(objections),
                    "message": DIFFICULT_OBJECTIONS_MESSAGE,
                }
            )

        strategies = self._read(
            "low_confidence_strategies",
            lambda: graph.find_low_confidence_strategies(min_uses=5, max_confidence=0.5, limit=IMPROVEMENT_LIMIT),
        )
        if strategies:
            recommendations.append(
                {
                    "type": "low-confidence-strategies",
                    "priority": "medium",
                    "strategies": _camel_rows(strategies),
                    "message": LOW_CONFIDENCE_MESSAGE,
                }
            )

        patterns = self._read(
            "proven_patterns",
            lambda: graph.find_proven_patterns(min_occurrences=10, min_success_rate=0.7, limit=IMPROVEMENT_LIMIT),
        )
        if patterns:
            recommendations.append(
                {
                    "type": "successful-patterns",
                    "priority": "medium",
                    "patterns": _camel_rows(patterns),
                    "message": PROVEN_PATTERNS_MESSAGE,
                }
            )

        return {"recommendations": recommendations, "generatedAt": self._clock().isoformat()}

    def get_statistics(self) -> dict[str, Any]:
        now = self._clock()
        counts = self._read("graph_counts", self._graph.get_graph_counts)
        velocity = self._read(
            "learning_velocity", lambda: self._graph.get_learning_velocity(since=now - VELOCITY_WINDOW)
        )
        return {
            "nodes": counts.get("nodes", {}),
            "relationships": counts.get("relationships", {}),
            "learningVelocity": {
                "avgPerDay": velocity.get("avg_per_day", 0.0),
                "totalLast30Days": velocity.get("total_last_30_days", 0),
            },
            "timestamp": now.isoformat(),
        }

    def search_conversations(
        self,
        query: str,
        *,
        industry: str | None = None,
        min_qualification_score: float | None = None,
        limit: int = 10,
    ) -> list[dict[str, Any]]:
        """Semantic search over successful conversations; vector failures surface as VectorReadError."""
        if self._vectors is None:
            raise VectorReadError("search_conversations", RuntimeError("vector store not configured"))
        where = {"industry": industry} if industry else None
        try:
            rows = self._vectors.query(query, n_results=limit, where=where)
        except VectorReadError:
            raise
        except Exception as exc:
            raise VectorReadError("search_conversations", exc) from exc

        conversations: list[dict[str, Any]] = []
        for row in rows:
            metadata = row.get("metadata") or {}
            if min_qualification_score and float(metadata.get("qualificationScore") or 0.0) < min_qualification_score:
                continue
            conversations.append(
                {
                    "conversationId": row["id"],
                    "text": row.get("document") or "",
                    "similarity": 1.0 - float(row["distance"]),
                    "metadata": metadata,
                }
            )
        logger.info(
            "conversation_search_completed",
            extra={"industry": industry, "results": len(conversations), "limit": limit},
        )
        return conversations

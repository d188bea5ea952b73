from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from app.db.memory_graph import InMemoryGraphStore
from app.services.knowledge.analytics import (
    DIFFICULT_OBJECTIONS_MESSAGE,
    LOW_CONFIDENCE_MESSAGE,
    PROVEN_PATTERNS_MESSAGE,
    UNDERPERFORMING_MESSAGE,
    KnowledgeAnalytics,
)
from app.services.knowledge.errors import GraphReadError, IndustryNotFoundError, VectorReadError
from app.services.knowledge.learning import CallLearner
from app.tests.call_fixtures import CALL_A, CALL_B, CALL_C

LEARNED_AT = datetime(2026, 3, 1, 15, 30, tzinfo=timezone.utc)
NOW = LEARNED_AT + timedelta(days=1)


def _seed(graph: InMemoryGraphStore, calls) -> InMemoryGraphStore:  # noqa: ANN001
    learner = CallLearner(graph, clock=lambda: LEARNED_AT, sleep=lambda _seconds: None)
    for call in calls:
        learner.learn_from_call(call)
    return graph


def _analytics(graph: InMemoryGraphStore, vectors=None) -> KnowledgeAnalytics:  # noqa: ANN001
    return KnowledgeAnalytics(graph, vectors, clock=lambda: NOW)


def test_overall_analytics_for_fintech_scenario() -> None:
    analytics = _analytics(_seed(InMemoryGraphStore(), (CALL_A, CALL_B, CALL_C)))

    report = analytics.get_analytics()

    assert report["overall"] == {
        "totalConversations": 3,
        "successfulConversations": 2,
        "successRate": pytest.approx(2 / 3),
    }
    assert report["topIndustries"] == [
        {
            "industry": "fintech",
            "successRate": pytest.approx(2 / 3),
            "totalCalls": 3,
            "avgQualificationScore": pytest.approx(61.0),
        }
    ]
    # Minimum occurrence and use thresholds are not met yet.
    assert report["topBuyingSignals"] == []
    assert report["topPatterns"] == []
    assert report["topStrategies"] == []
    assert report["commonObjections"] == [{"objection": "too_busy", "overcomeRate": 1.0, "occurrences": 1}]
    assert report["learningProgress"] == [
        {"date": "2026-03-01", "totalCalls": 3, "successfulCalls": 2, "successRate": pytest.approx(2 / 3)}
    ]


def test_analytics_on_empty_graph() -> None:
    report = _analytics(InMemoryGraphStore()).get_analytics()

    assert report["overall"] == {"totalConversations": 0, "successfulConversations": 0, "successRate": 0.0}
    assert report["topIndustries"] == []
    assert report["learningProgress"] == []


def test_industry_insights() -> None:
    analytics = _analytics(_seed(InMemoryGraphStore(), (CALL_A, CALL_B, CALL_C)))

    insights = analytics.get_industry_insights("fintech")

    assert insights["industry"] == {
        "name": "fintech",
        "successRate": pytest.approx(2 / 3),
        "avgQualificationScore": pytest.approx(61.0),
        "totalCalls": 3,
    }
    assert [row["strategyId"] for row in insights["topStrategies"]] == [
        "objection-handling-fintech-too_busy",
        "signals-fintech-price_inquiry",
    ]
    assert insights["commonObjections"] == [
        {"type": "too_busy", "totalOccurrences": 1, "overcomeRate": 1.0, "frequency": 1}
    ]
    assert insights["effectiveSignals"] == [{"name": "price_inquiry", "successRate": 1.0, "frequency": 1}]


def test_industry_insights_unknown_industry() -> None:
    analytics = _analytics(_seed(InMemoryGraphStore(), (CALL_A,)))

    with pytest.raises(IndustryNotFoundError) as excinfo:
        analytics.get_industry_insights("healthcare")
    assert excinfo.value.industry == "healthcare"


def _retail_call(index: int) -> dict:
    return {
        "leadId": f"R{index}",
        "conversationId": f"retail-{index}",
        "industry": "retail",
        "outcome": "qualified" if index < 2 else "not_interested",
        "qualificationScore": 40,
        "objections": [{"type": "no_budget", "wasOvercome": False}],
        "engagementMetrics": {"talkRatio": 0.5},
    }


def _saas_call(index: int) -> dict:
    return {
        "leadId": f"S{index}",
        "conversationId": f"saas-{index}",
        "industry": "saas",
        "outcome": "qualified",
        "qualificationScore": 90,
        "engagementMetrics": {"talkRatio": 0.3},
    }


def test_improvement_recommendations() -> None:
    calls = [_retail_call(index) for index in range(10)] + [_saas_call(index) for index in range(10)]
    graph = _seed(InMemoryGraphStore(), calls)
    graph._nodes["Strategy"]["signals-saas-demo_request"] = {
        "strategyId": "signals-saas-demo_request",
        "type": "buying-signals",
        "industry": "saas",
        "successCount": 2,
        "totalUses": 6,
        "confidence": 2 / 6,
    }

    report = _analytics(graph).get_improvement_recommendations()

    assert report["generatedAt"] == NOW.isoformat()
    by_type = {item["type"]: item for item in report["recommendations"]}
    assert list(by_type) == [
        "underperforming-industries",
        "difficult-objections",
        "low-confidence-strategies",
        "successful-patterns",
    ]

    assert by_type["underperforming-industries"]["priority"] == "high"
    assert by_type["underperforming-industries"]["message"] == UNDERPERFORMING_MESSAGE
    assert by_type["underperforming-industries"]["industries"] == [
        {"name": "retail", "successRate": pytest.approx(0.2), "totalCalls": 10}
    ]

    assert by_type["difficult-objections"]["message"] == DIFFICULT_OBJECTIONS_MESSAGE
    assert by_type["difficult-objections"]["objections"] == [
        {"type": "no_budget", "overcomeRate": 0.0, "totalOccurrences": 10}
    ]

    assert by_type["low-confidence-strategies"]["priority"] == "medium"
    assert by_type["low-confidence-strategies"]["message"] == LOW_CONFIDENCE_MESSAGE
    assert [row["strategyId"] for row in by_type["low-confidence-strategies"]["strategies"]] == [
        "signals-saas-demo_request"
    ]

    assert by_type["successful-patterns"]["message"] == PROVEN_PATTERNS_MESSAGE
    assert [row["patternId"] for row in by_type["successful-patterns"]["patterns"]] == ["talk-ratio-lead-dominated"]


def test_improvement_recommendations_empty_when_nothing_qualifies() -> None:
    report = _analytics(_seed(InMemoryGraphStore(), (CALL_A, CALL_B, CALL_C))).get_improvement_recommendations()

    assert report["recommendations"] == []


def test_statistics_counts_and_velocity() -> None:
    stats = _analytics(_seed(InMemoryGraphStore(), (CALL_A, CALL_B, CALL_C))).get_statistics()

    assert stats["nodes"] == {
        "Lead": 1,
        "Conversation": 3,
        "BuyingSignal": 1,
        "Objection": 1,
        "HandlingStrategy": 1,
        "ConversationPattern": 2,
        "Industry": 1,
        "Strategy": 2,
    }
    assert stats["relationships"] == {
        "HAD_CONVERSATION": 3,
        "EXHIBITED_SIGNAL": 1,
        "HAD_OBJECTION": 1,
        "OVERCOME_BY": 1,
        "EXHIBITED_PATTERN": 2,
        "USED_STRATEGY": 2,
    }
    assert stats["learningVelocity"] == {"avgPerDay": 3.0, "totalLast30Days": 3}
    assert stats["timestamp"] == NOW.isoformat()


def test_statistics_ignore_calls_outside_window() -> None:
    graph = _seed(InMemoryGraphStore(), (CALL_A,))
    analytics = KnowledgeAnalytics(graph, clock=lambda: LEARNED_AT + timedelta(days=45))

    assert analytics.get_statistics()["learningVelocity"] == {"avgPerDay": 0.0, "totalLast30Days": 0}


def test_graph_failures_surface_as_read_errors() -> None:
    class _DownGraph(InMemoryGraphStore):
        def get_overall_stats(self):  # noqa: ANN201
            raise ConnectionError("neo4j unreachable")

    with pytest.raises(GraphReadError) as excinfo:
        _analytics(_DownGraph()).get_analytics()
    assert excinfo.value.operation == "overall_stats"


class _SearchVectors:
    def __init__(self, rows: list[dict], error: Exception | None = None) -> None:
        self.rows = rows
        self.error = error
        self.calls: list[dict] = []

    def query(self, query_text, *, n_results=10, where=None):  # noqa: ANN001
        self.calls.append({"query_text": query_text, "n_results": n_results, "where": where})
        if self.error is not None:
            raise self.error
        return self.rows


SEARCH_ROWS = [
    {"id": "A", "document": "Can you share pricing?", "distance": 0.1, "metadata": {"qualificationScore": 85}},
    {"id": "B", "document": "", "distance": 0.3, "metadata": {"qualificationScore": 72}},
]


def test_search_conversations_filters_by_score() -> None:
    vectors = _SearchVectors(SEARCH_ROWS)
    analytics = _analytics(InMemoryGraphStore(), vectors)

    results = analytics.search_conversations("pricing", industry="fintech", min_qualification_score=80, limit=5)

    assert vectors.calls == [{"query_text": "pricing", "n_results": 5, "where": {"industry": "fintech"}}]
    assert results == [
        {
            "conversationId": "A",
            "text": "Can you share pricing?",
            "similarity": pytest.approx(0.9),
            "metadata": {"qualificationScore": 85},
        }
    ]


def test_search_conversations_without_filters() -> None:
    vectors = _SearchVectors(SEARCH_ROWS)

    results = _analytics(InMemoryGraphStore(), vectors).search_conversations("pricing")

    assert [row["conversationId"] for row in results] == ["A", "B"]
    assert vectors.calls[0]["where"] is None


def test_search_conversations_vector_failures() -> None:
    with pytest.raises(VectorReadError):
        _analytics(InMemoryGraphStore()).search_conversations("pricing")

    failing = _SearchVectors([], error=ConnectionError("postgres unreachable"))
    with pytest.raises(VectorReadError) as excinfo:
        _analytics(InMemoryGraphStore(), failing).search_conversations("pricing")
    assert isinstance(excinfo.value.cause, ConnectionError)

from __future__ import annotations

import re
from contextlib import contextmanager
from datetime import datetime, timezone

import pytest
from neo4j.exceptions import ConstraintError, ServiceUnavailable

from app.db.neo4j import queries
from app.db.neo4j.graph_store import Neo4jGraphStore
from app.db.neo4j.schema import SCHEMA_STATEMENTS
from app.services.knowledge.errors import GraphConflictError, GraphReadError
from app.services.knowledge.models import PatternDescriptor
from app.services.knowledge.strategy_keys import StrategyKey

AT = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


class _FakeResult:
    def __init__(self, rows: list[dict]) -> None:
        self._rows = rows

    def consume(self) -> None:
        return None

    def data(self) -> list[dict]:
        return self._rows


class _FakeTx:
    def __init__(self, driver: "_FakeDriver") -> None:
        self._driver = driver

    def run(self, query: str, **params):  # noqa: ANN003, ANN201
        self._driver.runs.append((query, params))
        if self._driver.error is not None:
            raise self._driver.error
        return _FakeResult(self._driver.rows.get(query, []))


class _FakeSession:
    def __init__(self, driver: "_FakeDriver") -> None:
        self._tx = _FakeTx(driver)
        self._driver = driver

    def execute_write(self, work):  # noqa: ANN001, ANN201
        self._driver.transactions.append("write")
        return work(self._tx)

    def execute_read(self, work):  # noqa: ANN001, ANN201
        self._driver.transactions.append("read")
        return work(self._tx)

    def run(self, query: str, **params):  # noqa: ANN003, ANN201
        return self._tx.run(query, **params)


class _FakeDriver:
    def __init__(self, rows: dict[str, list[dict]] | None = None, error: Exception | None = None) -> None:
        self.rows = rows or {}
        self.error = error
        self.runs: list[tuple[str, dict]] = []
        self.transactions: list[str] = []
        self.databases: list[str | None] = []
        self.closed = False

    @contextmanager
    def session(self, database=None):  # noqa: ANN001, ANN201
        self.databases.append(database)
        yield _FakeSession(self)

    def close(self) -> None:
        self.closed = True


def test_merge_lead_runs_single_upsert_in_write_transaction() -> None:
    driver = _FakeDriver()
    store = Neo4jGraphStore(driver, "knowledge")

    store.merge_lead(lead_id="L1", industry="fintech", company_size=None, is_successful=True, at=AT)

    assert driver.transactions == ["write"]
    assert driver.databases == ["knowledge"]
    (query, params), = driver.runs
    assert query is queries.MERGE_LEAD
    assert "ON CREATE SET" in query and "ON MATCH SET" in query
    assert params == {
        "lead_id": "L1",
        "industry": "fintech",
        "company_size": None,
        "success_inc": 1,
        "at": AT.isoformat(),
    }


def test_overcome_objection_also_merges_handling_strategy() -> None:
    driver = _FakeDriver()
    store = Neo4jGraphStore(driver)

    store.merge_objection(
        conversation_id="B",
        objection_type="too_busy",
        handling_strategy="offer flexible schedule",
        was_overcome=True,
        at=AT,
    )
    store.merge_objection(
        conversation_id="C", objection_type="too_busy", handling_strategy=None, was_overcome=False, at=AT
    )

    assert [query for query, _params in driver.runs] == [
        queries.MERGE_OBJECTION,
        queries.MERGE_HANDLING_STRATEGY,
        queries.MERGE_OBJECTION,
    ]
    assert driver.transactions == ["write", "write"]
    assert driver.runs[0][1]["overcome_inc"] == 1
    assert driver.runs[2][1]["overcome_inc"] == 0


def test_industry_with_company_size_updates_size_edge() -> None:
    driver = _FakeDriver()
    store = Neo4jGraphStore(driver)

    store.merge_industry(
        industry="fintech", company_size="50-200", is_successful=False, qualification_score=42, at=AT
    )

    assert [query for query, _params in driver.runs] == [queries.MERGE_INDUSTRY, queries.MERGE_COMPANY_SIZE]
    assert driver.runs[0][1]["qualification_score"] == 42.0
    assert driver.runs[0][1]["success_inc"] == 0


def test_pattern_features_are_serialised() -> None:
    driver = _FakeDriver()
    store = Neo4jGraphStore(driver)
    pattern = PatternDescriptor(
        pattern_id="talk-ratio-lead-dominated", type="lead-dominated", features={"talkRatio": 0.3}, weight=0.3
    )

    store.merge_conversation_pattern(conversation_id="A", pattern=pattern, is_successful=True, at=AT)

    assert driver.runs[0][1]["features"] == '{"talkRatio": 0.3}'


def test_strategy_members_land_on_matching_property() -> None:
    driver = _FakeDriver()
    store = Neo4jGraphStore(driver)
    signals = StrategyKey(
        strategy_id="signals-fintech-price_inquiry",
        type="buying-signals",
        industry="fintech",
        company_size="1-10",
        members="price_inquiry",
    )
    objections = StrategyKey(
        strategy_id="objection-handling-fintech-too_busy",
        type="objection-handling",
        industry="fintech",
        company_size=None,
        members="too_busy",
    )

    store.merge_strategy(conversation_id="A", strategy=signals, qualification_score=85, at=AT)
    store.merge_strategy(conversation_id="B", strategy=objections, qualification_score=78, at=AT)

    first, second = (params for _query, params in driver.runs)
    assert (first["signals"], first["objections"]) == ("price_inquiry", None)
    assert (second["signals"], second["objections"]) == (None, "too_busy")
    assert "s.confidence = toFloat(s.successCount) / toFloat(s.totalUses)" in queries.MERGE_STRATEGY


def test_write_conflicts_are_retryable() -> None:
    store = Neo4jGraphStore(_FakeDriver(error=ConstraintError("node already exists")))

    with pytest.raises(GraphConflictError):
        store.merge_lead(lead_id="L1", industry="fintech", company_size=None, is_successful=True, at=AT)


def test_other_write_errors_propagate() -> None:
    store = Neo4jGraphStore(_FakeDriver(error=ServiceUnavailable("connection refused")))

    with pytest.raises(ServiceUnavailable):
        store.merge_lead(lead_id="L1", industry="fintech", company_size=None, is_successful=True, at=AT)


def test_read_errors_are_wrapped() -> None:
    store = Neo4jGraphStore(_FakeDriver(error=ServiceUnavailable("connection refused")))

    with pytest.raises(GraphReadError) as excinfo:
        store.find_effective_signals("fintech", limit=10)
    assert excinfo.value.operation == "effective_signals"


def test_strategy_reads_filter_strictly_above_min_confidence() -> None:
    driver = _FakeDriver(
        rows={
            queries.FIND_STRATEGIES: [
                {
                    "strategy_id": "signals-fintech-price_inquiry",
                    "type": "buying-signals",
                    "industry": "fintech",
                    "company_size": None,
                    "confidence": 1,
                    "success_count": 2,
                    "total_uses": 2,
                    "signals": "price_inquiry",
                    "objections": None,
                    "avg_qualification_score": 80.5,
                }
            ]
        }
    )
    store = Neo4jGraphStore(driver)

    rows = store.find_strategies("fintech", "1-10", min_confidence=0.6, limit=10)

    assert "s.confidence > $min_confidence" in queries.FIND_STRATEGIES
    assert driver.transactions == ["read"]
    assert driver.runs[0][1] == {"industry": "fintech", "company_size": "1-10", "min_confidence": 0.6, "limit": 10}
    assert rows[0]["confidence"] == 1.0
    assert rows[0]["strategy_id"] == "signals-fintech-price_inquiry"


def test_read_rows_are_normalised() -> None:
    driver = _FakeDriver(
        rows={
            queries.FIND_INDUSTRY_PATTERNS: [
                {
                    "pattern_id": "questions-1",
                    "type": "question-engagement",
                    "success_rate": 1,
                    "features": '{"questionCount": 1}',
                    "usage_count": 1,
                }
            ],
            queries.FIND_INDUSTRY_OBJECTIONS: [
                {
                    "type": "too_busy",
                    "total_occurrences": 2,
                    "overcome_rate": 0.5,
                    "handling_strategies": [{"strategy": None, "success_rate": None, "uses": None}],
                }
            ],
        }
    )
    store = Neo4jGraphStore(driver)

    patterns = store.find_industry_patterns("fintech", min_success_rate=0.6, limit=10)
    objections = store.find_industry_objections("fintech", limit=5, strategies_per_objection=3)

    assert patterns[0]["features"] == {"questionCount": 1}
    assert objections[0]["handling_strategies"] == []


def test_missing_industry_returns_none() -> None:
    store = Neo4jGraphStore(_FakeDriver())

    assert store.get_industry("healthcare") is None
    assert store.get_overall_stats() == {
        "total_conversations": 0,
        "successful_conversations": 0,
        "success_rate": 0.0,
    }


def test_graph_counts_and_velocity() -> None:
    driver = _FakeDriver(
        rows={
            queries.NODE_COUNTS: [{"label": "Lead", "count": 2}, {"label": "Conversation", "count": 5}],
            queries.RELATIONSHIP_COUNTS: [{"type": "HAD_CONVERSATION", "count": 5}],
            queries.LEARNING_VELOCITY: [{"avg_per_day": 2.5, "total": 5}],
        }
    )
    store = Neo4jGraphStore(driver)

    assert store.get_graph_counts() == {
        "nodes": {"Lead": 2, "Conversation": 5},
        "relationships": {"HAD_CONVERSATION": 5},
    }
    assert store.get_learning_velocity(since=AT) == {"avg_per_day": 2.5, "total_last_30_days": 5}
    assert driver.runs[-1][1] == {"since": AT.isoformat()}


def test_apply_schema_and_close() -> None:
    driver = _FakeDriver()
    store = Neo4jGraphStore(driver)

    applied = store.apply_schema()
    store.close()

    assert applied == SCHEMA_STATEMENTS
    assert [query for query, _params in driver.runs] == SCHEMA_STATEMENTS
    assert driver.closed is True


def test_lead_indexes_cover_written_properties() -> None:
    lead_index = re.compile(r"FOR \(l:Lead\) ON \(l\.(\w+)\)")
    indexed = [match.group(1) for match in map(lead_index.search, SCHEMA_STATEMENTS) if match]

    assert indexed == ["industry", "companySize", "successRate"]
    for prop in indexed:
        assert f"l.{prop} =" in queries.MERGE_LEAD

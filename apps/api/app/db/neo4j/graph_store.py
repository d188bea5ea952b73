from __future__ import annotations

import json
import logging
from datetime import datetime
from typing import Any

from neo4j import Driver
from neo4j.exceptions import ConstraintError, DriverError, Neo4jError, TransientError

from app.db.graph_store import GraphStore, ratio
from app.db.neo4j import queries
from app.db.neo4j.driver import neo4j_session
from app.db.neo4j.queries import _as_float, _as_int, _as_json_dict, _session_run
from app.db.neo4j.schema import SCHEMA_STATEMENTS
from app.services.knowledge.errors import GraphConflictError, GraphReadError
from app.services.knowledge.models import PatternDescriptor
from app.services.knowledge.strategy_keys import StrategyKey

logger = logging.getLogger(__name__)


class Neo4jGraphStore(GraphStore):
    """Graph store backed by Neo4j; each write runs in one managed write transaction."""

    def __init__(self, driver: Driver, database: str | None = None) -> None:
        self._driver = driver
        self._database = database or None

    def _write(self, operation: str, statements: list[tuple[str, dict[str, Any]]]) -> None:
        def _work(tx: Any) -> None:
            for query, params in statements:
                _session_run(tx, query, **params).consume()

        with neo4j_session(self._driver, self._database) as session:
            try:
                session.execute_write(_work)
            except (ConstraintError, TransientError) as exc:
                raise GraphConflictError(f"{operation}: {exc}") from exc

    def _read(self, operation: str, query: str, **params: Any) -> list[dict[str, Any]]:
        def _work(tx: Any) -> list[dict[str, Any]]:
            return _session_run(tx, query, **params).data()

        try:
            with neo4j_session(self._driver, self._database) as session:
                return session.execute_read(_work)
        except (Neo4jError, DriverError) as exc:
            raise GraphReadError(operation, exc) from exc

    # --- ingestion upserts -------------------------------------------------

    def merge_lead(
        self, *, lead_id: str, industry: str, company_size: str | None, is_successful: bool, at: datetime
    ) -> None:
        self._write(
            "merge_lead",
            [
                (
                    queries.MERGE_LEAD,
                    {
                        "lead_id": lead_id,
                        "industry": industry,
                        "company_size": company_size,
                        "success_inc": 1 if is_successful else 0,
                        "at": at.isoformat(),
                    },
                )
            ],
        )

    def merge_conversation(
        self,
        *,
        conversation_id: str,
        lead_id: str,
        outcome: str,
        qualification_score: float,
        duration: float,
        is_successful: bool,
        at: datetime,
    ) -> None:
        self._write(
            "merge_conversation",
            [
                (
                    queries.MERGE_CONVERSATION,
                    {
                        "conversation_id": conversation_id,
                        "lead_id": lead_id,
                        "outcome": outcome,
                        "qualification_score": float(qualification_score),
                        "duration": float(duration),
                        "is_successful": is_successful,
                        "at": at.isoformat(),
                    },
                )
            ],
        )

    def merge_buying_signal(
        self,
        *,
        conversation_id: str,
        name: str,
        confidence: float | None,
        context: str | None,
        is_successful: bool,
        at: datetime,
    ) -> None:
        self._write(
            "merge_buying_signal",
            [
                (
                    queries.MERGE_BUYING_SIGNAL,
                    {
                        "conversation_id": conversation_id,
                        "name": name,
                        "confidence": confidence,
                        "context": context,
                        "success_inc": 1 if is_successful else 0,
                        "at": at.isoformat(),
                    },
                )
            ],
        )

    def merge_objection(
        self,
        *,
        conversation_id: str,
        objection_type: str,
        handling_strategy: str | None,
        was_overcome: bool,
        at: datetime,
    ) -> None:
        params = {
            "conversation_id": conversation_id,
            "objection_type": objection_type,
            "handling_strategy": handling_strategy,
            "was_overcome": was_overcome,
            "overcome_inc": 1 if was_overcome else 0,
            "at": at.isoformat(),
        }
        statements = [(queries.MERGE_OBJECTION, params)]
        if was_overcome and handling_strategy:
            statements.append((queries.MERGE_HANDLING_STRATEGY, params))
        self._write("merge_objection", statements)

    def merge_conversation_pattern(
        self, *, conversation_id: str, pattern: PatternDescriptor, is_successful: bool, at: datetime
    ) -> None:
        self._write(
            "merge_conversation_pattern",
            [
                (
                    queries.MERGE_CONVERSATION_PATTERN,
                    {
                        "conversation_id": conversation_id,
                        "pattern_id": pattern.pattern_id,
                        "type": pattern.type,
                        "features": json.dumps(pattern.features, sort_keys=True),
                        "weight": pattern.weight,
                        "success_inc": 1 if is_successful else 0,
                        "at": at.isoformat(),
                    },
                )
            ],
        )

    def merge_industry(
        self,
        *,
        industry: str,
        company_size: str | None,
        is_successful: bool,
        qualification_score: float,
        at: datetime,
    ) -> None:
        params = {
            "industry": industry,
            "company_size": company_size,
            "success_inc": 1 if is_successful else 0,
            "qualification_score": float(qualification_score),
            "at": at.isoformat(),
        }
        statements = [(queries.MERGE_INDUSTRY, params)]
        if company_size:
            statements.append((queries.MERGE_COMPANY_SIZE, params))
        self._write("merge_industry", statements)

    def merge_strategy(
        self, *, conversation_id: str, strategy: StrategyKey, qualification_score: float, at: datetime
    ) -> None:
        is_signals = strategy.type == "buying-signals"
        self._write(
            "merge_strategy",
            [
                (
                    queries.MERGE_STRATEGY,
                    {
                        "conversation_id": conversation_id,
                        "strategy_id": strategy.strategy_id,
                        "type": strategy.type,
                        "industry": strategy.industry,
                        "company_size": strategy.company_size,
                        "signals": strategy.members if is_signals else None,
                        "objections": None if is_signals else strategy.members,
                        "qualification_score": float(qualification_score),
                        "at": at.isoformat(),
                    },
                )
            ],
        )

    # --- recall reads ------------------------------------------------------

    def find_similar_leads(
        self, industry: str, *, min_success_rate: float, min_total_calls: int, limit: int
    ) -> list[dict[str, Any]]:
        rows = self._read(
            "similar_leads",
            queries.FIND_SIMILAR_LEADS,
            industry=industry,
            min_success_rate=min_success_rate,
            min_total_calls=min_total_calls,
            limit=limit,
        )
        return [
            {
                "lead_id": row.get("lead_id"),
                "success_rate": _as_float(row.get("success_rate")),
                "successful_conversations": _as_int(row.get("successful_conversations")),
            }
            for row in rows
        ]

    def find_strategies(
        self, industry: str, company_size: str | None, *, min_confidence: float, limit: int
    ) -> list[dict[str, Any]]:
        rows = self._read(
            "successful_strategies",
            queries.FIND_STRATEGIES,
            industry=industry,
            company_size=company_size,
            min_confidence=min_confidence,
            limit=limit,
        )
        return [
            {
                "strategy_id": row.get("strategy_id"),
                "type": row.get("type"),
                "industry": row.get("industry"),
                "company_size": row.get("company_size"),
                "confidence": _as_float(row.get("confidence")),
                "success_count": _as_int(row.get("success_count")),
                "total_uses": _as_int(row.get("total_uses")),
                "signals": row.get("signals"),
                "objections": row.get("objections"),
                "avg_qualification_score": row.get("avg_qualification_score"),
            }
            for row in rows
        ]

    def find_industry_objections(
        self, industry: str, *, limit: int, strategies_per_objection: int
    ) -> list[dict[str, Any]]:
        rows = self._read(
            "relevant_objections",
            queries.FIND_INDUSTRY_OBJECTIONS,
            industry=industry,
            limit=limit,
            strategies_per_objection=strategies_per_objection,
        )
        results: list[dict[str, Any]] = []
        for row in rows:
            handling = [
                {
                    "strategy": item.get("strategy"),
                    "success_rate": item.get("success_rate"),
                    "uses": item.get("uses"),
                }
                for item in row.get("handling_strategies") or []
                if isinstance(item, dict) and item.get("strategy")
            ]
            results.append(
                {
                    "type": row.get("type"),
                    "total_occurrences": _as_int(row.get("total_occurrences")),
                    "overcome_rate": _as_float(row.get("overcome_rate")),
                    "handling_strategies": handling,
                }
            )
        return results

    def get_industry(self, industry: str) -> dict[str, Any] | None:
        rows = self._read("industry_insights", queries.GET_INDUSTRY, industry=industry)
        if not rows:
            return None
        row = rows[0]
        return {
            "name": row.get("name"),
            "success_rate": _as_float(row.get("success_rate")),
            "avg_qualification_score": row.get("avg_qualification_score"),
            "total_calls": _as_int(row.get("total_calls")),
            "successful_calls": _as_int(row.get("successful_calls")),
        }

    def find_industry_patterns(self, industry: str, *, min_success_rate: float, limit: int) -> list[dict[str, Any]]:
        rows = self._read(
            "conversation_patterns",
            queries.FIND_INDUSTRY_PATTERNS,
            industry=industry,
            min_success_rate=min_success_rate,
            limit=limit,
        )
        return [
            {
                "pattern_id": row.get("pattern_id"),
                "type": row.get("type"),
                "success_rate": _as_float(row.get("success_rate")),
                "features": _as_json_dict(row.get("features")),
                "usage_count": _as_int(row.get("usage_count")),
            }
            for row in rows
        ]

    def find_effective_signals(self, industry: str, *, limit: int) -> list[dict[str, Any]]:
        rows = self._read("effective_signals", queries.FIND_EFFECTIVE_SIGNALS, industry=industry, limit=limit)
        return [
            {
                "name": row.get("name"),
                "success_rate": _as_float(row.get("success_rate")),
                "appearances": _as_int(row.get("appearances")),
            }
            for row in rows
        ]

    def find_objection_frequency(self, industry: str, *, limit: int) -> list[dict[str, Any]]:
        rows = self._read("objection_frequency", queries.FIND_OBJECTION_FREQUENCY, industry=industry, limit=limit)
        return [
            {
                "type": row.get("type"),
                "total_occurrences": _as_int(row.get("total_occurrences")),
                "overcome_rate": _as_float(row.get("overcome_rate")),
                "frequency": _as_int(row.get("frequency")),
            }
            for row in rows
        ]

    # --- analytics rollups -------------------------------------------------

    def get_overall_stats(self) -> dict[str, Any]:
        rows = self._read("overall_stats", queries.OVERALL_STATS)
        row = rows[0] if rows else {}
        total = _as_int(row.get("total_conversations"))
        successful = _as_int(row.get("successful_conversations"))
        return {
            "total_conversations": total,
            "successful_conversations": successful,
            "success_rate": ratio(successful, total),
        }

    def get_top_industries(self, *, limit: int) -> list[dict[str, Any]]:
        rows = self._read("top_industries", queries.TOP_INDUSTRIES, limit=limit)
        return [
            {
                "industry": row.get("industry"),
                "success_rate": _as_float(row.get("success_rate")),
                "total_calls": _as_int(row.get("total_calls")),
                "avg_qualification_score": row.get("avg_qualification_score"),
            }
            for row in rows
        ]

    def get_top_buying_signals(self, *, min_occurrences: int, limit: int) -> list[dict[str, Any]]:
        rows = self._read(
            "top_buying_signals", queries.TOP_BUYING_SIGNALS, min_occurrences=min_occurrences, limit=limit
        )
        return [
            {
                "signal": row.get("signal"),
                "success_rate": _as_float(row.get("success_rate")),
                "occurrences": _as_int(row.get("occurrences")),
            }
            for row in rows
        ]

    def get_top_patterns(self, *, min_occurrences: int, limit: int) -> list[dict[str, Any]]:
        rows = self._read("top_patterns", queries.TOP_PATTERNS, min_occurrences=min_occurrences, limit=limit)
        return [
            {
                "pattern": row.get("pattern"),
                "pattern_id": row.get("pattern_id"),
                "success_rate": _as_float(row.get("success_rate")),
                "occurrences": _as_int(row.get("occurrences")),
            }
            for row in rows
        ]

    def get_common_objections(self, *, limit: int) -> list[dict[str, Any]]:
        rows = self._read("common_objections", queries.COMMON_OBJECTIONS, limit=limit)
        return [
            {
                "objection": row.get("objection"),
                "overcome_rate": _as_float(row.get("overcome_rate")),
                "occurrences": _as_int(row.get("occurrences")),
            }
            for row in rows
        ]

    def get_top_strategies(self, *, min_uses: int, limit: int) -> list[dict[str, Any]]:
        rows = self._read("top_strategies", queries.TOP_STRATEGIES, min_uses=min_uses, limit=limit)
        return [
            {
                "strategy_id": row.get("strategy_id"),
                "type": row.get("type"),
                "industry": row.get("industry"),
                "confidence": _as_float(row.get("confidence")),
                "success_count": _as_int(row.get("success_count")),
            }
            for row in rows
        ]

    def get_learning_progress(self, *, days: int) -> list[dict[str, Any]]:
        rows = self._read("learning_progress", queries.LEARNING_PROGRESS, days=days)
        return [
            {
                "date": str(row.get("date")),
                "total_calls": _as_int(row.get("total_calls")),
                "successful_calls": _as_int(row.get("successful_calls")),
                "success_rate": _as_float(row.get("success_rate")),
            }
            for row in rows
        ]

    def find_underperforming_industries(
        self, *, min_calls: int, max_success_rate: float, limit: int
    ) -> list[dict[str, Any]]:
        rows = self._read(
            "underperforming_industries",
            queries.UNDERPERFORMING_INDUSTRIES,
            min_calls=min_calls,
            max_success_rate=max_success_rate,
            limit=limit,
        )
        return [
            {
                "name": row.get("name"),
                "success_rate": _as_float(row.get("success_rate")),
                "total_calls": _as_int(row.get("total_calls")),
            }
            for row in rows
        ]

    def find_difficult_objections(
        self, *, min_occurrences: int, max_overcome_rate: float, limit: int
    ) -> list[dict[str, Any]]:
        rows = self._read(
            "difficult_objections",
            queries.DIFFICULT_OBJECTIONS,
            min_occurrences=min_occurrences,
            max_overcome_rate=max_overcome_rate,
            limit=limit,
        )
        return [
            {
                "type": row.get("type"),
                "overcome_rate": _as_float(row.get("overcome_rate")),
                "total_occurrences": _as_int(row.get("total_occurrences")),
            }
            for row in rows
        ]

    def find_low_confidence_strategies(
        self, *, min_uses: int, max_confidence: float, limit: int
    ) -> list[dict[str, Any]]:
        rows = self._read(
            "low_confidence_strategies",
            queries.LOW_CONFIDENCE_STRATEGIES,
            min_uses=min_uses,
            max_confidence=max_confidence,
            limit=limit,
        )
        return [
            {
                "strategy_id": row.get("strategy_id"),
                "type": row.get("type"),
                "confidence": _as_float(row.get("confidence")),
                "industry": row.get("industry"),
                "total_uses": _as_int(row.get("total_uses")),
            }
            for row in rows
        ]

    def find_proven_patterns(
        self, *, min_occurrences: int, min_success_rate: float, limit: int
    ) -> list[dict[str, Any]]:
        rows = self._read(
            "proven_patterns",
            queries.PROVEN_PATTERNS,
            min_occurrences=min_occurrences,
            min_success_rate=min_success_rate,
            limit=limit,
        )
        return [
            {
                "type": row.get("type"),
                "pattern_id": row.get("pattern_id"),
                "success_rate": _as_float(row.get("success_rate")),
                "occurrences": _as_int(row.get("occurrences")),
            }
            for row in rows
        ]

    def get_graph_counts(self) -> dict[str, dict[str, int]]:
        node_rows = self._read("node_counts", queries.NODE_COUNTS)
        rel_rows = self._read("relationship_counts", queries.RELATIONSHIP_COUNTS)
        return {
            "nodes": {str(row["label"]): _as_int(row.get("count")) for row in node_rows if row.get("label")},
            "relationships": {str(row["type"]): _as_int(row.get("count")) for row in rel_rows if row.get("type")},
        }

    def get_learning_velocity(self, *, since: datetime) -> dict[str, Any]:
        rows = self._read("learning_velocity", queries.LEARNING_VELOCITY, since=since.isoformat())
        row = rows[0] if rows else {}
        return {
            "avg_per_day": _as_float(row.get("avg_per_day")),
            "total_last_30_days": _as_int(row.get("total")),
        }

    # --- lifecycle ---------------------------------------------------------

    def apply_schema(self) -> list[str]:
        applied: list[str] = []
        with neo4j_session(self._driver, self._database) as session:
            for statement in SCHEMA_STATEMENTS:
                _session_run(session, statement).consume()
                applied.append(statement)
        logger.info("neo4j_schema_applied", extra={"statements": len(applied)})
        return applied

    def close(self) -> None:
        self._driver.close()

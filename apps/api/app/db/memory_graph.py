"""
In-process graph store.

Keeps the property graph in dictionaries guarded by one re-entrant lock, which
plays the role of the database's per-statement atomicity: each public method is
one "statement". Suitable for tests, local development and single-process
deployments; data is lost on restart.
"""

from __future__ import annotations

import json
import threading
from collections import Counter, defaultdict
from datetime import datetime, timezone
from typing import Any

from app.db.graph_store import NODE_LABELS, RELATIONSHIP_TYPES, GraphStore, ratio
from app.services.knowledge.models import PatternDescriptor
from app.services.knowledge.strategy_keys import StrategyKey


def _bump(node: dict[str, Any], *, total: str, hits: str, rate: str, hit: bool) -> None:
    node[total] = node.get(total, 0) + 1
    node[hits] = node.get(hits, 0) + (1 if hit else 0)
    node[rate] = ratio(node[hits], node[total])


def _features(value: Any) -> dict[str, Any]:
    if isinstance(value, dict):
        return value
    if isinstance(value, str) and value.strip():
        try:
            parsed = json.loads(value)
        except ValueError:
            return {}
        if isinstance(parsed, dict):
            return parsed
    return {}


def _utc_date(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).date().isoformat()


class InMemoryGraphStore(GraphStore):
    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._nodes: dict[str, dict[str, dict[str, Any]]] = {label: {} for label in NODE_LABELS}
        self._rels: dict[str, dict[tuple[str, str], dict[str, Any]]] = {rel: {} for rel in RELATIONSHIP_TYPES}

    def node(self, label: str, key: str) -> dict[str, Any] | None:
        with self._lock:
            found = self._nodes[label].get(key)
            return dict(found) if found is not None else None

    def relationship(self, rel_type: str, source: str, target: str) -> dict[str, Any] | None:
        with self._lock:
            found = self._rels[rel_type].get((source, target))
            return dict(found) if found is not None else None

    # --- ingestion upserts -------------------------------------------------

    def merge_lead(
        self, *, lead_id: str, industry: str, company_size: str | None, is_successful: bool, at: datetime
    ) -> None:
        with self._lock:
            lead = self._nodes["Lead"].get(lead_id)
            if lead is None:
                lead = {
                    "leadId": lead_id,
                    "industry": industry,
                    "companySize": company_size,
                    "firstSeenAt": at,
                }
                self._nodes["Lead"][lead_id] = lead
            _bump(lead, total="totalCalls", hits="successfulCalls", rate="successRate", hit=is_successful)
            lead["lastContactedAt"] = at

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
        with self._lock:
            self._nodes["Conversation"].setdefault(
                conversation_id,
                {
                    "conversationId": conversation_id,
                    "leadId": lead_id,
                    "outcome": outcome,
                    "qualificationScore": qualification_score,
                    "duration": duration,
                    "timestamp": at,
                    "isSuccessful": is_successful,
                },
            )
            self._rels["HAD_CONVERSATION"].setdefault((lead_id, conversation_id), {"timestamp": at})

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
        with self._lock:
            signal = self._nodes["BuyingSignal"].setdefault(name, {"name": name, "createdAt": at})
            _bump(signal, total="totalOccurrences", hits="successfulOccurrences", rate="successRate", hit=is_successful)
            signal["updatedAt"] = at
            self._rels["EXHIBITED_SIGNAL"][(conversation_id, name)] = {
                "confidence": confidence,
                "context": context,
                "timestamp": at,
            }

    def merge_objection(
        self,
        *,
        conversation_id: str,
        objection_type: str,
        handling_strategy: str | None,
        was_overcome: bool,
        at: datetime,
    ) -> None:
        with self._lock:
            objection = self._nodes["Objection"].setdefault(objection_type, {"type": objection_type, "createdAt": at})
            _bump(objection, total="totalOccurrences", hits="overcomeCount", rate="overcomeRate", hit=was_overcome)
            objection["updatedAt"] = at
            self._rels["HAD_OBJECTION"][(conversation_id, objection_type)] = {
                "handlingStrategy": handling_strategy,
                "wasOvercome": was_overcome,
                "timestamp": at,
            }
            if not (was_overcome and handling_strategy):
                return
            strategy = self._nodes["HandlingStrategy"].setdefault(
                handling_strategy, {"strategy": handling_strategy, "createdAt": at}
            )
            _bump(strategy, total="totalUses", hits="successCount", rate="successRate", hit=True)
            strategy["updatedAt"] = at
            overcome_by = self._rels["OVERCOME_BY"].setdefault((objection_type, handling_strategy), {"uses": 0})
            overcome_by["uses"] += 1

    def merge_conversation_pattern(
        self, *, conversation_id: str, pattern: PatternDescriptor, is_successful: bool, at: datetime
    ) -> None:
        with self._lock:
            node = self._nodes["ConversationPattern"].setdefault(
                pattern.pattern_id,
                {
                    "patternId": pattern.pattern_id,
                    "type": pattern.type,
                    "features": json.dumps(pattern.features, sort_keys=True),
                    "weight": pattern.weight,
                    "createdAt": at,
                },
            )
            _bump(node, total="totalOccurrences", hits="successfulOccurrences", rate="successRate", hit=is_successful)
            node["updatedAt"] = at
            self._rels["EXHIBITED_PATTERN"][(conversation_id, pattern.pattern_id)] = {"timestamp": at}

    def merge_industry(
        self,
        *,
        industry: str,
        company_size: str | None,
        is_successful: bool,
        qualification_score: float,
        at: datetime,
    ) -> None:
        with self._lock:
            node = self._nodes["Industry"].setdefault(
                industry, {"name": industry, "avgQualificationScore": 0.0, "createdAt": at}
            )
            _bump(node, total="totalCalls", hits="successfulCalls", rate="successRate", hit=is_successful)
            n = node["totalCalls"]
            node["avgQualificationScore"] = (node["avgQualificationScore"] * (n - 1) + float(qualification_score)) / n
            node["updatedAt"] = at
            if not company_size:
                return
            self._nodes["CompanySize"].setdefault(company_size, {"size": company_size})
            includes = self._rels["INCLUDES_SIZE"].setdefault((industry, company_size), {})
            _bump(includes, total="totalCalls", hits="successfulCalls", rate="successRate", hit=is_successful)

    def merge_strategy(
        self, *, conversation_id: str, strategy: StrategyKey, qualification_score: float, at: datetime
    ) -> None:
        with self._lock:
            members_key = "signals" if strategy.type == "buying-signals" else "objections"
            node = self._nodes["Strategy"].setdefault(
                strategy.strategy_id,
                {
                    "strategyId": strategy.strategy_id,
                    "type": strategy.type,
                    "industry": strategy.industry,
                    "companySize": strategy.company_size,
                    members_key: strategy.members,
                    "avgQualificationScore": 0.0,
                    "createdAt": at,
                },
            )
            _bump(node, total="totalUses", hits="successCount", rate="confidence", hit=True)
            n = node["totalUses"]
            node["avgQualificationScore"] = (node["avgQualificationScore"] * (n - 1) + float(qualification_score)) / n
            node["updatedAt"] = at
            self._rels["USED_STRATEGY"][(conversation_id, strategy.strategy_id)] = {"timestamp": at}

    # --- traversal helpers -------------------------------------------------

    def _industry_conversations(self, industry: str, *, successful_only: bool = False) -> set[str]:
        leads = self._nodes["Lead"]
        conversations = self._nodes["Conversation"]
        result: set[str] = set()
        for lead_id, conversation_id in self._rels["HAD_CONVERSATION"]:
            lead = leads.get(lead_id)
            conversation = conversations.get(conversation_id)
            if lead is None or conversation is None or lead.get("industry") != industry:
                continue
            if successful_only and conversation.get("isSuccessful") is not True:
                continue
            result.add(conversation_id)
        return result

    def _targets_from(self, rel_type: str, sources: set[str]) -> Counter:
        counts: Counter = Counter()
        for source, target in self._rels[rel_type]:
            if source in sources:
                counts[target] += 1
        return counts

    @staticmethod
    def _strategy_row(node: dict[str, Any]) -> dict[str, Any]:
        return {
            "strategy_id": node["strategyId"],
            "type": node["type"],
            "industry": node.get("industry"),
            "company_size": node.get("companySize"),
            "confidence": node["confidence"],
            "success_count": node["successCount"],
            "total_uses": node["totalUses"],
            "signals": node.get("signals"),
            "objections": node.get("objections"),
            "avg_qualification_score": node.get("avgQualificationScore"),
        }

    # --- recall reads ------------------------------------------------------

    def find_similar_leads(
        self, industry: str, *, min_success_rate: float, min_total_calls: int, limit: int
    ) -> list[dict[str, Any]]:
        with self._lock:
            conversations = self._nodes["Conversation"]
            successful_by_lead: Counter = Counter()
            for lead_id, conversation_id in self._rels["HAD_CONVERSATION"]:
                if conversations.get(conversation_id, {}).get("isSuccessful") is True:
                    successful_by_lead[lead_id] += 1
            rows = [
                {
                    "lead_id": lead["leadId"],
                    "success_rate": lead["successRate"],
                    "successful_conversations": successful_by_lead[lead["leadId"]],
                }
                for lead in self._nodes["Lead"].values()
                if lead.get("industry") == industry
                and lead["successRate"] > min_success_rate
                and lead["totalCalls"] >= min_total_calls
            ]
        rows.sort(key=lambda row: (-row["success_rate"], -row["successful_conversations"], row["lead_id"]))
        return rows[:limit]

    def find_strategies(
        self, industry: str, company_size: str | None, *, min_confidence: float, limit: int
    ) -> list[dict[str, Any]]:
        with self._lock:
            rows = [
                self._strategy_row(node)
                for node in self._nodes["Strategy"].values()
                if node.get("industry") == industry
                and (company_size is None or node.get("companySize") in (company_size, None))
                and node["confidence"] > min_confidence
            ]
        rows.sort(key=lambda row: (-row["confidence"], -row["success_count"], row["strategy_id"]))
        return rows[:limit]

    def find_industry_objections(
        self, industry: str, *, limit: int, strategies_per_objection: int
    ) -> list[dict[str, Any]]:
        with self._lock:
            conversation_ids = self._industry_conversations(industry)
            objection_types = set(self._targets_from("HAD_OBJECTION", conversation_ids))
            handling: dict[str, list[dict[str, Any]]] = defaultdict(list)
            for (objection_type, strategy_text), rel in self._rels["OVERCOME_BY"].items():
                if objection_type not in objection_types:
                    continue
                strategy = self._nodes["HandlingStrategy"].get(strategy_text, {})
                handling[objection_type].append(
                    {"strategy": strategy_text, "success_rate": strategy.get("successRate"), "uses": rel["uses"]}
                )
            rows = []
            for objection_type in objection_types:
                node = self._nodes["Objection"][objection_type]
                ranked = sorted(handling[objection_type], key=lambda item: (-item["uses"], item["strategy"]))
                rows.append(
                    {
                        "type": objection_type,
                        "total_occurrences": node["totalOccurrences"],
                        "overcome_rate": node["overcomeRate"],
                        "handling_strategies": ranked[:strategies_per_objection],
                    }
                )
        rows.sort(key=lambda row: (-row["total_occurrences"], row["type"]))
        return rows[:limit]

    def get_industry(self, industry: str) -> dict[str, Any] | None:
        with self._lock:
            node = self._nodes["Industry"].get(industry)
            if node is None:
                return None
            return {
                "name": node["name"],
                "success_rate": node["successRate"],
                "avg_qualification_score": node.get("avgQualificationScore"),
                "total_calls": node["totalCalls"],
                "successful_calls": node["successfulCalls"],
            }

    def find_industry_patterns(self, industry: str, *, min_success_rate: float, limit: int) -> list[dict[str, Any]]:
        with self._lock:
            conversation_ids = self._industry_conversations(industry, successful_only=True)
            usage = self._targets_from("EXHIBITED_PATTERN", conversation_ids)
            rows = []
            for pattern_id, usage_count in usage.items():
                node = self._nodes["ConversationPattern"][pattern_id]
                if node["successRate"] <= min_success_rate:
                    continue
                rows.append(
                    {
                        "pattern_id": pattern_id,
                        "type": node["type"],
                        "success_rate": node["successRate"],
                        "features": _features(node.get("features")),
                        "usage_count": usage_count,
                    }
                )
        rows.sort(key=lambda row: (-row["success_rate"], -row["usage_count"], row["pattern_id"]))
        return rows[:limit]

    def find_effective_signals(self, industry: str, *, limit: int) -> list[dict[str, Any]]:
        with self._lock:
            conversation_ids = self._industry_conversations(industry, successful_only=True)
            appearances = self._targets_from("EXHIBITED_SIGNAL", conversation_ids)
            rows = [
                {
                    "name": name,
                    "success_rate": self._nodes["BuyingSignal"][name]["successRate"],
                    "appearances": count,
                }
                for name, count in appearances.items()
            ]
        rows.sort(key=lambda row: (-row["success_rate"], -row["appearances"], row["name"]))
        return rows[:limit]

    def find_objection_frequency(self, industry: str, *, limit: int) -> list[dict[str, Any]]:
        with self._lock:
            conversation_ids = self._industry_conversations(industry)
            frequency = self._targets_from("HAD_OBJECTION", conversation_ids)
            rows = [
                {
                    "type": objection_type,
                    "total_occurrences": self._nodes["Objection"][objection_type]["totalOccurrences"],
                    "overcome_rate": self._nodes["Objection"][objection_type]["overcomeRate"],
                    "frequency": count,
                }
                for objection_type, count in frequency.items()
            ]
        rows.sort(key=lambda row: (-row["frequency"], row["type"]))
        return rows[:limit]

    # --- analytics rollups -------------------------------------------------

    def get_overall_stats(self) -> dict[str, Any]:
        with self._lock:
            conversations = list(self._nodes["Conversation"].values())
        total = len(conversations)
        successful = sum(1 for conversation in conversations if conversation.get("isSuccessful") is True)
        return {
            "total_conversations": total,
            "successful_conversations": successful,
            "success_rate": ratio(successful, total),
        }

    def get_top_industries(self, *, limit: int) -> list[dict[str, Any]]:
        with self._lock:
            rows = [
                {
                    "industry": node["name"],
                    "success_rate": node["successRate"],
                    "total_calls": node["totalCalls"],
                    "avg_qualification_score": node.get("avgQualificationScore"),
                }
                for node in self._nodes["Industry"].values()
            ]
        rows.sort(key=lambda row: (-row["success_rate"], row["industry"]))
        return rows[:limit]

    def get_top_buying_signals(self, *, min_occurrences: int, limit: int) -> list[dict[str, Any]]:
        with self._lock:
            rows = [
                {"signal": node["name"], "success_rate": node["successRate"], "occurrences": node["totalOccurrences"]}
                for node in self._nodes["BuyingSignal"].values()
                if node["totalOccurrences"] >= min_occurrences
            ]
        rows.sort(key=lambda row: (-row["success_rate"], row["signal"]))
        return rows[:limit]

    def get_top_patterns(self, *, min_occurrences: int, limit: int) -> list[dict[str, Any]]:
        with self._lock:
            rows = [
                {
                    "pattern": node["type"],
                    "pattern_id": node["patternId"],
                    "success_rate": node["successRate"],
                    "occurrences": node["totalOccurrences"],
                }
                for node in self._nodes["ConversationPattern"].values()
                if node["totalOccurrences"] >= min_occurrences
            ]
        rows.sort(key=lambda row: (-row["success_rate"], row["pattern_id"]))
        return rows[:limit]

    def get_common_objections(self, *, limit: int) -> list[dict[str, Any]]:
        with self._lock:
            rows = [
                {"objection": node["type"], "overcome_rate": node["overcomeRate"], "occurrences": node["totalOccurrences"]}
                for node in self._nodes["Objection"].values()
            ]
        rows.sort(key=lambda row: (-row["occurrences"], row["objection"]))
        return rows[:limit]

    def get_top_strategies(self, *, min_uses: int, limit: int) -> list[dict[str, Any]]:
        with self._lock:
            rows = [
                {
                    "strategy_id": node["strategyId"],
                    "type": node["type"],
                    "industry": node.get("industry"),
                    "confidence": node["confidence"],
                    "success_count": node["successCount"],
                }
                for node in self._nodes["Strategy"].values()
                if node["totalUses"] >= min_uses
            ]
        rows.sort(key=lambda row: (-row["confidence"], row["strategy_id"]))
        return rows[:limit]

    def get_learning_progress(self, *, days: int) -> list[dict[str, Any]]:
        totals: Counter = Counter()
        successes: Counter = Counter()
        with self._lock:
            for conversation in self._nodes["Conversation"].values():
                day = _utc_date(conversation["timestamp"])
                totals[day] += 1
                if conversation.get("isSuccessful") is True:
                    successes[day] += 1
        return [
            {
                "date": day,
                "total_calls": totals[day],
                "successful_calls": successes[day],
                "success_rate": ratio(successes[day], totals[day]),
            }
            for day in sorted(totals, reverse=True)[:days]
        ]

    def find_underperforming_industries(
        self, *, min_calls: int, max_success_rate: float, limit: int
    ) -> list[dict[str, Any]]:
        with self._lock:
            rows = [
                {"name": node["name"], "success_rate": node["successRate"], "total_calls": node["totalCalls"]}
                for node in self._nodes["Industry"].values()
                if node["totalCalls"] >= min_calls and node["successRate"] < max_success_rate
            ]
        rows.sort(key=lambda row: (row["success_rate"], row["name"]))
        return rows[:limit]

    def find_difficult_objections(
        self, *, min_occurrences: int, max_overcome_rate: float, limit: int
    ) -> list[dict[str, Any]]:
        with self._lock:
            rows = [
                {"type": node["type"], "overcome_rate": node["overcomeRate"], "total_occurrences": node["totalOccurrences"]}
                for node in self._nodes["Objection"].values()
                if node["totalOccurrences"] >= min_occurrences and node["overcomeRate"] < max_overcome_rate
            ]
        rows.sort(key=lambda row: (-row["total_occurrences"], row["type"]))
        return rows[:limit]

    def find_low_confidence_strategies(
        self, *, min_uses: int, max_confidence: float, limit: int
    ) -> list[dict[str, Any]]:
        with self._lock:
            rows = [
                {
                    "strategy_id": node["strategyId"],
                    "type": node["type"],
                    "confidence": node["confidence"],
                    "industry": node.get("industry"),
                    "total_uses": node["totalUses"],
                }
                for node in self._nodes["Strategy"].values()
                if node["totalUses"] >= min_uses and node["confidence"] < max_confidence
            ]
        rows.sort(key=lambda row: (-row["total_uses"], row["strategy_id"]))
        return rows[:limit]

    def find_proven_patterns(
        self, *, min_occurrences: int, min_success_rate: float, limit: int
    ) -> list[dict[str, Any]]:
        with self._lock:
            rows = [
                {
                    "type": node["type"],
                    "pattern_id": node["patternId"],
                    "success_rate": node["successRate"],
                    "occurrences": node["totalOccurrences"],
                }
                for node in self._nodes["ConversationPattern"].values()
                if node["totalOccurrences"] >= min_occurrences and node["successRate"] > min_success_rate
            ]
        rows.sort(key=lambda row: (-row["success_rate"], row["pattern_id"]))
        return rows[:limit]

    def get_graph_counts(self) -> dict[str, dict[str, int]]:
        with self._lock:
            nodes = {label: len(items) for label, items in self._nodes.items() if items}
            relationships = {rel: len(items) for rel, items in self._rels.items() if items}
        return {"nodes": nodes, "relationships": relationships}

    def get_learning_velocity(self, *, since: datetime) -> dict[str, Any]:
        per_day: Counter = Counter()
        with self._lock:
            for conversation in self._nodes["Conversation"].values():
                timestamp = conversation["timestamp"]
                if timestamp.tzinfo is None:
                    timestamp = timestamp.replace(tzinfo=timezone.utc)
                if timestamp >= since:
                    per_day[_utc_date(timestamp)] += 1
        total = sum(per_day.values())
        return {"avg_per_day": ratio(total, len(per_day)), "total_last_30_days": total}

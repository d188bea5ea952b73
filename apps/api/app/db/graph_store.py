"""
Graph store adapter contract.

Every write is a single atomic upsert: counters are read, incremented and their
derived rates recomputed inside one store-level operation, so concurrent
ingestions touching the same aggregate node never lose an update. Reads return
plain dict rows with snake_case keys; both backends must produce identical
shapes and orderings.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any

from app.services.knowledge.models import PatternDescriptor
from app.services.knowledge.strategy_keys import StrategyKey

NODE_LABELS = (
    "Lead",
    "Conversation",
    "BuyingSignal",
    "Objection",
    "HandlingStrategy",
    "ConversationPattern",
    "Industry",
    "CompanySize",
    "Strategy",
)
RELATIONSHIP_TYPES = (
    "HAD_CONVERSATION",
    "EXHIBITED_SIGNAL",
    "HAD_OBJECTION",
    "OVERCOME_BY",
    "EXHIBITED_PATTERN",
    "INCLUDES_SIZE",
    "USED_STRATEGY",
)


class GraphStore(ABC):
    # --- ingestion upserts -------------------------------------------------

    @abstractmethod
    def merge_lead(
        self,
        *,
        lead_id: str,
        industry: str,
        company_size: str | None,
        is_successful: bool,
        at: datetime,
    ) -> None: ...

    @abstractmethod
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
        """Create the Conversation once and link it to its Lead; an existing node is left untouched."""

    @abstractmethod
    def merge_buying_signal(
        self,
        *,
        conversation_id: str,
        name: str,
        confidence: float | None,
        context: str | None,
        is_successful: bool,
        at: datetime,
    ) -> None: ...

    @abstractmethod
    def merge_objection(
        self,
        *,
        conversation_id: str,
        objection_type: str,
        handling_strategy: str | None,
        was_overcome: bool,
        at: datetime,
    ) -> None: ...

    @abstractmethod
    def merge_conversation_pattern(
        self,
        *,
        conversation_id: str,
        pattern: PatternDescriptor,
        is_successful: bool,
        at: datetime,
    ) -> None: ...

    @abstractmethod
    def merge_industry(
        self,
        *,
        industry: str,
        company_size: str | None,
        is_successful: bool,
        qualification_score: float,
        at: datetime,
    ) -> None: ...

    @abstractmethod
    def merge_strategy(
        self,
        *,
        conversation_id: str,
        strategy: StrategyKey,
        qualification_score: float,
        at: datetime,
    ) -> None: ...

    # --- recall reads ------------------------------------------------------

    @abstractmethod
    def find_similar_leads(
        self, industry: str, *, min_success_rate: float, min_total_calls: int, limit: int
    ) -> list[dict[str, Any]]: ...

    @abstractmethod
    def find_strategies(
        self, industry: str, company_size: str | None, *, min_confidence: float, limit: int
    ) -> list[dict[str, Any]]:
        """Strategies for an industry; with a company size, only that size or size-agnostic ones."""

    @abstractmethod
    def find_industry_objections(
        self, industry: str, *, limit: int, strategies_per_objection: int
    ) -> list[dict[str, Any]]: ...

    @abstractmethod
    def get_industry(self, industry: str) -> dict[str, Any] | None: ...

    @abstractmethod
    def find_industry_patterns(self, industry: str, *, min_success_rate: float, limit: int) -> list[dict[str, Any]]: ...

    @abstractmethod
    def find_effective_signals(self, industry: str, *, limit: int) -> list[dict[str, Any]]: ...

    @abstractmethod
    def find_objection_frequency(self, industry: str, *, limit: int) -> list[dict[str, Any]]: ...

    # --- analytics rollups -------------------------------------------------

    @abstractmethod
    def get_overall_stats(self) -> dict[str, Any]: ...

    @abstractmethod
    def get_top_industries(self, *, limit: int) -> list[dict[str, Any]]: ...

    @abstractmethod
    def get_top_buying_signals(self, *, min_occurrences: int, limit: int) -> list[dict[str, Any]]: ...

    @abstractmethod
    def get_top_patterns(self, *, min_occurrences: int, limit: int) -> list[dict[str, Any]]: ...

    @abstractmethod
    def get_common_objections(self, *, limit: int) -> list[dict[str, Any]]: ...

    @abstractmethod
    def get_top_strategies(self, *, min_uses: int, limit: int) -> list[dict[str, Any]]: ...

    @abstractmethod
    def get_learning_progress(self, *, days: int) -> list[dict[str, Any]]: ...

    @abstractmethod
    def find_underperforming_industries(
        self, *, min_calls: int, max_success_rate: float, limit: int
    ) -> list[dict[str, Any]]: ...

    @abstractmethod
    def find_difficult_objections(
        self, *, min_occurrences: int, max_overcome_rate: float, limit: int
    ) -> list[dict[str, Any]]: ...

    @abstractmethod
    def find_low_confidence_strategies(
        self, *, min_uses: int, max_confidence: float, limit: int
    ) -> list[dict[str, Any]]: ...

    @abstractmethod
    def find_proven_patterns(
        self, *, min_occurrences: int, min_success_rate: float, limit: int
    ) -> list[dict[str, Any]]: ...

    @abstractmethod
    def get_graph_counts(self) -> dict[str, dict[str, int]]:
        """{"nodes": {label: count}, "relationships": {type: count}}"""

    @abstractmethod
    def get_learning_velocity(self, *, since: datetime) -> dict[str, Any]: ...

    # --- lifecycle ---------------------------------------------------------

    def apply_schema(self) -> list[str]:
        return []

    def close(self) -> None:
        return None


def ratio(numerator: float, denominator: float) -> float:
    if not denominator:
        return 0.0
    return float(numerator) / float(denominator)

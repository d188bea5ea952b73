from __future__ import annotations

import re
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Literal

from app.services.knowledge.models import CallOutcome

StrategyType = Literal["buying-signals", "objection-handling"]

_WHITESPACE_RE = re.compile(r"\s+")
_KEY_PREFIX: dict[str, str] = {
    "buying-signals": "signals",
    "objection-handling": "objection-handling",
}


@dataclass(frozen=True)
class StrategyKey:
    strategy_id: str
    type: StrategyType
    industry: str
    company_size: str | None
    # Comma-joined signal or objection types, stored on the Strategy node.
    members: str


def join_members(types: Sequence[str], *, sort_types: bool = False) -> str:
    # Input order is significant unless sort_types is set: "a,b" and "b,a" are different strategies.
    ordered = sorted(types) if sort_types else list(types)
    return ",".join(ordered)


def strategy_id(strategy_type: StrategyType, industry: str, members: str) -> str:
    raw = f"{_KEY_PREFIX[strategy_type]}-{industry}-{members}"
    return _WHITESPACE_RE.sub("-", raw).lower()


def buying_signal_strategy_key(call: CallOutcome, *, sort_types: bool = False) -> StrategyKey | None:
    types = [signal.type for signal in call.buying_signals]
    if not types:
        return None
    members = join_members(types, sort_types=sort_types)
    return StrategyKey(
        strategy_id=strategy_id("buying-signals", call.industry, members),
        type="buying-signals",
        industry=call.industry,
        company_size=call.company_size,
        members=members,
    )


def objection_strategy_key(call: CallOutcome, *, sort_types: bool = False) -> StrategyKey | None:
    types = [objection.type for objection in call.objections if objection.was_overcome]
    if not types:
        return None
    members = join_members(types, sort_types=sort_types)
    return StrategyKey(
        strategy_id=strategy_id("objection-handling", call.industry, members),
        type="objection-handling",
        industry=call.industry,
        company_size=None,
        members=members,
    )

from __future__ import annotations

from app.services.knowledge.models import CallOutcome
from app.services.knowledge.strategy_keys import (
    buying_signal_strategy_key,
    join_members,
    objection_strategy_key,
    strategy_id,
)


def _call(**overrides) -> CallOutcome:
    payload = {
        "leadId": "L1",
        "conversationId": "C1",
        "industry": "Financial Services",
        "outcome": "qualified",
        "qualificationScore": 90,
        "companySize": "50-200",
    }
    payload.update(overrides)
    return CallOutcome.model_validate(payload)


def test_strategy_id_replaces_whitespace_and_lowercases() -> None:
    assert strategy_id("buying-signals", "Financial  Services", "Price Inquiry,timeline") == (
        "signals-financial-services-price-inquiry,timeline"
    )


def test_signal_key_is_order_sensitive_by_default() -> None:
    first = buying_signal_strategy_key(_call(buyingSignals=[{"type": "b"}, {"type": "a"}]))
    second = buying_signal_strategy_key(_call(buyingSignals=[{"type": "a"}, {"type": "b"}]))

    assert first is not None and second is not None
    assert first.strategy_id == "signals-financial-services-b,a"
    assert second.strategy_id == "signals-financial-services-a,b"
    assert first.members == "b,a"
    assert first.company_size == "50-200"


def test_signal_key_sorted_variant_collapses_permutations() -> None:
    first = buying_signal_strategy_key(_call(buyingSignals=[{"type": "b"}, {"type": "a"}]), sort_types=True)
    second = buying_signal_strategy_key(_call(buyingSignals=[{"type": "a"}, {"type": "b"}]), sort_types=True)

    assert first == second
    assert join_members(["z", "a"], sort_types=True) == "a,z"


def test_objection_key_uses_only_overcome_objections() -> None:
    call = _call(
        objections=[
            {"type": "too_busy", "wasOvercome": True, "handlingStrategy": "offer flexible schedule"},
            {"type": "price", "wasOvercome": False},
        ]
    )

    key = objection_strategy_key(call)

    assert key is not None
    assert key.strategy_id == "objection-handling-financial-services-too_busy"
    assert key.type == "objection-handling"
    assert key.company_size is None


def test_no_key_without_members() -> None:
    assert buying_signal_strategy_key(_call()) is None
    assert objection_strategy_key(_call(objections=[{"type": "price", "wasOvercome": False}])) is None

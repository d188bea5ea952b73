from __future__ import annotations

import pytest

from app.services.knowledge.errors import ValidationError
from app.services.knowledge.models import is_successful_outcome, parse_call_outcome, parse_lead_context


def test_parse_call_outcome_accepts_camel_and_snake_case() -> None:
    camel = parse_call_outcome(
        {
            "leadId": "L1",
            "conversationId": "C1",
            "industry": " fintech ",
            "qualificationScore": 85,
            "buyingSignals": [{"type": "price_inquiry", "confidence": 0.9}],
            "engagementMetrics": {"talkRatio": 0.5},
        }
    )
    snake = parse_call_outcome({"lead_id": "L1", "conversation_id": "C1", "industry": "fintech"})

    assert camel.industry == "fintech"
    assert camel.buying_signals[0].type == "price_inquiry"
    assert camel.engagement_metrics is not None and camel.engagement_metrics.talk_ratio == 0.5
    assert snake.transcript == ""
    assert snake.outcome == "unknown"
    assert snake.buying_signals == []


def test_parse_call_outcome_defaults_null_fields() -> None:
    call = parse_call_outcome(
        {
            "leadId": "L1",
            "conversationId": "C1",
            "industry": "fintech",
            "transcript": None,
            "outcome": None,
            "objections": None,
            "companySize": "  ",
        }
    )

    assert call.transcript == ""
    assert call.outcome == "unknown"
    assert call.objections == []
    assert call.company_size is None


@pytest.mark.parametrize(
    "payload",
    [
        {"conversationId": "C1", "industry": "fintech"},
        {"leadId": "L1", "conversationId": "C1", "industry": "   "},
        {"leadId": "L1", "conversationId": "C1", "industry": "fintech", "qualificationScore": 101},
        {"leadId": "L1", "conversationId": "C1", "industry": "fintech", "buyingSignals": [{"confidence": 1}]},
        {"leadId": "L1", "conversationId": "C1", "industry": "fintech", "engagementMetrics": {"talkRatio": 1.5}},
    ],
)
def test_parse_call_outcome_rejects_malformed_payloads(payload: dict) -> None:
    with pytest.raises(ValidationError) as excinfo:
        parse_call_outcome(payload)
    assert excinfo.value.errors


def test_parse_rejects_non_mapping() -> None:
    with pytest.raises(ValidationError):
        parse_call_outcome(["not", "a", "mapping"])  # type: ignore[arg-type]


def test_parse_lead_context_drops_blank_interactions() -> None:
    lead = parse_lead_context(
        {"leadId": "N1", "industry": "fintech", "previousInteractions": ["asked about pricing", " ", ""]}
    )
    assert lead.previous_interactions == ["asked about pricing"]
    assert lead.company_size is None


@pytest.mark.parametrize(
    ("outcome", "score", "expected"),
    [
        ("qualified", 0, True),
        ("not_interested", 70, True),
        ("not_interested", 69.9, False),
        ("unknown", 0, False),
    ],
)
def test_is_successful_outcome(outcome: str, score: float, expected: bool) -> None:
    assert is_successful_outcome(outcome, score) is expected

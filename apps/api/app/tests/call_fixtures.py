"""Three fintech calls for one lead: two successful, one lost."""

from __future__ import annotations

CALL_A = {
    "leadId": "L1",
    "conversationId": "A",
    "industry": "fintech",
    "transcript": "Can you share pricing?",
    "outcome": "qualified",
    "qualificationScore": 85,
    "buyingSignals": [{"type": "price_inquiry", "confidence": 0.9, "context": "asked for a quote"}],
    "engagementMetrics": {"talkRatio": 0.3},
}
CALL_B = {
    "leadId": "L1",
    "conversationId": "B",
    "industry": "fintech",
    "outcome": "qualified",
    "qualificationScore": 78,
    "objections": [{"type": "too_busy", "wasOvercome": True, "handlingStrategy": "offer flexible schedule"}],
}
CALL_C = {
    "leadId": "L1",
    "conversationId": "C",
    "industry": "fintech",
    "outcome": "not_interested",
    "qualificationScore": 20,
}

from __future__ import annotations

import pytest

from app.services.knowledge.models import EngagementMetrics
from app.services.knowledge.patterns import extract_patterns, response_time_bucket, talk_ratio_bucket


def test_extract_patterns_full_metrics() -> None:
    metrics = EngagementMetrics(
        talk_ratio=0.45,
        phases={"discovery": 3, "pitch": 2},
        avg_response_time=1.5,
        interruptions=4,
    )

    patterns = extract_patterns("What is your budget? When do you start? Who signs?", metrics)

    by_id = {pattern.pattern_id: pattern for pattern in patterns}
    assert list(by_id) == [
        "talk-ratio-balanced-conversation",
        "questions-3",
        "engagement-phases-2",
        "response-time-quick-response",
        "interruptions-4",
    ]
    assert by_id["talk-ratio-balanced-conversation"].weight == pytest.approx(0.3)
    assert by_id["questions-3"].type == "question-engagement"
    assert by_id["questions-3"].features == {"questionCount": 3}
    assert by_id["engagement-phases-2"].type == "multi-phase-engagement"
    assert by_id["engagement-phases-2"].weight == pytest.approx(0.25)
    assert by_id["response-time-quick-response"].weight == pytest.approx(0.15)
    assert by_id["interruptions-4"].type == "high-interruption"
    assert by_id["interruptions-4"].weight == pytest.approx(0.1)


def test_extract_patterns_missing_inputs_only_suppress_their_pattern() -> None:
    assert extract_patterns("", None) == []
    assert extract_patterns(None, None) == []

    only_interruptions = extract_patterns("No questions here.", EngagementMetrics(interruptions=0))
    assert [pattern.pattern_id for pattern in only_interruptions] == ["interruptions-0"]
    assert only_interruptions[0].type == "low-interruption"


def test_empty_phase_map_still_counts_as_multi_phase() -> None:
    patterns = extract_patterns("", EngagementMetrics(phases={}))
    assert [pattern.pattern_id for pattern in patterns] == ["engagement-phases-0"]


@pytest.mark.parametrize(
    ("talk_ratio", "expected"),
    [
        (0.61, "agent-dominated"),
        (0.6, "balanced-conversation"),
        (0.4, "balanced-conversation"),
        (0.39, "lead-dominated"),
    ],
)
def test_talk_ratio_thresholds(talk_ratio: float, expected: str) -> None:
    assert talk_ratio_bucket(talk_ratio) == expected


@pytest.mark.parametrize(
    ("seconds", "expected"),
    [
        (1.99, "quick-response"),
        (2.0, "normal-response"),
        (5.0, "normal-response"),
        (5.01, "slow-response"),
    ],
)
def test_response_time_thresholds(seconds: float, expected: str) -> None:
    assert response_time_bucket(seconds) == expected

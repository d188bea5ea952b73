from __future__ import annotations

from app.services.knowledge.models import EngagementMetrics, PatternDescriptor

TALK_RATIO_WEIGHT = 0.3
QUESTION_WEIGHT = 0.2
PHASES_WEIGHT = 0.25
RESPONSE_TIME_WEIGHT = 0.15
INTERRUPTION_WEIGHT = 0.1

AGENT_DOMINATED_ABOVE = 0.6
LEAD_DOMINATED_BELOW = 0.4
QUICK_RESPONSE_BELOW = 2.0
SLOW_RESPONSE_ABOVE = 5.0
HIGH_INTERRUPTION_ABOVE = 3


def talk_ratio_bucket(talk_ratio: float) -> str:
    if talk_ratio > AGENT_DOMINATED_ABOVE:
        return "agent-dominated"
    if talk_ratio < LEAD_DOMINATED_BELOW:
        return "lead-dominated"
    return "balanced-conversation"


def response_time_bucket(avg_response_time: float) -> str:
    if avg_response_time < QUICK_RESPONSE_BELOW:
        return "quick-response"
    if avg_response_time > SLOW_RESPONSE_ABOVE:
        return "slow-response"
    return "normal-response"


def interruption_bucket(interruptions: int) -> str:
    return "high-interruption" if interruptions > HIGH_INTERRUPTION_ABOVE else "low-interruption"


def extract_patterns(transcript: str | None, engagement_metrics: EngagementMetrics | None) -> list[PatternDescriptor]:
    """
    Derive structural conversation patterns from a transcript and its engagement metrics.

    Pure and total: an absent input only suppresses the pattern that depends on it.
    Pattern ids combine the pattern family with its bucket (or raw count), so calls
    landing in the same bucket accumulate on the same ConversationPattern node.
    """
    patterns: list[PatternDescriptor] = []
    metrics = engagement_metrics or EngagementMetrics()

    if metrics.talk_ratio is not None:
        bucket = talk_ratio_bucket(metrics.talk_ratio)
        patterns.append(
            PatternDescriptor(
                pattern_id=f"talk-ratio-{bucket}",
                type=bucket,
                features={"talkRatio": metrics.talk_ratio},
                weight=TALK_RATIO_WEIGHT,
            )
        )

    question_count = (transcript or "").count("?")
    if question_count > 0:
        patterns.append(
            PatternDescriptor(
                pattern_id=f"questions-{question_count}",
                type="question-engagement",
                features={"questionCount": question_count},
                weight=QUESTION_WEIGHT,
            )
        )

    if metrics.phases is not None:
        patterns.append(
            PatternDescriptor(
                pattern_id=f"engagement-phases-{len(metrics.phases)}",
                type="multi-phase-engagement",
                features={"phases": metrics.phases},
                weight=PHASES_WEIGHT,
            )
        )

    if metrics.avg_response_time is not None:
        bucket = response_time_bucket(metrics.avg_response_time)
        patterns.append(
            PatternDescriptor(
                pattern_id=f"response-time-{bucket}",
                type=bucket,
                features={"avgResponseTime": metrics.avg_response_time},
                weight=RESPONSE_TIME_WEIGHT,
            )
        )

    if metrics.interruptions is not None:
        patterns.append(
            PatternDescriptor(
                pattern_id=f"interruptions-{metrics.interruptions}",
                type=interruption_bucket(metrics.interruptions),
                features={"interruptions": metrics.interruptions},
                weight=INTERRUPTION_WEIGHT,
            )
        )

    return patterns

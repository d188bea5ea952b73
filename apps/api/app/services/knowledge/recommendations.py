from __future__ import annotations

from app.services.knowledge.models import Knowledge, Recommendation

TOP_NAMES = 3


def _percent(rate: float, digits: int) -> str:
    return f"{rate * 100:.{digits}f}"


def synthesize_recommendations(knowledge: Knowledge) -> list[Recommendation]:
    """Turn retrieved knowledge into recommendations, always in the same type order."""
    recommendations: list[Recommendation] = []

    insights = knowledge.industry_insights
    if insights is not None and insights.success_rate:
        avg_score = (
            f"{insights.avg_qualification_score:.1f}" if insights.avg_qualification_score is not None else "N/A"
        )
        recommendations.append(
            Recommendation(
                type="industry-insight",
                priority="medium",
                message=(
                    f"Industry success rate: {_percent(insights.success_rate, 1)}%. "
                    f"Average qualification score: {avg_score}"
                ),
                data=insights.model_dump(by_alias=True),
            )
        )

    if knowledge.successful_strategies:
        top = knowledge.successful_strategies[0]
        message = f"Use {top.type} strategy with {_percent(top.confidence, 0)}% confidence."
        if top.signals:
            message += f" Focus on signals: {top.signals}"
        recommendations.append(
            Recommendation(
                type="strategy",
                priority="high",
                message=message,
                data=top.model_dump(by_alias=True),
            )
        )

    if knowledge.relevant_objections:
        names = ", ".join(objection.type for objection in knowledge.relevant_objections[:TOP_NAMES])
        recommendations.append(
            Recommendation(
                type="objection-prep",
                priority="high",
                message=f"Prepare for common objections: {names}",
                data=[objection.model_dump(by_alias=True) for objection in knowledge.relevant_objections],
            )
        )

    if knowledge.conversation_patterns:
        top_pattern = knowledge.conversation_patterns[0]
        recommendations.append(
            Recommendation(
                type="conversation-pattern",
                priority="medium",
                message=f"Successful pattern: {top_pattern.type} with {_percent(top_pattern.success_rate, 0)}% success rate",
                data=top_pattern.model_dump(by_alias=True),
            )
        )

    if knowledge.effective_signals:
        names = ", ".join(signal.name for signal in knowledge.effective_signals[:TOP_NAMES])
        recommendations.append(
            Recommendation(
                type="buying-signals",
                priority="high",
                message=f"Watch for these effective buying signals: {names}",
                data=[signal.model_dump(by_alias=True) for signal in knowledge.effective_signals],
            )
        )

    if knowledge.semantic_results:
        recommendations.append(
            Recommendation(
                type="similar-conversations",
                priority="medium",
                message=f"Found {len(knowledge.semantic_results)} similar successful conversations for reference",
                data=[match.model_dump(by_alias=True) for match in knowledge.semantic_results],
            )
        )

    return recommendations

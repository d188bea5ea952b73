from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Literal, TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator
from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel

from app.services.knowledge.errors import ValidationError

QUALIFIED_OUTCOME = "qualified"


class CamelModel(BaseModel):
    """Accepts camelCase (wire) or snake_case (python) keys, dumps camelCase by alias."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def _required_text(value: Any) -> Any:
    if isinstance(value, str):
        value = value.strip()
        if not value:
            raise ValueError("must not be blank")
    return value


def _optional_text(value: Any) -> Any:
    if isinstance(value, str):
        value = value.strip()
        return value or None
    return value


class BuyingSignalObservation(CamelModel):
    type: str
    confidence: float | None = None
    context: str | None = None

    @field_validator("type", mode="before")
    @classmethod
    def _check_type(cls, value: Any) -> Any:
        return _required_text(value)


class ObjectionObservation(CamelModel):
    type: str
    handling_strategy: str | None = None
    was_overcome: bool = False

    @field_validator("type", mode="before")
    @classmethod
    def _check_type(cls, value: Any) -> Any:
        return _required_text(value)

    @field_validator("handling_strategy", mode="before")
    @classmethod
    def _check_strategy(cls, value: Any) -> Any:
        return _optional_text(value)


class EngagementMetrics(CamelModel):
    talk_ratio: float | None = Field(default=None, ge=0.0, le=1.0)
    phases: dict[str, Any] | None = None
    avg_response_time: float | None = Field(default=None, ge=0.0)
    interruptions: int | None = Field(default=None, ge=0)


class CallOutcome(CamelModel):
    lead_id: str
    conversation_id: str
    industry: str
    transcript: str = ""
    outcome: str = "unknown"
    qualification_score: float = Field(default=0.0, ge=0.0, le=100.0)
    buying_signals: list[BuyingSignalObservation] = Field(default_factory=list)
    objections: list[ObjectionObservation] = Field(default_factory=list)
    duration: float = Field(default=0.0, ge=0.0)
    company_size: str | None = None
    engagement_metrics: EngagementMetrics | None = None

    @field_validator("lead_id", "conversation_id", "industry", mode="before")
    @classmethod
    def _check_ids(cls, value: Any) -> Any:
        return _required_text(value)

    @field_validator("company_size", mode="before")
    @classmethod
    def _check_size(cls, value: Any) -> Any:
        return _optional_text(value)

    @field_validator("transcript", "outcome", mode="before")
    @classmethod
    def _none_to_default(cls, value: Any, info: ValidationInfo) -> Any:
        if value is None:
            return "" if info.field_name == "transcript" else "unknown"
        return value

    @field_validator("buying_signals", "objections", mode="before")
    @classmethod
    def _none_to_empty(cls, value: Any) -> Any:
        return [] if value is None else value


class LeadContext(CamelModel):
    lead_id: str
    industry: str
    company_size: str | None = None
    known_objections: list[str] = Field(default_factory=list)
    previous_interactions: list[str] = Field(default_factory=list)

    @field_validator("lead_id", "industry", mode="before")
    @classmethod
    def _check_ids(cls, value: Any) -> Any:
        return _required_text(value)

    @field_validator("company_size", mode="before")
    @classmethod
    def _check_size(cls, value: Any) -> Any:
        return _optional_text(value)

    @field_validator("previous_interactions", mode="after")
    @classmethod
    def _drop_blank_interactions(cls, value: list[str]) -> list[str]:
        return [item for item in value if item and item.strip()]


class PatternDescriptor(CamelModel):
    pattern_id: str
    type: str
    features: dict[str, Any] = Field(default_factory=dict)
    weight: float


class LearnResult(CamelModel):
    conversation_id: str
    is_successful: bool
    patterns: int = 0
    strategies: list[str] = Field(default_factory=list)
    vector_stored: bool = False


class SimilarLead(CamelModel):
    lead_id: str
    success_rate: float
    successful_conversations: int


class StrategySummary(CamelModel):
    strategy_id: str
    type: str
    industry: str | None = None
    company_size: str | None = None
    confidence: float
    success_count: int
    total_uses: int | None = None
    signals: str | None = None
    objections: str | None = None
    avg_qualification_score: float | None = None


class HandlingStrategyUse(CamelModel):
    strategy: str
    success_rate: float | None = None
    uses: int | None = None


class ObjectionInsight(CamelModel):
    type: str
    total_occurrences: int
    overcome_rate: float
    handling_strategies: list[HandlingStrategyUse] = Field(default_factory=list)


class IndustryInsights(CamelModel):
    success_rate: float
    avg_qualification_score: float | None = None
    total_calls: int


class PatternInsight(CamelModel):
    pattern_id: str
    type: str
    success_rate: float
    features: dict[str, Any] = Field(default_factory=dict)
    usage_count: int


class EffectiveSignal(CamelModel):
    name: str
    success_rate: float
    appearances: int


class SemanticMatch(CamelModel):
    conversation_id: str
    similarity: float
    metadata: dict[str, Any] = Field(default_factory=dict)


class Recommendation(CamelModel):
    type: str
    priority: Literal["high", "medium"]
    message: str
    data: Any = None


class Knowledge(CamelModel):
    lead_id: str
    similar_leads: list[SimilarLead] = Field(default_factory=list)
    successful_strategies: list[StrategySummary] = Field(default_factory=list)
    relevant_objections: list[ObjectionInsight] = Field(default_factory=list)
    industry_insights: IndustryInsights | None = None
    conversation_patterns: list[PatternInsight] = Field(default_factory=list)
    effective_signals: list[EffectiveSignal] = Field(default_factory=list)
    semantic_results: list[SemanticMatch] = Field(default_factory=list)
    recommendations: list[Recommendation] = Field(default_factory=list)
    partial: bool = False
    missing_sections: list[str] = Field(default_factory=list)


def is_successful_outcome(outcome: str, qualification_score: float, threshold: float = 70.0) -> bool:
    return outcome == QUALIFIED_OUTCOME or qualification_score >= threshold


_ModelT = TypeVar("_ModelT", bound=BaseModel)


def _parse(model: type[_ModelT], payload: Any) -> _ModelT:
    if isinstance(payload, model):
        return payload
    if not isinstance(payload, Mapping):
        raise ValidationError(f"{model.__name__} payload must be a mapping, got {type(payload).__name__}")
    try:
        return model.model_validate(payload)
    except PydanticValidationError as exc:
        raise ValidationError(
            f"invalid {model.__name__}: {exc.error_count()} error(s)",
            errors=exc.errors(include_url=False, include_context=False),
        ) from exc


def parse_call_outcome(payload: CallOutcome | Mapping[str, Any]) -> CallOutcome:
    return _parse(CallOutcome, payload)


def parse_lead_context(payload: LeadContext | Mapping[str, Any]) -> LeadContext:
    return _parse(LeadContext, payload)

"""
Assessment Models
Per-provider results and the aggregated remote assessment
"""
from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import Optional, List, Dict, Any
from datetime import datetime
from enum import Enum

from callshield.domain.models.risk import (
    RiskLevel,
    RiskCategory,
    ConfidenceLevel,
    coerce_confidence,
)


class ProviderAction(str, Enum):
    """Action recommended by a provider"""
    ALLOW = "allow"
    BLOCK = "block"


class AggregationStrategy(str, Enum):
    """How multiple provider verdicts are combined"""
    HIGHEST_RISK = "highest_risk"
    MAJORITY_VOTE = "majority_vote"
    WEIGHTED_AVERAGE = "weighted_average"


class ProviderVerdict(BaseModel):
    """
    Validated provider payload.

    Providers return plain mappings; ``risk_level``, ``confidence`` and
    ``action`` are required. Camel-case keys from JSON APIs are accepted.
    """
    risk_level: RiskLevel = Field(..., alias="riskLevel")
    confidence: float = Field(..., ge=0.0, le=1.0)
    action: ProviderAction
    category: RiskCategory = RiskCategory.UNKNOWN
    auto_reject: bool = Field(default=False, alias="autoReject")
    score: Optional[float] = None
    details: Dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    @field_validator("risk_level", mode="before")
    @classmethod
    def _parse_risk(cls, value):
        return RiskLevel.parse(value)

    @field_validator("confidence", mode="before")
    @classmethod
    def _parse_confidence(cls, value):
        return coerce_confidence(value)

    @field_validator("action", mode="before")
    @classmethod
    def _parse_action(cls, value):
        return str(value).strip().lower() if value is not None else value

    @field_validator("category", mode="before")
    @classmethod
    def _parse_category(cls, value):
        if value is None:
            return RiskCategory.UNKNOWN
        try:
            return RiskCategory(str(value).strip().lower())
        except ValueError:
            return RiskCategory.UNKNOWN


class ProviderResult(BaseModel):
    """One provider's answer for one aggregation round"""
    provider: str
    risk_level: RiskLevel
    confidence: float = Field(..., ge=0.0, le=1.0)
    action: ProviderAction
    category: RiskCategory = RiskCategory.UNKNOWN
    auto_reject: bool = False
    score: Optional[float] = None
    response_time_ms: float = Field(default=0.0, ge=0.0)
    weight: float = Field(default=1.0, ge=0.0)
    priority: int = 1

    @classmethod
    def from_verdict(
        cls,
        provider: str,
        verdict: ProviderVerdict,
        response_time_ms: float,
        weight: float,
        priority: int
    ) -> "ProviderResult":
        return cls(
            provider=provider,
            risk_level=verdict.risk_level,
            confidence=verdict.confidence,
            action=verdict.action,
            category=verdict.category,
            auto_reject=verdict.auto_reject,
            score=verdict.score,
            response_time_ms=response_time_ms,
            weight=weight,
            priority=priority,
        )


class AggregatedAssessment(BaseModel):
    """Combined remote verdict consumed by the decision engine"""
    number: str
    risk_level: RiskLevel = RiskLevel.LOW
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    action: ProviderAction = ProviderAction.ALLOW
    auto_reject: bool = False
    category: RiskCategory = RiskCategory.UNKNOWN
    sources: List[str] = Field(default_factory=list)
    primary_source: Optional[str] = None
    strategy: str = AggregationStrategy.HIGHEST_RISK.value

    # Round metadata
    total_providers: int = 0
    successful_providers: int = 0
    failed_providers: int = 0
    response_time_ms: float = 0.0
    average_score: Optional[float] = None
    vote_counts: Optional[Dict[str, Dict[str, int]]] = None
    error: Optional[str] = None
    timestamp: datetime = Field(default_factory=datetime.utcnow)

    @property
    def confidence_level(self) -> ConfidenceLevel:
        return ConfidenceLevel.from_score(self.confidence)

    @property
    def is_scam(self) -> bool:
        return self.category.is_scam or self.action == ProviderAction.BLOCK

    @property
    def is_spam(self) -> bool:
        return self.category.is_spam

    @classmethod
    def safe_default(cls, number: str, error: Optional[str] = None, **metadata) -> "AggregatedAssessment":
        """
        Fail-open verdict used when no provider could answer.
        Remote unavailability must never block a legitimate call.
        """
        return cls(
            number=number,
            risk_level=RiskLevel.LOW,
            confidence=ConfidenceLevel.UNKNOWN.score,
            action=ProviderAction.ALLOW,
            auto_reject=False,
            category=RiskCategory.UNKNOWN,
            sources=[],
            error=error,
            **metadata
        )

"""
Risk Models
Risk levels, confidence labels and the cached RiskRecord
"""
from pydantic import BaseModel, Field, ConfigDict
from typing import Optional, Dict, Any
from datetime import datetime
from enum import Enum


class RiskLevel(str, Enum):
    """Risk verdict for a phone number"""
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"
    SAFE = "SAFE"          # Whitelisted / trusted
    UNKNOWN = "UNKNOWN"

    @property
    def ordinal(self) -> int:
        """Ordering used by aggregation (SAFE ranks with UNKNOWN)"""
        return RISK_ORDINAL.get(self, 0)

    @classmethod
    def parse(cls, value: Any) -> "RiskLevel":
        """Lenient parse: case-insensitive, aliases from provider payloads"""
        if isinstance(value, RiskLevel):
            return value
        text = str(value or "").strip().upper()
        text = RISK_ALIASES.get(text, text)
        try:
            return cls(text)
        except ValueError:
            return cls.UNKNOWN


RISK_ORDINAL: Dict[RiskLevel, int] = {
    RiskLevel.HIGH: 3,
    RiskLevel.MEDIUM: 2,
    RiskLevel.LOW: 1,
    RiskLevel.UNKNOWN: 0,
}

RISK_ALIASES = {
    "HIGH_SCAM_RISK": "HIGH",
    "MEDIUM_SCAM_RISK": "MEDIUM",
    "MODERATE": "MEDIUM",
    "NOT_SCAM": "LOW",
}


class ConfidenceLevel(str, Enum):
    """Named confidence buckets reported by providers"""
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"
    UNKNOWN = "UNKNOWN"

    @property
    def score(self) -> float:
        return CONFIDENCE_SCORES[self]

    @classmethod
    def from_score(cls, score: float) -> "ConfidenceLevel":
        """Bucket a numeric confidence back into a label"""
        if score > 0.8:
            return cls.HIGH
        if score > 0.5:
            return cls.MEDIUM
        if score > 0:
            return cls.LOW
        return cls.UNKNOWN


CONFIDENCE_SCORES: Dict[ConfidenceLevel, float] = {
    ConfidenceLevel.HIGH: 0.9,
    ConfidenceLevel.MEDIUM: 0.6,
    ConfidenceLevel.LOW: 0.3,
    ConfidenceLevel.UNKNOWN: 0.0,
}


def coerce_confidence(value: Any) -> float:
    """
    Accept either a numeric confidence or a label ("HIGH", "medium", ...)
    and return a float clamped to [0, 1].

    Raises:
        ValueError: If the value is neither a number nor a known label
    """
    if isinstance(value, bool):
        raise ValueError(f"Invalid confidence: {value!r}")
    if isinstance(value, (int, float)):
        return min(1.0, max(0.0, float(value)))
    if isinstance(value, str):
        label = value.strip().upper()
        try:
            return ConfidenceLevel(label).score
        except ValueError:
            pass
        try:
            return min(1.0, max(0.0, float(label)))
        except ValueError:
            raise ValueError(f"Invalid confidence: {value!r}")
    raise ValueError(f"Invalid confidence: {value!r}")


class RiskCategory(str, Enum):
    """What kind of caller a verdict describes"""
    SCAM = "scam"
    SPAM = "spam"
    SUSPICIOUS = "suspicious"
    LEGITIMATE = "legitimate"
    UNKNOWN = "unknown"

    @property
    def is_scam(self) -> bool:
        return self == RiskCategory.SCAM

    @property
    def is_spam(self) -> bool:
        return self in (RiskCategory.SPAM, RiskCategory.SUSPICIOUS)


class CacheTier(str, Enum):
    """Local cache tiers, in lookup precedence order"""
    WHITELIST = "whitelist"
    SCAM = "scam"
    SPAM = "spam"


class RiskRecord(BaseModel):
    """
    A cached verdict for one normalized number in one tier.
    Owned by the TieredRiskCache.
    """
    model_config = ConfigDict(use_enum_values=False)

    number: str = Field(..., description="Normalized phone number")
    tier: CacheTier = Field(..., description="Cache tier holding this record")
    risk_level: RiskLevel = Field(default=RiskLevel.UNKNOWN)
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    source: str = Field(default="unknown", description="Who reported the verdict")
    report_count: int = Field(default=1, ge=1)
    metadata: Dict[str, Any] = Field(default_factory=dict)

    created_at: datetime = Field(default_factory=datetime.utcnow)
    last_updated_at: datetime = Field(default_factory=datetime.utcnow)
    expires_at: Optional[datetime] = Field(None, description="None = never expires")

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        """Check if the record is past its expiry"""
        if self.expires_at is None:
            return False
        return (now or datetime.utcnow()) >= self.expires_at


class LookupOutcome(str, Enum):
    """Result of a tiered cache lookup"""
    SAFE = "SAFE"
    SCAM = "SCAM"
    SPAM = "SPAM"
    MISS = "MISS"


class CacheLookup(BaseModel):
    """What the local cache knows about a number"""
    number: str
    outcome: LookupOutcome = LookupOutcome.MISS
    record: Optional[RiskRecord] = None
    error: Optional[str] = Field(None, description="Set when the store was unavailable")

    @property
    def is_hit(self) -> bool:
        return self.outcome != LookupOutcome.MISS

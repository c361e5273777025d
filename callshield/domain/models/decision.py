"""
Decision Models
Call actions, screening states and their allowed transitions
"""
from pydantic import BaseModel, Field
from typing import Optional, List, Dict, Set
from enum import Enum

from callshield.domain.models.risk import RiskLevel, ConfidenceLevel
from callshield.domain.models.assessment import AggregatedAssessment


class CallAction(str, Enum):
    """Terminal action taken on an incoming call"""
    ALLOW = "allow"
    SILENCE = "silence"            # Ringer muted, voicemail reachable
    BLOCK = "block"                # Terminated after minimal ring
    AUTO_REJECT = "auto_reject"    # Rejected before ringing

    @property
    def counter_name(self) -> str:
        """Usage counter incremented for this action"""
        return ACTION_COUNTERS[self]


ACTION_COUNTERS: Dict[CallAction, str] = {
    CallAction.ALLOW: "allowed",
    CallAction.SILENCE: "silenced",
    CallAction.BLOCK: "blocked",
    CallAction.AUTO_REJECT: "auto_rejected",
}


class DecisionState(str, Enum):
    """Where in the screening flow a call was resolved"""
    UNKNOWN = "UNKNOWN"
    WHITELISTED = "WHITELISTED"
    CACHE_SCAM = "CACHE_SCAM"
    CACHE_SPAM = "CACHE_SPAM"
    CACHE_MISS = "CACHE_MISS"
    CONTACT_MATCH = "CONTACT_MATCH"
    REMOTE_CHECKED = "REMOTE_CHECKED"


STATE_TRANSITIONS: Dict[DecisionState, Set[DecisionState]] = {
    DecisionState.UNKNOWN: {
        DecisionState.WHITELISTED,
        DecisionState.CACHE_SCAM,
        DecisionState.CACHE_SPAM,
        DecisionState.CACHE_MISS,
    },
    DecisionState.CACHE_MISS: {
        DecisionState.CONTACT_MATCH,
        DecisionState.REMOTE_CHECKED,
    },
}


class InvalidTransitionError(Exception):
    """Raised when the screening flow attempts an illegal state change"""
    pass


def transition(current: DecisionState, target: DecisionState) -> DecisionState:
    """
    Validate and perform a state transition.

    Raises:
        InvalidTransitionError: If target is not reachable from current
    """
    if target not in STATE_TRANSITIONS.get(current, set()):
        raise InvalidTransitionError(f"Cannot move from {current.value} to {target.value}")
    return target


class ScreeningPreferences(BaseModel):
    """Per-user screening switches"""
    protection_enabled: bool = True
    silence_unknown_numbers: bool = False


class CallDecision(BaseModel):
    """Outcome of screening one incoming call"""
    number: str = Field(..., description="Normalized number")
    raw_number: str = Field(..., description="Number as received")
    action: CallAction
    state: DecisionState = DecisionState.UNKNOWN
    path: List[DecisionState] = Field(default_factory=lambda: [DecisionState.UNKNOWN])

    risk_level: RiskLevel = RiskLevel.UNKNOWN
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    is_scam: bool = False
    is_spam: bool = False
    source: str = "none"
    cached: bool = Field(default=False, description="Remote verdict written back to cache")

    assessment: Optional[AggregatedAssessment] = None
    session_id: Optional[str] = None
    display_name: Optional[str] = None

    @property
    def confidence_level(self) -> ConfidenceLevel:
        return ConfidenceLevel.from_score(self.confidence)

    @property
    def auto_reject(self) -> bool:
        return self.action == CallAction.AUTO_REJECT

    @property
    def should_block(self) -> bool:
        return self.action in (CallAction.BLOCK, CallAction.AUTO_REJECT)

"""
Session Models
Defines CallSession, SessionStatus and the events recorded during analysis
"""
from pydantic import BaseModel, Field
from typing import Optional, List, Any, Dict
from datetime import datetime
from enum import Enum
import uuid


class SessionStatus(str, Enum):
    """Analysis session state"""
    INITIALIZED = "initialized"    # Created, no media yet
    CONNECTED = "connected"        # Call/stream in progress
    CLOSED = "closed"              # Finished, duration stamped


class CallDirection(str, Enum):
    """Call direction relative to the protected user"""
    INCOMING = "incoming"
    OUTGOING = "outgoing"


class WarningLevel(str, Enum):
    """Severity of a warning raised during a call"""
    SCAM = "SCAM"          # Scam detected, call blocked or rejected
    PRIVACY = "PRIVACY"    # Sensitive information may be shared
    INFO = "INFO"


class SessionEvent(BaseModel):
    """A transcript or result event, stamped on arrival"""

    timestamp: datetime = Field(default_factory=datetime.utcnow)
    payload: Dict[str, Any] = Field(default_factory=dict)


class SessionWarning(BaseModel):
    """Warning surfaced to the user during a call"""
    level: WarningLevel
    type: str = Field(default="warning", description="scamWarning, privacyWarning, ...")
    title: str = ""
    message: str = ""
    confidence: Optional[float] = Field(None, ge=0.0, le=1.0)
    auto_blocked: bool = False
    source: Optional[str] = None
    timestamp: datetime = Field(default_factory=datetime.utcnow)


class CallSession(BaseModel):
    """
    Per-call analysis log.
    Lives in memory only; reaped after the retention window.
    """

    # ========== Identity ==========
    id: str = Field(default_factory=lambda: str(uuid.uuid4()), description="Session UUID")
    phone_number: str = Field(..., description="Remote party number")
    user_phone: Optional[str] = Field(None, description="Protected user's number")
    direction: CallDirection = Field(default=CallDirection.INCOMING)
    is_contact: bool = Field(default=False)

    # ========== State ==========
    status: SessionStatus = Field(default=SessionStatus.INITIALIZED)

    # ========== Event Logs ==========
    transcript: List[SessionEvent] = Field(default_factory=list)
    results: List[SessionEvent] = Field(default_factory=list)
    warnings: List[SessionWarning] = Field(default_factory=list)

    # ========== Timing ==========
    start_time: datetime = Field(default_factory=datetime.utcnow)
    end_time: Optional[datetime] = None
    duration_ms: Optional[int] = Field(None, ge=0)
    last_activity_at: datetime = Field(default_factory=datetime.utcnow)

    def update_activity(self, now: Optional[datetime] = None):
        """Update last activity timestamp"""
        self.last_activity_at = now or datetime.utcnow()

    def close(self, now: Optional[datetime] = None) -> None:
        """Mark closed and stamp end time / duration"""
        end_time = now or datetime.utcnow()
        # Clock skew guard: end never precedes start
        if end_time < self.start_time:
            end_time = self.start_time
        self.status = SessionStatus.CLOSED
        self.end_time = end_time
        self.duration_ms = int((end_time - self.start_time).total_seconds() * 1000)
        self.last_activity_at = end_time

    def is_older_than(self, seconds: float, now: Optional[datetime] = None) -> bool:
        """Check if the session started more than ``seconds`` ago"""
        elapsed = ((now or datetime.utcnow()) - self.start_time).total_seconds()
        return elapsed > seconds

    def warning_counts(self) -> Dict[str, int]:
        counts: Dict[str, int] = {}
        for warning in self.warnings:
            level = warning.level.value
            counts[level] = counts.get(level, 0) + 1
        return counts

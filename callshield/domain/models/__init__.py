"""Domain models"""

# Risk models
from .risk import (
    RiskLevel,
    ConfidenceLevel,
    RiskCategory,
    CacheTier,
    RiskRecord,
    LookupOutcome,
    CacheLookup,
    coerce_confidence,
)

# Remote assessment models
from .assessment import (
    ProviderAction,
    AggregationStrategy,
    ProviderVerdict,
    ProviderResult,
    AggregatedAssessment,
)

# Session models
from .session import (
    SessionStatus,
    CallDirection,
    WarningLevel,
    SessionEvent,
    SessionWarning,
    CallSession,
)

# Decision models
from .decision import (
    CallAction,
    DecisionState,
    InvalidTransitionError,
    ScreeningPreferences,
    CallDecision,
    transition,
)

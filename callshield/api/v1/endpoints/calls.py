"""
Call Screening Endpoints
Screen incoming calls and read back action counters
"""
from fastapi import APIRouter, HTTPException, Depends, Query
from pydantic import BaseModel, Field
from typing import Any, Dict, List, Optional

from callshield.api.v1.dependencies import (
    get_call_controller,
    get_counters,
    get_decision_engine,
    get_normalizer,
)
from callshield.domain.models.assessment import AggregatedAssessment
from callshield.domain.models.decision import CallAction, CallDecision, DecisionState, ScreeningPreferences
from callshield.domain.models.risk import RiskLevel
from callshield.domain.models.session import CallDirection
from callshield.domain.services.decision_engine import DecisionEngine, InvalidCallRequestError
from callshield.domain.services.phone_normalizer import PhoneNormalizer
from callshield.domain.services.usage_counters import UsageCounters
from callshield.infrastructure.contacts.static_resolver import StaticContactResolver
from callshield.infrastructure.telephony.call_controller import LoggingCallController

router = APIRouter(prefix="/calls", tags=["calls"])


class ScreenCallRequest(BaseModel):
    """Incoming call to screen"""
    phone_number: str = Field(..., description="Caller number as received")
    user_phone: Optional[str] = Field(None, description="Protected user's number")
    direction: CallDirection = CallDirection.INCOMING
    protection_enabled: Optional[bool] = Field(None, description="Overrides the server default")
    silence_unknown_numbers: Optional[bool] = Field(None, description="Overrides the server default")
    contacts: Optional[Dict[str, Optional[str]]] = Field(
        None, description="User's address book: number -> display name"
    )


class ScreenCallResponse(BaseModel):
    """Resolved action for a screened call"""
    number: str
    raw_number: str
    action: CallAction
    state: DecisionState
    path: List[DecisionState]
    risk_level: RiskLevel
    confidence: float
    confidence_level: str
    is_scam: bool
    is_spam: bool
    auto_reject: bool
    source: str
    cached: bool
    session_id: Optional[str] = None
    display_name: Optional[str] = None
    assessment: Optional[AggregatedAssessment] = None

    @classmethod
    def from_decision(cls, decision: CallDecision) -> "ScreenCallResponse":
        return cls(
            **decision.model_dump(),
            confidence_level=decision.confidence_level.value,
            auto_reject=decision.auto_reject,
        )


class CallStatisticsResponse(BaseModel):
    """Totals per resolved action"""
    counters: Dict[str, int]
    total: int


@router.post("/screen", response_model=ScreenCallResponse)
async def screen_call(
    request: ScreenCallRequest,
    engine: DecisionEngine = Depends(get_decision_engine),
    normalizer: PhoneNormalizer = Depends(get_normalizer)
):
    """
    Screen an incoming call: cache, contacts, then remote providers.

    The action is applied through the call controller before returning.
    """
    preferences = None
    if request.protection_enabled is not None or request.silence_unknown_numbers is not None:
        defaults = engine.preferences
        preferences = ScreeningPreferences(
            protection_enabled=(
                defaults.protection_enabled if request.protection_enabled is None
                else request.protection_enabled
            ),
            silence_unknown_numbers=(
                defaults.silence_unknown_numbers if request.silence_unknown_numbers is None
                else request.silence_unknown_numbers
            ),
        )

    contacts = (
        StaticContactResolver(request.contacts, normalizer=normalizer)
        if request.contacts else None
    )

    try:
        decision = await engine.screen_call(
            request.phone_number,
            user_phone=request.user_phone,
            direction=request.direction,
            preferences=preferences,
            contacts=contacts,
        )
    except InvalidCallRequestError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return ScreenCallResponse.from_decision(decision)


@router.get("/statistics", response_model=CallStatisticsResponse)
async def call_statistics(counters: UsageCounters = Depends(get_counters)):
    """Allowed / silenced / blocked / auto-rejected totals"""
    totals = counters.get_all()
    return CallStatisticsResponse(counters=totals, total=sum(totals.values()))


@router.get("/commands")
async def recent_commands(
    limit: int = Query(50, ge=1, le=500, description="Maximum commands to return"),
    controller: LoggingCallController = Depends(get_call_controller)
) -> Dict[str, Any]:
    """Call-control commands issued by recent screenings, newest first"""
    commands = controller.recent_commands(limit)
    return {"commands": commands, "count": len(commands)}

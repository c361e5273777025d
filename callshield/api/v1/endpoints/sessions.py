"""
Session Endpoints
Per-call analysis sessions: transcript, results, warnings
"""
from fastapi import APIRouter, HTTPException, Depends, Query
from pydantic import BaseModel, Field
from typing import Any, Dict, List, Optional

from callshield.api.v1.dependencies import get_session_tracker
from callshield.domain.models.session import (
    CallDirection,
    CallSession,
    SessionStatus,
    SessionWarning,
    WarningLevel,
)
from callshield.domain.services.session_tracker import SessionTracker

router = APIRouter(prefix="/sessions", tags=["sessions"])


class CreateSessionRequest(BaseModel):
    phone_number: str
    user_phone: Optional[str] = None
    direction: CallDirection = CallDirection.INCOMING
    is_contact: bool = False


class EventRequest(BaseModel):
    """Transcript chunk or analysis result"""
    payload: Dict[str, Any] = Field(default_factory=dict)


class WarningRequest(BaseModel):
    level: WarningLevel
    type: str = "warning"
    title: str = ""
    message: str = ""
    confidence: Optional[float] = Field(None, ge=0.0, le=1.0)
    auto_blocked: bool = False
    source: Optional[str] = None


class StatusRequest(BaseModel):
    status: SessionStatus


def _found(ok: bool, session_id: str) -> None:
    if not ok:
        raise HTTPException(status_code=404, detail=f"Session not found: {session_id}")


@router.post("/", response_model=CallSession, status_code=201)
async def create_session(
    request: CreateSessionRequest,
    tracker: SessionTracker = Depends(get_session_tracker)
):
    return tracker.create_session(
        request.phone_number,
        user_phone=request.user_phone,
        direction=request.direction,
        is_contact=request.is_contact,
    )


@router.get("/", response_model=List[CallSession])
async def list_sessions(
    status: Optional[SessionStatus] = Query(None, description="Filter by status"),
    tracker: SessionTracker = Depends(get_session_tracker)
):
    return tracker.list_sessions(status)


@router.get("/statistics/summary")
async def session_statistics(tracker: SessionTracker = Depends(get_session_tracker)) -> Dict[str, Any]:
    return tracker.get_statistics()


@router.post("/cleanup")
async def cleanup_sessions(tracker: SessionTracker = Depends(get_session_tracker)) -> Dict[str, int]:
    """Drop sessions older than the retention window"""
    return {"removed": tracker.cleanup_old_sessions()}


@router.get("/{session_id}", response_model=CallSession)
async def get_session(session_id: str, tracker: SessionTracker = Depends(get_session_tracker)):
    session = tracker.get_session(session_id)
    _found(session is not None, session_id)
    return session


@router.post("/{session_id}/transcript")
async def add_transcript(
    session_id: str,
    request: EventRequest,
    tracker: SessionTracker = Depends(get_session_tracker)
):
    _found(tracker.add_transcript(session_id, request.payload), session_id)
    return {"session_id": session_id, "added": True}


@router.post("/{session_id}/results")
async def add_result(
    session_id: str,
    request: EventRequest,
    tracker: SessionTracker = Depends(get_session_tracker)
):
    _found(tracker.add_result(session_id, request.payload), session_id)
    return {"session_id": session_id, "added": True}


@router.post("/{session_id}/warnings")
async def add_warning(
    session_id: str,
    request: WarningRequest,
    tracker: SessionTracker = Depends(get_session_tracker)
):
    _found(tracker.add_warning(session_id, SessionWarning(**request.model_dump())), session_id)
    return {"session_id": session_id, "added": True}


@router.post("/{session_id}/status")
async def update_status(
    session_id: str,
    request: StatusRequest,
    tracker: SessionTracker = Depends(get_session_tracker)
):
    _found(tracker.update_status(session_id, request.status), session_id)
    return {"session_id": session_id, "status": request.status.value}


@router.post("/{session_id}/close", response_model=CallSession)
async def close_session(session_id: str, tracker: SessionTracker = Depends(get_session_tracker)):
    _found(tracker.close_session(session_id), session_id)
    return tracker.get_session(session_id)

"""
Session Tracker
Keeps the per-call analysis log (transcript, results, warnings) in memory
"""
import asyncio
import logging
import threading
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Union

from callshield.domain.models.session import (
    CallDirection,
    CallSession,
    SessionEvent,
    SessionStatus,
    SessionWarning,
    WarningLevel,
)

logger = logging.getLogger(__name__)


class SessionTracker:
    """
    In-memory registry of call analysis sessions.

    All mutations go through one lock so HTTP handlers (thread pool) and the
    screening flow (event loop) can share a tracker. Readers get copies.
    Sessions older than the retention window are reaped by
    ``cleanup_old_sessions``, periodically once ``start_cleanup`` is called.
    """

    DEFAULT_RETENTION_SECONDS = 3600

    def __init__(
        self,
        retention_seconds: float = DEFAULT_RETENTION_SECONDS,
        clock: Optional[Callable[[], datetime]] = None
    ):
        self.retention_seconds = retention_seconds
        self._clock = clock or datetime.utcnow
        self._sessions: Dict[str, CallSession] = {}
        self._lock = threading.Lock()
        self._cleanup_task: Optional[asyncio.Task] = None

    def create_session(
        self,
        phone_number: str,
        user_phone: Optional[str] = None,
        direction: Union[CallDirection, str] = CallDirection.INCOMING,
        is_contact: bool = False
    ) -> CallSession:
        """
        Open a new session.

        Args:
            phone_number: Remote party number
            user_phone: Protected user's own number
            direction: incoming or outgoing
            is_contact: Whether the remote party is a saved contact

        Returns:
            Copy of the created session
        """
        now = self._clock()
        session = CallSession(
            phone_number=phone_number,
            user_phone=user_phone,
            direction=CallDirection(direction),
            is_contact=is_contact,
            start_time=now,
            last_activity_at=now,
        )
        with self._lock:
            self._sessions[session.id] = session

        logger.info(
            f"Created session {session.id} for {phone_number} ({session.direction.value})",
            extra={"session_id": session.id}
        )
        return session.model_copy(deep=True)

    def get_session(self, session_id: str) -> Optional[CallSession]:
        with self._lock:
            session = self._sessions.get(session_id)
            return session.model_copy(deep=True) if session else None

    def list_sessions(self, status: Optional[SessionStatus] = None) -> List[CallSession]:
        """All sessions, newest first, optionally filtered by status"""
        with self._lock:
            sessions = [
                s.model_copy(deep=True) for s in self._sessions.values()
                if status is None or s.status == status
            ]
        sessions.sort(key=lambda s: s.start_time, reverse=True)
        return sessions

    def update_status(self, session_id: str, status: Union[SessionStatus, str]) -> bool:
        """Move a session to a new status; closing goes through close_session"""
        status = SessionStatus(status)
        if status == SessionStatus.CLOSED:
            return self.close_session(session_id)

        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                return False
            session.status = status
            session.update_activity(self._clock())

        logger.debug(f"Session {session_id} -> {status.value}")
        return True

    def mark_contact(self, session_id: str, is_contact: bool = True) -> bool:
        """Flag whether the remote party turned out to be a saved contact"""
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                return False
            session.is_contact = is_contact
            session.update_activity(self._clock())
        return True

    def add_transcript(self, session_id: str, payload: Dict[str, Any]) -> bool:
        return self._append_event(session_id, "transcript", payload)

    def add_result(self, session_id: str, payload: Dict[str, Any]) -> bool:
        return self._append_event(session_id, "results", payload)

    def add_warning(
        self,
        session_id: str,
        warning: Union[SessionWarning, Dict[str, Any]]
    ) -> bool:
        """Append a warning; plain dicts are validated into SessionWarning"""
        if not isinstance(warning, SessionWarning):
            warning = SessionWarning(**warning)

        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                logger.warning(f"Warning for unknown session dropped: {session_id}")
                return False
            now = self._clock()
            session.warnings.append(warning.model_copy(update={"timestamp": now}))
            session.update_activity(now)

        logger.info(
            f"Session {session_id} warning: {warning.level.value} {warning.title}",
            extra={"session_id": session_id, "warning_level": warning.level.value}
        )
        return True

    def _append_event(self, session_id: str, log_name: str, payload: Dict[str, Any]) -> bool:
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                logger.warning(f"Event for unknown session dropped: {session_id}")
                return False
            now = self._clock()
            getattr(session, log_name).append(SessionEvent(timestamp=now, payload=dict(payload)))
            session.update_activity(now)
        return True

    def close_session(self, session_id: str) -> bool:
        """Close a session, stamping end_time and duration_ms"""
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                return False
            session.close(self._clock())
            duration_ms = session.duration_ms

        logger.info(f"Closed session {session_id} after {duration_ms}ms")
        return True

    def cleanup_old_sessions(self) -> int:
        """Drop sessions (any status) that started before the retention window"""
        now = self._clock()
        with self._lock:
            stale_ids = [
                sid for sid, s in self._sessions.items()
                if s.is_older_than(self.retention_seconds, now)
            ]
            for sid in stale_ids:
                del self._sessions[sid]

        if stale_ids:
            logger.info(f"Cleaned up {len(stale_ids)} old sessions")
        return len(stale_ids)

    def get_statistics(self) -> Dict[str, Any]:
        """Session and warning totals"""
        with self._lock:
            sessions = list(self._sessions.values())
            warnings_by_level = {level.value: 0 for level in WarningLevel}
            for session in sessions:
                for level, count in session.warning_counts().items():
                    warnings_by_level[level] = warnings_by_level.get(level, 0) + count

            return {
                "total_sessions": len(sessions),
                "active_sessions": sum(1 for s in sessions if s.status == SessionStatus.CONNECTED),
                "closed_sessions": sum(1 for s in sessions if s.status == SessionStatus.CLOSED),
                "total_warnings": sum(warnings_by_level.values()),
                "warnings_by_level": warnings_by_level,
            }

    def start_cleanup(self, interval_seconds: float) -> None:
        """Start the periodic cleanup on the running loop"""
        if self._cleanup_task is None or self._cleanup_task.done():
            self._cleanup_task = asyncio.create_task(self._periodic_cleanup(interval_seconds))

    async def _periodic_cleanup(self, interval_seconds: float):
        while True:
            try:
                await asyncio.sleep(interval_seconds)
                self.cleanup_old_sessions()
            except asyncio.CancelledError:
                logger.info("Session cleanup task cancelled")
                break
            except Exception as e:
                logger.error(f"Error in session cleanup: {e}")

    async def shutdown(self):
        """Cancel the cleanup task"""
        logger.info("Shutting down SessionTracker...")
        if self._cleanup_task:
            self._cleanup_task.cancel()
            try:
                await self._cleanup_task
            except asyncio.CancelledError:
                pass
            self._cleanup_task = None
        logger.info("SessionTracker shutdown complete")

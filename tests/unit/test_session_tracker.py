"""
Unit tests for SessionTracker and CallSession
"""
import asyncio
import uuid
import pytest

from callshield.domain.models.session import (
    CallDirection,
    SessionStatus,
    SessionWarning,
    WarningLevel,
)
from callshield.domain.services.session_tracker import SessionTracker


@pytest.fixture
def tracker(clock):
    return SessionTracker(retention_seconds=3600, clock=clock)


class TestCreateSession:
    """Tests for session creation and lookup"""

    def test_create_session(self, tracker, clock):
        session = tracker.create_session("+27826661234", user_phone="+27821112222")

        assert str(uuid.UUID(session.id, version=4)) == session.id
        assert session.status == SessionStatus.INITIALIZED
        assert session.direction == CallDirection.INCOMING
        assert session.start_time == clock.now
        assert session.end_time is None

    def test_get_returns_copy(self, tracker):
        session = tracker.create_session("+27826661234")
        copy = tracker.get_session(session.id)
        copy.transcript.clear()
        copy.status = SessionStatus.CLOSED

        assert tracker.get_session(session.id).status == SessionStatus.INITIALIZED

    def test_unknown_session(self, tracker):
        assert tracker.get_session("missing") is None

    def test_list_sessions_filter(self, tracker):
        first = tracker.create_session("+27826661234")
        tracker.create_session("+27825551234", direction="outgoing")
        tracker.update_status(first.id, SessionStatus.CONNECTED)

        assert len(tracker.list_sessions()) == 2
        connected = tracker.list_sessions(SessionStatus.CONNECTED)
        assert [s.id for s in connected] == [first.id]


class TestEvents:
    """Tests for transcript / result / warning logs"""

    def test_append_events(self, tracker, clock):
        session = tracker.create_session("+27826661234")
        clock.advance(seconds=5)

        assert tracker.add_transcript(session.id, {"text": "hello"}) is True
        assert tracker.add_result(session.id, {"risk": "LOW"}) is True

        stored = tracker.get_session(session.id)
        assert stored.transcript[0].payload == {"text": "hello"}
        assert stored.transcript[0].timestamp == clock.now
        assert stored.results[0].payload == {"risk": "LOW"}
        assert stored.last_activity_at == clock.now

    def test_mark_contact(self, tracker, clock):
        session = tracker.create_session("+27821112222")
        clock.advance(seconds=3)

        assert tracker.mark_contact(session.id) is True
        stored = tracker.get_session(session.id)
        assert stored.is_contact is True
        assert stored.last_activity_at == clock.now
        assert tracker.mark_contact("missing") is False

    def test_unknown_session_returns_false(self, tracker):
        assert tracker.add_transcript("missing", {"text": "hi"}) is False
        assert tracker.add_result("missing", {}) is False
        assert tracker.add_warning("missing", {"level": "SCAM"}) is False
        assert tracker.close_session("missing") is False
        assert tracker.update_status("missing", "connected") is False

    def test_add_warning_from_dict_and_model(self, tracker):
        session = tracker.create_session("+27826661234")
        tracker.add_warning(session.id, {"level": "PRIVACY", "title": "Careful"})
        tracker.add_warning(session.id, SessionWarning(level=WarningLevel.SCAM, auto_blocked=True))

        stored = tracker.get_session(session.id)
        assert [w.level for w in stored.warnings] == [WarningLevel.PRIVACY, WarningLevel.SCAM]
        assert stored.warning_counts() == {"PRIVACY": 1, "SCAM": 1}

    def test_invalid_warning_rejected(self, tracker):
        session = tracker.create_session("+27826661234")
        with pytest.raises(ValueError):
            tracker.add_warning(session.id, {"level": "PANIC"})


class TestCloseAndCleanup:
    """Tests for closing and reaping sessions"""

    def test_close_stamps_duration(self, tracker, clock):
        session = tracker.create_session("+27826661234")
        clock.advance(seconds=42)

        assert tracker.close_session(session.id) is True
        closed = tracker.get_session(session.id)
        assert closed.status == SessionStatus.CLOSED
        assert closed.end_time == clock.now
        assert closed.duration_ms == 42_000

    def test_close_never_precedes_start(self, tracker, clock):
        session = tracker.create_session("+27826661234")
        clock.advance(seconds=-10)
        tracker.close_session(session.id)

        closed = tracker.get_session(session.id)
        assert closed.end_time >= closed.start_time
        assert closed.duration_ms == 0

    def test_update_status_closed_closes(self, tracker, clock):
        session = tracker.create_session("+27826661234")
        clock.advance(seconds=1)
        tracker.update_status(session.id, "closed")

        assert tracker.get_session(session.id).duration_ms == 1000

    def test_cleanup_removes_old_sessions_any_status(self, tracker, clock):
        old_open = tracker.create_session("+27826661234")
        old_closed = tracker.create_session("+27825551234")
        tracker.close_session(old_closed.id)
        clock.advance(seconds=3000)
        recent = tracker.create_session("+27821112222")
        clock.advance(seconds=700)

        assert tracker.cleanup_old_sessions() == 2
        assert tracker.get_session(old_open.id) is None
        assert tracker.get_session(old_closed.id) is None
        assert tracker.get_session(recent.id) is not None

    @pytest.mark.asyncio
    async def test_periodic_cleanup_task(self, tracker, clock):
        tracker.create_session("+27826661234")
        clock.advance(seconds=3601)

        tracker.start_cleanup(0.01)
        await asyncio.sleep(0.05)
        await tracker.shutdown()

        assert tracker.get_statistics()["total_sessions"] == 0
        assert tracker._cleanup_task is None


class TestStatistics:
    """Tests for get_statistics"""

    def test_statistics(self, tracker):
        connected = tracker.create_session("+27826661234")
        closed = tracker.create_session("+27825551234")
        tracker.create_session("+27821112222")
        tracker.update_status(connected.id, SessionStatus.CONNECTED)
        tracker.add_warning(connected.id, {"level": "SCAM"})
        tracker.add_warning(closed.id, {"level": "PRIVACY"})
        tracker.add_warning(closed.id, {"level": "PRIVACY"})
        tracker.close_session(closed.id)

        stats = tracker.get_statistics()
        assert stats["total_sessions"] == 3
        assert stats["active_sessions"] == 1
        assert stats["closed_sessions"] == 1
        assert stats["total_warnings"] == 3
        assert stats["warnings_by_level"] == {"SCAM": 1, "PRIVACY": 2, "INFO": 0}

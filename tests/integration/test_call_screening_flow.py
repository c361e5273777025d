"""
End-to-end screening flow with real components:
cache -> contacts -> demo providers from config/providers.yaml -> call controller
"""
import pytest

from callshield.core.config import ConfigManager
from callshield.domain.models.decision import CallAction, DecisionState, ScreeningPreferences
from callshield.domain.models.risk import LookupOutcome, RiskLevel
from callshield.domain.models.session import SessionStatus, WarningLevel
from callshield.domain.services.decision_engine import DecisionEngine
from callshield.domain.services.risk_aggregator import RiskAggregator
from callshield.domain.services.session_tracker import SessionTracker
from callshield.domain.services.usage_counters import UsageCounters
from callshield.infrastructure.contacts.static_resolver import StaticContactResolver
from callshield.infrastructure.providers.factory import register_providers_from_config
from callshield.infrastructure.telephony.call_controller import LoggingCallController


@pytest.fixture
def aggregator():
    aggregator = RiskAggregator()
    register_providers_from_config(
        aggregator, ConfigManager(env="development").get_risk_provider_configs()
    )
    return aggregator


@pytest.fixture
def controller():
    return LoggingCallController()


@pytest.fixture
def sessions(clock):
    return SessionTracker(clock=clock)


@pytest.fixture
def engine(cache, aggregator, controller, sessions, store):
    return DecisionEngine(
        cache=cache,
        aggregator=aggregator,
        controller=controller,
        sessions=sessions,
        counters=UsageCounters(store),
        preferences=ScreeningPreferences(silence_unknown_numbers=True),
    )


def provider_calls(aggregator: RiskAggregator) -> int:
    return sum(s["total_requests"] for s in aggregator.get_provider_stats().values())


class TestScreeningFlow:
    """Full screening runs against the configured demo providers"""

    @pytest.mark.asyncio
    async def test_clean_number(self, engine, cache, controller):
        decision = await engine.screen_call("+1234567890")

        assert decision.action == CallAction.ALLOW
        assert decision.path == [DecisionState.UNKNOWN, DecisionState.CACHE_MISS, DecisionState.REMOTE_CHECKED]
        assert decision.risk_level == RiskLevel.LOW
        assert decision.cached is False
        assert cache.lookup("+1234567890").outcome == LookupOutcome.MISS
        assert controller.recent_commands()[0]["command"] == "allow"

    @pytest.mark.asyncio
    async def test_scam_number_rejected_then_served_from_cache(self, engine, cache, aggregator, controller):
        first = await engine.screen_call("082 666 1234")

        assert first.action == CallAction.AUTO_REJECT
        assert first.is_scam
        assert first.cached
        assert cache.lookup("+27826661234").outcome == LookupOutcome.SCAM
        calls_after_first = provider_calls(aggregator)
        assert calls_after_first == 2

        second = await engine.screen_call("+27826661234")

        assert second.state == DecisionState.CACHE_SCAM
        assert second.action == CallAction.AUTO_REJECT
        assert provider_calls(aggregator) == calls_after_first
        assert [c["command"] for c in controller.recent_commands()] == ["reject", "reject"]

    @pytest.mark.asyncio
    async def test_suspicious_number_silenced_and_cached_as_spam(self, engine, cache):
        decision = await engine.screen_call("+27825551234")

        assert decision.action == CallAction.SILENCE
        assert decision.risk_level == RiskLevel.MEDIUM
        assert cache.lookup("+27825551234").outcome == LookupOutcome.SPAM

        again = await engine.screen_call("+27825551234")
        assert again.state == DecisionState.CACHE_SPAM

    @pytest.mark.asyncio
    async def test_contact_skips_providers(self, engine, aggregator):
        contacts = StaticContactResolver({"0826661234": "Uncle Bob"})

        decision = await engine.screen_call("+27826661234", contacts=contacts)

        assert decision.state == DecisionState.CONTACT_MATCH
        assert decision.action == CallAction.ALLOW
        assert provider_calls(aggregator) == 0

    @pytest.mark.asyncio
    async def test_session_and_counters(self, engine, sessions, store):
        decision = await engine.screen_call("+27826661234", user_phone="+27821112222")
        await engine.screen_call("+1234567890")

        session = sessions.get_session(decision.session_id)
        assert session.status == SessionStatus.CLOSED
        assert session.warnings[0].level == WarningLevel.SCAM
        assert any(r.payload.get("stage") == "remote_assessment" for r in session.results)

        counters = UsageCounters(store).get_all()
        assert counters["auto_rejected"] == 1
        assert counters["allowed"] == 1

    @pytest.mark.asyncio
    async def test_whitelist_overrides_scam_tier(self, engine, cache):
        await engine.screen_call("+27826661234")
        cache.add_to_whitelist("+27826661234", "user")

        decision = await engine.screen_call("+27826661234")
        assert decision.state == DecisionState.WHITELISTED
        assert decision.action == CallAction.ALLOW

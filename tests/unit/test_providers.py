"""
Unit tests for risk providers, the provider factory and call-side adapters
"""
import json
import pytest
import httpx

from callshield.domain.interfaces.risk_provider import ProviderError, ProviderResponseError
from callshield.domain.models.assessment import ProviderVerdict
from callshield.domain.models.risk import RiskLevel
from callshield.domain.services.risk_aggregator import RiskAggregator
from callshield.infrastructure.contacts.static_resolver import StaticContactResolver
from callshield.infrastructure.providers.demo import DemoRiskProvider
from callshield.infrastructure.providers.factory import (
    RiskProviderFactory,
    register_providers_from_config,
)
from callshield.infrastructure.providers.http import HttpRiskProvider
from callshield.infrastructure.telephony.call_controller import LoggingCallController


class TestDemoRiskProvider:
    """Tests for pattern-driven demo provider"""

    @pytest.fixture
    def provider(self):
        return DemoRiskProvider("hiya", scam_patterns=["666", "999"], suspicious_patterns=["555"])

    @pytest.mark.asyncio
    async def test_scam_pattern(self, provider):
        result = await provider.check_spam_number("+27826661234")
        verdict = ProviderVerdict.model_validate(result)

        assert verdict.risk_level == RiskLevel.HIGH
        assert verdict.confidence > 0.8
        assert verdict.action.value == "block"
        assert verdict.category.is_scam

    @pytest.mark.asyncio
    async def test_suspicious_pattern(self, provider):
        verdict = ProviderVerdict.model_validate(await provider.check_spam_number("+27825551234"))

        assert verdict.risk_level == RiskLevel.MEDIUM
        assert verdict.confidence == 0.6
        assert verdict.action.value == "allow"
        assert verdict.category.is_spam

    @pytest.mark.asyncio
    async def test_clean_number(self, provider):
        verdict = ProviderVerdict.model_validate(await provider.check_spam_number("+1234567890"))

        assert verdict.risk_level == RiskLevel.LOW
        assert verdict.action.value == "allow"

    def test_provider_info(self, provider):
        info = provider.get_provider_info()
        assert info["type"] == "demo"
        assert info["scam_patterns"] == ["666", "999"]


class TestHttpRiskProvider:
    """Tests for the JSON-over-HTTP provider"""

    def make_provider(self, handler, api_key=None) -> HttpRiskProvider:
        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        return HttpRiskProvider("numverify", "https://risk.example.com/check", api_key=api_key, client=client)

    @pytest.mark.asyncio
    async def test_posts_number_and_returns_body(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["body"] = json.loads(request.content)
            seen["auth"] = request.headers.get("Authorization")
            return httpx.Response(200, json={"risk_level": "HIGH", "confidence": 0.95, "action": "block"})

        provider = self.make_provider(handler, api_key="secret")
        result = await provider.check_spam_number("+27826661234", {"country": "ZA"})

        assert result["risk_level"] == "HIGH"
        assert seen["body"] == {"phone_number": "+27826661234", "country": "ZA"}
        assert seen["auth"] == "Bearer secret"
        await provider.cleanup()

    @pytest.mark.asyncio
    async def test_nested_result_unwrapped(self):
        def handler(request):
            return httpx.Response(200, json={"result": {"riskLevel": "LOW", "confidence": "LOW", "action": "allow"}})

        provider = self.make_provider(handler)
        assert (await provider.check_spam_number("+1234567890"))["riskLevel"] == "LOW"

    @pytest.mark.asyncio
    async def test_http_error_status(self):
        provider = self.make_provider(lambda request: httpx.Response(503, text="maintenance"))

        with pytest.raises(ProviderError):
            await provider.check_spam_number("+1234567890")

    @pytest.mark.asyncio
    async def test_non_json_body(self):
        provider = self.make_provider(lambda request: httpx.Response(200, text="<html>"))

        with pytest.raises(ProviderResponseError):
            await provider.check_spam_number("+1234567890")

    @pytest.mark.asyncio
    async def test_transport_error_wrapped(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        provider = self.make_provider(handler)
        with pytest.raises(ProviderError):
            await provider.check_spam_number("+1234567890")

    def test_url_required(self):
        with pytest.raises(ValueError):
            HttpRiskProvider("numverify", url="")


class TestRiskProviderFactory:
    """Tests for RiskProviderFactory and config registration"""

    def test_available_types(self):
        assert {"demo", "http"} <= set(RiskProviderFactory.list_providers())

    def test_unknown_type(self):
        with pytest.raises(ValueError, match="Unknown risk provider type"):
            RiskProviderFactory.create("carrier-pigeon", "x", {})

    def test_register_from_config(self):
        aggregator = RiskAggregator()
        registered = register_providers_from_config(aggregator, [
            {"name": "hiya", "type": "demo", "weight": 1.0, "priority": 1,
             "scam_patterns": ["666"], "suspicious_patterns": ["555"]},
            {"name": "telesign", "type": "demo", "enabled": False, "priority": 3},
            {"name": "numverify", "type": "http", "enabled": False, "url": ""},
        ])

        assert registered == ["hiya", "telesign"]
        assert aggregator.enabled_providers() == ["hiya"]
        stats = aggregator.get_provider_stats()
        assert stats["hiya"]["info"]["scam_patterns"] == ["666"]

    def test_enabled_broken_provider_raises(self):
        with pytest.raises(ValueError):
            register_providers_from_config(RiskAggregator(), [
                {"name": "numverify", "type": "http", "enabled": True, "url": ""},
            ])


class TestCallSideAdapters:
    """Tests for LoggingCallController and StaticContactResolver"""

    @pytest.mark.asyncio
    async def test_controller_records_commands(self):
        controller = LoggingCallController(max_commands=2)
        await controller.allow_call("+1")
        await controller.silence_call("+2")
        await controller.terminate_call("+3", immediate=True)

        commands = controller.recent_commands()
        assert [c["command"] for c in commands] == ["reject", "silence"]
        assert commands[0]["phone_number"] == "+3"

    @pytest.mark.asyncio
    async def test_contacts_match_normalized(self):
        contacts = StaticContactResolver({"082 111 2222": "Mom", "": "nobody"})

        assert await contacts.is_known_contact("+27821112222") is True
        assert await contacts.display_name_for("0821112222") == "Mom"
        assert await contacts.is_known_contact("+27829999999") is False

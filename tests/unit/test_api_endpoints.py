"""
Tests for the HTTP API
Runs the real app (lifespan included) on an in-memory SQLite database with
the demo providers from config/providers.yaml
"""
import pytest
from fastapi.testclient import TestClient

from callshield.core.config import ConfigManager, Settings


SCAM_NUMBER = "+27826661234"
SUSPICIOUS_NUMBER = "+27825551234"
CLEAN_NUMBER = "+1234567890"


class TestHealthEndpoint:
    """Tests for /health"""

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["providers_enabled"] == ["hiya", "truecaller"]

    def test_health_under_api_prefix(self, client):
        assert client.get("/api/v1/health").status_code == 200


class TestCallsEndpoint:
    """Tests for /api/v1/calls"""

    def test_screen_clean_number_allows(self, client):
        response = client.post("/api/v1/calls/screen", json={"phone_number": CLEAN_NUMBER})

        assert response.status_code == 200
        data = response.json()
        assert data["action"] == "allow"
        assert data["state"] == "REMOTE_CHECKED"
        assert data["cached"] is False
        assert data["assessment"]["successful_providers"] == 2

    def test_screen_scam_number_auto_rejects(self, client):
        data = client.post("/api/v1/calls/screen", json={"phone_number": "082 666 1234"}).json()

        assert data["number"] == SCAM_NUMBER
        assert data["action"] == "auto_reject"
        assert data["auto_reject"] is True
        assert data["confidence_level"] == "HIGH"
        assert data["cached"] is True

        lookup = client.get(f"/api/v1/numbers/{SCAM_NUMBER}").json()
        assert lookup["outcome"] == "SCAM"

    def test_screen_suspicious_number_silenced(self, client):
        data = client.post("/api/v1/calls/screen", json={
            "phone_number": SUSPICIOUS_NUMBER,
            "silence_unknown_numbers": True,
        }).json()

        assert data["action"] == "silence"
        assert data["is_spam"] is True

    def test_screen_contact_allows(self, client):
        data = client.post("/api/v1/calls/screen", json={
            "phone_number": SCAM_NUMBER,
            "contacts": {"0826661234": "Uncle Bob"},
        }).json()

        assert data["action"] == "allow"
        assert data["state"] == "CONTACT_MATCH"
        assert data["display_name"] == "Uncle Bob"

    def test_screen_protection_disabled(self, client):
        data = client.post("/api/v1/calls/screen", json={
            "phone_number": SCAM_NUMBER,
            "protection_enabled": False,
        }).json()

        assert data["action"] == "allow"
        assert data["assessment"] is None

    def test_screen_invalid_number(self, client):
        response = client.post("/api/v1/calls/screen", json={"phone_number": "private"})
        assert response.status_code == 400

    def test_statistics_and_commands(self, client):
        client.post("/api/v1/calls/screen", json={"phone_number": CLEAN_NUMBER})
        client.post("/api/v1/calls/screen", json={"phone_number": SCAM_NUMBER})

        stats = client.get("/api/v1/calls/statistics").json()
        assert stats["counters"]["allowed"] == 1
        assert stats["counters"]["auto_rejected"] == 1
        assert stats["total"] == 2

        commands = client.get("/api/v1/calls/commands").json()["commands"]
        assert [c["command"] for c in commands] == ["reject", "allow"]


class TestNumbersEndpoint:
    """Tests for /api/v1/numbers"""

    def test_lookup_miss(self, client):
        data = client.get(f"/api/v1/numbers/{CLEAN_NUMBER}").json()
        assert data["outcome"] == "MISS"
        assert data["record"] is None

    def test_lookup_invalid(self, client):
        assert client.get("/api/v1/numbers/unknown").status_code == 400

    def test_report_scam_and_spam(self, client):
        scam = client.post("/api/v1/numbers/scam", json={"phone_number": "0821230000"})
        spam = client.post("/api/v1/numbers/spam", json={
            "phone_number": "0821231111", "confidence": 0.4, "source": "community",
        })

        assert scam.status_code == 200
        assert scam.json()["risk_level"] == "HIGH"
        assert scam.json()["tier"] == "scam"
        assert spam.json()["confidence"] == 0.4
        assert spam.json()["source"] == "community"

    def test_whitelist_add_and_remove(self, client):
        added = client.post("/api/v1/numbers/whitelist", json={"phone_number": SCAM_NUMBER})
        assert added.json()["tier"] == "whitelist"

        screened = client.post("/api/v1/calls/screen", json={"phone_number": SCAM_NUMBER}).json()
        assert screened["state"] == "WHITELISTED"

        assert client.delete(f"/api/v1/numbers/whitelist/{SCAM_NUMBER}").status_code == 200
        assert client.delete(f"/api/v1/numbers/whitelist/{SCAM_NUMBER}").status_code == 404

    def test_sync_purge_and_stats(self, client):
        response = client.post("/api/v1/numbers/sync", json={
            "scam_numbers": [{"phone_number": "0821230000"}],
            "spam_numbers": [{"phone_number": "0821231111"}, {"phone_number": "0821232222"}],
        })
        assert response.json()["imported"] == {"scam": 1, "spam": 2}

        assert client.post("/api/v1/numbers/purge-expired").json() == {"purged": 0}

        stats = client.get("/api/v1/numbers/stats/summary").json()
        assert stats["tiers"] == {"whitelist": 0, "scam": 1, "spam": 2}
        assert stats["last_sync"] is not None


class TestProvidersEndpoint:
    """Tests for /api/v1/providers"""

    def test_list_providers(self, client):
        data = client.get("/api/v1/providers/").json()

        assert data["strategy"] == "highest_risk"
        assert set(data["providers"]) == {"hiya", "truecaller", "telesign", "numverify"}
        assert data["providers"]["telesign"]["config"]["enabled"] is False

    def test_update_provider(self, client):
        response = client.patch("/api/v1/providers/telesign", json={"enabled": True, "weight": 0.9})

        assert response.status_code == 200
        assert response.json()["config"]["enabled"] is True
        assert response.json()["config"]["weight"] == 0.9
        assert client.patch("/api/v1/providers/missing", json={"enabled": True}).status_code == 404

    def test_set_strategy(self, client):
        response = client.put("/api/v1/providers/strategy", json={"strategy": "majority_vote"})
        assert response.json() == {"strategy": "majority_vote"}
        assert client.put("/api/v1/providers/strategy", json={"strategy": "coin_flip"}).status_code == 422

    def test_check_number_does_not_cache(self, client):
        data = client.post("/api/v1/providers/check", json={"phone_number": SCAM_NUMBER}).json()

        assert data["risk_level"] == "HIGH"
        assert data["primary_source"] == "hiya"
        assert client.get(f"/api/v1/numbers/{SCAM_NUMBER}").json()["outcome"] == "MISS"

        stats = client.get("/api/v1/providers/").json()["providers"]
        assert stats["hiya"]["total_requests"] == 1


class TestSessionsEndpoint:
    """Tests for /api/v1/sessions"""

    def test_session_lifecycle(self, client):
        created = client.post("/api/v1/sessions/", json={"phone_number": SCAM_NUMBER})
        assert created.status_code == 201
        session_id = created.json()["id"]

        assert client.post(f"/api/v1/sessions/{session_id}/status", json={"status": "connected"}).status_code == 200
        assert client.post(f"/api/v1/sessions/{session_id}/transcript", json={"payload": {"text": "hi"}}).status_code == 200
        assert client.post(f"/api/v1/sessions/{session_id}/results", json={"payload": {"risk": "HIGH"}}).status_code == 200
        assert client.post(f"/api/v1/sessions/{session_id}/warnings", json={"level": "SCAM"}).status_code == 200

        stats = client.get("/api/v1/sessions/statistics/summary").json()
        assert stats["active_sessions"] == 1
        assert stats["warnings_by_level"]["SCAM"] == 1

        closed = client.post(f"/api/v1/sessions/{session_id}/close").json()
        assert closed["status"] == "closed"
        assert closed["duration_ms"] >= 0

        session = client.get(f"/api/v1/sessions/{session_id}").json()
        assert session["transcript"][0]["payload"] == {"text": "hi"}

    @pytest.mark.parametrize("method,path,body", [
        ("get", "/api/v1/sessions/missing", None),
        ("post", "/api/v1/sessions/missing/transcript", {"payload": {}}),
        ("post", "/api/v1/sessions/missing/results", {"payload": {}}),
        ("post", "/api/v1/sessions/missing/warnings", {"level": "INFO"}),
        ("post", "/api/v1/sessions/missing/status", {"status": "connected"}),
        ("post", "/api/v1/sessions/missing/close", None),
    ])
    def test_unknown_session_404(self, client, method, path, body):
        kwargs = {"json": body} if body is not None else {}
        assert getattr(client, method)(path, **kwargs).status_code == 404

    def test_screening_creates_closed_session(self, client):
        data = client.post("/api/v1/calls/screen", json={"phone_number": SCAM_NUMBER}).json()

        session = client.get(f"/api/v1/sessions/{data['session_id']}").json()
        assert session["status"] == "closed"
        assert session["warnings"][0]["level"] == "SCAM"

    def test_cleanup(self, client):
        client.post("/api/v1/sessions/", json={"phone_number": SCAM_NUMBER})
        assert client.post("/api/v1/sessions/cleanup").json() == {"removed": 0}


class TestCountryCode:
    """Tests for a deployment with a non-default country code"""

    @pytest.fixture
    def us_client(self):
        from callshield.main import create_app

        settings = Settings(environment="testing", database_url="sqlite://", default_country_code="1")
        with TestClient(create_app(settings, ConfigManager(env="testing"))) as test_client:
            yield test_client

    def test_national_format_contact_matches(self, us_client):
        data = us_client.post("/api/v1/calls/screen", json={
            "phone_number": "0212345678",
            "contacts": {"0212345678": "Mom"},
        }).json()

        assert data["number"] == "+1212345678"
        assert data["state"] == "CONTACT_MATCH"
        assert data["display_name"] == "Mom"
        assert us_client.get("/api/v1/numbers/+1212345678").json()["outcome"] == "SAFE"

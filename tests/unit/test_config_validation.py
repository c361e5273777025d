"""
Unit tests for ConfigManager and startup validation
"""
import pytest

from callshield.core.config import ConfigManager, Settings
from callshield.core.validation import ProviderValidator, validate_providers_on_startup


@pytest.fixture
def config_dir(tmp_path):
    (tmp_path / "default.yaml").write_text(
        "aggregator:\n"
        "  strategy: highest_risk\n"
        "  overall_timeout_ms: 15000\n"
        "cache:\n"
        "  max_size: 100\n"
    )
    (tmp_path / "staging.yaml").write_text(
        "aggregator:\n"
        "  overall_timeout_ms: 8000\n"
    )
    (tmp_path / "providers.yaml").write_text(
        "providers:\n"
        "  risk:\n"
        "    - name: remote\n"
        "      type: http\n"
        "      url: ${RISK_URL}\n"
        "      api_key: ${RISK_KEY}\n"
    )
    return tmp_path


class TestConfigManager:
    """Tests for YAML layering"""

    def test_environment_overrides_default(self, config_dir):
        config = ConfigManager(env="staging", config_dir=config_dir)

        assert config.get("aggregator.overall_timeout_ms") == 8000
        assert config.get("aggregator.strategy") == "highest_risk"
        assert config.get("cache.max_size") == 100

    def test_missing_keys_default(self, config_dir):
        config = ConfigManager(env="staging", config_dir=config_dir)

        assert config.get("sessions.retention_seconds", 3600) == 3600
        assert config.get_section("sessions") == {}

    def test_env_var_substitution_in_lists(self, config_dir, monkeypatch):
        monkeypatch.setenv("RISK_URL", "https://risk.example.com")
        config = ConfigManager(env="staging", config_dir=config_dir)

        entry = config.get_risk_provider_configs()[0]
        assert entry["url"] == "https://risk.example.com"
        # Unset variables keep the placeholder
        assert entry["api_key"] == "${RISK_KEY}"

    def test_repo_config_loads(self):
        config = ConfigManager(env="development")

        names = [p["name"] for p in config.get_risk_provider_configs()]
        assert names == ["hiya", "truecaller", "telesign", "numverify"]
        assert config.get("aggregator.strategy") == "highest_risk"
        assert config.get("cache.max_size") == 10000

    def test_production_overrides(self):
        assert ConfigManager(env="production").get("aggregator.overall_timeout_ms") == 10000

    def test_settings_defaults(self, monkeypatch):
        monkeypatch.delenv("DATABASE_URL", raising=False)
        settings = Settings(_env_file=None)

        assert settings.database_url == "sqlite:///./callshield.db"
        assert settings.default_country_code == "27"
        assert settings.api_prefix == "/api/v1"


class TestProviderValidator:
    """Tests for startup validation"""

    def test_valid_configuration(self):
        validator = ProviderValidator()
        ok, results = validator.validate_all(
            {"strategy": "majority_vote", "overall_timeout_ms": 1000},
            [{"name": "hiya", "type": "demo", "weight": 1.0, "timeout_ms": 500}],
        )
        assert ok
        assert all(r.is_valid for r in results)

    def test_unknown_strategy(self):
        ok, results = ProviderValidator().validate_all({"strategy": "coin_flip"}, [])
        assert not ok
        assert any(r.setting == "strategy" and not r.is_valid for r in results)

    def test_enabled_provider_errors(self):
        ok, results = ProviderValidator().validate_all({}, [
            {"name": "remote", "type": "http", "url": "${RISK_URL}"},
            {"name": "bad", "type": "demo", "timeout_ms": 0, "weight": -1},
            {"name": "odd", "type": "fax"},
        ])
        errors = {(r.provider, r.setting) for r in results if not r.is_valid}

        assert not ok
        assert ("remote", "url") in errors
        assert ("bad", "timeout_ms") in errors
        assert ("bad", "weight") in errors
        assert ("odd", "type") in errors

    def test_disabled_provider_only_warns(self):
        entries = [
            {"name": "hiya", "type": "demo"},
            {"name": "remote", "type": "http", "enabled": False, "url": "${RISK_URL}"},
        ]

        ok, _ = ProviderValidator().validate_all({}, entries)
        assert ok
        ok, _ = ProviderValidator(strict=True).validate_all({}, entries)
        assert not ok

    def test_duplicate_names(self):
        ok, _ = ProviderValidator().validate_all({}, [
            {"name": "hiya", "type": "demo"},
            {"name": "hiya", "type": "demo"},
        ])
        assert not ok

    def test_validate_on_startup_raises(self):
        with pytest.raises(RuntimeError, match="strategy"):
            validate_providers_on_startup({"strategy": "coin_flip"}, [{"name": "hiya"}])

    def test_repo_config_valid_outside_strict(self):
        config = ConfigManager(env="development")
        validate_providers_on_startup(
            config.get_section("aggregator"), config.get_risk_provider_configs()
        )

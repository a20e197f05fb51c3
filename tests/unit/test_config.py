"""Unit tests for settings and the versioned regulatory tables."""

import json

import pytest
from pydantic import ValidationError

from gdprflow.config import RegulatoryConfig, Settings, load_regulatory_config
from gdprflow.errors import ConfigurationError


class TestSettings:

    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("LOG_JSON", raising=False)
        settings = Settings(_env_file=None, DATABASE_URL="sqlite://")

        assert settings.RETENTION_BATCH_SIZE == 1000
        assert settings.RETENTION_SWEEP_HOUR == 2
        assert settings.RETENTION_LEASE_SECONDS == 3600
        assert settings.CONSENT_WRITE_RETRIES == 3
        assert settings.DPIA_KEYWORD_HEURISTICS is False
        assert settings.LOG_JSON is True
        assert settings.REGULATORY_CONFIG_PATH is None

    def test_environment_override(self, monkeypatch):
        monkeypatch.setenv("RETENTION_BATCH_SIZE", "250")
        monkeypatch.setenv("DPIA_KEYWORD_HEURISTICS", "true")

        settings = Settings(_env_file=None)

        assert settings.RETENTION_BATCH_SIZE == 250
        assert settings.DPIA_KEYWORD_HEURISTICS is True

    def test_sweep_hour_bounds(self):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, RETENTION_SWEEP_HOUR=24)

    def test_retries_must_be_positive(self):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, CONSENT_WRITE_RETRIES=0)


class TestRegulatoryConfig:

    def test_defaults(self):
        config = RegulatoryConfig()

        assert config.version == "2024.1"
        assert config.consent_expiry_days["ESSENTIAL"] is None
        assert config.consent_expiry_days["ANALYTICS"] == 730
        assert config.default_retention_days["Session"] == 90
        assert len(config.default_retention_days) == 14

    def test_adequacy_is_case_insensitive(self):
        config = RegulatoryConfig()

        assert config.is_adequate_country("Japan")
        assert config.is_adequate_country("  UNITED KINGDOM ")
        assert not config.is_adequate_country("United States")

    def test_countries_normalized(self):
        config = RegulatoryConfig(adequate_countries=["Brazil ", "", "KENYA"])
        assert config.adequate_countries == ["brazil", "kenya"]

    def test_purpose_keys_normalized(self):
        config = RegulatoryConfig(consent_expiry_days={"analytics": 30, "essential": None})
        assert config.consent_expiry_days == {"ANALYTICS": 30, "ESSENTIAL": None}

    def test_non_positive_periods_rejected(self):
        with pytest.raises(ValidationError):
            RegulatoryConfig(consent_expiry_days={"ANALYTICS": 0})
        with pytest.raises(ValidationError):
            RegulatoryConfig(default_retention_days={"Session": -1})


class TestLoadRegulatoryConfig:

    def test_no_path_returns_defaults(self):
        assert load_regulatory_config(None).version == RegulatoryConfig().version

    def test_load_from_file(self, tmp_path):
        path = tmp_path / "regulatory.json"
        path.write_text(json.dumps({
            "version": "2025.2",
            "adequate_countries": ["Japan", "Brazil"],
            "default_retention_days": {"Session": 30},
        }))

        config = load_regulatory_config(str(path))

        assert config.version == "2025.2"
        assert config.is_adequate_country("brazil")
        assert config.default_retention_days == {"Session": 30}
        # Omitted tables keep their defaults
        assert config.consent_expiry_days["MARKETING"] == 730

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError, match="Cannot read"):
            load_regulatory_config(str(tmp_path / "absent.json"))

    def test_malformed_json(self, tmp_path):
        path = tmp_path / "regulatory.json"
        path.write_text("{not json")

        with pytest.raises(ConfigurationError, match="Cannot read"):
            load_regulatory_config(str(path))

    def test_invalid_values(self, tmp_path):
        path = tmp_path / "regulatory.json"
        path.write_text(json.dumps({"version": "x", "default_retention_days": {"User": 0}}))

        with pytest.raises(ConfigurationError, match="Invalid regulatory config"):
            load_regulatory_config(str(path))

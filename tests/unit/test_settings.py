"""Tests for application configuration."""

import pytest

from retention.config import Settings
from retention.domains.scoring.config import ScoringConfig


class TestSettings:
    def test_default_settings(self):
        settings = Settings()
        assert settings.app_name == "retention-engine"
        assert settings.app_version == "0.1.0"
        assert settings.port == 8000
        assert settings.channel_priority == "EMAIL,SMS,WHATSAPP"

    def test_settings_from_env(self, monkeypatch):
        monkeypatch.setenv("APP_NAME", "test-app")
        monkeypatch.setenv("PORT", "9000")
        monkeypatch.setenv("DEBUG", "true")
        monkeypatch.setenv("SCHEDULER_MAX_CONCURRENCY", "2")
        settings = Settings()
        assert settings.app_name == "test-app"
        assert settings.port == 9000
        assert settings.debug is True
        assert settings.scheduler_max_concurrency == 2

    def test_providers_unconfigured_by_default(self, monkeypatch):
        for name in ("POSTMARK_SERVER_TOKEN", "TWILIO_ACCOUNT_SID", "TWILIO_AUTH_TOKEN"):
            monkeypatch.delenv(name, raising=False)
        settings = Settings(_env_file=None)
        assert settings.postmark_server_token == ""
        assert settings.twilio_account_sid == ""


class TestScoringConfig:
    def test_env_overrides(self, monkeypatch):
        monkeypatch.setenv("SCORING_HIGH_RISK_CUTOFF", "75")
        monkeypatch.setenv("SCORING_EXPECTED_VISITS_PER_WEEK", "3")
        config = ScoringConfig.from_env()
        assert config.churn.high_cutoff == 75
        assert config.commitment.expected_visits_per_week == 3.0

    def test_env_weights_revalidated(self, monkeypatch):
        monkeypatch.setenv("SCORING_ATTENDANCE_DECAY_WEIGHT", "0.9")
        with pytest.raises(ValueError, match="must sum to 1.0"):
            ScoringConfig.from_env()

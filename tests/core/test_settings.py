"""
Tests for process settings and validator thresholds.
"""

import pytest

from core.exceptions import ConfigurationError
from core.settings import VeritasSettings, get_settings, parse_recipients, reset_settings, set_settings
from source_reliability import ReliabilityConfig
from validation import ValidationThresholds


ENV_KEYS = [
    "ENABLE_VERITAS_PROTOCOL",
    "VERITAS_ENABLE_MARKET",
    "VERITAS_ENABLE_SOCIAL",
    "VERITAS_ENABLE_ONCHAIN",
    "VERITAS_ENABLE_NEWS",
    "VERITAS_EMAIL_ENABLED",
    "VERITAS_ALERT_EMAIL",
    "VERITAS_UNRELIABLE_THRESHOLD",
    "VERITAS_RELIABLE_THRESHOLD",
    "VERITAS_RELIABILITY_HISTORY_SIZE",
    "VERITAS_PERSISTENCE_TIMEOUT_SECONDS",
    "VERITAS_EMAIL_TIMEOUT_SECONDS",
    "VERITAS_SOURCE_FETCH_TIMEOUT_SECONDS",
    "VERITAS_ORCHESTRATION_TIMEOUT_SECONDS",
    "VERITAS_TIMEOUT_MS",
    "VERITAS_FALLBACK_ON_ERROR",
    "VERITAS_PRICE_THRESHOLD",
    "VERITAS_PRICE_CRITICAL_THRESHOLD",
]


@pytest.fixture
def clean_env(monkeypatch):
    for key in ENV_KEYS:
        monkeypatch.delenv(key, raising=False)
    reset_settings()
    yield monkeypatch
    reset_settings()


class TestParseRecipients:
    def test_trims_and_drops_empties(self):
        assert parse_recipients(" a@x.io, ,b@x.io ,") == ["a@x.io", "b@x.io"]
    
    def test_empty(self):
        assert parse_recipients(None) == []
        assert parse_recipients("") == []


class TestVeritasSettings:
    def test_defaults_from_empty_env(self, clean_env):
        settings = VeritasSettings.from_env()
        
        assert settings.enabled is False
        assert settings.email_enabled is False
        assert settings.recipients == []
        assert settings.validation_timeout_ms == 5000.0
        assert settings.fallback_on_error is True
    
    def test_env_values(self, clean_env):
        clean_env.setenv("ENABLE_VERITAS_PROTOCOL", "true")
        clean_env.setenv("VERITAS_ENABLE_NEWS", "false")
        clean_env.setenv("VERITAS_EMAIL_ENABLED", "1")
        clean_env.setenv("VERITAS_ALERT_EMAIL", "ops@example.com, risk@example.com")
        clean_env.setenv("VERITAS_TIMEOUT_MS", "250")
        
        settings = VeritasSettings.from_env()
        
        assert settings.is_domain_enabled("market") is True
        assert settings.is_domain_enabled("news") is False
        assert settings.is_domain_enabled() is True
        assert settings.recipients == ["ops@example.com", "risk@example.com"]
        assert settings.should_email is True
        assert settings.validation_timeout_ms == 250.0
    
    def test_reliability_and_timeout_env_values(self, clean_env):
        clean_env.setenv("VERITAS_UNRELIABLE_THRESHOLD", "55")
        clean_env.setenv("VERITAS_RELIABLE_THRESHOLD", "85")
        clean_env.setenv("VERITAS_RELIABILITY_HISTORY_SIZE", "20")
        clean_env.setenv("VERITAS_SOURCE_FETCH_TIMEOUT_SECONDS", "2.5")
        clean_env.setenv("VERITAS_ORCHESTRATION_TIMEOUT_SECONDS", "30")
        clean_env.setenv("VERITAS_EMAIL_TIMEOUT_SECONDS", "4")
        
        settings = VeritasSettings.from_env()
        
        assert settings.unreliable_threshold == 55.0
        assert settings.reliable_threshold == 85.0
        assert settings.reliability_history_size == 20
        assert settings.source_fetch_timeout_seconds == 2.5
        assert settings.orchestration_timeout_seconds == 30.0
        assert settings.email_timeout_seconds == 4.0
        assert settings.persistence_timeout_seconds == 5.0
    
    def test_bad_history_size(self, clean_env):
        clean_env.setenv("VERITAS_RELIABILITY_HISTORY_SIZE", "lots")
        
        with pytest.raises(ConfigurationError):
            VeritasSettings.from_env()
    
    def test_thresholds_must_be_ordered(self):
        with pytest.raises(ConfigurationError):
            VeritasSettings(unreliable_threshold=95.0, reliable_threshold=90.0)
    
    def test_non_positive_fetch_timeout(self):
        with pytest.raises(ConfigurationError):
            VeritasSettings(source_fetch_timeout_seconds=0)
    
    def test_email_needs_recipients(self):
        assert VeritasSettings(email_enabled=True).should_email is False
    
    def test_bad_boolean(self, clean_env):
        clean_env.setenv("ENABLE_VERITAS_PROTOCOL", "maybe")
        
        with pytest.raises(ConfigurationError):
            VeritasSettings.from_env()
    
    def test_bad_timeout(self):
        with pytest.raises(ConfigurationError):
            VeritasSettings(validation_timeout_ms=0)
    
    def test_unknown_domain_override(self):
        with pytest.raises(ConfigurationError):
            VeritasSettings(domain_overrides={"weather": True})
    
    def test_process_settings_cached_until_reset(self, clean_env):
        clean_env.setenv("ENABLE_VERITAS_PROTOCOL", "true")
        first = get_settings()
        
        clean_env.setenv("ENABLE_VERITAS_PROTOCOL", "false")
        
        assert get_settings() is first
        reset_settings()
        assert get_settings().enabled is False
    
    def test_set_settings(self, clean_env):
        custom = VeritasSettings(enabled=True)
        set_settings(custom)
        
        assert get_settings() is custom


class TestValidationThresholds:
    def test_defaults(self):
        thresholds = ValidationThresholds()
        
        assert thresholds.price_threshold == 0.015
        assert thresholds.volume_threshold == 0.10
        assert thresholds.sentiment_point_threshold == 30.0
        assert thresholds.onchain_volume_cutoff == 20_000_000_000.0
    
    def test_from_env(self, clean_env):
        clean_env.setenv("VERITAS_PRICE_THRESHOLD", "0.02")
        clean_env.setenv("VERITAS_PRICE_CRITICAL_THRESHOLD", "0.08")
        
        thresholds = ValidationThresholds.from_env()
        
        assert thresholds.price_threshold == 0.02
        assert thresholds.price_critical_threshold == 0.08
    
    def test_from_env_rejects_text(self, clean_env):
        clean_env.setenv("VERITAS_PRICE_THRESHOLD", "two percent")
        
        with pytest.raises(ConfigurationError):
            ValidationThresholds.from_env()
    
    def test_critical_must_exceed_warning(self):
        with pytest.raises(ConfigurationError):
            ValidationThresholds(price_threshold=0.05, price_critical_threshold=0.05)
    
    def test_from_yaml(self, tmp_path):
        path = tmp_path / "thresholds.yaml"
        path.write_text("sentiment_point_threshold: 20\nnot_a_threshold: 1\n")
        
        thresholds = ValidationThresholds.from_yaml(path)
        
        assert thresholds.sentiment_point_threshold == 20.0
        assert thresholds.price_threshold == 0.015


class TestReliabilityConfig:
    def test_default_tiers(self):
        config = ReliabilityConfig()
        
        assert config.trust_weight_for(95) == 1.0
        assert config.trust_weight_for(90) == 1.0
        assert config.trust_weight_for(89.9) == 0.9
        assert config.trust_weight_for(65) == 0.7
        assert config.trust_weight_for(10) == 0.5
    
    def test_unordered_tiers_rejected(self):
        with pytest.raises(ConfigurationError):
            ReliabilityConfig(trust_tiers=((50.0, 0.6), (90.0, 1.0)))
    
    def test_from_settings(self):
        settings = VeritasSettings(
            unreliable_threshold=50.0, reliable_threshold=80.0, reliability_history_size=10
        )
        
        config = ReliabilityConfig.from_settings(settings)
        
        assert config.unreliable_threshold == 50.0
        assert config.reliable_threshold == 80.0
        assert config.history_size == 10
        assert config.trust_weight_for(95) == 1.0

"""
Core Module - Process Settings.

============================================================
RESPONSIBILITY
============================================================
Single configuration struct for the validation engine, resolved
once per process and passed down to the middleware, validators
and alert system. Call sites never read the environment directly.

============================================================
ENVIRONMENT
============================================================
ENABLE_VERITAS_PROTOCOL       global validation flag (default off)
VERITAS_ENABLE_<DOMAIN>       per-domain override (MARKET, SOCIAL, ONCHAIN, NEWS)
VERITAS_EMAIL_ENABLED         email routing for human-review alerts
VERITAS_ALERT_EMAIL           comma separated recipient list
VERITAS_UNRELIABLE_THRESHOLD  reliability score below which a source is flagged
VERITAS_RELIABLE_THRESHOLD    reliability score at or above which a source is reliable
VERITAS_RELIABILITY_HISTORY_SIZE  events kept per source
VERITAS_PERSISTENCE_TIMEOUT_SECONDS  alert persistence budget
VERITAS_EMAIL_TIMEOUT_SECONDS        per-recipient email budget
VERITAS_SOURCE_FETCH_TIMEOUT_SECONDS per-source fetch budget
VERITAS_ORCHESTRATION_TIMEOUT_SECONDS  deadline for validate_all
VERITAS_TIMEOUT_MS            middleware validation budget
VERITAS_FALLBACK_ON_ERROR     return data without validation on failure

============================================================
"""

import os
import logging
import threading
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from dotenv import load_dotenv

from core.exceptions import ConfigurationError


logger = logging.getLogger(__name__)

DOMAINS = ("market", "social", "onchain", "news")

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}

_TIMEOUT_KEYS = (
    ("persistence_timeout_seconds", "VERITAS_PERSISTENCE_TIMEOUT_SECONDS", 5.0),
    ("email_timeout_seconds", "VERITAS_EMAIL_TIMEOUT_SECONDS", 10.0),
    ("source_fetch_timeout_seconds", "VERITAS_SOURCE_FETCH_TIMEOUT_SECONDS", 5.0),
    ("orchestration_timeout_seconds", "VERITAS_ORCHESTRATION_TIMEOUT_SECONDS", 15.0),
)


def _parse_bool(key: str, raw: Optional[str], default: Optional[bool]) -> Optional[bool]:
    if raw is None or raw.strip() == "":
        return default
    value = raw.strip().lower()
    if value in _TRUE_VALUES:
        return True
    if value in _FALSE_VALUES:
        return False
    raise ConfigurationError(key, raw, "expected a boolean")


def _parse_float(key: str, raw: Optional[str], default: float) -> float:
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError as e:
        raise ConfigurationError(key, raw, "expected a number") from e


def _parse_int(key: str, raw: Optional[str], default: int) -> int:
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise ConfigurationError(key, raw, "expected an integer") from e


def parse_recipients(raw: Optional[str]) -> List[str]:
    """Split a comma separated recipient list, trimming whitespace and dropping empties."""
    if not raw:
        return []
    return [part.strip() for part in raw.split(",") if part.strip()]


@dataclass
class VeritasSettings:
    """Process-level validation settings."""
    
    enabled: bool = False
    domain_overrides: Dict[str, bool] = field(default_factory=dict)
    
    email_enabled: bool = False
    recipients: List[str] = field(default_factory=list)
    
    unreliable_threshold: float = 70.0
    reliable_threshold: float = 90.0
    reliability_history_size: int = 100
    
    validation_timeout_ms: float = 5000.0
    fallback_on_error: bool = True
    
    persistence_timeout_seconds: float = 5.0
    email_timeout_seconds: float = 10.0
    source_fetch_timeout_seconds: float = 5.0
    orchestration_timeout_seconds: float = 15.0
    
    def __post_init__(self) -> None:
        if self.validation_timeout_ms <= 0:
            raise ConfigurationError(
                "validation_timeout_ms", self.validation_timeout_ms, "must be positive"
            )
        for name in ("unreliable_threshold", "reliable_threshold"):
            value = getattr(self, name)
            if not 0 <= value <= 100:
                raise ConfigurationError(name, value, "must be within 0-100")
        if self.unreliable_threshold > self.reliable_threshold:
            raise ConfigurationError(
                "unreliable_threshold", self.unreliable_threshold,
                "must not exceed reliable_threshold",
            )
        if self.reliability_history_size < 1:
            raise ConfigurationError(
                "reliability_history_size", self.reliability_history_size, "must be >= 1"
            )
        for name, _, _ in _TIMEOUT_KEYS:
            value = getattr(self, name)
            if value <= 0:
                raise ConfigurationError(name, value, "must be positive")
        for domain in self.domain_overrides:
            if domain not in DOMAINS:
                raise ConfigurationError("domain_overrides", domain, "unknown domain")
    
    def is_domain_enabled(self, domain: Optional[str] = None) -> bool:
        """
        Resolve the validation flag for a domain.
        
        A per-domain override wins; otherwise the global flag applies.
        """
        if domain is not None and domain in self.domain_overrides:
            return self.domain_overrides[domain]
        return self.enabled
    
    @property
    def should_email(self) -> bool:
        return self.email_enabled and bool(self.recipients)
    
    @classmethod
    def from_env(cls) -> "VeritasSettings":
        """Load settings from environment variables (and .env if present)."""
        load_dotenv()
        
        overrides: Dict[str, bool] = {}
        for domain in DOMAINS:
            key = f"VERITAS_ENABLE_{domain.upper()}"
            value = _parse_bool(key, os.getenv(key), None)
            if value is not None:
                overrides[domain] = value
        
        return cls(
            enabled=_parse_bool(
                "ENABLE_VERITAS_PROTOCOL", os.getenv("ENABLE_VERITAS_PROTOCOL"), False
            ),
            domain_overrides=overrides,
            email_enabled=_parse_bool(
                "VERITAS_EMAIL_ENABLED", os.getenv("VERITAS_EMAIL_ENABLED"), False
            ),
            recipients=parse_recipients(os.getenv("VERITAS_ALERT_EMAIL")),
            unreliable_threshold=_parse_float(
                "VERITAS_UNRELIABLE_THRESHOLD", os.getenv("VERITAS_UNRELIABLE_THRESHOLD"), 70.0
            ),
            reliable_threshold=_parse_float(
                "VERITAS_RELIABLE_THRESHOLD", os.getenv("VERITAS_RELIABLE_THRESHOLD"), 90.0
            ),
            reliability_history_size=_parse_int(
                "VERITAS_RELIABILITY_HISTORY_SIZE", os.getenv("VERITAS_RELIABILITY_HISTORY_SIZE"), 100
            ),
            validation_timeout_ms=_parse_float(
                "VERITAS_TIMEOUT_MS", os.getenv("VERITAS_TIMEOUT_MS"), 5000.0
            ),
            fallback_on_error=_parse_bool(
                "VERITAS_FALLBACK_ON_ERROR", os.getenv("VERITAS_FALLBACK_ON_ERROR"), True
            ),
            **{
                name: _parse_float(key, os.getenv(key), default)
                for name, key, default in _TIMEOUT_KEYS
            },
        )


# ============================================================
# PROCESS DEFAULT
# ============================================================

_settings: Optional[VeritasSettings] = None
_settings_lock = threading.Lock()


def get_settings() -> VeritasSettings:
    """Get the settings resolved for this process, loading them on first use."""
    global _settings
    with _settings_lock:
        if _settings is None:
            _settings = VeritasSettings.from_env()
            logger.info(
                f"Veritas settings loaded: enabled={_settings.enabled}, "
                f"email_enabled={_settings.email_enabled}, "
                f"recipients={len(_settings.recipients)}"
            )
        return _settings


def set_settings(settings: VeritasSettings) -> None:
    """Install settings for this process."""
    global _settings
    with _settings_lock:
        _settings = settings


def reset_settings() -> None:
    """Forget the resolved settings so the next get_settings() reloads."""
    global _settings
    with _settings_lock:
        _settings = None

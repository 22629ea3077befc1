"""
Core Module Package.

Infrastructure shared by every other package:
- settings: process-level configuration struct
- clock: testable UTC clock
- exceptions: error taxonomy
- constants: severity, domain and alert type enums
"""

from core.clock import ClockProtocol, MockClock, SystemClock, next_timestamp
from core.constants import AlertType, Domain, Severity
from core.exceptions import (
    AlertNotFoundError,
    PersistenceError,
    ConfigurationError,
    DeliveryFailure,
    ImpossibilityError,
    ValidationRuntimeError,
    ValidationTimeoutError,
    VeritasError,
)
from core.settings import (
    VeritasSettings,
    get_settings,
    parse_recipients,
    reset_settings,
    set_settings,
)

__all__ = [
    "AlertType",
    "Domain",
    "Severity",
    "ClockProtocol",
    "MockClock",
    "SystemClock",
    "next_timestamp",
    "VeritasError",
    "ConfigurationError",
    "ImpossibilityError",
    "ValidationRuntimeError",
    "ValidationTimeoutError",
    "DeliveryFailure",
    "PersistenceError",
    "AlertNotFoundError",
    "VeritasSettings",
    "get_settings",
    "set_settings",
    "reset_settings",
    "parse_recipients",
]

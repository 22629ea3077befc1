"""
Core Module - Exceptions.

============================================================
RESPONSIBILITY
============================================================
Defines the error taxonomy for the validation engine.

Validators do not raise these across their public boundary.
Impossibility checks raise ImpossibilityError, and evaluate() turns
it (and any unexpected exception, wrapped in ValidationRuntimeError)
into a tagged outcome that is folded into a ValidationResult. The
middleware and alert store raise them to callers where the
propagation policy says so.

============================================================
EXCEPTION HIERARCHY
============================================================
VeritasError (base)
├── ConfigurationError
├── ImpossibilityError          fatal, discards the dataset
├── ValidationRuntimeError      unexpected failure inside a validator
├── ValidationTimeoutError      validator exceeded its budget
├── DeliveryFailure             persistence or email failure
└── PersistenceError            database operation failure
    └── AlertNotFoundError

============================================================
"""

import asyncio
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional


# ============================================================
# BASE EXCEPTION
# ============================================================

class VeritasError(Exception):
    """
    Base exception for all validation engine errors.
    
    All exceptions carry:
    - context: for debugging
    - cause: the underlying exception, if any
    - timestamp: when the error occurred
    """
    
    recoverable: bool = True
    
    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        cause: Optional[BaseException] = None,
    ):
        super().__init__(message)
        
        self.message = message
        self.context = context or {}
        self.cause = cause
        self.timestamp = datetime.now(timezone.utc)
        
        if cause:
            self.context["cause_type"] = type(cause).__name__
            self.context["cause_message"] = str(cause)
    
    def to_dict(self) -> Dict[str, Any]:
        """Serialize exception for logging/storage."""
        return {
            "type": type(self).__name__,
            "message": self.message,
            "recoverable": self.recoverable,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
            "cause": str(self.cause) if self.cause else None,
        }


class ConfigurationError(VeritasError):
    """Invalid configuration value."""
    
    recoverable = False
    
    def __init__(self, key: str, value: Any, reason: str):
        super().__init__(
            message=f"Invalid configuration for {key}: {reason}",
            context={"config_key": key, "actual_value": str(value)[:100]},
        )


# ============================================================
# DATA ERRORS
# ============================================================

class ImpossibilityError(VeritasError):
    """Logically contradictory data. Always fatal."""
    
    recoverable = False
    
    def __init__(
        self,
        message: str,
        check_name: str,
        affected_sources: Optional[List[str]] = None,
        recommendation: str = "",
        details: Optional[Dict[str, Any]] = None,
        **kwargs,
    ):
        context = kwargs.pop("context", {})
        context["check_name"] = check_name
        context["affected_sources"] = list(affected_sources or [])
        super().__init__(message, context=context, **kwargs)
        self.check_name = check_name
        self.affected_sources = list(affected_sources or [])
        self.recommendation = recommendation
        self.details = dict(details or {})


# ============================================================
# RUNTIME ERRORS
# ============================================================

class ValidationRuntimeError(VeritasError):
    """Unexpected exception inside a validator. Wraps the original as cause."""
    
    def __init__(self, domain: str, identifier: str, cause: BaseException):
        super().__init__(
            message=f"{domain} validation failed for {identifier}: {str(cause) or type(cause).__name__}",
            context={"domain": domain, "identifier": identifier},
            cause=cause,
        )
        self.domain = domain
        self.identifier = identifier


class ValidationTimeoutError(VeritasError, asyncio.TimeoutError):
    """Validator exceeded its time budget."""
    
    def __init__(self, timeout_ms: float):
        super().__init__(
            message=f"Validation timed out after {timeout_ms:.0f}ms",
            context={"timeout_ms": timeout_ms},
        )
        self.timeout_ms = timeout_ms


class DeliveryFailure(VeritasError):
    """Persistence or email delivery failed. Logged, never re-raised to validators."""
    
    def __init__(self, channel: str, message: str, **kwargs):
        context = kwargs.pop("context", {})
        context["channel"] = channel
        super().__init__(message, context=context, **kwargs)
        self.channel = channel


class PersistenceError(VeritasError):
    """Database operation failed and was rolled back."""


class AlertNotFoundError(PersistenceError):
    """No alert with the given id."""
    
    def __init__(self, alert_id: int):
        super().__init__(
            message=f"Alert {alert_id} not found",
            context={"alert_id": alert_id},
        )
        self.alert_id = alert_id

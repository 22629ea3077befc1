"""
Validation Middleware.

============================================================
PURPOSE
============================================================
Compose "fetch data" with "validate data" behind one call.

    FETCHING -> (VALIDATING | SKIPPED) -> DONE

- Validation disabled: data is returned without a validation
- Fetch failures always propagate
- The validator races a timeout; a late result is discarded
- On validator error or timeout with fallback enabled, data is
  returned without a validation. Without fallback the error
  propagates.

============================================================
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Generic, Optional, TypeVar

from core.exceptions import ValidationTimeoutError
from core.settings import VeritasSettings, get_settings


logger = logging.getLogger(__name__)

T = TypeVar("T")
V = TypeVar("V")

VALIDATION_FIELD = "veritasValidation"


@dataclass
class MiddlewareOptions:
    """
    Per-call options. None means use the process settings.
    
    Attributes:
        enable_veritas: Force validation on or off
        fallback_on_error: Return data without validation on failure
        timeout_ms: Validator time budget
        domain: Domain whose per-domain flag applies
    """
    enable_veritas: Optional[bool] = None
    fallback_on_error: Optional[bool] = None
    timeout_ms: Optional[float] = None
    domain: Optional[str] = None


@dataclass
class ValidatedData(Generic[T]):
    """Fetched data plus its validation. validation is None when not attempted or discarded."""
    data: T
    validation: Any = None
    
    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {"data": self.data}
        if self.validation is not None:
            validation = self.validation
            result["validation"] = validation.to_dict() if hasattr(validation, "to_dict") else validation
        return result


async def validate_with_veritas(
    fetcher: Callable[[], Awaitable[T]],
    validator: Callable[[T], Awaitable[Any]],
    options: Optional[MiddlewareOptions] = None,
    settings: Optional[VeritasSettings] = None,
) -> ValidatedData[T]:
    """
    Fetch data and, if enabled, validate it under a timeout.
    
    Args:
        fetcher: Coroutine function returning the data
        validator: Coroutine function validating the fetched data
        options: Per-call overrides
        settings: Process settings (defaults to get_settings())
    
    Raises:
        Whatever the fetcher raises
        ValidationTimeoutError: Timeout without fallback
        Whatever the validator raises, without fallback
    """
    options = options or MiddlewareOptions()
    settings = settings or get_settings()
    
    enabled = options.enable_veritas
    if enabled is None:
        enabled = settings.is_domain_enabled(options.domain)
    fallback = options.fallback_on_error
    if fallback is None:
        fallback = settings.fallback_on_error
    timeout_ms = options.timeout_ms if options.timeout_ms is not None else settings.validation_timeout_ms
    
    data = await fetcher()
    
    if not enabled:
        return ValidatedData(data=data)
    
    try:
        validation = await asyncio.wait_for(validator(data), timeout=timeout_ms / 1000)
    except asyncio.TimeoutError:
        if fallback:
            logger.warning(f"Validation timed out after {timeout_ms:.0f}ms, returning data without validation")
            return ValidatedData(data=data)
        raise ValidationTimeoutError(timeout_ms)
    except Exception as e:
        if fallback:
            logger.warning(f"Validation failed, returning data without validation: {e}")
            return ValidatedData(data=data)
        logger.error(f"Validation failed: {e}")
        raise
    
    return ValidatedData(data=data, validation=validation)


async def safe_validation(
    validator: Callable[[], Awaitable[V]],
    fallback: V,
) -> V:
    """Run a validator, returning fallback if it raises."""
    try:
        return await validator()
    except Exception as e:
        logger.error(f"Validation error, using fallback: {e}")
        return fallback


def create_validated_response(data: Dict[str, Any], validation: Any = None) -> Dict[str, Any]:
    """
    Attach a validation to a response payload.
    
    Returns data itself when validation is None; otherwise a shallow
    copy with a veritasValidation field. Existing fields are never
    changed. If data already carries the field, it is kept as is.
    """
    if validation is None:
        return data
    if VALIDATION_FIELD in data:
        logger.warning(f"Response already has a {VALIDATION_FIELD} field, keeping it")
        return dict(data)
    return {**data, VALIDATION_FIELD: validation}

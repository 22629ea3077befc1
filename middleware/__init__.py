"""
Validation Middleware.

Composition points for HTTP handlers: fetch then validate under a
timeout, merge the validation into the response, cache results.
"""

from .cache import ValidationCache
from .validation import (
    MiddlewareOptions,
    ValidatedData,
    create_validated_response,
    safe_validation,
    validate_with_veritas,
)

__all__ = [
    "ValidationCache",
    "MiddlewareOptions",
    "ValidatedData",
    "create_validated_response",
    "safe_validation",
    "validate_with_veritas",
]

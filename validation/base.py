"""
Validation - Base Validator.

============================================================
PURPOSE
============================================================

Shared skeleton for every domain validator:

1. Impossibility check (highest priority). A hit short-circuits
   with a fatal, zero-confidence result and no discrepancies.
2. Cross-source consistency checks, implemented per domain.
3. Quality scoring, clamped to 0-100.
4. Missing data yields a neutral result (confidence 50, one
   warning) instead of a failure.
5. Any unexpected error becomes a zero-confidence result with a
   single validation_error alert. validate() never raises.

Each run first produces a tagged outcome (Ok / Fatal /
RuntimeFailure) which resolve() folds into a ValidationResult.
ImpossibilityError from a check becomes Fatal; any other exception
is wrapped in ValidationRuntimeError and becomes RuntimeFailure.

============================================================
"""

import logging
import time
from abc import ABC, abstractmethod
from typing import Any, Dict, Iterable, List, Mapping, Optional, Protocol

from alerting.models import AlertNotification
from core.constants import AlertType, Domain, Severity
from core.exceptions import ImpossibilityError, ValidationRuntimeError
from source_reliability import SourceReliabilityTracker

from .config import ValidationThresholds
from .models import (
    DataQualitySummary,
    Fatal,
    Ok,
    RuntimeFailure,
    ValidationAlert,
    ValidationOutcome,
    ValidationResult,
)


logger = logging.getLogger(__name__)

VALIDATION_ERROR_CHECK = "validation_error"


class AlertSink(Protocol):
    """Receives notifications without blocking the validator."""
    
    def submit(self, notification: AlertNotification) -> None:
        ...


# =============================================================
# NUMERIC HELPERS
# =============================================================


def relative_spread(values: Iterable[float]) -> float:
    """
    (max - min) / min across values.
    
    Falls back to max as the denominator when min is zero, so a
    source reporting zero against non-zero peers scores 1.0.
    """
    values = list(values)
    if len(values) < 2:
        return 0.0
    low, high = min(values), max(values)
    if low > 0:
        return (high - low) / low
    if high > 0:
        return (high - low) / high
    return 0.0


def clamp_score(score: float) -> float:
    return max(0.0, min(100.0, score))


# =============================================================
# BASE VALIDATOR
# =============================================================


class BaseValidator(ABC):
    """
    Base class for domain validators.
    
    Subclasses define domain, impossibility_check and implement
    _parse_payload, _check_impossibility and _check_consistency.
    """
    
    domain: Domain
    impossibility_check: str
    impossibility_alert_type: AlertType = AlertType.FATAL_ERROR
    
    def __init__(
        self,
        tracker: Optional[SourceReliabilityTracker] = None,
        alert_sink: Optional[AlertSink] = None,
        thresholds: Optional[ValidationThresholds] = None,
    ) -> None:
        """
        Initialize validator.
        
        Args:
            tracker: Reliability tracker used for trust weights
            alert_sink: Where notifications are submitted (optional)
            thresholds: Threshold configuration
        """
        self._tracker = tracker or SourceReliabilityTracker()
        self._alert_sink = alert_sink
        self._thresholds = thresholds or ValidationThresholds()
    
    @property
    def tracker(self) -> SourceReliabilityTracker:
        return self._tracker
    
    @property
    def thresholds(self) -> ValidationThresholds:
        return self._thresholds
    
    # =========================================================
    # TEMPLATE
    # =========================================================
    
    def evaluate(self, identifier: str, raw: Any) -> ValidationOutcome:
        """Run the checks and return the tagged outcome."""
        try:
            payload = self._parse_payload(raw)
            self._check_impossibility(identifier, payload)
            return Ok(self._check_consistency(identifier, payload))
        except ImpossibilityError as e:
            return Fatal.from_error(e)
        except Exception as e:
            error = ValidationRuntimeError(self.domain.value, identifier, cause=e)
            logger.error(f"[{self.domain.value}] {error}", exc_info=True)
            return RuntimeFailure.from_error(error)
    
    def resolve(self, identifier: str, outcome: ValidationOutcome) -> ValidationResult:
        """Fold a tagged outcome into a ValidationResult, dispatching notifications."""
        if isinstance(outcome, Ok):
            result = outcome.result
        elif isinstance(outcome, Fatal):
            result = self._fatal_result(identifier, outcome)
        else:
            result = self._error_result(identifier, outcome)
        
        result.domain = self.domain
        return result
    
    def run(self, identifier: str, raw: Any) -> ValidationResult:
        start_time = time.time()
        result = self.resolve(identifier, self.evaluate(identifier, raw))
        self._log_result(identifier, result, (time.time() - start_time) * 1000)
        return result
    
    @abstractmethod
    def _parse_payload(self, raw: Any) -> Any:
        """Normalize the caller's payload. May raise on malformed input."""
    
    @abstractmethod
    def _check_impossibility(self, identifier: str, payload: Any) -> None:
        """
        Raise ImpossibilityError if the data cannot exist.
        
        Raises:
            ImpossibilityError: Contradictory data; the dataset is discarded
        """
    
    @abstractmethod
    def _check_consistency(self, identifier: str, payload: Any) -> ValidationResult:
        """Cross-source checks and scoring for data that passed the impossibility check."""
    
    # =========================================================
    # RESULT BUILDERS
    # =========================================================
    
    def _new_result(self) -> ValidationResult:
        """Fresh result with the impossibility check already passed."""
        summary = DataQualitySummary()
        summary.pass_check(self.impossibility_check)
        return ValidationResult(is_valid=True, confidence=0.0, data_quality_summary=summary)
    
    def _alert(
        self,
        severity: Severity,
        message: str,
        affected_sources: Optional[List[str]] = None,
        recommendation: str = "",
        variance: Optional[float] = None,
    ) -> ValidationAlert:
        return ValidationAlert(
            severity=severity,
            domain=self.domain,
            message=message,
            affected_sources=list(affected_sources or []),
            recommendation=recommendation,
            variance=variance,
        )
    
    def _finalize(self, result: ValidationResult, score: float) -> ValidationResult:
        """Apply the domain score to confidence, overall and per-domain fields."""
        score = float(round(clamp_score(score)))
        result.confidence = score
        result.data_quality_summary.overall_score = score
        result.data_quality_summary.per_domain_scores[self.domain.value] = score
        result.is_valid = not result.has_fatal
        return result
    
    def _penalty_score(self, result: ValidationResult) -> float:
        """100 minus a fixed penalty per warning or error alert."""
        penalised = [
            a for a in result.alerts if a.severity in (Severity.WARNING, Severity.ERROR)
        ]
        return clamp_score(100.0 - self._thresholds.alert_penalty * len(penalised))
    
    def _neutral_result(
        self,
        message: str,
        check_name: str,
        affected_sources: Optional[List[str]] = None,
        consensus: Optional[Dict[str, float]] = None,
    ) -> ValidationResult:
        """Result for a comparison that cannot run because one side is absent."""
        result = self._new_result()
        result.alerts.append(
            self._alert(
                Severity.WARNING,
                message,
                affected_sources,
                recommendation="Proceed with reduced trust until the missing data is available",
            )
        )
        result.data_quality_summary.fail_check(check_name)
        result.consensus.update(consensus or {})
        return self._finalize(result, self._thresholds.neutral_confidence)
    
    def _fatal_result(self, identifier: str, fatal: Fatal) -> ValidationResult:
        alert = self._alert(
            Severity.FATAL,
            fatal.reason,
            fatal.affected_sources,
            recommendation=fatal.recommendation or "Discard this dataset and review the sources",
        )
        summary = DataQualitySummary()
        summary.fail_check(self.impossibility_check)
        summary.fail_check(fatal.check_name)
        
        self._notify(
            identifier,
            alert,
            self.impossibility_alert_type,
            requires_human_review=True,
            details=fatal.details,
        )
        
        return ValidationResult(
            is_valid=False,
            confidence=0.0,
            alerts=[alert],
            discrepancies=[],
            data_quality_summary=summary,
        )
    
    def _error_result(self, identifier: str, failure: RuntimeFailure) -> ValidationResult:
        alert = self._alert(
            Severity.ERROR,
            f"{self.domain.value} validation failed: {failure.reason}",
            recommendation="Treat this data as unvalidated",
        )
        summary = DataQualitySummary()
        summary.fail_check(VALIDATION_ERROR_CHECK)
        
        self._notify(
            identifier,
            alert,
            AlertType.VALIDATION_ERROR,
            requires_human_review=False,
            details=failure.details,
        )
        
        return ValidationResult(
            is_valid=False,
            confidence=0.0,
            alerts=[alert],
            data_quality_summary=summary,
        )
    
    # =========================================================
    # SIDE EFFECTS
    # =========================================================
    
    def _notify(
        self,
        identifier: str,
        alert: ValidationAlert,
        alert_type: AlertType,
        requires_human_review: bool,
        threshold: Optional[float] = None,
        details: Optional[Mapping[str, Any]] = None,
    ) -> None:
        """Hand a notification to the alert sink. Never raises."""
        if self._alert_sink is None:
            return
        
        notification = AlertNotification(
            symbol=identifier,
            severity=alert.severity,
            domain=alert.domain,
            alert_type=alert_type,
            message=alert.message,
            affected_sources=list(alert.affected_sources),
            recommendation=alert.recommendation,
            variance=alert.variance,
            threshold=threshold,
            details=dict(details or {}),
            requires_human_review=requires_human_review,
        )
        try:
            self._alert_sink.submit(notification)
        except Exception as e:
            logger.error(f"[{self.domain.value}] Failed to submit alert for {identifier}: {e}")
    
    def _weighted_average(self, values: Mapping[str, float]) -> float:
        """Average of values weighted by each source's trust weight."""
        weights = {name: self._tracker.get_trust_weight(name) for name in values}
        total_weight = sum(weights.values())
        if total_weight == 0:
            return sum(values.values()) / len(values)
        return sum(values[name] * weights[name] for name in values) / total_weight
    
    def _log_result(self, identifier: str, result: ValidationResult, duration_ms: float) -> None:
        log_level = logging.INFO
        severity = result.highest_severity
        if severity in (Severity.ERROR, Severity.FATAL):
            log_level = logging.ERROR
        elif severity == Severity.WARNING:
            log_level = logging.WARNING
        
        logger.log(
            log_level,
            f"[{self.domain.value}] {identifier}: valid={result.is_valid} "
            f"confidence={result.confidence:.0f} alerts={len(result.alerts)} "
            f"discrepancies={len(result.discrepancies)} [{duration_ms:.1f}ms]"
        )

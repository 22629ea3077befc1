"""
Validation - Data Models.

============================================================
CORE DATA STRUCTURES
============================================================

- SourceReading: one source's value for one metric
- ValidationAlert: finding raised by a validator
- Discrepancy: measured disagreement between sources
- DataQualitySummary: scores and passed / failed checks
- ValidationResult: everything a validator returns
- Ok / Fatal / RuntimeFailure: tagged outcome of a validator run

============================================================
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

from core.constants import Domain, Severity
from core.exceptions import ImpossibilityError, ValidationRuntimeError


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# =============================================================
# READINGS
# =============================================================


@dataclass(frozen=True)
class SourceReading:
    """One source's value for one metric. Consumed immediately, never stored."""
    source_name: str
    metric_name: str
    value: float
    timestamp: datetime = field(default_factory=_utcnow)


# =============================================================
# FINDINGS
# =============================================================


@dataclass
class ValidationAlert:
    """A finding raised by a validator."""
    severity: Severity
    domain: Domain
    message: str
    affected_sources: List[str] = field(default_factory=list)
    recommendation: str = ""
    variance: Optional[float] = None
    
    def to_dict(self) -> Dict[str, Any]:
        return {
            "severity": self.severity.value,
            "domain": self.domain.value,
            "message": self.message,
            "affected_sources": list(self.affected_sources),
            "recommendation": self.recommendation,
            "variance": self.variance,
        }


@dataclass(frozen=True)
class SourceValue:
    name: str
    value: float


@dataclass
class Discrepancy:
    """
    Disagreement between two or more sources on one metric.
    
    exceeded is derived, so it always equals variance > threshold.
    """
    metric: str
    sources: List[SourceValue]
    variance: float
    threshold: float
    
    @property
    def exceeded(self) -> bool:
        return self.variance > self.threshold
    
    def to_dict(self) -> Dict[str, Any]:
        return {
            "metric": self.metric,
            "sources": [{"name": s.name, "value": s.value} for s in self.sources],
            "variance": self.variance,
            "threshold": self.threshold,
            "exceeded": self.exceeded,
        }


@dataclass
class DataQualitySummary:
    """
    Scores and check outcomes of one validation.
    
    A check name lives in exactly one of passed_checks / failed_checks;
    recording it again moves it.
    """
    overall_score: float = 0.0
    per_domain_scores: Dict[str, float] = field(
        default_factory=lambda: {d.value: 0.0 for d in Domain}
    )
    passed_checks: List[str] = field(default_factory=list)
    failed_checks: List[str] = field(default_factory=list)
    
    def pass_check(self, name: str) -> None:
        if name in self.failed_checks:
            self.failed_checks.remove(name)
        if name not in self.passed_checks:
            self.passed_checks.append(name)
    
    def fail_check(self, name: str) -> None:
        if name in self.passed_checks:
            self.passed_checks.remove(name)
        if name not in self.failed_checks:
            self.failed_checks.append(name)
    
    @property
    def total_checks(self) -> int:
        return len(self.passed_checks) + len(self.failed_checks)
    
    @property
    def pass_rate(self) -> float:
        """Percentage of checks passed; 100 when nothing was checked."""
        if self.total_checks == 0:
            return 100.0
        return len(self.passed_checks) * 100.0 / self.total_checks
    
    def to_dict(self) -> Dict[str, Any]:
        return {
            "overall_score": self.overall_score,
            "per_domain_scores": dict(self.per_domain_scores),
            "passed_checks": list(self.passed_checks),
            "failed_checks": list(self.failed_checks),
        }


@dataclass
class ValidationResult:
    """
    Outcome of validating one domain for one identifier.
    
    consensus holds the trust-weighted value per metric where the
    validator computed one.
    """
    is_valid: bool
    confidence: float
    alerts: List[ValidationAlert] = field(default_factory=list)
    discrepancies: List[Discrepancy] = field(default_factory=list)
    data_quality_summary: DataQualitySummary = field(default_factory=DataQualitySummary)
    domain: Optional[Domain] = None
    consensus: Dict[str, float] = field(default_factory=dict)
    
    @property
    def has_fatal(self) -> bool:
        return any(a.severity == Severity.FATAL for a in self.alerts)
    
    @property
    def highest_severity(self) -> Optional[Severity]:
        if not self.alerts:
            return None
        return max((a.severity for a in self.alerts), key=lambda s: s.rank)
    
    def alerts_with(self, severity: Severity) -> List[ValidationAlert]:
        return [a for a in self.alerts if a.severity == severity]
    
    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for responses/logging."""
        return {
            "is_valid": self.is_valid,
            "confidence": self.confidence,
            "domain": self.domain.value if self.domain else None,
            "alerts": [a.to_dict() for a in self.alerts],
            "discrepancies": [d.to_dict() for d in self.discrepancies],
            "data_quality_summary": self.data_quality_summary.to_dict(),
            "consensus": dict(self.consensus),
        }


# =============================================================
# TAGGED OUTCOMES
# =============================================================


@dataclass(frozen=True)
class Ok:
    """Validation ran to completion (including neutral missing-data results)."""
    result: ValidationResult


@dataclass(frozen=True)
class Fatal:
    """Data is logically impossible; the dataset is discarded."""
    reason: str
    check_name: str
    affected_sources: List[str] = field(default_factory=list)
    recommendation: str = ""
    details: Dict[str, Any] = field(default_factory=dict)
    
    @classmethod
    def from_error(cls, error: ImpossibilityError) -> "Fatal":
        return cls(
            reason=error.message,
            check_name=error.check_name,
            affected_sources=list(error.affected_sources),
            recommendation=error.recommendation,
            details=dict(error.details),
        )


@dataclass(frozen=True)
class RuntimeFailure:
    """Validator hit an unexpected error."""
    reason: str
    error_type: str = "Exception"
    error: Optional[ValidationRuntimeError] = field(default=None, compare=False)
    
    @classmethod
    def from_error(cls, error: ValidationRuntimeError) -> "RuntimeFailure":
        cause = error.cause
        return cls(
            reason=str(cause) or type(cause).__name__,
            error_type=type(cause).__name__,
            error=error,
        )
    
    @property
    def details(self) -> Dict[str, Any]:
        details: Dict[str, Any] = {"error_type": self.error_type}
        if self.error is not None:
            details.update(self.error.context)
        return details


ValidationOutcome = Union[Ok, Fatal, RuntimeFailure]

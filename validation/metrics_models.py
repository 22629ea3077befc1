"""
Validation - Metrics Models.

- ValidationMetrics: outcome and alert counts of one orchestrated run
- AggregatedMetrics: totals and averages over a time window
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional


@dataclass
class ValidationMetrics:
    """
    One validation attempt.

    success: every domain valid and the run finished in time
    completed: the run was neither halted nor timed out
    critical_alerts counts FATAL alerts.
    """
    symbol: str
    timestamp: datetime
    success: bool
    completed: bool
    halted: bool
    timed_out: bool
    duration_ms: int
    confidence_score: Optional[int] = None
    data_quality_score: Optional[int] = None
    total_alerts: int = 0
    critical_alerts: int = 0
    error_alerts: int = 0
    warning_alerts: int = 0
    info_alerts: int = 0
    completed_steps: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "symbol": self.symbol,
            "timestamp": self.timestamp.isoformat(),
            "success": self.success,
            "completed": self.completed,
            "halted": self.halted,
            "timed_out": self.timed_out,
            "duration_ms": self.duration_ms,
            "confidence_score": self.confidence_score,
            "data_quality_score": self.data_quality_score,
            "total_alerts": self.total_alerts,
            "critical_alerts": self.critical_alerts,
            "error_alerts": self.error_alerts,
            "warning_alerts": self.warning_alerts,
            "info_alerts": self.info_alerts,
            "completed_steps": list(self.completed_steps),
            "errors": list(self.errors),
        }


@dataclass
class AggregatedMetrics:
    """Validation health over a window. All zero when storage is unavailable."""
    total_attempts: int = 0
    successful_attempts: int = 0
    failed_attempts: int = 0
    halted_attempts: int = 0
    timed_out_attempts: int = 0
    average_duration_ms: int = 0
    average_confidence_score: int = 0
    average_data_quality_score: int = 0
    total_alerts: int = 0
    critical_alerts: int = 0
    error_alerts: int = 0
    warning_alerts: int = 0
    info_alerts: int = 0
    most_common_errors: List[Dict[str, Any]] = field(default_factory=list)
    symbols_validated: List[str] = field(default_factory=list)

    @property
    def success_rate(self) -> float:
        if self.total_attempts == 0:
            return 0.0
        return self.successful_attempts * 100.0 / self.total_attempts

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_attempts": self.total_attempts,
            "successful_attempts": self.successful_attempts,
            "failed_attempts": self.failed_attempts,
            "halted_attempts": self.halted_attempts,
            "timed_out_attempts": self.timed_out_attempts,
            "success_rate": round(self.success_rate, 1),
            "average_duration_ms": self.average_duration_ms,
            "average_confidence_score": self.average_confidence_score,
            "average_data_quality_score": self.average_data_quality_score,
            "total_alerts": self.total_alerts,
            "critical_alerts": self.critical_alerts,
            "error_alerts": self.error_alerts,
            "warning_alerts": self.warning_alerts,
            "info_alerts": self.info_alerts,
            "most_common_errors": [dict(e) for e in self.most_common_errors],
            "symbols_validated": list(self.symbols_validated),
        }

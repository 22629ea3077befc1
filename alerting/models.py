"""
Alert System - Data Models.

- AlertNotification: a validator finding plus routing and review state
- AlertStatistics: counts for the review dashboard
- EmailMessage / EmailResult: transport boundary
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from core.constants import AlertType, Domain, Severity


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class AlertNotification:
    """
    Persisted alert notification.
    
    Created by a validator or a notify_* helper, queued in memory,
    persisted, optionally emailed, later marked reviewed by an operator.
    """
    symbol: str
    severity: Severity
    domain: Domain
    alert_type: AlertType
    message: str
    affected_sources: List[str] = field(default_factory=list)
    recommendation: str = ""
    variance: Optional[float] = None
    threshold: Optional[float] = None
    details: Dict[str, Any] = field(default_factory=dict)
    requires_human_review: bool = False
    timestamp: datetime = field(default_factory=_utcnow)
    
    # Review state
    reviewed: bool = False
    reviewed_by: Optional[str] = None
    reviewed_at: Optional[datetime] = None
    review_notes: Optional[str] = None
    
    # Assigned by the store
    id: Optional[int] = None
    
    @property
    def should_email(self) -> bool:
        """Fatal alerts and anything flagged for review go to a human."""
        return self.severity == Severity.FATAL or self.requires_human_review
    
    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "symbol": self.symbol,
            "severity": self.severity.value,
            "domain": self.domain.value,
            "alert_type": self.alert_type.value,
            "message": self.message,
            "affected_sources": list(self.affected_sources),
            "recommendation": self.recommendation,
            "variance": self.variance,
            "threshold": self.threshold,
            "details": dict(self.details),
            "requires_human_review": self.requires_human_review,
            "timestamp": self.timestamp.isoformat(),
            "reviewed": self.reviewed,
            "reviewed_by": self.reviewed_by,
            "reviewed_at": self.reviewed_at.isoformat() if self.reviewed_at else None,
            "review_notes": self.review_notes,
        }


@dataclass
class AlertStatistics:
    """Alert counts. All zero when storage is unavailable."""
    total: int = 0
    pending: int = 0
    reviewed: int = 0
    by_severity: Dict[str, int] = field(default_factory=dict)
    by_type: Dict[str, int] = field(default_factory=dict)
    
    def to_dict(self) -> Dict[str, Any]:
        return {
            "total": self.total,
            "pending": self.pending,
            "reviewed": self.reviewed,
            "by_severity": dict(self.by_severity),
            "by_type": dict(self.by_type),
        }


@dataclass(frozen=True)
class EmailMessage:
    to: str
    subject: str
    html: str


@dataclass(frozen=True)
class EmailResult:
    success: bool
    error: Optional[str] = None

"""
Alert System - Durable Store.

SQLAlchemy repository over the veritas_alerts table. Every method
raises PersistenceError on storage failure; callers decide whether
to degrade.
"""

import logging
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import func, select
from sqlalchemy.orm import sessionmaker

from core.constants import AlertType, Domain, Severity
from core.exceptions import AlertNotFoundError
from database.engine import transaction_scope
from database.models_veritas import VeritasAlertRecord

from .models import AlertNotification, AlertStatistics


logger = logging.getLogger(__name__)


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _to_notification(record: VeritasAlertRecord) -> AlertNotification:
    return AlertNotification(
        id=record.id,
        symbol=record.symbol,
        severity=Severity(record.severity),
        domain=Domain(record.domain),
        alert_type=AlertType(record.alert_type),
        message=record.message,
        affected_sources=list(record.affected_sources or []),
        recommendation=record.recommendation or "",
        variance=record.variance,
        threshold=record.threshold,
        details=dict(record.details or {}),
        requires_human_review=record.requires_human_review,
        timestamp=_as_utc(record.timestamp),
        reviewed=record.reviewed,
        reviewed_by=record.reviewed_by,
        reviewed_at=_as_utc(record.reviewed_at),
        review_notes=record.review_notes,
    )


class AlertStore:
    """Insert, list, review and count alert notifications."""
    
    def __init__(self, session_factory: sessionmaker) -> None:
        self._session_factory = session_factory
    
    def insert(self, notification: AlertNotification) -> int:
        """Persist a notification and return its new id."""
        with transaction_scope(self._session_factory) as session:
            record = VeritasAlertRecord(
                symbol=notification.symbol,
                severity=notification.severity.value,
                domain=notification.domain.value,
                alert_type=notification.alert_type.value,
                message=notification.message,
                recommendation=notification.recommendation,
                affected_sources=list(notification.affected_sources),
                variance=notification.variance,
                threshold=notification.threshold,
                details=dict(notification.details),
                timestamp=notification.timestamp,
                requires_human_review=notification.requires_human_review,
                reviewed=notification.reviewed,
                reviewed_by=notification.reviewed_by,
                reviewed_at=notification.reviewed_at,
                review_notes=notification.review_notes,
            )
            session.add(record)
            session.flush()
            return record.id
    
    def pending(self, limit: int = 50) -> List[AlertNotification]:
        """Unreviewed notifications, newest first."""
        with transaction_scope(self._session_factory) as session:
            query = (
                select(VeritasAlertRecord)
                .where(VeritasAlertRecord.reviewed.is_(False))
                .order_by(VeritasAlertRecord.timestamp.desc(), VeritasAlertRecord.id.desc())
                .limit(limit)
            )
            return [_to_notification(r) for r in session.execute(query).scalars()]
    
    def all(self, limit: int = 100) -> List[AlertNotification]:
        """All notifications, newest first."""
        with transaction_scope(self._session_factory) as session:
            query = (
                select(VeritasAlertRecord)
                .order_by(VeritasAlertRecord.timestamp.desc(), VeritasAlertRecord.id.desc())
                .limit(limit)
            )
            return [_to_notification(r) for r in session.execute(query).scalars()]
    
    def mark_reviewed(
        self,
        alert_id: int,
        reviewed_by: str,
        notes: Optional[str] = None,
        reviewed_at: Optional[datetime] = None,
    ) -> AlertNotification:
        """
        Record a human review.
        
        Raises:
            AlertNotFoundError: No alert with this id
        """
        with transaction_scope(self._session_factory) as session:
            record = session.get(VeritasAlertRecord, alert_id)
            if record is None:
                raise AlertNotFoundError(alert_id)
            record.reviewed = True
            record.reviewed_by = reviewed_by
            record.reviewed_at = reviewed_at or datetime.now(timezone.utc)
            record.review_notes = notes
            session.flush()
            return _to_notification(record)
    
    def statistics(self) -> AlertStatistics:
        with transaction_scope(self._session_factory) as session:
            total = session.execute(select(func.count(VeritasAlertRecord.id))).scalar_one()
            reviewed = session.execute(
                select(func.count(VeritasAlertRecord.id)).where(VeritasAlertRecord.reviewed.is_(True))
            ).scalar_one()
            by_severity = dict(session.execute(
                select(VeritasAlertRecord.severity, func.count(VeritasAlertRecord.id))
                .group_by(VeritasAlertRecord.severity)
            ).all())
            by_type = dict(session.execute(
                select(VeritasAlertRecord.alert_type, func.count(VeritasAlertRecord.id))
                .group_by(VeritasAlertRecord.alert_type)
            ).all())
        
        return AlertStatistics(
            total=total,
            pending=total - reviewed,
            reviewed=reviewed,
            by_severity=by_severity,
            by_type=by_type,
        )

"""
Validation - Metrics Store.

SQLAlchemy repository over the veritas_validation_metrics table.
Every method raises PersistenceError on storage failure.
"""

from collections import Counter
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import case, func, select
from sqlalchemy.orm import sessionmaker

from database.engine import transaction_scope
from database.models_veritas import ValidationMetricsRecord

from .metrics_models import AggregatedMetrics, ValidationMetrics


MOST_COMMON_ERRORS = 10


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _to_metrics(record: ValidationMetricsRecord) -> ValidationMetrics:
    return ValidationMetrics(
        symbol=record.symbol,
        timestamp=_as_utc(record.timestamp),
        success=record.success,
        completed=record.completed,
        halted=record.halted,
        timed_out=record.timed_out,
        duration_ms=record.duration_ms,
        confidence_score=record.confidence_score,
        data_quality_score=record.data_quality_score,
        total_alerts=record.total_alerts,
        critical_alerts=record.critical_alerts,
        error_alerts=record.error_alerts,
        warning_alerts=record.warning_alerts,
        info_alerts=record.info_alerts,
        completed_steps=list(record.completed_steps or []),
        errors=list(record.errors or []),
    )


def _count_true(column):
    return func.sum(case((column.is_(True), 1), else_=0))


class ValidationMetricsStore:
    """Insert and aggregate per-run validation metrics."""

    def __init__(self, session_factory: sessionmaker) -> None:
        self._session_factory = session_factory

    def insert(self, metrics: ValidationMetrics) -> int:
        with transaction_scope(self._session_factory) as session:
            record = ValidationMetricsRecord(
                symbol=metrics.symbol,
                timestamp=metrics.timestamp,
                success=metrics.success,
                completed=metrics.completed,
                halted=metrics.halted,
                timed_out=metrics.timed_out,
                duration_ms=metrics.duration_ms,
                confidence_score=metrics.confidence_score,
                data_quality_score=metrics.data_quality_score,
                total_alerts=metrics.total_alerts,
                critical_alerts=metrics.critical_alerts,
                error_alerts=metrics.error_alerts,
                warning_alerts=metrics.warning_alerts,
                info_alerts=metrics.info_alerts,
                completed_steps=list(metrics.completed_steps),
                errors=list(metrics.errors),
            )
            session.add(record)
            session.flush()
            return record.id

    def aggregate(self, since: datetime) -> AggregatedMetrics:
        """Totals and averages over runs started after since."""
        table = ValidationMetricsRecord
        window = table.timestamp > since

        with transaction_scope(self._session_factory) as session:
            row = session.execute(
                select(
                    func.count(table.id),
                    _count_true(table.success),
                    _count_true(table.halted),
                    _count_true(table.timed_out),
                    func.avg(table.duration_ms),
                    func.avg(table.confidence_score),
                    func.avg(table.data_quality_score),
                    func.sum(table.total_alerts),
                    func.sum(table.critical_alerts),
                    func.sum(table.error_alerts),
                    func.sum(table.warning_alerts),
                    func.sum(table.info_alerts),
                ).where(window)
            ).one()
            symbols = session.execute(
                select(table.symbol).where(window).distinct().order_by(table.symbol)
            ).scalars().all()
            error_lists = session.execute(select(table.errors).where(window)).scalars().all()

        (total, successful, halted, timed_out, avg_duration, avg_confidence, avg_quality,
         alerts, critical, errors, warnings, info) = row
        total = total or 0

        counts = Counter(e for entries in error_lists for e in (entries or []))

        return AggregatedMetrics(
            total_attempts=total,
            successful_attempts=int(successful or 0),
            failed_attempts=total - int(successful or 0),
            halted_attempts=int(halted or 0),
            timed_out_attempts=int(timed_out or 0),
            average_duration_ms=round(float(avg_duration or 0)),
            average_confidence_score=round(float(avg_confidence or 0)),
            average_data_quality_score=round(float(avg_quality or 0)),
            total_alerts=int(alerts or 0),
            critical_alerts=int(critical or 0),
            error_alerts=int(errors or 0),
            warning_alerts=int(warnings or 0),
            info_alerts=int(info or 0),
            most_common_errors=[
                {"error": error, "count": count}
                for error, count in counts.most_common(MOST_COMMON_ERRORS)
            ],
            symbols_validated=list(symbols),
        )

    def for_symbol(self, symbol: str, limit: int = 10) -> List[ValidationMetrics]:
        """A symbol's runs, newest first."""
        with transaction_scope(self._session_factory) as session:
            query = (
                select(ValidationMetricsRecord)
                .where(ValidationMetricsRecord.symbol == symbol.upper())
                .order_by(ValidationMetricsRecord.timestamp.desc(), ValidationMetricsRecord.id.desc())
                .limit(limit)
            )
            return [_to_metrics(r) for r in session.execute(query).scalars()]

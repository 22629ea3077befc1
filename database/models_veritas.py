"""
Validation Engine Database Models.

Tables:
- veritas_alerts: every alert notification raised by a validator,
  with its review state
- veritas_source_reliability: current reliability counters per source
- veritas_validation_metrics: outcome, timing and alert counts of
  every orchestrated validation run
"""

from datetime import datetime, timezone

from sqlalchemy import (
    Column, BigInteger, Integer, String, Text, Float, Boolean,
    DateTime, Index, JSON,
)

from database.engine import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class VeritasAlertRecord(Base):
    """Persisted alert notification."""
    
    __tablename__ = "veritas_alerts"
    
    # SQLite only autoincrements INTEGER primary keys
    id = Column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True)
    symbol = Column(String(32), nullable=False)
    severity = Column(String(16), nullable=False)
    domain = Column(String(16), nullable=False)
    alert_type = Column(String(64), nullable=False)
    message = Column(Text, nullable=False)
    recommendation = Column(Text, nullable=False, default="")
    affected_sources = Column(JSON, nullable=False, default=list)
    variance = Column(Float, nullable=True)
    threshold = Column(Float, nullable=True)
    details = Column(JSON, nullable=False, default=dict)
    timestamp = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    
    requires_human_review = Column(Boolean, nullable=False, default=False)
    reviewed = Column(Boolean, nullable=False, default=False)
    reviewed_by = Column(String(128), nullable=True)
    reviewed_at = Column(DateTime(timezone=True), nullable=True)
    review_notes = Column(Text, nullable=True)
    
    __table_args__ = (
        Index("idx_veritas_alerts_reviewed_timestamp", "reviewed", "timestamp"),
        Index("idx_veritas_alerts_symbol", "symbol"),
        Index("idx_veritas_alerts_severity", "severity"),
    )


class SourceReliabilityRecord(Base):
    """Latest reliability snapshot for one source."""
    
    __tablename__ = "veritas_source_reliability"
    
    source_name = Column(String(128), primary_key=True)
    total_validations = Column(Integer, nullable=False, default=0)
    successful_validations = Column(Integer, nullable=False, default=0)
    deviation_count = Column(Integer, nullable=False, default=0)
    reliability_score = Column(Float, nullable=False, default=100.0)
    trust_weight = Column(Float, nullable=False, default=1.0)
    last_updated = Column(DateTime(timezone=True), nullable=False, default=_utcnow)


class ValidationMetricsRecord(Base):
    """Outcome and alert counts of one orchestrated validation run."""
    
    __tablename__ = "veritas_validation_metrics"
    
    id = Column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True)
    symbol = Column(String(32), nullable=False)
    timestamp = Column(DateTime(timezone=True), nullable=False)
    success = Column(Boolean, nullable=False)
    completed = Column(Boolean, nullable=False)
    halted = Column(Boolean, nullable=False)
    timed_out = Column(Boolean, nullable=False)
    duration_ms = Column(Integer, nullable=False)
    confidence_score = Column(Integer, nullable=True)
    data_quality_score = Column(Integer, nullable=True)
    total_alerts = Column(Integer, nullable=False, default=0)
    critical_alerts = Column(Integer, nullable=False, default=0)
    error_alerts = Column(Integer, nullable=False, default=0)
    warning_alerts = Column(Integer, nullable=False, default=0)
    info_alerts = Column(Integer, nullable=False, default=0)
    completed_steps = Column(JSON, nullable=False, default=list)
    errors = Column(JSON, nullable=False, default=list)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    
    __table_args__ = (
        Index("idx_veritas_metrics_symbol", "symbol"),
        Index("idx_veritas_metrics_timestamp", "timestamp"),
        Index("idx_veritas_metrics_success", "success"),
    )

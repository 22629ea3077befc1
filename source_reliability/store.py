"""
Source Reliability - Durable Store.

Keeps the latest SourceReliabilityScore per source in the
veritas_source_reliability table so trust survives restarts.
"""

import logging
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import delete, select
from sqlalchemy.orm import sessionmaker

from database.engine import transaction_scope
from database.models_veritas import SourceReliabilityRecord

from .models import SourceReliabilityScore


logger = logging.getLogger(__name__)


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands back naive datetimes
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class ReliabilityStore:
    """SQLAlchemy repository for source reliability snapshots."""
    
    def __init__(self, session_factory: sessionmaker) -> None:
        self._session_factory = session_factory
    
    def save(self, score: SourceReliabilityScore) -> None:
        """
        Upsert a snapshot.
        
        A snapshot older than the stored row is ignored, so writes that
        race each other after the tracker releases its lock cannot
        move a source backwards.
        
        Raises:
            PersistenceError: Write failed
        """
        with transaction_scope(self._session_factory) as session:
            record = session.get(SourceReliabilityRecord, score.source_name)
            if record is None:
                record = SourceReliabilityRecord(source_name=score.source_name)
                session.add(record)
            elif (
                score.last_updated is not None
                and record.last_updated is not None
                and _as_utc(record.last_updated) >= score.last_updated
            ):
                return
            
            record.total_validations = score.total_validations
            record.successful_validations = score.successful_validations
            record.deviation_count = score.deviation_count
            record.reliability_score = score.reliability_score
            record.trust_weight = score.trust_weight
            record.last_updated = score.last_updated or datetime.now(timezone.utc)
    
    def load_all(self) -> List[SourceReliabilityScore]:
        with transaction_scope(self._session_factory) as session:
            records = session.execute(select(SourceReliabilityRecord)).scalars().all()
            return [
                SourceReliabilityScore(
                    source_name=r.source_name,
                    total_validations=r.total_validations,
                    successful_validations=r.successful_validations,
                    deviation_count=r.deviation_count,
                    reliability_score=r.reliability_score,
                    trust_weight=r.trust_weight,
                    last_updated=_as_utc(r.last_updated),
                )
                for r in records
            ]
    
    def delete(self, source_name: str) -> None:
        with transaction_scope(self._session_factory) as session:
            session.execute(
                delete(SourceReliabilityRecord).where(
                    SourceReliabilityRecord.source_name == source_name
                )
            )
    
    def delete_all(self) -> None:
        with transaction_scope(self._session_factory) as session:
            result = session.execute(delete(SourceReliabilityRecord))
            logger.info(f"Deleted {result.rowcount} stored reliability rows")

"""
Validation - Run Metrics.

============================================================
PURPOSE
============================================================
Records every orchestrated validation run so operators can watch
validation health over time:

- extract_metrics(): outcome, timing and alert counts of one run
- ValidationMetricsLogger: persists runs and answers aggregate and
  per-symbol queries

Metrics never interfere with validation: logging and queries
catch storage failures, log them and degrade to empty answers.

============================================================
USAGE
============================================================

```python
metrics = ValidationMetricsLogger(ValidationMetricsStore(session_factory))

outcome = await orchestrator.validate_all("BTC", data)
await metrics.log_validation_attempt(outcome)

last_day = await metrics.get_aggregated_metrics(hours_back=24)
recent = await metrics.get_symbol_metrics("BTC", limit=10)
```

============================================================
"""

import asyncio
import logging
from datetime import timedelta
from typing import List, Optional

from core.clock import ClockProtocol, SystemClock
from core.constants import Severity

from .base import VALIDATION_ERROR_CHECK
from .metrics_models import AggregatedMetrics, ValidationMetrics
from .metrics_store import ValidationMetricsStore
from .orchestrator import OrchestrationResult


logger = logging.getLogger(__name__)


def _run_errors(result: OrchestrationResult) -> List[str]:
    errors = []
    if result.halted and result.halt_reason:
        errors.append(result.halt_reason)
    if result.timed_out:
        errors.append("Validation timed out")
    for domain_result in result.results.values():
        if domain_result is None:
            continue
        if VALIDATION_ERROR_CHECK in domain_result.data_quality_summary.failed_checks:
            errors.extend(a.message for a in domain_result.alerts_with(Severity.ERROR))
    return errors


def extract_metrics(result: OrchestrationResult, clock: Optional[ClockProtocol] = None) -> ValidationMetrics:
    """
    Summarize one orchestrated run.

    The timestamp is the run's start time, or the clock's now when the
    run carries none.
    """
    alerts = [a for r in result.results.values() if r is not None for a in r.alerts]
    counts = {s: 0 for s in Severity}
    for alert in alerts:
        counts[alert.severity] += 1

    return ValidationMetrics(
        symbol=result.symbol.upper(),
        timestamp=result.started_at or (clock or SystemClock()).now(),
        success=result.is_valid and not result.timed_out,
        completed=not result.halted and not result.timed_out,
        halted=result.halted,
        timed_out=result.timed_out,
        duration_ms=int(round(result.duration_ms)),
        confidence_score=result.confidence.overall_score if result.confidence else None,
        data_quality_score=result.data_quality.overall_score if result.data_quality else None,
        total_alerts=len(alerts),
        critical_alerts=counts[Severity.FATAL],
        error_alerts=counts[Severity.ERROR],
        warning_alerts=counts[Severity.WARNING],
        info_alerts=counts[Severity.INFO],
        completed_steps=[d.value for d in result.completed_domains],
        errors=_run_errors(result),
    )


class ValidationMetricsLogger:
    """Persists run metrics and reads them back. Never raises."""

    def __init__(
        self,
        store: Optional[ValidationMetricsStore] = None,
        clock: Optional[ClockProtocol] = None,
    ) -> None:
        self._store = store
        self._clock = clock or SystemClock()

        if self._store is None:
            logger.warning("ValidationMetricsLogger has no store - metrics will not be persisted")

    async def log_validation_attempt(self, result: OrchestrationResult) -> Optional[ValidationMetrics]:
        """
        Record one run.

        Returns:
            The extracted metrics, or None if they could not be built
        """
        try:
            metrics = extract_metrics(result, self._clock)
        except Exception as e:
            logger.error(f"Failed to extract validation metrics for {result.symbol}: {e}")
            return None

        logger.info(
            f"Validation metrics: {metrics.symbol} success={metrics.success} "
            f"duration={metrics.duration_ms}ms confidence={metrics.confidence_score} "
            f"quality={metrics.data_quality_score} alerts={metrics.total_alerts}"
        )

        if self._store is None:
            return metrics
        try:
            await asyncio.to_thread(self._store.insert, metrics)
        except Exception as e:
            logger.error(f"Failed to log validation attempt for {metrics.symbol}: {e}")
        return metrics

    async def get_aggregated_metrics(self, hours_back: float = 24) -> AggregatedMetrics:
        """Totals over the last hours_back hours. All zero on storage failure."""
        if self._store is None:
            return AggregatedMetrics()
        since = self._clock.now() - timedelta(hours=hours_back)
        try:
            return await asyncio.to_thread(self._store.aggregate, since)
        except Exception as e:
            logger.error(f"Failed to load aggregated validation metrics: {e}")
            return AggregatedMetrics()

    async def get_symbol_metrics(self, symbol: str, limit: int = 10) -> List[ValidationMetrics]:
        """A symbol's most recent runs, newest first. Empty on storage failure."""
        if self._store is None:
            return []
        try:
            return await asyncio.to_thread(self._store.for_symbol, symbol, limit)
        except Exception as e:
            logger.error(f"Failed to load validation metrics for {symbol}: {e}")
            return []

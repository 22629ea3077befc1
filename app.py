#!/usr/bin/env python3
"""
Veritas Validation Engine - Application Entry Point.

============================================================
PURPOSE
============================================================
Serves the alert review API and owns the process-wide engine
components:

- VeritasSettings, resolved once from the environment
- SourceReliabilityTracker, restored from the database
- AlertSystem with persistence and email delivery
- The four domain validators and the orchestrator
- ValidationMetricsLogger, recording every orchestrated run

============================================================
USAGE
============================================================
    python app.py

    VERITAS_HOST=0.0.0.0 VERITAS_PORT=8100 python app.py

============================================================
"""

import logging
import os
import sys
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

import uvicorn
from fastapi import FastAPI, Query
from sqlalchemy.orm import sessionmaker

from alerting import AlertStore, AlertSystem, HttpEmailTransport
from alerting.router import get_alert_system, router as alerts_router
from core.settings import VeritasSettings, get_settings
from database.engine import create_all_tables, create_database_engine, create_session_factory
from source_reliability import ReliabilityConfig, ReliabilityStore, SourceReliabilityTracker
from validation import (
    MarketDataValidator,
    NewsValidator,
    OnChainValidator,
    AnalysisInput,
    OrchestrationResult,
    SocialSentimentValidator,
    ValidationMetricsLogger,
    ValidationMetricsStore,
    ValidationOrchestrator,
    ValidationThresholds,
)


logger = logging.getLogger(__name__)


@dataclass
class VeritasEngine:
    """Everything a request handler needs to validate and alert."""
    settings: VeritasSettings
    tracker: SourceReliabilityTracker
    alerts: AlertSystem
    market: MarketDataValidator
    social: SocialSentimentValidator
    onchain: OnChainValidator
    news: NewsValidator
    orchestrator: ValidationOrchestrator
    metrics: ValidationMetricsLogger
    
    async def validate(self, symbol: str, data: AnalysisInput) -> OrchestrationResult:
        """Run every domain for symbol and record the run's metrics."""
        result = await self.orchestrator.validate_all(symbol, data)
        await self.metrics.log_validation_attempt(result)
        return result


def build_engine(
    settings: VeritasSettings,
    session_factory: sessionmaker,
    transport: Optional[HttpEmailTransport] = None,
    thresholds: Optional[ValidationThresholds] = None,
) -> VeritasEngine:
    """
    Wire the engine components around one session factory.
    
    Every tunable comes from settings (or the given thresholds), so the
    components never read the environment themselves.
    """
    tracker = SourceReliabilityTracker(
        config=ReliabilityConfig.from_settings(settings),
        store=ReliabilityStore(session_factory),
    )
    tracker.load_from_store()
    
    alerts = AlertSystem(
        store=AlertStore(session_factory),
        transport=transport,
        settings=settings,
    )
    
    thresholds = thresholds or ValidationThresholds()
    market = MarketDataValidator(
        tracker, alerts, thresholds,
        fetch_timeout_seconds=settings.source_fetch_timeout_seconds,
    )
    social = SocialSentimentValidator(tracker, alerts, thresholds)
    onchain = OnChainValidator(tracker, alerts, thresholds)
    news = NewsValidator(tracker, alerts, thresholds)
    
    return VeritasEngine(
        settings=settings,
        tracker=tracker,
        alerts=alerts,
        market=market,
        social=social,
        onchain=onchain,
        news=news,
        orchestrator=ValidationOrchestrator(tracker, market, social, onchain, news, settings),
        metrics=ValidationMetricsLogger(ValidationMetricsStore(session_factory)),
    )


def create_app(engine: Optional[VeritasEngine] = None) -> FastAPI:
    """
    Create the FastAPI application.
    
    Without an engine one is built on startup from the environment.
    """
    
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        transport = None
        if app.state.engine is None:
            settings = get_settings()
            db_engine = create_database_engine()
            create_all_tables(db_engine)
            if settings.should_email:
                transport = HttpEmailTransport(timeout_seconds=settings.email_timeout_seconds)
            app.state.engine = build_engine(
                settings,
                create_session_factory(db_engine),
                transport,
                ValidationThresholds.from_env(),
            )
        
        logger.info("Veritas engine started")
        yield
        
        await app.state.engine.alerts.drain()
        await app.state.engine.tracker.flush()
        app.state.engine.tracker.close()
        if transport is not None:
            await transport.close()
        logger.info("Veritas engine stopped")
    
    app = FastAPI(
        title="Veritas Validation API",
        description="Alert review API for the cross-source validation engine",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.engine = engine
    app.state.started_at = datetime.now(timezone.utc)
    
    app.include_router(alerts_router)
    app.dependency_overrides[get_alert_system] = lambda: app.state.engine.alerts
    
    @app.get("/health", tags=["Health"])
    async def health_check():
        """Health check endpoint."""
        uptime = (datetime.now(timezone.utc) - app.state.started_at).total_seconds()
        return {
            "status": "ok",
            "uptime_seconds": uptime,
            "validation_enabled": app.state.engine.settings.enabled if app.state.engine else False,
        }
    
    @app.get("/veritas/reliability", tags=["Veritas Reliability"])
    async def get_reliability():
        """Source reliability summary and per-source scores."""
        return app.state.engine.tracker.to_dict()
    
    @app.get("/veritas/metrics", tags=["Veritas Metrics"])
    async def get_validation_metrics(hours_back: float = Query(24, gt=0, le=24 * 30)):
        """Aggregated validation metrics over the last hours_back hours."""
        metrics = await app.state.engine.metrics.get_aggregated_metrics(hours_back)
        return metrics.to_dict()
    
    @app.get("/veritas/metrics/{symbol}", tags=["Veritas Metrics"])
    async def get_symbol_validation_metrics(symbol: str, limit: int = Query(10, ge=1, le=100)):
        """Most recent validation runs for one symbol."""
        runs = await app.state.engine.metrics.get_symbol_metrics(symbol, limit)
        return {"symbol": symbol.upper(), "count": len(runs), "runs": [m.to_dict() for m in runs]}
    
    return app


def main():
    """Run the API server."""
    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", "INFO"),
        format='%(asctime)s | %(levelname)s | %(name)s | %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )
    
    host = os.getenv("VERITAS_HOST", "0.0.0.0")
    port = int(os.getenv("VERITAS_PORT", os.getenv("PORT", "8100")))
    
    logger.info(f"Starting Veritas API on {host}:{port}")
    
    try:
        uvicorn.run(create_app(), host=host, port=port, log_level="info", access_log=True)
    except Exception as e:
        logger.error(f"Failed to start Veritas API: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()

"""
Tests for application wiring.
"""

import pytest
from fastapi.testclient import TestClient

from app import build_engine, create_app
from core.constants import Domain
from core.settings import VeritasSettings
from validation import AnalysisInput, ValidationThresholds


@pytest.fixture
def veritas(session_factory, settings):
    return build_engine(settings, session_factory)


class TestBuildEngine:
    def test_components_share_tracker_and_alerts(self, veritas):
        assert veritas.market.tracker is veritas.tracker
        assert veritas.news.tracker is veritas.tracker
        assert veritas.alerts.get_queue_size() == 0
    
    def test_reliability_thresholds_come_from_settings(self, session_factory):
        veritas = build_engine(VeritasSettings(unreliable_threshold=50.0), session_factory)
        for _ in range(6):
            veritas.tracker.update_reliability("Kraken", "pass")
        for _ in range(4):
            veritas.tracker.update_reliability("Kraken", "fail")
        
        assert veritas.tracker.config.unreliable_threshold == 50.0
        assert veritas.tracker.get_unreliable_sources() == []
    
    def test_fetch_timeout_comes_from_settings(self, session_factory):
        veritas = build_engine(
            VeritasSettings(source_fetch_timeout_seconds=1.5), session_factory
        )
        
        assert veritas.market.fetch_timeout == 1.5
    
    def test_thresholds_are_injected(self, session_factory, settings):
        thresholds = ValidationThresholds(price_threshold=0.03)
        
        veritas = build_engine(settings, session_factory, thresholds=thresholds)
        
        assert veritas.market.thresholds is thresholds
        assert veritas.news.thresholds is thresholds
    
    @pytest.mark.asyncio
    async def test_findings_reach_the_alert_store(self, veritas):
        quotes = {
            "Binance": {"price": 100_000.0},
            "Coinbase": {"price": -1.0},
        }
        
        result = await veritas.orchestrator.validate_all("BTC", AnalysisInput(market_quotes=quotes))
        await veritas.alerts.drain()
        
        assert result.halted
        pending = await veritas.alerts.get_pending_alerts()
        assert pending[0].domain == Domain.MARKET
    
    @pytest.mark.asyncio
    async def test_validate_records_run_metrics(self, veritas):
        quotes = {
            "Binance": {"price": 100_000.0},
            "Coinbase": {"price": -1.0},
        }
        
        result = await veritas.validate("btc", AnalysisInput(market_quotes=quotes))
        await veritas.alerts.drain()
        
        runs = await veritas.metrics.get_symbol_metrics("BTC")
        assert len(runs) == 1
        assert runs[0].halted is True
        assert runs[0].errors == [result.halt_reason]
        assert runs[0].data_quality_score == result.data_quality.overall_score


class TestApi:
    def test_health(self, veritas):
        with TestClient(create_app(veritas)) as client:
            response = client.get("/health")
        
        assert response.status_code == 200
        assert response.json()["status"] == "ok"
        assert response.json()["validation_enabled"] is True
    
    def test_reliability(self, veritas):
        veritas.tracker.update_reliability("Binance", "pass")
        veritas.tracker.update_reliability("Binance", "fail")
        
        with TestClient(create_app(veritas)) as client:
            response = client.get("/veritas/reliability")
        
        assert response.status_code == 200
        binance = response.json()["sources"]["Binance"]
        assert binance["reliability_score"] == 50.0
        assert binance["trust_weight"] == 0.6
    
    def test_alert_router_wired(self, veritas):
        with TestClient(create_app(veritas)) as client:
            response = client.get("/veritas/alerts/stats")
        
        assert response.status_code == 200
        assert response.json()["total"] == 0
    
    def test_metrics_endpoints(self, veritas):
        with TestClient(create_app(veritas)) as client:
            client.portal.call(
                veritas.validate, "ETH", AnalysisInput(market_quotes={"Binance": {"price": 3_000.0}})
            )
            aggregated = client.get("/veritas/metrics", params={"hours_back": 1})
            symbol = client.get("/veritas/metrics/eth")
        
        assert aggregated.status_code == 200
        assert aggregated.json()["total_attempts"] == 1
        assert aggregated.json()["symbols_validated"] == ["ETH"]
        assert symbol.status_code == 200
        assert symbol.json()["count"] == 1
        assert symbol.json()["runs"][0]["completed_steps"] == ["market"]
    
    def test_metrics_window_must_be_positive(self, veritas):
        with TestClient(create_app(veritas)) as client:
            response = client.get("/veritas/metrics", params={"hours_back": 0})
        
        assert response.status_code == 422

"""
Tests for the Validation Orchestrator.

Tests cover:
- Full run over all four domains
- Halt on the first fatal result
- Overall timeout keeps partial results
- Progress reporting
- Market consensus volume feeding the on-chain step
"""

import asyncio
from unittest.mock import MagicMock

import pytest

from core.constants import Domain
from core.settings import VeritasSettings
from validation import (
    AnalysisInput,
    MarketDataValidator,
    NewsValidator,
    OnChainValidator,
    SocialSentimentValidator,
    ValidationOrchestrator,
)


MARKET_QUOTES = {
    "CoinGecko": {"price": 100_000, "volume_24h": 30e9},
    "CoinMarketCap": {"price": 100_200, "volume_24h": 30e9},
}
SOCIAL_READINGS = {
    "LunarCrush": {"mention_count": 500, "sentiment_score": 65},
    "Reddit": {"mention_count": 200, "sentiment_score": 70},
}
ONCHAIN = {"exchange_inflow": 2e9, "exchange_outflow": 4e9}
NEWS = [
    {"title": "Bitcoin surges past resistance", "source": "CoinDesk"},
    {"title": "ETF approval sparks rally", "source": "The Block"},
]


def build(tracker, settings=None, **overrides):
    validators = {
        "market": MarketDataValidator(tracker),
        "social": SocialSentimentValidator(tracker),
        "onchain": OnChainValidator(tracker),
        "news": NewsValidator(tracker),
    }
    validators.update(overrides)
    return ValidationOrchestrator(tracker, settings=settings, **validators)


class TestValidateAll:
    """Test a complete run."""
    
    @pytest.mark.asyncio
    async def test_all_domains(self, tracker):
        orchestrator = build(tracker)
        
        outcome = await orchestrator.validate_all("BTC", AnalysisInput(
            market_quotes=MARKET_QUOTES,
            social_readings=SOCIAL_READINGS,
            onchain_data=ONCHAIN,
            news_data=NEWS,
        ))
        
        assert outcome.completed_domains == [Domain.MARKET, Domain.SOCIAL, Domain.ONCHAIN, Domain.NEWS]
        assert outcome.halted is False
        assert outcome.timed_out is False
        assert outcome.is_valid is True
        assert outcome.confidence.completeness == 100
        assert outcome.confidence.overall_score >= 90
    
    @pytest.mark.asyncio
    async def test_run_carries_a_data_quality_report(self, tracker):
        outcome = await build(tracker).validate_all("BTC", AnalysisInput(
            market_quotes=MARKET_QUOTES,
            social_readings=SOCIAL_READINGS,
            onchain_data=ONCHAIN,
            news_data=NEWS,
        ))
        
        report = outcome.data_quality
        assert report is not None
        assert report.validation_duration_ms == outcome.duration_ms
        assert "price_consistency" in report.passed_checks
        assert report.reliability_guidance.can_proceed is True
        assert outcome.started_at is not None
        assert outcome.to_dict()["data_quality"]["overall_score"] == report.overall_score
    
    @pytest.mark.asyncio
    async def test_domains_without_input_are_skipped(self, tracker):
        outcome = await build(tracker).validate_all("BTC", AnalysisInput(market_quotes=MARKET_QUOTES))
        
        assert outcome.completed_domains == [Domain.MARKET]
        assert outcome.results[Domain.NEWS] is None
        assert outcome.confidence.completeness == 25
    
    @pytest.mark.asyncio
    async def test_onchain_uses_market_consensus_volume(self, tracker):
        outcome = await build(tracker).validate_all("BTC", AnalysisInput(
            market_quotes=MARKET_QUOTES,
            onchain_data=ONCHAIN,
        ))
        
        onchain = outcome.results[Domain.ONCHAIN]
        assert onchain.consensus["flow_ratio"] == pytest.approx(0.2)
        assert onchain.confidence == 100
    
    @pytest.mark.asyncio
    async def test_to_dict(self, tracker):
        outcome = await build(tracker).validate_all("BTC", AnalysisInput(market_quotes=MARKET_QUOTES))
        data = outcome.to_dict()
        
        assert data["symbol"] == "BTC"
        assert data["completed_domains"] == ["market"]
        assert data["results"]["social"] is None


class TestHalting:
    """Test fail-fast behaviour."""
    
    @pytest.mark.asyncio
    async def test_fatal_market_halts_run(self, tracker):
        social = MagicMock()
        orchestrator = build(tracker, social=social)
        
        outcome = await orchestrator.validate_all("BTC", AnalysisInput(
            market_quotes={"CoinGecko": {"price": -5}},
            social_readings=SOCIAL_READINGS,
        ))
        
        assert outcome.halted is True
        assert "Non-positive price" in outcome.halt_reason
        assert outcome.results[Domain.SOCIAL] is None
        assert outcome.is_valid is False
        social.validate.assert_not_called()
        assert outcome.confidence.logical_consistency == 50
        assert outcome.data_quality.reliability_guidance.can_proceed is False
        assert outcome.data_quality.recommendations[0].category == "action_required"


class TestTimeout:
    """Test the overall time budget."""
    
    @pytest.mark.asyncio
    async def test_timeout_keeps_partial_results(self, tracker):
        async def hang(*args, **kwargs):
            await asyncio.sleep(10)
        
        social = MagicMock()
        social.validate = hang
        orchestrator = build(
            tracker,
            settings=VeritasSettings(orchestration_timeout_seconds=0.1),
            social=social,
        )
        
        outcome = await asyncio.wait_for(
            orchestrator.validate_all("BTC", AnalysisInput(
                market_quotes=MARKET_QUOTES,
                social_readings=SOCIAL_READINGS,
                news_data=NEWS,
            )),
            timeout=2,
        )
        
        assert outcome.timed_out is True
        assert outcome.completed_domains == [Domain.MARKET]
        assert outcome.results[Domain.SOCIAL] is None
        assert outcome.results[Domain.NEWS] is None


class TestProgress:
    """Test progress reporting."""
    
    @pytest.mark.asyncio
    async def test_progress_sequence(self, tracker):
        events = []
        
        await build(tracker).validate_all(
            "BTC",
            AnalysisInput(market_quotes=MARKET_QUOTES, social_readings=SOCIAL_READINGS),
            on_progress=events.append,
        )
        
        assert [(e.domain, e.status) for e in events] == [
            (Domain.MARKET, "running"),
            (Domain.MARKET, "complete"),
            (Domain.SOCIAL, "running"),
            (Domain.SOCIAL, "complete"),
        ]
        assert events[-1].completed == events[-1].total == 2
    
    @pytest.mark.asyncio
    async def test_failing_callback_does_not_stop_run(self, tracker):
        callback = MagicMock(side_effect=RuntimeError("ui gone"))
        
        outcome = await build(tracker).validate_all(
            "BTC", AnalysisInput(market_quotes=MARKET_QUOTES), on_progress=callback
        )
        
        assert outcome.completed_domains == [Domain.MARKET]
        assert callback.call_count == 2

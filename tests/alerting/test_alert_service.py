"""
Tests for the Alert System service.

Tests cover:
- Email routing by severity and review flag
- One email per recipient
- Persistence independent of email outcome
- Delivery failures logged, never raised
- Fire-and-forget submit and drain
- Query degradation on storage failure
- notify_* helpers
"""

import asyncio
import logging
import time
from unittest.mock import AsyncMock, MagicMock

import pytest

from alerting import AlertNotification, AlertStatistics, AlertStore, AlertSystem, EmailResult
from core.constants import AlertType, Domain, Severity
from core.exceptions import AlertNotFoundError, PersistenceError
from core.settings import VeritasSettings


def make_notification(severity=Severity.INFO, review=False):
    return AlertNotification(
        symbol="BTC",
        severity=severity,
        domain=Domain.MARKET,
        alert_type=AlertType.MARKET_DISCREPANCY,
        message="Price discrepancy",
        requires_human_review=review,
    )


@pytest.fixture
def store():
    store = MagicMock()
    store.insert.return_value = 42
    return store


@pytest.fixture
def transport():
    transport = MagicMock()
    transport.send = AsyncMock(return_value=EmailResult(success=True))
    return transport


@pytest.fixture
def alerts(store, transport, settings, clock):
    return AlertSystem(store=store, transport=transport, settings=settings, clock=clock)


# =============================================================
# TEST: Routing
# =============================================================

class TestRouting:
    """Test which notifications are emailed."""
    
    @pytest.mark.asyncio
    async def test_info_without_review_is_persisted_only(self, alerts, store, transport):
        notification = make_notification(Severity.INFO)
        
        await alerts.queue_alert(notification)
        await alerts.drain()
        
        store.insert.assert_called_once_with(notification)
        transport.send.assert_not_called()
        assert notification.id == 42
    
    @pytest.mark.asyncio
    async def test_warning_without_review_is_persisted_only(self, alerts, store, transport):
        await alerts.queue_alert(make_notification(Severity.WARNING))
        await alerts.drain()
        
        store.insert.assert_called_once()
        transport.send.assert_not_called()
    
    @pytest.mark.asyncio
    async def test_fatal_is_emailed_and_persisted(self, alerts, store, transport):
        await alerts.queue_alert(make_notification(Severity.FATAL, review=True))
        await alerts.drain()
        
        store.insert.assert_called_once()
        transport.send.assert_awaited_once()
        message = transport.send.call_args[0][0]
        assert message.to == "ops@example.com"
        assert "[Veritas Alert - FATAL]" in message.subject
    
    @pytest.mark.asyncio
    async def test_review_flag_triggers_email(self, alerts, transport):
        await alerts.queue_alert(make_notification(Severity.WARNING, review=True))
        await alerts.drain()
        
        transport.send.assert_awaited_once()
    
    @pytest.mark.asyncio
    async def test_one_email_per_recipient(self, store, transport, clock):
        settings = VeritasSettings(
            email_enabled=True,
            recipients=["a@example.com", "b@example.com", "c@example.com"],
        )
        alerts = AlertSystem(store=store, transport=transport, settings=settings, clock=clock)
        
        await alerts.queue_alert(make_notification(Severity.FATAL, review=True))
        await alerts.drain()
        
        assert transport.send.await_count == 3
        assert {c[0][0].to for c in transport.send.call_args_list} == {
            "a@example.com", "b@example.com", "c@example.com",
        }
    
    @pytest.mark.asyncio
    async def test_email_disabled(self, store, transport, clock):
        settings = VeritasSettings(email_enabled=False, recipients=["ops@example.com"])
        alerts = AlertSystem(store=store, transport=transport, settings=settings, clock=clock)
        
        await alerts.queue_alert(make_notification(Severity.FATAL, review=True))
        await alerts.drain()
        
        transport.send.assert_not_called()
        store.insert.assert_called_once()


# =============================================================
# TEST: Delivery Failures
# =============================================================

class TestDeliveryFailures:
    """Test that delivery failures are logged and contained."""
    
    @pytest.mark.asyncio
    async def test_fatal_persisted_when_email_raises(self, alerts, store, transport, caplog):
        transport.send = AsyncMock(side_effect=ConnectionError("smtp down"))
        
        with caplog.at_level(logging.ERROR):
            await alerts.queue_alert(make_notification(Severity.FATAL, review=True))
            await alerts.drain()
        
        store.insert.assert_called_once()
        assert "smtp down" in caplog.text
    
    @pytest.mark.asyncio
    async def test_unsuccessful_email_result_logged(self, alerts, transport, caplog):
        transport.send = AsyncMock(return_value=EmailResult(success=False, error="quota exceeded"))
        
        with caplog.at_level(logging.ERROR):
            await alerts.queue_alert(make_notification(Severity.FATAL, review=True))
            await alerts.drain()
        
        assert "quota exceeded" in caplog.text
    
    @pytest.mark.asyncio
    async def test_persistence_failure_still_emails(self, alerts, store, transport, caplog):
        store.insert.side_effect = PersistenceError("database unavailable")
        
        with caplog.at_level(logging.ERROR):
            await alerts.queue_alert(make_notification(Severity.FATAL, review=True))
            await alerts.drain()
        
        transport.send.assert_awaited_once()
        assert "database unavailable" in caplog.text
    
    @pytest.mark.asyncio
    async def test_slow_persistence_times_out(self, store, transport, clock, caplog):
        store.insert.side_effect = lambda n: time.sleep(0.3)
        settings = VeritasSettings(persistence_timeout_seconds=0.05)
        alerts = AlertSystem(store=store, transport=transport, settings=settings, clock=clock)
        
        start = time.monotonic()
        with caplog.at_level(logging.ERROR):
            await alerts.queue_alert(make_notification())
            await alerts.drain()
        
        assert time.monotonic() - start < 0.25
        assert "timed out" in caplog.text
    
    @pytest.mark.asyncio
    async def test_slow_email_times_out(self, store, clock, caplog):
        async def slow_send(message):
            await asyncio.sleep(5)
        
        transport = MagicMock()
        transport.send = slow_send
        settings = VeritasSettings(
            email_enabled=True, recipients=["ops@example.com"], email_timeout_seconds=0.05
        )
        alerts = AlertSystem(store=store, transport=transport, settings=settings, clock=clock)
        
        with caplog.at_level(logging.ERROR):
            await alerts.queue_alert(make_notification(Severity.FATAL, review=True))
            await asyncio.wait_for(alerts.drain(), timeout=1)

        assert "timed out" in caplog.text
        store.insert.assert_called_once()


# =============================================================
# TEST: Fire-and-forget Dispatch
# =============================================================

class TestSubmit:
    """Test background dispatch."""
    
    @pytest.mark.asyncio
    async def test_submit_returns_before_delivery(self, alerts, store):
        release = asyncio.Event()
        
        async def blocked_send(message):
            await release.wait()
            return EmailResult(success=True)
        
        alerts._transport.send = blocked_send
        alerts.submit(make_notification(Severity.FATAL, review=True))
        
        assert alerts.pending_dispatches == 1
        
        release.set()
        await alerts.drain()
        
        assert alerts.pending_dispatches == 0
        store.insert.assert_called_once()
    
    @pytest.mark.asyncio
    async def test_queue_alert_does_not_wait_for_email(self, store, clock):
        async def slow_send(message):
            await asyncio.sleep(0.5)
            return EmailResult(success=True)

        transport = MagicMock()
        transport.send = AsyncMock(side_effect=slow_send)
        settings = VeritasSettings(email_enabled=True, recipients=["ops@example.com"])
        alerts = AlertSystem(store=store, transport=transport, settings=settings, clock=clock)

        start = time.monotonic()
        await alerts.queue_alert(make_notification(Severity.FATAL, review=True))
        elapsed = time.monotonic() - start

        assert elapsed < 0.1
        assert alerts.get_queue_size() == 1
        assert alerts.pending_dispatches == 1

        await alerts.drain()

        transport.send.assert_awaited_once()
        store.insert.assert_called_once()

    @pytest.mark.asyncio
    async def test_notify_helpers_do_not_wait_for_email(self, store, clock):
        release = asyncio.Event()

        async def blocked_send(message):
            await release.wait()
            return EmailResult(success=True)

        transport = MagicMock()
        transport.send = blocked_send
        settings = VeritasSettings(email_enabled=True, recipients=["ops@example.com"])
        alerts = AlertSystem(store=store, transport=transport, settings=settings, clock=clock)

        notification = await asyncio.wait_for(
            alerts.notify_fatal_error("BTC", Domain.MARKET, "All sources failed"), timeout=0.5
        )

        assert notification.severity == Severity.FATAL
        assert alerts.pending_dispatches == 1

        release.set()
        await alerts.drain()
        assert alerts.pending_dispatches == 0

    def test_submit_without_event_loop_delivers_synchronously(self, alerts, store):
        alerts.submit(make_notification())
        
        store.insert.assert_called_once()
        assert alerts.get_queue_size() == 1
    
    @pytest.mark.asyncio
    async def test_validator_submissions_are_persisted(self, session_factory, clock):
        from validation import MarketDataValidator
        
        alerts = AlertSystem(store=AlertStore(session_factory), clock=clock)
        validator = MarketDataValidator(alert_sink=alerts)
        
        await validator.validate("BTC", {"CoinGecko": {"price": -1}})
        await alerts.drain()
        
        pending = await alerts.get_pending_alerts()
        assert len(pending) == 1
        assert pending[0].severity == Severity.FATAL
        assert pending[0].requires_human_review is True


# =============================================================
# TEST: Queue and Queries
# =============================================================

class TestQueries:
    """Test queue management and storage-backed queries."""
    
    @pytest.mark.asyncio
    async def test_queue_size_and_clear(self, alerts):
        await alerts.queue_alert(make_notification())
        await alerts.drain()
        await alerts.queue_alert(make_notification())
        await alerts.drain()
        
        assert alerts.get_queue_size() == 2
        alerts.clear_queue()
        assert alerts.get_queue_size() == 0
    
    @pytest.mark.asyncio
    async def test_pending_alerts_empty_on_failure(self, alerts, store):
        store.pending.side_effect = PersistenceError("database unavailable")
        
        assert await alerts.get_pending_alerts() == []
    
    @pytest.mark.asyncio
    async def test_statistics_zero_on_failure(self, alerts, store):
        store.statistics.side_effect = PersistenceError("database unavailable")
        
        stats = await alerts.get_alert_statistics()
        
        assert stats == AlertStatistics()
    
    @pytest.mark.asyncio
    async def test_mark_as_reviewed_propagates(self, alerts, store):
        store.mark_reviewed.side_effect = AlertNotFoundError(7)
        
        with pytest.raises(AlertNotFoundError):
            await alerts.mark_as_reviewed(7, "alice")
    
    @pytest.mark.asyncio
    async def test_mark_as_reviewed_uses_clock(self, alerts, store, clock):
        await alerts.mark_as_reviewed(3, "alice", "checked")
        
        store.mark_reviewed.assert_called_once_with(3, "alice", "checked", clock.now())
    
    @pytest.mark.asyncio
    async def test_without_store(self, settings):
        alerts = AlertSystem(settings=settings)
        
        await alerts.queue_alert(make_notification())
        await alerts.drain()
        
        assert await alerts.get_all_alerts() == []
        with pytest.raises(PersistenceError):
            await alerts.mark_as_reviewed(1, "alice")


# =============================================================
# TEST: Helpers
# =============================================================

class TestHelpers:
    """Test notify_* severity and review defaults."""
    
    @pytest.mark.asyncio
    async def test_fatal_requires_review(self, alerts, clock):
        n = await alerts.notify_fatal_error("BTC", Domain.MARKET, "All sources failed")
        
        assert n.severity == Severity.FATAL
        assert n.alert_type == AlertType.FATAL_ERROR
        assert n.requires_human_review is True
        assert n.timestamp == clock.now()
    
    @pytest.mark.asyncio
    async def test_critical_warning_requires_review(self, alerts):
        n = await alerts.notify_critical_warning("BTC", Domain.MARKET, AlertType.MARKET_DISCREPANCY, "8% spread")
        
        assert n.severity == Severity.ERROR
        assert n.requires_human_review is True
    
    @pytest.mark.asyncio
    async def test_error_defaults_to_review(self, alerts):
        n = await alerts.notify_error("BTC", Domain.NEWS, AlertType.VALIDATION_ERROR, "parser failed")
        
        assert n.requires_human_review is True
    
    @pytest.mark.asyncio
    async def test_warning_and_info_do_not_require_review(self, alerts, transport):
        warning = await alerts.notify_warning("BTC", Domain.SOCIAL, AlertType.SOCIAL_DISCREPANCY, "40 points")
        info = await alerts.notify_info("BTC", Domain.ONCHAIN, AlertType.DATA_UNAVAILABLE, "no flows")
        
        assert warning.requires_human_review is False
        assert info.severity == Severity.INFO
        assert info.requires_human_review is False
        transport.send.assert_not_called()
    
    @pytest.mark.asyncio
    async def test_helpers_pass_extra_fields(self, alerts):
        n = await alerts.notify_warning(
            "BTC", Domain.MARKET, AlertType.MARKET_DISCREPANCY, "spread",
            details={"spread": 0.03},
            affected_sources=["CoinGecko"],
            variance=0.03,
        )
        
        assert n.details == {"spread": 0.03}
        assert n.affected_sources == ["CoinGecko"]
        assert n.variance == 0.03

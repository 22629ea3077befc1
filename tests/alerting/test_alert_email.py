"""
Tests for alert email formatting and the HTTP transport.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest

from alerting import AlertEmailFormatter, AlertNotification, EmailMessage, HttpEmailTransport
from core.constants import AlertType, Domain, Severity


def make_notification(severity=Severity.FATAL, review=True, message="All market data sources failed"):
    return AlertNotification(
        symbol="BTC",
        severity=severity,
        domain=Domain.MARKET,
        alert_type=AlertType.FATAL_ERROR,
        message=message,
        affected_sources=["CoinGecko"],
        requires_human_review=review,
    )


class TestAlertEmailFormatter:
    """Test subject and body rendering."""
    
    @pytest.mark.parametrize("severity,icon", [
        (Severity.INFO, "ℹ️"),
        (Severity.WARNING, "⚠️"),
        (Severity.ERROR, "❌"),
        (Severity.FATAL, "🚨"),
    ])
    def test_subject_marker_per_severity(self, severity, icon):
        subject = AlertEmailFormatter.format_subject(make_notification(severity))
        
        assert subject == f"{icon} [Veritas Alert - {severity.value.upper()}] BTC - fatal_error"
    
    def test_body_escapes_message(self):
        body = AlertEmailFormatter.format_html(make_notification(message="<script>alert(1)</script>"))
        
        assert "<script>" not in body
        assert "&lt;script&gt;" in body
    
    def test_review_box_only_when_flagged(self):
        flagged = AlertEmailFormatter.format_html(make_notification(review=True))
        unflagged = AlertEmailFormatter.format_html(make_notification(Severity.ERROR, review=False))
        
        assert "Human review required" in flagged
        assert "Human review required" not in unflagged
    
    def test_severity_colour(self):
        body = AlertEmailFormatter.format_html(make_notification(Severity.WARNING, review=False))
        
        assert AlertEmailFormatter.SEVERITY_COLORS[Severity.WARNING] in body
    
    def test_build(self):
        message = AlertEmailFormatter.build(make_notification(), "ops@example.com")
        
        assert message.to == "ops@example.com"
        assert message.subject.startswith("🚨")


def mock_session(status=200, body=""):
    response = MagicMock(status=status)
    response.text = AsyncMock(return_value=body)
    context = MagicMock()
    context.__aenter__ = AsyncMock(return_value=response)
    context.__aexit__ = AsyncMock(return_value=False)
    session = MagicMock()
    session.post = MagicMock(return_value=context)
    return session


class TestHttpEmailTransport:
    """Test the HTTP mail API client."""
    
    @pytest.mark.asyncio
    async def test_unconfigured_fails_without_request(self, monkeypatch):
        monkeypatch.delenv("VERITAS_EMAIL_API_URL", raising=False)
        transport = HttpEmailTransport()
        
        result = await transport.send(EmailMessage("ops@example.com", "s", "<p>b</p>"))
        
        assert result.success is False
    
    @pytest.mark.asyncio
    async def test_posts_json_with_bearer_token(self):
        transport = HttpEmailTransport(
            api_url="https://mail.example.com/send", api_key="secret", sender="veritas@example.com"
        )
        session = mock_session(status=202)
        transport._get_session = AsyncMock(return_value=session)
        
        result = await transport.send(EmailMessage("ops@example.com", "subject", "<p>body</p>"))
        
        assert result.success is True
        args, kwargs = session.post.call_args
        assert args[0] == "https://mail.example.com/send"
        assert kwargs["json"] == {
            "from": "veritas@example.com",
            "to": "ops@example.com",
            "subject": "subject",
            "html": "<p>body</p>",
        }
        assert kwargs["headers"] == {"Authorization": "Bearer secret"}
    
    @pytest.mark.asyncio
    async def test_http_error_is_result_not_exception(self):
        transport = HttpEmailTransport(api_url="https://mail.example.com/send")
        transport._get_session = AsyncMock(return_value=mock_session(status=500, body="boom"))
        
        result = await transport.send(EmailMessage("ops@example.com", "s", "b"))
        
        assert result.success is False
        assert "500" in result.error
    
    @pytest.mark.asyncio
    async def test_connection_error_is_result_not_exception(self):
        transport = HttpEmailTransport(api_url="https://mail.example.com/send")
        transport._get_session = AsyncMock(side_effect=OSError("network down"))
        
        result = await transport.send(EmailMessage("ops@example.com", "s", "b"))
        
        assert result.success is False
        assert "network down" in result.error

"""
Alert Email Delivery.

============================================================
PURPOSE
============================================================
Format alert notifications as HTML email and hand them to an
HTTP mail API.

PRINCIPLES:
- Severity-specific subject marker and header colour
- All user-supplied text is HTML-escaped
- Transport returns an EmailResult, never raises

============================================================
"""

import html
import logging
import os
from typing import Any, Dict, List, Optional, Protocol

import aiohttp

from core.constants import Severity

from .models import AlertNotification, EmailMessage, EmailResult


logger = logging.getLogger(__name__)


# ============================================================
# EMAIL FORMATTER
# ============================================================

class AlertEmailFormatter:
    """Formats alert notifications for email."""
    
    SEVERITY_ICONS = {
        Severity.INFO: "ℹ️",
        Severity.WARNING: "⚠️",
        Severity.ERROR: "❌",
        Severity.FATAL: "🚨",
    }
    
    SEVERITY_COLORS = {
        Severity.INFO: "#2563eb",
        Severity.WARNING: "#d97706",
        Severity.ERROR: "#dc2626",
        Severity.FATAL: "#7f1d1d",
    }
    
    @classmethod
    def format_subject(cls, notification: AlertNotification) -> str:
        icon = cls.SEVERITY_ICONS.get(notification.severity, "📌")
        return (
            f"{icon} [Veritas Alert - {notification.severity.value.upper()}] "
            f"{notification.symbol} - {notification.alert_type.value}"
        )
    
    @classmethod
    def format_html(cls, notification: AlertNotification) -> str:
        """Render the HTML body."""
        color = cls.SEVERITY_COLORS.get(notification.severity, "#374151")
        severity = notification.severity.value.upper()
        
        rows = [
            ("Symbol", notification.symbol),
            ("Domain", notification.domain.value),
            ("Alert type", notification.alert_type.value),
            ("Affected sources", ", ".join(notification.affected_sources) or "-"),
            ("Time", notification.timestamp.strftime("%Y-%m-%d %H:%M:%S UTC")),
        ]
        if notification.variance is not None:
            rows.append(("Variance", f"{notification.variance:.4f}"))
        if notification.threshold is not None:
            rows.append(("Threshold", f"{notification.threshold:.4f}"))
        rows.extend(cls._format_details(notification.details))
        
        table = "\n".join(
            f"<tr><td style=\"padding:4px 8px;font-weight:bold\">{html.escape(label)}</td>"
            f"<td style=\"padding:4px 8px\">{html.escape(str(value))}</td></tr>"
            for label, value in rows
        )
        
        parts = [
            "<html><body style=\"font-family:Arial,sans-serif\">",
            f"<div style=\"background:{color};color:#ffffff;padding:12px\">"
            f"<h2 style=\"margin:0\">{cls.SEVERITY_ICONS.get(notification.severity, '')} "
            f"{severity}: {html.escape(notification.symbol)}</h2></div>",
            f"<p>{html.escape(notification.message)}</p>",
        ]
        if notification.recommendation:
            parts.append(
                f"<p><b>Recommendation:</b> {html.escape(notification.recommendation)}</p>"
            )
        parts.append(f"<table>{table}</table>")
        if notification.requires_human_review:
            parts.append(
                "<div style=\"border:2px solid #dc2626;padding:12px;margin-top:16px\">"
                "<b>Human review required.</b> "
                "Review this alert in the Veritas alert queue before acting on the data."
                "</div>"
            )
        parts.append("</body></html>")
        return "\n".join(parts)
    
    @classmethod
    def _format_details(cls, details: Dict[str, Any], max_items: int = 10) -> List[tuple]:
        rows = []
        for count, (key, value) in enumerate(details.items()):
            if count >= max_items:
                rows.append(("...", f"{len(details) - count} more"))
                break
            if isinstance(value, float):
                value = f"{value:.4f}"
            elif isinstance(value, (list, tuple)):
                value = ", ".join(str(v) for v in value)
            rows.append((key, value))
        return rows
    
    @classmethod
    def build(cls, notification: AlertNotification, recipient: str) -> EmailMessage:
        return EmailMessage(
            to=recipient,
            subject=cls.format_subject(notification),
            html=cls.format_html(notification),
        )


# ============================================================
# TRANSPORT
# ============================================================

class EmailTransport(Protocol):
    async def send(self, message: EmailMessage) -> EmailResult:
        ...


class HttpEmailTransport:
    """
    Posts emails as JSON to an HTTP mail API.
    
    Configuration falls back to VERITAS_EMAIL_API_URL,
    VERITAS_EMAIL_API_KEY and VERITAS_EMAIL_FROM.
    """
    
    def __init__(
        self,
        api_url: Optional[str] = None,
        api_key: Optional[str] = None,
        sender: Optional[str] = None,
        timeout_seconds: float = 10.0,
    ):
        self._api_url = api_url or os.getenv("VERITAS_EMAIL_API_URL", "")
        self._api_key = api_key or os.getenv("VERITAS_EMAIL_API_KEY", "")
        self._sender = sender or os.getenv("VERITAS_EMAIL_FROM", "veritas@localhost")
        self._timeout = aiohttp.ClientTimeout(total=timeout_seconds)
        self._session: Optional[aiohttp.ClientSession] = None
        
        if not self._api_url:
            logger.warning("HttpEmailTransport NOT configured - check VERITAS_EMAIL_API_URL")
    
    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
        return self._session
    
    async def close(self) -> None:
        if self._session and not self._session.closed:
            await self._session.close()
            self._session = None
    
    async def send(self, message: EmailMessage) -> EmailResult:
        if not self._api_url:
            return EmailResult(success=False, error="Email API URL not configured")
        
        payload = {
            "from": self._sender,
            "to": message.to,
            "subject": message.subject,
            "html": message.html,
        }
        headers = {"Authorization": f"Bearer {self._api_key}"} if self._api_key else {}
        
        try:
            session = await self._get_session()
            async with session.post(self._api_url, json=payload, headers=headers) as response:
                if 200 <= response.status < 300:
                    return EmailResult(success=True)
                body = await response.text()
                logger.error(f"Email API error: {response.status} - {body}")
                return EmailResult(success=False, error=f"HTTP {response.status}: {body}")
        except Exception as e:
            logger.error(f"Error sending email to {message.to}: {e}")
            return EmailResult(success=False, error=str(e))

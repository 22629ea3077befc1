"""
Alert System - Service.

============================================================
PURPOSE
============================================================
Route validator findings to durable storage and, when a human
has to look, to email.

ROUTING:
- Every notification is persisted
- Email only when emailing is enabled AND the notification is
  fatal or flagged for human review
- One email per configured recipient

GUARANTEES:
- queue_alert() and submit() never raise; delivery failures are logged
- Both return once the notification is queued. Persistence and
  email run in a background task, concurrently, each under its own
  timeout, so callers never wait on storage or the email provider
- drain() waits for outstanding deliveries

============================================================
"""

import asyncio
import logging
from collections import deque
from typing import Any, Deque, Dict, List, Optional, Set

from core.clock import ClockProtocol, SystemClock
from core.constants import AlertType, Domain, Severity
from core.exceptions import DeliveryFailure, PersistenceError
from core.settings import VeritasSettings

from .email import AlertEmailFormatter, EmailTransport
from .models import AlertNotification, AlertStatistics
from .store import AlertStore


logger = logging.getLogger(__name__)


DEFAULT_QUEUE_SIZE = 1000


class AlertSystem:
    """
    Alert queue, persistence and email routing.
    
    Usage:
        alerts = AlertSystem(store=AlertStore(factory), transport=HttpEmailTransport(),
                             settings=VeritasSettings.from_env())
        alerts.submit(notification)      # from a validator
        await alerts.drain()             # on shutdown
    """
    
    def __init__(
        self,
        store: Optional[AlertStore] = None,
        transport: Optional[EmailTransport] = None,
        settings: Optional[VeritasSettings] = None,
        clock: Optional[ClockProtocol] = None,
        queue_size: int = DEFAULT_QUEUE_SIZE,
    ):
        self._store = store
        self._transport = transport
        self._settings = settings or VeritasSettings()
        self._clock = clock or SystemClock()
        self._formatter = AlertEmailFormatter
        
        self._queue: Deque[AlertNotification] = deque(maxlen=queue_size)
        self._tasks: Set[asyncio.Task] = set()
        
        if self._store is None:
            logger.warning("AlertSystem has no store - alerts will not be persisted")
    
    # =========================================================
    # DISPATCH
    # =========================================================
    
    async def queue_alert(self, notification: AlertNotification) -> None:
        """
        Queue a notification and dispatch its delivery in the background.

        Returns once the notification is queued; persistence and email
        run as a tracked task (see drain()). Never raises.
        """
        self.submit(notification)

    def submit(self, notification: AlertNotification) -> None:
        """
        Queue a notification and dispatch its delivery without waiting.

        Without a running event loop the notification is delivered
        synchronously instead.
        """
        self._queue.append(notification)

        logger.info(
            f"Alert queued: {notification.severity.value.upper()} "
            f"{notification.symbol} {notification.alert_type.value} - {notification.message}"
        )

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            asyncio.run(self._deliver(notification))
            return

        task = loop.create_task(self._deliver(notification))
        self._tasks.add(task)
        task.add_done_callback(self._on_dispatch_done)

    async def _deliver(self, notification: AlertNotification) -> None:
        await asyncio.gather(
            self._persist(notification),
            self._send_emails(notification),
        )

    def _on_dispatch_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            logger.warning("Alert dispatch cancelled")
            return
        error = task.exception()
        if error is not None:
            logger.error(f"Alert dispatch failed: {error}")
    
    async def drain(self) -> None:
        """Wait for every outstanding delivery."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
    
    @property
    def pending_dispatches(self) -> int:
        return len(self._tasks)
    
    async def _persist(self, notification: AlertNotification) -> None:
        if self._store is None:
            return
        try:
            notification.id = await asyncio.wait_for(
                asyncio.to_thread(self._store.insert, notification),
                timeout=self._settings.persistence_timeout_seconds,
            )
            logger.debug(f"Alert persisted: id={notification.id}")
        except asyncio.TimeoutError:
            self._log_failure(DeliveryFailure(
                "persistence",
                f"Alert persistence timed out after {self._settings.persistence_timeout_seconds}s "
                f"({notification.symbol} {notification.alert_type.value})",
            ))
        except Exception as e:
            self._log_failure(DeliveryFailure(
                "persistence",
                f"Alert persistence failed ({notification.symbol} {notification.alert_type.value}): {e}",
                cause=e,
            ))
    
    def _should_email(self, notification: AlertNotification) -> bool:
        return (
            self._transport is not None
            and self._settings.should_email
            and notification.should_email
        )
    
    async def _send_emails(self, notification: AlertNotification) -> None:
        if not self._should_email(notification):
            return
        await asyncio.gather(*(
            self._send_email(notification, recipient)
            for recipient in self._settings.recipients
        ))
    
    async def _send_email(self, notification: AlertNotification, recipient: str) -> None:
        try:
            message = self._formatter.build(notification, recipient)
            result = await asyncio.wait_for(
                self._transport.send(message),
                timeout=self._settings.email_timeout_seconds,
            )
        except asyncio.TimeoutError:
            self._log_failure(DeliveryFailure(
                "email",
                f"Email to {recipient} timed out after {self._settings.email_timeout_seconds}s "
                f"({notification.symbol})",
            ))
            return
        except Exception as e:
            self._log_failure(DeliveryFailure("email", f"Email to {recipient} failed: {e}", cause=e))
            return
        
        if result.success:
            logger.info(f"Alert email sent to {recipient} ({notification.symbol})")
        else:
            self._log_failure(DeliveryFailure("email", f"Email to {recipient} failed: {result.error}"))
    
    @staticmethod
    def _log_failure(failure: DeliveryFailure) -> None:
        logger.error(f"[{failure.channel}] {failure}")
    
    # =========================================================
    # QUEUE
    # =========================================================
    
    def get_queue_size(self) -> int:
        return len(self._queue)
    
    def clear_queue(self) -> None:
        self._queue.clear()
    
    # =========================================================
    # QUERIES
    # =========================================================
    
    async def get_pending_alerts(self, limit: int = 50) -> List[AlertNotification]:
        """Unreviewed alerts, newest first. Empty on storage failure."""
        if self._store is None:
            return []
        try:
            return await asyncio.to_thread(self._store.pending, limit)
        except Exception as e:
            logger.error(f"Failed to load pending alerts: {e}")
            return []
    
    async def get_all_alerts(self, limit: int = 100) -> List[AlertNotification]:
        if self._store is None:
            return []
        try:
            return await asyncio.to_thread(self._store.all, limit)
        except Exception as e:
            logger.error(f"Failed to load alerts: {e}")
            return []
    
    async def mark_as_reviewed(
        self,
        alert_id: int,
        reviewed_by: str,
        notes: Optional[str] = None,
    ) -> AlertNotification:
        """
        Mark an alert reviewed.
        
        Raises:
            AlertNotFoundError: Unknown alert id
            PersistenceError: Storage unavailable
        """
        if self._store is None:
            raise PersistenceError("No alert store configured")
        alert = await asyncio.to_thread(
            self._store.mark_reviewed, alert_id, reviewed_by, notes, self._clock.now()
        )
        logger.info(f"Alert {alert_id} reviewed by {reviewed_by}")
        return alert
    
    async def get_alert_statistics(self) -> AlertStatistics:
        """Alert counts. All zero on storage failure."""
        if self._store is None:
            return AlertStatistics()
        try:
            return await asyncio.to_thread(self._store.statistics)
        except Exception as e:
            logger.error(f"Failed to load alert statistics: {e}")
            return AlertStatistics()
    
    # =========================================================
    # HELPERS
    # =========================================================
    
    def _build(
        self,
        severity: Severity,
        symbol: str,
        domain: Domain,
        alert_type: AlertType,
        message: str,
        details: Optional[Dict[str, Any]],
        requires_review: bool,
        **kwargs,
    ) -> AlertNotification:
        return AlertNotification(
            symbol=symbol,
            severity=severity,
            domain=domain,
            alert_type=alert_type,
            message=message,
            details=dict(details or {}),
            requires_human_review=requires_review,
            timestamp=self._clock.now(),
            **kwargs,
        )
    
    async def notify_fatal_error(
        self,
        symbol: str,
        domain: Domain,
        message: str,
        alert_type: AlertType = AlertType.FATAL_ERROR,
        details: Optional[Dict[str, Any]] = None,
        **kwargs,
    ) -> AlertNotification:
        notification = self._build(
            Severity.FATAL, symbol, domain, alert_type, message, details, True, **kwargs
        )
        await self.queue_alert(notification)
        return notification
    
    async def notify_critical_warning(
        self,
        symbol: str,
        domain: Domain,
        alert_type: AlertType,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        **kwargs,
    ) -> AlertNotification:
        notification = self._build(
            Severity.ERROR, symbol, domain, alert_type, message, details, True, **kwargs
        )
        await self.queue_alert(notification)
        return notification
    
    async def notify_error(
        self,
        symbol: str,
        domain: Domain,
        alert_type: AlertType,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        requires_review: bool = True,
        **kwargs,
    ) -> AlertNotification:
        notification = self._build(
            Severity.ERROR, symbol, domain, alert_type, message, details, requires_review, **kwargs
        )
        await self.queue_alert(notification)
        return notification
    
    async def notify_warning(
        self,
        symbol: str,
        domain: Domain,
        alert_type: AlertType,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        requires_review: bool = False,
        **kwargs,
    ) -> AlertNotification:
        notification = self._build(
            Severity.WARNING, symbol, domain, alert_type, message, details, requires_review, **kwargs
        )
        await self.queue_alert(notification)
        return notification
    
    async def notify_info(
        self,
        symbol: str,
        domain: Domain,
        alert_type: AlertType,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        **kwargs,
    ) -> AlertNotification:
        notification = self._build(
            Severity.INFO, symbol, domain, alert_type, message, details, False, **kwargs
        )
        await self.queue_alert(notification)
        return notification

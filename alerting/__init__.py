"""
Alert System.

============================================================
PURPOSE
============================================================
Persist every validator finding, email the ones a human must
see, and expose the review workflow over HTTP.

============================================================
"""

from .email import AlertEmailFormatter, EmailTransport, HttpEmailTransport
from .models import AlertNotification, AlertStatistics, EmailMessage, EmailResult
from .service import AlertSystem
from .store import AlertStore

__all__ = [
    "AlertEmailFormatter",
    "EmailTransport",
    "HttpEmailTransport",
    "AlertNotification",
    "AlertStatistics",
    "EmailMessage",
    "EmailResult",
    "AlertSystem",
    "AlertStore",
]

"""
Core Module - Constants.

============================================================
RESPONSIBILITY
============================================================
Enumerations shared by the validators and the alert system.

============================================================
"""

from enum import Enum


# ============================================================
# ALERT SEVERITY
# ============================================================

class Severity(str, Enum):
    """
    Alert severity, lowest to highest.
    
    FATAL forces is_valid=False and confidence=0 on the owning
    result and always requires human review.
    """
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    FATAL = "fatal"
    
    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]


_SEVERITY_RANK = {
    Severity.INFO: 0,
    Severity.WARNING: 1,
    Severity.ERROR: 2,
    Severity.FATAL: 3,
}


# ============================================================
# VALIDATION DOMAINS
# ============================================================

class Domain(str, Enum):
    """Data domain a validator covers."""
    MARKET = "market"
    SOCIAL = "social"
    ONCHAIN = "onchain"
    NEWS = "news"


# ============================================================
# ALERT TYPES
# ============================================================

class AlertType(str, Enum):
    """Category recorded with every persisted alert."""
    MARKET_DISCREPANCY = "market_discrepancy"
    SOCIAL_IMPOSSIBILITY = "social_impossibility"
    SOCIAL_DISCREPANCY = "social_discrepancy"
    ONCHAIN_INCONSISTENCY = "onchain_inconsistency"
    NEWS_DIVERGENCE = "news_divergence"
    DATA_UNAVAILABLE = "data_unavailable"
    VALIDATION_ERROR = "validation_error"
    FATAL_ERROR = "fatal_error"

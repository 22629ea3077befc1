"""
Domain Validators.

============================================================
PURPOSE
============================================================
Compare same-metric readings across independent sources, detect
logically impossible data, and score data quality per domain:

- MarketDataValidator: price and 24h volume across exchanges
- SocialSentimentValidator: sentiment across social sources
- OnChainValidator: exchange flows against market volume
- NewsValidator: headline sentiment against on-chain flows

ValidationOrchestrator runs them in order for one symbol and attaches
a cross-domain DataQualityReport; ValidationMetricsLogger records
every run.

Every validate() call returns a ValidationResult and never raises.

============================================================
"""

from .base import AlertSink, BaseValidator, relative_spread
from .config import ValidationThresholds
from .confidence import (
    ConfidenceBreakdown,
    calculate_confidence,
    get_confidence_level,
    get_confidence_recommendation,
    is_sufficient_confidence,
)
from .market import MarketDataValidator, MarketQuote
from .metrics import ValidationMetricsLogger, extract_metrics
from .metrics_models import AggregatedMetrics, ValidationMetrics
from .metrics_store import ValidationMetricsStore
from .models import (
    DataQualitySummary,
    Discrepancy,
    Fatal,
    Ok,
    RuntimeFailure,
    SourceReading,
    SourceValue,
    ValidationAlert,
    ValidationOutcome,
    ValidationResult,
)
from .news import NewsArticle, NewsValidator
from .onchain import ExchangeFlows, OnChainValidator, extract_volume_24h
from .orchestrator import (
    AnalysisInput,
    OrchestrationResult,
    ValidationOrchestrator,
    ValidationProgress,
)
from .quality_report import (
    DataQualityReport,
    Recommendation,
    ReliabilityGuidance,
    generate_data_quality_report,
    suggest_action_for_discrepancy,
)
from .social import SocialReading, SocialSentimentValidator
from .sources import fetch_all

__all__ = [
    "AlertSink",
    "BaseValidator",
    "relative_spread",
    "ValidationThresholds",
    "ConfidenceBreakdown",
    "calculate_confidence",
    "get_confidence_level",
    "get_confidence_recommendation",
    "is_sufficient_confidence",
    "MarketDataValidator",
    "MarketQuote",
    "ValidationMetricsLogger",
    "extract_metrics",
    "AggregatedMetrics",
    "ValidationMetrics",
    "ValidationMetricsStore",
    "DataQualitySummary",
    "Discrepancy",
    "Fatal",
    "Ok",
    "RuntimeFailure",
    "SourceReading",
    "SourceValue",
    "ValidationAlert",
    "ValidationOutcome",
    "ValidationResult",
    "NewsArticle",
    "NewsValidator",
    "ExchangeFlows",
    "OnChainValidator",
    "extract_volume_24h",
    "AnalysisInput",
    "OrchestrationResult",
    "ValidationOrchestrator",
    "ValidationProgress",
    "DataQualityReport",
    "Recommendation",
    "ReliabilityGuidance",
    "generate_data_quality_report",
    "suggest_action_for_discrepancy",
    "SocialReading",
    "SocialSentimentValidator",
    "fetch_all",
]

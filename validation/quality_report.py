"""
Validation - Data Quality Report.

============================================================
PURPOSE
============================================================
Turns the per-domain results of one validation run into a single
report for the caller:

- Alerts across domains, most severe first, duplicates removed,
  grouped by domain and by severity
- Discrepancies grouped by metric, with the exceeded count
- An overall quality score
- Prioritized, actionable recommendations
- Reliability guidance: can the analysis proceed, and with how
  much confidence

============================================================
SCORING
============================================================
Start at 100, then:
- minus 50 per FATAL alert
- minus 20 per ERROR alert
- minus 10 per WARNING alert
- minus 5 per discrepancy over its threshold
- plus up to 10 for coverage (domains with a result / 4)

Clamped to 0-100 and rounded.

============================================================
"""

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional

from core.constants import Domain, Severity

from .models import Discrepancy, ValidationAlert, ValidationResult


logger = logging.getLogger(__name__)


FATAL_PENALTY = 50
ERROR_PENALTY = 20
WARNING_PENALTY = 10
EXCEEDED_PENALTY = 5
COVERAGE_BONUS = 10

CRITICAL_PRICE_VARIANCE = 0.05
MIN_DOMAINS_FOR_COVERAGE = 3
PROCEED_MIN_SCORE = 60
QUALITY_WARNING_SCORE = 70

_PRIORITY_ORDER = {"high": 0, "medium": 1, "low": 2}

_STRENGTHS = {
    "price_consistency": "Price data consistent across sources",
    "volume_consistency": "Volume data consistent across sources",
    "sentiment_consistency": "Social sentiment validated across multiple sources",
    "market_to_chain_consistency": "On-chain data aligns with market activity",
}

_WEAKNESSES = {
    "price_consistency": "Price discrepancies detected across sources",
    "volume_consistency": "Volume discrepancies detected across sources",
    "sentiment_consistency": "Social sentiment divergence detected",
    "market_to_chain_consistency": "On-chain data inconsistent with market activity",
    "social_impossibility_check": "Social data contains logical impossibilities",
}


# ============================================================
# REPORT MODELS
# ============================================================

@dataclass
class Recommendation:
    """One actionable recommendation."""
    priority: str  # high, medium, low
    category: str  # data_quality, source_reliability, action_required
    title: str
    description: str
    action: str
    affected_sources: List[str] = field(default_factory=list)
    related_alerts: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "priority": self.priority,
            "category": self.category,
            "title": self.title,
            "description": self.description,
            "action": self.action,
            "affected_sources": list(self.affected_sources),
            "related_alerts": list(self.related_alerts),
        }


@dataclass
class ReliabilityGuidance:
    """How far the validated data can be trusted."""
    overall_reliability: str  # excellent, good, fair, poor, critical
    can_proceed: bool
    confidence_level: str  # high, medium, low, very_low
    warnings: List[str] = field(default_factory=list)
    strengths: List[str] = field(default_factory=list)
    weaknesses: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "overall_reliability": self.overall_reliability,
            "can_proceed": self.can_proceed,
            "confidence_level": self.confidence_level,
            "warnings": list(self.warnings),
            "strengths": list(self.strengths),
            "weaknesses": list(self.weaknesses),
        }


@dataclass
class DataQualityReport:
    """Cross-domain data quality report for one validation run."""
    overall_score: int
    per_domain_scores: Dict[str, float]
    passed_checks: List[str]
    failed_checks: List[str]

    alerts: List[ValidationAlert]
    alerts_by_domain: Dict[str, List[ValidationAlert]]
    alerts_by_severity: Dict[str, List[ValidationAlert]]

    discrepancies_by_metric: Dict[str, List[Discrepancy]]
    total_discrepancies: int
    exceeded_thresholds: int

    recommendations: List[Recommendation]
    reliability_guidance: ReliabilityGuidance

    generated_at: datetime
    validation_duration_ms: Optional[float] = None

    @property
    def total_alerts(self) -> int:
        return len(self.alerts)

    @property
    def critical_alerts(self) -> int:
        """FATAL plus ERROR alerts."""
        return (
            len(self.alerts_by_severity[Severity.FATAL.value])
            + len(self.alerts_by_severity[Severity.ERROR.value])
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "overall_score": self.overall_score,
            "per_domain_scores": dict(self.per_domain_scores),
            "passed_checks": list(self.passed_checks),
            "failed_checks": list(self.failed_checks),
            "total_alerts": self.total_alerts,
            "critical_alerts": self.critical_alerts,
            "alerts_by_domain": {
                k: [a.to_dict() for a in v] for k, v in self.alerts_by_domain.items()
            },
            "alerts_by_severity": {
                k: [a.to_dict() for a in v] for k, v in self.alerts_by_severity.items()
            },
            "discrepancies_by_metric": {
                k: [d.to_dict() for d in v] for k, v in self.discrepancies_by_metric.items()
            },
            "total_discrepancies": self.total_discrepancies,
            "exceeded_thresholds": self.exceeded_thresholds,
            "recommendations": [r.to_dict() for r in self.recommendations],
            "reliability_guidance": self.reliability_guidance.to_dict(),
            "generated_at": self.generated_at.isoformat(),
            "validation_duration_ms": self.validation_duration_ms,
        }


# ============================================================
# ALERTS AND DISCREPANCIES
# ============================================================

def _unique(items) -> List[str]:
    return list(dict.fromkeys(items))


def collect_alerts(results: List[ValidationResult]) -> List[ValidationAlert]:
    """All alerts, most severe first, with repeated domain/severity/message dropped."""
    alerts = [a for r in results for a in r.alerts]
    alerts.sort(key=lambda a: -a.severity.rank)

    seen = set()
    unique = []
    for alert in alerts:
        key = (alert.domain, alert.severity, alert.message)
        if key not in seen:
            seen.add(key)
            unique.append(alert)
    return unique


def _group_alerts(alerts: List[ValidationAlert]):
    by_domain: Dict[str, List[ValidationAlert]] = {d.value: [] for d in Domain}
    by_severity: Dict[str, List[ValidationAlert]] = {
        s.value: [] for s in sorted(Severity, key=lambda s: -s.rank)
    }
    for alert in alerts:
        by_domain[alert.domain.value].append(alert)
        by_severity[alert.severity.value].append(alert)
    return by_domain, by_severity


def _group_discrepancies(discrepancies: List[Discrepancy]) -> Dict[str, List[Discrepancy]]:
    grouped: Dict[str, List[Discrepancy]] = {}
    for discrepancy in discrepancies:
        grouped.setdefault(discrepancy.metric, []).append(discrepancy)
    return grouped


def calculate_quality_score(
    alerts: List[ValidationAlert],
    discrepancies: List[Discrepancy],
    available_domains: int,
) -> int:
    counts = {s: 0 for s in Severity}
    for alert in alerts:
        counts[alert.severity] += 1

    score = 100.0
    score -= counts[Severity.FATAL] * FATAL_PENALTY
    score -= counts[Severity.ERROR] * ERROR_PENALTY
    score -= counts[Severity.WARNING] * WARNING_PENALTY
    score -= sum(1 for d in discrepancies if d.exceeded) * EXCEEDED_PENALTY
    score += available_domains / len(Domain) * COVERAGE_BONUS
    # Half-up rounding
    return int(math.floor(max(0.0, min(100.0, score)) + 0.5))


# ============================================================
# RECOMMENDATIONS
# ============================================================

def suggest_action_for_discrepancy(discrepancy: Discrepancy) -> str:
    """Operator-facing next step for one discrepancy."""
    if not discrepancy.exceeded:
        return "No action required - within acceptable threshold"

    variance = discrepancy.variance * 100
    threshold = discrepancy.threshold * 100

    if discrepancy.metric == "price":
        if discrepancy.variance > CRITICAL_PRICE_VARIANCE:
            return (
                f"Critical price discrepancy ({variance:.2f}%). Investigate data sources "
                f"immediately. Using weighted average with dynamic trust scores."
            )
        return (
            f"Price variance ({variance:.2f}%) exceeds threshold ({threshold:.2f}%). "
            f"Using weighted average for final price."
        )
    if discrepancy.metric == "volume_24h":
        return (
            f"Volume variance ({variance:.2f}%) exceeds threshold ({threshold:.2f}%). "
            f"Using weighted average. Monitor for data source issues."
        )
    if discrepancy.metric == "sentiment_score":
        # Sentiment spread is measured in points, not as a ratio
        return (
            f"Sentiment divergence ({discrepancy.variance:.2f} points) exceeds threshold "
            f"({discrepancy.threshold:.2f} points). Review both sources for context."
        )

    names = ", ".join(s.name for s in discrepancy.sources)
    return f"Discrepancy in {discrepancy.metric} exceeds threshold. Review affected sources: {names}"


class RecommendationsEngine:
    """Builds prioritized recommendations from the collected findings."""

    def generate(
        self,
        alerts: List[ValidationAlert],
        discrepancies: List[Discrepancy],
        available_domains: int,
    ) -> List[Recommendation]:
        recommendations: List[Recommendation] = []

        fatal = [a for a in alerts if a.severity == Severity.FATAL]
        if fatal:
            recommendations.append(Recommendation(
                priority="high",
                category="action_required",
                title="Critical Data Quality Issues Detected",
                description=f"{len(fatal)} fatal error(s) detected that prevent reliable analysis.",
                action="Review fatal errors immediately. Do not proceed with analysis until resolved.",
                affected_sources=_unique(s for a in fatal for s in a.affected_sources),
                related_alerts=[a.message for a in fatal],
            ))

        price = [d for d in discrepancies if d.metric == "price" and d.exceeded]
        if price:
            max_variance = max(d.variance for d in price)
            recommendations.append(Recommendation(
                priority="high" if max_variance > CRITICAL_PRICE_VARIANCE else "medium",
                category="data_quality",
                title="Price Discrepancy Detected",
                description=f"Price variance of {max_variance * 100:.2f}% detected across data sources.",
                action=(
                    "Using weighted average with dynamic trust scores. "
                    "Consider investigating source reliability."
                ),
                affected_sources=_unique(s.name for d in price for s in d.sources),
            ))

        volume = [d for d in discrepancies if d.metric == "volume_24h" and d.exceeded]
        if volume:
            recommendations.append(Recommendation(
                priority="medium",
                category="data_quality",
                title="Volume Discrepancy Detected",
                description="Trading volume varies significantly across data sources.",
                action="Using weighted average for final volume. Monitor for data source issues.",
                affected_sources=_unique(s.name for d in volume for s in d.sources),
            ))

        recommendations.extend(self._domain_recommendations(alerts))

        if available_domains < MIN_DOMAINS_FOR_COVERAGE:
            recommendations.append(Recommendation(
                priority="medium",
                category="data_quality",
                title="Incomplete Data Coverage",
                description=f"Only {available_domains} out of {len(Domain)} data types available.",
                action=(
                    "Analysis may be limited. Consider waiting for more data sources "
                    "to become available."
                ),
            ))

        flagged = _unique(s for a in alerts for s in a.affected_sources)
        if len(flagged) >= 2:
            recommendations.append(Recommendation(
                priority="low",
                category="source_reliability",
                title="Multiple Source Reliability Issues",
                description=f"{len(flagged)} data sources showing reliability issues.",
                action=(
                    "Monitor source reliability scores. Consider alternative data "
                    "sources if issues persist."
                ),
                affected_sources=flagged,
            ))

        # Stable, so equal priorities keep insertion order
        recommendations.sort(key=lambda r: _PRIORITY_ORDER[r.priority])
        return recommendations

    @staticmethod
    def _domain_recommendations(alerts: List[ValidationAlert]) -> List[Recommendation]:
        recommendations = []

        social = [a for a in alerts if a.domain == Domain.SOCIAL]
        if social:
            has_fatal = any(a.severity == Severity.FATAL for a in social)
            recommendations.append(Recommendation(
                priority="high" if has_fatal else "medium",
                category="data_quality",
                title="Social Sentiment Data Issues",
                description=f"{len(social)} issue(s) detected in social sentiment data.",
                action=(
                    "Social data discarded due to logical impossibility. Do not use for analysis."
                    if has_fatal else
                    "Review social sentiment data carefully. Cross-validation shows divergence."
                ),
                affected_sources=_unique(s for a in social for s in a.affected_sources),
            ))

        onchain = [a for a in alerts if a.domain == Domain.ONCHAIN]
        if onchain:
            has_fatal = any(a.severity == Severity.FATAL for a in onchain)
            recommendations.append(Recommendation(
                priority="high" if has_fatal else "medium",
                category="data_quality",
                title="On-Chain Data Inconsistency",
                description=f"{len(onchain)} issue(s) detected in on-chain data.",
                action=(
                    "On-chain data unreliable. Cannot make whale accumulation/distribution claims."
                    if has_fatal else
                    "Use on-chain data with caution. Market-to-chain consistency is low."
                ),
                affected_sources=_unique(s for a in onchain for s in a.affected_sources),
            ))

        return recommendations


# ============================================================
# RELIABILITY GUIDANCE
# ============================================================

def _overall_reliability(score: float) -> str:
    if score >= 90:
        return "excellent"
    if score >= 75:
        return "good"
    if score >= 60:
        return "fair"
    if score >= 40:
        return "poor"
    return "critical"


def _confidence_level(score: float, fatal: int) -> str:
    if score >= 85 and fatal == 0:
        return "high"
    if score >= 70 and fatal == 0:
        return "medium"
    if score >= 50:
        return "low"
    return "very_low"


def build_guidance(
    score: int,
    alerts: List[ValidationAlert],
    passed_checks: List[str],
    failed_checks: List[str],
    available_domains: int,
) -> ReliabilityGuidance:
    fatal = sum(1 for a in alerts if a.severity == Severity.FATAL)
    errors = sum(1 for a in alerts if a.severity == Severity.ERROR)
    warnings = sum(1 for a in alerts if a.severity == Severity.WARNING)

    messages = []
    if fatal:
        messages.append(f"{fatal} fatal error(s) detected - analysis reliability severely compromised")
    if errors:
        messages.append(f"{errors} error(s) detected - use analysis with caution")
    if warnings > 2:
        messages.append(f"{warnings} warning(s) detected - data quality issues present")
    if score < QUALITY_WARNING_SCORE:
        messages.append(
            f"Overall data quality below recommended threshold ({QUALITY_WARNING_SCORE}%)"
        )

    strengths = [text for check, text in _STRENGTHS.items() if check in passed_checks]
    if available_domains == len(Domain):
        strengths.append("Complete data coverage across all data types")

    weaknesses = [text for check, text in _WEAKNESSES.items() if check in failed_checks]
    if available_domains < MIN_DOMAINS_FOR_COVERAGE:
        weaknesses.append("Incomplete data coverage - missing data types")

    return ReliabilityGuidance(
        overall_reliability=_overall_reliability(score),
        can_proceed=fatal == 0 and score >= PROCEED_MIN_SCORE,
        confidence_level=_confidence_level(score, fatal),
        warnings=messages,
        strengths=strengths,
        weaknesses=weaknesses,
    )


# ============================================================
# REPORT GENERATION
# ============================================================

def generate_data_quality_report(
    results: Mapping[Domain, Optional[ValidationResult]],
    validation_duration_ms: Optional[float] = None,
    generated_at: Optional[datetime] = None,
) -> DataQualityReport:
    """
    Build the cross-domain report for one run.

    Args:
        results: Per-domain results; None marks a domain with no result
        validation_duration_ms: Wall time of the run, if measured
        generated_at: Report timestamp (defaults to now, UTC)
    """
    present = {d: r for d, r in results.items() if r is not None}
    domain_results = list(present.values())
    available = len(present)

    alerts = collect_alerts(domain_results)
    by_domain, by_severity = _group_alerts(alerts)

    discrepancies = [d for r in domain_results for d in r.discrepancies]
    exceeded = sum(1 for d in discrepancies if d.exceeded)

    score = calculate_quality_score(alerts, discrepancies, available)

    per_domain = {d.value: 0.0 for d in Domain}
    for domain, result in present.items():
        per_domain[domain.value] = result.data_quality_summary.per_domain_scores.get(
            domain.value, 0.0
        )

    passed = _unique(c for r in domain_results for c in r.data_quality_summary.passed_checks)
    failed = _unique(c for r in domain_results for c in r.data_quality_summary.failed_checks)

    report = DataQualityReport(
        overall_score=score,
        per_domain_scores=per_domain,
        passed_checks=passed,
        failed_checks=failed,
        alerts=alerts,
        alerts_by_domain=by_domain,
        alerts_by_severity=by_severity,
        discrepancies_by_metric=_group_discrepancies(discrepancies),
        total_discrepancies=len(discrepancies),
        exceeded_thresholds=exceeded,
        recommendations=RecommendationsEngine().generate(alerts, discrepancies, available),
        reliability_guidance=build_guidance(score, alerts, passed, failed, available),
        generated_at=generated_at or datetime.now(timezone.utc),
        validation_duration_ms=validation_duration_ms,
    )

    logger.info(
        f"Data quality report: score={score}/100, alerts={report.total_alerts} "
        f"({report.critical_alerts} critical), discrepancies={len(discrepancies)} "
        f"({exceeded} exceeded), recommendations={len(report.recommendations)}, "
        f"reliability={report.reliability_guidance.overall_reliability}"
    )
    return report

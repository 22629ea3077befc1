"""
Validation - Aggregate Confidence.

Combines the per-domain results of one analysis into a single
confidence score:

    data source agreement   40%   how closely domain confidences agree
    logical consistency     30%   100 minus 50 per fatal alert
    cross-validation        20%   share of checks passed
    completeness            10%   share of the four domains present
"""

from dataclasses import dataclass, field
from statistics import pvariance
from typing import Any, Dict, Mapping, Optional

from core.constants import Domain, Severity
from source_reliability import SourceReliabilityTracker

from .models import ValidationResult


AGREEMENT_WEIGHT = 0.4
CONSISTENCY_WEIGHT = 0.3
CROSS_VALIDATION_WEIGHT = 0.2
COMPLETENESS_WEIGHT = 0.1

# A 50 point spread between domains (variance 2500) means no agreement
VARIANCE_PER_POINT = 25.0
FATAL_PENALTY = 50.0


@dataclass
class ConfidenceBreakdown:
    overall_score: int
    data_source_agreement: int
    logical_consistency: int
    cross_validation_success: int
    completeness: int
    domain_scores: Dict[str, float] = field(default_factory=dict)
    source_weights: Dict[str, float] = field(default_factory=dict)
    explanation: str = ""
    
    @property
    def level(self) -> str:
        return get_confidence_level(self.overall_score)
    
    def to_dict(self) -> Dict[str, Any]:
        return {
            "overall_score": self.overall_score,
            "data_source_agreement": self.data_source_agreement,
            "logical_consistency": self.logical_consistency,
            "cross_validation_success": self.cross_validation_success,
            "completeness": self.completeness,
            "domain_scores": dict(self.domain_scores),
            "source_weights": dict(self.source_weights),
            "level": self.level,
            "explanation": self.explanation,
        }


def calculate_confidence(
    results: Mapping[Domain, Optional[ValidationResult]],
    tracker: Optional[SourceReliabilityTracker] = None,
) -> ConfidenceBreakdown:
    """
    Aggregate per-domain results into one confidence breakdown.
    
    Args:
        results: Domain to result; None for domains not validated
        tracker: If given, trust weights of every source mentioned in
            alerts or discrepancies are included
    """
    present = {domain: r for domain, r in results.items() if r is not None}
    domain_scores = {d.value: 0.0 for d in Domain}
    domain_scores.update({d.value: r.confidence for d, r in present.items()})
    
    positive = [score for score in domain_scores.values() if score > 0]
    agreement = 0.0
    if positive:
        agreement = max(0.0, 100.0 - pvariance(positive) / VARIANCE_PER_POINT)
    
    fatal_count = sum(
        1 for r in present.values() for a in r.alerts if a.severity == Severity.FATAL
    )
    consistency = max(0.0, 100.0 - fatal_count * FATAL_PENALTY)
    
    passed = sum(len(r.data_quality_summary.passed_checks) for r in present.values())
    total = sum(r.data_quality_summary.total_checks for r in present.values())
    cross_validation = passed * 100.0 / total if total else 0.0
    
    completeness = len(present) * 100.0 / len(Domain)
    
    overall = round(
        agreement * AGREEMENT_WEIGHT
        + consistency * CONSISTENCY_WEIGHT
        + cross_validation * CROSS_VALIDATION_WEIGHT
        + completeness * COMPLETENESS_WEIGHT
    )
    
    source_weights: Dict[str, float] = {}
    if tracker is not None:
        for r in present.values():
            names = {s for a in r.alerts for s in a.affected_sources}
            names.update(s.name for d in r.discrepancies for s in d.sources)
            for name in names:
                source_weights[name] = tracker.get_trust_weight(name)
    
    parts = [
        get_confidence_recommendation(overall),
        f"{fatal_count} fatal error(s) detected." if fatal_count else "No logical inconsistencies detected.",
        f"{passed}/{total} validation checks passed." if total else "No validation checks ran.",
        f"{len(present)}/{len(Domain)} data domains available.",
    ]
    
    return ConfidenceBreakdown(
        overall_score=overall,
        data_source_agreement=round(agreement),
        logical_consistency=round(consistency),
        cross_validation_success=round(cross_validation),
        completeness=round(completeness),
        domain_scores=domain_scores,
        source_weights=source_weights,
        explanation=" ".join(parts),
    )


def get_confidence_level(score: float) -> str:
    if score >= 90:
        return "excellent"
    if score >= 80:
        return "good"
    if score >= 70:
        return "acceptable"
    if score >= 60:
        return "fair"
    return "poor"


def is_sufficient_confidence(score: float, minimum_threshold: float = 60.0) -> bool:
    return score >= minimum_threshold


def get_confidence_recommendation(score: float) -> str:
    if score >= 90:
        return "Data quality is excellent. Proceed with high confidence."
    if score >= 80:
        return "Data quality is good. Proceed with confidence."
    if score >= 70:
        return "Data quality is acceptable. Proceed with normal caution."
    if score >= 60:
        return "Data quality is fair. Review discrepancies before making decisions."
    return "Data quality is poor. Do not make trading decisions based on this analysis."

"""
Trust Scoring

Computes the composite trust score of a validation session and the trust
contribution of individual crowd reports.

The composite score averages the evidence of each category, weights the
category means with static weights and sums them. Categories without
evidence contribute zero; the sum is not renormalized over the categories
that did report.
"""

import math
from dataclasses import dataclass, fields
from typing import Dict, Iterable, Mapping, Sequence

from crowdguard.core.config import ConfigurationError
from crowdguard.models.emergency import Evidence, EvidenceCategory


@dataclass(frozen=True)
class TrustWeights:
    """Per-category weights of the composite trust score"""
    crowd_report: float = 0.30
    media_evidence: float = 0.25
    social_media: float = 0.15
    nearby_device: float = 0.10
    official_source: float = 0.20

    def __post_init__(self):
        for f in fields(self):
            value = getattr(self, f.name)
            if isinstance(value, bool) or not isinstance(value, (int, float)) or value < 0:
                raise ConfigurationError(f"Invalid trust weight for {f.name}: {value!r}")

        total = math.fsum(getattr(self, f.name) for f in fields(self))
        if not math.isclose(total, 1.0, abs_tol=1e-6):
            raise ConfigurationError(f"Trust weights must sum to 1.0, got {total:.6f}")

    def for_category(self, category: EvidenceCategory) -> float:
        return getattr(self, category.value)

    def as_dict(self) -> Dict[str, float]:
        return {f.name: getattr(self, f.name) for f in fields(self)}

    @classmethod
    def from_dict(cls, data: Mapping[str, float]) -> 'TrustWeights':
        """Create weights from a category-name mapping"""
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise ConfigurationError(f"Unknown trust weight categories: {sorted(unknown)}")
        missing = known - set(data)
        if missing:
            raise ConfigurationError(f"Missing trust weight categories: {sorted(missing)}")
        return cls(**{name: float(value) for name, value in data.items()})


DEFAULT_TRUST_WEIGHTS = TrustWeights()


class TrustScorer:
    """Pure composite scorer over evidence grouped by category"""

    def __init__(self, weights: TrustWeights = DEFAULT_TRUST_WEIGHTS):
        self.weights = weights

    def category_scores(
        self,
        evidence_by_category: Mapping[EvidenceCategory, Sequence[Evidence]]
    ) -> Dict[EvidenceCategory, float]:
        """Mean trust of each category, 0.0 for categories without evidence"""
        scores = {}
        for category in EvidenceCategory:
            items = evidence_by_category.get(category) or ()
            if items:
                # fsum is exactly rounded, so the mean does not depend on order
                scores[category] = math.fsum(item.trust for item in items) / len(items)
            else:
                scores[category] = 0.0
        return scores

    def score(self, evidence_by_category: Mapping[EvidenceCategory, Sequence[Evidence]]) -> float:
        """
        Compute the composite trust score

        Args:
            evidence_by_category: Evidence items keyed by their category

        Returns:
            Weighted score in [0, 1]; exactly 0.0 when there is no evidence
        """
        category_scores = self.category_scores(evidence_by_category)
        total = math.fsum(
            category_scores[category] * self.weights.for_category(category)
            for category in EvidenceCategory
        )
        return min(1.0, max(0.0, total))


def group_by_category(evidence: Iterable[Evidence]) -> Dict[EvidenceCategory, list]:
    """Partition evidence items by category"""
    grouped: Dict[EvidenceCategory, list] = {category: [] for category in EvidenceCategory}
    for item in evidence:
        grouped[item.category].append(item)
    return grouped


@dataclass(frozen=True)
class ReportTrustFactors:
    """Factors that make up the trust of a single crowd report, each in [0, 1]"""
    reporter_trust: float
    location_accuracy: float
    time_relevance: float
    content_quality: float


REPORT_FACTOR_WEIGHTS = {
    'reporter_trust': 0.35,
    'location_accuracy': 0.25,
    'time_relevance': 0.20,
    'content_quality': 0.20,
}


def _clamp(value: float) -> float:
    return min(1.0, max(0.0, float(value)))


def calculate_report_trust(factors: ReportTrustFactors) -> float:
    """Weighted combination of a crowd report's trust factors"""
    return _clamp(math.fsum(
        _clamp(getattr(factors, name)) * weight
        for name, weight in REPORT_FACTOR_WEIGHTS.items()
    ))


def location_accuracy(distance_m: float, radius_m: float) -> float:
    """1.0 at the emergency site, decaying linearly to 0.0 at the search radius"""
    if radius_m <= 0:
        return 0.0
    return _clamp(1.0 - distance_m / radius_m)


def time_relevance(age_seconds: float, horizon_seconds: float = 600.0) -> float:
    """1.0 for a fresh report, decaying linearly to 0.0 over the horizon"""
    if age_seconds <= 0:
        return 1.0
    return _clamp(1.0 - age_seconds / horizon_seconds)

"""
Unit tests for trust scoring

Tests category averaging, static weighting, weight validation and the
per-report trust factors used by the crowd source.
"""

import pytest

from crowdguard.core.config import ConfigurationError
from crowdguard.models.emergency import EvidenceCategory
from crowdguard.services.validation.scoring import (
    DEFAULT_TRUST_WEIGHTS, REPORT_FACTOR_WEIGHTS, ReportTrustFactors, TrustScorer, TrustWeights,
    calculate_report_trust, group_by_category, location_accuracy, time_relevance
)
from tests.mocks.validation_mocks import make_evidence


CROWD = EvidenceCategory.CROWD_REPORT
MEDIA = EvidenceCategory.MEDIA_EVIDENCE
SOCIAL = EvidenceCategory.SOCIAL_MEDIA
DEVICE = EvidenceCategory.NEARBY_DEVICE
OFFICIAL = EvidenceCategory.OFFICIAL_SOURCE


def evidence_map(**trusts):
    """Build {category: [evidence]} from category-value keyword lists"""
    grouped = {}
    for name, values in trusts.items():
        category = EvidenceCategory(name)
        grouped[category] = [make_evidence("emg-1", category, value) for value in values]
    return grouped


class TestTrustWeights:
    """Test weight construction and validation"""

    def test_default_weights(self):
        weights = TrustWeights()
        assert weights.crowd_report == 0.30
        assert weights.media_evidence == 0.25
        assert weights.social_media == 0.15
        assert weights.nearby_device == 0.10
        assert weights.official_source == 0.20
        assert DEFAULT_TRUST_WEIGHTS == weights

    def test_for_category(self):
        assert DEFAULT_TRUST_WEIGHTS.for_category(CROWD) == 0.30
        assert DEFAULT_TRUST_WEIGHTS.for_category(OFFICIAL) == 0.20

    def test_weights_must_sum_to_one(self):
        with pytest.raises(ConfigurationError, match="sum to 1.0"):
            TrustWeights(crowd_report=0.5)

    def test_negative_weight_rejected(self):
        with pytest.raises(ConfigurationError):
            TrustWeights(crowd_report=-0.1, media_evidence=0.65)

    def test_non_numeric_weight_rejected(self):
        with pytest.raises(ConfigurationError):
            TrustWeights(crowd_report="0.3")

    def test_from_dict_round_trip(self):
        weights = TrustWeights.from_dict({
            'crowd_report': 0.2,
            'media_evidence': 0.2,
            'social_media': 0.2,
            'nearby_device': 0.2,
            'official_source': 0.2
        })
        assert weights.as_dict() == {
            'crowd_report': 0.2,
            'media_evidence': 0.2,
            'social_media': 0.2,
            'nearby_device': 0.2,
            'official_source': 0.2
        }

    def test_from_dict_unknown_category(self):
        data = DEFAULT_TRUST_WEIGHTS.as_dict()
        data['satellite'] = 0.0
        with pytest.raises(ConfigurationError, match="Unknown"):
            TrustWeights.from_dict(data)

    def test_from_dict_missing_category(self):
        data = DEFAULT_TRUST_WEIGHTS.as_dict()
        del data['nearby_device']
        with pytest.raises(ConfigurationError, match="Missing"):
            TrustWeights.from_dict(data)


class TestTrustScorer:
    """Test the composite score"""

    def test_empty_evidence_scores_zero(self, scorer):
        assert scorer.score({}) == 0.0
        assert scorer.score({category: [] for category in EvidenceCategory}) == 0.0

    def test_category_scores_are_means(self, scorer):
        scores = scorer.category_scores(evidence_map(crowd_report=[0.9, 0.8], media_evidence=[0.9]))
        assert scores[CROWD] == pytest.approx(0.85)
        assert scores[MEDIA] == pytest.approx(0.9)
        assert scores[SOCIAL] == 0.0
        assert scores[DEVICE] == 0.0
        assert scores[OFFICIAL] == 0.0

    def test_scenario_a_below_threshold(self, scorer):
        score = scorer.score(evidence_map(
            crowd_report=[0.9, 0.8],
            media_evidence=[0.9],
            official_source=[0.95]
        ))
        assert score == pytest.approx(0.67)
        assert score < 0.75

    def test_scenario_b_more_evidence_can_lower_score(self, scorer):
        before = scorer.score(evidence_map(
            crowd_report=[0.9, 0.8],
            media_evidence=[0.9],
            official_source=[0.95]
        ))
        after = scorer.score(evidence_map(
            crowd_report=[0.9, 0.8],
            media_evidence=[0.9],
            official_source=[0.95, 0.9]
        ))
        assert after == pytest.approx(0.665)
        assert after < before

    def test_scenario_c_reaches_threshold_exactly(self, scorer):
        score = scorer.score(evidence_map(
            crowd_report=[1.0],
            media_evidence=[1.0],
            official_source=[1.0]
        ))
        assert score == 0.75
        assert score >= 0.75

    def test_single_category_capped_by_its_weight(self, scorer):
        score = scorer.score(evidence_map(crowd_report=[1.0, 1.0, 1.0]))
        assert score == pytest.approx(0.30)
        assert score < 0.75

    def test_missing_categories_not_renormalized(self, scorer):
        score = scorer.score(evidence_map(official_source=[1.0]))
        assert score == pytest.approx(0.20)

    def test_full_evidence_scores_one(self, scorer):
        score = scorer.score(evidence_map(**{category.value: [1.0] for category in EvidenceCategory}))
        assert score == pytest.approx(1.0)

    def test_custom_weights(self):
        scorer = TrustScorer(TrustWeights(
            crowd_report=1.0, media_evidence=0.0, social_media=0.0,
            nearby_device=0.0, official_source=0.0
        ))
        assert scorer.score(evidence_map(crowd_report=[0.4, 0.6], media_evidence=[1.0])) == pytest.approx(0.5)

    def test_group_by_category(self):
        items = [
            make_evidence("emg-1", CROWD, 0.5),
            make_evidence("emg-1", MEDIA, 0.7),
            make_evidence("emg-1", CROWD, 0.9),
        ]
        grouped = group_by_category(items)
        assert set(grouped) == set(EvidenceCategory)
        assert [item.trust for item in grouped[CROWD]] == [0.5, 0.9]
        assert grouped[SOCIAL] == []


class TestReportTrust:
    """Test per-report trust factors"""

    def test_factor_weights_sum_to_one(self):
        assert sum(REPORT_FACTOR_WEIGHTS.values()) == pytest.approx(1.0)

    def test_perfect_report(self):
        factors = ReportTrustFactors(1.0, 1.0, 1.0, 1.0)
        assert calculate_report_trust(factors) == pytest.approx(1.0)

    def test_weighted_combination(self):
        factors = ReportTrustFactors(
            reporter_trust=0.8,
            location_accuracy=0.5,
            time_relevance=1.0,
            content_quality=0.0
        )
        assert calculate_report_trust(factors) == pytest.approx(0.35 * 0.8 + 0.25 * 0.5 + 0.20)

    def test_factors_are_clamped(self):
        factors = ReportTrustFactors(2.0, -1.0, 1.0, 1.0)
        assert calculate_report_trust(factors) == pytest.approx(0.35 + 0.20 + 0.20)

    def test_location_accuracy(self):
        assert location_accuracy(0, 5000) == 1.0
        assert location_accuracy(2500, 5000) == pytest.approx(0.5)
        assert location_accuracy(7000, 5000) == 0.0
        assert location_accuracy(100, 0) == 0.0

    def test_time_relevance(self):
        assert time_relevance(0) == 1.0
        assert time_relevance(-5) == 1.0
        assert time_relevance(300) == pytest.approx(0.5)
        assert time_relevance(900) == 0.0
        assert time_relevance(30, horizon_seconds=60) == pytest.approx(0.5)

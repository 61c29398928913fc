import pytest

from checkin_service.recognition.backends import IndexedSearch, SearchHit
from checkin_service.recognition.consensus import (
    default_required_matches,
    indexed_consensus,
    pairwise_consensus,
    strictest_threshold,
)

from .conftest import match, no_match, unavailable


class TestPairwiseConsensus:

    def test_two_of_three_references_qualify(self):
        decision = pairwise_consensus([match(90), no_match(60), match(88)], 85, 2)

        assert decision.is_match
        assert decision.confidence == pytest.approx(89.0)
        assert decision.match_count == 2
        assert '2/3' in decision.explanation

    def test_single_reference_needs_one_match(self):
        decision = pairwise_consensus([match(91)], 85)

        assert decision.is_match
        assert decision.required_matches == 1
        assert '1/1' in decision.explanation

    def test_default_policy(self):
        assert default_required_matches(1) == 1
        assert default_required_matches(2) == 1
        assert default_required_matches(3) == 2
        assert default_required_matches(5) == 2

    def test_match_below_threshold_does_not_qualify(self):
        decision = pairwise_consensus([match(84.9), match(90), no_match(10)], 85)

        assert not decision.is_match
        assert decision.match_count == 1
        assert decision.confidence == pytest.approx(90.0)

    def test_confidence_falls_back_to_mean_of_all_answers(self):
        decision = pairwise_consensus([match(80), no_match(60)], 85)

        assert not decision.is_match
        assert decision.confidence == pytest.approx(70.0)
        assert '0/2' in decision.explanation

    def test_explicit_required_matches_applies_to_single_reference(self):
        decision = pairwise_consensus([match(95)], 85, required_matches=2)

        assert decision.required_matches == 2
        assert not decision.is_match
        assert '1/1' in decision.explanation
        assert 'required 2' in decision.explanation

    def test_default_policy_relaxes_single_reference(self):
        assert pairwise_consensus([match(95)], 85, required_matches=None).is_match

    def test_failed_comparisons_never_count(self):
        decision = pairwise_consensus([unavailable(), match(90), match(88)], 85)

        assert decision.is_match
        assert decision.total == 3
        assert decision.confidence == pytest.approx(89.0)
        assert '2/3' in decision.explanation
        assert '1 comparison(s) unavailable' in decision.explanation
        assert not decision.unavailable

    def test_all_comparisons_failed(self):
        decision = pairwise_consensus([unavailable(), unavailable()], 85)

        assert not decision.is_match
        assert decision.unavailable
        assert not decision.credentials_missing
        assert '0/2' in decision.explanation

    def test_missing_credentials_flagged(self):
        decision = pairwise_consensus([unavailable(missing=True)], 85)

        assert decision.unavailable
        assert decision.credentials_missing
        assert 'not configured' in decision.explanation

    def test_no_references(self):
        decision = pairwise_consensus([], 85)

        assert not decision.is_match
        assert decision.total == 0
        assert '0/0' in decision.explanation


class TestIndexedConsensus:

    def test_strictest_threshold_is_lowest_false_accept_rate(self):
        name, value = strictest_threshold({'1e-3': 62.3, '1e-5': 73.9, '1e-4': 69.1}, 65)

        assert name == '1e-5'
        assert value == pytest.approx(73.9)

    def test_fallback_when_no_thresholds(self):
        assert strictest_threshold({}, 65) == ('fallback', 65)
        assert strictest_threshold({'strict': 80.0}, 65) == ('fallback', 65)

    def test_top_hit_above_strictest_threshold_matches(self):
        result = IndexedSearch(
            hits=(SearchHit('tok-1', 80.2, 'FG0001'), SearchHit('tok-2', 50.0, 'FG0002')),
            thresholds={'1e-3': 62.3, '1e-5': 73.9},
        )
        decision = indexed_consensus(result, 65)

        assert decision.is_match
        assert decision.candidate_token == 'tok-1'
        assert decision.staff_id == 'FG0001'
        assert decision.confidence == pytest.approx(80.2)
        assert '1/1' in decision.explanation

    def test_hit_between_operating_points_is_rejected(self):
        result = IndexedSearch(
            hits=(SearchHit('tok-1', 70.0, 'FG0001'),),
            thresholds={'1e-3': 62.3, '1e-5': 73.9},
        )
        decision = indexed_consensus(result, 65)

        assert not decision.is_match
        assert '0/1' in decision.explanation

    def test_fallback_threshold_used_without_thresholds(self):
        result = IndexedSearch(hits=(SearchHit('tok-1', 66.0),))

        assert indexed_consensus(result, 65).is_match
        assert not indexed_consensus(result, 70).is_match

    def test_no_hits(self):
        decision = indexed_consensus(IndexedSearch(), 65)

        assert not decision.is_match
        assert not decision.unavailable
        assert '0/0' in decision.explanation

    def test_failure_is_unavailable(self):
        decision = indexed_consensus(unavailable(), 65)

        assert not decision.is_match
        assert decision.unavailable

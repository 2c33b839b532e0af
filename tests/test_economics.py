"""
Tests for the economic impact calculator.

Tests:
- Priority rank boundaries at 80, 60 and 40
- Rebate leakage on a $10M contract stays within the rebate band
- Zero deviation produces zero exposure
- Exposure confidence never exceeds 0.95
"""

import pytest

from pbm_intel.economics import EconomicImpactCalculator, rank_for_score
from pbm_intel.models import ClauseType, PriorityRank


@pytest.fixture
def calculator(reference):
    return EconomicImpactCalculator(reference)


@pytest.mark.parametrize("score,rank", [
    (80.0, PriorityRank.CRITICAL),
    (79.999, PriorityRank.HIGH),
    (60.0, PriorityRank.HIGH),
    (59.999, PriorityRank.MEDIUM),
    (40.0, PriorityRank.MEDIUM),
    (39.999, PriorityRank.LOW),
])
def test_rank_boundaries(score, rank):
    assert rank_for_score(score) == rank


def test_rebate_leakage_on_ten_million(calculator):
    """Full deviation with no economic alignment lands inside the 8-18% band."""
    estimate = calculator.estimate_exposure(ClauseType.REBATES, 1.0, 0.0, 10_000_000)
    assert 800_000 <= estimate.estimated_leakage <= 1_800_000 + 0.01


def test_alignment_reduces_leakage(calculator):
    aligned = calculator.estimate_exposure(ClauseType.REBATES, 0.6, 0.8, 10_000_000)
    misaligned = calculator.estimate_exposure(ClauseType.REBATES, 0.6, 0.2, 10_000_000)
    assert aligned.estimated_leakage < misaligned.estimated_leakage


def test_zero_deviation_means_no_exposure(calculator):
    estimate = calculator.estimate_exposure(ClauseType.REBATES, 0.0, 1.0, 10_000_000)
    assert estimate.estimated_leakage == 0.0


def test_zero_spend_means_no_exposure(calculator):
    estimate = calculator.estimate_exposure(ClauseType.SPECIALTY, 0.9, 0.0, 0)
    assert estimate.estimated_leakage == 0.0


def test_confidence_cap(calculator):
    estimate = calculator.estimate_exposure(ClauseType.MAC, 1.0, 0.0, 5_000_000)
    assert estimate.confidence == pytest.approx(0.95)


def test_priority_score_formula():
    result = EconomicImpactCalculator.calculate_priority(ClauseType.AUDIT, 200_000, 0.5, 50)
    # 0.5 * 2 + 0.3 * 50 + 0.2 * 50
    assert result.priority_score == pytest.approx(26.0)
    assert result.priority_rank == PriorityRank.LOW
    assert "Audit" in result.rationale


def test_critical_priority_rationale():
    result = EconomicImpactCalculator.calculate_priority(ClauseType.REBATES, 10_000_000, 1.0, 100)
    assert result.priority_rank == PriorityRank.CRITICAL
    assert result.rationale.startswith("Rebates terms leak an estimated $10,000,000")

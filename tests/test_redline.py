"""
Tests for the redline comparison engine.

Tests:
- Full comparison of the sample contract against the model library
- Comparisons ranked by priority with totals that add up
- An exact copy of the model clause carries no exposure
- No comparable clauses gives a zero score flagged as insufficient data
"""

from datetime import datetime, timezone

import pytest

from pbm_intel.extractor import ClauseExtractor
from pbm_intel.models import ClauseType, ContractClause, RiskLevel
from pbm_intel.redline import RedlineComparisonEngine, alignment_score, severity_for


@pytest.fixture
def engine(reference):
    return RedlineComparisonEngine(reference)


@pytest.fixture
def clauses(reference, current_text):
    return ClauseExtractor(reference).extract_clauses("acme", current_text)


def test_compare_sample_contract(engine, contract, clauses):
    analysis = engine.compare(contract, clauses)

    assert analysis.contract_id == "acme"
    assert not analysis.insufficient_data
    assert len(analysis.comparisons) == len(clauses)
    assert 0 <= analysis.overall_alignment_score <= 100
    assert analysis.total_estimated_exposure == pytest.approx(
        sum(c.estimated_annual_exposure for c in analysis.comparisons)
    )


def test_comparisons_ranked_by_priority(engine, contract, clauses):
    analysis = engine.compare(contract, clauses)
    scores = [c.priority_score for c in analysis.comparisons]
    assert scores == sorted(scores, reverse=True)


def test_equal_priority_keeps_extraction_order(engine, contract, clauses):
    rebate = next(c for c in clauses if c.clause_type == ClauseType.REBATES)
    twins = [rebate.model_copy(update={"id": f"acme_rebates_{n}"}) for n in (7, 8, 9)]
    analysis = engine.compare(contract, twins)
    assert len({c.priority_score for c in analysis.comparisons}) == 1
    assert [c.clause_id for c in analysis.comparisons] == ["acme_rebates_7", "acme_rebates_8", "acme_rebates_9"]


def test_rebate_deviation_is_critical(engine, contract, clauses):
    """Any rebate deviation on a $10M contract exceeds the $500K critical exposure."""
    analysis = engine.compare(contract, clauses)
    rebate = next(c for c in analysis.comparisons if c.clause_type == ClauseType.REBATES)
    assert rebate.estimated_annual_exposure > 500_000
    assert rebate.severity == RiskLevel.CRITICAL
    assert rebate.recommended_action.startswith("Insert 100% pass-through clause")
    assert analysis.critical_count >= 1
    assert any(action.startswith("Rebates: ") for action in analysis.recommended_actions)


def test_model_copy_has_no_exposure(engine, reference, contract):
    model_text = reference.model_clauses[ClauseType.AUDIT]
    clause = ContractClause(
        id="acme_audit_1",
        contract_id="acme",
        clause_type=ClauseType.AUDIT,
        text=model_text,
        economic_flag=True,
        risk_flag=RiskLevel.MEDIUM,
        confidence=0.9,
        extracted_at=datetime.now(timezone.utc),
    )
    comparison = engine.compare_clause(clause, model_text, contract.annual_spend)
    assert comparison.deviation_score == pytest.approx(0.0, abs=1e-9)
    assert comparison.estimated_annual_exposure == 0.0
    assert comparison.severity == RiskLevel.LOW


def test_no_comparable_clauses(engine, contract):
    analysis = engine.compare(contract, [])
    assert analysis.overall_alignment_score == 0
    assert analysis.insufficient_data
    assert analysis.comparisons == []
    assert analysis.executive_summary.startswith("NO COMPARABLE CLAUSES")


def test_custom_model_library_skips_missing_types(engine, contract, clauses):
    """Clause types absent from the model mapping are not compared."""
    models = {ClauseType.TERMINATION: "Either party may terminate with 90 days notice."}
    analysis = engine.compare(contract, clauses, models)
    assert [c.clause_type for c in analysis.comparisons] == [ClauseType.TERMINATION]


@pytest.mark.parametrize("deviation,exposure,level", [
    (0.71, 0, RiskLevel.CRITICAL),
    (0.1, 500_001, RiskLevel.CRITICAL),
    (0.51, 0, RiskLevel.HIGH),
    (0.31, 0, RiskLevel.MEDIUM),
    (0.1, 50_001, RiskLevel.MEDIUM),
    (0.3, 50_000, RiskLevel.LOW),
])
def test_severity_for(deviation, exposure, level):
    assert severity_for(deviation, exposure) == level


def test_alignment_score_empty():
    assert alignment_score([]) is None

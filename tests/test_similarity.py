"""
Tests for clause similarity scoring.

Tests:
- Identical texts score 1.0 similarity and zero deviation
- Deviation is always 1 - similarity
- Economic alignment penalties relative to the model clause
- Key differences detected in a sponsor-unfriendly clause
"""

import pytest

from pbm_intel.extractor import ClauseExtractor
from pbm_intel.models import ClauseType
from pbm_intel.similarity import SemanticSimilarityEngine, edit_similarity, jaccard


@pytest.fixture
def engine(reference):
    return SemanticSimilarityEngine(reference)


@pytest.fixture
def current_clauses(reference, current_text):
    return {c.clause_type: c for c in ClauseExtractor(reference).extract_clauses("acme", current_text)}


def test_identical_text(engine, reference):
    model = reference.model_clauses[ClauseType.REBATES]
    result = engine.compare(model, model)
    assert result.similarity_score == pytest.approx(1.0)
    assert result.deviation_score == pytest.approx(0.0)
    assert result.economic_alignment == 1.0
    assert result.key_differences == []


def test_deviation_is_complement(engine, reference, current_clauses):
    for clause_type, clause in current_clauses.items():
        result = engine.compare(clause.text, reference.model_clauses[clause_type])
        assert 0.0 <= result.similarity_score <= 1.0
        assert result.deviation_score == pytest.approx(1.0 - result.similarity_score)


def test_rebate_clause_alignment(engine, reference, current_clauses):
    """Missing pass-through, retention language and missing disclosure all apply."""
    result = engine.compare(
        current_clauses[ClauseType.REBATES].text, reference.model_clauses[ClauseType.REBATES]
    )
    assert result.economic_alignment == pytest.approx(0.2)
    assert result.key_differences == [
        "Missing 100% rebate pass-through guarantee",
        "Contains rebate retention or withholding language",
        "Missing disclosure requirements",
    ]


def test_alignment_floor_is_zero(engine):
    current = "PBM may retain rebates."
    model = "100% pass-through with full disclosure and audit rights."
    assert engine.economic_alignment(current, model) == pytest.approx(0.0, abs=1e-9)


def test_audit_limitation(engine, reference, current_clauses):
    result = engine.compare(
        current_clauses[ClauseType.AUDIT].text, reference.model_clauses[ClauseType.AUDIT]
    )
    assert "Audit rights limited or restricted" in result.key_differences


def test_model_audit_language_is_not_a_limitation(engine, reference):
    """'Unlimited' and 'No restrictions on audit scope' are not audit restrictions."""
    model = reference.model_clauses[ClauseType.AUDIT]
    differences = engine.key_differences(model, "Client may audit claims.")
    assert "Audit rights limited or restricted" not in differences


def test_longer_notice_period(engine, reference, current_clauses):
    result = engine.compare(
        current_clauses[ClauseType.TERMINATION].text, reference.model_clauses[ClauseType.TERMINATION]
    )
    assert "Longer notice or payment period: 180 days vs 90 days in model" in result.key_differences


def test_helpers_on_empty_input():
    assert jaccard(set(), set()) == 1.0
    assert edit_similarity("", "") == 1.0
    assert edit_similarity("abc", "abd") == pytest.approx(2 / 3)

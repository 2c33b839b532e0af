"""
Tests for the reference data service.

Tests:
- Every clause type has patterns, a model clause and a mitigation
- The loaded tables are read-only
- A JSON override replaces only the keys it names
- The template agreement renders every model clause as a numbered section
"""

import json

import pytest

from pbm_intel.models import ClauseType, RebateCategory
from pbm_intel.reference import get_reference_data, load_reference_data


def test_every_clause_type_is_covered(reference):
    """All fourteen clause types carry patterns, model text and a mitigation."""
    for clause_type in ClauseType:
        assert reference.clause_patterns[clause_type]
        assert reference.model_clauses[clause_type]
        assert reference.mitigations[clause_type]
        assert clause_type in reference.leakage_bands


def test_benchmark_table_is_ordered(reference):
    """Each benchmark row satisfies min <= median <= max."""
    assert set(reference.rebate_benchmarks) == set(RebateCategory)
    for benchmark in reference.rebate_benchmarks.values():
        assert benchmark.min_rebate_pct <= benchmark.median_rebate_pct <= benchmark.max_rebate_pct


def test_tables_are_read_only(reference):
    """Shared tables cannot be mutated by an analysis."""
    with pytest.raises(TypeError):
        reference.model_clauses[ClauseType.REBATES] = "anything"
    with pytest.raises(TypeError):
        reference.leakage_bands[ClauseType.AUDIT] = (0.0, 0.0)


def test_process_wide_instance_is_cached():
    """get_reference_data returns the same object on every call."""
    assert get_reference_data() is get_reference_data()


def test_override_file_merges_sections(tmp_path):
    """Overridden keys change; untouched keys keep their curated values."""
    override = {"version": "test-1", "leakage_bands": {"rebates": [0.1, 0.2]}}
    path = tmp_path / "reference.json"
    path.write_text(json.dumps(override))

    data = load_reference_data(str(path))

    assert data.version == "test-1"
    assert data.leakage_bands[ClauseType.REBATES] == (0.1, 0.2)
    assert data.leakage_bands[ClauseType.AUDIT] == (0.01, 0.03)


def test_template_contract_text(reference):
    """The template agreement has one numbered section per model clause."""
    text = reference.template_contract_text()
    assert text.startswith("TRANSPARENT PHARMACY BENEFIT MANAGEMENT AGREEMENT")
    assert "Section 1: Rebate Guarantee" in text
    assert f"Section {len(ClauseType)}: Force Majeure" in text

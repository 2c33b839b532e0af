"""
Tests for clause extraction.

Tests:
- Section splitting keeps the preamble and numbers each section
- Each section is classified into the expected clause types
- Risk flags follow fiduciary keywords first, then clause type
- Page references come from "--- Page N ---" markers
- Field extraction confidence scoring
"""

import pytest

from pbm_intel.extractor import ClauseExtractor, extract_field, split_sections
from pbm_intel.models import ClauseType, RiskLevel


@pytest.fixture
def extractor(reference):
    return ClauseExtractor(reference)


def test_split_sections_keeps_preamble(current_text):
    sections = split_sections(current_text)
    assert sections[0].number is None
    assert sections[0].text.startswith("PHARMACY BENEFIT SERVICES AGREEMENT")
    assert [s.number for s in sections[1:]] == ["1", "2", "3", "4", "5", "6"]


def test_text_without_headers_is_one_section():
    sections = split_sections("The PBM shall pay manufacturer rebates quarterly.")
    assert len(sections) == 1
    assert sections[0].number is None


def test_empty_text_yields_nothing(extractor):
    """No sections is a normal result, not an error."""
    assert split_sections("   \n ") == []
    assert extractor.extract_clauses("empty", "") == []


def test_current_contract_classification(extractor, current_text):
    clauses = extractor.extract_clauses("acme", current_text)
    by_id = {c.id: c for c in clauses}

    assert set(by_id) == {
        "acme_rebates_1",
        "acme_audit_2",
        "acme_data_ownership_3",
        "acme_termination_4",
        "acme_mac_5",
        "acme_confidentiality_6",
    }
    assert by_id["acme_rebates_1"].section_number == "1"
    assert by_id["acme_rebates_1"].page_reference is None


def test_risk_flags(extractor, current_text):
    """Fiduciary keywords make a clause critical regardless of its type."""
    clauses = {c.clause_type: c for c in extractor.extract_clauses("acme", current_text)}

    # "affiliates" in the data ownership section
    assert clauses[ClauseType.DATA_OWNERSHIP].risk_flag == RiskLevel.CRITICAL
    assert clauses[ClauseType.REBATES].risk_flag == RiskLevel.HIGH
    assert clauses[ClauseType.AUDIT].risk_flag == RiskLevel.MEDIUM
    assert clauses[ClauseType.TERMINATION].risk_flag == RiskLevel.MEDIUM
    assert clauses[ClauseType.MAC].risk_flag == RiskLevel.LOW


def test_economic_flag(extractor, current_text):
    clauses = {c.clause_type: c for c in extractor.extract_clauses("acme", current_text)}
    assert clauses[ClauseType.REBATES].economic_flag
    assert clauses[ClauseType.TERMINATION].economic_flag
    assert not clauses[ClauseType.DATA_OWNERSHIP].economic_flag


def test_confidence_combines_pattern_and_length(extractor, current_text):
    """All four data ownership patterns match, so only length scales confidence."""
    clauses = {c.clause_type: c for c in extractor.extract_clauses("acme", current_text)}
    clause = clauses[ClauseType.DATA_OWNERSHIP]
    expected = 0.7 + 0.3 * min(len(clause.text) / 500, 1.0)
    assert clause.confidence == pytest.approx(expected)


def test_section_can_carry_several_clause_types(extractor):
    text = "Section 1: Economics\nManufacturer rebates are paid quarterly. The dispensing fee is $2.00."
    types = {c.clause_type for c in extractor.extract_clauses("multi", text)}
    assert types == {ClauseType.REBATES, ClauseType.PRICING}


def test_page_references(extractor):
    text = (
        "--- Page 1 ---\n"
        "Section 1: Audit Rights\nClient has independent audit rights.\n\n"
        "--- Page 2 ---\n"
        "Section 2: Termination\nEither party may end the agreement with a 60 day notice period."
    )
    pages = {c.clause_type: c.page_reference for c in extractor.extract_clauses("paged", text)}
    assert pages[ClauseType.AUDIT] == 1
    assert pages[ClauseType.TERMINATION] == 2


def test_extract_field_scores_match():
    field = extract_field("Dispensing Fee: $2.50 per script", r"dispensing fee:\s*\$(\d+\.\d+)", "fee")
    assert field.value == "2.50"
    assert field.source_text == "Dispensing Fee: $2.50"
    assert field.confidence == pytest.approx(1.0)


def test_extract_field_unmatched_optional_group():
    field = extract_field("Dispensing fee: waived", r"dispensing fee:\s*(?:\$(\d+))?", "fee")
    assert field.value == "Dispensing fee:"
    assert field.confidence == pytest.approx(0.7)


def test_extract_field_without_match():
    field = extract_field("nothing relevant here", r"pepm:\s*\$(\d+)", "pepm")
    assert field.value is None
    assert field.confidence == 0.0

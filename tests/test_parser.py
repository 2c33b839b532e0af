"""
Tests for the PBM term parser.

Tests:
- Full extraction from a complete PBM agreement
- Defaults, notes and manual review when terms are missing
- Transparency levels
- Contract summary text
"""

from datetime import date

import pytest

from pbm_intel.config import EngineSettings
from pbm_intel.models import RebateTiming, TransparencyLevel
from pbm_intel.parser import PBMTermParser, generate_contract_summary


@pytest.fixture
def parser(settings):
    return PBMTermParser(settings)


def test_parse_full_agreement(parsed_contract):
    rebate = parsed_contract.rebate_terms
    assert parsed_contract.pbm_name == "Express Scripts"
    assert rebate.retained_percentage == 35
    assert rebate.passthrough_percentage == 65
    assert rebate.guaranteed_brand_per_script == 2.5
    assert rebate.guaranteed_generic_per_script == 0.5
    assert rebate.rebate_timing == RebateTiming.QUARTERLY
    assert rebate.rebate_basis == "AWP"


def test_parse_pricing_and_fees(parsed_contract):
    spread = parsed_contract.spread_pricing
    admin = parsed_contract.admin_fees
    specialty = parsed_contract.specialty_definition

    assert spread.awp_discount_percentage == 15
    assert spread.dispensing_fee == 2.5
    assert spread.ingredient_cost_basis == "MAC"
    assert spread.transparency_level == TransparencyLevel.OPAQUE
    assert not spread.spread_disclosed

    assert admin.pepm_fee == 8.5
    assert admin.per_script_fee == 0.75
    assert admin.performance_guarantee == 250_000

    assert specialty.cost_threshold == 1000
    assert specialty.white_bagging
    assert specialty.mandatory_mail_percentage == 50
    assert specialty.prior_auth_required


def test_parse_dates(parsed_contract):
    assert parsed_contract.effective_date == date(2024, 1, 1)
    assert parsed_contract.end_date == date(2026, 12, 31)


def test_full_agreement_needs_no_review(parsed_contract):
    assert parsed_contract.extraction_confidence == pytest.approx(1.0)
    assert parsed_contract.extraction_confidence >= 0.8
    assert not parsed_contract.manual_review_required
    assert parsed_contract.notes == []


def test_sparse_text_uses_defaults(parser):
    result = parser.parse("This agreement covers pharmacy benefits.", "sparse")
    assert result.success
    parsed = result.data

    assert parsed.pbm_name == "Unknown PBM"
    assert parsed.rebate_terms.retained_percentage == 0
    assert parsed.rebate_terms.passthrough_percentage == 100
    assert parsed.spread_pricing.awp_discount_percentage == 15
    assert parsed.admin_fees.pepm_fee == 8.5
    assert parsed.manual_review_required
    assert parsed.extraction_confidence < 0.8
    assert (parsed.end_date - parsed.effective_date).days == 365
    assert "Spread pricing terms unclear or missing" in parsed.notes


def test_passthrough_derived_from_retention(parser):
    parsed = parser.parse("PBM may retain 20% of rebates.").data
    assert parsed.rebate_terms.retained_percentage == 20
    assert parsed.rebate_terms.passthrough_percentage == 80


def test_transparency_levels(parser):
    partial = parser.parse("Pricing is transparent to the plan sponsor.").data
    full = parser.parse("Transparent pass-through pricing with no spread.").data
    assert partial.spread_pricing.transparency_level == TransparencyLevel.PARTIAL
    assert full.spread_pricing.transparency_level == TransparencyLevel.FULL


def test_review_threshold_is_configurable():
    parser = PBMTermParser(EngineSettings(manual_review_threshold=0.0))
    parsed = parser.parse("This agreement covers pharmacy benefits.").data
    assert not parsed.manual_review_required


def test_contract_summary(parsed_contract):
    summary = generate_contract_summary(parsed_contract)
    assert "PBM: Express Scripts" in summary
    assert "- Retained: 35%" in summary
    assert "Period: 01/01/2024 - 12/31/2026" in summary
    assert "Manual Review: Not required" in summary


def test_rebate_percentage_is_not_a_performance_guarantee(parser):
    parsed = parser.parse("Brand rebate guarantee: 22% of eligible claims.").data
    assert parsed.admin_fees.performance_guarantee is None


def test_dollar_guarantee_followed_by_sentence(parser):
    parsed = parser.parse("Savings guarantee: $1,500,000. Reconciled annually.").data
    assert parsed.admin_fees.performance_guarantee == 1_500_000

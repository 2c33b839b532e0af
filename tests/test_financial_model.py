"""
Tests for the financial modeling engine.

Tests:
- Visible and hidden cost breakdown under default utilization
- Revenue stream bands and categories
- Opportunity detection, ordering and totals
- Assumptions and sensitivity scenarios
"""

import pytest

from pbm_intel.financial_model import FinancialModelingEngine
from pbm_intel.models import (
    OpportunityType,
    RiskLevel,
    StreamCategory,
    StreamType,
    UtilizationAssumptions,
)


@pytest.fixture
def engine(settings):
    return FinancialModelingEngine(settings)


@pytest.fixture
def model(engine, parsed_contract):
    return engine.generate(parsed_contract)


def test_total_spend(model):
    # 15,000 scripts at $85
    assert model.total_annual_spend == pytest.approx(1_275_000)


def test_visible_costs(model):
    visible = model.visible_costs
    assert visible.ingredient_cost == pytest.approx(1_083_750)
    assert visible.dispensing_fees == pytest.approx(37_500)
    # 1,000 lives x $8.50 x 12 + 15,000 scripts x $0.75
    assert visible.admin_fees == pytest.approx(113_250)
    assert visible.total == pytest.approx(1_234_500)


def test_hidden_costs(model):
    hidden = model.hidden_costs
    # AWP minus 15% matches the PBM's own acquisition advantage: no spread
    assert hidden.spread_markup == pytest.approx(0.0, abs=1e-6)
    assert hidden.retained_rebates == pytest.approx(111_562.5)
    assert hidden.specialty_markup == pytest.approx(25_500)
    assert hidden.mail_premium == pytest.approx(26_250)


def test_spread_never_negative(engine, parsed_contract):
    shallow = parsed_contract.model_copy(update={
        "spread_pricing": parsed_contract.spread_pricing.model_copy(update={"awp_discount_percentage": 20.0}),
    })
    hidden = engine.calculate_hidden_costs(shallow, UtilizationAssumptions())
    assert hidden.spread_markup == 0.0


def test_revenue_stream_bands(model):
    assert {s.stream_type for s in model.revenue_streams} == {
        StreamType.SPREAD_MARKUP,
        StreamType.REBATE_RETENTION,
        StreamType.SPECIALTY_CARVEOUT,
        StreamType.MAIL_MANDATE,
    }
    for stream in model.revenue_streams:
        assert stream.amount_min <= stream.amount_likely <= stream.amount_max

    rebate = next(s for s in model.revenue_streams if s.stream_type == StreamType.REBATE_RETENTION)
    assert rebate.category == StreamCategory.HIDDEN
    assert rebate.amount_min == pytest.approx(111_562.5 * 0.7)
    assert rebate.amount_max == pytest.approx(111_562.5 * 1.3)


def test_opportunities(model):
    types = [o.opportunity_type for o in model.opportunities]
    assert types == [
        OpportunityType.REBATE_RETENTION,
        OpportunityType.MAIL_MANDATE_COST,
        OpportunityType.LACK_TRANSPARENCY,
    ]

    rebate = model.opportunities[0]
    assert rebate.id == "opp_rebate_contract_test"
    assert rebate.severity == RiskLevel.CRITICAL
    assert rebate.potential_savings == pytest.approx(111_562.5)

    savings = [o.potential_savings for o in model.opportunities]
    assert savings == sorted(savings, reverse=True)


def test_equal_savings_keep_detection_order(engine, parsed_contract):
    streams = [
        engine._stream(StreamType.SPREAD_MARKUP, StreamCategory.HIDDEN, 0.0, "spread"),
        engine._stream(StreamType.REBATE_RETENTION, StreamCategory.HIDDEN, 50_000, "rebates"),
        engine._stream(StreamType.SPECIALTY_CARVEOUT, StreamCategory.SEMI_TRANSPARENT, 0.0, "specialty"),
        engine._stream(StreamType.MAIL_MANDATE, StreamCategory.HIDDEN, 50_000, "mail"),
    ]
    opportunities = engine.detect_opportunities(parsed_contract, streams)
    assert [o.id for o in opportunities] == [
        "opp_rebate_contract_test",
        "opp_mail_contract_test",
        "opp_transparency_contract_test",
    ]


def test_totals(model):
    assert model.total_arbitrage_identified == pytest.approx(
        sum(o.potential_savings for o in model.opportunities)
    )
    assert model.confidence_weighted_savings == pytest.approx(
        sum(o.potential_savings * o.confidence_level for o in model.opportunities)
    )


def test_large_plan_flags_spread_and_specialty(engine, parsed_contract):
    deep = parsed_contract.model_copy(update={
        "spread_pricing": parsed_contract.spread_pricing.model_copy(update={"awp_discount_percentage": 5.0}),
    })
    utilization = UtilizationAssumptions(covered_lives=50_000, annual_scripts=600_000, avg_cost_per_script=85)
    model = engine.generate(deep, utilization)

    spread = next(o for o in model.opportunities if o.opportunity_type == OpportunityType.EXCESSIVE_SPREAD)
    # 600,000 x (80.75 - 72.25)
    assert spread.current_cost == pytest.approx(5_100_000)
    assert spread.severity == RiskLevel.CRITICAL
    assert any(o.opportunity_type == OpportunityType.SPECIALTY_MARKUP for o in model.opportunities)


def test_full_passthrough_has_no_rebate_opportunity(engine, parsed_contract):
    transparent = parsed_contract.model_copy(update={
        "rebate_terms": parsed_contract.rebate_terms.model_copy(
            update={"retained_percentage": 0.0, "passthrough_percentage": 100.0}
        ),
    })
    model = engine.generate(transparent)
    rebate = next(s for s in model.revenue_streams if s.stream_type == StreamType.REBATE_RETENTION)
    assert rebate.category == StreamCategory.VISIBLE
    assert all(o.opportunity_type != OpportunityType.REBATE_RETENTION for o in model.opportunities)


def test_assumptions(model):
    assert [a.id for a in model.assumptions] == ["ass_1", "ass_2", "ass_3", "ass_4", "ass_5"]
    assert model.assumptions[0].value == pytest.approx(15.0)


def test_zero_lives_assumption(engine, parsed_contract):
    model = engine.generate(parsed_contract, UtilizationAssumptions(covered_lives=0))
    assert model.assumptions[0].value == 0.0


def test_sensitivity_scenarios(model):
    impacts = [s.savings_impact for s in model.sensitivity_scenarios]
    total = model.total_arbitrage_identified
    assert impacts == pytest.approx([total * 0.15, total * -0.25, total * 0.10])

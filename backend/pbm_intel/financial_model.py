"""
PBM financial modeling.

Given parsed contract terms and utilization assumptions, splits pharmacy spend
into visible costs (ingredient, dispensing, admin) and hidden PBM revenue
(spread, retained rebates, specialty markup, mail premium), turns each hidden
stream into a min/likely/max band, and flags arbitrage opportunities.
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from .config import EngineSettings, load_settings
from .models import (
    ArbitrageOpportunity,
    Complexity,
    FinancialAssumption,
    FinancialModel,
    HiddenCosts,
    OpportunityType,
    ParsedContract,
    RevenueStream,
    RiskLevel,
    SensitivityScenario,
    StreamCategory,
    StreamType,
    TransparencyLevel,
    UtilizationAssumptions,
    VisibleCosts,
)

logger = logging.getLogger(__name__)

# (low, high) multipliers around the point estimate of each hidden stream
STREAM_BANDS = {
    StreamType.SPREAD_MARKUP: (0.8, 1.2),
    StreamType.REBATE_RETENTION: (0.7, 1.3),
    StreamType.SPECIALTY_CARVEOUT: (0.6, 1.5),
    StreamType.MAIL_MANDATE: (0.5, 1.5),
}

SPREAD_OPPORTUNITY_THRESHOLD = 500_000
SPREAD_CRITICAL_THRESHOLD = 2_000_000
REBATE_RETENTION_THRESHOLD = 10.0
REBATE_RETENTION_CRITICAL = 30.0
SPECIALTY_OPPORTUNITY_THRESHOLD = 100_000

# (name, variable, change %, savings multiplier, likelihood)
SENSITIVITY_SCENARIOS = (
    ("Optimistic: Higher rebate retention", "Rebate retention percentage", 20, 0.15, RiskLevel.MEDIUM),
    ("Conservative: Lower spread markup", "PBM acquisition cost advantage", -30, -0.25, RiskLevel.MEDIUM),
    ("Specialty utilization increase", "Specialty drug percentage", 50, 0.10, RiskLevel.HIGH),
)


class FinancialModelingEngine:
    def __init__(self, settings: Optional[EngineSettings] = None):
        self.settings = settings or load_settings()

    def generate(
        self,
        parsed: ParsedContract,
        utilization: Optional[UtilizationAssumptions] = None,
    ) -> FinancialModel:
        utilization = utilization or UtilizationAssumptions()
        total_spend = utilization.annual_scripts * utilization.avg_cost_per_script

        visible = self.calculate_visible_costs(parsed, utilization)
        hidden = self.calculate_hidden_costs(parsed, utilization)
        streams = self.identify_revenue_streams(parsed, hidden)
        opportunities = self.detect_opportunities(parsed, streams)

        total_arbitrage = sum(o.potential_savings for o in opportunities)
        weighted = sum(o.potential_savings * o.confidence_level for o in opportunities)

        logger.info(
            "Financial model for %s: spend $%.0f, hidden $%.0f, %d opportunities",
            parsed.contract_id, total_spend, hidden.total, len(opportunities),
        )
        return FinancialModel(
            contract_id=parsed.contract_id,
            total_annual_spend=total_spend,
            visible_costs=visible,
            hidden_costs=hidden,
            revenue_streams=streams,
            opportunities=opportunities,
            assumptions=self.build_assumptions(utilization),
            sensitivity_scenarios=self.run_sensitivity_analysis(total_arbitrage),
            total_arbitrage_identified=total_arbitrage,
            confidence_weighted_savings=weighted,
            generated_at=datetime.now(timezone.utc),
        )

    # ── Cost breakdown ───────────────────────────────────────────────────────

    @staticmethod
    def calculate_visible_costs(parsed: ParsedContract, u: UtilizationAssumptions) -> VisibleCosts:
        spread = parsed.spread_pricing
        ingredient = u.annual_scripts * u.avg_cost_per_script * (1 - spread.awp_discount_percentage / 100)
        dispensing = u.annual_scripts * spread.dispensing_fee
        admin = (
            u.covered_lives * parsed.admin_fees.pepm_fee * 12
            + u.annual_scripts * parsed.admin_fees.per_script_fee
        )
        return VisibleCosts(
            ingredient_cost=ingredient,
            dispensing_fees=dispensing,
            admin_fees=admin,
            total=ingredient + dispensing + admin,
        )

    def calculate_hidden_costs(self, parsed: ParsedContract, u: UtilizationAssumptions) -> HiddenCosts:
        s = self.settings
        client_price = u.avg_cost_per_script * (1 - parsed.spread_pricing.awp_discount_percentage / 100)
        acquisition_cost = u.avg_cost_per_script * s.pbm_acquisition_factor
        # A discount deeper than the PBM's own advantage leaves no spread to capture
        spread = max(u.annual_scripts * (client_price - acquisition_cost), 0.0)

        rebate_pool = u.annual_scripts * u.avg_cost_per_script * s.industry_rebate_rate
        retained = rebate_pool * parsed.rebate_terms.retained_percentage / 100

        specialty_scripts = u.annual_scripts * u.specialty_percentage / 100
        specialty = (
            specialty_scripts * u.avg_cost_per_script * s.specialty_cost_multiplier * s.specialty_markup_rate
        )

        mail = u.annual_scripts * u.mail_order_percentage / 100 * s.mail_premium_per_script

        return HiddenCosts(
            spread_markup=spread,
            retained_rebates=retained,
            specialty_markup=specialty,
            mail_premium=mail,
            total=spread + retained + specialty + mail,
        )

    # ── Revenue streams and opportunities ────────────────────────────────────

    @staticmethod
    def _stream(stream_type: StreamType, category: StreamCategory, likely: float, description: str) -> RevenueStream:
        low, high = STREAM_BANDS[stream_type]
        return RevenueStream(
            stream_type=stream_type,
            category=category,
            description=description,
            amount_min=likely * low,
            amount_likely=likely,
            amount_max=likely * high,
        )

    def identify_revenue_streams(self, parsed: ParsedContract, hidden: HiddenCosts) -> list[RevenueStream]:
        rebate = parsed.rebate_terms
        rebate_category = (
            StreamCategory.VISIBLE if rebate.passthrough_percentage == 100 else StreamCategory.HIDDEN
        )
        return [
            self._stream(
                StreamType.SPREAD_MARKUP, StreamCategory.HIDDEN, hidden.spread_markup,
                "Client price minus estimated PBM acquisition cost",
            ),
            self._stream(
                StreamType.REBATE_RETENTION, rebate_category, hidden.retained_rebates,
                f"{rebate.retained_percentage:g}% of manufacturer rebates retained",
            ),
            self._stream(
                StreamType.SPECIALTY_CARVEOUT, StreamCategory.SEMI_TRANSPARENT, hidden.specialty_markup,
                "Additional markup on specialty drugs above standard pricing",
            ),
            self._stream(
                StreamType.MAIL_MANDATE, StreamCategory.HIDDEN, hidden.mail_premium,
                "Premium charged for mail order fulfillment above retail equivalent",
            ),
        ]

    def detect_opportunities(
        self,
        parsed: ParsedContract,
        streams: list[RevenueStream],
    ) -> list[ArbitrageOpportunity]:
        by_type = {s.stream_type: s.amount_likely for s in streams}
        spread = by_type.get(StreamType.SPREAD_MARKUP, 0.0)
        retained_pct = parsed.rebate_terms.retained_percentage
        cid = parsed.contract_id
        opportunities = []

        if spread > SPREAD_OPPORTUNITY_THRESHOLD:
            opportunities.append(ArbitrageOpportunity(
                id=f"opp_spread_{cid}",
                opportunity_type=OpportunityType.EXCESSIVE_SPREAD,
                title="Excessive spread pricing",
                description=(
                    f"Estimated ${spread:,.0f} annual spread at AWP minus "
                    f"{parsed.spread_pricing.awp_discount_percentage:g}%. Negotiate pass-through "
                    f"pricing and MAC list transparency."
                ),
                severity=RiskLevel.CRITICAL if spread > SPREAD_CRITICAL_THRESHOLD else RiskLevel.HIGH,
                current_cost=spread,
                market_benchmark=spread * 0.3,
                potential_savings=spread * 0.7,
                confidence_level=0.85,
                complexity=Complexity.MEDIUM,
            ))

        if retained_pct > REBATE_RETENTION_THRESHOLD:
            retained = by_type.get(StreamType.REBATE_RETENTION, 0.0)
            opportunities.append(ArbitrageOpportunity(
                id=f"opp_rebate_{cid}",
                opportunity_type=OpportunityType.REBATE_RETENTION,
                title="Manufacturer rebate retention",
                description=(
                    f"PBM retains {retained_pct:g}% of manufacturer rebates "
                    f"(${retained:,.0f} per year). Market standard is 100% pass-through."
                ),
                severity=RiskLevel.CRITICAL if retained_pct > REBATE_RETENTION_CRITICAL else RiskLevel.HIGH,
                current_cost=retained,
                market_benchmark=0.0,
                potential_savings=retained,
                confidence_level=0.90,
                complexity=Complexity.LOW,
            ))

        if parsed.spread_pricing.transparency_level == TransparencyLevel.OPAQUE:
            opportunities.append(ArbitrageOpportunity(
                id=f"opp_transparency_{cid}",
                opportunity_type=OpportunityType.LACK_TRANSPARENCY,
                title="Opaque pricing methodology",
                description="No spread disclosure or MAC list access. Request full pricing transparency.",
                severity=RiskLevel.HIGH,
                current_cost=0.0,
                market_benchmark=0.0,
                potential_savings=spread * 0.5,
                confidence_level=0.70,
                complexity=Complexity.LOW,
            ))

        specialty = by_type.get(StreamType.SPECIALTY_CARVEOUT, 0.0)
        if specialty > SPECIALTY_OPPORTUNITY_THRESHOLD:
            opportunities.append(ArbitrageOpportunity(
                id=f"opp_specialty_{cid}",
                opportunity_type=OpportunityType.SPECIALTY_MARKUP,
                title="Specialty drug markup",
                description=(
                    f"Estimated ${specialty:,.0f} specialty markup. Consider a specialty carve-out "
                    f"or an alternative specialty pharmacy."
                ),
                severity=RiskLevel.MEDIUM,
                current_cost=specialty,
                market_benchmark=specialty * 0.5,
                potential_savings=specialty * 0.5,
                confidence_level=0.65,
                complexity=Complexity.HIGH,
            ))

        mail = by_type.get(StreamType.MAIL_MANDATE, 0.0)
        if parsed.specialty_definition.mandatory_mail_percentage > 0 and mail > 0:
            opportunities.append(ArbitrageOpportunity(
                id=f"opp_mail_{cid}",
                opportunity_type=OpportunityType.MAIL_MANDATE_COST,
                title="Mandatory mail order premium",
                description=(
                    f"Mail mandate carries an estimated ${mail:,.0f} annual premium over retail. "
                    f"Negotiate retail 90-day parity."
                ),
                severity=RiskLevel.MEDIUM,
                current_cost=mail,
                market_benchmark=0.0,
                potential_savings=mail,
                confidence_level=0.60,
                complexity=Complexity.MEDIUM,
            ))

        # Stable: equal savings keep detection order
        return sorted(opportunities, key=lambda o: o.potential_savings, reverse=True)

    # ── Assumptions and sensitivity ──────────────────────────────────────────

    def build_assumptions(self, u: UtilizationAssumptions) -> list[FinancialAssumption]:
        s = self.settings
        scripts_per_life = u.annual_scripts / u.covered_lives if u.covered_lives else 0.0
        return [
            FinancialAssumption(
                id="ass_1", description="Annual prescription volume per covered life",
                value=scripts_per_life, basis="estimated", sensitivity=RiskLevel.MEDIUM,
            ),
            FinancialAssumption(
                id="ass_2", description="Average manufacturer rebate as a share of ingredient spend",
                value=s.industry_rebate_rate, basis="industry_benchmark", sensitivity=RiskLevel.HIGH,
            ),
            FinancialAssumption(
                id="ass_3", description="PBM acquisition cost as a share of average script cost",
                value=s.pbm_acquisition_factor, basis="market_data", sensitivity=RiskLevel.HIGH,
            ),
            FinancialAssumption(
                id="ass_4", description="Additional margin on specialty drugs",
                value=s.specialty_markup_rate, basis="industry_benchmark", sensitivity=RiskLevel.MEDIUM,
            ),
            FinancialAssumption(
                id="ass_5", description="PBM premium per mail order script",
                value=s.mail_premium_per_script, basis="industry_benchmark", sensitivity=RiskLevel.LOW,
            ),
        ]

    @staticmethod
    def run_sensitivity_analysis(total_savings: float) -> list[SensitivityScenario]:
        return [
            SensitivityScenario(
                name=name,
                variable=variable,
                change_percentage=change,
                savings_impact=total_savings * multiplier,
                likelihood=likelihood,
            )
            for name, variable, change, multiplier, likelihood in SENSITIVITY_SCENARIOS
        ]

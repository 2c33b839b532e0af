"""
Board-ready actuarial report: executive summary, phased implementation
roadmap, board recommendations and an audit trail over one financial model.
"""

import logging
import uuid
from datetime import datetime, timezone
from typing import Optional

from .models import (
    ActuarialReport,
    ArbitrageOpportunity,
    AuditEntry,
    Complexity,
    ExecutiveSummary,
    FinancialModel,
    ImplementationPhase,
    OpportunityType,
    ParsedContract,
    RiskLevel,
    TransparencyLevel,
)

logger = logging.getLogger(__name__)

QUICK_WIN_CONFIDENCE = 0.8
CRITICAL_SAVINGS_PCT = 15.0
SIGNIFICANT_SAVINGS_PCT = 8.0
RETAINED_REBATE_ALERT_PCT = 20.0
SPECIALTY_ALERT_SAVINGS = 500_000

_RULE = "━" * 54


def _is_quick_win(o: ArbitrageOpportunity) -> bool:
    return o.complexity == Complexity.LOW and o.confidence_level > QUICK_WIN_CONFIDENCE


def _is_structural(o: ArbitrageOpportunity) -> bool:
    # Low-complexity items below the quick-win bar wait for phase 2
    return o.complexity == Complexity.MEDIUM or (
        o.complexity == Complexity.LOW and not _is_quick_win(o)
    )


# (number, name, selector, months, prerequisites, risks)
_PHASES = (
    (
        1, "Immediate Opportunities", _is_quick_win, 3,
        ["Board approval", "PBM contract review"],
        ["PBM resistance", "Contract amendment required"],
    ),
    (
        2, "Structural Improvements", _is_structural, 6,
        ["Phase 1 completion", "Data infrastructure ready"],
        ["System integration complexity", "Member communication required"],
    ),
    (
        3, "Strategic Transformation", lambda o: o.complexity == Complexity.HIGH, 12,
        ["Phase 1 & 2 success", "Alternative PBM evaluation"],
        ["Contract termination", "Transition disruption", "Member impact"],
    ),
)


def savings_percentage(model: FinancialModel) -> float:
    if model.total_annual_spend <= 0:
        return 0.0
    return model.total_arbitrage_identified / model.total_annual_spend * 100


def build_implementation_roadmap(model: FinancialModel) -> list[ImplementationPhase]:
    """Only phases with at least one opportunity are emitted; numbering is kept."""
    phases = []
    for number, name, selector, months, prerequisites, risks in _PHASES:
        selected = [o for o in model.opportunities if selector(o)]
        if not selected:
            continue
        phases.append(ImplementationPhase(
            phase_number=number,
            name=name,
            opportunities=[o.id for o in selected],
            estimated_savings=sum(o.potential_savings for o in selected),
            duration_months=months,
            prerequisites=list(prerequisites),
            risks=list(risks),
        ))
    return phases


def build_board_recommendations(model: FinancialModel, parsed: ParsedContract) -> list[str]:
    total = model.total_arbitrage_identified
    pct = savings_percentage(model)
    recommendations = []

    if pct > CRITICAL_SAVINGS_PCT:
        recommendations.append(
            f"CRITICAL: Identified ${total:,.0f} ({pct:.1f}%) in arbitrage opportunities. "
            f"Immediate PBM contract renegotiation recommended."
        )
    elif pct > SIGNIFICANT_SAVINGS_PCT:
        recommendations.append(
            f"SIGNIFICANT: ${total:,.0f} in potential savings identified. "
            f"Recommend structured improvement program with PBM."
        )
    else:
        recommendations.append(
            f"MODERATE: ${total:,.0f} in optimization opportunities. "
            f"Recommend incremental improvements over 12-month period."
        )

    retained = parsed.rebate_terms.retained_percentage
    if retained > RETAINED_REBATE_ALERT_PCT:
        recommendations.append(
            f"Rebate Retention: PBM currently retains {retained:g}% of manufacturer rebates. "
            f"Industry best practice is 100% pass-through. This represents "
            f"${model.hidden_costs.retained_rebates:,.0f} annual opportunity."
        )

    if parsed.spread_pricing.transparency_level == TransparencyLevel.OPAQUE:
        recommendations.append(
            "Pricing Transparency: Contract lacks spread disclosure and MAC list access. "
            "Recommend requiring full transparency as condition of contract renewal."
        )

    specialty = next(
        (o for o in model.opportunities if o.opportunity_type == OpportunityType.SPECIALTY_MARKUP), None
    )
    if specialty is not None and specialty.potential_savings > SPECIALTY_ALERT_SAVINGS:
        recommendations.append(
            f"Specialty Drug Management: Identified ${specialty.potential_savings:,.0f} in specialty "
            f"arbitrage. Recommend evaluating specialty pharmacy carve-out or direct contracting "
            f"with manufacturers."
        )

    recommendations.append(
        "Implementation Timeline: Phased approach over 12-18 months recommended, starting with "
        "low-complexity opportunities while evaluating strategic alternatives."
    )
    recommendations.append(
        "Risk Mitigation: Engage independent PBM consultant to validate findings and support "
        "contract negotiations. Consider RFP process to establish competitive benchmark."
    )
    return recommendations


class ActuarialReportGenerator:
    def generate(
        self,
        parsed: ParsedContract,
        model: FinancialModel,
        filename: Optional[str] = None,
    ) -> ActuarialReport:
        roadmap = build_implementation_roadmap(model)
        critical = sum(
            1 for o in model.opportunities if o.severity in (RiskLevel.CRITICAL, RiskLevel.HIGH)
        )
        summary = ExecutiveSummary(
            total_annual_spend=model.total_annual_spend,
            total_arbitrage_identified=model.total_arbitrage_identified,
            savings_percentage=savings_percentage(model),
            confidence_weighted_savings=model.confidence_weighted_savings,
            critical_findings=critical,
            estimated_implementation_timeline=f"{len(roadmap) * 3}-{len(roadmap) * 6} months",
        )

        report = ActuarialReport(
            report_id=f"report_{uuid.uuid4().hex[:12]}",
            contract_id=parsed.contract_id,
            pbm_name=parsed.pbm_name,
            generated_at=datetime.now(timezone.utc),
            executive_summary=summary,
            detailed_findings=list(model.opportunities),
            financial_model=model,
            board_recommendations=build_board_recommendations(model, parsed),
            implementation_roadmap=roadmap,
            audit_trail=self._audit_trail(parsed, model, filename),
        )
        logger.info(
            "Actuarial report %s for %s: %d findings across %d phases",
            report.report_id, parsed.contract_id, len(report.detailed_findings), len(roadmap),
        )
        return report

    @staticmethod
    def _audit_trail(parsed: ParsedContract, model: FinancialModel, filename: Optional[str]) -> list[AuditEntry]:
        now = datetime.now(timezone.utc)
        upload_details = {"contract_id": parsed.contract_id}
        if filename:
            upload_details["filename"] = filename
        return [
            AuditEntry(timestamp=now, action="contract_uploaded", actor="system", details=upload_details),
            AuditEntry(
                timestamp=parsed.parsed_at,
                action="contract_parsed",
                actor="parser_engine",
                details={"confidence": f"{parsed.extraction_confidence:.2f}"},
            ),
            AuditEntry(
                timestamp=model.generated_at,
                action="financial_model_generated",
                actor="modeling_engine",
                details={"total_arbitrage": f"{model.total_arbitrage_identified:.2f}"},
            ),
            AuditEntry(
                timestamp=now,
                action="actuarial_report_generated",
                actor="report_generator",
                details={"opportunity_count": str(len(model.opportunities))},
            ),
        ]


def format_report_for_board(report: ActuarialReport) -> str:
    summary = report.executive_summary
    model = report.financial_model

    lines = [
        _RULE,
        "PHARMACY BENEFIT ARBITRAGE ANALYSIS",
        "Board-Ready Executive Summary",
        f"{report.pbm_name} | Contract {report.contract_id}",
        _RULE,
        "",
        "FINANCIAL OVERVIEW",
        _RULE,
        f"Total Annual Pharmacy Spend:    ${summary.total_annual_spend:,.0f}",
        f"Identified Arbitrage:           ${summary.total_arbitrage_identified:,.0f}",
        f"Arbitrage as % of Spend:        {summary.savings_percentage:.1f}%",
        f"Confidence-Weighted Savings:    ${summary.confidence_weighted_savings:,.0f}",
        "",
        _RULE,
        "OPPORTUNITY BREAKDOWN",
        _RULE,
    ]
    if not report.detailed_findings:
        lines.append("No arbitrage opportunities identified.")
    for idx, opp in enumerate(report.detailed_findings[:5], 1):
        lines += [
            "",
            f"{idx}. {opp.opportunity_type.value.replace('_', ' ').upper()}",
            f"   Severity: {opp.severity.value.upper()}",
            f"   Potential Savings: ${opp.potential_savings:,.0f}",
            f"   Confidence: {opp.confidence_level:.0%}",
            f"   Complexity: {opp.complexity.value}",
        ]

    lines += ["", _RULE, "BOARD RECOMMENDATIONS", _RULE, ""]
    for idx, rec in enumerate(report.board_recommendations, 1):
        lines += [f"{idx}. {rec}", ""]

    lines += [_RULE, "IMPLEMENTATION ROADMAP", _RULE]
    for phase in report.implementation_roadmap:
        lines += [
            "",
            f"PHASE {phase.phase_number}: {phase.name}",
            f"Timeline: {phase.duration_months} months",
            f"Estimated Savings: ${phase.estimated_savings:,.0f}",
            f"Opportunities: {len(phase.opportunities)}",
        ]
    lines += [
        "",
        f"Total Timeline: {summary.estimated_implementation_timeline}",
        "",
        _RULE,
        f"Report Generated: {report.generated_at:%Y-%m-%d %H:%M UTC}",
        f"Assumptions: {len(model.assumptions)} documented in the financial model appendix.",
        _RULE,
    ]
    return "\n".join(lines)

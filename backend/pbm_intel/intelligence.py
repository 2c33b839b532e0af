"""
Contract intelligence orchestration.

Runs clause extraction on the current (and optional template) contract, then
the redline comparison, fiduciary risk scoring and Indiana rebate benchmark,
and condenses the results into negotiation leverage points and an executive
briefing.
"""

import logging
import re
import threading
from datetime import datetime, timezone
from typing import Iterable, NamedTuple, Optional

from .benchmark import BenchmarkOracle
from .config import EngineSettings, load_settings
from .economics import EconomicImpactCalculator
from .extractor import ClauseExtractor, clauses_by_type
from .models import (
    ClauseType,
    Contract,
    ContractClause,
    ContractHealthCheck,
    ContractIntelligenceReport,
    ContractRiskScore,
    ContractRole,
    RebateCategory,
    RebateStructureAnalysis,
    RedlineAnalysis,
    RiskComparison,
    RiskLevel,
)
from .redline import RedlineComparisonEngine
from .reference import ReferenceData, get_reference_data
from .risk import FiduciaryRiskEngine
from .similarity import SemanticSimilarityEngine

logger = logging.getLogger(__name__)

REQUIRED_CLAUSES = (ClauseType.REBATES, ClauseType.AUDIT, ClauseType.DATA_OWNERSHIP)
MISSING_CLAUSE_PENALTY = 20
HIGH_RISK_CLAUSE_PENALTY = 5
HIGH_RISK_CLAUSE_ALLOWANCE = 3

_REBATE_PCT = {
    category: re.compile(rf"\b{category.value}\b[^\n%]*?(\d+(?:\.\d+)?)\s*%", re.IGNORECASE)
    for category in RebateCategory
}
_RULE = "━" * 40


class AnalysisRequest(NamedTuple):
    current_text: str
    contract: Contract
    template_text: Optional[str] = None


def extract_rebate_percentages(clauses: list[ContractClause]) -> dict[RebateCategory, float]:
    """Per-category rebate %, read from rebate clauses; later clauses win."""
    rebates: dict[RebateCategory, float] = {}
    for clause in clauses:
        if clause.clause_type != ClauseType.REBATES:
            continue
        for category, pattern in _REBATE_PCT.items():
            match = pattern.search(clause.text)
            if match:
                rebates[category] = float(match.group(1))
    return rebates


def is_high_risk(clause: ContractClause) -> bool:
    return clause.risk_flag in (RiskLevel.CRITICAL, RiskLevel.HIGH)


def leverage_points(
    redline: RedlineAnalysis,
    risk: ContractRiskScore,
    benchmarks: RebateStructureAnalysis,
) -> list[str]:
    points = []

    exposed = [c for c in redline.comparisons if c.estimated_annual_exposure > 0]
    exposed.sort(key=lambda c: c.estimated_annual_exposure, reverse=True)
    for comparison in exposed[:3]:
        points.append(
            f"{comparison.clause_type.value.upper()}: ${comparison.estimated_annual_exposure:,.0f} "
            f"annual exposure - {comparison.rationale}"
        )

    top_risks = sorted(risk.assessments, key=lambda a: a.expected_loss, reverse=True)[:2]
    for assessment in top_risks:
        points.append(
            f"LEGAL RISK: {round(assessment.breach_probability * 100)}% breach probability "
            f"with ${assessment.potential_damages:,.0f} exposure"
        )

    if not benchmarks.insufficient_data and benchmarks.overall_score < 50:
        below = sum(1 for c in benchmarks.category_scores.values() if c.deviation_from_median < 0)
        points.append(
            f"REBATE PERFORMANCE: Below median in {below} categories - potential "
            f"${abs(benchmarks.total_annual_impact):,.0f} recovery"
        )
    return points


def format_briefing(
    contract: Contract,
    redline: RedlineAnalysis,
    risk: ContractRiskScore,
    benchmarks: RebateStructureAnalysis,
    risk_comparison: Optional[RiskComparison] = None,
) -> str:
    lines = [
        "EXECUTIVE CONTRACT INTELLIGENCE BRIEF",
        f"{contract.pbm_name} | {contract.name or contract.id}",
        f"Annual Spend: ${contract.annual_spend:,.0f} | Lives: {contract.lives_covered:,}",
        "",
        _RULE,
        "RISK ASSESSMENT",
        _RULE,
        "",
    ]
    if redline.insufficient_data:
        lines.append("Contract Alignment Score: n/a (no comparable clauses)")
    else:
        lines.append(f"Contract Alignment Score: {redline.overall_alignment_score}%")
    lines += [
        f"Critical Issues: {redline.critical_count}",
        f"High-Risk Clauses: {redline.high_count}",
        f"Expected Annual Cost Exposure: ${redline.total_estimated_exposure:,.0f}",
        "",
        f"Litigation Risk Score: {risk.total_risk_score / 1_000_000:.1f}M",
        f"Expected Defense + Settlement: ${risk.expected_litigation_cost:,.0f}",
        f"Fiduciary Breach Probability: {'HIGH' if risk.critical_clauses > 0 else 'MODERATE'}",
    ]
    if risk_comparison is not None:
        lines.append(
            f"Risk Reduction vs Template: ${risk_comparison.risk_reduction:,.0f} "
            f"({risk_comparison.risk_reduction_percentage:.0f}%)"
        )

    lines += ["", _RULE, "REBATE PERFORMANCE vs INDIANA BENCHMARK", _RULE, ""]
    if benchmarks.insufficient_data:
        lines.append("No rebate percentages found in rebate clauses. Manual review required.")
    else:
        sign = "+" if benchmarks.total_annual_impact >= 0 else "-"
        lines += [
            f"Overall Benchmark Score: {round(benchmarks.overall_score)}th percentile",
            f"Annual Economic Impact: {sign}${abs(benchmarks.total_annual_impact):,.0f}",
            "",
        ]
        for key, comparison in benchmarks.category_scores.items():
            gap = comparison.deviation_from_median
            mark = "✓" if gap >= 0 else "⚠"
            lines.append(
                f"{key.upper()}: {comparison.actual_rebate_pct:g}% "
                f"(benchmark: {comparison.benchmark.median_rebate_pct:g}%) - {mark} {gap:.1f}% gap"
            )

    lines += ["", _RULE, "RECOMMENDATIONS", _RULE, ""]
    for idx, action in enumerate(redline.recommended_actions[:5], 1):
        lines.append(f"{idx}. {action}")
    if benchmarks.recommendations:
        lines += ["", "REBATE NEGOTIATIONS:"]
        for idx, rec in enumerate(benchmarks.recommendations[:3], 1):
            lines.append(f"{idx}. {rec}")

    shortfall = -benchmarks.total_annual_impact if benchmarks.total_annual_impact < 0 else 0.0
    lines += [
        "",
        _RULE,
        "",
        f"TOTAL RECOVERABLE VALUE: ${redline.total_estimated_exposure + shortfall:,.0f}/year",
    ]
    return "\n".join(lines)


class ContractIntelligenceOrchestrator:
    def __init__(
        self,
        reference: Optional[ReferenceData] = None,
        settings: Optional[EngineSettings] = None,
    ):
        self.reference = reference or get_reference_data()
        self.settings = settings or load_settings()
        self.extractor = ClauseExtractor(self.reference)
        self.redline = RedlineComparisonEngine(
            self.reference,
            SemanticSimilarityEngine(self.reference),
            EconomicImpactCalculator(self.reference),
        )
        self.risk = FiduciaryRiskEngine(self.reference)
        self.benchmarks = BenchmarkOracle(self.reference, self.settings)

    def model_clauses_from_template(self, template_clauses: list[ContractClause]) -> dict[ClauseType, str]:
        """Model library with each type replaced by the template's most confident clause."""
        models = dict(self.reference.model_clauses)
        for clause_type, candidates in clauses_by_type(template_clauses).items():
            # max() keeps the first of equally confident candidates
            best = max(candidates, key=lambda c: c.confidence)
            models[clause_type] = best.text
        return models

    def analyze_contract(
        self,
        current_text: str,
        contract: Contract,
        template_text: Optional[str] = None,
    ) -> ContractIntelligenceReport:
        current_clauses = self.extractor.extract_clauses(contract.id, current_text, ContractRole.CURRENT)

        template_clauses: list[ContractClause] = []
        if template_text:
            template_clauses = self.extractor.extract_clauses(
                f"{contract.id}_template", template_text, ContractRole.TEMPLATE
            )
        models = self.model_clauses_from_template(template_clauses)

        redline = self.redline.compare(contract, current_clauses, models)

        # Contract total covers every clause; assessments are kept for critical/high ones
        risk_total = self.risk.calculate_contract_risk_score(current_clauses)
        high_risk_ids = {c.id for c in current_clauses if is_high_risk(c)}
        risk_summary = risk_total.model_copy(update={
            "assessments": [a for a in risk_total.assessments if a.clause_id in high_risk_ids],
        })
        risk_comparison = (
            self.risk.compare_contract_risks(current_clauses, template_clauses) if template_clauses else None
        )

        benchmarks = self.benchmarks.analyze_rebate_structure(extract_rebate_percentages(current_clauses))

        report = ContractIntelligenceReport(
            contract_id=contract.id,
            redline_analysis=redline,
            fiduciary_risk_summary=risk_summary,
            indiana_benchmark_analysis=benchmarks,
            negotiation_leverage_points=leverage_points(redline, risk_summary, benchmarks),
            executive_briefing=format_briefing(contract, redline, risk_summary, benchmarks, risk_comparison),
            generated_at=datetime.now(timezone.utc),
        )
        logger.info(
            "Intelligence report for %s: %d clauses, %d leverage points",
            contract.id, len(current_clauses), len(report.negotiation_leverage_points),
        )
        return report

    def quick_health_check(self, text: str, contract_id: str = "quick_check") -> ContractHealthCheck:
        clauses = self.extractor.extract_clauses(contract_id, text, ContractRole.CURRENT)
        present = {c.clause_type for c in clauses}
        red_flags = []
        green_flags = []
        score = 100

        for clause_type in REQUIRED_CLAUSES:
            if clause_type in present:
                green_flags.append(f"{clause_type.value} clause present")
            else:
                red_flags.append(f"Missing {clause_type.value} clause")
                score -= MISSING_CLAUSE_PENALTY

        high_risk = sum(1 for c in clauses if is_high_risk(c))
        if high_risk > HIGH_RISK_CLAUSE_ALLOWANCE:
            red_flags.append(f"{high_risk} high-risk clauses detected")
            score -= high_risk * HIGH_RISK_CLAUSE_PENALTY

        economic = sum(1 for c in clauses if c.economic_flag)
        if economic:
            green_flags.append(f"{economic} economic clauses identified")

        return ContractHealthCheck(
            contract_id=contract_id,
            health_score=max(score, 0),
            red_flags=red_flags,
            green_flags=green_flags,
            estimated_risk=self.risk.calculate_contract_risk_score(clauses).expected_litigation_cost,
        )

    def analyze_many(
        self,
        requests: Iterable[AnalysisRequest],
        cancel_event: Optional[threading.Event] = None,
    ) -> list[ContractIntelligenceReport]:
        """Analyze contracts in order, stopping between contracts once cancel_event is set."""
        reports = []
        for request in requests:
            if cancel_event is not None and cancel_event.is_set():
                logger.info("Batch analysis cancelled after %d contracts", len(reports))
                break
            reports.append(self.analyze_contract(*request))
        return reports

"""
Rebate benchmarking against the Indiana HHS transparency table.

Percentile ranks are linear within each category's [min, max] range and
clamped to [0, 100]. A zero-width range ranks at the 50th percentile.
"""

import logging
import re
from typing import Mapping, Optional, Union

from .config import EngineSettings, load_settings
from .models import (
    IndianaRebateBenchmark,
    RebateCategory,
    RebateClauseValidation,
    RebateComparison,
    RebateStructureAnalysis,
    WeightedRebateScore,
)
from .reference import ReferenceData, get_reference_data

logger = logging.getLogger(__name__)

NEUTRAL_PERCENTILE = 50.0
RISK_PER_COMPLIANCE_ISSUE = 0.02

_GUARANTEE = re.compile(r"guarantee|minimum", re.IGNORECASE)
_FULL_PASSTHROUGH = re.compile(r"100%\s*pass[\s-]through|full\s*pass[\s-]through", re.IGNORECASE)
_CATEGORY_FIRST = re.compile(
    r"\b(brand|generic|specialty|biosimilar)\b[^\n%]*?(\d+(?:\.\d+)?)\s*%", re.IGNORECASE
)
_PERCENT_FIRST = re.compile(
    r"(\d+(?:\.\d+)?)\s*%[^\n]*?\b(brand|generic|specialty|biosimilar)", re.IGNORECASE
)

CategoryKey = Union[RebateCategory, str]


def percentile_rank(actual: float, benchmark: IndianaRebateBenchmark) -> float:
    spread = benchmark.max_rebate_pct - benchmark.min_rebate_pct
    if spread == 0:
        return NEUTRAL_PERCENTILE
    rank = (actual - benchmark.min_rebate_pct) / spread * 100
    return max(0.0, min(rank, 100.0))


def rebate_recommendation(actual: float, percentile: float, benchmark: IndianaRebateBenchmark) -> str:
    # A percentile of exactly 0 falls in the bottom-quartile bucket
    if actual < benchmark.min_rebate_pct:
        shortfall = (benchmark.min_rebate_pct - actual) / benchmark.min_rebate_pct * 100
        return (
            f"CRITICAL: Rebate ({actual}%) fails to meet Indiana minimum standard "
            f"({benchmark.min_rebate_pct}%). This represents a {shortfall:.1f}% shortfall and "
            f"potential fiduciary breach. Immediate renegotiation required."
        )
    if percentile < 25:
        return (
            f"BELOW MARKET: Rebate ({actual}%) is in bottom quartile of Indiana benchmarks. "
            f"Target median rate of {benchmark.median_rebate_pct}% in next negotiation."
        )
    if percentile < 50:
        return (
            f"BELOW MEDIAN: Rebate ({actual}%) is below Indiana median ({benchmark.median_rebate_pct}%). "
            f"Opportunity for {benchmark.median_rebate_pct - actual:.1f}% improvement."
        )
    if percentile >= 75:
        return (
            f"STRONG PERFORMANCE: Rebate ({actual}%) is in top quartile of Indiana benchmarks. "
            f"Maintain current terms."
        )
    return (
        f"MARKET RATE: Rebate ({actual}%) is at or above Indiana median. "
        f"Monitor for renewal opportunities."
    )


class BenchmarkOracle:
    def __init__(
        self,
        reference: Optional[ReferenceData] = None,
        settings: Optional[EngineSettings] = None,
    ):
        self.reference = reference or get_reference_data()
        self.settings = settings or load_settings()

    def get_benchmark(self, category: CategoryKey) -> IndianaRebateBenchmark:
        try:
            return self.reference.rebate_benchmarks[RebateCategory(category)]
        except (ValueError, KeyError):
            raise ValueError(f"No benchmark found for category: {category}") from None

    def get_all_benchmarks(self) -> list[IndianaRebateBenchmark]:
        return list(self.reference.rebate_benchmarks.values())

    def compare_rebate(self, category: CategoryKey, actual: float) -> RebateComparison:
        benchmark = self.get_benchmark(category)
        deviation = actual - benchmark.median_rebate_pct
        percentile = percentile_rank(actual, benchmark)

        return RebateComparison(
            drug_category=benchmark.drug_category,
            actual_rebate_pct=actual,
            benchmark=benchmark,
            deviation_from_median=deviation,
            meets_minimum=actual >= benchmark.min_rebate_pct,
            percentile_rank=percentile,
            economic_impact_annual=deviation * self.settings.reference_spend_per_category / 100,
            recommendation=rebate_recommendation(actual, percentile, benchmark),
        )

    def analyze_rebate_structure(self, rebates: Mapping[CategoryKey, Optional[float]]) -> RebateStructureAnalysis:
        category_scores: dict[str, RebateComparison] = {}
        recommendations: list[str] = []
        total_impact = 0.0

        for category, actual in rebates.items():
            if actual is None:
                continue
            comparison = self.compare_rebate(category, actual)
            key = comparison.drug_category.value
            category_scores[key] = comparison
            total_impact += comparison.economic_impact_annual

            benchmark = comparison.benchmark
            if not comparison.meets_minimum:
                recommendations.append(
                    f"CRITICAL: {key} rebate ({actual}%) below Indiana minimum ({benchmark.min_rebate_pct}%)"
                )
            elif comparison.deviation_from_median < 0:
                recommendations.append(
                    f"{key} rebate ({actual}%) below median ({benchmark.median_rebate_pct}%). "
                    f"Consider renegotiation."
                )

        if category_scores:
            overall = sum(c.percentile_rank for c in category_scores.values()) / len(category_scores)
        else:
            overall = 0.0

        logger.debug("Rebate structure over %d categories: score %.1f", len(category_scores), overall)
        return RebateStructureAnalysis(
            overall_score=overall,
            insufficient_data=not category_scores,
            category_scores=category_scores,
            total_annual_impact=total_impact,
            recommendations=recommendations,
        )

    def calculate_weighted_rebate_score(
        self,
        rebates: Mapping[CategoryKey, Optional[float]],
        spending: Mapping[CategoryKey, float],
    ) -> WeightedRebateScore:
        """Spend-weighted percentile and median gap, plus savings from lifting each category to median."""
        spend_by_category = {RebateCategory(k): float(v) for k, v in spending.items()}
        total_spend = 0.0
        score_sum = 0.0
        gap_sum = 0.0
        savings = 0.0

        for category, actual in rebates.items():
            if actual is None:
                continue
            comparison = self.compare_rebate(category, actual)
            spend = spend_by_category.get(comparison.drug_category, 0.0)
            total_spend += spend
            score_sum += comparison.percentile_rank * spend
            gap_sum += comparison.deviation_from_median * spend
            if comparison.deviation_from_median < 0:
                savings += abs(comparison.deviation_from_median) * spend * 0.01

        return WeightedRebateScore(
            weighted_score=score_sum / total_spend if total_spend else 0.0,
            weighted_gap=gap_sum / total_spend if total_spend else 0.0,
            potential_savings=savings,
            total_spend=total_spend,
        )

    def validate_rebate_clause(self, clause_text: str, annual_spend: float) -> RebateClauseValidation:
        has_guarantee = bool(_GUARANTEE.search(clause_text))
        has_pass_through = bool(_FULL_PASSTHROUGH.search(clause_text))

        extracted: dict[str, float] = {}
        for match in _CATEGORY_FIRST.finditer(clause_text):
            extracted.setdefault(match.group(1).lower(), float(match.group(2)))
        for match in _PERCENT_FIRST.finditer(clause_text):
            extracted.setdefault(match.group(2).lower(), float(match.group(1)))

        issues = []
        for category, pct in extracted.items():
            benchmark = self.get_benchmark(category)
            if pct < benchmark.min_rebate_pct:
                issues.append(
                    f"{category} rebate ({pct}%) below Indiana minimum ({benchmark.min_rebate_pct}%)"
                )
        if not has_guarantee:
            issues.append("No explicit rebate guarantee found in clause")
        if not has_pass_through:
            issues.append("Missing 100% pass-through guarantee")

        return RebateClauseValidation(
            has_explicit_guarantee=has_guarantee,
            has_pass_through=has_pass_through,
            extracted_percentages=extracted,
            compliance_issues=issues,
            estimated_risk=annual_spend * RISK_PER_COMPLIANCE_ISSUE * len(issues),
        )

"""
Redline comparison of a contract's clauses against the transparent model.

Every extracted clause that has a model counterpart is scored for similarity,
converted to dollar exposure, and ranked. Results are aggregated into a
contract-level alignment score (0-100) and total annual exposure.
"""

import logging
from datetime import datetime, timezone
from typing import Mapping, Optional

from .economics import RISK_FLAG_SCORES, EconomicImpactCalculator, clause_label
from .models import (
    ClauseComparison,
    ClauseType,
    Contract,
    ContractClause,
    RedlineAnalysis,
    RiskLevel,
)
from .reference import ReferenceData, get_reference_data
from .similarity import SemanticSimilarityEngine

logger = logging.getLogger(__name__)

DEFAULT_MITIGATION = "Align clause language with the transparent model"

# (deviation above, exposure above) per severity, checked in order
_SEVERITY_RULES = (
    (RiskLevel.CRITICAL, 0.7, 500_000),
    (RiskLevel.HIGH, 0.5, 200_000),
    (RiskLevel.MEDIUM, 0.3, 50_000),
)


def severity_for(deviation: float, exposure: float) -> RiskLevel:
    for level, deviation_limit, exposure_limit in _SEVERITY_RULES:
        if deviation > deviation_limit or exposure > exposure_limit:
            return level
    return RiskLevel.LOW


def alignment_score(comparisons: list[ClauseComparison]) -> Optional[int]:
    """round((1 - mean deviation) x 100), or None when nothing was compared."""
    if not comparisons:
        return None
    avg_deviation = sum(c.deviation_score for c in comparisons) / len(comparisons)
    return max(0, min(100, round((1 - avg_deviation) * 100)))


def executive_summary(score: Optional[int], comparisons: list[ClauseComparison], total: float) -> str:
    if score is None:
        return (
            "NO COMPARABLE CLAUSES: None of the contract's sections matched a clause type in "
            "the transparent model library, so alignment could not be scored. Manual review required."
        )

    critical = sum(1 for c in comparisons if c.severity == RiskLevel.CRITICAL)
    high = sum(1 for c in comparisons if c.severity == RiskLevel.HIGH)

    if score < 50:
        return (
            f"CRITICAL MISALIGNMENT: This contract scores {score}/100 against the transparent model. "
            f"{critical} critical and {high} high-severity deviations expose an estimated "
            f"${total:,.0f} per year. Immediate renegotiation is recommended."
        )
    if score < 70:
        return (
            f"SIGNIFICANT GAPS: This contract scores {score}/100 against the transparent model, "
            f"with ${total:,.0f} in estimated annual exposure across {len(comparisons)} compared "
            f"clauses. Prioritize the {critical + high} critical and high-severity items at the "
            f"next negotiation."
        )
    if score < 85:
        return (
            f"MODERATE ALIGNMENT: This contract scores {score}/100 against the transparent model. "
            f"Targeted amendments to {critical + high} clauses could recover up to "
            f"${total:,.0f} per year."
        )
    return (
        f"STRONG ALIGNMENT: This contract scores {score}/100 against the transparent model. "
        f"Remaining exposure of ${total:,.0f} per year is limited to minor deviations."
    )


class RedlineComparisonEngine:
    def __init__(
        self,
        reference: Optional[ReferenceData] = None,
        similarity: Optional[SemanticSimilarityEngine] = None,
        calculator: Optional[EconomicImpactCalculator] = None,
    ):
        self.reference = reference or get_reference_data()
        self.similarity = similarity or SemanticSimilarityEngine(self.reference)
        self.calculator = calculator or EconomicImpactCalculator(self.reference)

    def compare_clause(
        self,
        clause: ContractClause,
        model_text: str,
        annual_spend: float,
    ) -> ClauseComparison:
        result = self.similarity.compare(clause.text, model_text)
        exposure = self.calculator.estimate_exposure(
            clause.clause_type, result.deviation_score, result.economic_alignment, annual_spend
        )
        priority = self.calculator.calculate_priority(
            clause.clause_type,
            exposure.estimated_leakage,
            result.deviation_score,
            RISK_FLAG_SCORES[clause.risk_flag],
        )
        return ClauseComparison(
            clause_id=clause.id,
            clause_type=clause.clause_type,
            current_text=clause.text,
            model_text=model_text,
            similarity_score=result.similarity_score,
            deviation_score=result.deviation_score,
            economic_alignment=result.economic_alignment,
            key_differences=result.key_differences,
            estimated_annual_exposure=exposure.estimated_leakage,
            exposure_confidence=exposure.confidence,
            priority_score=priority.priority_score,
            priority_rank=priority.priority_rank,
            rationale=priority.rationale,
            severity=severity_for(result.deviation_score, exposure.estimated_leakage),
            recommended_action=self.reference.mitigations.get(clause.clause_type, DEFAULT_MITIGATION),
        )

    def compare(
        self,
        contract: Contract,
        clauses: list[ContractClause],
        model_clauses: Optional[Mapping[ClauseType, str]] = None,
    ) -> RedlineAnalysis:
        models = model_clauses if model_clauses is not None else self.reference.model_clauses

        comparisons = [
            self.compare_clause(clause, models[clause.clause_type], contract.annual_spend)
            for clause in clauses
            if clause.clause_type in models
        ]
        total_exposure = sum(c.estimated_annual_exposure for c in comparisons)
        score = alignment_score(comparisons)

        # sorted() is stable, so equal scores keep extraction order
        ranked = sorted(comparisons, key=lambda c: c.priority_score, reverse=True)

        analysis = RedlineAnalysis(
            contract_id=contract.id,
            overall_alignment_score=score if score is not None else 0,
            insufficient_data=score is None,
            total_estimated_exposure=total_exposure,
            critical_count=sum(1 for c in ranked if c.severity == RiskLevel.CRITICAL),
            high_count=sum(1 for c in ranked if c.severity == RiskLevel.HIGH),
            comparisons=ranked,
            executive_summary=executive_summary(score, ranked, total_exposure),
            recommended_actions=self._recommended_actions(ranked),
            generated_at=datetime.now(timezone.utc),
        )
        logger.info(
            "Redline for %s: %d comparisons, alignment %d, exposure $%.0f",
            contract.id, len(ranked), analysis.overall_alignment_score, total_exposure,
        )
        return analysis

    @staticmethod
    def _recommended_actions(comparisons: list[ClauseComparison]) -> list[str]:
        actions = []
        for comparison in comparisons:
            if comparison.severity not in (RiskLevel.CRITICAL, RiskLevel.HIGH):
                continue
            action = f"{clause_label(comparison.clause_type)}: {comparison.recommended_action}"
            if action not in actions:
                actions.append(action)
        return actions

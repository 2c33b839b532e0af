"""
Fiduciary risk scoring.

Estimates, per clause, the probability that its terms support a fiduciary
breach claim, the damages and defense cost such a claim would carry, and how
strong the precedent is. Probabilities never exceed BREACH_PROBABILITY_CAP.
"""

import logging
from typing import Optional

from .models import (
    ClauseType,
    ContractClause,
    ContractRiskScore,
    FiduciaryRiskAssessment,
    LitigationCategory,
    RiskComparison,
    RiskLevel,
)
from .reference import ReferenceData, get_reference_data

logger = logging.getLogger(__name__)

BREACH_PROBABILITY_CAP = 0.85

ECONOMIC_DAMAGES_MULTIPLIER = 1.5
RISK_FLAG_DAMAGES_MULTIPLIERS = {
    RiskLevel.CRITICAL: 2.0,
    RiskLevel.HIGH: 1.5,
}


def risk_recommendation(probability: float, damages: float, precedent: RiskLevel) -> str:
    expected = probability * damages
    pct = round(probability * 100)

    if probability > 0.5 and precedent == RiskLevel.HIGH:
        return (
            f"CRITICAL RISK: {pct}% breach probability with strong precedent. "
            f"Expected exposure: ${expected:,.0f}. Immediate renegotiation required."
        )
    if probability > 0.3:
        return (
            f"HIGH RISK: {pct}% breach probability. Expected exposure: ${expected:,.0f}. "
            f"Recommend legal review and contract amendment."
        )
    if probability > 0.15:
        return (
            f"MODERATE RISK: {pct}% breach probability. Expected exposure: ${expected:,.0f}. "
            f"Monitor and consider mitigation strategies."
        )
    return (
        f"LOW RISK: {pct}% breach probability. Expected exposure: ${expected:,.0f}. "
        f"Continue monitoring."
    )


class FiduciaryRiskEngine:
    def __init__(self, reference: Optional[ReferenceData] = None):
        self.reference = reference or get_reference_data()

    def breach_probability(self, clause: ContractClause) -> tuple[float, list[str]]:
        probability = 0.0
        matched = []
        for pattern, weight in self.reference.risk_indicators:
            if pattern.search(clause.text):
                probability += weight
                matched.append(pattern.pattern)

        probability *= self.reference.probability_multipliers.get(clause.clause_type, 1.0)
        return min(probability, BREACH_PROBABILITY_CAP), matched

    def estimate_damages(self, clause: ContractClause) -> float:
        damages = self.reference.damages_baselines.get(
            clause.clause_type, self.reference.default_damages_baseline
        )
        if clause.economic_flag:
            damages *= ECONOMIC_DAMAGES_MULTIPLIER
        damages *= RISK_FLAG_DAMAGES_MULTIPLIERS.get(clause.risk_flag, 1.0)
        return float(round(damages))

    def litigation_category(self, clause_type: ClauseType) -> LitigationCategory:
        return self.reference.litigation_categories.get(clause_type, LitigationCategory.CONTRACT_DISPUTE)

    def estimate_defense_costs(self, clause_type: ClauseType) -> float:
        band = self.reference.litigation_costs[self.litigation_category(clause_type)]
        return (band["min"] + band["max"]) / 2

    def precedent_strength(self, clause_type: ClauseType) -> RiskLevel:
        return self.reference.precedent_strength.get(clause_type, RiskLevel.LOW)

    def precedent_cases(self, clause_type: ClauseType) -> list[str]:
        return list(self.reference.precedent_cases.get(clause_type, ()))

    def assess_fiduciary_risk(self, clause: ContractClause) -> FiduciaryRiskAssessment:
        probability, matched = self.breach_probability(clause)
        damages = self.estimate_damages(clause)
        precedent = self.precedent_strength(clause.clause_type)

        return FiduciaryRiskAssessment(
            clause_id=clause.id,
            clause_type=clause.clause_type,
            breach_probability=probability,
            potential_damages=damages,
            defense_cost_estimate=self.estimate_defense_costs(clause.clause_type),
            precedent_strength=precedent,
            litigation_category=self.litigation_category(clause.clause_type),
            expected_loss=probability * damages,
            matched_indicators=matched,
            precedent_cases=self.precedent_cases(clause.clause_type),
            recommendation=risk_recommendation(probability, damages, precedent),
        )

    def calculate_contract_risk_score(self, clauses: list[ContractClause]) -> ContractRiskScore:
        total = 0.0
        critical = 0
        breakdown: dict[str, float] = {}
        assessments = []

        for clause in clauses:
            assessment = self.assess_fiduciary_risk(clause)
            assessments.append(assessment)

            clause_risk = assessment.breach_probability * (
                assessment.potential_damages + assessment.defense_cost_estimate
            )
            total += clause_risk
            key = clause.clause_type.value
            breakdown[key] = breakdown.get(key, 0.0) + clause_risk

            if clause.risk_flag in (RiskLevel.CRITICAL, RiskLevel.HIGH):
                critical += 1

        logger.debug("Contract risk over %d clauses: $%.0f", len(clauses), total)
        return ContractRiskScore(
            total_risk_score=float(round(total)),
            expected_litigation_cost=float(round(total)),
            critical_clauses=critical,
            risk_breakdown=breakdown,
            assessments=assessments,
        )

    def compare_contract_risks(
        self,
        current: list[ContractClause],
        template: list[ContractClause],
    ) -> RiskComparison:
        current_risk = self.calculate_contract_risk_score(current).total_risk_score
        template_risk = self.calculate_contract_risk_score(template).total_risk_score
        reduction = current_risk - template_risk
        percentage = reduction / current_risk * 100 if current_risk > 0 else 0.0
        return RiskComparison(
            current_risk=current_risk,
            template_risk=template_risk,
            risk_reduction=reduction,
            risk_reduction_percentage=percentage,
        )

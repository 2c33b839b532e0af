from typing import Optional

from .models import ClauseType, ExposureEstimate, PriorityRank, PriorityResult, RiskLevel
from .reference import ReferenceData, get_reference_data

DEFAULT_LEAKAGE_BAND = (0.005, 0.02)
MAX_EXPOSURE_CONFIDENCE = 0.95

# Deviation at or below this is treated as an exact match with no exposure
ZERO_DEVIATION = 1e-9

PRIORITY_THRESHOLDS = (
    (80.0, PriorityRank.CRITICAL),
    (60.0, PriorityRank.HIGH),
    (40.0, PriorityRank.MEDIUM),
)

# Fiduciary risk score (0-100) implied by a clause's risk flag
RISK_FLAG_SCORES = {
    RiskLevel.CRITICAL: 100.0,
    RiskLevel.HIGH: 75.0,
    RiskLevel.MEDIUM: 50.0,
    RiskLevel.LOW: 25.0,
}

_RATIONALES = {
    PriorityRank.CRITICAL: (
        "{label} terms leak an estimated ${leakage:,.0f} per year and deviate {deviation:.0%} "
        "from the transparent model. Lead the negotiation with this clause."
    ),
    PriorityRank.HIGH: (
        "{label} terms carry ${leakage:,.0f} in estimated annual exposure. "
        "Include in the first negotiation round."
    ),
    PriorityRank.MEDIUM: (
        "{label} terms show a moderate gap (${leakage:,.0f} per year). "
        "Negotiate after critical items are resolved."
    ),
    PriorityRank.LOW: (
        "{label} terms are close to the transparent model. Monitor at renewal."
    ),
}


def _clamp(value: float) -> float:
    return max(0.0, min(value, 1.0))


def clause_label(clause_type: ClauseType) -> str:
    return clause_type.value.replace("_", " ").title()


def rank_for_score(score: float) -> PriorityRank:
    for threshold, rank in PRIORITY_THRESHOLDS:
        if score >= threshold:
            return rank
    return PriorityRank.LOW


class EconomicImpactCalculator:
    """Turns clause deviation into annual dollar exposure and a negotiation priority."""

    def __init__(self, reference: Optional[ReferenceData] = None):
        self.reference = reference or get_reference_data()

    def estimate_exposure(
        self,
        clause_type: ClauseType,
        deviation_score: float,
        economic_alignment: float,
        annual_spend: float,
    ) -> ExposureEstimate:
        deviation = _clamp(deviation_score)
        alignment = _clamp(economic_alignment)
        confidence = min(0.6 + 0.3 * deviation + 0.1 * (1 - alignment), MAX_EXPOSURE_CONFIDENCE)

        if deviation <= ZERO_DEVIATION or annual_spend <= 0:
            return ExposureEstimate(estimated_leakage=0.0, leakage_rate=0.0, confidence=confidence)

        low, high = self.reference.leakage_bands.get(clause_type, DEFAULT_LEAKAGE_BAND)
        leakage_rate = low + (high - low) * deviation * (1 - alignment)
        return ExposureEstimate(
            estimated_leakage=round(annual_spend * leakage_rate, 2),
            leakage_rate=leakage_rate,
            confidence=confidence,
        )

    @staticmethod
    def calculate_priority(
        clause_type: ClauseType,
        leakage: float,
        deviation_score: float,
        fiduciary_risk: float,
    ) -> PriorityResult:
        """fiduciary_risk is on a 0-100 scale."""
        score = 0.5 * (leakage / 100_000) + 0.3 * (deviation_score * 100) + 0.2 * fiduciary_risk
        rank = rank_for_score(score)
        rationale = _RATIONALES[rank].format(
            label=clause_label(clause_type),
            leakage=leakage,
            deviation=deviation_score,
        )
        return PriorityResult(priority_score=score, priority_rank=rank, rationale=rationale)

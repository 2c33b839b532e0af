from datetime import date, datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


# ── Enumerations ──────────────────────────────────────────────────────────────

class ClauseType(str, Enum):
    REBATES = "rebates"
    AUDIT = "audit"
    DATA_OWNERSHIP = "data_ownership"
    TERMINATION = "termination"
    SPECIALTY = "specialty"
    MAC = "mac"
    PRICING = "pricing"
    FORMULARY = "formulary"
    NETWORK = "network"
    REPORTING = "reporting"
    LIABILITY = "liability"
    INDEMNIFICATION = "indemnification"
    CONFIDENTIALITY = "confidentiality"
    FORCE_MAJEURE = "force_majeure"


class RiskLevel(str, Enum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class ContractRole(str, Enum):
    CURRENT = "current"
    TEMPLATE = "template"
    PROPOSED = "proposed"


class PriorityRank(str, Enum):
    CRITICAL = "CRITICAL"
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"


class LitigationCategory(str, Enum):
    FIDUCIARY_BREACH = "fiduciary_breach"
    DATA_MISUSE = "data_misuse"
    CONTRACT_DISPUTE = "contract_dispute"


class RebateCategory(str, Enum):
    BRAND = "brand"
    GENERIC = "generic"
    SPECIALTY = "specialty"
    BIOSIMILAR = "biosimilar"


class TransparencyLevel(str, Enum):
    FULL = "full"
    PARTIAL = "partial"
    OPAQUE = "opaque"


class RebateTiming(str, Enum):
    QUARTERLY = "quarterly"
    ANNUAL = "annual"
    REALTIME = "realtime"


class StreamType(str, Enum):
    REBATE_RETENTION = "rebate_retention"
    SPREAD_MARKUP = "spread_markup"
    ADMIN_FEES = "admin_fees"
    SPECIALTY_CARVEOUT = "specialty_carveout"
    MAIL_MANDATE = "mail_mandate"


class StreamCategory(str, Enum):
    VISIBLE = "visible"
    HIDDEN = "hidden"
    SEMI_TRANSPARENT = "semi-transparent"


class OpportunityType(str, Enum):
    EXCESSIVE_SPREAD = "excessive_spread"
    REBATE_RETENTION = "rebate_retention"
    SPECIALTY_MARKUP = "specialty_markup"
    MAIL_MANDATE_COST = "mail_mandate_cost"
    ADMIN_FEE_EXCESS = "admin_fee_excess"
    LACK_TRANSPARENCY = "lack_transparency"


class Complexity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class PipelineStage(str, Enum):
    UPLOAD = "upload"
    PARSING = "parsing"
    MODELING = "modeling"
    REPORTING = "reporting"
    COMPLETE = "complete"


# ── Contracts and clauses ─────────────────────────────────────────────────────

class Contract(BaseModel):
    id: str
    name: str = ""
    pbm_name: str = "Unknown PBM"
    contract_type: ContractRole = ContractRole.CURRENT
    effective_date: Optional[date] = None
    end_date: Optional[date] = None
    lives_covered: int = Field(0, ge=0)
    annual_spend: float = Field(0.0, ge=0)


class ContractClause(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    contract_id: str
    clause_type: ClauseType
    text: str
    section_number: Optional[str] = None
    page_reference: Optional[int] = None
    economic_flag: bool
    risk_flag: RiskLevel
    confidence: float = Field(..., ge=0, le=1)
    extracted_at: datetime


class FieldExtraction(BaseModel):
    field_name: str
    value: Optional[str] = None
    confidence: float = 0.0
    source_text: Optional[str] = None


# ── Redline comparison ───────────────────────────────────────────────────────

class SimilarityResult(BaseModel):
    similarity_score: float = Field(..., ge=0, le=1)
    deviation_score: float = Field(..., ge=0, le=1)
    economic_alignment: float = Field(..., ge=0, le=1)
    token_overlap: float
    edit_similarity: float
    phrase_overlap: float
    key_differences: list[str]


class ExposureEstimate(BaseModel):
    estimated_leakage: float
    leakage_rate: float
    confidence: float


class PriorityResult(BaseModel):
    priority_score: float
    priority_rank: PriorityRank
    rationale: str


class ClauseComparison(BaseModel):
    clause_id: str
    clause_type: ClauseType
    current_text: str
    model_text: str
    similarity_score: float = Field(..., ge=0, le=1)
    deviation_score: float = Field(..., ge=0, le=1)
    economic_alignment: float
    key_differences: list[str]
    estimated_annual_exposure: float
    exposure_confidence: float
    priority_score: float
    priority_rank: PriorityRank
    rationale: str
    severity: RiskLevel
    recommended_action: str


class RedlineAnalysis(BaseModel):
    contract_id: str
    overall_alignment_score: int = Field(..., ge=0, le=100)
    insufficient_data: bool = False
    total_estimated_exposure: float
    critical_count: int
    high_count: int
    comparisons: list[ClauseComparison]
    executive_summary: str
    recommended_actions: list[str]
    generated_at: datetime


# ── Fiduciary risk ───────────────────────────────────────────────────────────

class FiduciaryRiskAssessment(BaseModel):
    clause_id: str
    clause_type: ClauseType
    breach_probability: float = Field(..., ge=0, le=0.85)
    potential_damages: float
    defense_cost_estimate: float
    precedent_strength: RiskLevel
    litigation_category: LitigationCategory
    expected_loss: float
    matched_indicators: list[str]
    precedent_cases: list[str]
    recommendation: str


class ContractRiskScore(BaseModel):
    total_risk_score: float
    expected_litigation_cost: float
    critical_clauses: int
    risk_breakdown: dict[str, float]
    assessments: list[FiduciaryRiskAssessment]


class RiskComparison(BaseModel):
    current_risk: float
    template_risk: float
    risk_reduction: float
    risk_reduction_percentage: float


# ── Rebate benchmarks ────────────────────────────────────────────────────────

class IndianaRebateBenchmark(BaseModel):
    model_config = ConfigDict(frozen=True)

    drug_category: RebateCategory
    min_rebate_pct: float
    median_rebate_pct: float
    max_rebate_pct: float
    sample_size: int
    effective_date: date
    source: str


class RebateComparison(BaseModel):
    drug_category: RebateCategory
    actual_rebate_pct: float
    benchmark: IndianaRebateBenchmark
    deviation_from_median: float
    meets_minimum: bool
    percentile_rank: float = Field(..., ge=0, le=100)
    economic_impact_annual: float
    recommendation: str


class RebateStructureAnalysis(BaseModel):
    overall_score: float
    insufficient_data: bool = False
    category_scores: dict[str, RebateComparison]
    total_annual_impact: float
    recommendations: list[str]


class WeightedRebateScore(BaseModel):
    weighted_score: float
    weighted_gap: float
    potential_savings: float
    total_spend: float


class RebateClauseValidation(BaseModel):
    has_explicit_guarantee: bool
    has_pass_through: bool
    extracted_percentages: dict[str, float]
    compliance_issues: list[str]
    estimated_risk: float


# ── Parsed contract terms ────────────────────────────────────────────────────

class RebateTerms(BaseModel):
    retained_percentage: float
    passthrough_percentage: float
    guaranteed_brand_per_script: Optional[float] = None
    guaranteed_generic_per_script: Optional[float] = None
    guaranteed_specialty_per_script: Optional[float] = None
    rebate_timing: RebateTiming = RebateTiming.QUARTERLY
    rebate_basis: str = "AWP"
    confidence: float


class SpreadPricingClause(BaseModel):
    mac_definition: str
    awp_discount_percentage: float
    dispensing_fee: float
    ingredient_cost_basis: str
    spread_disclosed: bool
    transparency_level: TransparencyLevel
    confidence: float


class AdminFeeStructure(BaseModel):
    pepm_fee: float
    per_script_fee: float
    performance_guarantee: Optional[float] = None
    confidence: float


class SpecialtyDefinition(BaseModel):
    cost_threshold: float
    white_bagging: bool
    brown_bagging: bool
    mandatory_mail_percentage: float
    prior_auth_required: bool
    confidence: float


class ParsedContract(BaseModel):
    contract_id: str
    pbm_name: str
    effective_date: date
    end_date: date
    rebate_terms: RebateTerms
    spread_pricing: SpreadPricingClause
    admin_fees: AdminFeeStructure
    specialty_definition: SpecialtyDefinition
    extraction_confidence: float = Field(..., ge=0, le=1)
    manual_review_required: bool
    notes: list[str]
    parsed_at: datetime


class ParseResult(BaseModel):
    success: bool
    data: Optional[ParsedContract] = None
    errors: list[str] = []


# ── Financial model ──────────────────────────────────────────────────────────

class UtilizationAssumptions(BaseModel):
    covered_lives: int = Field(1000, ge=0)
    annual_scripts: int = Field(15000, ge=0)
    avg_cost_per_script: float = Field(85.0, ge=0)
    specialty_percentage: float = Field(2.5, ge=0, le=100)
    mail_order_percentage: float = Field(35.0, ge=0, le=100)


class VisibleCosts(BaseModel):
    ingredient_cost: float
    dispensing_fees: float
    admin_fees: float
    total: float


class HiddenCosts(BaseModel):
    spread_markup: float
    retained_rebates: float
    specialty_markup: float
    mail_premium: float
    total: float


class RevenueStream(BaseModel):
    stream_type: StreamType
    category: StreamCategory
    description: str
    amount_min: float
    amount_likely: float
    amount_max: float


class ArbitrageOpportunity(BaseModel):
    id: str
    opportunity_type: OpportunityType
    title: str
    description: str
    severity: RiskLevel
    current_cost: float
    market_benchmark: float
    potential_savings: float = Field(..., ge=0)
    confidence_level: float = Field(..., ge=0, le=1)
    complexity: Complexity


class FinancialAssumption(BaseModel):
    id: str
    description: str
    value: float
    basis: str
    sensitivity: RiskLevel


class SensitivityScenario(BaseModel):
    name: str
    variable: str
    change_percentage: float
    savings_impact: float
    likelihood: RiskLevel


class FinancialModel(BaseModel):
    contract_id: str
    total_annual_spend: float
    visible_costs: VisibleCosts
    hidden_costs: HiddenCosts
    revenue_streams: list[RevenueStream]
    opportunities: list[ArbitrageOpportunity]
    assumptions: list[FinancialAssumption]
    sensitivity_scenarios: list[SensitivityScenario]
    total_arbitrage_identified: float
    confidence_weighted_savings: float
    generated_at: datetime


# ── Actuarial report ─────────────────────────────────────────────────────────

class ImplementationPhase(BaseModel):
    phase_number: int
    name: str
    opportunities: list[str]
    estimated_savings: float
    duration_months: int
    prerequisites: list[str]
    risks: list[str]


class AuditEntry(BaseModel):
    timestamp: datetime
    action: str
    actor: str
    details: dict[str, str]


class ExecutiveSummary(BaseModel):
    total_annual_spend: float
    total_arbitrage_identified: float
    savings_percentage: float
    confidence_weighted_savings: float
    critical_findings: int
    estimated_implementation_timeline: str


class ActuarialReport(BaseModel):
    report_id: str
    contract_id: str
    pbm_name: str
    generated_at: datetime
    executive_summary: ExecutiveSummary
    detailed_findings: list[ArbitrageOpportunity]
    financial_model: FinancialModel
    board_recommendations: list[str]
    implementation_roadmap: list[ImplementationPhase]
    audit_trail: list[AuditEntry]


# ── Contract intelligence ────────────────────────────────────────────────────

class ContractIntelligenceReport(BaseModel):
    contract_id: str
    redline_analysis: RedlineAnalysis
    fiduciary_risk_summary: ContractRiskScore
    indiana_benchmark_analysis: RebateStructureAnalysis
    negotiation_leverage_points: list[str]
    executive_briefing: str
    generated_at: datetime


class ContractHealthCheck(BaseModel):
    contract_id: str
    health_score: int = Field(..., ge=0, le=100)
    red_flags: list[str]
    green_flags: list[str]
    estimated_risk: float


# ── Upload pipeline ──────────────────────────────────────────────────────────

class ContractProcessingPipeline(BaseModel):
    contract_id: str
    current_stage: PipelineStage = PipelineStage.UPLOAD
    failed: bool = False
    parse_result: Optional[ParseResult] = None
    financial_model: Optional[FinancialModel] = None
    actuarial_report: Optional[ActuarialReport] = None
    errors: list[str] = []
    started_at: datetime
    completed_at: Optional[datetime] = None


class SessionStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETE = "complete"
    ERROR = "error"


class SessionData:
    def __init__(self, contract_id: str, filename: str = ""):
        self.status: SessionStatus = SessionStatus.PENDING
        self.status_message: str = "Queued for processing..."
        self.contract_id: str = contract_id
        self.filename: str = filename
        self.pipeline: Optional[ContractProcessingPipeline] = None
        self.pdf_path: Optional[str] = None
        self.error_message: Optional[str] = None

"""
PBM contract term parser.

Pulls the structured economic terms (rebates, spread pricing, admin fees,
specialty rules, dates) out of raw contract text with targeted patterns. Each
sub-extractor scores its own confidence from which patterns matched; the
overall parse confidence is their weighted sum.
"""

import logging
import re
from datetime import date, datetime, timedelta, timezone
from typing import Optional

from .config import EngineSettings, load_settings
from .models import (
    AdminFeeStructure,
    ParsedContract,
    ParseResult,
    RebateTerms,
    RebateTiming,
    SpecialtyDefinition,
    SpreadPricingClause,
    TransparencyLevel,
)

logger = logging.getLogger(__name__)

KNOWN_PBMS = ["CVS Caremark", "Express Scripts", "OptumRx", "MedImpact", "Prime Therapeutics"]

CONFIDENCE_WEIGHTS = {
    "rebate": 0.3,
    "spread": 0.25,
    "admin": 0.2,
    "specialty": 0.25,
}

# Defaults used when a term is not stated
DEFAULT_AWP_DISCOUNT = 15.0
DEFAULT_DISPENSING_FEE = 2.50
DEFAULT_PEPM_FEE = 8.50
DEFAULT_SPECIALTY_THRESHOLD = 1000.0
MANDATED_MAIL_PERCENTAGE = 50.0

_NUM = r"(\d+(?:\.\d+)?)"
_AMOUNT = r"(\d[\d,]*(?:\.\d+)?)"

_RETAINED = re.compile(rf"retain(?:ed)?[\s:]+{_NUM}\s*%", re.IGNORECASE)
_PASSTHROUGH = re.compile(
    rf"pass[\s-]?through(?:\s+to\s+[A-Za-z]+)?[\s:]+{_NUM}\s*%", re.IGNORECASE
)
_AWP_DISCOUNT = re.compile(rf"AWP[\s-]*(?:minus|less)?[\s-]*{_NUM}\s*%", re.IGNORECASE)
_DISPENSING_FEE = re.compile(rf"dispensing[\s\w]*fee[\s:]+\$?{_NUM}", re.IGNORECASE)
_PEPM = re.compile(
    rf"PEPM(?:[\s\w]*?fee)?[\s:]+\$?{_NUM}|\${_NUM}\s+per\s+member\s+per\s+month",
    re.IGNORECASE,
)
_PER_SCRIPT_FEE = re.compile(rf"per[\s-]script[\s\w]*fee[\s:]+\$?{_NUM}", re.IGNORECASE)
_NOT_PERCENT = r"(?![\d,.]*\s*%)"
_PERFORMANCE_GUARANTEE = re.compile(
    rf"performance\s+guarantee[\s:]+\$?{_AMOUNT}{_NOT_PERCENT}|guarantee[\s:]+\$?{_AMOUNT}{_NOT_PERCENT}",
    re.IGNORECASE,
)
_SPECIALTY_THRESHOLD = re.compile(
    rf"specialty[\s\w]*threshold[^$\d\n]{{0,60}}\$?{_AMOUNT}", re.IGNORECASE
)
_EFFECTIVE_DATE = re.compile(r"effective[\s\w]*date[\s:]+(\d{1,2}/\d{1,2}/\d{4})", re.IGNORECASE)
_END_DATE = re.compile(
    r"(?:termination|end)[\s\w]*date[\s:]+(\d{1,2}/\d{1,2}/\d{4})", re.IGNORECASE
)
_TRANSPARENT = re.compile(r"transparen\w*|pass[\s-]?through\s+pricing", re.IGNORECASE)
_SPREAD_DISCLOSED = re.compile(
    r"\b(?:no|zero)\s+spread\b|spread\s+(?:is\s+)?(?:fully\s+)?disclosed", re.IGNORECASE
)
_MAC_SENTENCE = re.compile(r"[^.\n]*\bMAC\b[^.\n]*")


def _guaranteed_rebate(text: str, category: str) -> Optional[float]:
    patterns = (
        rf"{category}[\s\w]*rebate[\s:]+\${_NUM}",
        rf"\${_NUM}\s+per\s+{category}",
    )
    for pattern in patterns:
        match = re.search(pattern, text, re.IGNORECASE)
        if match:
            return float(match.group(1))
    return None


def _first_group(match: Optional[re.Match]) -> Optional[str]:
    if not match:
        return None
    return next((g for g in match.groups() if g is not None), None)


def _to_amount(raw: str) -> float:
    return float(raw.replace(",", ""))


class PBMTermParser:
    def __init__(self, settings: Optional[EngineSettings] = None):
        self.settings = settings or load_settings()

    def parse(self, text: str, contract_id: str = "contract") -> ParseResult:
        try:
            return ParseResult(success=True, data=self._parse(text, contract_id))
        except Exception as e:
            logger.exception("Failed to parse contract %s", contract_id)
            return ParseResult(success=False, errors=[f"Critical parsing error: {e}"])

    def _parse(self, text: str, contract_id: str) -> ParsedContract:
        notes: list[str] = []
        threshold = self.settings.manual_review_threshold

        rebate = self.extract_rebate_terms(text, notes)
        spread = self.extract_spread_pricing(text, notes)
        admin = self.extract_admin_fees(text, notes)
        specialty = self.extract_specialty_definition(text, notes)

        manual_review = False
        if rebate.confidence < threshold:
            notes.append("Low confidence in rebate term extraction")
            manual_review = True
        if spread.confidence < threshold:
            notes.append("Spread pricing terms unclear or missing")
            manual_review = True

        confidence = (
            rebate.confidence * CONFIDENCE_WEIGHTS["rebate"]
            + spread.confidence * CONFIDENCE_WEIGHTS["spread"]
            + admin.confidence * CONFIDENCE_WEIGHTS["admin"]
            + specialty.confidence * CONFIDENCE_WEIGHTS["specialty"]
        )

        effective_date, end_date = self._extract_dates(text, notes)

        parsed = ParsedContract(
            contract_id=contract_id,
            pbm_name=next((name for name in KNOWN_PBMS if name in text), "Unknown PBM"),
            effective_date=effective_date,
            end_date=end_date,
            rebate_terms=rebate,
            spread_pricing=spread,
            admin_fees=admin,
            specialty_definition=specialty,
            extraction_confidence=min(confidence, 1.0),
            manual_review_required=manual_review,
            notes=notes,
            parsed_at=datetime.now(timezone.utc),
        )
        logger.info(
            "Parsed contract %s (%s): confidence %.2f, manual review %s",
            contract_id, parsed.pbm_name, parsed.extraction_confidence, manual_review,
        )
        return parsed

    # ── Sub-extractors ───────────────────────────────────────────────────────

    def extract_rebate_terms(self, text: str, notes: list[str]) -> RebateTerms:
        retained_raw = _first_group(_RETAINED.search(text))
        passthrough_raw = _first_group(_PASSTHROUGH.search(text))

        retained = float(retained_raw) if retained_raw else 0.0
        if passthrough_raw:
            passthrough = float(passthrough_raw)
        else:
            passthrough = 100.0 - retained
        if not retained_raw and not passthrough_raw:
            notes.append("Rebate retention not stated; assumed 100% pass-through")

        brand = _guaranteed_rebate(text, "brand")
        generic = _guaranteed_rebate(text, "generic")
        specialty = _guaranteed_rebate(text, "specialty")

        confidence = 0.5
        if retained_raw or passthrough_raw:
            confidence += 0.3
        if brand is not None or generic is not None:
            confidence += 0.2

        lower = text.lower()
        if "quarterly" in lower:
            timing = RebateTiming.QUARTERLY
        elif "real-time" in lower or "realtime" in lower or "point of sale" in lower:
            timing = RebateTiming.REALTIME
        else:
            timing = RebateTiming.ANNUAL

        if "AWP" in text:
            basis = "AWP"
        elif "WAC" in text:
            basis = "WAC"
        else:
            basis = "MAC"

        return RebateTerms(
            retained_percentage=retained,
            passthrough_percentage=passthrough,
            guaranteed_brand_per_script=brand,
            guaranteed_generic_per_script=generic,
            guaranteed_specialty_per_script=specialty,
            rebate_timing=timing,
            rebate_basis=basis,
            confidence=min(confidence, 1.0),
        )

    def extract_spread_pricing(self, text: str, notes: list[str]) -> SpreadPricingClause:
        awp_raw = _first_group(_AWP_DISCOUNT.search(text))
        fee_raw = _first_group(_DISPENSING_FEE.search(text))

        confidence = 0.4
        if awp_raw:
            confidence += 0.3
        else:
            notes.append(f"AWP discount not stated; assumed {DEFAULT_AWP_DISCOUNT}%")
        if fee_raw:
            confidence += 0.3
        else:
            notes.append(f"Dispensing fee not stated; assumed ${DEFAULT_DISPENSING_FEE:.2f}")

        if _TRANSPARENT.search(text):
            level = TransparencyLevel.FULL if _SPREAD_DISCLOSED.search(text) else TransparencyLevel.PARTIAL
        else:
            level = TransparencyLevel.OPAQUE

        mac_sentence = _MAC_SENTENCE.search(text)
        return SpreadPricingClause(
            mac_definition=mac_sentence.group(0).strip()[:200] if mac_sentence else "Not specified",
            awp_discount_percentage=float(awp_raw) if awp_raw else DEFAULT_AWP_DISCOUNT,
            dispensing_fee=float(fee_raw) if fee_raw else DEFAULT_DISPENSING_FEE,
            ingredient_cost_basis="MAC" if mac_sentence else "AWP",
            spread_disclosed=level != TransparencyLevel.OPAQUE,
            transparency_level=level,
            confidence=min(confidence, 1.0),
        )

    def extract_admin_fees(self, text: str, notes: list[str]) -> AdminFeeStructure:
        pepm_raw = _first_group(_PEPM.search(text))
        per_script_raw = _first_group(_PER_SCRIPT_FEE.search(text))
        guarantee_raw = _first_group(_PERFORMANCE_GUARANTEE.search(text))

        confidence = 0.5
        if pepm_raw:
            confidence += 0.25
        else:
            notes.append(f"PEPM fee not stated; assumed ${DEFAULT_PEPM_FEE:.2f}")
        if per_script_raw:
            confidence += 0.25

        return AdminFeeStructure(
            pepm_fee=float(pepm_raw) if pepm_raw else DEFAULT_PEPM_FEE,
            per_script_fee=float(per_script_raw) if per_script_raw else 0.0,
            performance_guarantee=_to_amount(guarantee_raw) if guarantee_raw else None,
            confidence=min(confidence, 1.0),
        )

    def extract_specialty_definition(self, text: str, notes: list[str]) -> SpecialtyDefinition:
        threshold_raw = _first_group(_SPECIALTY_THRESHOLD.search(text))
        lower = text.lower()
        white_bagging = "white bag" in lower
        mandatory_mail = "mandatory mail" in lower or "required mail" in lower

        confidence = 0.5
        if threshold_raw:
            confidence += 0.3
        else:
            notes.append(f"Specialty threshold not stated; assumed ${DEFAULT_SPECIALTY_THRESHOLD:,.0f}")
        if white_bagging or mandatory_mail:
            confidence += 0.2

        return SpecialtyDefinition(
            cost_threshold=_to_amount(threshold_raw) if threshold_raw else DEFAULT_SPECIALTY_THRESHOLD,
            white_bagging=white_bagging,
            brown_bagging="brown bag" in lower,
            mandatory_mail_percentage=MANDATED_MAIL_PERCENTAGE if mandatory_mail else 0.0,
            prior_auth_required="prior auth" in lower,
            confidence=min(confidence, 1.0),
        )

    @staticmethod
    def _extract_dates(text: str, notes: list[str]) -> tuple[date, date]:
        def parse_date(pattern: re.Pattern, label: str) -> Optional[date]:
            raw = _first_group(pattern.search(text))
            if not raw:
                return None
            try:
                return datetime.strptime(raw, "%m/%d/%Y").date()
            except ValueError:
                notes.append(f"Unreadable {label} date '{raw}'")
                return None

        effective = parse_date(_EFFECTIVE_DATE, "effective")
        end = parse_date(_END_DATE, "end")
        if effective is None:
            effective = date.today()
            notes.append("Effective date not found; using today's date")
        if end is None:
            end = effective + timedelta(days=365)
            notes.append("End date not found; assumed a one-year term")
        return effective, end


def generate_contract_summary(parsed: ParsedContract) -> str:
    rebate = parsed.rebate_terms
    spread = parsed.spread_pricing
    admin = parsed.admin_fees
    specialty = parsed.specialty_definition
    lines = [
        "Contract Analysis Summary",
        "",
        f"PBM: {parsed.pbm_name}",
        f"Period: {parsed.effective_date:%m/%d/%Y} - {parsed.end_date:%m/%d/%Y}",
        "",
        "REBATE STRUCTURE:",
        f"- Retained: {rebate.retained_percentage:g}%",
        f"- Pass-through: {rebate.passthrough_percentage:g}%",
        f"- Timing: {rebate.rebate_timing.value}",
        "",
        "SPREAD PRICING:",
        f"- AWP Discount: {spread.awp_discount_percentage:g}%",
        f"- Dispensing Fee: ${spread.dispensing_fee:.2f}",
        f"- Transparency: {spread.transparency_level.value}",
        "",
        "ADMIN FEES:",
        f"- PEPM: ${admin.pepm_fee:.2f}",
        f"- Per Script: ${admin.per_script_fee:.2f}",
        "",
        "SPECIALTY:",
        f"- Threshold: ${specialty.cost_threshold:,.0f}",
        f"- White Bagging: {'Yes' if specialty.white_bagging else 'No'}",
        "",
        f"Extraction Confidence: {parsed.extraction_confidence * 100:.1f}%",
        f"Manual Review: {'REQUIRED' if parsed.manual_review_required else 'Not required'}",
    ]
    if parsed.notes:
        lines += ["", "NOTES:"] + [f"- {note}" for note in parsed.notes]
    return "\n".join(lines)

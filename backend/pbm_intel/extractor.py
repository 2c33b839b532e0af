"""
Clause extraction.

Splits contract text into numbered sections and classifies each section into
zero or more clause types using the pattern library. Finding nothing is a
normal result, never an error.
"""

import logging
import re
from datetime import datetime, timezone
from typing import NamedTuple, Optional

from .models import ClauseType, ContractClause, ContractRole, FieldExtraction, RiskLevel
from .reference import ReferenceData, get_reference_data

logger = logging.getLogger(__name__)

SECTION_HEADER = re.compile(
    r"^[ \t]*(?:Section|Article|Clause)\s+(\d+(?:\.\d+)?)[:.\s]",
    re.IGNORECASE | re.MULTILINE,
)
PAGE_MARKER = re.compile(r"^--- Page (\d+) ---$", re.MULTILINE)

IDEAL_CLAUSE_LENGTH = 500

_HIGH_RISK_TYPES = {ClauseType.REBATES, ClauseType.DATA_OWNERSHIP}
_MEDIUM_RISK_TYPES = {
    ClauseType.LIABILITY,
    ClauseType.INDEMNIFICATION,
    ClauseType.TERMINATION,
    ClauseType.AUDIT,
}


class Section(NamedTuple):
    number: Optional[str]
    text: str
    start: int


def split_sections(text: str) -> list[Section]:
    headers = list(SECTION_HEADER.finditer(text))
    if not headers:
        return [Section(None, text.strip(), 0)] if text.strip() else []

    sections = []
    preamble = text[: headers[0].start()].strip()
    if preamble:
        sections.append(Section(None, preamble, 0))

    for i, header in enumerate(headers):
        end = headers[i + 1].start() if i + 1 < len(headers) else len(text)
        body = text[header.start():end].strip()
        if body:
            sections.append(Section(header.group(1), body, header.start()))
    return sections


def page_at(text: str, index: int) -> Optional[int]:
    """Page number of the last page marker at or before index, if any."""
    page = None
    for marker in PAGE_MARKER.finditer(text):
        if marker.start() > index:
            break
        page = int(marker.group(1))
    return page


def extract_field(text: str, pattern: str, field_name: str) -> FieldExtraction:
    """Pull a single value out of text and score how trustworthy the match is."""
    match = re.search(pattern, text, re.IGNORECASE)
    if not match:
        return FieldExtraction(field_name=field_name, confidence=0.0)

    matched = match.group(0)
    captured = bool(match.groups()) and match.group(1) is not None
    value = match.group(1) if captured else matched

    confidence = 0.5
    if captured:
        confidence += 0.3
    if len(matched) > 10:
        confidence += 0.1
    if len(matched) < 100:
        confidence += 0.1

    return FieldExtraction(
        field_name=field_name,
        value=value.strip(),
        confidence=min(confidence, 1.0),
        source_text=matched,
    )


class ClauseExtractor:
    def __init__(self, reference: Optional[ReferenceData] = None):
        self.reference = reference or get_reference_data()

    def extract_clauses(
        self,
        contract_id: str,
        text: str,
        role: ContractRole = ContractRole.CURRENT,
    ) -> list[ContractClause]:
        extracted_at = datetime.now(timezone.utc)
        clauses: list[ContractClause] = []

        for index, section in enumerate(split_sections(text)):
            page = page_at(text, section.start)
            for clause_type, patterns in self.reference.clause_patterns.items():
                matched = sum(1 for p in patterns if p.search(section.text))
                if matched == 0:
                    continue
                clauses.append(ContractClause(
                    id=f"{contract_id}_{clause_type.value}_{index}",
                    contract_id=contract_id,
                    clause_type=clause_type,
                    text=section.text,
                    section_number=section.number,
                    page_reference=page,
                    economic_flag=self._has_economic_terms(section.text),
                    risk_flag=self._risk_flag(clause_type, section.text),
                    confidence=self._confidence(matched, len(patterns), section.text),
                    extracted_at=extracted_at,
                ))

        logger.info(
            "Extracted %d clauses from %s contract %s",
            len(clauses), role.value, contract_id,
        )
        return clauses

    def _has_economic_terms(self, text: str) -> bool:
        lower = text.lower()
        return any(keyword in lower for keyword in self.reference.economic_keywords)

    def _risk_flag(self, clause_type: ClauseType, text: str) -> RiskLevel:
        lower = text.lower()
        if any(keyword in lower for keyword in self.reference.fiduciary_keywords):
            return RiskLevel.CRITICAL
        if clause_type in _HIGH_RISK_TYPES:
            return RiskLevel.HIGH
        if clause_type in _MEDIUM_RISK_TYPES:
            return RiskLevel.MEDIUM
        return RiskLevel.LOW

    @staticmethod
    def _confidence(matched: int, total: int, text: str) -> float:
        pattern_score = min(matched / total, 1.0) if total else 0.0
        length_score = min(len(text) / IDEAL_CLAUSE_LENGTH, 1.0)
        return min(0.7 * pattern_score + 0.3 * length_score, 1.0)


def clauses_by_type(clauses: list[ContractClause]) -> dict[ClauseType, list[ContractClause]]:
    grouped: dict[ClauseType, list[ContractClause]] = {}
    for clause in clauses:
        grouped.setdefault(clause.clause_type, []).append(clause)
    return grouped

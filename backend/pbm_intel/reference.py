"""
Reference Data Service

Holds the static tables every engine reads: the clause pattern library, the
transparent-model clause library, the industry rebate benchmark table and the
risk/exposure constants. Curated defaults are embedded in code and an optional
JSON file can override any section (REFERENCE_DATA_FILE). The loaded object is
read-only and shared by all analyses in the process.
"""

import copy
import json
import logging
import re
import threading
from datetime import date
from pathlib import Path
from types import MappingProxyType
from typing import Optional

from .config import load_settings
from .models import (
    ClauseType,
    IndianaRebateBenchmark,
    LitigationCategory,
    RebateCategory,
    RiskLevel,
)

logger = logging.getLogger(__name__)

_lock = threading.Lock()
_cached: Optional["ReferenceData"] = None

# ── Curated reference tables ─────────────────────────────────────────────────
# Sections may be overridden key-by-key from a JSON file; see load_reference_data.
_CURATED_REFERENCE = {
    "version": "2024.1",
    "clause_patterns": {
        "rebates": [
            r"rebate\s+guarantee",
            r"\d+(?:\.\d+)?%\s+rebate",
            r"minimum\s+rebate",
            r"rebate\s+pass[\s-]through",
            r"\brebates?\s+(?:on|will|shall|are|paid)\b",
            r"manufacturer\s+rebates?",
        ],
        "audit": [
            r"audit\s+right",
            r"independent\s+audit",
            r"audit\s+frequency",
            r"audit\s+cost",
        ],
        "data_ownership": [
            r"data\s+ownership",
            r"proprietary\s+data",
            r"data\s+rights",
            r"member\s+data",
        ],
        "termination": [
            r"termination\s+for\s+convenience",
            r"termination\s+without\s+cause",
            r"notice\s+period",
            r"termination\s+fee",
        ],
        "specialty": [
            r"specialty\s+drug",
            r"high[\s-]cost\s+medication",
            r"specialty\s+tier",
        ],
        "mac": [
            r"maximum\s+allowable\s+cost",
            r"(?-i:\bMAC\b)",
            r"generic\s+pricing",
        ],
        "pricing": [
            r"pricing\s+methodology",
            r"ingredient\s+cost",
            r"dispensing\s+fee",
        ],
        "formulary": [
            r"formulary\s+design",
            r"preferred\s+drug\s+list",
            r"tier\s+structure",
        ],
        "network": [
            r"pharmacy\s+network",
            r"network\s+access",
            r"preferred\s+pharmacy",
        ],
        "reporting": [
            r"reporting\s+requirement",
            r"quarterly\s+report",
            r"data\s+submission",
        ],
        "liability": [
            r"limitation\s+of\s+liability",
            r"damages\s+cap",
            r"consequential\s+damages",
        ],
        "indemnification": [
            r"indemnif",
            r"hold\s+harmless",
            r"defend\s+and\s+indemnify",
        ],
        "confidentiality": [
            r"confidential\s+information",
            r"non[\s-]disclosure",
            r"trade\s+secret",
        ],
        "force_majeure": [
            r"force\s+majeure",
            r"act\s+of\s+god",
            r"unforeseeable\s+circumstances",
        ],
    },
    "economic_keywords": [
        "guarantee", "minimum", "penalty", "rebate", "discount",
        "fee", "payment", "pricing", "cost", "compensation",
    ],
    "fiduciary_keywords": [
        "conflict of interest", "undisclosed", "affiliate", "related party",
        "fiduciary", "loyalty", "prudent",
    ],
    "key_phrase_patterns": [
        r"\d+(?:\.\d+)?\s*%",
        r"pass[\s-]?through",
        r"disclos\w*",
        r"audit\w*",
        r"terminat\w*",
        r"\bfees?\b",
        r"\b(?:shall|must|will|may|guarantee[sd]?)\b",
    ],
    "model_clauses": {
        "rebates": {
            "title": "Rebate Guarantee",
            "text": (
                "The PBM guarantees minimum rebates as follows:\n"
                "- Brand medications: 25% of WAC with 100% pass-through to client\n"
                "- Generic medications: 75% of AWP with 100% pass-through to client\n"
                "- Specialty medications: 15% of WAC with 100% pass-through to client\n"
                "- Biosimilar medications: 20% of WAC with 100% pass-through to client\n"
                "All rebates paid within 30 days of quarter end with full documentation "
                "and full disclosure of all manufacturer payments."
            ),
        },
        "audit": {
            "title": "Independent Audit Rights",
            "text": (
                "Client has unlimited independent audit rights with 30 days notice.\n"
                "PBM bears all audit costs if discrepancies exceed 2% of total spend.\n"
                "No restrictions on audit scope or auditor selection."
            ),
        },
        "data_ownership": {
            "title": "Data Ownership",
            "text": (
                "Client owns 100% of all claims data, member information, and utilization data.\n"
                "PBM acts as data processor only. Client may export data at any time.\n"
                "No restrictions on data usage or third-party analysis."
            ),
        },
        "termination": {
            "title": "Termination for Convenience",
            "text": (
                "Either party may terminate with 90 days notice. No early termination fees.\n"
                "Full data transfer and transition support included at no additional cost."
            ),
        },
        "specialty": {
            "title": "Specialty Drug Transparency",
            "text": (
                "Specialty drug pricing fully disclosed with ingredient cost + fixed dispensing fee.\n"
                "Client has right to approve all specialty pharmacy network selections.\n"
                "Quarterly reporting on specialty drug trend and clinical outcomes."
            ),
        },
        "mac": {
            "title": "MAC Pricing Transparency",
            "text": (
                "MAC pricing based on publicly available NADAC pricing + disclosed markup.\n"
                "Full MAC list disclosure updated monthly. Client can challenge any MAC price."
            ),
        },
        "pricing": {
            "title": "Pricing Methodology",
            "text": (
                "The pricing methodology is pass-through: Client pays the actual ingredient cost "
                "paid to the pharmacy plus the disclosed dispensing fee. PBM shall not retain "
                "any spread and all pricing components are disclosed on every claim."
            ),
        },
        "formulary": {
            "title": "Formulary Design",
            "text": (
                "Formulary design and the preferred drug list shall be based on clinical "
                "effectiveness and lowest net cost. Any change to the tier structure is "
                "disclosed to Client 60 days in advance with its rebate impact."
            ),
        },
        "network": {
            "title": "Pharmacy Network Access",
            "text": (
                "The pharmacy network shall provide broad network access for members. "
                "Preferred pharmacy status is awarded on disclosed pricing only and Client "
                "may approve any pharmacy added to the network."
            ),
        },
        "reporting": {
            "title": "Reporting Requirements",
            "text": (
                "Reporting requirements: PBM shall deliver a quarterly report with claim-level "
                "detail, rebate receipts, and pharmacy reimbursement, with full disclosure of "
                "all revenue sources. Data submission to Client's auditor is at no cost."
            ),
        },
        "liability": {
            "title": "Limitation of Liability",
            "text": (
                "Limitation of liability shall not apply to breaches of pricing, rebate, or "
                "audit obligations. No damages cap applies to PBM audit findings."
            ),
        },
        "indemnification": {
            "title": "Indemnification",
            "text": (
                "PBM shall defend and indemnify Client and hold harmless Client from any claim "
                "arising from PBM pricing, rebate, or data practices."
            ),
        },
        "confidentiality": {
            "title": "Confidential Information",
            "text": (
                "Confidential information excludes pricing, rebate, and claims data needed for "
                "Client audit, regulatory disclosure, or plan sponsor review. Non-disclosure terms "
                "shall not restrict Client's auditors."
            ),
        },
        "force_majeure": {
            "title": "Force Majeure",
            "text": (
                "Force majeure relief is limited to unforeseeable circumstances outside PBM "
                "control. PBM must maintain member access and disclose its continuity plan "
                "within 5 days."
            ),
        },
    },
    "rebate_benchmarks": [
        {"drug_category": "brand", "min_rebate_pct": 15.0, "median_rebate_pct": 22.5,
         "max_rebate_pct": 28.0, "sample_size": 147},
        {"drug_category": "generic", "min_rebate_pct": 65.0, "median_rebate_pct": 75.0,
         "max_rebate_pct": 85.0, "sample_size": 203},
        {"drug_category": "specialty", "min_rebate_pct": 8.0, "median_rebate_pct": 15.0,
         "max_rebate_pct": 25.0, "sample_size": 89},
        {"drug_category": "biosimilar", "min_rebate_pct": 10.0, "median_rebate_pct": 18.0,
         "max_rebate_pct": 30.0, "sample_size": 42},
    ],
    "benchmark_effective_date": "2024-01-01",
    "benchmark_source": "Indiana HHS Transparency Report 2024",
    "risk_indicators": [
        {"pattern": r"undisclosed.*fee", "weight": 0.25},
        {"pattern": r"affiliate.*arrangement", "weight": 0.20},
        {"pattern": r"proprietary.*data", "weight": 0.15},
        {"pattern": r"rebate.*retention", "weight": 0.30},
        {"pattern": r"conflict.*not.*disclosed", "weight": 0.35},
        {"pattern": r"spread.*pricing", "weight": 0.20},
        {"pattern": r"formulary.*rebate", "weight": 0.15},
        {"pattern": r"sole\s+discretion", "weight": 0.15},
        {"pattern": r"proprietary\s+(?:information|pricing)", "weight": 0.15},
        {"pattern": r"(?:limit|restrict)\w*\s+(?:the\s+)?audit", "weight": 0.20},
        {"pattern": r"not\s+guaranteed", "weight": 0.15},
    ],
    "probability_multipliers": {
        "rebates": 1.5,
        "data_ownership": 1.4,
        "audit": 1.2,
        "pricing": 1.3,
    },
    "damages_baselines": {
        "rebates": 2_000_000,
        "data_ownership": 5_000_000,
        "audit": 1_000_000,
        "pricing": 1_500_000,
        "termination": 500_000,
    },
    "default_damages_baseline": 500_000,
    "litigation_costs": {
        "fiduciary_breach": {"min": 500_000, "max": 2_000_000, "avg_settlement": 5_000_000},
        "data_misuse": {"min": 300_000, "max": 1_500_000, "avg_settlement": 3_000_000},
        "contract_dispute": {"min": 200_000, "max": 800_000, "avg_settlement": 1_000_000},
    },
    "litigation_categories": {
        "rebates": "fiduciary_breach",
        "audit": "fiduciary_breach",
        "pricing": "fiduciary_breach",
        "data_ownership": "data_misuse",
        "confidentiality": "data_misuse",
    },
    "precedent_strength": {
        "high": ["rebates", "data_ownership", "audit"],
        "medium": ["pricing", "termination", "specialty"],
    },
    "precedent_cases": {
        "data_ownership": [
            "Johnson v. Aetna (2018) - $38M settlement for undisclosed data monetization",
            "ERISA § 404(a)(1) - Prudent person standard breach",
        ],
        "rebates": [
            "Lewandowski v. CVS Caremark (2020) - Rebate retention without disclosure",
            "DOL Advisory Opinion 97-15A - Rebate pass-through requirement",
        ],
        "audit": [
            "Braden v. Wal-Mart (2014) - Audit right restrictions deemed imprudent",
        ],
    },
    # Annual leakage as a fraction of total spend at full deviation
    "leakage_bands": {
        "rebates": [0.08, 0.18],
        "specialty": [0.15, 0.30],
        "audit": [0.01, 0.03],
        "data_ownership": [0.02, 0.05],
        "mac": [0.05, 0.12],
        "pricing": [0.03, 0.08],
        "formulary": [0.02, 0.06],
        "network": [0.01, 0.04],
        "termination": [0.005, 0.02],
        "reporting": [0.005, 0.015],
        "liability": [0.005, 0.02],
        "indemnification": [0.005, 0.02],
        "confidentiality": [0.001, 0.005],
        "force_majeure": [0.001, 0.005],
    },
    "mitigations": {
        "rebates": "Insert 100% pass-through clause with quarterly attestation and minimum rebate guarantees tied to the Indiana benchmark",
        "audit": "Add independent audit rights with PBM cost-bearing for discrepancies",
        "data_ownership": "Explicitly state client owns all claims and member data",
        "termination": "Remove early termination penalties or cap at 30 days of fees",
        "specialty": "Require full disclosure of specialty ingredient cost and dispensing fees",
        "mac": "Tie MAC pricing to NADAC with full MAC list disclosure and appeal rights",
        "pricing": "Require pass-through pricing with a disclosed ingredient cost basis",
        "formulary": "Require advance disclosure of formulary changes with their rebate impact",
        "network": "Give client approval rights over network composition and preferred pharmacy status",
        "reporting": "Require quarterly claim-level reporting at no additional cost",
        "liability": "Remove liability caps for pricing, rebate, and fiduciary breaches",
        "indemnification": "Require PBM indemnification covering pricing and data practices",
        "confidentiality": "Carve client audit and regulatory disclosure out of confidentiality terms",
        "force_majeure": "Limit force majeure relief to events outside PBM control with continuity obligations",
    },
}

_MERGEABLE_SECTIONS = (
    "clause_patterns",
    "model_clauses",
    "probability_multipliers",
    "damages_baselines",
    "litigation_costs",
    "litigation_categories",
    "precedent_strength",
    "precedent_cases",
    "leakage_bands",
    "mitigations",
)


class ReferenceData:
    """Read-only view over the reference tables, with patterns precompiled."""

    def __init__(self, raw: dict):
        self._raw = copy.deepcopy(raw)
        self.version: str = raw["version"]

        self.clause_patterns = MappingProxyType({
            ClauseType(key): tuple(re.compile(p, re.IGNORECASE) for p in patterns)
            for key, patterns in raw["clause_patterns"].items()
        })
        self.economic_keywords: tuple[str, ...] = tuple(k.lower() for k in raw["economic_keywords"])
        self.fiduciary_keywords: tuple[str, ...] = tuple(k.lower() for k in raw["fiduciary_keywords"])
        self.key_phrase_patterns = tuple(
            re.compile(p, re.IGNORECASE) for p in raw["key_phrase_patterns"]
        )

        self.model_clause_titles = MappingProxyType({
            ClauseType(key): entry["title"] for key, entry in raw["model_clauses"].items()
        })
        self.model_clauses = MappingProxyType({
            ClauseType(key): entry["text"] for key, entry in raw["model_clauses"].items()
        })

        effective = date.fromisoformat(raw["benchmark_effective_date"])
        self.rebate_benchmarks = MappingProxyType({
            RebateCategory(row["drug_category"]): IndianaRebateBenchmark(
                effective_date=effective, source=raw["benchmark_source"], **row
            )
            for row in raw["rebate_benchmarks"]
        })

        self.risk_indicators = tuple(
            (re.compile(item["pattern"], re.IGNORECASE), float(item["weight"]))
            for item in raw["risk_indicators"]
        )
        self.probability_multipliers = MappingProxyType({
            ClauseType(k): float(v) for k, v in raw["probability_multipliers"].items()
        })
        self.damages_baselines = MappingProxyType({
            ClauseType(k): float(v) for k, v in raw["damages_baselines"].items()
        })
        self.default_damages_baseline = float(raw["default_damages_baseline"])
        self.litigation_costs = MappingProxyType({
            LitigationCategory(k): MappingProxyType({kk: float(vv) for kk, vv in v.items()})
            for k, v in raw["litigation_costs"].items()
        })
        self.litigation_categories = MappingProxyType({
            ClauseType(k): LitigationCategory(v) for k, v in raw["litigation_categories"].items()
        })
        self.precedent_strength = MappingProxyType({
            ClauseType(clause_type): RiskLevel(level)
            for level, clause_types in raw["precedent_strength"].items()
            for clause_type in clause_types
        })
        self.precedent_cases = MappingProxyType({
            ClauseType(k): tuple(v) for k, v in raw["precedent_cases"].items()
        })
        self.leakage_bands = MappingProxyType({
            ClauseType(k): (float(v[0]), float(v[1])) for k, v in raw["leakage_bands"].items()
        })
        self.mitigations = MappingProxyType({
            ClauseType(k): v for k, v in raw["mitigations"].items()
        })

    def as_dict(self) -> dict:
        return copy.deepcopy(self._raw)

    def template_contract_text(self) -> str:
        """Render the model clause library as a numbered transparent-model agreement."""
        parts = ["TRANSPARENT PHARMACY BENEFIT MANAGEMENT AGREEMENT"]
        for number, (clause_type, text) in enumerate(self.model_clauses.items(), start=1):
            title = self.model_clause_titles[clause_type]
            parts.append(f"Section {number}: {title}\n{text}")
        return "\n\n".join(parts)


def _merge(base: dict, override: dict) -> dict:
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if key in _MERGEABLE_SECTIONS and isinstance(value, dict):
            merged.setdefault(key, {}).update(value)
        else:
            merged[key] = value
    return merged


def load_reference_data(path: Optional[str] = None) -> ReferenceData:
    """Load the curated tables, overlaying an optional JSON override file."""
    raw = _CURATED_REFERENCE
    if path:
        override_file = Path(path)
        with open(override_file, "r") as f:
            override = json.load(f)
        raw = _merge(_CURATED_REFERENCE, override)
        logger.info("Reference data overridden from %s (version %s)", override_file, raw.get("version"))
    return ReferenceData(raw)


def get_reference_data() -> ReferenceData:
    """Process-wide reference data, loaded once on first use."""
    global _cached
    with _lock:
        if _cached is None:
            _cached = load_reference_data(load_settings().reference_data_file)
            logger.info("Reference data version %s loaded", _cached.version)
        return _cached

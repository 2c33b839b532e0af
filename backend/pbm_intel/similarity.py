"""
Clause similarity scoring against the transparent-model baseline.

similarity = 0.3 token Jaccard + 0.3 normalized Levenshtein + 0.4 key-phrase
Jaccard, and deviation = 1 - similarity. Economic alignment is a separate
penalty-based signal and is not derived from deviation.
"""

import re
from typing import Optional

from rapidfuzz.distance import Levenshtein

from .models import SimilarityResult
from .reference import ReferenceData, get_reference_data

TOKEN_WEIGHT = 0.3
EDIT_WEIGHT = 0.3
PHRASE_WEIGHT = 0.4

PASSTHROUGH_PENALTY = 0.3
RETENTION_PENALTY = 0.3
DISCLOSURE_PENALTY = 0.2
AUDIT_PENALTY = 0.2

_PUNCTUATION = re.compile(r"[^\w\s]")
_FULL_PASSTHROUGH = re.compile(r"100\s*%\s*pass[\s-]?through|full\s+pass[\s-]?through", re.IGNORECASE)
_RETENTION = re.compile(r"\bretain\w*|\bretention\b|\bwithh[eo]ld\w*", re.IGNORECASE)
_DISCLOSURE = re.compile(r"\bdisclos\w*", re.IGNORECASE)
_AUDIT = re.compile(r"\baudit\w*", re.IGNORECASE)
_AUDIT_LIMITATION = re.compile(
    r"(?<!no\s)\b(?:limit|restrict)\w*[^.]{0,40}\baudit|\baudit[^.]{0,40}\b(?:limited|restricted)",
    re.IGNORECASE,
)
_DAY_COUNT = re.compile(r"(\d+)\s*(?:calendar\s+|business\s+)?days?\b", re.IGNORECASE)
_FEE = re.compile(r"\bfees?\b", re.IGNORECASE)


def tokenize(text: str) -> set[str]:
    cleaned = _PUNCTUATION.sub(" ", text.lower())
    return {token for token in cleaned.split() if len(token) > 2}


def jaccard(a: set[str], b: set[str]) -> float:
    union = a | b
    if not union:
        return 1.0
    return len(a & b) / len(union)


def edit_similarity(a: str, b: str) -> float:
    """1 - edit_distance / max(len(a), len(b)); two empty strings are identical."""
    return Levenshtein.normalized_similarity(a, b)


def _max_days(text: str) -> Optional[int]:
    days = [int(d) for d in _DAY_COUNT.findall(text)]
    return max(days) if days else None


class SemanticSimilarityEngine:
    def __init__(self, reference: Optional[ReferenceData] = None):
        self.reference = reference or get_reference_data()

    def key_phrases(self, text: str) -> set[str]:
        phrases = set()
        for pattern in self.reference.key_phrase_patterns:
            for match in pattern.finditer(text):
                phrases.add(re.sub(r"[\s-]+", " ", match.group(0).lower()).strip())
        return phrases

    def compare(self, current_text: str, model_text: str) -> SimilarityResult:
        token_score = jaccard(tokenize(current_text), tokenize(model_text))
        edit_score = edit_similarity(current_text.strip(), model_text.strip())
        phrase_score = jaccard(self.key_phrases(current_text), self.key_phrases(model_text))

        similarity = TOKEN_WEIGHT * token_score + EDIT_WEIGHT * edit_score + PHRASE_WEIGHT * phrase_score
        similarity = max(0.0, min(similarity, 1.0))

        return SimilarityResult(
            similarity_score=similarity,
            deviation_score=1.0 - similarity,
            economic_alignment=self.economic_alignment(current_text, model_text),
            token_overlap=token_score,
            edit_similarity=edit_score,
            phrase_overlap=phrase_score,
            key_differences=self.key_differences(current_text, model_text),
        )

    @staticmethod
    def economic_alignment(current_text: str, model_text: str) -> float:
        """Start at 1.0 and subtract a fixed penalty for each economic gap versus the model."""
        alignment = 1.0
        if _FULL_PASSTHROUGH.search(model_text) and not _FULL_PASSTHROUGH.search(current_text):
            alignment -= PASSTHROUGH_PENALTY
        if _RETENTION.search(current_text) and not _RETENTION.search(model_text):
            alignment -= RETENTION_PENALTY
        if _DISCLOSURE.search(model_text) and not _DISCLOSURE.search(current_text):
            alignment -= DISCLOSURE_PENALTY
        if _AUDIT.search(model_text) and not _AUDIT.search(current_text):
            alignment -= AUDIT_PENALTY
        return max(alignment, 0.0)

    @staticmethod
    def key_differences(current_text: str, model_text: str) -> list[str]:
        differences = []

        if _FULL_PASSTHROUGH.search(model_text) and not _FULL_PASSTHROUGH.search(current_text):
            differences.append("Missing 100% rebate pass-through guarantee")

        if _RETENTION.search(current_text) and not _RETENTION.search(model_text):
            differences.append("Contains rebate retention or withholding language")

        if _DISCLOSURE.search(model_text) and not _DISCLOSURE.search(current_text):
            differences.append("Missing disclosure requirements")

        if _AUDIT_LIMITATION.search(current_text) and not _AUDIT_LIMITATION.search(model_text):
            differences.append("Audit rights limited or restricted")

        current_days, model_days = _max_days(current_text), _max_days(model_text)
        if current_days is not None and model_days is not None and current_days > model_days:
            differences.append(
                f"Longer notice or payment period: {current_days} days vs {model_days} days in model"
            )

        if len(_FEE.findall(current_text)) > len(_FEE.findall(model_text)):
            differences.append("Additional fee provisions not present in model")

        return differences

"""Static clinical vocabulary and term matching.

The index is loaded once and never mutated. ``detect_terms`` scans free text
for canonical terms (confidence 1.0) and synonyms (confidence 0.9) using
word-bounded, case-insensitive regular expressions.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

logger = logging.getLogger(__name__)

TermCategory = Literal["medication", "condition", "procedure", "anatomy", "lab"]

CANONICAL_CONFIDENCE = 1.0
SYNONYM_CONFIDENCE   = 0.9
DOSAGE_BOOST         = 0.1
DOSAGE_WINDOW_CHARS  = 50

_DOSAGE_NEAR_TERM_RE = re.compile(
    r"\b(\d+(?:\.\d+)?)\s*(mg|g|ml|cc|mcg|units?|tablets?|pills?)\b",
    re.IGNORECASE,
)


class TermCodes(BaseModel):
    """External code lists attached to a term."""

    model_config = ConfigDict(frozen=True)

    icd10: tuple[str, ...] = ()
    rxnorm: str | None = None
    loinc: str | None = None
    cpt: tuple[str, ...] = ()


class MedicalTerm(BaseModel):
    model_config = ConfigDict(frozen=True)

    term: str
    category: TermCategory
    synonyms: tuple[str, ...] = ()
    codes: TermCodes = Field(default_factory=TermCodes)


class DetectedTerm(BaseModel):
    """A dictionary hit inside a specific piece of text."""

    term: str
    category: TermCategory
    codes: TermCodes
    confidence: float = Field(..., ge=0.0, le=1.0)
    position: int = Field(..., ge=0, description="Character offset of the match")
    matched_text: str


def _t(term: str, category: TermCategory, *synonyms: str, **codes: object) -> MedicalTerm:
    return MedicalTerm(term=term, category=category, synonyms=synonyms, codes=TermCodes(**codes))


DEFAULT_TERMS: tuple[MedicalTerm, ...] = (
    # medications
    _t("amoxicillin", "medication", "amoxil", rxnorm="723"),
    _t("ibuprofen", "medication", "advil", "motrin", rxnorm="5640"),
    _t("metformin", "medication", "glucophage", rxnorm="6809"),
    _t("lisinopril", "medication", "prinivil", "zestril", rxnorm="29046"),
    _t("aspirin", "medication", "asa", "acetylsalicylic acid", rxnorm="1191"),
    _t("tylenol", "medication", "acetaminophen", "paracetamol", rxnorm="161"),
    _t("prednisone", "medication", "deltasone", rxnorm="8640"),
    _t("atorvastatin", "medication", "lipitor", rxnorm="83367"),
    _t("omeprazole", "medication", "prilosec", rxnorm="7646"),
    _t("amlodipine", "medication", "norvasc", rxnorm="17767"),
    _t("albuterol", "medication", "ventolin", "proair", "salbutamol", rxnorm="435"),
    _t("antibiotic", "medication", "antibiotics"),
    _t("pain medication", "medication", "pain med", "pain meds", "painkiller", "analgesic"),
    # conditions
    _t("diabetes", "condition", "diabetes mellitus", "dm", icd10=("E11", "E10")),
    _t("hypertension", "condition", "high blood pressure", "htn", icd10=("I10",)),
    _t("asthma", "condition", "reactive airway disease", icd10=("J45",)),
    _t("pneumonia", "condition", "lung infection", icd10=("J18",)),
    # labs
    _t("cbc", "lab", "complete blood count", "blood count", loinc="58410-2"),
    _t("metabolic panel", "lab", "bmp", "basic metabolic panel", "cmp",
       "comprehensive metabolic panel", loinc="24323-8"),
    _t("glucose", "lab", "blood sugar", "blood glucose", loinc="2345-7"),
    _t("hemoglobin a1c", "lab", "hba1c", "a1c", "glycated hemoglobin", loinc="4548-4"),
    _t("lipid panel", "lab", "cholesterol panel", "lipid profile", loinc="57698-3"),
    _t("tsh", "lab", "thyroid stimulating hormone", "thyroid panel", loinc="3016-3"),
    _t("urinalysis", "lab", "urine test", "ua", loinc="24356-8"),
    # procedures
    _t("x-ray", "procedure", "radiograph", "xray", cpt=("70000-79999",)),
    _t("mri", "procedure", "magnetic resonance imaging", cpt=("70336", "70540-70543")),
    _t("ct scan", "procedure", "cat scan", "computed tomography", cpt=("70450-70498",)),
    _t("ultrasound", "procedure", "sonogram", cpt=("76700",)),
    _t("echocardiogram", "procedure", "echo", "cardiac echo", cpt=("93306",)),
    _t("electrocardiogram", "procedure", "ekg", "ecg", cpt=("93000",)),
    # anatomy
    _t("heart", "anatomy", "cardiac", "coronary"),
    _t("lung", "anatomy", "pulmonary", "respiratory"),
    _t("liver", "anatomy", "hepatic"),
    _t("kidney", "anatomy", "renal"),
)


def _word_pattern(phrase: str) -> re.Pattern[str]:
    return re.compile(rf"\b{re.escape(phrase)}\b", re.IGNORECASE)


class MedicalTermIndex:
    """Read-only dictionary of clinical terms with a regex matcher."""

    def __init__(self, terms: Iterable[MedicalTerm] = DEFAULT_TERMS) -> None:
        self._terms: dict[str, MedicalTerm] = {}
        self._patterns: list[tuple[MedicalTerm, re.Pattern[str], float]] = []
        for term in terms:
            self._terms[term.term.lower()] = term
        for term in self._terms.values():
            self._patterns.append((term, _word_pattern(term.term), CANONICAL_CONFIDENCE))
            for synonym in term.synonyms:
                self._patterns.append((term, _word_pattern(synonym), SYNONYM_CONFIDENCE))

    def __len__(self) -> int:
        return len(self._terms)

    def lookup(self, term: str) -> MedicalTerm | None:
        """Return the canonical entry for ``term``, or None."""
        return self._terms.get(term.lower())

    def by_category(self, category: TermCategory) -> list[MedicalTerm]:
        return [t for t in self._terms.values() if t.category == category]

    def detect_terms(self, text: str) -> list[DetectedTerm]:
        """Find every dictionary term and synonym occurring in ``text``.

        Each canonical term and each synonym contributes its first occurrence.
        A dosage expression within 50 characters of a medication hit raises
        that hit's confidence by 0.1 (capped at 1.0). Hits sharing a
        ``(term, position)`` pair are collapsed to the most confident one.

        Returns:
            Detected terms sorted by position.
        """
        detected: list[DetectedTerm] = []
        for term, pattern, confidence in self._patterns:
            match = pattern.search(text)
            if match is None:
                continue
            detected.append(
                DetectedTerm(
                    term=term.term,
                    category=term.category,
                    codes=term.codes,
                    confidence=confidence,
                    position=match.start(),
                    matched_text=match.group(0),
                )
            )

        for dosage in _DOSAGE_NEAR_TERM_RE.finditer(text):
            nearby = next(
                (
                    d for d in detected
                    if d.category == "medication"
                    and abs(d.position - dosage.start()) < DOSAGE_WINDOW_CHARS
                ),
                None,
            )
            if nearby is not None:
                nearby.confidence = min(1.0, nearby.confidence + DOSAGE_BOOST)

        unique = _remove_duplicates(detected)
        logger.debug("Detected %d medical terms", len(unique))
        return sorted(unique, key=lambda d: d.position)


def _remove_duplicates(terms: list[DetectedTerm]) -> list[DetectedTerm]:
    seen: dict[tuple[str, int], DetectedTerm] = {}
    for term in terms:
        key = (term.term, term.position)
        existing = seen.get(key)
        if existing is None or existing.confidence < term.confidence:
            seen[key] = term
    return list(seen.values())

"""Rule-based detection of clinical actions in clinician speech.

Five independent matchers (prescription, lab order, follow-up, referral,
diagnostic test) each contribute at most one action per utterance. The
detector holds no mutable state beyond the read-only term index, so a single
instance can be shared across threads.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable

from ..errors import DetectionError
from ..medical.terminology import DetectedTerm, MedicalTermIndex
from .models import (
    ActionContext,
    DetectedAction,
    DiagnosticTest,
    DiagnosticTestAction,
    DiagnosticTestDetails,
    FollowUp,
    FollowUpAction,
    FollowUpDetails,
    LabOrderAction,
    LabOrderDetails,
    LabTest,
    Medication,
    PrescriptionAction,
    PrescriptionDetails,
    Referral,
    ReferralAction,
    ReferralDetails,
    SpeakerRole,
    Urgency,
)

logger = logging.getLogger(__name__)

PRESCRIPTION_THRESHOLD = 0.5
LAB_ORDER_EXPLICIT_CONFIDENCE = 0.9
LAB_ORDER_TERM_CONFIDENCE = 0.7
REFERRAL_CONFIDENCE = 0.8
FOLLOW_UP_CONFIDENCE = 0.85
DIAGNOSTIC_TERM_CONFIDENCE = 0.8
DIAGNOSTIC_PATTERN_CONFIDENCE = 0.7

_I = re.IGNORECASE

# prescription
_DOSAGE_RE = re.compile(
    r"\b(\d+(?:\.\d+)?)\s*(mg|milligrams?|g|grams?|ml|milliliters?|cc|mcg|micrograms?|units?)\b", _I
)
_FREQUENCY_RES = (
    re.compile(r"\b(?:take\s+)?(?:it\s+)?(\w+)\s+(?:times?\s+)?(?:a|per)\s+day\b", _I),
    re.compile(r"\b(?:every|q)\s*(\d+)\s*(?:hours?|hrs?|h)\b", _I),
    re.compile(r"\b(?:once|twice|three\s+times|four\s+times)\s+(?:a\s+)?(?:day|daily)\b", _I),
    re.compile(r"\b(?:bid|tid|qid|qd|qhs|prn)\b", _I),
    re.compile(r"\bas\s+needed\b", _I),
)
_DURATION_RE = re.compile(r"\bfor\s+(\d+)\s+(days?|weeks?|months?)\b", _I)
_PRESCRIBING_RE = re.compile(r"\b(?:prescrib(?:e|es|ed|ing)|prescriptions?|rx)\b", _I)

# lab order
_LAB_VERB_RE = re.compile(
    r"\b(?:order(?:ing|ed)?|need|get(?:ting)?|run(?:ning)?|check(?:ing)?|draw(?:ing)?)\b", _I
)
_LAB_PHRASE_RES = (
    re.compile(
        r"\b(?:order(?:ing|ed)?|need|get(?:ting)?|run(?:ning)?|check(?:ing)?|draw(?:ing)?)\s+"
        r"(?:(?:a|an|some|the|your|more)\s+)?(?:blood\s+)?(?:tests?|work|labs?|bloodwork|panel)\b",
        _I,
    ),
    re.compile(r"\b(?:blood|lab)\s+(?:tests?|work)\b", _I),
    re.compile(r"\bcheck\s+(?:your\s+)?(\w+)\s+levels?\b", _I),
)

# follow-up
_NUMBER = (
    r"\d+|a\s+couple\s+of|a\s+few|couple\s+of|few|an?|one|two|three|four|five|six|"
    r"seven|eight|nine|ten|eleven|twelve"
)
_FOLLOW_UP_VERB = (
    r"(?:come\s+back|follow[\s-]*up|see\s+you(?:\s+again)?|return|"
    r"schedule(?:\s+(?:a\s+)?(?:follow[\s-]*up|appointment|visit))?|"
    r"make\s+(?:a\s+)?(?:follow[\s-]*up|appointment))"
)
_FOLLOW_UP_RES = (
    re.compile(
        rf"\b{_FOLLOW_UP_VERB}\s+(?:(?:in|for)\s+)?(?:about\s+)?"
        rf"(?P<timeframe>(?:{_NUMBER})\s+(?:days?|weeks?|months?))\b",
        _I,
    ),
    re.compile(rf"\b{_FOLLOW_UP_VERB}\s+(?P<timeframe>next\s+(?:week|month))\b", _I),
)

# referral
_REFERRAL_RES = (
    re.compile(r"\brefer(?:ring|red)?\s+(?:you\s+)?to\s+(?:a\s+|an\s+|the\s+)?(\w+(?:\s+\w+)?)", _I),
    re.compile(r"\bsee\s+(?:a\s+|an\s+|the\s+)?(\w+(?:ologist|iatrist))\b", _I),
    re.compile(r"\b(?:consult|consultation)\s+with\s+(?:a\s+|an\s+|the\s+)?(\w+(?:\s+\w+)?)", _I),
)
_REFERRAL_REASON_RE = re.compile(r"\bfor\s+(?:your\s+|the\s+|his\s+|her\s+|a\s+)?([^.,;!?]+)", _I)
_GENERIC_SPECIALIST_RE = re.compile(r"\b(?:specialist|doctor)\b", _I)
KNOWN_SPECIALTIES: frozenset[str] = frozenset({
    "cardiologist", "cardiology",
    "dermatologist", "dermatology",
    "endocrinologist", "endocrinology",
    "gastroenterologist", "gastroenterology",
    "neurologist", "neurology",
    "oncologist", "oncology",
    "orthopedist", "orthopedics",
    "psychiatrist", "psychiatry",
    "pulmonologist", "pulmonology",
    "rheumatologist", "rheumatology",
    "urologist", "urology",
    "nephrologist", "nephrology",
    "specialist",
})

# diagnostic test
_IMAGING_RE = re.compile(
    r"\b(?:x-?ray|mri|ct\s*scan|cat\s+scan|ultrasound|echo(?:cardiogram)?|ekg|ecg)\b", _I
)
_SCAN_ORDER_RE = re.compile(r"\b(?:order|need|get|schedule)\s+(?:a|an)\s+(\w+)\s+(scan|imaging)\b", _I)

# urgency, checked in priority order
_URGENCY_RES: tuple[tuple[Urgency, re.Pattern[str]], ...] = (
    ("emergent", re.compile(r"\b(?:emergent(?:ly)?|emergency)\b", _I)),
    ("stat", re.compile(r"\b(?:stat|immediately|right\s+away)\b", _I)),
    ("urgent", re.compile(r"\b(?:urgent(?:ly)?|asap|soon|today)\b", _I)),
)


def classify_urgency(text: str) -> Urgency:
    """Escalate from ``routine`` when the utterance carries urgency keywords."""
    for urgency, pattern in _URGENCY_RES:
        if pattern.search(text):
            return urgency
    return "routine"


def classify_diagnostic_test(name: str) -> str:
    normalized = name.lower()
    if re.search(r"x-?ray|radiograph", normalized):
        return "radiology"
    if re.search(r"mri|magnetic", normalized):
        return "mri"
    if re.search(r"\bct\b|cat\s*scan|computed", normalized):
        return "ct"
    if re.search(r"ultrasound|sonogram|echo", normalized):
        return "ultrasound"
    return "other"


def _first_match(patterns: tuple[re.Pattern[str], ...], text: str) -> re.Match[str] | None:
    for pattern in patterns:
        match = pattern.search(text)
        if match:
            return match
    return None


Matcher = Callable[[str, list[DetectedTerm], Urgency], "DetectedAction | None"]


class ActionDetector:
    """Extract scored clinical actions from a single utterance."""

    def __init__(
        self,
        term_index: MedicalTermIndex | None = None,
        on_matcher_error: Callable[[DetectionError], None] | None = None,
    ) -> None:
        self._index = term_index or MedicalTermIndex()
        self._on_matcher_error = on_matcher_error
        self._matchers: tuple[tuple[str, Matcher], ...] = (
            ("prescription", self._detect_prescription),
            ("lab_order", self._detect_lab_order),
            ("follow_up", self._detect_follow_up),
            ("referral", self._detect_referral),
            ("diagnostic_test", self._detect_diagnostic_test),
        )

    @property
    def term_index(self) -> MedicalTermIndex:
        return self._index

    def detect(
        self,
        utterance: str,
        role: SpeakerRole,
        context: ActionContext | None = None,
    ) -> list[DetectedAction]:
        """Run every matcher against ``utterance``.

        Args:
            utterance: The utterance text, in its original language.
            role: Speaker role. Only ``clinician`` utterances are processed.
            context: Conversation/utterance identifiers, used for logging.

        Returns:
            Zero or more actions in matcher order (prescription, lab_order,
            follow_up, referral, diagnostic_test).
        """
        if role != "clinician":
            logger.debug("Skipping non-clinician utterance (role=%s)", role)
            return []

        try:
            terms = self._index.detect_terms(utterance)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Term detection failed, continuing without terms: %s", exc)
            terms = []

        urgency = classify_urgency(utterance)
        actions: list[DetectedAction] = []
        for action_type, matcher in self._matchers:
            try:
                action = matcher(utterance, terms, urgency)
            except Exception as exc:  # noqa: BLE001
                error = DetectionError(action_type, exc)
                logger.warning("%s", error, exc_info=exc)
                if self._on_matcher_error is not None:
                    self._on_matcher_error(error)
                continue
            if action is not None:
                actions.append(action)

        if context is not None and actions:
            logger.info(
                "Detected %d action(s) in utterance %s of conversation %s",
                len(actions), context.utterance_id, context.conversation_id,
            )
        return actions

    def _detect_prescription(
        self, utterance: str, terms: list[DetectedTerm], urgency: Urgency
    ) -> PrescriptionAction | None:
        medications = [t for t in terms if t.category == "medication"]
        if not medications:
            return None

        score = 0.0
        medication = medications[0]

        dosage_match = _DOSAGE_RE.search(utterance)
        if dosage_match:
            score += 0.3
        frequency_match = _first_match(_FREQUENCY_RES, utterance)
        if frequency_match:
            score += 0.2
        duration_match = _DURATION_RE.search(utterance)
        if duration_match:
            score += 0.2
        if _PRESCRIBING_RE.search(utterance):
            score += 0.3

        if score < PRESCRIPTION_THRESHOLD:
            logger.debug("Prescription score %.2f below threshold for %s", score, medication.term)
            return None

        return PrescriptionAction(
            details=PrescriptionDetails(
                medication=Medication(
                    name=medication.term,
                    dosage=dosage_match.group(0) if dosage_match else None,
                    frequency=frequency_match.group(0) if frequency_match else None,
                    duration=duration_match.group(0) if duration_match else None,
                    rxnorm_code=medication.codes.rxnorm,
                )
            ),
            confidence=round(min(1.0, score + medication.confidence * 0.3), 4),
            source_text=utterance,
            matched_terms=[t.term for t in medications],
            category=urgency,
        )

    def _detect_lab_order(
        self, utterance: str, terms: list[DetectedTerm], urgency: Urgency
    ) -> LabOrderAction | None:
        labs = [t for t in terms if t.category == "lab"]

        explicit = _first_match(_LAB_PHRASE_RES, utterance) is not None
        if not explicit and labs:
            verb = _LAB_VERB_RE.search(utterance)
            explicit = verb is not None and any(t.position > verb.start() for t in labs)

        if not explicit and not labs:
            return None

        return LabOrderAction(
            details=LabOrderDetails(
                lab_test=LabTest(
                    name=labs[0].term if labs else "blood work",
                    loinc_code=labs[0].codes.loinc if labs else None,
                    urgency=urgency,
                )
            ),
            confidence=LAB_ORDER_EXPLICIT_CONFIDENCE if explicit else LAB_ORDER_TERM_CONFIDENCE,
            source_text=utterance,
            matched_terms=[t.term for t in labs],
            category=urgency,
        )

    def _detect_follow_up(
        self, utterance: str, terms: list[DetectedTerm], urgency: Urgency
    ) -> FollowUpAction | None:
        match = _first_match(_FOLLOW_UP_RES, utterance)
        if match is None:
            return None

        timeframe = re.sub(r"\s+", " ", match.group("timeframe")).strip()
        return FollowUpAction(
            details=FollowUpDetails(follow_up=FollowUp(timeframe=timeframe, reason="Check progress")),
            confidence=FOLLOW_UP_CONFIDENCE,
            source_text=utterance,
            category=urgency,
        )

    def _detect_referral(
        self, utterance: str, terms: list[DetectedTerm], urgency: Urgency
    ) -> ReferralAction | None:
        for pattern in _REFERRAL_RES:
            match = pattern.search(utterance)
            if match is None:
                continue
            specialty = _validated_specialty(match.group(1))
            if specialty is None:
                continue

            reason_match = _REFERRAL_REASON_RE.search(utterance, match.start(1))
            reason = reason_match.group(1).strip() if reason_match else "Specialized care needed"
            return ReferralAction(
                details=ReferralDetails(
                    referral=Referral(specialty=specialty, reason=reason, urgency=urgency)
                ),
                confidence=REFERRAL_CONFIDENCE,
                source_text=utterance,
                category=urgency,
            )
        return None

    def _detect_diagnostic_test(
        self, utterance: str, terms: list[DetectedTerm], urgency: Urgency
    ) -> DiagnosticTestAction | None:
        procedures = [t for t in terms if t.category == "procedure"]

        if procedures:
            name = procedures[0].term
            confidence = DIAGNOSTIC_TERM_CONFIDENCE
        else:
            imaging = _IMAGING_RE.search(utterance)
            scan = _SCAN_ORDER_RE.search(utterance)
            if imaging:
                name = imaging.group(0).lower()
            elif scan:
                name = f"{scan.group(1)} {scan.group(2)}".lower()
            else:
                return None
            confidence = DIAGNOSTIC_PATTERN_CONFIDENCE

        return DiagnosticTestAction(
            details=DiagnosticTestDetails(
                test=DiagnosticTest(name=name, type=classify_diagnostic_test(name), urgency=urgency)
            ),
            confidence=confidence,
            source_text=utterance,
            matched_terms=[t.term for t in procedures],
            category=urgency,
        )


def _validated_specialty(captured: str) -> str | None:
    """Return the specialty named in a referral capture, or None if unrecognised."""
    words = captured.split()
    for word in words:
        if word.lower() in KNOWN_SPECIALTIES and word.lower() != "specialist":
            return word.lower()
    for i, word in enumerate(words):
        if _GENERIC_SPECIALIST_RE.fullmatch(word):
            return " ".join(words[: i + 1]).lower()
    return None

"""Pydantic models for detected clinical actions.

``DetectedAction`` is a tagged union discriminated on ``type``; each variant
carries exactly one details shape. Details serialise with the camelCase keys
expected by webhook receivers (``labTest``, ``rxnormCode``, ...).
"""

from __future__ import annotations

from datetime import datetime
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator

from ..webhooks.models import WebhookAttempt

ActionType = Literal["prescription", "lab_order", "referral", "follow_up", "diagnostic_test"]
Urgency = Literal["routine", "urgent", "stat", "emergent"]
SpeakerRole = Literal["clinician", "patient"]

ACTION_TYPES: tuple[str, ...] = ("prescription", "lab_order", "referral", "follow_up", "diagnostic_test")


class _Details(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)


class Medication(_Details):
    name: str
    dosage: str | None = None
    frequency: str | None = None
    duration: str | None = None
    rxnorm_code: str | None = Field(default=None, alias="rxnormCode")


class PrescriptionDetails(_Details):
    medication: Medication


class LabTest(_Details):
    name: str
    loinc_code: str | None = Field(default=None, alias="loincCode")
    urgency: Urgency = "routine"


class LabOrderDetails(_Details):
    lab_test: LabTest = Field(..., alias="labTest")


class Referral(_Details):
    specialty: str
    reason: str
    urgency: Urgency = "routine"


class ReferralDetails(_Details):
    referral: Referral


class FollowUp(_Details):
    timeframe: str
    reason: str


class FollowUpDetails(_Details):
    follow_up: FollowUp = Field(..., alias="followUp")


class DiagnosticTest(_Details):
    name: str
    type: str | None = None
    urgency: Urgency = "routine"


class DiagnosticTestDetails(_Details):
    test: DiagnosticTest


class _ActionBase(BaseModel):
    model_config = ConfigDict(frozen=True)

    confidence: float = Field(..., description="Detector certainty, clamped to [0, 1]")
    source_text: str = Field(..., description="Utterance text the action was extracted from")
    matched_terms: list[str] | None = None
    category: Urgency = "routine"

    @field_validator("confidence", mode="before")
    @classmethod
    def _clamp_confidence(cls, value: float) -> float:
        return max(0.0, min(1.0, float(value)))


class PrescriptionAction(_ActionBase):
    type: Literal["prescription"] = "prescription"
    details: PrescriptionDetails


class LabOrderAction(_ActionBase):
    type: Literal["lab_order"] = "lab_order"
    details: LabOrderDetails


class ReferralAction(_ActionBase):
    type: Literal["referral"] = "referral"
    details: ReferralDetails


class FollowUpAction(_ActionBase):
    type: Literal["follow_up"] = "follow_up"
    details: FollowUpDetails


class DiagnosticTestAction(_ActionBase):
    type: Literal["diagnostic_test"] = "diagnostic_test"
    details: DiagnosticTestDetails


DetectedAction = Annotated[
    Union[PrescriptionAction, LabOrderAction, ReferralAction, FollowUpAction, DiagnosticTestAction],
    Field(discriminator="type"),
]

detected_action_adapter: TypeAdapter[DetectedAction] = TypeAdapter(DetectedAction)


class ActionContext(BaseModel):
    """Where an utterance came from; passed through to callers."""

    conversation_id: str
    utterance_id: str


class ActionRecord(BaseModel):
    """A detected action after the caller has given it an identity."""

    id: str
    conversation_id: str
    utterance_id: str
    action: DetectedAction
    validated: bool = False
    validated_at: datetime | None = None
    webhook: WebhookAttempt | None = None

    @property
    def type(self) -> str:
        return self.action.type

    def details_payload(self) -> dict:
        """Details as sent over the wire (camelCase keys, unset fields dropped)."""
        return self.action.details.model_dump(by_alias=True, exclude_none=True)

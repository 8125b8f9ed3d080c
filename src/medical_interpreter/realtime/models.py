"""Pydantic models for conversation turns produced by a realtime session."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

from ..actions.models import SpeakerRole

Language = Literal["en", "es"]


class ConnectionStatus(str, Enum):
    IDLE = "idle"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    ERROR = "error"
    DISCONNECTED = "disconnected"


class SessionConfig(BaseModel):
    """Language pair for one interpretation session."""

    model_config = ConfigDict(frozen=True)

    primary_language: Language = Field(default="en", description="Language of the clinician")
    secondary_language: Language = Field(default="es", description="Language of the patient")

    @model_validator(mode="after")
    def _distinct_languages(self) -> "SessionConfig":
        if self.primary_language == self.secondary_language:
            raise ValueError("primary_language and secondary_language must differ")
        return self


class Translation(BaseModel):
    model_config = ConfigDict(frozen=True)

    text: str
    language: Language
    utterance_sequence: int = Field(..., ge=1, description="Sequence number of the translated utterance")


class Utterance(BaseModel):
    """One completed speech segment attributed to a single speaker."""

    role: SpeakerRole
    original_text: str = Field(..., min_length=1)
    language: Language
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    sequence_number: int = Field(..., ge=1)
    item_id: str | None = Field(default=None, description="Provider conversation item id")
    translation: Translation | None = None

    def attach_translation(self, text: str, language: Language) -> Translation:
        """Attach the one translation this utterance may carry."""
        if self.translation is not None:
            raise ValueError(f"Utterance {self.sequence_number} already has a translation")
        self.translation = Translation(
            text=text, language=language, utterance_sequence=self.sequence_number
        )
        return self.translation

"""Domain events emitted by a realtime session to its subscribers."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict

from .models import ConnectionStatus, Translation, Utterance


class DomainEvent(BaseModel):
    model_config = ConfigDict(frozen=True)


class StatusChanged(DomainEvent):
    status: ConnectionStatus


class ErrorOccurred(DomainEvent):
    message: str


class UtteranceProduced(DomainEvent):
    utterance: Utterance


class TranslationProduced(DomainEvent):
    translation: Translation


class SpeechStarted(DomainEvent):
    pass


class SpeechStopped(DomainEvent):
    pass

"""Turn raw realtime protocol messages into domain events.

Messages arrive over a single ordered channel, so the normalizer assumes
in-order, single-threaded processing within one session. Translations are
correlated with utterances through a one-element "awaiting translation" slot:
every new utterance overwrites the slot, and a translation attaches to
whatever the slot holds. With two untranslated utterances in flight, the
first translation lands on the second utterance and the first one is never
translated.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable
from typing import Any

from ..actions.models import SpeakerRole
from ..errors import ProtocolParseError
from .bus import EventBus
from .events import (
    ErrorOccurred,
    SpeechStarted,
    SpeechStopped,
    TranslationProduced,
    UtteranceProduced,
)
from .models import SessionConfig, Translation, Utterance

logger = logging.getLogger(__name__)

DEFAULT_ERROR_MESSAGE = "Unknown realtime error"

RoleResolver = Callable[[dict[str, Any]], SpeakerRole]


def clinician_role(_event: dict[str, Any]) -> SpeakerRole:
    """Label every human speaker as the clinician.

    Turn-taking is not inspected; see DESIGN.md for the open question.
    """
    return "clinician"


class EventNormalizer:
    """Dispatch inbound protocol events by ``type`` and publish domain events."""

    def __init__(
        self,
        config: SessionConfig,
        bus: EventBus,
        role_resolver: RoleResolver = clinician_role,
    ) -> None:
        self._config = config
        self._bus = bus
        self._role_resolver = role_resolver
        self._utterances: list[Utterance] = []
        self._awaiting_translation: Utterance | None = None
        self._seen_item_ids: set[str] = set()
        self._handlers: dict[str, Callable[[dict[str, Any]], None]] = {
            "input_audio_transcription.completed": self._on_transcription_completed,
            "conversation.item.input_audio_transcription.completed": self._on_transcription_completed,
            "conversation.item.created": self._on_item_created,
            "response.audio_transcript.delta": self._on_transcript_delta,
            "response.audio_transcript.done": self._on_transcript_done,
            "response.done": self._on_response_done,
            "input_audio_buffer.speech_started": self._on_speech_started,
            "input_audio_buffer.speech_stopped": self._on_speech_stopped,
            "error": self._on_error,
        }

    @property
    def utterances(self) -> list[Utterance]:
        """Utterances produced so far in this session, oldest first."""
        return list(self._utterances)

    @property
    def awaiting_translation(self) -> Utterance | None:
        return self._awaiting_translation

    def feed(self, raw: str | bytes) -> None:
        """Process one inbound message. Malformed messages are logged and dropped."""
        try:
            event = parse_message(raw)
            handler = self._handlers.get(event["type"])
            if handler is None:
                logger.debug("Ignoring realtime event type %r", event["type"])
                return
            handler(event)
        except ProtocolParseError as exc:
            logger.warning("Dropping malformed realtime message: %s", exc)
        except ValueError as exc:
            logger.warning("Dropping realtime event that failed validation: %s", exc)

    def reset(self) -> None:
        """Discard correlation state (called when the session disconnects)."""
        self._awaiting_translation = None
        self._seen_item_ids.clear()

    # -- handlers ---------------------------------------------------------

    def _on_transcription_completed(self, event: dict[str, Any]) -> None:
        transcript = _optional_str(event, "transcript")
        self._produce_utterance(transcript, event, event.get("item_id"))

    def _on_item_created(self, event: dict[str, Any]) -> None:
        item = event.get("item")
        if not isinstance(item, dict):
            raise ProtocolParseError("conversation.item.created without an item object")
        if item.get("role") != "user":
            return
        content = item.get("content") or []
        if not isinstance(content, list):
            raise ProtocolParseError("conversation item content must be a list")
        transcript = next(
            (part.get("transcript") for part in content if isinstance(part, dict) and part.get("transcript")),
            None,
        )
        self._produce_utterance(transcript, event, item.get("id"))

    def _on_transcript_delta(self, event: dict[str, Any]) -> None:
        # Incremental text; only the completed transcript is surfaced.
        pass

    def _on_transcript_done(self, event: dict[str, Any]) -> None:
        self._produce_translation(_optional_str(event, "transcript"))

    def _on_response_done(self, event: dict[str, Any]) -> None:
        response = event.get("response")
        if not isinstance(response, dict):
            raise ProtocolParseError("response.done without a response object")
        self._produce_translation(_response_transcript(response))

    def _on_speech_started(self, event: dict[str, Any]) -> None:
        self._bus.publish(SpeechStarted())

    def _on_speech_stopped(self, event: dict[str, Any]) -> None:
        self._bus.publish(SpeechStopped())

    def _on_error(self, event: dict[str, Any]) -> None:
        error = event.get("error")
        message = error.get("message") if isinstance(error, dict) else None
        if not message:
            message = event.get("message") or DEFAULT_ERROR_MESSAGE
        logger.error("Realtime provider error: %s", message)
        self._bus.publish(ErrorOccurred(message=str(message)))

    # -- correlation ------------------------------------------------------

    def _produce_utterance(self, transcript: str | None, event: dict[str, Any], item_id: Any) -> None:
        if not transcript or not transcript.strip():
            return
        if isinstance(item_id, str) and item_id:
            if item_id in self._seen_item_ids:
                logger.debug("Utterance for item %s already produced", item_id)
                return
            self._seen_item_ids.add(item_id)
        else:
            item_id = None

        utterance = Utterance(
            role=self._role_resolver(event),
            original_text=transcript.strip(),
            language=self._config.primary_language,
            sequence_number=len(self._utterances) + 1,
            item_id=item_id,
        )
        self._utterances.append(utterance)
        self._awaiting_translation = utterance
        self._bus.publish(UtteranceProduced(utterance=utterance))

    def _produce_translation(self, transcript: str | None) -> None:
        if not transcript or not transcript.strip():
            return
        target = self._awaiting_translation
        if target is None:
            logger.debug("Dropping translation with no utterance awaiting one")
            return
        self._awaiting_translation = None
        translation: Translation = target.attach_translation(
            transcript.strip(), self._config.secondary_language
        )
        self._bus.publish(TranslationProduced(translation=translation))


def parse_message(raw: str | bytes) -> dict[str, Any]:
    """Decode one channel message into an event dict with a string ``type``."""
    try:
        event = json.loads(raw)
    except (TypeError, ValueError) as exc:
        raise ProtocolParseError(f"invalid JSON: {exc}") from exc
    if not isinstance(event, dict):
        raise ProtocolParseError(f"expected a JSON object, got {type(event).__name__}")
    event_type = event.get("type")
    if not isinstance(event_type, str) or not event_type:
        raise ProtocolParseError("message has no string 'type' field")
    return event


def _optional_str(event: dict[str, Any], key: str) -> str | None:
    value = event.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise ProtocolParseError(f"{event['type']}: '{key}' must be a string")
    return value


def _response_transcript(response: dict[str, Any]) -> str | None:
    """Pull the final transcript from ``response.output[*].content[*].transcript``."""
    output = response.get("output") or []
    if not isinstance(output, list):
        raise ProtocolParseError("response.output must be a list")
    for item in output:
        if not isinstance(item, dict):
            continue
        for part in item.get("content") or []:
            if isinstance(part, dict) and isinstance(part.get("transcript"), str) and part["transcript"]:
                return part["transcript"]
    return None

"""Example: a realtime interpretation session driven by a scripted transport.

Usage:
    python examples/live_interpretation.py

Replays provider events through a fake transport so the demo runs offline.
"""

from __future__ import annotations

import json
import sys
from pathlib import Path
from unittest.mock import MagicMock

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from medical_interpreter.config import configure_logging
from medical_interpreter.realtime.credentials import SessionCredential
from medical_interpreter.realtime.events import StatusChanged, TranslationProduced, UtteranceProduced
from medical_interpreter.realtime.models import SessionConfig
from medical_interpreter.realtime.session import SessionConnection
from medical_interpreter.realtime.transport import RealtimeTransport, TransportState
from medical_interpreter.use_cases.interpretation import InterpretationPipeline


SCRIPT = [
    {"type": "input_audio_buffer.speech_started"},
    {"type": "conversation.item.input_audio_transcription.completed", "item_id": "item_1",
     "transcript": "I'm prescribing ibuprofen 400 mg twice a day for 5 days."},
    {"type": "response.audio_transcript.done",
     "transcript": "Le estoy recetando ibuprofen 400 mg dos veces al día por 5 días."},
    {"type": "conversation.item.input_audio_transcription.completed", "item_id": "item_2",
     "transcript": "Come back in two weeks."},
    {"type": "response.done", "response": {"output": [{"content": [{"transcript": "Regrese en dos semanas."}]}]}},
]


class ScriptedTransport(RealtimeTransport):
    """Replays SCRIPT as soon as the channel opens."""

    def __init__(self) -> None:
        self._open = False
        self.sent: list[str] = []

    def open(self, token, on_message, on_state) -> None:
        self._open = True
        on_state(TransportState.CONNECTED)
        for event in SCRIPT:
            on_message(json.dumps(event))

    def send(self, message: str) -> None:
        self.sent.append(message)

    def close(self) -> None:
        self._open = False

    @property
    def is_open(self) -> bool:
        return self._open


def main() -> None:
    configure_logging("WARNING")
    print("=== Live Interpretation Demo (mock mode) ===\n")

    credentials = MagicMock()
    credentials.fetch.return_value = SessionCredential(token="demo-token")

    session = SessionConnection(credentials, transport_factory=ScriptedTransport)
    session.on(StatusChanged, lambda e: print(f"[status] {e.status.value}"))
    session.on(UtteranceProduced, lambda e: print(f"[{e.utterance.role}] {e.utterance.original_text}"))
    session.on(TranslationProduced, lambda e: print(f"    [{e.translation.language}] {e.translation.text}"))
    pipeline = InterpretationPipeline(
        session,
        on_actions=lambda records: [print(f"    -> {r.type} ({r.action.confidence:.2f})") for r in records],
    )

    session.connect(SessionConfig(primary_language="en", secondary_language="es"))
    session.disconnect()

    print(f"\nActions recorded: {len(pipeline.records)}")


if __name__ == "__main__":
    main()

"""Shared pytest fixtures, fakes, and test markers.

Test tiers
----------
  unit        Fast, fully offline, zero external dependencies.
              Always run.

  integration Fake transport and mocked HTTP. Always run. Validates the
              session -> detector -> webhook flow without network calls.

  quality     Property-based (Hypothesis) invariants. Always run offline.

  live        Real API calls. Skipped unless the required environment
              variables are set. See tests/live/conftest.py for guards.

Run specific tiers:
  pytest tests/unit tests/integration tests/quality   # offline only
  pytest tests/live -m live                           # live only
  pytest tests/ -v                                    # everything
"""

from __future__ import annotations

import json
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from medical_interpreter.actions.detector import ActionDetector
from medical_interpreter.actions.models import ActionRecord
from medical_interpreter.medical.terminology import MedicalTermIndex
from medical_interpreter.realtime.bus import EventBus
from medical_interpreter.realtime.credentials import CredentialProvider, SessionCredential
from medical_interpreter.realtime.models import SessionConfig
from medical_interpreter.realtime.transport import RealtimeTransport, TransportState
from medical_interpreter.webhooks.scheduler import ManualScheduler
from tests.fixtures.audio import generate_silence_wav, generate_sine_wav, validate_wav


# ---------------------------------------------------------------------------
# Pytest markers
# ---------------------------------------------------------------------------

def pytest_configure(config):
    config.addinivalue_line("markers", "unit: fast offline unit tests")
    config.addinivalue_line("markers", "integration: fake-transport integration tests")
    config.addinivalue_line("markers", "quality: property-based invariants")
    config.addinivalue_line("markers", "live: requires real credentials (skipped by default)")


# ---------------------------------------------------------------------------
# Realtime fakes
# ---------------------------------------------------------------------------

class FakeTransport(RealtimeTransport):
    """In-memory transport: tests push provider events with ``emit``."""

    def __init__(self, fail_open: Exception | None = None) -> None:
        self.fail_open = fail_open
        self.token: str | None = None
        self.sent: list[str] = []
        self.close_calls = 0
        self._open = False
        self._on_message = None
        self._on_state = None

    def open(self, token, on_message, on_state) -> None:
        if self.fail_open is not None:
            raise self.fail_open
        self.token = token
        self._on_message = on_message
        self._on_state = on_state
        self._open = True
        on_state(TransportState.CONNECTED)

    def send(self, message: str) -> None:
        self.sent.append(message)

    def close(self) -> None:
        self.close_calls += 1
        self._open = False

    @property
    def is_open(self) -> bool:
        return self._open

    # test helpers

    def emit(self, event: dict) -> None:
        self._on_message(json.dumps(event))

    def emit_raw(self, raw: str) -> None:
        self._on_message(raw)

    def drop(self, state: TransportState = TransportState.FAILED) -> None:
        self._open = False
        self._on_state(state)

    @property
    def sent_events(self) -> list[dict]:
        return [json.loads(m) for m in self.sent]


class StaticCredentials(CredentialProvider):
    def __init__(self, token: str = "ek_test_token") -> None:
        super().__init__(session=MagicMock())
        self.token = token
        self.requests: list[SessionConfig] = []

    def fetch(self, config: SessionConfig) -> SessionCredential:
        self.requests.append(config)
        return SessionCredential(
            token=self.token,
            primary_language=config.primary_language,
            secondary_language=config.secondary_language,
        )


def transcription_event(transcript: str, item_id: str | None = None) -> dict:
    event = {"type": "conversation.item.input_audio_transcription.completed", "transcript": transcript}
    if item_id is not None:
        event["item_id"] = item_id
    return event


def translation_event(transcript: str) -> dict:
    return {"type": "response.audio_transcript.done", "transcript": transcript}


@pytest.fixture
def fake_transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def static_credentials() -> StaticCredentials:
    return StaticCredentials()


@pytest.fixture
def session_config() -> SessionConfig:
    return SessionConfig(primary_language="en", secondary_language="es")


@pytest.fixture
def bus() -> EventBus:
    return EventBus()


# ---------------------------------------------------------------------------
# Detection fixtures
# ---------------------------------------------------------------------------

@pytest.fixture(scope="session")
def term_index() -> MedicalTermIndex:
    return MedicalTermIndex()


@pytest.fixture
def detector(term_index: MedicalTermIndex) -> ActionDetector:
    return ActionDetector(term_index)


@pytest.fixture
def lab_order_record(detector: ActionDetector) -> ActionRecord:
    action = detector.detect("Let's order a CBC today.", "clinician")[0]
    return ActionRecord(
        id="act-001",
        conversation_id="conv-001",
        utterance_id="conv-001-u1",
        action=action,
    )


# ---------------------------------------------------------------------------
# Webhook fixtures
# ---------------------------------------------------------------------------

WEBHOOK_URL = "https://receiver.example.com/hooks/medical"
WEBHOOK_SECRET = "test-webhook-secret"


@pytest.fixture
def manual_scheduler() -> ManualScheduler:
    return ManualScheduler()


# ---------------------------------------------------------------------------
# Audio fixtures: real PCM16 WAV files
# ---------------------------------------------------------------------------

@pytest.fixture
def real_wav_file(tmp_path: Path) -> Path:
    """A real RIFF/WAV file: mono, 16-bit, 16kHz, 1-second sine wave at 440Hz."""
    path = tmp_path / "test_440hz_1s.wav"
    generate_sine_wav(path, duration_seconds=1.0, frequency_hz=440.0)

    # Self-verify immediately so a bad fixture fails loudly
    props = validate_wav(path)
    assert props["channels"] == 1
    assert props["frame_rate"] == 16000
    assert props["n_frames"] == 16000
    return path


@pytest.fixture
def real_silence_wav_file(tmp_path: Path) -> Path:
    path = tmp_path / "test_silence_1s.wav"
    generate_silence_wav(path, duration_seconds=1.0)
    validate_wav(path)
    return path

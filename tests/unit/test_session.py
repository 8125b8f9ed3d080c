"""Unit tests for the realtime session state machine."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from medical_interpreter.errors import SessionConnectionError
from medical_interpreter.realtime.audio import AudioSource
from medical_interpreter.realtime.events import ErrorOccurred, StatusChanged, UtteranceProduced
from medical_interpreter.realtime.models import ConnectionStatus, SessionConfig
from medical_interpreter.realtime.session import TRANSPORT_FAILED_MESSAGE, SessionConnection
from medical_interpreter.realtime.transport import TransportState
from tests.conftest import FakeTransport, StaticCredentials, transcription_event

pytestmark = pytest.mark.unit


def make_session(transport: FakeTransport, credentials=None) -> tuple[SessionConnection, list, list]:
    session = SessionConnection(credentials or StaticCredentials(), transport_factory=lambda: transport)
    statuses: list[ConnectionStatus] = []
    errors: list[str] = []
    session.on(StatusChanged, lambda e: statuses.append(e.status))
    session.on(ErrorOccurred, lambda e: errors.append(e.message))
    return session, statuses, errors


class ListAudioSource(AudioSource):
    def __init__(self, chunks: list[bytes]) -> None:
        self._chunks = chunks
        self.closed = False

    def chunks(self):
        yield from self._chunks

    def close(self) -> None:
        self.closed = True


class TestConnect:
    def test_connect_moves_through_states(
        self, fake_transport: FakeTransport, session_config: SessionConfig
    ) -> None:
        session, statuses, _ = make_session(fake_transport)
        assert session.status is ConnectionStatus.IDLE
        session.connect(session_config)
        assert statuses == [ConnectionStatus.CONNECTING, ConnectionStatus.CONNECTED]
        assert session.status is ConnectionStatus.CONNECTED
        assert fake_transport.token == "ek_test_token"

    def test_credentials_requested_for_config(
        self, fake_transport: FakeTransport, static_credentials: StaticCredentials
    ) -> None:
        session, _, _ = make_session(fake_transport, static_credentials)
        config = SessionConfig(primary_language="es", secondary_language="en")
        session.connect(config)
        assert static_credentials.requests == [config]

    def test_connect_twice_is_rejected(
        self, fake_transport: FakeTransport, session_config: SessionConfig
    ) -> None:
        session, _, _ = make_session(fake_transport)
        session.connect(session_config)
        with pytest.raises(SessionConnectionError, match="already connected"):
            session.connect(session_config)

    def test_credential_failure(self, fake_transport: FakeTransport, session_config: SessionConfig) -> None:
        credentials = MagicMock()
        credentials.fetch.side_effect = SessionConnectionError("Failed to get session token")
        session, statuses, errors = make_session(fake_transport, credentials)

        with pytest.raises(SessionConnectionError, match="Failed to get session token"):
            session.connect(session_config)

        assert statuses == [ConnectionStatus.CONNECTING, ConnectionStatus.ERROR]
        assert errors == ["Failed to get session token"]
        assert session.status is ConnectionStatus.ERROR

    def test_transport_failure_is_wrapped(self, session_config: SessionConfig) -> None:
        transport = FakeTransport(fail_open=OSError("connection refused"))
        session, _, errors = make_session(transport)

        with pytest.raises(SessionConnectionError) as excinfo:
            session.connect(session_config)

        assert isinstance(excinfo.value.__cause__, OSError)
        assert errors == ["connection refused"]
        assert session.status is ConnectionStatus.ERROR

    def test_can_reconnect_after_error(self, session_config: SessionConfig) -> None:
        transports = [FakeTransport(fail_open=OSError("down")), FakeTransport()]
        session = SessionConnection(StaticCredentials(), transport_factory=lambda: transports.pop(0))
        with pytest.raises(SessionConnectionError):
            session.connect(session_config)
        session.connect(session_config)
        assert session.status is ConnectionStatus.CONNECTED


class TestInboundEvents:
    def test_messages_reach_subscribers(
        self, fake_transport: FakeTransport, session_config: SessionConfig
    ) -> None:
        session, _, _ = make_session(fake_transport)
        utterances: list = []
        session.events.subscribe(UtteranceProduced, lambda e: utterances.append(e.utterance))
        session.connect(session_config)
        fake_transport.emit(transcription_event("Follow up in two weeks"))
        assert [u.original_text for u in utterances] == ["Follow up in two weeks"]
        assert session.utterances == utterances

    def test_transport_failure_sets_error_and_cleans_up(
        self, fake_transport: FakeTransport, session_config: SessionConfig
    ) -> None:
        session, statuses, errors = make_session(fake_transport)
        session.connect(session_config)
        fake_transport.drop(TransportState.FAILED)

        assert session.status is ConnectionStatus.ERROR
        assert statuses[-1] is ConnectionStatus.ERROR
        assert errors == [TRANSPORT_FAILED_MESSAGE]
        assert fake_transport.close_calls == 1

    def test_remote_close_disconnects(
        self, fake_transport: FakeTransport, session_config: SessionConfig
    ) -> None:
        session, statuses, errors = make_session(fake_transport)
        session.connect(session_config)
        fake_transport.drop(TransportState.CLOSED)
        assert session.status is ConnectionStatus.DISCONNECTED
        assert errors == []


class TestDisconnect:
    def test_disconnect_is_idempotent(
        self, fake_transport: FakeTransport, session_config: SessionConfig
    ) -> None:
        session, statuses, _ = make_session(fake_transport)
        session.connect(session_config)
        session.disconnect()
        session.disconnect()
        assert statuses.count(ConnectionStatus.DISCONNECTED) == 1
        assert fake_transport.close_calls == 1

    def test_disconnect_before_connect_marks_disconnected(self, fake_transport: FakeTransport) -> None:
        session, statuses, _ = make_session(fake_transport)
        session.disconnect()
        session.disconnect()
        assert statuses == [ConnectionStatus.DISCONNECTED]
        assert session.status is ConnectionStatus.DISCONNECTED
        assert fake_transport.close_calls == 0

    def test_disconnect_after_error(self, session_config: SessionConfig) -> None:
        session, statuses, _ = make_session(FakeTransport(fail_open=OSError("down")))
        with pytest.raises(SessionConnectionError):
            session.connect(session_config)
        session.disconnect()
        assert session.status is ConnectionStatus.DISCONNECTED

    def test_disconnect_discards_pending_translation(
        self, fake_transport: FakeTransport, session_config: SessionConfig
    ) -> None:
        session, _, _ = make_session(fake_transport)
        session.connect(session_config)
        fake_transport.emit(transcription_event("Hello"))
        normalizer = session._normalizer
        session.disconnect()
        assert normalizer.awaiting_translation is None


class TestSending:
    def test_send_message_serialises_json(
        self, fake_transport: FakeTransport, session_config: SessionConfig
    ) -> None:
        session, _, _ = make_session(fake_transport)
        session.connect(session_config)
        session.send_message({"type": "response.create"})
        assert fake_transport.sent_events == [{"type": "response.create"}]

    def test_send_audio_appends_to_buffer(
        self, fake_transport: FakeTransport, session_config: SessionConfig
    ) -> None:
        session, _, _ = make_session(fake_transport)
        session.connect(session_config)
        session.send_audio(b"\x01\x02")
        assert fake_transport.sent_events == [{"type": "input_audio_buffer.append", "audio": "AQI="}]

    def test_send_when_not_connected_raises(self, fake_transport: FakeTransport) -> None:
        session, _, _ = make_session(fake_transport)
        with pytest.raises(SessionConnectionError):
            session.send_message({"type": "response.create"})

    def test_audio_source_is_pumped(
        self, fake_transport: FakeTransport, session_config: SessionConfig
    ) -> None:
        source = ListAudioSource([b"\x00\x00", b"\x01\x00"])
        session, _, _ = make_session(fake_transport)
        session.connect(session_config, audio_source=source)
        session._pump._thread.join(timeout=2)
        session.disconnect()

        assert [e["type"] for e in fake_transport.sent_events] == ["input_audio_buffer.append"] * 2
        assert source.closed

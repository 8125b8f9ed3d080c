"""Realtime interpretation session.

``SessionConnection`` owns one transport, one event normalizer and one event
bus. Status moves ``idle -> connecting -> connected``; ``error`` and
``disconnected`` are reachable from any state. A failure-triggered cleanup
leaves the status at ``error`` so observers can still see it; only an explicit
``disconnect()`` (or a remote close) sets ``disconnected``.
"""

from __future__ import annotations

import json
import logging
import threading
from collections.abc import Callable
from typing import Any

from ..errors import SessionConnectionError
from .audio import AudioPump, AudioSource, audio_append_event
from .bus import E, EventBus
from .credentials import CredentialProvider
from .events import ErrorOccurred, StatusChanged
from .models import ConnectionStatus, SessionConfig, Utterance
from .normalizer import EventNormalizer, RoleResolver, clinician_role
from .transport import RealtimeTransport, TransportState, WebSocketTransport

logger = logging.getLogger(__name__)

TRANSPORT_FAILED_MESSAGE = "Realtime transport connection failed"


class SessionConnection:
    """Connect to the realtime provider and publish domain events.

    Usage:
        session = SessionConnection(TokenEndpointClient(url))
        session.events.subscribe(UtteranceProduced, on_utterance)
        session.connect(SessionConfig(primary_language="en", secondary_language="es"))
        ...
        session.disconnect()
    """

    def __init__(
        self,
        credentials: CredentialProvider,
        transport_factory: Callable[[], RealtimeTransport] = WebSocketTransport,
        role_resolver: RoleResolver = clinician_role,
    ) -> None:
        self.events = EventBus()
        self._credentials = credentials
        self._transport_factory = transport_factory
        self._role_resolver = role_resolver
        self._status = ConnectionStatus.IDLE
        self._transport: RealtimeTransport | None = None
        self._normalizer: EventNormalizer | None = None
        self._pump: AudioPump | None = None
        self._config: SessionConfig | None = None
        self._lock = threading.RLock()

    @property
    def status(self) -> ConnectionStatus:
        with self._lock:
            return self._status

    @property
    def config(self) -> SessionConfig | None:
        return self._config

    @property
    def utterances(self) -> list[Utterance]:
        return self._normalizer.utterances if self._normalizer is not None else []

    def on(self, event_type: type[E], handler: Callable[[E], None]) -> Callable[[], None]:
        """Shorthand for ``self.events.subscribe``."""
        return self.events.subscribe(event_type, handler)

    def connect(self, config: SessionConfig, audio_source: AudioSource | None = None) -> None:
        """Open a session for ``config``.

        Raises:
            SessionConnectionError: if the session is already connecting or
                connected, or if any step of the connection fails. The status
                is ``error`` afterwards and an ``ErrorOccurred`` event has
                been published.
        """
        with self._lock:
            if self._status in (ConnectionStatus.CONNECTING, ConnectionStatus.CONNECTED):
                raise SessionConnectionError(f"Session is already {self._status.value}")
            self._config = config
            self._normalizer = EventNormalizer(config, self.events, self._role_resolver)
            self._transport = self._transport_factory()
        self._set_status(ConnectionStatus.CONNECTING)

        try:
            credential = self._credentials.fetch(config)
            logger.info(
                "Connecting realtime session (%s -> %s)",
                config.primary_language, config.secondary_language,
            )
            self._transport.open(credential.token, self._normalizer.feed, self._on_transport_state)
            if audio_source is not None:
                pump = AudioPump(audio_source, self.send_message)
                with self._lock:
                    self._pump = pump
                pump.start()
        except Exception as exc:
            logger.error("Realtime session connection failed: %s", exc)
            self._fail(str(exc))
            if isinstance(exc, SessionConnectionError):
                raise
            raise SessionConnectionError(str(exc)) from exc

    def disconnect(self) -> None:
        """Tear the session down. Safe from any state; repeated calls do nothing."""
        with self._lock:
            if self._status is ConnectionStatus.DISCONNECTED:
                return
        self._teardown()
        self._set_status(ConnectionStatus.DISCONNECTED)
        logger.info("Realtime session disconnected")

    def send_message(self, message: dict[str, Any]) -> None:
        """Serialise and write one client event to the open transport."""
        with self._lock:
            transport = self._transport
        if transport is None or not transport.is_open:
            raise SessionConnectionError("Realtime session is not connected")
        transport.send(json.dumps(message))

    def send_audio(self, chunk: bytes) -> None:
        """Append one PCM16 chunk to the provider's input audio buffer."""
        self.send_message(audio_append_event(chunk))

    def _on_transport_state(self, state: TransportState) -> None:
        if state is TransportState.CONNECTED:
            self._set_status(ConnectionStatus.CONNECTED)
        elif state is TransportState.FAILED:
            self._fail(TRANSPORT_FAILED_MESSAGE)
        elif state is TransportState.CLOSED:
            logger.info("Realtime transport closed by remote")
            self.disconnect()

    def _fail(self, message: str) -> None:
        self._set_status(ConnectionStatus.ERROR)
        self.events.publish(ErrorOccurred(message=message))
        self._teardown()

    def _teardown(self) -> None:
        with self._lock:
            pump, self._pump = self._pump, None
            transport, self._transport = self._transport, None
            normalizer = self._normalizer
        if pump is not None:
            pump.stop()
        if transport is not None:
            try:
                transport.close()
            except Exception:  # noqa: BLE001
                logger.exception("Error while closing realtime transport")
        if normalizer is not None:
            normalizer.reset()

    def _set_status(self, status: ConnectionStatus) -> None:
        with self._lock:
            if self._status is status:
                return
            self._status = status
        logger.debug("Session status -> %s", status.value)
        self.events.publish(StatusChanged(status=status))

"""Realtime transport: the ordered, reliable event channel to the voice provider.

``WebSocketTransport`` speaks the provider's realtime protocol over a
WebSocket. Inbound messages are read on a background thread and handed, in
order, to the ``on_message`` callback; connectivity changes are reported
through ``on_state``.
"""

from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from collections.abc import Callable
from enum import Enum
from typing import Any
from urllib.parse import urlencode

from websockets.exceptions import ConnectionClosedError, ConnectionClosedOK, WebSocketException
from websockets.sync.client import connect

from ..errors import SessionConnectionError

logger = logging.getLogger(__name__)

DEFAULT_REALTIME_URL = "wss://api.openai.com/v1/realtime"
DEFAULT_REALTIME_MODEL = "gpt-4o-realtime-preview-2024-12-17"


class TransportState(str, Enum):
    CONNECTED = "connected"
    FAILED = "failed"
    CLOSED = "closed"


MessageCallback = Callable[[str | bytes], None]
StateCallback = Callable[[TransportState], None]


class RealtimeTransport(ABC):
    """Abstract event channel between a session and the realtime provider."""

    @abstractmethod
    def open(self, token: str, on_message: MessageCallback, on_state: StateCallback) -> None:
        """Establish the channel using a short-lived credential.

        Raises:
            SessionConnectionError: if the channel cannot be negotiated.
        """

    @abstractmethod
    def send(self, message: str) -> None:
        """Write one serialised event to the channel."""

    @abstractmethod
    def close(self) -> None:
        """Close the channel. Safe to call more than once."""

    @property
    @abstractmethod
    def is_open(self) -> bool: ...


class WebSocketTransport(RealtimeTransport):
    """Realtime transport over a WebSocket connection."""

    def __init__(
        self,
        url: str = DEFAULT_REALTIME_URL,
        model: str = DEFAULT_REALTIME_MODEL,
        open_timeout: float = 10.0,
        connector: Callable[..., Any] = connect,
    ) -> None:
        self._url = url
        self._model = model
        self._open_timeout = open_timeout
        self._connector = connector
        self._ws: Any = None
        self._reader: threading.Thread | None = None
        self._closing = False
        self._lock = threading.Lock()

    @property
    def uri(self) -> str:
        return f"{self._url}?{urlencode({'model': self._model})}"

    def open(self, token: str, on_message: MessageCallback, on_state: StateCallback) -> None:
        headers = {
            "Authorization": f"Bearer {token}",
            "OpenAI-Beta": "realtime=v1",
        }
        try:
            ws = self._connector(self.uri, additional_headers=headers, open_timeout=self._open_timeout)
        except (OSError, TimeoutError, WebSocketException) as exc:
            raise SessionConnectionError(f"Realtime transport negotiation failed: {exc}") from exc

        reader = threading.Thread(
            target=self._read_loop,
            args=(ws, on_message, on_state),
            name="realtime-transport-reader",
            daemon=True,
        )
        with self._lock:
            self._ws = ws
            self._reader = reader
            self._closing = False

        logger.info("Realtime transport connected to %s", self._url)
        on_state(TransportState.CONNECTED)
        reader.start()

    def send(self, message: str) -> None:
        with self._lock:
            ws = self._ws
        if ws is None:
            raise SessionConnectionError("Realtime transport is not open")
        try:
            ws.send(message)
        except WebSocketException as exc:
            raise SessionConnectionError(f"Failed to send on realtime transport: {exc}") from exc

    def close(self) -> None:
        with self._lock:
            ws = self._ws
            reader = self._reader
            self._ws = None
            self._reader = None
            self._closing = True

        if ws is None:
            return
        ws.close()
        if reader is not None and reader is not threading.current_thread():
            reader.join(timeout=self._open_timeout)
        logger.info("Realtime transport closed")

    @property
    def is_open(self) -> bool:
        with self._lock:
            return self._ws is not None

    def _read_loop(self, ws: Any, on_message: MessageCallback, on_state: StateCallback) -> None:
        state = TransportState.CLOSED
        try:
            for message in ws:
                on_message(message)
        except ConnectionClosedOK:
            state = TransportState.CLOSED
        except ConnectionClosedError as exc:
            logger.warning("Realtime transport dropped: %s", exc)
            state = TransportState.FAILED

        with self._lock:
            deliberate = self._closing
        if not deliberate:
            on_state(state)

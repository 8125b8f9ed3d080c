"""Exception taxonomy for the interpretation pipeline."""

from __future__ import annotations


class InterpreterError(Exception):
    """Base class for every error raised by medical_interpreter."""


class SessionConnectionError(InterpreterError):
    """Credential fetch, transport negotiation or connectivity failure.

    Surfaced through the session's error event and ``error`` status. The core
    never retries these automatically.
    """


class ProtocolParseError(InterpreterError, ValueError):
    """An inbound realtime message could not be parsed or had the wrong shape."""


class DetectionError(InterpreterError):
    """A single action matcher failed while processing an utterance."""

    def __init__(self, action_type: str, cause: BaseException) -> None:
        super().__init__(f"{action_type} matcher failed: {cause}")
        self.action_type = action_type
        self.cause = cause


class DeliveryError(InterpreterError):
    """A webhook could not be delivered (network, timeout or non-2xx)."""

    def __init__(self, message: str, reason: str | None = None) -> None:
        super().__init__(message)
        self.reason = reason

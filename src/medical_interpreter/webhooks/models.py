"""Webhook payload, delivery result and per-action attempt state."""

from __future__ import annotations

import threading
from datetime import datetime, timezone
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr

from ..errors import DeliveryError

DeliveryStatus = Literal["pending", "sent", "failed"]
FailureReason = Literal["timeout", "http_status", "network"]

ACTION_DETECTED_EVENT = "medical.action.detected"
ACTION_TEST_EVENT = "medical.action.test"


def iso_timestamp(moment: datetime | None = None) -> str:
    """UTC timestamp with millisecond precision and a ``Z`` suffix."""
    moment = (moment or datetime.now(timezone.utc)).astimezone(timezone.utc)
    return moment.strftime("%Y-%m-%dT%H:%M:%S.") + f"{moment.microsecond // 1000:03d}Z"


class WebhookAction(BaseModel):
    id: str
    type: str
    details: dict[str, Any]
    confidence: float


class WebhookConversation(BaseModel):
    id: str


class WebhookPayload(BaseModel):
    """Body of a ``medical.action.detected`` notification."""

    event: str = ACTION_DETECTED_EVENT
    action: WebhookAction
    conversation: WebhookConversation
    timestamp: str = Field(default_factory=iso_timestamp)


class DeliveryResult(BaseModel):
    """Outcome of one HTTP attempt."""

    success: bool
    response: Any = None
    error: str | None = None
    reason: FailureReason | None = None
    status_code: int | None = None


class WebhookAttempt(BaseModel):
    """Delivery state for one action. Terminal once ``sent`` or ``failed``."""

    url: str
    payload: str | None = None
    signature: str | None = None
    attempts: int = 0
    status: DeliveryStatus = "pending"
    last_response: Any = None
    last_error: str | None = None
    last_reason: FailureReason | None = None
    last_attempt_at: datetime | None = None

    _lock: threading.Lock = PrivateAttr(default_factory=threading.Lock)

    @property
    def lock(self) -> threading.Lock:
        return self._lock

    @property
    def is_terminal(self) -> bool:
        return self.status != "pending"

    def raise_for_failure(self) -> None:
        """Raise ``DeliveryError`` if delivery has ultimately failed."""
        if self.status == "failed":
            raise DeliveryError(
                f"Webhook to {self.url} failed after {self.attempts} attempt(s): {self.last_error}",
                reason=self.last_reason,
            )

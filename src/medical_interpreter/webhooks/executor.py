"""Single-attempt, signed webhook delivery over HTTP."""

from __future__ import annotations

import json
import logging
from collections.abc import Callable
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

import requests

from .models import (
    ACTION_DETECTED_EVENT,
    ACTION_TEST_EVENT,
    DeliveryResult,
    WebhookAction,
    WebhookConversation,
    WebhookPayload,
    iso_timestamp,
)
from .signing import sign_payload

if TYPE_CHECKING:
    from ..actions.models import ActionRecord

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_S = 30.0


def serialize_payload(payload: dict[str, Any]) -> str:
    """Compact JSON; the exact bytes that are signed and sent."""
    return json.dumps(payload, separators=(",", ":"), ensure_ascii=False)


class WebhookExecutor:
    """POST signed ``medical.action.detected`` notifications.

    Each call to ``deliver`` is exactly one HTTP attempt; retrying is the
    queue's job.
    """

    def __init__(
        self,
        secret: str,
        timeout: float = DEFAULT_TIMEOUT_S,
        session: requests.Session | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._secret = secret
        self._timeout = timeout
        self._session = session or requests.Session()
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def build_payload(self, record: ActionRecord) -> dict[str, Any]:
        payload = WebhookPayload(
            event=ACTION_DETECTED_EVENT,
            action=WebhookAction(
                id=record.id,
                type=record.type,
                details=record.details_payload(),
                confidence=record.action.confidence,
            ),
            conversation=WebhookConversation(id=record.conversation_id),
            timestamp=iso_timestamp(self._clock()),
        )
        return payload.model_dump()

    def deliver(self, record: ActionRecord, url: str) -> tuple[DeliveryResult, str, str]:
        """Send one signed attempt for ``record``.

        Returns:
            ``(result, body, signature)`` where ``body`` is the exact JSON
            text that was signed and posted.
        """
        payload = self.build_payload(record)
        body = serialize_payload(payload)
        signature = sign_payload(body, self._secret)
        headers = {
            "Content-Type": "application/json",
            "X-Webhook-Signature": signature,
            "X-Webhook-Event": ACTION_DETECTED_EVENT,
            "X-Webhook-Timestamp": payload["timestamp"],
        }
        result = self._post(url, body, headers)
        return result, body, signature

    def send_test(self, url: str, payload: dict[str, Any] | None = None) -> DeliveryResult:
        """Send an unsigned ``medical.action.test`` ping to check a receiver."""
        body = serialize_payload({
            "event": ACTION_TEST_EVENT,
            "timestamp": iso_timestamp(self._clock()),
            **(payload or {}),
        })
        headers = {
            "Content-Type": "application/json",
            "X-Webhook-Event": ACTION_TEST_EVENT,
        }
        return self._post(url, body, headers)

    def _post(self, url: str, body: str, headers: dict[str, str]) -> DeliveryResult:
        try:
            response = self._session.post(url, data=body.encode("utf-8"), headers=headers, timeout=self._timeout)
        except requests.exceptions.Timeout as exc:
            logger.warning("Webhook to %s timed out after %.1fs", url, self._timeout)
            return DeliveryResult(success=False, error=f"Request timed out: {exc}", reason="timeout")
        except requests.RequestException as exc:
            logger.warning("Webhook to %s failed: %s", url, exc)
            return DeliveryResult(success=False, error=str(exc), reason="network")

        parsed = _parse_body(response)
        if not 200 <= response.status_code < 300:
            return DeliveryResult(
                success=False,
                response=parsed,
                error=f"HTTP {response.status_code}: {response.reason}",
                reason="http_status",
                status_code=response.status_code,
            )
        logger.debug("Webhook to %s accepted with HTTP %s", url, response.status_code)
        return DeliveryResult(success=True, response=parsed, status_code=response.status_code)


def _parse_body(response: requests.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return {"body": response.text}

"""Retrying webhook delivery with exponential backoff."""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime, timezone
from typing import TYPE_CHECKING

from .executor import WebhookExecutor
from .models import WebhookAttempt
from .scheduler import DelayedTaskScheduler, ThreadingScheduler

if TYPE_CHECKING:
    from ..actions.models import ActionRecord

logger = logging.getLogger(__name__)

DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_BASE_DELAY_S = 2.0

StatusListener = Callable[["ActionRecord", WebhookAttempt], None]


def backoff_delay(attempt: int, base: float = DEFAULT_BASE_DELAY_S) -> float:
    """Delay before retrying after failed attempt number ``attempt`` (1-based)."""
    return base * 2 ** (attempt - 1)


class WebhookQueue:
    """Deliver each submitted action independently, retrying on failure.

    Attempt 1 runs as soon as the scheduler allows; after failed attempt ``n``
    the next one is scheduled ``base_delay * 2**(n-1)`` seconds later. Delivery
    stops at the first success or after ``max_attempts``. Failures are recorded
    on the ``WebhookAttempt``; nothing is raised to the submitter.
    """

    def __init__(
        self,
        executor: WebhookExecutor,
        scheduler: DelayedTaskScheduler | None = None,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        base_delay: float = DEFAULT_BASE_DELAY_S,
        on_status: StatusListener | None = None,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self._executor = executor
        self._scheduler = scheduler or ThreadingScheduler()
        self._max_attempts = max_attempts
        self._base_delay = base_delay
        self._on_status = on_status

    @property
    def scheduler(self) -> DelayedTaskScheduler:
        return self._scheduler

    def submit(self, record: ActionRecord, url: str) -> WebhookAttempt:
        """Start delivering ``record`` to ``url`` and return its live attempt state."""
        attempt = WebhookAttempt(url=url)
        logger.info("Queued webhook for action %s (%s) to %s", record.id, record.type, url)
        self._scheduler.call_later(0, lambda: self._run(record, attempt))
        return attempt

    def _run(self, record: ActionRecord, attempt: WebhookAttempt) -> None:
        with attempt.lock:
            if attempt.is_terminal:
                return
            attempt.attempts += 1
            number = attempt.attempts

        result, body, signature = self._executor.deliver(record, attempt.url)

        with attempt.lock:
            attempt.payload = body
            attempt.signature = signature
            attempt.last_attempt_at = datetime.now(timezone.utc)
            attempt.last_response = result.response
            if result.success:
                attempt.status = "sent"
                attempt.last_error = None
                attempt.last_reason = None
            else:
                attempt.last_error = result.error
                attempt.last_reason = result.reason
                if number >= self._max_attempts:
                    attempt.status = "failed"

        if result.success:
            logger.info("Webhook for action %s delivered on attempt %d", record.id, number)
            self._notify(record, attempt)
        elif attempt.status == "failed":
            logger.error(
                "Webhook for action %s failed after %d attempt(s): %s",
                record.id, number, result.error,
            )
            self._notify(record, attempt)
        else:
            delay = backoff_delay(number, self._base_delay)
            logger.warning(
                "Webhook attempt %d for action %s failed (%s); retrying in %.1fs",
                number, record.id, result.error, delay,
            )
            self._scheduler.call_later(delay, lambda: self._run(record, attempt))

    def _notify(self, record: ActionRecord, attempt: WebhookAttempt) -> None:
        if self._on_status is None:
            return
        try:
            self._on_status(record, attempt)
        except Exception:  # noqa: BLE001
            logger.exception("Webhook status listener failed for action %s", record.id)

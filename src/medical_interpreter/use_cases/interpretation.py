"""Live interpretation use case.

Listens to a realtime session, runs the action detector on every utterance,
and delivers clinician-validated actions to a webhook receiver.
"""

from __future__ import annotations

import logging
import threading
import uuid
from collections.abc import Callable
from datetime import datetime, timezone

from ..actions.detector import ActionDetector
from ..actions.models import ActionContext, ActionRecord
from ..realtime.events import UtteranceProduced
from ..realtime.models import Utterance
from ..realtime.session import SessionConnection
from ..webhooks.queue import WebhookQueue

logger = logging.getLogger(__name__)


class InterpretationPipeline:
    """Session utterances → detected actions → validated webhook delivery."""

    def __init__(
        self,
        session: SessionConnection,
        detector: ActionDetector | None = None,
        on_actions: Callable[[list[ActionRecord]], None] | None = None,
        webhook_queue: WebhookQueue | None = None,
        conversation_id: str | None = None,
    ) -> None:
        self.conversation_id = conversation_id or uuid.uuid4().hex
        self._detector = detector or ActionDetector()
        self._on_actions = on_actions
        self._queue = webhook_queue
        self._records: dict[str, ActionRecord] = {}
        self._lock = threading.Lock()
        self._unsubscribe = session.events.subscribe(UtteranceProduced, self._on_utterance)

    @property
    def records(self) -> list[ActionRecord]:
        with self._lock:
            return list(self._records.values())

    def get(self, action_id: str) -> ActionRecord | None:
        with self._lock:
            return self._records.get(action_id)

    def process_utterance(self, utterance: Utterance) -> list[ActionRecord]:
        """Detect actions in one utterance and record them."""
        context = ActionContext(
            conversation_id=self.conversation_id,
            utterance_id=f"{self.conversation_id}-u{utterance.sequence_number}",
        )
        actions = self._detector.detect(utterance.original_text, utterance.role, context)
        records = [
            ActionRecord(
                id=uuid.uuid4().hex,
                conversation_id=context.conversation_id,
                utterance_id=context.utterance_id,
                action=action,
            )
            for action in actions
        ]
        with self._lock:
            for record in records:
                self._records[record.id] = record

        if records and self._on_actions is not None:
            self._on_actions(records)
        return records

    def validate(self, action_id: str, webhook_url: str | None = None) -> ActionRecord:
        """Mark an action as clinician-validated and optionally deliver it.

        Raises:
            KeyError: if ``action_id`` is unknown.
            ValueError: if a webhook URL is given but no queue is configured.
        """
        with self._lock:
            record = self._records[action_id]
            if webhook_url is not None and self._queue is None:
                raise ValueError("No webhook queue configured")
            record.validated = True
            record.validated_at = datetime.now(timezone.utc)

        if webhook_url is not None:
            record.webhook = self._queue.submit(record, webhook_url)
        logger.info("Action %s (%s) validated", record.id, record.type)
        return record

    def close(self) -> None:
        """Stop listening to the session."""
        self._unsubscribe()

    def _on_utterance(self, event: UtteranceProduced) -> None:
        self.process_utterance(event.utterance)

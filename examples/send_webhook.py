"""Example: sign and (mock-)deliver a validated action with retries.

Usage:
    python examples/send_webhook.py
"""

from __future__ import annotations

import sys
from pathlib import Path
from unittest.mock import MagicMock

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from medical_interpreter.actions.detector import ActionDetector
from medical_interpreter.actions.models import ActionRecord
from medical_interpreter.webhooks import ManualScheduler, WebhookExecutor, WebhookQueue, verify_signature

SECRET = "demo-secret"


def _response(status: int) -> MagicMock:
    response = MagicMock()
    response.ok = 200 <= status < 300
    response.status_code = status
    response.reason = "OK" if response.ok else "Service Unavailable"
    response.json.return_value = {"received": response.ok}
    return response


def main() -> None:
    print("=== Webhook Delivery Demo (mock mode) ===\n")

    action = ActionDetector().detect("Let's order a CBC today.", "clinician")[0]
    record = ActionRecord(id="act-001", conversation_id="conv-001", utterance_id="conv-001-u1", action=action)

    # Receiver is down for the first attempt, then recovers
    session = MagicMock()
    session.post.side_effect = [_response(503), _response(200)]

    scheduler = ManualScheduler()
    queue = WebhookQueue(WebhookExecutor(SECRET, session=session), scheduler=scheduler)
    attempt = queue.submit(record, "https://receiver.example/hooks")

    scheduler.run_until_idle()

    print(f"Status:        {attempt.status}")
    print(f"Attempts:      {attempt.attempts}")
    print(f"Retry delays:  {scheduler.delays}")
    print(f"Payload:       {attempt.payload}")
    print(f"Signature:     {attempt.signature}")
    print(f"Verifies:      {verify_signature(attempt.signature, attempt.payload, SECRET)}")


if __name__ == "__main__":
    main()

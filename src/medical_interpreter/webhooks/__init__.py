from .executor import WebhookExecutor
from .models import DeliveryResult, WebhookAttempt, WebhookPayload
from .queue import WebhookQueue, backoff_delay
from .scheduler import DelayedTaskScheduler, ManualScheduler, ThreadingScheduler
from .signing import sign_payload, verify_signature

__all__ = [
    "WebhookExecutor",
    "DeliveryResult",
    "WebhookAttempt",
    "WebhookPayload",
    "WebhookQueue",
    "backoff_delay",
    "DelayedTaskScheduler",
    "ManualScheduler",
    "ThreadingScheduler",
    "sign_payload",
    "verify_signature",
]

from .detector import ActionDetector, classify_urgency
from .models import ActionContext, ActionRecord, DetectedAction, detected_action_adapter

__all__ = [
    "ActionDetector",
    "classify_urgency",
    "ActionContext",
    "ActionRecord",
    "DetectedAction",
    "detected_action_adapter",
]

"""Example: run the action detector over a scripted clinician dialogue.

Usage:
    python examples/detect_actions.py
"""

from __future__ import annotations

import json
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from medical_interpreter.actions.detector import ActionDetector
from medical_interpreter.actions.models import ActionContext


SAMPLE_DIALOGUE = [
    ("clinician", "I'm prescribing amoxicillin 500 mg three times a day for 10 days."),
    ("patient", "Should I take the amoxicillin with food?"),
    ("clinician", "Let's order a CBC and a lipid panel today."),
    ("clinician", "I'm referring you to a cardiologist for your chest pain."),
    ("clinician", "We need an x-ray of the chest right away."),
    ("clinician", "Come back in two weeks so we can check your progress."),
]


def main() -> None:
    print("=== Action Detection Demo ===\n")
    detector = ActionDetector()

    for seq, (role, text) in enumerate(SAMPLE_DIALOGUE, start=1):
        context = ActionContext(conversation_id="demo", utterance_id=f"demo-u{seq}")
        actions = detector.detect(text, role, context)
        print(f"[{role}] {text}")
        if not actions:
            print("    (no actions)\n")
            continue
        for action in actions:
            details = action.details.model_dump(by_alias=True, exclude_none=True)
            print(f"    -> {action.type} ({action.confidence:.2f}, {action.category}): {json.dumps(details)}")
        print()


if __name__ == "__main__":
    main()

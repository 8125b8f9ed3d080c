"""HMAC-SHA256 signatures for webhook bodies."""

from __future__ import annotations

import hashlib
import hmac

SIGNATURE_PREFIX = "sha256="


def _to_bytes(value: str | bytes) -> bytes:
    return value.encode("utf-8") if isinstance(value, str) else value


def sign_payload(body: str | bytes, secret: str | bytes) -> str:
    """Return ``sha256=<hex digest>`` for ``body`` keyed by ``secret``."""
    digest = hmac.new(_to_bytes(secret), _to_bytes(body), hashlib.sha256).hexdigest()
    return f"{SIGNATURE_PREFIX}{digest}"


def verify_signature(signature: str, body: str | bytes, secret: str | bytes) -> bool:
    """Check a received ``X-Webhook-Signature`` header in constant time."""
    if not signature or not signature.startswith(SIGNATURE_PREFIX):
        return False
    return hmac.compare_digest(signature, sign_payload(body, secret))

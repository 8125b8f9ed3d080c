"""Skip guards for live tests.

Every live test that requires external credentials is guarded by a pytest.mark.skipif
that checks for the required environment variable. Tests silently skip when
credentials are absent; they never fail due to missing config.

Required environment variables:
  OPENAI_API_KEY           Realtime provider API key (creates real sessions)
  LIVE_WEBHOOK_URL         Optional receiver URL for a real webhook round trip

Set them in your shell before running:
  export OPENAI_API_KEY=your_key_here
  pytest tests/live -v -m live
"""

from __future__ import annotations

import os
import pytest


def _skip_unless(env_var: str, reason: str | None = None):
    """Return a pytest.mark.skipif that skips when env_var is not set."""
    msg = reason or f"Set {env_var} to run this test"
    return pytest.mark.skipif(not os.environ.get(env_var), reason=msg)


# Convenience marks: import these in live test files
skip_no_openai  = _skip_unless("OPENAI_API_KEY",   "Set OPENAI_API_KEY to run live realtime tests")
skip_no_webhook = _skip_unless("LIVE_WEBHOOK_URL", "Set LIVE_WEBHOOK_URL to run a live webhook delivery")


@pytest.fixture(scope="session")
def openai_api_key() -> str:
    key = os.environ.get("OPENAI_API_KEY", "")
    if not key:
        pytest.skip("OPENAI_API_KEY not set")
    return key


@pytest.fixture(scope="session")
def live_webhook_url() -> str:
    url = os.environ.get("LIVE_WEBHOOK_URL", "")
    if not url:
        pytest.skip("LIVE_WEBHOOK_URL not set")
    return url

"""Environment-driven settings and logging setup.

Every component also accepts explicit constructor arguments; these settings
only supply defaults read from the process environment (and an optional
``.env`` file).
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, Field

from .realtime.transport import DEFAULT_REALTIME_MODEL, DEFAULT_REALTIME_URL


_DEFAULT_TOKEN_URL = "http://localhost:3000/api/session"

LOG_FORMAT = "%(asctime)s | %(name)s | %(levelname)s | %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Third-party loggers that are noisy at INFO.
_QUIET_LOGGERS = ("urllib3", "urllib3.connectionpool", "websockets", "websockets.client")


class InterpreterSettings(BaseModel):
    """Runtime configuration for sessions, credentials and webhooks."""

    openai_api_key: str = Field(default="", description="Provider API key (server side only)")
    token_url: str = Field(default=_DEFAULT_TOKEN_URL, description="App endpoint issuing session credentials")
    realtime_url: str = Field(default=DEFAULT_REALTIME_URL)
    realtime_model: str = Field(default=DEFAULT_REALTIME_MODEL)
    webhook_secret: str = Field(default="default-webhook-secret")
    webhook_timeout_s: float = Field(default=30.0, gt=0)
    webhook_max_attempts: int = Field(default=3, ge=1)
    webhook_base_delay_s: float = Field(default=2.0, ge=0)
    log_level: str = Field(default="INFO")

    @classmethod
    def from_env(cls, env_file: str | Path | None = None) -> "InterpreterSettings":
        """Build settings from environment variables.

        Args:
            env_file: Optional path to a ``.env`` file. Variables already set
                      in the process environment take precedence.
        """
        load_dotenv(env_file)
        env = os.environ
        return cls(
            openai_api_key=env.get("OPENAI_API_KEY", ""),
            token_url=env.get("REALTIME_TOKEN_URL", _DEFAULT_TOKEN_URL),
            realtime_url=env.get("OPENAI_REALTIME_URL", DEFAULT_REALTIME_URL),
            realtime_model=env.get("OPENAI_REALTIME_MODEL", DEFAULT_REALTIME_MODEL),
            webhook_secret=env.get("WEBHOOK_SECRET", "default-webhook-secret"),
            webhook_timeout_s=_ms_to_seconds(env.get("WEBHOOK_TIMEOUT_MS"), 30.0),
            webhook_max_attempts=int(env.get("WEBHOOK_MAX_ATTEMPTS", "3")),
            webhook_base_delay_s=_ms_to_seconds(env.get("WEBHOOK_BASE_DELAY_MS"), 2.0),
            log_level=env.get("LOG_LEVEL", "INFO"),
        )


def configure_logging(level: str | int = logging.INFO) -> None:
    """Configure root logging for applications embedding the pipeline."""
    logging.basicConfig(level=level, format=LOG_FORMAT, datefmt=LOG_DATE_FORMAT)
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def _ms_to_seconds(raw: str | None, default: float) -> float:
    if raw is None or not raw.strip():
        return default
    return int(raw) / 1000.0

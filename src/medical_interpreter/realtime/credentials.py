"""Short-lived realtime credentials.

Two providers:
  - ``TokenEndpointClient`` asks the application's own session endpoint for a
    credential (client side; the API key never leaves the server).
  - ``RealtimeSessionIssuer`` is that endpoint's server-side half: it creates a
    provider session configured for medical interpretation and returns the
    ephemeral client secret.
"""

from __future__ import annotations

import logging
import os
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone

import requests
from pydantic import BaseModel, Field

from ..errors import SessionConnectionError
from .models import Language, SessionConfig
from .transport import DEFAULT_REALTIME_MODEL

logger = logging.getLogger(__name__)

_OPENAI_SESSIONS_URL = "https://api.openai.com/v1/realtime/sessions"
_CREDENTIAL_TTL = timedelta(seconds=60)

LANGUAGE_NAMES: dict[str, str] = {"en": "English", "es": "Spanish"}


class SessionCredential(BaseModel):
    token: str = Field(..., min_length=1)
    session_id: str | None = None
    expires_at: datetime | None = None
    primary_language: Language = "en"
    secondary_language: Language = "es"


class CredentialProvider(ABC):
    """Source of short-lived transport credentials."""

    def __init__(self, session: requests.Session | None = None, timeout: float = 20.0) -> None:
        self._session = session or requests.Session()
        self._timeout = timeout

    @abstractmethod
    def fetch(self, config: SessionConfig) -> SessionCredential:
        """Obtain a credential for one session.

        Raises:
            SessionConnectionError: if the credential cannot be obtained.
        """


class TokenEndpointClient(CredentialProvider):
    """Fetch credentials from the application's session endpoint."""

    def __init__(
        self,
        token_url: str,
        session: requests.Session | None = None,
        timeout: float = 20.0,
    ) -> None:
        super().__init__(session, timeout)
        self._token_url = token_url

    def fetch(self, config: SessionConfig) -> SessionCredential:
        try:
            response = self._session.post(
                self._token_url,
                json={
                    "primaryLanguage": config.primary_language,
                    "secondaryLanguage": config.secondary_language,
                },
                timeout=self._timeout,
            )
            response.raise_for_status()
            body = response.json()
        except (requests.RequestException, ValueError) as exc:
            raise SessionConnectionError(f"Failed to get session token: {exc}") from exc

        data = body.get("data") if isinstance(body, dict) else None
        if not isinstance(data, dict) or not data.get("token"):
            raise SessionConnectionError("Invalid session response")

        languages = data.get("languages") or {}
        return SessionCredential(
            token=data["token"],
            session_id=data.get("sessionId"),
            expires_at=data.get("expiresAt"),
            primary_language=languages.get("primary", config.primary_language),
            secondary_language=languages.get("secondary", config.secondary_language),
        )


def build_interpreter_instructions(primary: str, secondary: str) -> str:
    """System instructions for the realtime model acting as a medical interpreter."""
    primary_name = LANGUAGE_NAMES.get(primary, primary)
    secondary_name = LANGUAGE_NAMES.get(secondary, secondary)
    return (
        f"You are a medical interpreter facilitating communication between a "
        f"{primary_name}-speaking healthcare provider and a {secondary_name}-speaking patient.\n\n"
        "CRITICAL RULES:\n"
        "1. Translate ONLY what is spoken - no additions, notes, or commentary.\n"
        "2. NEVER translate medical terminology - keep medication names, dosages, "
        "and medical terms in their original form.\n"
        "3. Preserve ALL numbers, measurements, and time periods exactly as stated.\n"
        "4. Keep medical abbreviations unchanged (CBC, MRI, CT, mg, ml, etc.).\n\n"
        "Translation process:\n"
        "1. Identify the speaker (doctor or patient) based on context.\n"
        "2. Translate conversational parts to the other language.\n"
        "3. Keep ALL medical terms in their original form.\n"
        "4. Speak only the translation itself.\n\n"
        'If someone says "repeat that" or "can you say that again", repeat the last translation.\n'
        "Always maintain a professional, neutral tone and ensure medical accuracy."
    )


def build_session_request(config: SessionConfig, model: str = DEFAULT_REALTIME_MODEL) -> dict:
    """Body for the provider's session-creation endpoint."""
    return {
        "model": model,
        "voice": "nova" if config.primary_language == "es" else "verse",
        "instructions": build_interpreter_instructions(
            config.primary_language, config.secondary_language
        ),
        "input_audio_transcription": {"model": "whisper-1"},
        "turn_detection": {
            "type": "server_vad",
            "threshold": 0.5,
            "prefix_padding_ms": 300,
            "silence_duration_ms": 500,
        },
    }


class RealtimeSessionIssuer(CredentialProvider):
    """Create provider sessions directly with the server-side API key."""

    def __init__(
        self,
        api_key: str | None = None,
        model: str = DEFAULT_REALTIME_MODEL,
        sessions_url: str = _OPENAI_SESSIONS_URL,
        session: requests.Session | None = None,
        timeout: float = 20.0,
    ) -> None:
        super().__init__(session, timeout)
        self._api_key = api_key or os.environ.get("OPENAI_API_KEY", "")
        self._model = model
        self._sessions_url = sessions_url

    def fetch(self, config: SessionConfig) -> SessionCredential:
        if not self._api_key:
            raise SessionConnectionError("OPENAI_API_KEY not configured")

        try:
            response = self._session.post(
                self._sessions_url,
                json=build_session_request(config, self._model),
                headers={
                    "Authorization": f"Bearer {self._api_key}",
                    "Content-Type": "application/json",
                },
                timeout=self._timeout,
            )
        except requests.RequestException as exc:
            raise SessionConnectionError(f"Session creation failed: {exc}") from exc

        if not response.ok:
            logger.error("Realtime session API error %s: %s", response.status_code, response.text)
            raise SessionConnectionError(f"Realtime session API error: {response.status_code}")

        try:
            body = response.json()
        except ValueError as exc:
            raise SessionConnectionError(f"Invalid session response: {exc}") from exc
        if not isinstance(body, dict):
            raise SessionConnectionError("Invalid session response")

        client_secret = body.get("client_secret")
        secret = client_secret.get("value") if isinstance(client_secret, dict) else None
        if not secret:
            raise SessionConnectionError("Missing client_secret in session response")

        return SessionCredential(
            token=secret,
            session_id=body.get("id"),
            expires_at=datetime.now(timezone.utc) + _CREDENTIAL_TTL,
            primary_language=config.primary_language,
            secondary_language=config.secondary_language,
        )

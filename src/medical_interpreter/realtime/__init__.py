from .audio import AudioSource, WavFileAudioSource
from .bus import EventBus
from .credentials import CredentialProvider, RealtimeSessionIssuer, TokenEndpointClient
from .events import (
    ErrorOccurred,
    SpeechStarted,
    SpeechStopped,
    StatusChanged,
    TranslationProduced,
    UtteranceProduced,
)
from .models import ConnectionStatus, SessionConfig, Translation, Utterance
from .normalizer import EventNormalizer
from .session import SessionConnection
from .transport import RealtimeTransport, WebSocketTransport

__all__ = [
    "AudioSource",
    "WavFileAudioSource",
    "EventBus",
    "CredentialProvider",
    "RealtimeSessionIssuer",
    "TokenEndpointClient",
    "ErrorOccurred",
    "SpeechStarted",
    "SpeechStopped",
    "StatusChanged",
    "TranslationProduced",
    "UtteranceProduced",
    "ConnectionStatus",
    "SessionConfig",
    "Translation",
    "Utterance",
    "EventNormalizer",
    "SessionConnection",
    "RealtimeTransport",
    "WebSocketTransport",
]

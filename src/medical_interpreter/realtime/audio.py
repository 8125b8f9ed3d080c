"""Local audio sources streamed into a realtime session."""

from __future__ import annotations

import base64
import logging
import threading
import time
import wave
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterator
from pathlib import Path

logger = logging.getLogger(__name__)


class AudioSource(ABC):
    """A finite or endless stream of mono PCM16 chunks."""

    @abstractmethod
    def chunks(self) -> Iterator[bytes]: ...

    def close(self) -> None:
        """Release the underlying device or file."""


class WavFileAudioSource(AudioSource):
    """Stream a mono 16-bit WAV file in fixed-duration chunks."""

    def __init__(self, path: str | Path, chunk_ms: int = 100, paced: bool = False) -> None:
        self.path = Path(path)
        self.chunk_ms = chunk_ms
        self.paced = paced

    def chunks(self) -> Iterator[bytes]:
        with wave.open(str(self.path), "rb") as wav:
            if wav.getnchannels() != 1 or wav.getsampwidth() != 2:
                raise ValueError(f"{self.path} must be mono 16-bit PCM")
            frames_per_chunk = max(1, wav.getframerate() * self.chunk_ms // 1000)
            while True:
                data = wav.readframes(frames_per_chunk)
                if not data:
                    return
                yield data
                if self.paced:
                    time.sleep(self.chunk_ms / 1000.0)


def audio_append_event(chunk: bytes) -> dict:
    return {"type": "input_audio_buffer.append", "audio": base64.b64encode(chunk).decode("ascii")}


class AudioPump:
    """Feed an AudioSource into a session on a background thread."""

    def __init__(self, source: AudioSource, send: Callable[[dict], None]) -> None:
        self._source = source
        self._send = send
        self._stop = threading.Event()
        self._thread = threading.Thread(target=self._run, name="audio-pump", daemon=True)

    def start(self) -> None:
        self._thread.start()

    def stop(self, timeout: float = 2.0) -> None:
        self._stop.set()
        if self._thread.is_alive() and self._thread is not threading.current_thread():
            self._thread.join(timeout=timeout)
        self._source.close()

    @property
    def running(self) -> bool:
        return self._thread.is_alive()

    def _run(self) -> None:
        sent = 0
        try:
            for chunk in self._source.chunks():
                if self._stop.is_set():
                    break
                self._send(audio_append_event(chunk))
                sent += 1
        except Exception:  # noqa: BLE001
            logger.exception("Audio source failed after %d chunks", sent)
        else:
            logger.debug("Audio source finished after %d chunks", sent)

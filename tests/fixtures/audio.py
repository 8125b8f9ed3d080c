"""PCM16 WAV generation for audio source tests.

Files written here have correct RIFF headers and real sample data, so
``WavFileAudioSource`` reads them exactly as it would a microphone capture.
"""

from __future__ import annotations

import math
import struct
import wave
from collections.abc import Sequence
from pathlib import Path

SAMPLE_RATE = 16000


def write_pcm16_wav(
    path: Path,
    samples: Sequence[int],
    sample_rate: int = SAMPLE_RATE,
    channels: int = 1,
) -> Path:
    """Write interleaved signed 16-bit samples to ``path``."""
    with wave.open(str(path), "w") as wav:
        wav.setnchannels(channels)
        wav.setsampwidth(2)
        wav.setframerate(sample_rate)
        wav.writeframes(struct.pack(f"<{len(samples)}h", *samples))
    return path


def generate_sine_wav(
    path: Path,
    duration_seconds: float = 1.0,
    frequency_hz: float = 440.0,
    sample_rate: int = SAMPLE_RATE,
    amplitude: float = 0.5,
) -> Path:
    """Mono tone; 1 s at 16 kHz is 32000 bytes of PCM, ten 100 ms chunks."""
    n_samples = int(duration_seconds * sample_rate)
    peak = int(32767 * amplitude)
    samples = [
        int(peak * math.sin(2 * math.pi * frequency_hz * i / sample_rate))
        for i in range(n_samples)
    ]
    return write_pcm16_wav(path, samples, sample_rate)


def generate_silence_wav(
    path: Path,
    duration_seconds: float = 1.0,
    sample_rate: int = SAMPLE_RATE,
) -> Path:
    return write_pcm16_wav(path, [0] * int(duration_seconds * sample_rate), sample_rate)


def generate_stereo_wav(path: Path, duration_seconds: float = 0.1, sample_rate: int = SAMPLE_RATE) -> Path:
    """Two-channel file; the realtime input buffer only accepts mono."""
    return write_pcm16_wav(path, [0] * int(duration_seconds * sample_rate) * 2, sample_rate, channels=2)


def validate_wav(path: Path) -> dict:
    """Open a WAV file and return its format properties.

    Raises:
        wave.Error: if the file is not a valid WAV.
    """
    with wave.open(str(path), "r") as wav:
        return {
            "channels":     wav.getnchannels(),
            "sample_width": wav.getsampwidth(),
            "frame_rate":   wav.getframerate(),
            "n_frames":     wav.getnframes(),
            "duration_s":   wav.getnframes() / wav.getframerate(),
        }

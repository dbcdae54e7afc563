from __future__ import annotations

import logging
import math
import threading
import wave
from functools import lru_cache
from io import BytesIO

try:
    import winsound  # type: ignore[import-not-found]
except ImportError:  # pragma: no cover - non-Windows platforms use the terminal bell
    winsound = None  # type: ignore[assignment]

logger = logging.getLogger(__name__)

SUCCESS_TONE_HZ = 1800
FAILURE_TONE_HZ = 440


@lru_cache(maxsize=4)
def build_wave_bytes(
    frequency_hz: int = SUCCESS_TONE_HZ,
    duration_ms: int = 140,
    sample_rate: int = 44100,
    amplitude: float = 0.35,
) -> bytes:
    frame_count = int(sample_rate * (duration_ms / 1000.0))
    sine_wave = bytearray()
    for index in range(frame_count):
        value = int(32767 * amplitude * math.sin(2 * math.pi * frequency_hz * index / sample_rate))
        sine_wave.extend(value.to_bytes(2, byteorder="little", signed=True))

    buffer = BytesIO()
    with wave.open(buffer, "wb") as wav_file:
        wav_file.setnchannels(1)
        wav_file.setsampwidth(2)
        wav_file.setframerate(sample_rate)
        wav_file.writeframes(bytes(sine_wave))
    return buffer.getvalue()


def _play_with_winsound(frequency_hz: int, duration_ms: int) -> None:
    try:
        winsound.PlaySound(
            build_wave_bytes(frequency_hz, duration_ms),
            winsound.SND_ASYNC | winsound.SND_MEMORY,
        )
    except RuntimeError:
        winsound.Beep(frequency_hz, duration_ms)


def _play_fallback(repeat: int) -> None:
    print("\a" * repeat, end="", flush=True)


def play_feedback_async(success: bool) -> None:
    """Short high beep for a confirmed check-in, a longer low one for a failure."""

    frequency = SUCCESS_TONE_HZ if success else FAILURE_TONE_HZ
    duration = 140 if success else 320

    def _runner() -> None:
        try:
            if winsound is not None:
                _play_with_winsound(frequency, duration)
            else:
                _play_fallback(1 if success else 2)
        except Exception:
            logger.debug("Feedback sound failed", exc_info=True)

    threading.Thread(target=_runner, daemon=True).start()

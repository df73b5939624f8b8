"""Microphone recording via sounddevice, plus audio file loading."""

from __future__ import annotations

import io
import logging
import mimetypes
import threading
import time
import wave
from pathlib import Path

from ..errors import CaptureError, PermissionDenied, ValidationError
from . import CapturedMedia, read_limited

logger = logging.getLogger(__name__)

# Suffixes that mimetypes misses or files under video/.
_AUDIO_SUFFIXES: dict[str, str] = {
    ".webm": "audio/webm",
    ".ogg": "audio/ogg",
    ".oga": "audio/ogg",
    ".opus": "audio/ogg",
    ".m4a": "audio/mp4",
    ".mp4": "audio/mp4",
    ".mp3": "audio/mpeg",
    ".wav": "audio/wav",
    ".flac": "audio/flac",
    ".aac": "audio/aac",
}


def guess_audio_mime(path: str | Path) -> str:
    suffix = Path(path).suffix.lower()
    if suffix in _AUDIO_SUFFIXES:
        return _AUDIO_SUFFIXES[suffix]
    guessed = mimetypes.guess_type(str(path))[0]
    if guessed and guessed.startswith("audio/"):
        return guessed
    raise ValidationError(f"Unsupported audio file: {Path(path).name}")


def load_audio_file(path: str | Path, *, max_upload_mb: float = 10.0) -> CapturedMedia:
    mime_type = guess_audio_mime(path)
    return CapturedMedia(data=read_limited(path, max_upload_mb), mime_type=mime_type)


def pcm_to_wav(pcm, sample_rate: int, channels: int = 1) -> bytes:
    """Wrap 16-bit PCM samples in a WAV container."""
    buf = io.BytesIO()
    with wave.open(buf, "wb") as wf:
        wf.setnchannels(channels)
        wf.setsampwidth(2)
        wf.setframerate(sample_rate)
        wf.writeframes(pcm.tobytes())
    return buf.getvalue()


class Microphone:
    """Records short clips from an input device."""

    def __init__(
        self, sample_rate: int = 16000, channels: int = 1, device: int | str | None = None
    ) -> None:
        self._sample_rate = sample_rate
        self._channels = channels
        self._device = device

    def record(
        self, seconds: float, stop_event: threading.Event | None = None
    ) -> CapturedMedia:
        """Record up to ``seconds`` of audio, or until ``stop_event`` is set.

        The input stream is closed on every exit path.

        Raises:
            PermissionDenied: If the device cannot be opened.
            CaptureError: If nothing was recorded.
        """
        try:
            import sounddevice as sd
        except ImportError:
            raise ImportError(
                "sounddevice is required: pip install sounddevice"
            ) from None
        import numpy as np

        chunks: list = []

        def callback(indata, frames, time_info, status):
            if status:
                logger.warning("Microphone status: %s", status)
            chunks.append(indata.copy())

        denied = "Microphone access denied or not available."
        try:
            stream = sd.InputStream(
                samplerate=self._sample_rate,
                channels=self._channels,
                dtype="int16",
                device=self._device,
                callback=callback,
            )
        except sd.PortAudioError as e:
            raise PermissionDenied(denied) from e

        try:
            try:
                stream.start()
            except sd.PortAudioError as e:
                raise PermissionDenied(denied) from e
            deadline = time.monotonic() + seconds
            while time.monotonic() < deadline:
                if stop_event is not None and stop_event.is_set():
                    break
                sd.sleep(50)
        finally:
            stream.close()

        if not chunks:
            raise CaptureError("No audio was recorded.")
        pcm = np.concatenate(chunks, axis=0)
        return CapturedMedia(
            data=pcm_to_wav(pcm, self._sample_rate, self._channels),
            mime_type="audio/wav",
        )

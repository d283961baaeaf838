"""
Transcription
==============
Turns an audio file into chronologically ordered, time-bounded text spans.

Two transcribers implement the same ``Transcriber`` interface:

    - ``WhisperTranscriber`` -- OpenAI Whisper, model loaded lazily once.
    - ``StaticTranscriber``  -- returns a fixed span list; a placeholder for
      runs where no speech model is installed, and handy in tests.

Dependencies:
    pip install openai-whisper

Note: Whisper downloads model weights on first use (~461 MB for ``small``).
"""

import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Optional

from mediasync.errors import TranscriptionError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AudioSpan:
    """A single transcribed span.

    Attributes
    ----------
    start : float
        Start time in seconds (inclusive).
    end : float
        End time in seconds (inclusive).
    text : str
        Transcribed text for this span.
    """
    start: float
    end: float
    text: str


class Transcriber(ABC):
    """Audio file -> ordered list of ``AudioSpan``."""

    @abstractmethod
    def transcribe(self, audio_path: str) -> List[AudioSpan]:
        ...

    @abstractmethod
    def name(self) -> str:
        ...


class StaticTranscriber(Transcriber):
    """Return the same spans for every audio file."""

    DEFAULT_SPANS = (
        AudioSpan(0.0, 5.0, "Hello, this is a sample transcription"),
        AudioSpan(5.0, 10.0, "This demonstrates audio processing capabilities"),
    )

    def __init__(self, spans: Optional[Iterable[AudioSpan]] = None):
        self.spans = list(spans) if spans is not None else list(self.DEFAULT_SPANS)

    def transcribe(self, audio_path: str) -> List[AudioSpan]:
        logger.debug("Static transcription for %s (%d spans)", audio_path, len(self.spans))
        return list(self.spans)

    def name(self) -> str:
        return "Static Transcriber"


class WhisperTranscriber(Transcriber):
    """Transcribe audio files using Whisper.

    Usage::

        transcriber = WhisperTranscriber(model_size="small")
        spans = transcriber.transcribe("audio.aac")
        for span in spans:
            print(f"[{span.start:.1f}s - {span.end:.1f}s] {span.text}")

    Parameters
    ----------
    model_size : str
        Whisper model variant: ``"tiny"``, ``"base"``, ``"small"``,
        ``"medium"``, ``"large"``.
    device : str
        PyTorch device string (``"cpu"`` or ``"cuda"``).
    language : str or None
        Force a specific language (e.g. ``"en"``).  ``None`` = auto-detect.
    """

    def __init__(
        self,
        model_size: str = "small",
        device: str = "cpu",
        language: Optional[str] = "en",
    ):
        self.model_size = model_size
        self.device = device
        self.language = language
        self._model = None  # lazy-loaded
        self._lock = threading.Lock()

    def name(self) -> str:
        return f"Whisper ({self.model_size})"

    def transcribe(self, audio_path: str) -> List[AudioSpan]:
        """Transcribe an audio file and return timestamped spans.

        Raises
        ------
        TranscriptionError
            Whisper is unavailable, the model failed to load, or decoding
            the audio failed.
        """
        p = Path(audio_path)
        if not p.exists():
            raise TranscriptionError(f"Audio file not found: {audio_path}")

        model = self._get_model()

        logger.info("Transcribing: %s (model=%s, device=%s)",
                    p.name, self.model_size, self.device)

        # A Whisper model is not safe to run from several threads at once.
        with self._lock:
            try:
                result = model.transcribe(
                    str(p),
                    language=self.language,
                    verbose=None,
                )
            except Exception as exc:
                raise TranscriptionError(f"Transcription failed for {audio_path}: {exc}") from exc

        spans = [
            AudioSpan(start=float(seg["start"]), end=float(seg["end"]), text=seg["text"].strip())
            for seg in result.get("segments", [])
        ]

        logger.info("Transcribed %d spans from %s (%.1f s total)",
                    len(spans), p.name, spans[-1].end if spans else 0.0)
        return spans

    def _get_model(self):
        """Lazy-load the Whisper model."""
        with self._lock:
            if self._model is not None:
                return self._model

            try:
                import whisper
            except ImportError as exc:
                raise TranscriptionError(
                    "openai-whisper is not installed.  "
                    "Install with: pip install openai-whisper"
                ) from exc

            logger.info("Loading Whisper model: %s (this may take a moment on first run)",
                        self.model_size)
            try:
                self._model = whisper.load_model(self.model_size, device=self.device)
            except Exception as exc:
                raise TranscriptionError(
                    f"Failed to load Whisper model '{self.model_size}': {exc}"
                ) from exc
            return self._model


_TRANSCRIBERS = {
    "whisper": WhisperTranscriber,
    "static": StaticTranscriber,
}


def create_transcriber(name: str, **kwargs) -> Transcriber:
    """Instantiate a transcriber by name.

    Unknown names fall back to ``StaticTranscriber`` with a warning.
    """
    key = (name or "").lower()
    cls = _TRANSCRIBERS.get(key)
    if cls is None:
        logger.warning("Unknown transcriber '%s', falling back to static", name)
        return StaticTranscriber()
    if cls is StaticTranscriber:
        return StaticTranscriber()
    return cls(**kwargs)

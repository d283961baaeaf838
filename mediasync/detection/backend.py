"""
Detection Backend Interface
============================
Every object-detection engine implements ``DetectionBackend``:

    load(model_path=None)          -- once per batch run, before any frame
    detect(image_path, timestamp)  -- once per frame, against the loaded state
    name()                         -- diagnostic identifier

The orchestrator only ever talks to this interface, so swapping the mock
for a real model session never touches batch or synchronisation code.

``thread_safe`` tells the batch layer whether one loaded instance may be
shared by several worker threads.  Backends that hold a single inference
request (most model sessions) leave it ``False`` and get one instance per
worker instead.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import List, Optional, Sequence


@dataclass(frozen=True)
class Detection:
    """One labelled, scored bounding box.

    Attributes
    ----------
    label : str
        Class name.
    confidence : float
        Score in ``[0, 1]``.
    bbox : tuple of float
        ``(x1, y1, x2, y2)`` in source-image pixel space.
    """
    label: str
    confidence: float
    bbox: Sequence[float]

    def __post_init__(self):
        if not 0.0 <= self.confidence <= 1.0:
            raise ValueError(f"confidence must be in [0, 1], got {self.confidence}")
        if len(self.bbox) != 4:
            raise ValueError(f"bbox must have 4 values, got {len(self.bbox)}")
        object.__setattr__(self, "bbox", tuple(float(v) for v in self.bbox))


@dataclass(frozen=True)
class FrameAnalysis:
    """Detections for the frame at ``timestamp``."""
    timestamp: float
    detections: List[Detection] = field(default_factory=list)


class DetectionBackend(ABC):

    thread_safe = False

    @abstractmethod
    def load(self, model_path: Optional[str] = None) -> None:
        """Initialise model state.  Raise ``ModelLoadError`` on failure."""

    @abstractmethod
    def detect(self, image_path: str, timestamp: float) -> FrameAnalysis:
        """Analyse one frame.  Raise ``DetectionError`` on failure."""

    @abstractmethod
    def name(self) -> str:
        ...

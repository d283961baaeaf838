"""
Mock Detection Backend
=======================
Deterministic stand-in for a real detector.  Every frame yields a single
detection whose label encodes the frame size, so results are reproducible
and still depend on the decoded image.

Used whenever no model is configured, and as the fallback for unknown
backend names.
"""

import logging
from pathlib import Path
from typing import Optional

from PIL import Image, UnidentifiedImageError

from mediasync.detection.backend import Detection, DetectionBackend, FrameAnalysis
from mediasync.errors import DetectionError

logger = logging.getLogger(__name__)

MOCK_CONFIDENCE = 0.95
MOCK_BBOX = (100.0, 50.0, 200.0, 150.0)


class MockBackend(DetectionBackend):
    """Deterministic mock detector (no model file required)."""

    thread_safe = True

    def __init__(self):
        self._loaded = False

    def load(self, model_path: Optional[str] = None) -> None:
        if model_path:
            logger.info("Mock backend ignores model path %s", model_path)
        self._loaded = True

    def detect(self, image_path: str, timestamp: float) -> FrameAnalysis:
        if not self._loaded:
            raise DetectionError("Model not loaded")

        try:
            with Image.open(Path(image_path)) as img:
                width, height = img.size
        except (OSError, UnidentifiedImageError) as exc:
            raise DetectionError(f"Cannot read frame {image_path}: {exc}") from exc

        x1, y1, x2, y2 = MOCK_BBOX
        bbox = (min(x1, width), min(y1, height), min(x2, width), min(y2, height))

        return FrameAnalysis(
            timestamp=timestamp,
            detections=[Detection(
                label=f"mock_object_{width}x{height}",
                confidence=MOCK_CONFIDENCE,
                bbox=bbox,
            )],
        )

    def name(self) -> str:
        return "Mock ML Backend"

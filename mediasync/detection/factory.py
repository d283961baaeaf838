"""
Backend factory and frame analyzer.

``create_backend`` maps a backend name to an unloaded instance.  An
unrecognised name is not an error: the deterministic mock is substituted
and a warning is logged.
"""

import logging
from typing import Callable, Dict, Optional

from mediasync.detection.backend import DetectionBackend, FrameAnalysis
from mediasync.detection.mock_backend import MockBackend
from mediasync.detection.openvino_backend import OpenVINOBackend

logger = logging.getLogger(__name__)

BACKENDS: Dict[str, Callable[..., DetectionBackend]] = {
    "mock": MockBackend,
    "openvino": OpenVINOBackend,
    "onnx": OpenVINOBackend,
}


def create_backend(backend_type: str, **options) -> DetectionBackend:
    """Instantiate the backend registered under *backend_type*.

    *options* are forwarded to backends that accept them (the mock takes
    none).
    """
    key = (backend_type or "").lower()
    factory = BACKENDS.get(key)
    if factory is None:
        logger.warning("Unknown ML backend '%s', falling back to mock", backend_type)
        return MockBackend()
    if factory is MockBackend:
        return MockBackend()
    return factory(**options)


class FrameAnalyzer:
    """Owns one backend and applies the configured confidence threshold.

    Usage::

        analyzer = FrameAnalyzer("openvino", confidence_threshold=0.5,
                                 device="GPU")
        analyzer.load_model("models/detector.xml")
        analysis = analyzer.process_frame("frames/frame_0000.png", 0.0)
    """

    def __init__(
        self,
        backend_type: str = "mock",
        confidence_threshold: float = 0.0,
        backend: Optional[DetectionBackend] = None,
        **options,
    ):
        self.backend = backend if backend is not None else create_backend(backend_type, **options)
        self.confidence_threshold = confidence_threshold

    def load_model(self, model_path: Optional[str] = None) -> None:
        logger.info("Loading ML model using %s", self.backend.name())
        self.backend.load(model_path)

    def process_frame(self, image_path: str, timestamp: float) -> FrameAnalysis:
        analysis = self.backend.detect(image_path, timestamp)
        if self.confidence_threshold <= 0.0:
            return analysis
        kept = [d for d in analysis.detections if d.confidence >= self.confidence_threshold]
        return FrameAnalysis(timestamp=analysis.timestamp, detections=kept)

    @property
    def thread_safe(self) -> bool:
        return self.backend.thread_safe

    def backend_name(self) -> str:
        return self.backend.name()

"""
OpenVINO Detection Backend
===========================
Runs an SSD-style object-detection model (OpenVINO IR ``.xml`` or ONNX)
through an OpenVINO compiled-model session.

Model contract:
    input   -- one image tensor, NCHW, BGR, float32, fixed H x W
    output  -- ``[1, 1, N, 7]`` rows of
               ``[image_id, class_id, score, x_min, y_min, x_max, y_max]``
               with box corners normalised to ``[0, 1]``

This is the layout of the Open Model Zoo detectors
(``person-detection-*``, ``ssdlite_mobilenet_v2``, ...).  Rows with
``image_id < 0`` terminate the list.

Class names are read from ``labels.txt`` next to the model (one name per
line, line number = class id) when present; otherwise ``class_<id>``.

Installation:
    pip install openvino opencv-python
"""

import logging
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import cv2
import numpy as np

from mediasync.detection.backend import Detection, DetectionBackend, FrameAnalysis
from mediasync.detection.device_manager import DeviceManager
from mediasync.errors import DetectionError, ModelLoadError

logger = logging.getLogger(__name__)

DEFAULT_INPUT_SIZE = (300, 300)  # (height, width)
SUPPORTED_SUFFIXES = {".xml", ".onnx"}


def load_label_map(model_path: Path) -> Dict[int, str]:
    """Read ``labels.txt`` beside *model_path*; empty dict if absent."""
    labels_file = model_path.with_name("labels.txt")
    if not labels_file.exists():
        return {}
    lines = labels_file.read_text(encoding="utf-8").splitlines()
    return {i: line.strip() for i, line in enumerate(lines) if line.strip()}


class OpenVINOBackend(DetectionBackend):
    """
    OpenVINO model-session detector.

    Usage::

        backend = OpenVINOBackend(device="CPU", score_threshold=0.3)
        backend.load("models/ssdlite_mobilenet_v2.xml")
        analysis = backend.detect("frames/frame_0000.png", 0.0)

    Parameters
    ----------
    device : str
        Preferred OpenVINO device (``"CPU"``, ``"GPU"``, ``"NPU"``, ``"AUTO"``).
        Unavailable devices fall back to CPU.
    use_gpu : bool
        Prefer ``"GPU"`` over *device* when one is available.
    score_threshold : float
        Rows scoring below this are discarded before they become detections.
    """

    # A compiled model's implicit infer request serves one call at a time.
    thread_safe = False

    def __init__(self, device: str = "CPU", use_gpu: bool = False, score_threshold: float = 0.0):
        self.device = device
        self.use_gpu = use_gpu
        self.score_threshold = score_threshold
        self._compiled = None
        self._output = None
        self._input_hw: Tuple[int, int] = DEFAULT_INPUT_SIZE
        self._labels: Dict[int, str] = {}
        self._selected_device: Optional[str] = None

    # ------------------------------------------------------------------
    # DetectionBackend
    # ------------------------------------------------------------------

    def load(self, model_path: Optional[str] = None) -> None:
        if not model_path:
            raise ModelLoadError("OpenVINO backend requires a model path")

        path = Path(model_path)
        if not path.exists():
            raise ModelLoadError(f"Model not found: {path}")
        if path.suffix.lower() not in SUPPORTED_SUFFIXES:
            raise ModelLoadError(
                f"Unsupported model format '{path.suffix}'. "
                f"Supported: {sorted(SUPPORTED_SUFFIXES)}"
            )

        try:
            import openvino as ov
        except ImportError as exc:
            raise ModelLoadError(
                "openvino is not installed.  Install: pip install openvino"
            ) from exc

        try:
            core = ov.Core()
            self._selected_device = DeviceManager(core).select_for(self.use_gpu, self.device)
            model = core.read_model(str(path))
            self._compiled = core.compile_model(model, self._selected_device)
        except RuntimeError as exc:
            raise ModelLoadError(f"Failed to compile {path.name}: {exc}") from exc

        self._output = self._compiled.output(0)
        self._input_hw = self._input_size(self._compiled.input(0))
        self._labels = load_label_map(path)

        logger.info(
            "Loaded OpenVINO model %s on %s (input %dx%d, %d labels)",
            path.name, self._selected_device,
            self._input_hw[1], self._input_hw[0], len(self._labels),
        )

    def detect(self, image_path: str, timestamp: float) -> FrameAnalysis:
        if self._compiled is None:
            raise DetectionError("Model not loaded")

        img = cv2.imread(str(image_path))
        if img is None:
            raise DetectionError(f"OpenCV could not read frame: {image_path}")

        height, width = img.shape[:2]
        blob = self._preprocess(img)

        try:
            result = self._compiled([blob])[self._output]
        except RuntimeError as exc:
            raise DetectionError(f"Inference failed on {image_path}: {exc}") from exc

        return FrameAnalysis(
            timestamp=timestamp,
            detections=self.parse_ssd_output(np.asarray(result), width, height),
        )

    def name(self) -> str:
        return "OpenVINO Runtime Backend"

    # ------------------------------------------------------------------
    # Pre/post-processing
    # ------------------------------------------------------------------

    @staticmethod
    def _input_size(port) -> Tuple[int, int]:
        """Read (H, W) from an NCHW input port; default when dynamic."""
        shape = port.get_partial_shape()
        if shape.rank.is_static and len(shape) == 4 and shape[2].is_static and shape[3].is_static:
            return shape[2].get_length(), shape[3].get_length()
        logger.warning("Model input shape is dynamic; resizing frames to %s", DEFAULT_INPUT_SIZE)
        return DEFAULT_INPUT_SIZE

    def _preprocess(self, img: np.ndarray) -> np.ndarray:
        in_h, in_w = self._input_hw
        resized = cv2.resize(img, (in_w, in_h), interpolation=cv2.INTER_LINEAR)
        return resized.transpose(2, 0, 1)[np.newaxis].astype(np.float32)

    def parse_ssd_output(self, raw: np.ndarray, width: int, height: int) -> List[Detection]:
        """Convert ``[1, 1, N, 7]`` rows into pixel-space detections."""
        detections: List[Detection] = []
        for image_id, class_id, score, x1, y1, x2, y2 in raw.reshape(-1, 7):
            if image_id < 0:
                break
            score = float(np.clip(score, 0.0, 1.0))
            if score < self.score_threshold:
                continue
            class_id = int(class_id)
            detections.append(Detection(
                label=self._labels.get(class_id, f"class_{class_id}"),
                confidence=score,
                bbox=(
                    float(np.clip(x1, 0.0, 1.0)) * width,
                    float(np.clip(y1, 0.0, 1.0)) * height,
                    float(np.clip(x2, 0.0, 1.0)) * width,
                    float(np.clip(y2, 0.0, 1.0)) * height,
                ),
            ))
        return detections

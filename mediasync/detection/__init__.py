"""
Detection subpackage -- pluggable per-frame object detection.

Backends:
    MockBackend      -- deterministic, always available
    OpenVINOBackend  -- OpenVINO compiled-model session (IR or ONNX)
"""

from mediasync.detection.backend import Detection, DetectionBackend, FrameAnalysis
from mediasync.detection.device_manager import DeviceManager
from mediasync.detection.factory import BACKENDS, FrameAnalyzer, create_backend
from mediasync.detection.mock_backend import MockBackend
from mediasync.detection.openvino_backend import OpenVINOBackend

import logging

import numpy as np
import pytest

from mediasync.detection import (
    Detection,
    DeviceManager,
    FrameAnalysis,
    FrameAnalyzer,
    MockBackend,
    OpenVINOBackend,
    create_backend,
)
from mediasync.detection.openvino_backend import load_label_map
from mediasync.errors import DetectionError, ModelLoadError
from tests.helpers import write_png


def test_mock_backend_is_deterministic(tmp_path):
    image = write_png(tmp_path / "frame_0000.png", size=(640, 480))
    backend = MockBackend()
    backend.load()
    first = backend.detect(image, 1.25)
    second = backend.detect(image, 1.25)
    assert first == second
    assert first.timestamp == 1.25
    [det] = first.detections
    assert det.label == "mock_object_640x480"
    assert det.confidence == pytest.approx(0.95)
    assert det.bbox == (100.0, 50.0, 200.0, 150.0)


def test_mock_bbox_stays_inside_small_frames(tmp_path):
    image = write_png(tmp_path / "tiny.png", size=(64, 48))
    backend = MockBackend()
    backend.load()
    [det] = backend.detect(image, 0.0).detections
    x1, y1, x2, y2 = det.bbox
    assert x2 <= 64 and y2 <= 48


def test_mock_requires_load(tmp_path):
    image = write_png(tmp_path / "f.png")
    with pytest.raises(DetectionError):
        MockBackend().detect(image, 0.0)


def test_mock_unreadable_frame_is_detection_error(tmp_path):
    bogus = tmp_path / "not_an_image.png"
    bogus.write_text("nope")
    backend = MockBackend()
    backend.load()
    with pytest.raises(DetectionError):
        backend.detect(str(bogus), 0.0)


def test_unknown_backend_falls_back_to_mock(caplog):
    with caplog.at_level(logging.WARNING):
        backend = create_backend("foo")
    assert isinstance(backend, MockBackend)
    assert backend.name() == "Mock ML Backend"
    assert "Unknown ML backend 'foo'" in caplog.text


def test_backend_names_are_case_insensitive():
    assert isinstance(create_backend("MOCK"), MockBackend)
    backend = create_backend("OpenVINO", device="GPU")
    assert isinstance(backend, OpenVINOBackend)
    assert backend.device == "GPU"


def test_onnx_is_an_alias_for_openvino():
    backend = create_backend("onnx", device="CPU", use_gpu=True)
    assert isinstance(backend, OpenVINOBackend)
    assert backend.use_gpu is True


def test_detection_rejects_out_of_range_confidence():
    with pytest.raises(ValueError):
        Detection("x", 1.5, (0, 0, 1, 1))
    with pytest.raises(ValueError):
        Detection("x", 0.5, (0, 0, 1))


class ScoresBackend(MockBackend):
    def detect(self, image_path, timestamp):
        return FrameAnalysis(timestamp, [
            Detection("low", 0.2, (0, 0, 1, 1)),
            Detection("high", 0.8, (0, 0, 1, 1)),
        ])


def test_analyzer_applies_confidence_threshold():
    analyzer = FrameAnalyzer(backend=ScoresBackend(), confidence_threshold=0.5)
    analyzer.load_model()
    analysis = analyzer.process_frame("unused.png", 3.0)
    assert [d.label for d in analysis.detections] == ["high"]
    assert analysis.timestamp == 3.0
    assert analyzer.backend_name() == "Mock ML Backend"


def test_openvino_requires_model_path():
    with pytest.raises(ModelLoadError):
        OpenVINOBackend().load(None)


def test_openvino_missing_or_unsupported_model(tmp_path):
    with pytest.raises(ModelLoadError):
        OpenVINOBackend().load(str(tmp_path / "missing.xml"))
    weird = tmp_path / "model.pt"
    weird.write_bytes(b"")
    with pytest.raises(ModelLoadError):
        OpenVINOBackend().load(str(weird))


def test_openvino_detect_before_load_fails(tmp_path):
    with pytest.raises(DetectionError):
        OpenVINOBackend().detect(write_png(tmp_path / "f.png"), 0.0)


def test_openvino_parses_ssd_rows_into_pixel_boxes():
    backend = OpenVINOBackend(score_threshold=0.3)
    backend._labels = {1: "person"}
    raw = np.array([[[
        [0, 1, 0.9, 0.1, 0.2, 0.5, 0.6],
        [0, 2, 0.1, 0.0, 0.0, 1.0, 1.0],   # below threshold
        [0, 3, 0.7, -0.1, 0.0, 1.2, 0.5],  # clipped to the frame
        [-1, 0, 0.0, 0.0, 0.0, 0.0, 0.0],  # end marker
        [0, 1, 0.99, 0.0, 0.0, 1.0, 1.0],  # ignored after the marker
    ]]], dtype=np.float32)

    dets = backend.parse_ssd_output(raw, width=200, height=100)

    assert [d.label for d in dets] == ["person", "class_3"]
    assert dets[0].bbox == pytest.approx((20.0, 20.0, 100.0, 60.0))
    assert dets[1].bbox == pytest.approx((0.0, 0.0, 200.0, 50.0))
    assert dets[0].confidence == pytest.approx(0.9)


def test_label_map_read_from_model_directory(tmp_path):
    model = tmp_path / "detector.xml"
    (tmp_path / "labels.txt").write_text("background\nperson\n\ncar\n")
    assert load_label_map(model) == {0: "background", 1: "person", 3: "car"}
    assert load_label_map(tmp_path / "sub" / "other.xml") == {}


class FakeCore:
    available_devices = ["CPU", "GPU"]

    def get_property(self, device, key):
        if key == "FULL_DEVICE_NAME":
            return f"Fake {device}"
        raise RuntimeError("unsupported")


def test_device_manager_falls_back_to_cpu():
    dm = DeviceManager(FakeCore())
    assert dm.list_devices() == ["CPU", "GPU"]
    assert dm.select("GPU") == "GPU"
    assert dm.select("NPU") == "CPU"
    assert dm.select("auto") == "AUTO"
    assert dm.select_for(use_gpu=False, device="CPU") == "CPU"
    assert dm.device_properties("GPU") == {"FULL_DEVICE_NAME": "Fake GPU"}

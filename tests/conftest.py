import logging

import pytest

from mediasync.config import ProcessingConfig
from mediasync.video.transcription import StaticTranscriber
from tests.helpers import SAMPLE_SPANS, FakeAudioExtractor, FakeFrameSampler


@pytest.fixture
def spans():
    return list(SAMPLE_SPANS)


@pytest.fixture
def config(tmp_path):
    cfg = ProcessingConfig()
    cfg.batch.input_directory = str(tmp_path / "input")
    cfg.batch.output_directory = str(tmp_path / "output")
    cfg.batch.max_concurrent_videos = 1
    cfg.batch.skip_existing = False
    cfg.models.confidence_threshold = 0.0
    return cfg


@pytest.fixture
def input_dir(tmp_path):
    d = tmp_path / "input"
    d.mkdir()
    return d


@pytest.fixture
def make_orchestrator(config):
    from mediasync.batch.orchestrator import BatchOrchestrator

    def _make(sampler=None, extractor=None, transcriber=None, **kwargs):
        return BatchOrchestrator(
            config,
            transcriber=transcriber or StaticTranscriber(SAMPLE_SPANS),
            frame_sampler=sampler or FakeFrameSampler(),
            audio_extractor=extractor or FakeAudioExtractor(),
            log=logging.getLogger("tests.orchestrator"),
            show_progress=False,
            **kwargs,
        )

    return _make

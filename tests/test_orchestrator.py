import json
import logging
import threading
from pathlib import Path

import pytest

from mediasync.batch import reporting
from mediasync.batch.orchestrator import BackendPool, asset_directory_names
from mediasync.detection.factory import FrameAnalyzer
from mediasync.detection.mock_backend import MockBackend
from mediasync.errors import DetectionError, DiscoveryError, ModelLoadError, PersistenceError
from mediasync.video.transcription import StaticTranscriber
from tests.helpers import FakeAudioExtractor, FakeFrameSampler


def add_videos(directory: Path, *names):
    for name in names:
        (directory / name).write_bytes(b"not really a video")


def test_empty_directory_gives_empty_report(make_orchestrator, input_dir, config):
    report = make_orchestrator().run()
    assert (report.total, report.successful, report.failed) == (0, 0, 0)
    assert report.outcomes == []
    assert (Path(config.batch.output_directory) / "batch_summary.txt").exists()


def test_missing_input_directory_is_fatal(make_orchestrator, tmp_path):
    with pytest.raises(DiscoveryError):
        make_orchestrator().run(input_dir=str(tmp_path / "nope"))


def test_one_failing_asset_does_not_abort_batch(make_orchestrator, input_dir, config):
    add_videos(input_dir, "a.mp4", "b.mp4")
    sampler = FakeFrameSampler(broken={"a.mp4"})

    report = make_orchestrator(sampler=sampler).run()

    assert report.total == 2
    assert (report.successful, report.failed) == (1, 1)
    failed, ok = report.outcomes
    assert failed.asset.name == "a.mp4" and not failed.success
    assert failed.error.startswith("Frame extraction failed:")
    assert failed.records == ()
    assert ok.success and ok.frame_count > 0 and ok.error is None


def test_successful_asset_counts_and_artifacts(make_orchestrator, input_dir, config):
    add_videos(input_dir, "clip.mp4")
    report = make_orchestrator(sampler=FakeFrameSampler([0.0, 2.5, 7.5, 12.0])).run()

    [outcome] = report.outcomes
    assert outcome.frame_count == 4
    assert outcome.audio_segment_count == 3
    assert [r.transcript for r in outcome.records] == ["A", "A", "B", None]
    assert all(r.detections[0].label == "mock_object_64x48" for r in outcome.records)

    asset_dir = Path(config.batch.output_directory) / "clip"
    assert (asset_dir / "frames" / "frame_0000.png").exists()
    assert (asset_dir / "audio.aac").exists()
    assert reporting.load_results(str(asset_dir)) == list(outcome.records)


def test_every_stage_failure_is_isolated(make_orchestrator, input_dir):
    add_videos(input_dir, "a.mp4", "b.mp4", "c.mp4", "d.mp4")

    class PickyTranscriber(StaticTranscriber):
        def transcribe(self, audio_path):
            if Path(audio_path).parent.name == "d":
                raise RuntimeError("speech model crashed")
            return super().transcribe(audio_path)

    report = make_orchestrator(
        sampler=FakeFrameSampler(broken={"a.mp4"}),
        extractor=FakeAudioExtractor(broken={"b.mp4"}),
        transcriber=PickyTranscriber(),
    ).run()

    assert report.total == 4
    assert report.successful + report.failed == report.total
    assert [o.success for o in report.outcomes] == [False, False, True, False]
    assert report.outcomes[1].error.startswith("Audio extraction failed:")
    assert report.outcomes[3].error.startswith("Transcription failed:")


class FlakyBackend(MockBackend):
    """Fails on frames of assets whose directory name starts with 'bad'."""

    def detect(self, image_path, timestamp):
        if Path(image_path).parent.parent.name.startswith("bad"):
            raise DetectionError("inference exploded")
        return super().detect(image_path, timestamp)


def test_detection_failure_is_scoped_to_asset(make_orchestrator, input_dir):
    add_videos(input_dir, "bad.mp4", "good.mp4")
    orchestrator = make_orchestrator(backend_factory=lambda name, **kw: FlakyBackend())
    report = orchestrator.run()
    assert [o.success for o in report.outcomes] == [False, True]
    assert "Frame processing failed: inference exploded" == report.outcomes[0].error


def test_unknown_backend_name_uses_mock(make_orchestrator, input_dir, caplog):
    add_videos(input_dir, "clip.mp4")
    with caplog.at_level(logging.WARNING):
        report = make_orchestrator().run(backend_name="foo")
    assert report.successful == 1
    assert "falling back to mock" in caplog.text
    assert report.outcomes[0].records[0].detections[0].label.startswith("mock_object_")


class BrokenLoadBackend(MockBackend):
    def load(self, model_path=None):
        raise RuntimeError("weights corrupted")


def test_model_load_failure_aborts_batch(make_orchestrator, input_dir):
    add_videos(input_dir, "clip.mp4")
    sampler = FakeFrameSampler()
    orchestrator = make_orchestrator(
        sampler=sampler, backend_factory=lambda name, **kw: BrokenLoadBackend(),
    )
    with pytest.raises(ModelLoadError):
        orchestrator.run()
    assert sampler.calls == []


def test_model_load_failure_is_fatal_for_empty_batch(make_orchestrator, input_dir):
    orchestrator = make_orchestrator(backend_factory=lambda name, **kw: BrokenLoadBackend())
    with pytest.raises(ModelLoadError):
        orchestrator.run()


def test_backend_is_loaded_once_per_run(make_orchestrator, input_dir):
    add_videos(input_dir, "a.mp4", "b.mp4", "c.mp4")
    created = []

    class CountingBackend(MockBackend):
        def __init__(self):
            super().__init__()
            self.loads = 0
            created.append(self)

        def load(self, model_path=None):
            self.loads += 1
            super().load(model_path)

    make_orchestrator(backend_factory=lambda name, **kw: CountingBackend()).run()
    assert len(created) == 1 and created[0].loads == 1


def test_persistence_failure_keeps_success(make_orchestrator, input_dir, monkeypatch, caplog):
    add_videos(input_dir, "clip.mp4")

    def refuse(*args, **kwargs):
        raise PersistenceError("disk full")

    monkeypatch.setattr(reporting, "save_results", refuse)
    monkeypatch.setattr(reporting, "write_batch_summary", refuse)
    with caplog.at_level(logging.WARNING):
        report = make_orchestrator().run()
    assert report.successful == 1
    assert "Failed to save results for clip.mp4: disk full" in caplog.text
    assert "Failed to write batch summary" in caplog.text


def test_discovery_filters_and_sorts(make_orchestrator, input_dir):
    add_videos(input_dir, "b.MP4", "a.mov", "notes.txt", "c.mkv")
    (input_dir / "sub.mp4").mkdir()
    report = make_orchestrator().run(extensions=["mp4", ".mov"])
    assert [o.asset.name for o in report.outcomes] == ["a.mov", "b.MP4"]


def test_shared_stems_get_separate_directories(make_orchestrator, input_dir, config):
    add_videos(input_dir, "talk.mp4", "talk.mov", "intro.mp4")
    make_orchestrator().run()
    out = Path(config.batch.output_directory)
    assert (out / "talk_mp4" / "results.json").exists()
    assert (out / "talk_mov" / "results.json").exists()
    assert (out / "intro" / "results.json").exists()


def test_asset_directory_names_are_unique():
    videos = [Path("x/a.mp4"), Path("x/a.MKV"), Path("x/b.mp4")]
    names = asset_directory_names(videos)
    assert names == {videos[0]: "a_mp4", videos[1]: "a_mkv", videos[2]: "b"}


def test_suffixed_names_never_collide_with_other_stems():
    videos = [Path("x/talk.mov"), Path("x/talk.mp4"), Path("x/talk_mp4.avi")]
    names = asset_directory_names(videos)
    assert names == {
        videos[0]: "talk_mov",
        videos[1]: "talk_mp4",
        videos[2]: "talk_mp4_2",
    }


def test_names_differing_only_in_case_get_separate_directories():
    videos = [Path("x/Talk.mp4"), Path("x/notes.MOV"), Path("x/talk.mov")]
    names = asset_directory_names(videos)
    assert len({n.lower() for n in names.values()}) == 3
    assert names[videos[0]] == "Talk_mp4"
    assert names[videos[2]] == "talk_mov"


def test_skip_existing_reuses_previous_results(make_orchestrator, input_dir, config):
    add_videos(input_dir, "clip.mp4")
    first = make_orchestrator().run()

    config.batch.skip_existing = True
    sampler = FakeFrameSampler()
    second = make_orchestrator(sampler=sampler).run()

    assert sampler.calls == []
    assert second.outcomes[0].success
    assert second.outcomes[0].records == first.outcomes[0].records


def test_intermediates_removed_when_not_saved(make_orchestrator, input_dir, config):
    add_videos(input_dir, "clip.mp4")
    config.output.save_frames = False
    config.output.save_audio = False
    config.output.output_format = "csv"
    make_orchestrator().run()
    asset_dir = Path(config.batch.output_directory) / "clip"
    assert not (asset_dir / "frames").exists()
    assert not (asset_dir / "audio.aac").exists()
    assert (asset_dir / "results.json").exists()
    assert (asset_dir / "results.csv").exists()


class SlowUnsafeBackend(MockBackend):
    """Not thread-safe: records whether two threads ever share an instance."""

    thread_safe = False
    overlap = False

    def __init__(self):
        super().__init__()
        self._busy = threading.Lock()

    def detect(self, image_path, timestamp):
        if not self._busy.acquire(blocking=False):
            SlowUnsafeBackend.overlap = True
            raise DetectionError("instance used concurrently")
        try:
            threading.Event().wait(0.005)
            return super().detect(image_path, timestamp)
        finally:
            self._busy.release()


def test_parallel_run_keeps_discovery_order(make_orchestrator, input_dir, config):
    names = [f"v{i:02d}.mp4" for i in range(8)]
    add_videos(input_dir, *names)
    config.batch.max_concurrent_videos = 3
    created = []

    def factory(name, **kw):
        backend = SlowUnsafeBackend()
        created.append(backend)
        return backend

    report = make_orchestrator(
        sampler=FakeFrameSampler(broken={"v03.mp4"}), backend_factory=factory,
    ).run()

    assert [o.asset.name for o in report.outcomes] == names
    assert report.total == 8 and report.failed == 1
    assert not report.outcomes[3].success
    assert len(created) == 3
    assert not SlowUnsafeBackend.overlap


def test_thread_safe_backend_is_shared():
    made = []

    def make():
        analyzer = FrameAnalyzer(backend=MockBackend())
        made.append(analyzer)
        return analyzer

    pool = BackendPool.load(make, None, workers=4)
    assert pool.shared and len(made) == 1
    with pool.lease() as a, pool.lease() as b:
        assert a is b is made[0]


def test_process_single_returns_outcome(make_orchestrator, tmp_path):
    video = tmp_path / "solo.mp4"
    video.write_bytes(b"x")
    outcome = make_orchestrator().process_single(str(video), output_dir=str(tmp_path / "out"))
    assert outcome.success and outcome.frame_count == 4
    saved = json.loads((tmp_path / "out" / "solo" / "results.json").read_text())
    assert saved["asset"] == "solo.mp4"


def test_accumulator_orders_by_index_and_rejects_duplicates():
    from mediasync.batch.results import OutcomeAccumulator, VideoOutcome

    acc = OutcomeAccumulator()
    acc.add(2, VideoOutcome.failed(Path("c.mp4"), 0.1, "boom"))
    acc.add(0, VideoOutcome.succeeded(Path("a.mp4"), 0.2, []))
    acc.add(1, VideoOutcome.failed(Path("b.mp4"), 0.3, ""))
    assert len(acc) == 3
    assert [o.asset.name for o in acc.ordered()] == ["a.mp4", "b.mp4", "c.mp4"]
    assert acc.ordered()[1].error == "Unknown error"
    with pytest.raises(ValueError):
        acc.add(0, VideoOutcome.succeeded(Path("a.mp4"), 0.0, []))


def test_corrupt_previous_results_are_reprocessed(make_orchestrator, input_dir, config, caplog):
    add_videos(input_dir, "a.mp4", "b.mp4")
    stale = Path(config.batch.output_directory) / "a" / "results.json"
    stale.parent.mkdir(parents=True)
    stale.write_bytes(b"\xff\xfe\x00garbage")
    config.batch.skip_existing = True
    sampler = FakeFrameSampler()

    with caplog.at_level(logging.WARNING):
        report = make_orchestrator(sampler=sampler).run()

    assert report.total == 2 and report.successful == 2
    assert len(sampler.calls) == 2
    assert "Ignoring unreadable previous results" in caplog.text
    assert reporting.load_results(str(stale.parent)) == list(report.outcomes[0].records)

"""
Batch Orchestrator
===================
Runs the per-asset pipeline over every video in a directory:

    FrameSampler → DetectionBackend × N → AudioExtractor → Transcriber
        → synchronize → results.json

Failure policy:

* ``DiscoveryError`` and ``ModelLoadError`` are fatal and propagate out of
  :meth:`BatchOrchestrator.run` before any asset is touched.
* Anything that goes wrong inside one asset's chain becomes a failed
  ``VideoOutcome`` and the batch moves on.
* Write failures for result or summary documents are logged as warnings;
  they never change an asset's success/failure status.

Concurrency:
    ``max_concurrent_videos`` workers pull assets from a thread pool in
    discovery order.  The detection backend is loaded up front: one shared
    instance when the backend declares itself ``thread_safe``, otherwise one
    loaded instance per worker, leased through ``BackendPool``.  Outcomes are
    collected by discovery index so the report order never depends on
    scheduling.

Output layout (one exclusive directory per asset)::

    <output>/<stem>/frames/frame_0000.png ...
    <output>/<stem>/audio.aac
    <output>/<stem>/results.json
    <output>/batch_summary.json
    <output>/batch_summary.txt
"""

import logging
import queue
import shutil
import time
from collections import Counter
from concurrent.futures import ThreadPoolExecutor, as_completed
from contextlib import contextmanager
from pathlib import Path
from typing import Callable, Dict, Iterator, List, Optional, Sequence

from mediasync.batch import reporting
from mediasync.batch.progress import BatchProgress
from mediasync.batch.results import BatchReport, OutcomeAccumulator, VideoOutcome
from mediasync.config import ProcessingConfig
from mediasync.detection.backend import DetectionBackend
from mediasync.detection.factory import FrameAnalyzer, create_backend
from mediasync.errors import ModelLoadError, PerAssetError, PersistenceError
from mediasync.sync.synchronizer import SynchronizedRecord, synchronize
from mediasync.video.audio_extractor import AudioExtractor
from mediasync.video.frame_sampler import FrameSampler
from mediasync.video.transcription import Transcriber, create_transcriber
from mediasync.video.video_loader import discover_videos

logger = logging.getLogger(__name__)

FRAMES_DIRNAME = "frames"
AUDIO_FILENAME = "audio.aac"


def asset_directory_names(videos: Sequence[Path]) -> Dict[Path, str]:
    """Map each video to its output subdirectory name.

    The name is the file stem.  When two assets share a stem
    (``talk.mp4`` and ``talk.mov``) both get the extension appended
    (``talk_mp4``, ``talk_mov``).  A name still taken by an earlier asset
    gets a counter (``talk_mp4_2``).  Names are compared case-insensitively
    so they stay distinct on case-insensitive filesystems.
    """
    stems = Counter(v.stem.lower() for v in videos)
    taken = set()
    names = {}
    for v in videos:
        base = v.stem
        if stems[v.stem.lower()] > 1:
            base = f"{v.stem}_{v.suffix.lstrip('.').lower()}"
        name = base
        counter = 2
        while name.lower() in taken:
            name = f"{base}_{counter}"
            counter += 1
        taken.add(name.lower())
        names[v] = name
    return names


class BackendPool:
    """Hands out loaded ``FrameAnalyzer`` instances to worker threads."""

    def __init__(self, analyzers: List[FrameAnalyzer], shared: bool):
        if not analyzers:
            raise ValueError("BackendPool needs at least one analyzer")
        self.shared = shared
        self._first = analyzers[0]
        self._idle: "queue.Queue[FrameAnalyzer]" = queue.Queue()
        for analyzer in analyzers:
            self._idle.put(analyzer)
        self.size = len(analyzers)

    @classmethod
    def load(
        cls,
        make_analyzer: Callable[[], FrameAnalyzer],
        model_path: Optional[str],
        workers: int,
        log: logging.Logger = logger,
    ) -> "BackendPool":
        """Create and load enough analyzers for *workers* threads.

        Raises
        ------
        ModelLoadError
            Any analyzer fails to load.
        """
        first = _load_analyzer(make_analyzer(), model_path)
        log.info("Using ML backend: %s", first.backend_name())
        if workers <= 1 or first.thread_safe:
            return cls([first], shared=True)

        analyzers = [first]
        for _ in range(workers - 1):
            analyzers.append(_load_analyzer(make_analyzer(), model_path))
        log.info("Loaded %d backend instances (backend is not thread-safe)", len(analyzers))
        return cls(analyzers, shared=False)

    @property
    def primary(self) -> FrameAnalyzer:
        return self._first

    @contextmanager
    def lease(self) -> Iterator[FrameAnalyzer]:
        if self.shared:
            yield self._first
            return
        analyzer = self._idle.get()
        try:
            yield analyzer
        finally:
            self._idle.put(analyzer)


def _load_analyzer(analyzer: FrameAnalyzer, model_path: Optional[str]) -> FrameAnalyzer:
    try:
        analyzer.load_model(model_path)
    except ModelLoadError:
        raise
    except Exception as exc:
        raise ModelLoadError(f"Failed to load ML model: {exc}") from exc
    return analyzer


class BatchOrchestrator:
    """Process every video in a directory and report the results.

    Usage::

        config = ProcessingConfig.load_from_file()
        orchestrator = BatchOrchestrator(config)
        report = orchestrator.run()
        print(f"{report.successful}/{report.total} succeeded")

    Parameters
    ----------
    config : ProcessingConfig
        Directory layout, concurrency, model and output settings.
    transcriber : Transcriber, optional
        Speech-to-text capability.  Built from ``config.models`` when
        omitted.
    backend_factory : callable
        ``(name, **options) -> DetectionBackend``; defaults to
        :func:`create_backend`.
    frame_sampler, audio_extractor : optional
        Replacements for the default OpenCV / moviepy implementations.
    log : logging.Logger, optional
        Where progress and failures are reported.
    show_progress : bool
        Draw tqdm progress bars.
    """

    def __init__(
        self,
        config: Optional[ProcessingConfig] = None,
        transcriber: Optional[Transcriber] = None,
        backend_factory: Callable[..., DetectionBackend] = create_backend,
        frame_sampler: Optional[FrameSampler] = None,
        audio_extractor: Optional[AudioExtractor] = None,
        log: Optional[logging.Logger] = None,
        show_progress: bool = True,
    ):
        self.config = config or ProcessingConfig()
        self.config.validate()
        self.log = log or logger
        self.backend_factory = backend_factory
        self.frame_sampler = frame_sampler or FrameSampler()
        self.audio_extractor = audio_extractor or AudioExtractor()
        self.show_progress = show_progress
        self._transcriber = transcriber

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def transcriber(self) -> Transcriber:
        if self._transcriber is None:
            models = self.config.models
            self._transcriber = create_transcriber(
                models.transcriber,
                model_size=models.whisper_model_size,
                language=models.language,
            )
        return self._transcriber

    def run(
        self,
        input_dir: Optional[str] = None,
        output_dir: Optional[str] = None,
        extensions: Optional[Sequence[str]] = None,
        backend_name: Optional[str] = None,
        model_path: Optional[str] = None,
    ) -> BatchReport:
        """Process every video under *input_dir*.

        Arguments left as ``None`` come from the configuration.

        Returns
        -------
        BatchReport
            One outcome per discovered asset, in discovery order.

        Raises
        ------
        DiscoveryError
            *input_dir* is missing or unreadable.
        ModelLoadError
            The detection backend could not be loaded.
        """
        batch_cfg = self.config.batch
        input_dir = input_dir or batch_cfg.input_directory
        output_dir = Path(output_dir or batch_cfg.output_directory)
        extensions = extensions if extensions is not None else batch_cfg.video_extensions
        backend_name = backend_name or self.config.models.backend
        model_path = model_path or self.config.models.video_model_path

        start_time = time.perf_counter()

        videos = discover_videos(input_dir, extensions)
        self.log.info("Found %d video files to process", len(videos))

        try:
            output_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            self.log.warning("Could not create output directory %s: %s", output_dir, exc)

        # The backend loads once per run, even when no asset was found.
        workers = max(1, min(batch_cfg.max_concurrent_videos, len(videos)))
        self.log.info("Loading ML model...")
        pool = BackendPool.load(
            lambda: self._make_analyzer(backend_name), model_path, workers, self.log,
        )

        outcomes: List[VideoOutcome] = []
        if videos:
            transcriber = self.transcriber  # resolve once, before any worker starts
            self.log.info("Using transcriber: %s", transcriber.name())
            outcomes = self._process_all(videos, output_dir, pool, workers)

        report = BatchReport.from_outcomes(outcomes, time.perf_counter() - start_time)

        try:
            reporting.write_batch_summary(str(output_dir), report)
        except PersistenceError as exc:
            self.log.warning("Failed to write batch summary: %s", exc)

        self.log.info(
            "Batch complete: %d total, %d successful, %d failed (%.2fs)",
            report.total, report.successful, report.failed, report.total_time,
        )
        return report

    def process_single(
        self,
        video_path: str,
        output_dir: Optional[str] = None,
        backend_name: Optional[str] = None,
        model_path: Optional[str] = None,
    ) -> VideoOutcome:
        """Run the full pipeline on one video (the ``single`` command).

        The backend is loaded first, so ``ModelLoadError`` propagates; any
        per-asset failure is returned as a failed outcome.
        """
        output_dir = Path(output_dir or self.config.batch.output_directory)
        analyzer = _load_analyzer(
            self._make_analyzer(backend_name or self.config.models.backend),
            model_path or self.config.models.video_model_path,
        )
        self.log.info("Using ML backend: %s", analyzer.backend_name())
        video = Path(video_path)
        return self.process_video(video, output_dir / video.stem, analyzer)

    def process_video(
        self,
        video: Path,
        asset_dir: Path,
        analyzer: FrameAnalyzer,
        progress: Optional[BatchProgress] = None,
    ) -> VideoOutcome:
        """Process one asset into *asset_dir*.  Never raises for per-asset errors."""
        start = time.perf_counter()
        name = video.name

        if self.config.batch.skip_existing:
            existing = self._load_existing(asset_dir)
            if existing is not None:
                self.log.info("Skipping %s (results already in %s)", name, asset_dir)
                return VideoOutcome.succeeded(video, 0.0, existing)

        self.log.info("Processing video: %s", name)
        try:
            records = self._analyse(video, asset_dir, analyzer, progress)
        except PerAssetError as exc:
            self.log.error("Failed to process %s: %s", name, exc)
            return VideoOutcome.failed(video, time.perf_counter() - start, str(exc))

        outcome = VideoOutcome.succeeded(video, time.perf_counter() - start, records)
        self._persist(video, asset_dir, records)
        return outcome

    # ------------------------------------------------------------------
    # Scheduling
    # ------------------------------------------------------------------

    def _process_all(
        self,
        videos: List[Path],
        output_dir: Path,
        pool: BackendPool,
        workers: int,
    ) -> List[VideoOutcome]:
        dir_names = asset_directory_names(videos)
        accumulator = OutcomeAccumulator()
        progress = BatchProgress(len(videos), enabled=self.show_progress)

        def work(index: int, video: Path) -> None:
            self.log.info("[%d/%d] Processing: %s", index + 1, len(videos), video.name)
            progress.start_video(video.name)
            with pool.lease() as analyzer:
                outcome = self.process_video(video, output_dir / dir_names[video], analyzer, progress)
            accumulator.add(index, outcome)
            progress.finish_video(video.name, outcome.success)
            self._log_outcome(outcome)

        try:
            if workers <= 1:
                for index, video in enumerate(videos):
                    work(index, video)
            else:
                self.log.info("Processing with %d workers", workers)
                with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="mediasync") as executor:
                    futures = [executor.submit(work, i, v) for i, v in enumerate(videos)]
                    for future in as_completed(futures):
                        future.result()
        finally:
            progress.finish()

        return accumulator.ordered()

    def _log_outcome(self, outcome: VideoOutcome) -> None:
        if outcome.success:
            self.log.info(
                "Success - %s: %d frames, %d audio segments, %.2fs",
                outcome.asset.name, outcome.frame_count,
                outcome.audio_segment_count, outcome.duration,
            )
        else:
            self.log.warning("Failed - %s: %s", outcome.asset.name, outcome.error)

    # ------------------------------------------------------------------
    # Per-asset pipeline
    # ------------------------------------------------------------------

    def _make_analyzer(self, backend_name: str) -> FrameAnalyzer:
        models = self.config.models
        options = {"device": models.device, "use_gpu": models.use_gpu}
        return FrameAnalyzer(
            backend=self.backend_factory(backend_name, **options),
            confidence_threshold=models.confidence_threshold,
        )

    @staticmethod
    def _stage(label: str, func, *args):
        """Run one pipeline step, tagging any failure with the step name."""
        try:
            return func(*args)
        except Exception as exc:
            raise PerAssetError(f"{label} failed: {exc}") from exc

    def _analyse(
        self,
        video: Path,
        asset_dir: Path,
        analyzer: FrameAnalyzer,
        progress: Optional[BatchProgress],
    ) -> List[SynchronizedRecord]:
        frames_dir = asset_dir / FRAMES_DIRNAME
        audio_path = asset_dir / AUDIO_FILENAME

        def step(message: str) -> None:
            if progress is not None:
                progress.update_stage(video.name, message)

        step("extracting frames")
        self._stage("Output directory creation", lambda: frames_dir.mkdir(parents=True, exist_ok=True))
        frames = self._stage("Frame extraction", self.frame_sampler.sample, str(video), str(frames_dir))

        step("detecting objects")
        analyses = self._stage(
            "Frame processing",
            lambda: [analyzer.process_frame(f.image_path, f.timestamp) for f in frames],
        )

        step("extracting audio")
        self._stage("Audio extraction", self.audio_extractor.extract, str(video), str(audio_path))

        step("transcribing")
        spans = self._stage("Transcription", self.transcriber.transcribe, str(audio_path))

        step("synchronizing")
        return self._stage("Synchronization", synchronize, analyses, spans)

    def _persist(self, video: Path, asset_dir: Path, records: List[SynchronizedRecord]) -> None:
        output_cfg = self.config.output
        try:
            reporting.save_results(str(asset_dir), records, asset=video.name)
            if output_cfg.output_format.lower() == "csv":
                reporting.save_records_csv(
                    str(asset_dir), records, include_timestamps=output_cfg.include_timestamps,
                )
        except PersistenceError as exc:
            self.log.warning("Failed to save results for %s: %s", video.name, exc)

        try:
            frames_dir = asset_dir / FRAMES_DIRNAME
            if not output_cfg.save_frames and frames_dir.exists():
                shutil.rmtree(frames_dir)
            if not output_cfg.save_audio:
                (asset_dir / AUDIO_FILENAME).unlink(missing_ok=True)
        except OSError as exc:
            self.log.warning("Failed to clean up intermediates for %s: %s", video.name, exc)

    def _load_existing(self, asset_dir: Path) -> Optional[List[SynchronizedRecord]]:
        if not (asset_dir / reporting.RESULTS_FILENAME).exists():
            return None
        try:
            return reporting.load_results(str(asset_dir))
        except PersistenceError as exc:
            self.log.warning("Ignoring unreadable previous results in %s: %s", asset_dir, exc)
            return None

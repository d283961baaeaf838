"""
Batch result types.

``VideoOutcome`` is the terminal record of one asset; ``BatchReport`` is
built once every asset has an outcome.  ``OutcomeAccumulator`` collects
outcomes from worker threads and hands them back in discovery order.
"""

import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from mediasync.sync.synchronizer import SynchronizedRecord


@dataclass(frozen=True)
class VideoOutcome:
    """Terminal result of one asset's processing attempt.

    Attributes
    ----------
    asset : Path
        The input video.
    duration : float
        Wall-clock seconds spent on the asset.
    frame_count : int
        Number of synchronised records (one per decoded frame).
    audio_segment_count : int
        Records that carry transcript text.
    records : tuple of SynchronizedRecord
        Empty for failed assets.
    success : bool
    error : str or None
        Populated only when ``success`` is False.
    """
    asset: Path
    duration: float
    frame_count: int = 0
    audio_segment_count: int = 0
    records: Tuple[SynchronizedRecord, ...] = ()
    success: bool = True
    error: Optional[str] = None

    @classmethod
    def succeeded(cls, asset: Path, duration: float, records) -> "VideoOutcome":
        records = tuple(records)
        return cls(
            asset=asset,
            duration=duration,
            frame_count=len(records),
            audio_segment_count=sum(1 for r in records if r.transcript is not None),
            records=records,
        )

    @classmethod
    def failed(cls, asset: Path, duration: float, error: str) -> "VideoOutcome":
        return cls(asset=asset, duration=duration, success=False, error=error or "Unknown error")


@dataclass(frozen=True)
class BatchReport:
    total: int
    successful: int
    failed: int
    total_time: float
    outcomes: List[VideoOutcome] = field(default_factory=list)

    @property
    def average_time(self) -> float:
        return self.total_time / self.total if self.total else 0.0

    @classmethod
    def from_outcomes(cls, outcomes: List[VideoOutcome], total_time: float) -> "BatchReport":
        successful = sum(1 for o in outcomes if o.success)
        return cls(
            total=len(outcomes),
            successful=successful,
            failed=len(outcomes) - successful,
            total_time=total_time,
            outcomes=list(outcomes),
        )


class OutcomeAccumulator:
    """Thread-safe collector keyed by discovery index."""

    def __init__(self):
        self._lock = threading.Lock()
        self._outcomes: Dict[int, VideoOutcome] = {}

    def add(self, index: int, outcome: VideoOutcome) -> None:
        with self._lock:
            if index in self._outcomes:
                raise ValueError(f"Outcome for asset #{index} already recorded")
            self._outcomes[index] = outcome

    def __len__(self) -> int:
        with self._lock:
            return len(self._outcomes)

    def ordered(self) -> List[VideoOutcome]:
        with self._lock:
            return [self._outcomes[i] for i in sorted(self._outcomes)]

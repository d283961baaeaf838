"""
Synchronizer
=============
Aligns per-frame detections with transcript spans by timestamp.

For each frame the transcript is the text of the first span with
``span.start <= frame.timestamp <= span.end``, or ``None`` when no span
covers it.  Records come out in ascending timestamp order, one per frame,
and each record depends only on its own frame, so the result does not
depend on the order frames are passed in.

Spans must be sorted and non-overlapping (touching at a boundary is
allowed; a frame exactly on a shared boundary takes the earlier span).
``synchronize`` validates this by default and raises ``SpanOrderError``
rather than picking an arbitrary match.
"""

import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence, Tuple

from mediasync.detection.backend import Detection, FrameAnalysis
from mediasync.errors import SpanOrderError
from mediasync.video.transcription import AudioSpan

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SynchronizedRecord:
    timestamp: float
    detections: Tuple[Detection, ...] = ()
    transcript: Optional[str] = None


def validate_spans(spans: Sequence[AudioSpan]) -> None:
    """Raise ``SpanOrderError`` unless spans are well-formed, sorted and disjoint."""
    prev: Optional[AudioSpan] = None
    for i, span in enumerate(spans):
        if span.start > span.end:
            raise SpanOrderError(
                f"Span {i} ends before it starts ({span.start} > {span.end})"
            )
        if prev is not None and span.start < prev.end:
            raise SpanOrderError(
                f"Span {i} [{span.start}, {span.end}] overlaps or precedes "
                f"span {i - 1} [{prev.start}, {prev.end}]"
            )
        prev = span


def _first_match(timestamp: float, spans: Sequence[AudioSpan]) -> Optional[str]:
    for span in spans:
        if span.start <= timestamp <= span.end:
            return span.text
    return None


def synchronize(
    frames: Iterable[FrameAnalysis],
    spans: Sequence[AudioSpan],
    validate: bool = True,
) -> List[SynchronizedRecord]:
    """Merge frame detections with transcript spans.

    Parameters
    ----------
    frames : iterable of FrameAnalysis
        Per-frame detection results, any order.
    spans : sequence of AudioSpan
        Transcript spans in chronological order.
    validate : bool
        Check the span ordering precondition first (default: True).  With
        ``False`` the first matching span in the given order wins.

    Returns
    -------
    List[SynchronizedRecord]
        One record per frame, ascending by timestamp.
    """
    ordered = sorted(frames, key=lambda f: f.timestamp)

    if not validate:
        return [
            SynchronizedRecord(
                timestamp=f.timestamp,
                detections=tuple(f.detections),
                transcript=_first_match(f.timestamp, spans),
            )
            for f in ordered
        ]

    validate_spans(spans)

    records: List[SynchronizedRecord] = []
    i = 0
    for frame in ordered:
        t = frame.timestamp
        while i < len(spans) and spans[i].end < t:
            i += 1
        text = None
        if i < len(spans) and spans[i].start <= t:
            text = spans[i].text
        records.append(SynchronizedRecord(
            timestamp=t,
            detections=tuple(frame.detections),
            transcript=text,
        ))

    logger.debug(
        "Synchronized %d frames against %d spans (%d with transcript)",
        len(records), len(spans), sum(1 for r in records if r.transcript is not None),
    )
    return records


def format_records(records: Sequence[SynchronizedRecord]) -> str:
    """Render records as the console report printed by ``cli.py single``."""
    lines = ["", "=== Synchronized Video and Audio Analysis Results ===", ""]
    for record in records:
        lines.append(f"Timestamp: {record.timestamp:.2f}s")
        if record.detections:
            lines.append("  Video Objects:")
            for d in record.detections:
                x1, y1, x2, y2 = d.bbox
                lines.append(
                    f"    - {d.label}: {d.confidence * 100:.2f}% confidence "
                    f"at [{x1:.1f}, {y1:.1f}, {x2:.1f}, {y2:.1f}]"
                )
        if record.transcript is not None:
            lines.append(f'  Audio: "{record.transcript}"')
        lines.append("")
    return "\n".join(lines)

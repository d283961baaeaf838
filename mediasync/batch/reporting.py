"""
Result Persistence
===================
Writes and reads the documents a batch run leaves on disk:

    <output>/<asset>/results.json   -- synchronised records (schema v1)
    <output>/<asset>/results.csv    -- optional flat export
    <output>/batch_summary.json     -- machine-readable batch summary
    <output>/batch_summary.txt      -- human-readable batch summary

All writers raise ``PersistenceError``; callers decide whether that is
fatal (it never is for the batch orchestrator).
"""

import csv
import logging
from pathlib import Path
from typing import List, Sequence

from pydantic import ValidationError

from mediasync.batch.results import BatchReport, VideoOutcome
from mediasync.detection.backend import Detection
from mediasync.errors import PersistenceError
from mediasync.schemas import (
    BatchSummaryDocument,
    DetectionModel,
    OutcomeModel,
    RecordModel,
    ResultDocument,
)
from mediasync.sync.synchronizer import SynchronizedRecord

logger = logging.getLogger(__name__)

RESULTS_FILENAME = "results.json"
RESULTS_CSV_FILENAME = "results.csv"
SUMMARY_JSON_FILENAME = "batch_summary.json"
SUMMARY_TXT_FILENAME = "batch_summary.txt"


# ---------------------------------------------------------------------------
# Record <-> document conversion
# ---------------------------------------------------------------------------

def records_to_document(records: Sequence[SynchronizedRecord], asset: str = "") -> ResultDocument:
    return ResultDocument(
        asset=asset,
        records=[
            RecordModel(
                timestamp=r.timestamp,
                video_objects=[
                    DetectionModel(label=d.label, confidence=d.confidence, bbox=list(d.bbox))
                    for d in r.detections
                ],
                audio_text=r.transcript,
            )
            for r in records
        ],
    )


def document_to_records(doc: ResultDocument) -> List[SynchronizedRecord]:
    return [
        SynchronizedRecord(
            timestamp=r.timestamp,
            detections=tuple(
                Detection(label=d.label, confidence=d.confidence, bbox=d.bbox)
                for d in r.video_objects
            ),
            transcript=r.audio_text,
        )
        for r in doc.records
    ]


# ---------------------------------------------------------------------------
# Per-asset documents
# ---------------------------------------------------------------------------

def save_results(output_dir: str, records: Sequence[SynchronizedRecord], asset: str = "") -> str:
    """Write ``results.json`` under *output_dir*.  Returns its path."""
    out_path = Path(output_dir) / RESULTS_FILENAME
    doc = records_to_document(records, asset=asset)
    try:
        out_path.parent.mkdir(parents=True, exist_ok=True)
        out_path.write_text(doc.model_dump_json(indent=2), encoding="utf-8")
    except OSError as exc:
        raise PersistenceError(f"Failed to write {out_path}: {exc}") from exc
    logger.debug("Saved %d records to %s", len(records), out_path)
    return str(out_path)


def load_results(path: str) -> List[SynchronizedRecord]:
    """Parse a ``results.json`` written by :func:`save_results`.

    Accepts a directory (the file name is appended) or the file itself.
    """
    p = Path(path)
    if p.is_dir():
        p = p / RESULTS_FILENAME
    try:
        doc = ResultDocument.parse_json(p.read_bytes())
    except OSError as exc:
        raise PersistenceError(f"Failed to read {p}: {exc}") from exc
    except ValidationError as exc:
        raise PersistenceError(f"Invalid result document {p}: {exc}") from exc
    return document_to_records(doc)


def save_records_csv(
    output_dir: str,
    records: Sequence[SynchronizedRecord],
    include_timestamps: bool = True,
) -> str:
    """Flat export: one row per detection (or one empty row per bare frame).

    With *include_timestamps* False the leading ``timestamp`` column is
    omitted.
    """
    out_path = Path(output_dir) / RESULTS_CSV_FILENAME
    try:
        out_path.parent.mkdir(parents=True, exist_ok=True)
        with open(out_path, "w", encoding="utf-8", newline="") as f:
            writer = csv.writer(f)
            header = ["label", "confidence", "x1", "y1", "x2", "y2", "audio_text"]
            writer.writerow(["timestamp", *header] if include_timestamps else header)
            for r in records:
                lead = [r.timestamp] if include_timestamps else []
                text = r.transcript if r.transcript is not None else ""
                if not r.detections:
                    writer.writerow([*lead, "", "", "", "", "", "", text])
                for d in r.detections:
                    writer.writerow([*lead, d.label, d.confidence, *d.bbox, text])
    except OSError as exc:
        raise PersistenceError(f"Failed to write {out_path}: {exc}") from exc
    return str(out_path)


# ---------------------------------------------------------------------------
# Batch summary
# ---------------------------------------------------------------------------

def _outcome_model(outcome: VideoOutcome) -> OutcomeModel:
    return OutcomeModel(
        file_name=outcome.asset.name,
        video_path=str(outcome.asset),
        status="SUCCESS" if outcome.success else "FAILED",
        processing_time=round(outcome.duration, 4),
        frame_count=outcome.frame_count,
        audio_segments=outcome.audio_segment_count,
        error=outcome.error,
    )


def summary_document(report: BatchReport) -> BatchSummaryDocument:
    return BatchSummaryDocument(
        total=report.total,
        successful=report.successful,
        failed=report.failed,
        total_time=round(report.total_time, 4),
        average_time=round(report.average_time, 4),
        outcomes=[_outcome_model(o) for o in report.outcomes],
    )


def format_summary(report: BatchReport) -> str:
    lines = [
        "=== Batch Processing Summary ===",
        f"Total videos processed: {report.total}",
        f"Successful: {report.successful}",
        f"Failed: {report.failed}",
        f"Total processing time: {report.total_time:.2f}s",
        f"Average time per video: {report.average_time:.2f}s",
        "",
        "=== Individual Results ===",
    ]
    for outcome in report.outcomes:
        lines.append(f"Video: {outcome.asset.name}")
        lines.append(f"  Status: {'SUCCESS' if outcome.success else 'FAILED'}")
        lines.append(f"  Processing time: {outcome.duration:.2f}s")
        if outcome.success:
            lines.append(f"  Frames processed: {outcome.frame_count}")
            lines.append(f"  Audio segments: {outcome.audio_segment_count}")
        else:
            lines.append(f"  Error: {outcome.error}")
        lines.append("")
    return "\n".join(lines) + "\n"


def write_batch_summary(output_dir: str, report: BatchReport) -> List[str]:
    """Write the JSON and text summaries.  Returns both paths."""
    out_dir = Path(output_dir)
    json_path = out_dir / SUMMARY_JSON_FILENAME
    txt_path = out_dir / SUMMARY_TXT_FILENAME
    try:
        out_dir.mkdir(parents=True, exist_ok=True)
        json_path.write_text(summary_document(report).model_dump_json(indent=2), encoding="utf-8")
        txt_path.write_text(format_summary(report), encoding="utf-8")
    except OSError as exc:
        raise PersistenceError(f"Failed to write batch summary in {out_dir}: {exc}") from exc
    logger.info("Batch summary written to %s", out_dir)
    return [str(json_path), str(txt_path)]

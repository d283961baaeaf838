"""Timestamp alignment of detections and transcript spans."""

from mediasync.sync.synchronizer import (
    SynchronizedRecord,
    format_records,
    synchronize,
    validate_spans,
)

"""
Document Schemas
=================
Versioned pydantic models for everything the pipeline writes to disk.

Two documents are produced:

* ``results.json`` -- one per asset, the synchronised record stream::

    {
      "schema_version": 1,
      "asset": "clip.mp4",
      "records": [
        {"timestamp": 0.0,
         "video_objects": [{"label": "car", "confidence": 0.9,
                            "bbox": [10.0, 20.0, 30.0, 40.0]}],
         "audio_text": null}
      ]
    }

* ``batch_summary.json`` -- one per batch run (see ``BatchSummaryDocument``).

``audio_text`` is always emitted, as ``null`` when no span covers the
frame, so an absent transcript survives a save/load round trip.
"""

from typing import List, Optional, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    TypeAdapter,
    ValidationError,
    field_validator,
)

SCHEMA_VERSION = 1


class DetectionModel(BaseModel):
    """One labelled bounding box: ``[x1, y1, x2, y2]`` in source pixels."""

    model_config = ConfigDict(extra="forbid")

    label: str
    confidence: float = Field(..., ge=0.0, le=1.0)
    bbox: List[float] = Field(..., min_length=4, max_length=4)


class RecordModel(BaseModel):
    model_config = ConfigDict(extra="forbid")

    timestamp: float
    video_objects: List[DetectionModel] = Field(default_factory=list)
    audio_text: Optional[str] = None


# Legacy layout: a top-level JSON array of records.
_RecordList = TypeAdapter(List[RecordModel])


class ResultDocument(BaseModel):
    """Per-asset result document."""

    schema_version: int = SCHEMA_VERSION
    asset: str = ""
    records: List[RecordModel] = Field(default_factory=list)

    @field_validator("schema_version")
    @classmethod
    def _check_version(cls, value: int) -> int:
        if value != SCHEMA_VERSION:
            raise ValueError(
                f"Unsupported schema_version {value} (expected {SCHEMA_VERSION})"
            )
        return value

    @classmethod
    def parse_json(cls, raw: Union[str, bytes]) -> "ResultDocument":
        """Parse either the versioned object or a bare array of records."""
        stripped = raw.lstrip()
        if stripped[:1] in ("[", b"["):
            return cls(records=_RecordList.validate_json(raw))
        return cls.model_validate_json(raw)


class OutcomeModel(BaseModel):
    """Status line for one asset inside the batch summary."""

    file_name: str
    video_path: str
    status: str
    processing_time: float
    frame_count: int = 0
    audio_segments: int = 0
    error: Optional[str] = None


class BatchSummaryDocument(BaseModel):
    schema_version: int = SCHEMA_VERSION
    total: int
    successful: int
    failed: int
    total_time: float
    average_time: float
    outcomes: List[OutcomeModel] = Field(default_factory=list)


__all__ = [
    "SCHEMA_VERSION",
    "BatchSummaryDocument",
    "DetectionModel",
    "OutcomeModel",
    "RecordModel",
    "ResultDocument",
    "ValidationError",
]

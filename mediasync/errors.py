"""
Error taxonomy
===============
Every failure raised by the pipeline derives from ``MediaSyncError``.

Two families matter to the batch layer:

* **Fatal** -- ``DiscoveryError``, ``ModelLoadError``.  These unwind out of
  ``BatchOrchestrator.run()`` before (or instead of) processing assets.
* **Per-asset** -- subclasses of ``PerAssetError``.  These are caught at the
  asset boundary and recorded on that asset's ``VideoOutcome``.
"""


class MediaSyncError(Exception):
    """Base class for all pipeline errors."""


class ConfigError(MediaSyncError):
    """The settings file exists but cannot be parsed."""


class DiscoveryError(MediaSyncError):
    """The input directory is missing or cannot be listed."""


class ModelLoadError(MediaSyncError):
    """The shared detection backend failed to load."""


class PerAssetError(MediaSyncError):
    """A failure scoped to a single video asset."""


class FrameExtractionError(PerAssetError):
    pass


class NoVideoStream(FrameExtractionError):
    pass


class DecodeError(FrameExtractionError):
    pass


class AudioExtractionError(PerAssetError):
    pass


class NoAudioStream(AudioExtractionError):
    pass


class EncodeError(AudioExtractionError):
    pass


class DetectionError(PerAssetError):
    """The backend could not analyse a frame."""


class TranscriptionError(PerAssetError):
    pass


class PersistenceError(MediaSyncError):
    """A result or summary document could not be written or read."""


class SpanOrderError(ValueError):
    """Transcript spans are unsorted, overlapping, or inverted."""

"""
Media Sync -- root package.

This package contains the complete multi-modal analysis pipeline:
    video      -> discover assets, sample frames, extract and transcribe audio
    detection  -> pluggable object-detection backends (mock, OpenVINO)
    sync       -> align per-frame detections with transcript spans
    batch      -> run the per-asset pipeline over a directory and report
"""

__version__ = "0.1.0"

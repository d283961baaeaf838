"""
Video processing subpackage -- decoding, audio extraction, and transcription.

Per-asset flow:
    discover_videos → FrameSampler → (detection) → AudioExtractor → Transcriber
"""

from mediasync.video.video_loader import discover_videos
from mediasync.video.frame_sampler import FrameSample, FrameSampler, VideoInfo
from mediasync.video.audio_extractor import AudioExtractor
from mediasync.video.transcription import (
    AudioSpan,
    StaticTranscriber,
    Transcriber,
    WhisperTranscriber,
    create_transcriber,
)

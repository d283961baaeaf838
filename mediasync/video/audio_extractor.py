"""
Audio Extractor
================
Transcodes the primary audio stream of a video into a standalone AAC file
using ``moviepy`` (backed by ffmpeg).

The source stream's sample rate, channel count and bit rate are passed
straight through to the encoder; there is no resampling policy beyond that.

Dependencies:
    pip install moviepy

Note: ``ffmpeg`` must be installed on the system
    (``sudo apt install ffmpeg`` on Ubuntu/WSL).
"""

import logging
from pathlib import Path
from typing import Dict, Optional

from moviepy import VideoFileClip

from mediasync.errors import DecodeError, EncodeError, NoAudioStream

logger = logging.getLogger(__name__)


class AudioExtractor:
    """Extract the audio track of a video file.

    Usage::

        extractor = AudioExtractor()
        extractor.extract("clip.mp4", "output_results/clip/audio.aac")

    Parameters
    ----------
    codec : str
        ffmpeg encoder name for the output file (default: ``"aac"``).
    """

    def __init__(self, codec: str = "aac"):
        self.codec = codec

    def extract(self, video_path: str, destination: str) -> str:
        """Write the audio of *video_path* to *destination*.

        Returns
        -------
        str
            The destination path.

        Raises
        ------
        DecodeError
            The video could not be opened.
        NoAudioStream
            The video has no audio track.
        EncodeError
            The encoder could not be opened or the file not finalised.
        """
        vp = Path(video_path)
        out_path = Path(destination)
        out_path.parent.mkdir(parents=True, exist_ok=True)

        try:
            clip = VideoFileClip(str(vp))
        except (OSError, ValueError) as exc:
            raise DecodeError(f"Could not open {vp} for audio extraction: {exc}") from exc

        try:
            if clip.audio is None:
                raise NoAudioStream(f"No audio stream found in {vp}")

            params = self.source_parameters(clip.audio)
            logger.debug(
                "Extracting audio: %s -> %s (%s)", vp.name, out_path, params,
            )

            ffmpeg_params = None
            if params["channels"]:
                ffmpeg_params = ["-ac", str(params["channels"])]

            try:
                clip.audio.write_audiofile(
                    str(out_path),
                    fps=params["sample_rate"],
                    codec=self.codec,
                    bitrate=params["bitrate"],
                    ffmpeg_params=ffmpeg_params,
                    logger=None,       # suppress moviepy's own progress bar
                )
            except (OSError, IOError, ValueError) as exc:
                raise EncodeError(f"Audio encoding failed for {vp}: {exc}") from exc
        finally:
            clip.close()

        if not out_path.exists() or out_path.stat().st_size == 0:
            raise EncodeError(f"Encoder produced no output for {vp}")

        logger.info("Audio extracted: %s (%.1f KB)", out_path.name,
                    out_path.stat().st_size / 1024)
        return str(out_path)

    @staticmethod
    def source_parameters(audio) -> Dict[str, Optional[object]]:
        """Read sample rate, channel count and bit rate from a moviepy audio clip."""
        reader = getattr(audio, "reader", None)
        infos = getattr(reader, "infos", None) or {}
        kbps = infos.get("audio_bitrate") or getattr(reader, "bitrate", None)
        return {
            "sample_rate": getattr(audio, "fps", None),
            "channels": getattr(audio, "nchannels", None),
            "bitrate": f"{int(kbps)}k" if kbps else None,
        }

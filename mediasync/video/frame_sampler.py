"""
Frame Sampler
==============
Decodes every picture of a video's primary video stream using OpenCV.

Each decoded picture is written as a lossless image named by its zero-based
index (``frame_0000.png``, ``frame_0001.png``, ...) and returned with its
presentation timestamp in seconds.  There is no frame skipping: the number
of samples equals the number of pictures the decoder produced.

Timestamps come from ``CAP_PROP_POS_MSEC``, which the FFmpeg backend
derives from the packet pts and the stream time base, so they follow the
container's native timing rather than ``index / fps``.

Dependencies:
    pip install opencv-python
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import List

import cv2
from tqdm import tqdm

from mediasync.errors import DecodeError, FrameExtractionError, NoVideoStream

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FrameSample:
    """A single decoded picture.

    Attributes
    ----------
    index : int
        Zero-based position in decode order.
    timestamp : float
        Presentation timestamp (seconds).
    image_path : str
        Path to the saved frame image.
    """
    index: int
    timestamp: float
    image_path: str


@dataclass(frozen=True)
class VideoInfo:
    fps: float
    frame_count: int
    width: int
    height: int

    @property
    def duration(self) -> float:
        return self.frame_count / self.fps if self.fps > 0 else 0.0


def frame_filename(index: int, image_format: str = "png") -> str:
    return f"frame_{index:04d}.{image_format}"


class FrameSampler:
    """Decode all frames of a video to disk.

    Usage::

        sampler = FrameSampler()
        frames = sampler.sample("clip.mp4", "output_results/clip/frames")
        for f in frames:
            print(f"Frame {f.index} @ {f.timestamp:.3f}s -> {f.image_path}")

    Parameters
    ----------
    image_format : str
        Output image format.  PNG (default) keeps frames lossless for the
        detection backend.
    show_progress : bool
        Show a per-video tqdm bar while decoding.
    """

    def __init__(self, image_format: str = "png", show_progress: bool = False):
        self.image_format = image_format.lower().lstrip(".")
        self.show_progress = show_progress

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def sample(self, video_path: str, output_dir: str) -> List[FrameSample]:
        """Decode *video_path* and write every frame into *output_dir*.

        Returns
        -------
        List[FrameSample]
            One sample per decoded picture, timestamps non-decreasing.

        Raises
        ------
        DecodeError
            The file cannot be opened or no picture could be decoded.
        NoVideoStream
            The container has no video stream.
        FrameExtractionError
            A decoded frame could not be written to disk.
        """
        vp = Path(video_path)
        out_dir = Path(output_dir)
        out_dir.mkdir(parents=True, exist_ok=True)

        cap = cv2.VideoCapture(str(vp))
        if not cap.isOpened():
            raise DecodeError(f"OpenCV could not open video: {vp}")

        try:
            info = self._read_info(cap)
            frames = self._decode_all(cap, vp, out_dir, info)
        finally:
            cap.release()

        if not frames:
            if info.width <= 0 or info.height <= 0:
                raise NoVideoStream(f"No video stream found in {vp}")
            raise DecodeError(f"No decodable pictures in {vp}")

        if info.frame_count and info.frame_count != len(frames):
            # Container frame counts are estimates for many formats.
            logger.debug(
                "%s: container reports %d frames, decoded %d",
                vp.name, info.frame_count, len(frames),
            )

        logger.info("Extracted %d frames from %s", len(frames), vp.name)
        return frames

    def timestamps(self, video_path: str, output_dir: str) -> List[float]:
        """Same as :meth:`sample` but return only the timestamps."""
        return [f.timestamp for f in self.sample(video_path, output_dir)]

    def probe(self, video_path: str) -> VideoInfo:
        """Return stream properties without decoding any picture."""
        cap = cv2.VideoCapture(str(video_path))
        if not cap.isOpened():
            raise DecodeError(f"OpenCV could not open video: {video_path}")
        try:
            return self._read_info(cap)
        finally:
            cap.release()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _read_info(cap) -> VideoInfo:
        return VideoInfo(
            fps=float(cap.get(cv2.CAP_PROP_FPS) or 0.0),
            frame_count=max(0, int(cap.get(cv2.CAP_PROP_FRAME_COUNT) or 0)),
            width=int(cap.get(cv2.CAP_PROP_FRAME_WIDTH) or 0),
            height=int(cap.get(cv2.CAP_PROP_FRAME_HEIGHT) or 0),
        )

    def _decode_all(self, cap, vp: Path, out_dir: Path, info: VideoInfo) -> List[FrameSample]:
        frames: List[FrameSample] = []
        last_ts = 0.0

        logger.info(
            "Decoding frames from %s (%dx%d, %.2f fps, ~%d frames)",
            vp.name, info.width, info.height, info.fps, info.frame_count,
        )

        pbar = tqdm(
            total=info.frame_count or None,
            desc=f"Extracting frames: {vp.name}",
            unit="frame",
            leave=False,
            disable=not self.show_progress,
        )

        try:
            while True:
                try:
                    ok, picture = cap.read()
                except cv2.error as exc:
                    raise DecodeError(f"Decoder failed on {vp.name}: {exc}") from exc
                if not ok or picture is None:
                    break

                timestamp = float(cap.get(cv2.CAP_PROP_POS_MSEC) or 0.0) / 1000.0
                if frames and timestamp < last_ts:
                    # Some demuxers report a stale pts for a picture that
                    # follows a dropped packet.
                    timestamp = last_ts
                last_ts = timestamp

                index = len(frames)
                fpath = out_dir / frame_filename(index, self.image_format)
                if not cv2.imwrite(str(fpath), self._to_bgr24(picture)):
                    raise FrameExtractionError(f"Could not write frame image: {fpath}")

                frames.append(FrameSample(index=index, timestamp=timestamp, image_path=str(fpath)))
                pbar.update(1)
        finally:
            pbar.close()

        return frames

    @staticmethod
    def _to_bgr24(picture):
        """Normalise a decoded picture to 8-bit, 3-channel BGR at source size."""
        if picture.ndim == 2:
            return cv2.cvtColor(picture, cv2.COLOR_GRAY2BGR)
        if picture.shape[2] == 4:
            return cv2.cvtColor(picture, cv2.COLOR_BGRA2BGR)
        return picture

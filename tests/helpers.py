"""Fake media collaborators so the suite needs no real video or model."""

from pathlib import Path

from PIL import Image

from mediasync.errors import DecodeError
from mediasync.video.frame_sampler import FrameSample, frame_filename
from mediasync.video.transcription import AudioSpan


def write_png(path: Path, size=(64, 48)) -> str:
    path.parent.mkdir(parents=True, exist_ok=True)
    Image.new("RGB", size, color=(10, 20, 30)).save(path)
    return str(path)


class FakeFrameSampler:
    """Writes small PNGs instead of decoding; fails for names in *broken*."""

    def __init__(self, timestamps=(0.0, 2.5, 7.5, 12.0), broken=()):
        self.timestamps = list(timestamps)
        self.broken = set(broken)
        self.calls = []

    def sample(self, video_path, output_dir):
        self.calls.append(video_path)
        if Path(video_path).name in self.broken:
            raise DecodeError(f"corrupt stream in {video_path}")
        frames = []
        for i, ts in enumerate(self.timestamps):
            path = write_png(Path(output_dir) / frame_filename(i))
            frames.append(FrameSample(index=i, timestamp=ts, image_path=path))
        return frames


class FakeAudioExtractor:

    def __init__(self, broken=()):
        self.broken = set(broken)

    def extract(self, video_path, destination):
        if Path(video_path).name in self.broken:
            raise OSError("encoder unavailable")
        Path(destination).parent.mkdir(parents=True, exist_ok=True)
        Path(destination).write_bytes(b"\x00" * 16)
        return destination


SAMPLE_SPANS = [AudioSpan(0.0, 5.0, "A"), AudioSpan(5.0, 10.0, "B")]

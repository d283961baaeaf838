"""
Video Loader
=============
Discovers the video assets of a batch run.

Only regular files sitting directly under the input directory are
considered (no recursion).  The extension match is case-insensitive and
the result is sorted by path so every run processes assets in the same
order.
"""

import logging
import os
from pathlib import Path
from typing import Iterable, List

from mediasync.errors import DiscoveryError

logger = logging.getLogger(__name__)


def normalize_extensions(extensions: Iterable[str]) -> set:
    """Lowercase extensions and strip any leading dot (``".MP4"`` -> ``"mp4"``)."""
    return {ext.lower().lstrip(".") for ext in extensions if ext and ext.strip(".")}


def discover_videos(input_dir: str, extensions: Iterable[str]) -> List[Path]:
    """Return the video files directly under *input_dir*.

    Parameters
    ----------
    input_dir : str
        Directory to scan.
    extensions : iterable of str
        Allowed extensions, with or without a leading dot.

    Returns
    -------
    List[Path]
        Matching files, sorted lexicographically by path.

    Raises
    ------
    DiscoveryError
        If *input_dir* does not exist, is not a directory, or cannot be
        listed.
    """
    root = Path(input_dir)
    if not root.exists():
        raise DiscoveryError(f"Input directory does not exist: {root}")
    if not root.is_dir():
        raise DiscoveryError(f"Input path is not a directory: {root}")

    allowed = normalize_extensions(extensions)

    try:
        entries = list(os.scandir(root))
    except OSError as exc:
        raise DiscoveryError(f"Cannot list input directory {root}: {exc}") from exc

    videos: List[Path] = []
    for entry in entries:
        # Skip macOS resource forks.
        if entry.name.startswith("._"):
            continue
        try:
            if not entry.is_file():
                continue
        except OSError:
            logger.debug("Cannot stat %s, skipping", entry.path)
            continue

        suffix = Path(entry.name).suffix.lower().lstrip(".")
        if suffix in allowed:
            videos.append(Path(entry.path))

    videos.sort()
    logger.info("Discovered %d video file(s) under %s", len(videos), root)
    return videos

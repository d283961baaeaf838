"""
Processing Configuration
=========================
Typed settings for the batch pipeline, loaded from ``configs/settings.yaml``.

The file has three sections::

    batch:
      input_directory: input_videos
      output_directory: output_results
      video_extensions: [mp4, avi, mov, mkv, wmv, flv, webm]
      max_concurrent_videos: 4
      skip_existing: true
    models:
      backend: mock
      video_model_path: null
      confidence_threshold: 0.5
      use_gpu: true
    output:
      save_frames: true
      save_audio: true
      output_format: json

Every key is optional; anything missing keeps its dataclass default.
A missing file is not an error (defaults are used and a warning is logged),
but a file that exists and cannot be parsed raises ``ConfigError``.
"""

import logging
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from mediasync.errors import ConfigError

logger = logging.getLogger(__name__)

# Path to the project settings file
SETTINGS_PATH = Path(__file__).resolve().parent.parent / "configs" / "settings.yaml"

DEFAULT_VIDEO_EXTENSIONS = ["mp4", "avi", "mov", "mkv", "wmv", "flv", "webm"]

OUTPUT_FORMATS = {"json", "csv"}


@dataclass
class BatchSettings:
    input_directory: str = "input_videos"
    output_directory: str = "output_results"
    video_extensions: List[str] = field(
        default_factory=lambda: list(DEFAULT_VIDEO_EXTENSIONS)
    )
    max_concurrent_videos: int = 4
    skip_existing: bool = True


@dataclass
class ModelSettings:
    backend: str = "mock"
    video_model_path: Optional[str] = None
    audio_model_path: Optional[str] = None
    confidence_threshold: float = 0.5
    use_gpu: bool = True
    device: str = "CPU"
    transcriber: str = "whisper"
    whisper_model_size: str = "small"
    language: Optional[str] = "en"


@dataclass
class OutputSettings:
    save_frames: bool = True
    save_audio: bool = True
    output_format: str = "json"
    include_timestamps: bool = True


def _section_from_dict(cls, data: Optional[Dict[str, Any]], section: str):
    """Build a settings dataclass, ignoring keys it does not declare."""
    if data is None:
        return cls()
    if not isinstance(data, dict):
        raise ConfigError(f"Section '{section}' must be a mapping, got {type(data).__name__}")

    known = {f.name for f in fields(cls)}
    for key in data:
        if key not in known:
            logger.debug("Ignoring unknown setting %s.%s", section, key)
    return cls(**{k: v for k, v in data.items() if k in known})


@dataclass
class ProcessingConfig:
    """Top-level configuration consumed by ``cli.py`` and the orchestrator.

    Usage::

        config = ProcessingConfig.load_from_file("configs/settings.yaml")
        print(config.batch.input_directory)
        config.save_to_file("my_settings.yaml")
    """

    batch: BatchSettings = field(default_factory=BatchSettings)
    models: ModelSettings = field(default_factory=ModelSettings)
    output: OutputSettings = field(default_factory=OutputSettings)

    def __post_init__(self):
        self.validate()

    def validate(self) -> None:
        """Reject values the pipeline cannot honour."""
        if self.batch.max_concurrent_videos < 1:
            raise ConfigError(
                f"max_concurrent_videos must be >= 1, got {self.batch.max_concurrent_videos}"
            )
        if not 0.0 <= float(self.models.confidence_threshold) <= 1.0:
            raise ConfigError(
                f"confidence_threshold must be in [0, 1], got {self.models.confidence_threshold}"
            )
        fmt = self.output.output_format
        if not isinstance(fmt, str) or fmt.lower() not in OUTPUT_FORMATS:
            raise ConfigError(
                f"Unknown output_format '{self.output.output_format}'. "
                f"Supported: {sorted(OUTPUT_FORMATS)}"
            )

    # ------------------------------------------------------------------
    # Dict conversion
    # ------------------------------------------------------------------

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "ProcessingConfig":
        data = data or {}
        if not isinstance(data, dict):
            raise ConfigError("Settings root must be a mapping")
        return cls(
            batch=_section_from_dict(BatchSettings, data.get("batch"), "batch"),
            models=_section_from_dict(ModelSettings, data.get("models"), "models"),
            output=_section_from_dict(OutputSettings, data.get("output"), "output"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "batch": asdict(self.batch),
            "models": asdict(self.models),
            "output": asdict(self.output),
        }

    # ------------------------------------------------------------------
    # File I/O
    # ------------------------------------------------------------------

    @classmethod
    def load_from_file(cls, path: Optional[str] = None) -> "ProcessingConfig":
        """Load settings from a YAML file.

        Parameters
        ----------
        path : str, optional
            Settings file to read.  Defaults to ``configs/settings.yaml``.

        Returns
        -------
        ProcessingConfig
            Parsed settings, or defaults if the file does not exist.
        """
        settings_path = Path(path) if path else SETTINGS_PATH
        if not settings_path.exists():
            logger.warning("Settings file not found: %s (using defaults)", settings_path)
            return cls()

        try:
            with open(settings_path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as exc:
            raise ConfigError(f"Failed to read settings {settings_path}: {exc}") from exc

        try:
            config = cls.from_dict(data)
        except TypeError as exc:
            raise ConfigError(f"Invalid settings in {settings_path}: {exc}") from exc
        logger.info("Loaded settings from %s", settings_path)
        return config

    def save_to_file(self, path: str) -> str:
        """Write the settings as YAML.  Returns the written path."""
        out_path = Path(path)
        out_path.parent.mkdir(parents=True, exist_ok=True)
        with open(out_path, "w", encoding="utf-8") as f:
            yaml.safe_dump(self.to_dict(), f, sort_keys=False)
        logger.info("Saved settings to %s", out_path)
        return str(out_path)

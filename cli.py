"""
Media Sync -- Command Line Interface
======================================
Entry point for all user-facing operations.

Commands:
  single   -- Run the full pipeline on one video and print the aligned records
  batch    -- Process every video in a directory and write a batch summary
  devices  -- List available OpenVINO hardware devices

Usage examples:
  python cli.py single
  python cli.py single --video talk.mp4 --backend openvino --model-path models/ssd.xml
  python cli.py batch
  python cli.py batch --input-dir videos/ --output-dir results/ --workers 2
  python cli.py batch --config
  python cli.py devices

Design notes:
  - Uses argparse from the standard library (no extra dependencies).
  - Each command maps to a handler function that drives the pipeline.
  - No command (or an unknown one) prints usage and exits 0.
  - Only fatal errors (unreadable input directory, model load failure)
    exit non-zero; a batch with some failed videos still exits 0.
"""

import argparse
import logging
import sys
from pathlib import Path

# ---------------------------------------------------------------------------
# Project root (resolve regardless of where the script is invoked from)
# ---------------------------------------------------------------------------
PROJECT_ROOT = Path(__file__).resolve().parent
sys.path.insert(0, str(PROJECT_ROOT))

from mediasync.config import ProcessingConfig  # noqa: E402
from mediasync.errors import MediaSyncError  # noqa: E402

DEFAULT_SINGLE_VIDEO = "input.mp4"

BATCH_CONFIG_HELP = """
Batch Processing Configuration:
  Create 'input_videos/' directory and place your video files there
  Supported formats: MP4, AVI, MOV, MKV, WMV, FLV, WEBM
  Results will be saved to 'output_results/' directory
  Each video gets its own subdirectory with:
    - frames/ (extracted frames)
    - audio.aac (extracted audio)
    - results.json (synchronized analysis results)
  A batch_summary.txt / batch_summary.json report is written at the top level
  Settings are read from configs/settings.yaml (override with --settings)
"""


def setup_logging(verbose: bool = False) -> None:
    """Configure root logger."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


def load_config(args: argparse.Namespace) -> ProcessingConfig:
    """Read settings and apply command-line overrides."""
    config = ProcessingConfig.load_from_file(getattr(args, "settings", None))
    if getattr(args, "input_dir", None):
        config.batch.input_directory = args.input_dir
    if getattr(args, "output_dir", None):
        config.batch.output_directory = args.output_dir
    if getattr(args, "workers", None):
        config.batch.max_concurrent_videos = args.workers
    if getattr(args, "backend", None):
        config.models.backend = args.backend
    if getattr(args, "model_path", None):
        config.models.video_model_path = args.model_path
    if getattr(args, "transcriber", None):
        config.models.transcriber = args.transcriber
    if getattr(args, "no_skip_existing", False):
        config.batch.skip_existing = False
    config.validate()
    return config


# ===================================================================
# Command handlers
# ===================================================================

def cmd_single(args: argparse.Namespace) -> None:
    """
    Single-video pipeline: frames -> detection -> audio -> transcript -> sync.
    """
    from mediasync.batch.orchestrator import BatchOrchestrator
    from mediasync.sync.synchronizer import format_records

    config = load_config(args)
    # A single run always recomputes its results.
    config.batch.skip_existing = False

    logging.info("=== SINGLE VIDEO PIPELINE START (%s) ===", args.video)
    orchestrator = BatchOrchestrator(config, show_progress=False)
    outcome = orchestrator.process_single(args.video, output_dir=config.batch.output_directory)

    if not outcome.success:
        print(f"Processing failed: {outcome.error}")
        return

    print(format_records(outcome.records))
    print(
        f"Processing completed successfully!\n"
        f"  Frames processed:  {outcome.frame_count}\n"
        f"  Audio segments:    {outcome.audio_segment_count}\n"
        f"  Time:              {outcome.duration:.2f}s"
    )


def cmd_batch(args: argparse.Namespace) -> None:
    """Batch pipeline over a directory of videos."""
    if args.show_config:
        print(BATCH_CONFIG_HELP)
        return

    from mediasync.batch.orchestrator import BatchOrchestrator

    config = load_config(args)
    batch = config.batch

    print("Batch Configuration:")
    print(f"  Input directory:      {batch.input_directory}")
    print(f"  Output directory:     {batch.output_directory}")
    print(f"  Supported extensions: {', '.join(batch.video_extensions)}")
    print(f"  Max concurrent:       {batch.max_concurrent_videos}\n")

    orchestrator = BatchOrchestrator(config, show_progress=not args.no_progress)
    report = orchestrator.run()

    print(f"\n{'='*60}")
    print("Batch Processing Complete")
    print(f"{'='*60}")
    print(f"Total videos: {report.total}")
    print(f"Successful:   {report.successful}")
    print(f"Failed:       {report.failed}")
    print(f"Total time:   {report.total_time:.2f}s")
    if report.total:
        print(f"Average time per video: {report.average_time:.2f}s")
    print(f"\nResults saved to {batch.output_directory}/")
    print("Check batch_summary.txt for detailed report.")


def cmd_devices(args: argparse.Namespace) -> None:
    """List available OpenVINO devices."""
    from mediasync.detection.device_manager import DeviceManager

    print(f"\n{'='*60}")
    print("OpenVINO Device Discovery")
    print(f"{'='*60}\n")
    dm = DeviceManager()
    devices = dm.list_devices()
    if devices:
        for d in devices:
            props = dm.device_properties(d)
            name = props.get("FULL_DEVICE_NAME", "")
            print(f"  {d:8s}  {name}")
    else:
        print("  No devices found.  Is openvino installed?")
        print("  Install: pip install openvino")
    print(f"\n{'='*60}")


# ===================================================================
# Argument parser
# ===================================================================

def _add_model_options(p: argparse.ArgumentParser) -> None:
    p.add_argument(
        "--settings",
        type=str,
        default=None,
        help="Settings YAML file (default: configs/settings.yaml)",
    )
    p.add_argument(
        "--output-dir",
        type=str,
        dest="output_dir",
        help="Directory for frames, audio and results",
    )
    p.add_argument(
        "--backend",
        type=str,
        help="Detection backend: mock, openvino or onnx (unknown names fall back to mock)",
    )
    p.add_argument(
        "--model-path",
        type=str,
        dest="model_path",
        help="Detection model (.xml or .onnx) for the openvino backend",
    )
    p.add_argument(
        "--transcriber",
        type=str,
        help="Transcriber: whisper or static",
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="media-sync",
        description=(
            "Multi-modal video analysis: per-frame object detection aligned "
            "with the audio transcript."
        ),
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable debug logging",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # -- single --
    p_single = subparsers.add_parser(
        "single",
        help="Process one video and print the synchronized results",
    )
    p_single.add_argument(
        "--video",
        type=str,
        default=DEFAULT_SINGLE_VIDEO,
        help=f"Video to process (default: {DEFAULT_SINGLE_VIDEO})",
    )
    _add_model_options(p_single)
    p_single.set_defaults(func=cmd_single)

    # -- batch --
    p_batch = subparsers.add_parser(
        "batch",
        help="Process every video in the input directory",
    )
    p_batch.add_argument(
        "--config",
        action="store_true",
        dest="show_config",
        help="Show the batch directory conventions and exit",
    )
    p_batch.add_argument(
        "--input-dir",
        type=str,
        dest="input_dir",
        help="Directory containing the videos",
    )
    p_batch.add_argument(
        "--workers",
        type=int,
        help="Videos processed in parallel (overrides max_concurrent_videos)",
    )
    p_batch.add_argument(
        "--no-skip-existing",
        action="store_true",
        dest="no_skip_existing",
        help="Reprocess videos that already have results",
    )
    p_batch.add_argument(
        "--no-progress",
        action="store_true",
        dest="no_progress",
        help="Disable progress bars",
    )
    _add_model_options(p_batch)
    p_batch.set_defaults(func=cmd_batch)

    # -- devices --
    p_devices = subparsers.add_parser(
        "devices",
        help="List available OpenVINO hardware devices",
    )
    p_devices.set_defaults(func=cmd_devices)

    return parser


# ===================================================================
# Main entry point
# ===================================================================

def main(argv=None) -> int:
    parser = build_parser()
    argv = list(sys.argv[1:] if argv is None else argv)

    commands = {"single", "batch", "devices"}
    positional = [a for a in argv if not a.startswith("-")]
    if not positional or positional[0] not in commands:
        if any(a in ("-h", "--help") for a in argv):
            parser.parse_args(argv)
        parser.print_help()
        return 0

    args = parser.parse_args(argv)
    setup_logging(verbose=getattr(args, "verbose", False))

    try:
        args.func(args)
    except KeyboardInterrupt:
        print("\nInterrupted by user.")
        return 130
    except MediaSyncError as exc:
        logging.error("Command failed: %s", exc)
        return 1
    except Exception as exc:
        logging.error("Command failed: %s", exc, exc_info=True)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())

"""
Batch progress bars (tqdm).

One bar counts finished videos; the postfix shows the stage of the most
recently updated asset.  Bars are disabled entirely when ``enabled`` is
False, which is what tests and non-interactive runs use.
"""

from tqdm import tqdm


class BatchProgress:

    def __init__(self, total_videos: int, enabled: bool = True):
        self.main_bar = tqdm(
            total=total_videos,
            desc="Videos",
            unit="video",
            disable=not enabled,
        )

    def start_video(self, video_name: str) -> None:
        self.main_bar.set_postfix_str(f"Processing {video_name}")

    def update_stage(self, video_name: str, step: str) -> None:
        self.main_bar.set_postfix_str(f"{video_name}: {step}")

    def finish_video(self, video_name: str, success: bool) -> None:
        mark = "done" if success else "FAILED"
        self.main_bar.set_postfix_str(f"{video_name}: {mark}")
        self.main_bar.update(1)

    def finish(self) -> None:
        self.main_bar.set_postfix_str("Batch processing complete")
        self.main_bar.close()

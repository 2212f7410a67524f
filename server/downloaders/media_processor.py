"""Two-stage media pipeline: yt-dlp fetch, then optional ffmpeg transcode.

Each job runs in its own scratch directory ``<processing>/<job_id>/``:

1. Fetch (0-50%): yt-dlp downloads the best stream within the requested
   height into ``video.<ext>``.
2. Transform (50-95%): ffmpeg re-encodes into ``<downloads>/<job_id>.<fmt>``
   when watermark removal is requested or the fetched container differs
   from the requested format. Otherwise the file is moved into place.

The scratch directory is always removed afterwards.
"""
import errno
import logging
import os
import shutil
from typing import List, Optional

from server.config import config as default_config
from server.temp_manager import TempManager
from server.video_processor import VideoProcessor

from .exceptions import (
    DownloadError,
    ProcessFailedError,
    ProcessStartError,
    StorageFullError,
)
from .process_runner import STAGE_FETCH, classify_failure, run_process
from .progress_tracker import (
    ProgressTracker,
    fetch_progress,
    parse_destination,
    parse_download_percent,
)
from .types import ProcessingOptions, ProcessingResult, ProgressCallback

logger = logging.getLogger(__name__)

FETCH_STEM = "video"

QUALITY_SELECTORS = {
    "360p": "best[height<=360]",
    "720p": "best[height<=720]",
    "1080p": "best[height<=1080]",
}


def quality_to_format_selector(quality: Optional[str]) -> str:
    """Map a requested quality to a yt-dlp format selector.

    360p, 720p and 1080p cap the height; anything else (original, best,
    unknown values) selects the unconstrained best stream.
    """
    return QUALITY_SELECTORS.get(quality, "best")


def needs_transform(fetched_path: str, options: ProcessingOptions) -> bool:
    """Whether the fetched file has to go through ffmpeg."""
    fetched_ext = os.path.splitext(fetched_path)[1].lstrip(".").lower()
    return options.remove_watermark or fetched_ext != options.format


class MediaProcessor:
    """Runs the fetch/transform pipeline for one job at a time.

    Example:
        processor = MediaProcessor()
        result = await processor.process(
            job_id, url, ProcessingOptions(quality="720p"),
            on_progress=lambda percent, message: print(percent, message),
        )
        print(result.download_url)
    """

    def __init__(
        self,
        downloads_dir: Optional[str] = None,
        processing_dir: Optional[str] = None,
        ytdlp_binary: Optional[str] = None,
        ffmpeg_binary: Optional[str] = None,
    ):
        self.downloads_dir = downloads_dir or default_config.downloads_dir
        self.processing_dir = processing_dir or default_config.processing_dir
        self.ytdlp_binary = ytdlp_binary or default_config.YTDLP_BINARY
        self.ffmpeg_binary = ffmpeg_binary or default_config.FFMPEG_BINARY

    def output_path(self, job_id: str, output_format: str) -> str:
        return os.path.join(self.downloads_dir, f"{job_id}.{output_format}")

    def build_fetch_command(self, url: str, quality: str, output_dir: str) -> List[str]:
        output_template = os.path.join(output_dir, f"{FETCH_STEM}.%(ext)s")
        return [
            self.ytdlp_binary,
            "--format", quality_to_format_selector(quality),
            "--output", output_template,
            "--no-playlist",
            "--newline",
            url,
        ]

    async def fetch(
        self,
        url: str,
        quality: str,
        scratch: TempManager,
        progress: ProgressTracker,
        job_id: Optional[str] = None,
    ) -> str:
        """Download the source video into the scratch directory.

        Returns:
            Path of the fetched file

        Raises:
            PrivateOrUnavailableError: The source refused access
            UnsupportedURLError: yt-dlp does not recognise the URL
            ProcessStartError: yt-dlp could not be launched
            ProcessFailedError: Any other non-zero exit or missing output
        """
        destination = {"path": None}

        def on_line(line: str, stream: str) -> None:
            if stream == "stderr":
                logger.debug(f"[{job_id}] yt-dlp stderr: {line}")
                return
            announced = parse_destination(line)
            if announced:
                destination["path"] = announced
                return
            percent = parse_download_percent(line)
            if percent is not None:
                progress.update(fetch_progress(percent), "Downloading video...")

        cmd = self.build_fetch_command(url, quality, scratch.temp_dir)
        logger.info(f"[{job_id}] Running yt-dlp with args: {' '.join(cmd[1:])}")

        try:
            output = await run_process(cmd, on_line=on_line)
        except ProcessStartError as e:
            raise ProcessStartError(f"Failed to start yt-dlp: {e.message}", url=url, job_id=job_id) from e

        if output.returncode != 0:
            logger.warning(f"[{job_id}] yt-dlp stderr: {output.stderr.strip()}")
            classified = classify_failure(output.stderr, url=url, stage=STAGE_FETCH)
            if classified is not None:
                classified.job_id = job_id
                raise classified
            raise ProcessFailedError(
                f"yt-dlp exited with code {output.returncode}",
                returncode=output.returncode,
                stderr=output.stderr,
                url=url,
                job_id=job_id,
            )

        announced = destination["path"]
        if announced and os.path.basename(announced).startswith(f"{FETCH_STEM}.") and os.path.isfile(announced):
            return announced

        found = scratch.find_file(f"{FETCH_STEM}.")
        if found:
            return found
        raise ProcessFailedError("Downloaded video file not found", url=url, job_id=job_id)

    async def process(
        self,
        job_id: str,
        url: str,
        options: ProcessingOptions,
        on_progress: Optional[ProgressCallback] = None,
    ) -> ProcessingResult:
        """Fetch and (optionally) transcode a video for a job.

        Args:
            job_id: Job identifier; names the scratch dir and output file
            url: Source URL
            options: Requested quality, watermark removal and format
            on_progress: Receives (percent, message) updates

        Returns:
            ProcessingResult with output path, size and download URL

        Raises:
            DownloadError: Any classified pipeline failure
        """
        progress = ProgressTracker(on_update=on_progress, job_id=job_id)
        output_path = self.output_path(job_id, options.format)

        logger.info(f"[{job_id}] Starting download: {url}")

        try:
            with TempManager(self.processing_dir, job_id) as scratch:
                progress.update(10, "Initializing download...")
                fetched = await self.fetch(url, options.quality, scratch, progress, job_id)

                os.makedirs(self.downloads_dir, exist_ok=True)
                if needs_transform(fetched, options):
                    progress.update(50, "Processing video...")
                    await VideoProcessor(
                        fetched,
                        output_path,
                        output_format=options.format,
                        remove_watermark=options.remove_watermark,
                        ffmpeg_binary=self.ffmpeg_binary,
                        on_progress=progress.update,
                        job_id=job_id,
                    ).process()
                else:
                    shutil.move(fetched, output_path)

            file_size = os.path.getsize(output_path)
        except DownloadError as e:
            if e.job_id is None:
                e.job_id = job_id
            logger.error(f"[{job_id}] Failed to process video: {e.message}")
            raise
        except OSError as e:
            logger.error(f"[{job_id}] Failed to process video: {e}")
            if e.errno == errno.ENOSPC:
                raise StorageFullError(str(e), url=url, job_id=job_id) from e
            raise ProcessFailedError(str(e), url=url, job_id=job_id) from e

        progress.update(100, "Download complete!")
        logger.info(f"[{job_id}] Successfully processed video ({file_size} bytes)")

        return ProcessingResult(
            file_path=output_path,
            file_size=file_size,
            download_url=f"/downloads/{job_id}.{options.format}",
        )


__all__ = [
    "MediaProcessor",
    "quality_to_format_selector",
    "needs_transform",
]

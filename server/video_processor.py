"""Video transcoding module using ffmpeg."""
import logging
from pathlib import Path
from typing import Callable, List, Optional

from server.config import config
from server.downloaders.exceptions import ProcessFailedError, ProcessStartError
from server.downloaders.process_runner import STAGE_TRANSFORM, classify_failure, run_process
from server.downloaders.progress_tracker import (
    parse_ffmpeg_duration,
    parse_ffmpeg_time,
    transform_progress,
)

logger = logging.getLogger(__name__)

# Blank fixed 100x50 regions, 10px in from the top-left and bottom-left corners
WATERMARK_FILTERS = [
    "delogo=x=10:y=10:w=100:h=50",
    "delogo=x=10:y=h-60:w=100:h=50",
]


def build_ffmpeg_command(
    input_path: str,
    output_path: str,
    output_format: str = "mp4",
    remove_watermark: bool = True,
    ffmpeg_binary: str = "ffmpeg",
) -> List[str]:
    """Build the ffmpeg argument list for a transcode.

    Args:
        input_path: Fetched source file
        output_path: Destination file
        output_format: mp4, webm or avi
        remove_watermark: Add the corner blanking filter chain
        ffmpeg_binary: ffmpeg executable

    Returns:
        Full command including the executable
    """
    cmd = [ffmpeg_binary, "-i", str(input_path)]

    if output_format == "webm":
        # VP9 constant quality needs an unconstrained bitrate
        cmd += ["-c:v", "libvpx-vp9", "-crf", "23", "-b:v", "0"]
        cmd += ["-c:a", "libvorbis", "-b:a", "128k"]
    else:
        cmd += ["-c:v", "libx264", "-preset", "medium", "-crf", "23"]
        cmd += ["-c:a", "aac", "-b:a", "128k"]

    if remove_watermark:
        cmd += ["-vf", ",".join(WATERMARK_FILTERS)]

    cmd += ["-y", str(output_path)]
    return cmd


class VideoProcessor:
    """Re-encode a fetched video and optionally blank watermark corners.

    Progress is parsed from ffmpeg's stderr: the ``Duration:`` header gives
    the total length and each ``time=`` status line the encoded position,
    mapped into the 50-95% band.
    """

    def __init__(
        self,
        input_path: str,
        output_path: str,
        output_format: str = "mp4",
        remove_watermark: bool = True,
        ffmpeg_binary: Optional[str] = None,
        on_progress: Optional[Callable[[float, str], None]] = None,
        job_id: Optional[str] = None,
    ):
        """Initialize video processor.

        Args:
            input_path: Path to input video file
            output_path: Path for processed output video
            output_format: Target container
            remove_watermark: Blank the watermark regions
            ffmpeg_binary: ffmpeg executable (defaults to config)
            on_progress: Called with (percent, message)
            job_id: Job identifier for log messages
        """
        self.input_path = Path(input_path)
        self.output_path = Path(output_path)
        self.output_format = output_format
        self.remove_watermark = remove_watermark
        self.ffmpeg_binary = ffmpeg_binary or config.FFMPEG_BINARY
        self.on_progress = on_progress
        self.job_id = job_id
        self._total_seconds: Optional[int] = None

    def build_command(self) -> List[str]:
        return build_ffmpeg_command(
            str(self.input_path),
            str(self.output_path),
            output_format=self.output_format,
            remove_watermark=self.remove_watermark,
            ffmpeg_binary=self.ffmpeg_binary,
        )

    def _on_line(self, line: str, stream: str) -> None:
        if stream != "stderr":
            return

        duration = parse_ffmpeg_duration(line)
        if duration is not None and self._total_seconds is None:
            self._total_seconds = duration
            return

        current = parse_ffmpeg_time(line)
        if current is not None and self._total_seconds and self.on_progress:
            self.on_progress(
                transform_progress(current, self._total_seconds),
                "Processing video...",
            )

    async def process(self) -> Path:
        """Run the transcode.

        Returns:
            Path of the written output file

        Raises:
            ProcessStartError: If ffmpeg cannot be launched
            ProcessFailedError: If ffmpeg exits with a non-zero status
        """
        if not self.input_path.exists():
            raise ProcessFailedError(f"Input file not found: {self.input_path}")

        # Ensure output directory exists
        self.output_path.parent.mkdir(parents=True, exist_ok=True)

        cmd = self.build_command()
        logger.info(f"[{self.job_id}] Running FFmpeg with args: {' '.join(cmd[1:])}")

        try:
            output = await run_process(cmd, on_line=self._on_line)
        except ProcessStartError as e:
            raise ProcessStartError(f"Failed to start FFmpeg: {e.message}") from e

        if output.returncode != 0:
            logger.error(f"[{self.job_id}] ffmpeg failed with code {output.returncode}")
            logger.debug(f"[{self.job_id}] ffmpeg stderr: {output.stderr[-2000:]}")
            classified = classify_failure(output.stderr, stage=STAGE_TRANSFORM)
            if classified is not None:
                raise classified
            raise ProcessFailedError(
                f"FFmpeg exited with code {output.returncode}",
                returncode=output.returncode,
                stderr=output.stderr,
            )

        logger.info(f"[{self.job_id}] Video processed successfully: {self.output_path}")
        return self.output_path

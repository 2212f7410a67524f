"""Tests for the fetch/transform media pipeline.

External processes are never started: ``run_process`` is patched with
fakes that write the files yt-dlp and ffmpeg would produce.
"""
import os
from unittest.mock import AsyncMock, patch

import pytest

from server.downloaders.exceptions import (
    PrivateVideoError,
    ProcessFailedError,
    ProcessStartError,
    StorageFullError,
    UnsupportedURLError,
)
from server.downloaders.media_processor import (
    MediaProcessor,
    needs_transform,
    quality_to_format_selector,
)
from server.downloaders.process_runner import ProcessOutput
from server.downloaders.progress_tracker import (
    ProgressTracker,
    fetch_progress,
    parse_destination,
    parse_download_percent,
    parse_ffmpeg_duration,
    parse_ffmpeg_time,
    transform_progress,
)
from server.downloaders.types import ProcessingOptions
from server.video_processor import build_ffmpeg_command

URL = "https://www.tiktok.com/@user/video/7234567890"


def fake_ytdlp(ext="mp4", returncode=0, stderr=""):
    """Build a run_process replacement that behaves like a yt-dlp fetch."""
    async def run(args, timeout=None, max_buffer=None, on_line=None):
        template = args[args.index("--output") + 1]
        path = template.replace("%(ext)s", ext)
        if returncode == 0:
            with open(path, "wb") as f:
                f.write(b"x" * 64)
            if on_line:
                on_line(f"[download] Destination: {path}", "stdout")
                on_line("[download]  42.0% of 10.00MiB at 1.00MiB/s ETA 00:05", "stdout")
                on_line("[download] 100% of 10.00MiB in 00:10", "stdout")
        return ProcessOutput(returncode=returncode, stdout="", stderr=stderr)
    return run


def fake_ffmpeg(returncode=0, stderr=""):
    """Build a run_process replacement that behaves like an ffmpeg transcode."""
    async def run(args, timeout=None, max_buffer=None, on_line=None):
        if returncode == 0:
            with open(args[-1], "wb") as f:
                f.write(b"y" * 32)
            if on_line:
                on_line("  Duration: 00:00:10.00, start: 0.000000, bitrate: 1000 kb/s", "stderr")
                on_line("frame=  100 fps=50 q=28.0 size=256kB time=00:00:05.00 bitrate=400kbits/s", "stderr")
        return ProcessOutput(returncode=returncode, stdout="", stderr=stderr)
    return run


@pytest.fixture
def processor(settings):
    return MediaProcessor(
        downloads_dir=settings.downloads_dir,
        processing_dir=settings.processing_dir,
        ytdlp_binary="yt-dlp",
        ffmpeg_binary="ffmpeg",
    )


class TestFormatSelection:
    """Tests for quality selector mapping and transform decisions."""

    @pytest.mark.parametrize("quality,selector", [
        ("360p", "best[height<=360]"),
        ("720p", "best[height<=720]"),
        ("1080p", "best[height<=1080]"),
        ("original", "best"),
        ("best", "best"),
        ("8K", "best"),
        (None, "best"),
    ])
    def test_quality_to_format_selector(self, quality, selector):
        assert quality_to_format_selector(quality) == selector

    def test_needs_transform_for_watermark(self):
        assert needs_transform("/s/video.mp4", ProcessingOptions(remove_watermark=True, format="mp4"))

    def test_needs_transform_for_container_change(self):
        assert needs_transform("/s/video.webm", ProcessingOptions(remove_watermark=False, format="mp4"))

    def test_no_transform_when_container_matches(self):
        assert not needs_transform("/s/video.mp4", ProcessingOptions(remove_watermark=False, format="mp4"))

    def test_fetch_command(self, processor):
        cmd = processor.build_fetch_command(URL, "720p", "/scratch/job")
        assert cmd == [
            "yt-dlp",
            "--format", "best[height<=720]",
            "--output", os.path.join("/scratch/job", "video.%(ext)s"),
            "--no-playlist",
            "--newline",
            URL,
        ]


class TestFfmpegCommand:
    """Tests for build_ffmpeg_command()."""

    def test_mp4_with_watermark_removal(self):
        cmd = build_ffmpeg_command("in.webm", "out.mp4", "mp4", True)
        assert cmd == [
            "ffmpeg", "-i", "in.webm",
            "-c:v", "libx264", "-preset", "medium", "-crf", "23",
            "-c:a", "aac", "-b:a", "128k",
            "-vf", "delogo=x=10:y=10:w=100:h=50,delogo=x=10:y=h-60:w=100:h=50",
            "-y", "out.mp4",
        ]

    def test_webm_uses_vp9_and_vorbis(self):
        cmd = build_ffmpeg_command("in.mp4", "out.webm", "webm", False)
        assert cmd[cmd.index("-c:v") + 1] == "libvpx-vp9"
        assert cmd[cmd.index("-c:a") + 1] == "libvorbis"
        assert "-vf" not in cmd
        assert cmd[-2:] == ["-y", "out.webm"]


class TestProgressParsing:
    """Tests for progress marker parsing and band mapping."""

    def test_download_percent(self):
        assert parse_download_percent("[download]  42.5% of 10MiB") == 42.5
        assert parse_download_percent("[youtube] Extracting URL") is None

    def test_destination(self):
        assert parse_destination("[download] Destination: /tmp/x/video.mp4") == "/tmp/x/video.mp4"
        assert parse_destination('[Merger] Merging formats into "/tmp/x/video.mkv"') == "/tmp/x/video.mkv"
        assert parse_destination("[download] /tmp/x/video.mp4 has already been downloaded") == "/tmp/x/video.mp4"

    def test_ffmpeg_markers(self):
        assert parse_ffmpeg_duration("Duration: 01:02:03.45, start") == 3723
        assert parse_ffmpeg_time("size=1kB time=00:00:30.00 bitrate") == 30

    def test_bands(self):
        assert fetch_progress(42.0) == 21.0
        assert fetch_progress(100.0) == 50.0
        assert transform_progress(5, 10) == 72.5
        assert transform_progress(20, 10) == 95.0

    def test_tracker_is_monotonic_and_clamped(self):
        seen = []
        tracker = ProgressTracker(on_update=lambda p, m: seen.append(p), min_update_interval=0)
        tracker.update(40, "a")
        tracker.update(30, "b")
        tracker.update(150, "c")
        assert seen == [40.0, 40.0, 100.0]


class TestProcess:
    """Tests for MediaProcessor.process()."""

    @pytest.mark.asyncio
    async def test_move_without_transform(self, processor, settings):
        updates = []
        with patch("server.downloaders.media_processor.run_process", new=fake_ytdlp("mp4")), \
                patch("server.video_processor.run_process", new=AsyncMock()) as ffmpeg:
            result = await processor.process(
                "job-1", URL, ProcessingOptions(remove_watermark=False, format="mp4"),
                on_progress=lambda p, m: updates.append((p, m)),
            )

        ffmpeg.assert_not_awaited()
        assert result.file_path == os.path.join(settings.downloads_dir, "job-1.mp4")
        assert result.download_url == "/downloads/job-1.mp4"
        assert result.file_size == 64
        assert os.path.exists(result.file_path)
        assert not os.path.exists(os.path.join(settings.processing_dir, "job-1"))

        percents = [p for p, _ in updates]
        assert percents == sorted(percents)
        assert updates[0] == (10.0, "Initializing download...")
        assert updates[-1] == (100.0, "Download complete!")
        assert 21.0 in percents

    @pytest.mark.asyncio
    async def test_transform_with_watermark_removal(self, processor, settings):
        updates = []
        ffmpeg = fake_ffmpeg()
        with patch("server.downloaders.media_processor.run_process", new=fake_ytdlp("webm")), \
                patch("server.video_processor.run_process", new=ffmpeg):
            result = await processor.process(
                "job-2", URL, ProcessingOptions(remove_watermark=True, format="mp4"),
                on_progress=lambda p, m: updates.append((p, m)),
            )

        assert result.file_size == 32
        assert (50.0, "Processing video...") in updates
        assert (72.5, "Processing video...") in updates
        assert updates[-1][0] == 100.0
        assert not os.path.exists(os.path.join(settings.processing_dir, "job-2"))

    @pytest.mark.asyncio
    async def test_private_video(self, processor, settings):
        run = fake_ytdlp(returncode=1, stderr="ERROR: [tiktok] 123: Private video. Sign in")
        with patch("server.downloaders.media_processor.run_process", new=run):
            with pytest.raises(PrivateVideoError) as exc_info:
                await processor.process("job-3", URL, ProcessingOptions())

        assert exc_info.value.job_id == "job-3"
        assert not os.path.exists(os.path.join(settings.processing_dir, "job-3"))

    @pytest.mark.asyncio
    async def test_unsupported_url(self, processor):
        run = fake_ytdlp(returncode=1, stderr="ERROR: Unsupported URL: https://example.com")
        with patch("server.downloaders.media_processor.run_process", new=run):
            with pytest.raises(UnsupportedURLError):
                await processor.process("job-4", URL, ProcessingOptions())

    @pytest.mark.asyncio
    async def test_generic_fetch_failure(self, processor):
        run = fake_ytdlp(returncode=2, stderr="ERROR: something odd")
        with patch("server.downloaders.media_processor.run_process", new=run):
            with pytest.raises(ProcessFailedError) as exc_info:
                await processor.process("job-5", URL, ProcessingOptions())

        assert exc_info.value.message == "yt-dlp exited with code 2"
        assert exc_info.value.returncode == 2

    @pytest.mark.asyncio
    async def test_read_timeout_during_fetch_is_not_extraction_timeout(self, processor):
        stderr = "ERROR: [download] Got error: The read operation timed out. Read timeout"
        run = fake_ytdlp(returncode=1, stderr=stderr)
        with patch("server.downloaders.media_processor.run_process", new=run):
            with pytest.raises(ProcessFailedError) as exc_info:
                await processor.process("job-fetch-timeout", URL, ProcessingOptions())

        assert exc_info.value.message == "yt-dlp exited with code 1"

    @pytest.mark.asyncio
    async def test_fetch_tool_missing(self, processor):
        run = AsyncMock(side_effect=ProcessStartError("yt-dlp is not installed or not in PATH"))
        with patch("server.downloaders.media_processor.run_process", new=run):
            with pytest.raises(ProcessStartError) as exc_info:
                await processor.process("job-6", URL, ProcessingOptions())

        assert exc_info.value.message.startswith("Failed to start yt-dlp")

    @pytest.mark.asyncio
    async def test_transcode_failure(self, processor):
        with patch("server.downloaders.media_processor.run_process", new=fake_ytdlp("mp4")), \
                patch("server.video_processor.run_process", new=fake_ffmpeg(returncode=1, stderr="Conversion failed!")):
            with pytest.raises(ProcessFailedError) as exc_info:
                await processor.process("job-7", URL, ProcessingOptions(remove_watermark=True))

        assert exc_info.value.message == "FFmpeg exited with code 1"

    @pytest.mark.asyncio
    async def test_transcode_out_of_space(self, processor):
        stderr = "Title: Private video compilation\nav_interleaved_write_frame(): No space left on device"
        with patch("server.downloaders.media_processor.run_process", new=fake_ytdlp("mp4")), \
                patch("server.video_processor.run_process", new=fake_ffmpeg(returncode=1, stderr=stderr)):
            with pytest.raises(StorageFullError):
                await processor.process("job-8", URL, ProcessingOptions(remove_watermark=True))

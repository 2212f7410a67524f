"""Shared fixtures for unit and integration tests."""
import asyncio
import os
from typing import List, Optional

import pytest

from server.config import AppConfig
from server.downloaders.types import ProcessingResult


@pytest.fixture
def settings(tmp_path) -> AppConfig:
    """Configuration rooted in a per-test temp directory, with no retry delay."""
    return AppConfig(
        ENVIRONMENT="test",
        TEMP_DIR=str(tmp_path / "temp"),
        YTDLP_BINARY="yt-dlp-missing-for-tests",
        FFMPEG_BINARY="ffmpeg-missing-for-tests",
        JOB_RETRY_DELAY=0.0,
        RATE_LIMIT_REQUESTS=1000,
    )


class FakeProcessor:
    """Stand-in for MediaProcessor that writes a small output file.

    Args:
        downloads_dir: Where outputs are written
        failures: Number of leading calls that raise ``error``
        error: Exception raised by the failing calls
        gate: Optional event awaited before each run completes
    """

    def __init__(
        self,
        downloads_dir: str,
        failures: int = 0,
        error: Optional[Exception] = None,
        gate: Optional[asyncio.Event] = None,
    ):
        self.downloads_dir = downloads_dir
        self.failures = failures
        self.error = error or RuntimeError("boom")
        self.gate = gate
        self.calls: List[str] = []
        self.started = asyncio.Event()

    async def process(self, job_id, url, options, on_progress=None):
        self.calls.append(job_id)
        self.started.set()
        if on_progress:
            on_progress(10, "Initializing download...")
        if self.gate is not None:
            await self.gate.wait()
        if len(self.calls) <= self.failures:
            raise self.error
        os.makedirs(self.downloads_dir, exist_ok=True)
        path = os.path.join(self.downloads_dir, f"{job_id}.{options.format}")
        with open(path, "wb") as f:
            f.write(b"video-bytes")
        if on_progress:
            on_progress(100, "Download complete!")
        return ProcessingResult(
            file_path=path,
            file_size=len(b"video-bytes"),
            download_url=f"/downloads/{job_id}.{options.format}",
        )


@pytest.fixture
def fake_processor_factory(settings):
    def factory(**kwargs) -> FakeProcessor:
        return FakeProcessor(settings.downloads_dir, **kwargs)
    return factory

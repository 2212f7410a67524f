"""Async wrapper around external command-line tools.

Every invocation of yt-dlp and ffmpeg goes through ``run_process``. It
streams stdout/stderr without blocking the event loop, enforces optional
timeout and output-size bounds, and hands each output line to a callback
so callers can parse progress markers as they arrive.

``classify_failure`` is the single place where a tool's error text is
turned into an exception of the closed hierarchy in ``exceptions``; no
other module inspects raw failure text.
"""
import asyncio
import codecs
import logging
import re
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence

from .exceptions import (
    DownloadError,
    ExtractionTimeoutError,
    PrivateVideoError,
    ProcessFailedError,
    ProcessStartError,
    StorageFullError,
    UnsupportedURLError,
    VideoUnavailableError,
)

logger = logging.getLogger(__name__)

CHUNK_SIZE = 4096

# ffmpeg rewrites its status line with carriage returns
_LINE_BREAK = re.compile(r"[\r\n]")

STORAGE_FULL_MARKER = "No space left on device"

# Which tool run produced the failure text
STAGE_EXTRACT = "extract"
STAGE_FETCH = "fetch"
STAGE_TRANSFORM = "transform"

# (substring, exception class) per stage; first match wins, compared
# case-sensitively. ffmpeg echoes source metadata, so the transform stage
# only recognises filesystem exhaustion.
FAILURE_MARKERS = {
    STAGE_EXTRACT: (
        ("Private video", PrivateVideoError),
        ("Video unavailable", VideoUnavailableError),
        ("not available", VideoUnavailableError),
        ("Unsupported URL", UnsupportedURLError),
        (STORAGE_FULL_MARKER, StorageFullError),
    ),
    STAGE_FETCH: (
        ("Private video", PrivateVideoError),
        ("Video unavailable", VideoUnavailableError),
        ("Unsupported URL", UnsupportedURLError),
        (STORAGE_FULL_MARKER, StorageFullError),
    ),
    STAGE_TRANSFORM: (
        (STORAGE_FULL_MARKER, StorageFullError),
    ),
}


LineCallback = Callable[[str, str], None]


@dataclass
class ProcessOutput:
    """Captured result of a finished process.

    Attributes:
        returncode: Exit status
        stdout: Full decoded stdout
        stderr: Full decoded stderr
    """
    returncode: int
    stdout: str
    stderr: str


class _LineSplitter:
    """Reassembles lines from arbitrarily split output chunks."""

    def __init__(self):
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._pending = ""

    def feed(self, chunk: bytes) -> List[str]:
        self._pending += self._decoder.decode(chunk)
        parts = _LINE_BREAK.split(self._pending)
        self._pending = parts.pop()
        return [part for part in parts if part]

    def flush(self) -> List[str]:
        rest = self._pending + self._decoder.decode(b"", final=True)
        self._pending = ""
        return [rest] if rest else []


def classify_failure(
    text: str,
    url: Optional[str] = None,
    stage: str = STAGE_EXTRACT,
) -> Optional[DownloadError]:
    """Map a tool's failure text to a tagged exception.

    Args:
        text: stderr text or error message produced by the tool
        url: URL being processed, attached to the exception
        stage: STAGE_EXTRACT, STAGE_FETCH or STAGE_TRANSFORM. Only
            metadata extraction treats "timeout" (any case) as an
            extraction timeout.

    Returns:
        The matching exception instance, or None if the text is not
        recognised (callers then raise their stage-specific error)
    """
    if not text:
        return None

    if stage == STAGE_EXTRACT and "timeout" in text.lower():
        return ExtractionTimeoutError("Video extraction timed out", url=url)

    for marker, error_class in FAILURE_MARKERS[stage]:
        if marker in text:
            return error_class(_last_error_line(text), url=url)
    return None


def _last_error_line(text: str) -> str:
    lines = [line.strip() for line in text.strip().splitlines() if line.strip()]
    for line in reversed(lines):
        if line.startswith("ERROR"):
            return line
    return lines[-1] if lines else text


def _kill(proc: asyncio.subprocess.Process) -> None:
    if proc.returncode is None:
        try:
            proc.kill()
        except ProcessLookupError:
            pass


async def run_process(
    args: Sequence[str],
    timeout: Optional[float] = None,
    max_buffer: Optional[int] = None,
    on_line: Optional[LineCallback] = None,
) -> ProcessOutput:
    """Run an external command and collect its output.

    Args:
        args: Executable followed by its arguments
        timeout: Wall-clock bound in seconds (None = unbounded)
        max_buffer: Maximum bytes accepted on either stream
        on_line: Called as ``on_line(line, stream_name)`` for each line,
            where stream_name is "stdout" or "stderr"

    Returns:
        ProcessOutput with exit status and decoded streams. A non-zero
        exit status is returned, not raised.

    Raises:
        ProcessStartError: If the executable cannot be launched
        ExtractionTimeoutError: If the timeout elapses (the process is killed)
        ProcessFailedError: If output exceeds max_buffer
    """
    program = args[0]
    logger.debug(f"Running: {' '.join(args)}")

    try:
        proc = await asyncio.create_subprocess_exec(
            *args,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except FileNotFoundError as e:
        raise ProcessStartError(f"{program} is not installed or not in PATH") from e
    except OSError as e:
        raise ProcessStartError(f"Failed to start {program}: {e}") from e

    captured = {"stdout": [], "stderr": []}

    async def _pump(stream: asyncio.StreamReader, name: str) -> None:
        splitter = _LineSplitter()
        size = 0
        while True:
            chunk = await stream.read(CHUNK_SIZE)
            if not chunk:
                break
            size += len(chunk)
            if max_buffer is not None and size > max_buffer:
                raise ProcessFailedError(f"{program} {name} maxBuffer length exceeded")
            captured[name].append(chunk)
            if on_line:
                for line in splitter.feed(chunk):
                    on_line(line, name)
        if on_line:
            for line in splitter.flush():
                on_line(line, name)

    try:
        await asyncio.wait_for(
            asyncio.gather(
                _pump(proc.stdout, "stdout"),
                _pump(proc.stderr, "stderr"),
                proc.wait(),
            ),
            timeout=timeout,
        )
    except asyncio.TimeoutError:
        _kill(proc)
        await proc.wait()
        logger.warning(f"{program} killed after {timeout}s timeout")
        raise ExtractionTimeoutError(f"{program} timeout after {timeout}s")
    except ProcessFailedError:
        _kill(proc)
        await proc.wait()
        raise

    output = ProcessOutput(
        returncode=proc.returncode,
        stdout=b"".join(captured["stdout"]).decode("utf-8", errors="replace"),
        stderr=b"".join(captured["stderr"]).decode("utf-8", errors="replace"),
    )
    logger.debug(f"{program} exited with code {output.returncode}")
    return output


__all__ = [
    "ProcessOutput",
    "STAGE_EXTRACT",
    "STAGE_FETCH",
    "STAGE_TRANSFORM",
    "classify_failure",
    "run_process",
]

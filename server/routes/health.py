"""Health endpoints for monitoring and container orchestration."""
import logging
import os
import platform
import re
import shutil
import sys
from datetime import datetime, timezone
from typing import Any, Dict

from aiohttp import web

from server.app_keys import CONFIG_KEY, RUNNER_KEY, STARTED_AT_KEY, STORE_KEY, SWEEPER_KEY
from server.downloaders.exceptions import DownloadError
from server.downloaders.process_runner import run_process
from server.error_handler import timestamp

logger = logging.getLogger(__name__)

routes = web.RouteTableDef()

TOOL_CHECK_TIMEOUT = 5
FFMPEG_VERSION_RE = re.compile(r"ffmpeg version ([\w.\-]+)")


def _uptime(app: web.Application) -> float:
    return (datetime.now(timezone.utc) - app[STARTED_AT_KEY]).total_seconds()


def _basic_health(app: web.Application) -> Dict[str, Any]:
    settings = app[CONFIG_KEY]
    return {
        "status": "healthy",
        "timestamp": timestamp(),
        "uptime": _uptime(app),
        "version": settings.VERSION,
        "environment": settings.ENVIRONMENT,
    }


async def check_ytdlp(binary: str) -> Dict[str, Any]:
    try:
        output = await run_process([binary, "--version"], timeout=TOOL_CHECK_TIMEOUT)
    except DownloadError as e:
        return {"status": "unhealthy", "error": "yt-dlp not found or not working", "details": e.message}
    if output.returncode != 0:
        return {"status": "unhealthy", "error": "yt-dlp not found or not working", "details": output.stderr.strip()}
    return {"status": "healthy", "version": output.stdout.strip(), "message": "yt-dlp is available"}


async def check_ffmpeg(binary: str) -> Dict[str, Any]:
    try:
        output = await run_process([binary, "-version"], timeout=TOOL_CHECK_TIMEOUT)
    except DownloadError as e:
        return {"status": "unhealthy", "error": "FFmpeg not found or not working", "details": e.message}
    if output.returncode != 0:
        return {"status": "unhealthy", "error": "FFmpeg not found or not working", "details": output.stderr.strip()}
    match = FFMPEG_VERSION_RE.search(output.stdout)
    return {
        "status": "healthy",
        "version": match.group(1) if match else "unknown",
        "message": "FFmpeg is available",
    }


def check_job_queue(app: web.Application) -> Dict[str, Any]:
    return {
        "status": "healthy",
        "stats": app[RUNNER_KEY].get_stats(),
        "jobs": app[STORE_KEY].count_by_status(),
        "message": "Job queue is operational",
    }


async def check_cleanup_service(app: web.Application) -> Dict[str, Any]:
    sweeper = app[SWEEPER_KEY]
    try:
        stats = await sweeper.get_stats()
    except OSError as e:
        return {"status": "unhealthy", "error": str(e)}
    return {"status": "healthy", "stats": stats, "message": "Cleanup service is operational"}


def check_storage(path: str) -> Dict[str, Any]:
    try:
        usage = shutil.disk_usage(path)
    except OSError as e:
        return {"status": "unknown", "error": str(e)}
    return {
        "status": "healthy",
        "path": path,
        "total": usage.total,
        "used": usage.used,
        "free": usage.free,
    }


@routes.get("/health")
async def health(request: web.Request) -> web.Response:
    return web.json_response(_basic_health(request.app))


@routes.get("/health/detailed")
async def health_detailed(request: web.Request) -> web.Response:
    app = request.app
    settings = app[CONFIG_KEY]

    body = _basic_health(app)
    body["system"] = {
        "platform": sys.platform,
        "pythonVersion": platform.python_version(),
        "pid": os.getpid(),
    }
    body["services"] = {
        "jobQueue": check_job_queue(app),
        "ytDlp": await check_ytdlp(settings.YTDLP_BINARY),
        "ffmpeg": await check_ffmpeg(settings.FFMPEG_BINARY),
        "cleanup": await check_cleanup_service(app),
    }
    body["storage"] = check_storage(settings.TEMP_DIR)

    status = 200
    if any(service["status"] != "healthy" for service in body["services"].values()):
        body["status"] = "degraded"
        status = 503
        logger.warning("Detailed health check reports degraded services")
    return web.json_response(body, status=status)


@routes.get("/health/ready")
async def health_ready(request: web.Request) -> web.Response:
    settings = request.app[CONFIG_KEY]
    ytdlp = await check_ytdlp(settings.YTDLP_BINARY)
    ffmpeg = await check_ffmpeg(settings.FFMPEG_BINARY)

    if ytdlp["status"] == "healthy" and ffmpeg["status"] == "healthy":
        return web.json_response({"status": "ready", "timestamp": timestamp()})
    return web.json_response(
        {
            "status": "not ready",
            "timestamp": timestamp(),
            "issues": {"ytDlp": ytdlp, "ffmpeg": ffmpeg},
        },
        status=503,
    )


@routes.get("/health/live")
async def health_live(request: web.Request) -> web.Response:
    return web.json_response({"status": "alive", "timestamp": timestamp(), "pid": os.getpid()})

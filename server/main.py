"""Main module for the video downloader API."""
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Optional

from aiohttp import web

from server.app_keys import (
    API_KEYS_KEY,
    CONFIG_KEY,
    EXTRACTOR_KEY,
    RATE_LIMITER_KEY,
    RUNNER_KEY,
    STARTED_AT_KEY,
    STORE_KEY,
    SWEEPER_KEY,
)
from server.auth import ApiKeyRegistry
from server.cleanup import RetentionSweeper
from server.config import AppConfig, config
from server.downloaders.job_queue import JobRunner
from server.downloaders.job_store import JobStore
from server.downloaders.media_processor import MediaProcessor
from server.downloaders.metadata_extractor import MetadataExtractor
from server.downloaders.retry_handler import RetryPolicy
from server.downloaders.url_detector import get_all_platforms
from server.error_handler import error_middleware
from server.middleware import (
    api_key_middleware,
    cors_middleware,
    rate_limit_middleware,
    request_id_middleware,
)
from server.rate_limiter import RateLimiter
from server.routes import auth_routes, health_routes, video_routes
from server.temp_manager import active_temp_managers, ensure_directories

logger = logging.getLogger(__name__)

MAX_BODY_SIZE = 10 * 1024 * 1024


def configure_logging(level_name: str) -> None:
    """Configure root logging once, falling back to INFO on a bad level."""
    valid_levels = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
    if level_name.upper() not in valid_levels:
        print(f"Warning: Invalid LOG_LEVEL '{level_name}'. Using INFO.", file=sys.stderr)
        log_level = logging.INFO
    else:
        log_level = getattr(logging, level_name.upper())

    logging.basicConfig(
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        level=log_level
    )
    logger.info(f"Logging configured at level: {level_name}")


async def api_docs(request: web.Request) -> web.Response:
    settings = request.app[CONFIG_KEY]
    return web.json_response({
        "name": "Social Media Video Downloader API",
        "version": settings.VERSION,
        "description": "API for downloading videos from social media platforms with watermark removal",
        "endpoints": {
            "POST /api/video/extract": "Extract video metadata from URL",
            "POST /api/video/download": "Download and process video",
            "GET /api/video/status/{jobId}": "Check download status",
            "DELETE /api/video/job/{jobId}": "Cancel or delete a job",
            "GET /api/video/platforms": "List supported platforms",
            "GET /health": "Health check endpoint",
            "POST /api/auth/login": "Admin login",
            "POST /api/auth/key": "Generate API key",
        },
        "supportedPlatforms": [platform["name"] for platform in get_all_platforms()],
        "rateLimit": (
            f"{settings.RATE_LIMIT_REQUESTS} requests per "
            f"{settings.RATE_LIMIT_WINDOW_SECONDS // 60} minutes"
        ),
    })


async def root(request: web.Request) -> web.Response:
    return web.json_response({
        "message": "Social Media Video Downloader API",
        "status": "running",
        "version": request.app[CONFIG_KEY].VERSION,
        "documentation": "/api/docs",
        "health": "/health",
    })


async def _on_prepare_download(request: web.Request, response: web.StreamResponse) -> None:
    if request.path.startswith("/downloads/") and response.status == 200:
        response.headers["Content-Disposition"] = "attachment"
        response.headers.setdefault("Cache-Control", "public, max-age=3600")


async def _on_startup(app: web.Application) -> None:
    settings = app[CONFIG_KEY]
    ensure_directories(settings.downloads_dir, settings.processing_dir, settings.uploads_dir)
    app[SWEEPER_KEY].start()
    logger.info(f"Server running on {settings.HOST}:{settings.PORT} ({settings.ENVIRONMENT})")
    logger.info(f"API documentation: http://localhost:{settings.PORT}/api/docs")


async def _on_cleanup(app: web.Application) -> None:
    await app[RUNNER_KEY].shutdown()
    await app[SWEEPER_KEY].stop()

    # Cleanup any active temp managers
    cleanup_count = 0
    for temp_mgr in list(active_temp_managers):
        if temp_mgr.cleanup():
            cleanup_count += 1
    if cleanup_count > 0:
        logger.info(f"Cleaned up {cleanup_count} active temp managers")
    logger.info("Shutdown complete")


def create_app(
    settings: Optional[AppConfig] = None,
    processor: Optional[Any] = None,
    extractor: Optional[MetadataExtractor] = None,
) -> web.Application:
    """Build the aiohttp application and its shared services.

    Args:
        settings: Configuration (defaults to the environment-loaded config)
        processor: Media pipeline used by the job runner
        extractor: Metadata extractor used by the extract endpoint

    Returns:
        Configured web.Application
    """
    settings = settings or config

    # Directories must exist before the static route is registered
    ensure_directories(settings.downloads_dir, settings.processing_dir)

    app = web.Application(
        middlewares=[
            request_id_middleware,
            cors_middleware,
            error_middleware,
            rate_limit_middleware,
            api_key_middleware,
        ],
        client_max_size=MAX_BODY_SIZE,
    )

    store = JobStore()
    processor = processor or MediaProcessor(
        downloads_dir=settings.downloads_dir,
        processing_dir=settings.processing_dir,
        ytdlp_binary=settings.YTDLP_BINARY,
        ffmpeg_binary=settings.FFMPEG_BINARY,
    )
    policy = RetryPolicy(max_attempts=settings.JOB_MAX_ATTEMPTS, base_delay=settings.JOB_RETRY_DELAY)

    app[CONFIG_KEY] = settings
    app[STORE_KEY] = store
    app[RUNNER_KEY] = JobRunner(store, processor, policy=policy)
    app[EXTRACTOR_KEY] = extractor or MetadataExtractor(
        ytdlp_binary=settings.YTDLP_BINARY,
        timeout=settings.METADATA_TIMEOUT,
        max_buffer=settings.METADATA_MAX_BUFFER,
    )
    app[SWEEPER_KEY] = RetentionSweeper(settings=settings, store=store)
    app[API_KEYS_KEY] = ApiKeyRegistry(settings.API_KEYS)
    app[RATE_LIMITER_KEY] = RateLimiter(
        max_requests=settings.RATE_LIMIT_REQUESTS,
        window_seconds=settings.RATE_LIMIT_WINDOW_SECONDS,
    )
    app[STARTED_AT_KEY] = datetime.now(timezone.utc)

    app.add_routes(health_routes)
    app.add_routes(auth_routes)
    app.add_routes(video_routes)
    app.router.add_get("/api/docs", api_docs)
    app.router.add_get("/", root)
    app.router.add_static("/downloads", settings.downloads_dir, name="downloads")

    app.on_response_prepare.append(_on_prepare_download)
    app.on_startup.append(_on_startup)
    app.on_cleanup.append(_on_cleanup)
    return app


def main() -> None:
    """Start the API server."""
    configure_logging(config.LOG_LEVEL)
    web.run_app(create_app(config), host=config.HOST, port=config.PORT)


if __name__ == "__main__":
    main()

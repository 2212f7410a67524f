"""Error handling middleware for the HTTP API.

Every error response has the same JSON shape::

    {"success": false, "error": <title>, "message": <text>,
     "requestId": <id>, "timestamp": <iso8601>}

Exceptions of the ``DownloadError`` hierarchy carry their own status and
title. Unknown exceptions are logged with their traceback and rendered
as a generic 500.
"""
import errno
import logging
import traceback
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from aiohttp import web

from server.app_keys import CONFIG_KEY
from server.downloaders.exceptions import DownloadError, RateLimitError

logger = logging.getLogger(__name__)

NOT_FOUND_SUGGESTIONS = [
    "Check the URL for typos",
    "Ensure you're using the correct HTTP method",
    "Refer to the API documentation at /api/docs",
]

DEFAULT_ERROR_TITLE = "Internal Server Error"
DEFAULT_ERROR_MESSAGE = "Something went wrong on our end"

# Titles for aiohttp's own HTTP exceptions
HTTP_ERROR_TITLES = {
    400: "Bad Request",
    404: "Not Found",
    405: "Method Not Allowed",
    413: "Payload Too Large",
}


def timestamp() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def error_response(
    request: web.Request,
    status: int,
    error: str,
    message: str,
    details: Optional[List[Any]] = None,
    headers: Optional[Dict[str, str]] = None,
    **extra: Any,
) -> web.Response:
    """Build an error response in the API's stable shape."""
    body: Dict[str, Any] = {
        "success": False,
        "error": error,
        "message": message,
        "requestId": request.get("request_id"),
        "timestamp": timestamp(),
    }
    if details:
        body["details"] = details
    body.update(extra)
    return web.json_response(body, status=status, headers=headers)


def _is_development(request: web.Request) -> bool:
    settings = request.app.get(CONFIG_KEY)
    return settings is not None and settings.is_development


def not_found_response(request: web.Request) -> web.Response:
    logger.warning(f"404 - Route not found: {request.method} {request.path_qs} (ip={request.remote})")
    return error_response(
        request,
        404,
        "Not Found",
        f"{request.method} {request.path_qs} not found",
        suggestions=NOT_FOUND_SUGGESTIONS,
    )


@web.middleware
async def error_middleware(request: web.Request, handler) -> web.StreamResponse:
    """Convert exceptions raised by handlers into JSON error responses."""
    try:
        return await handler(request)
    except DownloadError as e:
        log = logger.warning if e.status_code < 500 else logger.error
        log(f"[{request.get('request_id')}] {request.method} {request.path}: {e}")
        headers = None
        if isinstance(e, RateLimitError) and e.retry_after:
            headers = {"Retry-After": str(e.retry_after)}
        return error_response(
            request,
            e.status_code,
            e.error,
            e.to_user_message(),
            details=e.details,
            headers=headers,
        )
    except web.HTTPException as e:
        if e.status < 400:
            raise
        if e.status == 404:
            return not_found_response(request)
        return error_response(
            request,
            e.status,
            HTTP_ERROR_TITLES.get(e.status, e.reason),
            e.text or e.reason,
        )
    except OSError as e:
        logger.exception(f"[{request.get('request_id')}] Filesystem error: {e}")
        if e.errno == errno.ENOENT:
            return error_response(request, 404, "File Not Found", "The requested file was not found")
        if e.errno == errno.ENOSPC:
            return error_response(request, 507, "Storage Full", "Server storage is full. Please try again later.")
        return _internal_error(request, e)
    except Exception as e:
        logger.exception(f"[{request.get('request_id')}] Unhandled error: {e}")
        return _internal_error(request, e)


def _internal_error(request: web.Request, error: Exception) -> web.Response:
    extra = {}
    if _is_development(request):
        extra["stack"] = traceback.format_exception(type(error), error, error.__traceback__)
    return error_response(request, 500, DEFAULT_ERROR_TITLE, DEFAULT_ERROR_MESSAGE, **extra)


__all__ = ["error_middleware", "error_response", "not_found_response", "timestamp"]

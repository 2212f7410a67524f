"""Request middlewares: request ids and logging, CORS, rate limiting, API keys.

Order in the application (outermost first)::

    request_id_middleware -> cors_middleware -> error_middleware
        -> rate_limit_middleware -> api_key_middleware -> handler

The request id middleware sits outside the error middleware so that error
responses also carry ``X-Request-ID`` and get logged.
"""
import json
import logging
import time
import uuid
from typing import Any, Dict

from aiohttp import web

from server.app_keys import API_KEYS_KEY, CONFIG_KEY, RATE_LIMITER_KEY
from server.downloaders.exceptions import RateLimitError, UnauthorizedError

logger = logging.getLogger(__name__)

SENSITIVE_FIELDS = (
    "password", "adminPassword", "token", "apiKey", "secret", "key",
    "authorization", "auth", "credentials",
)
MAX_LOGGED_URL_LENGTH = 100

RATE_LIMITED_PREFIX = "/api/"
PROTECTED_PREFIX = "/api/video/"

SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "SAMEORIGIN",
    "Referrer-Policy": "no-referrer",
}


def sanitize_body(body: Any) -> Any:
    """Redact credentials and shorten long URLs before logging a body."""
    if not isinstance(body, dict):
        return body
    sanitized = dict(body)
    for name in SENSITIVE_FIELDS:
        if sanitized.get(name):
            sanitized[name] = "[REDACTED]"
    url = sanitized.get("url")
    if isinstance(url, str) and len(url) > MAX_LOGGED_URL_LENGTH:
        sanitized["url"] = url[:MAX_LOGGED_URL_LENGTH] + "..."
    return sanitized


async def _log_request_body(request: web.Request) -> None:
    if not logger.isEnabledFor(logging.DEBUG) or not request.can_read_body:
        return
    if request.content_type != "application/json":
        return
    try:
        body = json.loads(await request.text())
    except ValueError:
        return
    logger.debug(f"[{request['request_id']}] Request body: {sanitize_body(body)}")


@web.middleware
async def request_id_middleware(request: web.Request, handler) -> web.StreamResponse:
    """Tag each request with an id and log it with its response time."""
    request_id = str(uuid.uuid4())
    request["request_id"] = request_id
    started = time.monotonic()

    logger.info(
        f"[{request_id}] Incoming request: {request.method} {request.path_qs} "
        f"(ip={request.remote}, ua={request.headers.get('User-Agent', '-')})"
    )
    await _log_request_body(request)

    try:
        response = await handler(request)
    except web.HTTPException as e:
        # Redirects and other non-error statuses escape the error middleware
        _finish(request_id, e, started)
        raise
    _finish(request_id, response, started)
    return response


def _finish(request_id: str, response: web.StreamResponse, started: float) -> None:
    elapsed_ms = int((time.monotonic() - started) * 1000)
    response.headers["X-Request-ID"] = request_id
    response.headers["X-Response-Time"] = f"{elapsed_ms}ms"
    logger.info(
        f"[{request_id}] Outgoing response: {response.status} in {elapsed_ms}ms"
    )


def _cors_headers(request: web.Request) -> Dict[str, str]:
    settings = request.app[CONFIG_KEY]
    origin = request.headers.get("Origin")
    if not origin:
        return {}
    allowed = settings.ALLOWED_ORIGINS
    if "*" not in allowed and origin not in allowed:
        return {}
    return {
        "Access-Control-Allow-Origin": origin,
        "Access-Control-Allow-Credentials": "true",
        "Vary": "Origin",
    }


@web.middleware
async def cors_middleware(request: web.Request, handler) -> web.StreamResponse:
    """Answer preflight requests and add CORS and security headers."""
    headers = _cors_headers(request)
    if request.method == "OPTIONS" and "Access-Control-Request-Method" in request.headers:
        headers.update({
            "Access-Control-Allow-Methods": "GET, POST, PUT, DELETE, OPTIONS",
            "Access-Control-Allow-Headers": "Content-Type, Authorization, X-API-Key",
        })
        return web.Response(status=204, headers=headers)

    response = await handler(request)
    response.headers.update(headers)
    for name, value in SECURITY_HEADERS.items():
        response.headers.setdefault(name, value)
    return response


@web.middleware
async def rate_limit_middleware(request: web.Request, handler) -> web.StreamResponse:
    """Sliding-window request budget per client IP on ``/api/``."""
    if not request.path.startswith(RATE_LIMITED_PREFIX):
        return await handler(request)

    limiter = request.app[RATE_LIMITER_KEY]
    identifier = request.remote or "unknown"
    if not limiter.check(identifier):
        retry_after = limiter.retry_after(identifier)
        raise RateLimitError(
            f"Rate limit exceeded for {identifier}",
            retry_after=retry_after,
        )

    response = await handler(request)
    response.headers["RateLimit-Limit"] = str(limiter.max_requests)
    response.headers["RateLimit-Remaining"] = str(limiter.remaining(identifier))
    return response


@web.middleware
async def api_key_middleware(request: web.Request, handler) -> web.StreamResponse:
    """Require a known API key on ``/api/video/``.

    The key is read from the ``X-API-Key`` header or the ``apiKey`` query
    parameter. ``SKIP_AUTH=true`` disables the check in development only.
    """
    if not request.path.startswith(PROTECTED_PREFIX) or request.method == "OPTIONS":
        return await handler(request)

    settings = request.app[CONFIG_KEY]
    if settings.auth_disabled:
        return await handler(request)

    api_key = request.headers.get("X-API-Key") or request.query.get("apiKey")
    if not api_key:
        raise UnauthorizedError(
            "API key is required. Include X-API-Key header or apiKey query parameter."
        )
    if not request.app[API_KEYS_KEY].is_valid(api_key):
        logger.warning(
            f"Invalid API key attempt: {api_key[:10]}... "
            f"(ip={request.remote}, ua={request.headers.get('User-Agent', '-')})"
        )
        raise UnauthorizedError("Invalid API key")

    request["api_key"] = api_key
    return await handler(request)


__all__ = [
    "api_key_middleware",
    "cors_middleware",
    "rate_limit_middleware",
    "request_id_middleware",
    "sanitize_body",
]

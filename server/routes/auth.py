"""Admin login and API key management."""
import logging
from typing import Any, Dict, Optional

from aiohttp import web

from server.app_keys import API_KEYS_KEY, CONFIG_KEY
from server.auth import bearer_token, create_access_token, decode_access_token, verify_password
from server.downloaders.exceptions import (
    ForbiddenError,
    NotFoundError,
    UnauthorizedError,
    ValidationError,
)
from server.routes.video import read_json

logger = logging.getLogger(__name__)

routes = web.RouteTableDef()

MAX_DESCRIPTION_LENGTH = 255
DEFAULT_KEY_DESCRIPTION = "Generated API key"
KEY_ENDPOINTS = ["/api/video/extract", "/api/video/download", "/api/video/status/:jobId"]


def _require_fields(body: Any, *names: str) -> Dict[str, Any]:
    if not isinstance(body, dict):
        raise ValidationError("Request body must be a JSON object")
    details = [
        {"field": name, "message": f"{name} is required", "location": "body"}
        for name in names
        if not isinstance(body.get(name), str) or not body.get(name)
    ]
    if details:
        raise ValidationError(details[0]["message"], details=details)
    return body


def _require_admin(request: web.Request, password: Optional[str]) -> None:
    """Accept either a Bearer admin token or the admin password."""
    settings = request.app[CONFIG_KEY]
    token = bearer_token(request.headers.get("Authorization"))
    if token:
        claims = decode_access_token(token, settings.JWT_SECRET)
        if claims.get("role") != "admin":
            raise ForbiddenError("Admin role required")
        return

    if not password:
        raise ValidationError(
            "adminPassword is required",
            details=[{"field": "adminPassword", "message": "adminPassword is required"}],
        )
    if not verify_password(password, settings.ADMIN_PASSWORD_HASH):
        logger.warning(f"Invalid admin password attempt (ip={request.remote})")
        raise UnauthorizedError("Invalid admin credentials")


@routes.post("/api/auth/login")
async def login(request: web.Request) -> web.Response:
    body = _require_fields(await read_json(request), "username", "password")
    settings = request.app[CONFIG_KEY]

    if body["username"] != settings.ADMIN_USERNAME or not verify_password(
        body["password"], settings.ADMIN_PASSWORD_HASH
    ):
        logger.warning(f"Failed login attempt for {body['username']!r} (ip={request.remote})")
        raise UnauthorizedError("Invalid credentials")

    token = create_access_token(
        body["username"],
        "admin",
        settings.JWT_SECRET,
        expires_hours=settings.JWT_EXPIRATION_HOURS,
    )
    logger.info(f"Admin login: {body['username']}")
    return web.json_response({
        "success": True,
        "data": {
            "token": token,
            "expiresIn": f"{settings.JWT_EXPIRATION_HOURS}h",
            "user": {"username": body["username"], "role": "admin"},
        },
    })


@routes.post("/api/auth/key")
async def generate_key(request: web.Request) -> web.Response:
    body = await read_json(request)
    if not isinstance(body, dict):
        raise ValidationError("Request body must be a JSON object")
    description = body.get("description") or DEFAULT_KEY_DESCRIPTION
    if not isinstance(description, str) or len(description) > MAX_DESCRIPTION_LENGTH:
        raise ValidationError(
            f"description must be a string of at most {MAX_DESCRIPTION_LENGTH} characters",
            details=[{"field": "description", "message": "Invalid description", "location": "body"}],
        )
    _require_admin(request, body.get("adminPassword"))

    created = request.app[API_KEYS_KEY].create(description)
    settings = request.app[CONFIG_KEY]
    created["usage"] = {
        "rateLimit": (
            f"{settings.RATE_LIMIT_REQUESTS} requests per "
            f"{settings.RATE_LIMIT_WINDOW_SECONDS // 60} minutes"
        ),
        "endpoints": KEY_ENDPOINTS,
    }
    return web.json_response({"success": True, "data": created}, status=201)


@routes.get("/api/auth/keys")
async def list_keys(request: web.Request) -> web.Response:
    _require_admin(request, request.query.get("adminPassword"))

    keys = request.app[API_KEYS_KEY].list_masked()
    return web.json_response({"success": True, "data": {"keys": keys, "total": len(keys)}})


@routes.delete("/api/auth/key")
async def revoke_key(request: web.Request) -> web.Response:
    body = _require_fields(await read_json(request), "apiKey")
    _require_admin(request, body.get("adminPassword"))

    if not request.app[API_KEYS_KEY].remove(body["apiKey"]):
        raise NotFoundError("API key not found")
    return web.json_response({"success": True, "message": "API key revoked successfully"})

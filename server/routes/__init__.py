"""HTTP route tables for the API."""
from .auth import routes as auth_routes
from .health import routes as health_routes
from .video import routes as video_routes

__all__ = ["auth_routes", "health_routes", "video_routes"]

"""API layer - Middleware and routing"""

from .middleware import AdminMiddleware, AuthMiddleware
from .routes import router
from .song_routes import router as song_router

__all__ = ["AdminMiddleware", "AuthMiddleware", "router", "song_router"]

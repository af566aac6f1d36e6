"""Authentication and admin gating middleware"""

import logging
from typing import Any, Callable, Dict, Iterable, Optional, Tuple

from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from ..core.errors import (
    AdminAuthFailedError,
    AuthenticationFailedError,
    DecryptError,
    GatewayError,
    InvalidTokenError,
    MissingTokenError,
    UnverifiedEmailError,
)
from ..core.token_codec import TokenCodec
from ..core.user_lookup import LookupOutcome, resolve_user
from ..infrastructure.upstream_relay import UpstreamRelay

logger = logging.getLogger(__name__)

# (method, path) pairs that require a bearer identity token
PROTECTED_ROUTES: frozenset[Tuple[str, str]] = frozenset({
    ("GET", "/api/verify-token"),
    ("POST", "/api/update"),
    ("GET", "/api/profile"),
    ("POST", "/api/songs/review"),
    ("POST", "/api/songs/comment"),
    ("POST", "/api/songs/like"),
    ("POST", "/api/songs/liked"),
})

ADMIN_PREFIX = "/api/admin/"
ADMIN_PUBLIC_PATHS = frozenset({"/api/admin/login"})


def _error_response(error: GatewayError) -> JSONResponse:
    return JSONResponse(status_code=error.status_code, content=error.to_body())


class AuthMiddleware(BaseHTTPMiddleware):
    """
    Identity-token authentication for protected routes.

    Flow:
    1. Extract token from "Authorization: Bearer <token>" or ?token=
    2. Decode token to an email via TokenCodec
    3. Resolve the email to a user record through the upstream relay
    4. Reject users whose email is not verified (403)
    5. Attach the user record to request.state.user

    Resolution always precedes the verification check. Any unexpected
    failure collapses to a 401 AuthenticationFailedError.
    """

    def __init__(
        self,
        app,
        codec: TokenCodec,
        relay: UpstreamRelay,
        user_endpoint: str = "/getUserByEmail",
        protected_routes: Optional[Iterable[Tuple[str, str]]] = None,
    ):
        """
        Initialize authentication middleware.

        Args:
            app: FastAPI application
            codec: Identity token codec
            relay: Upstream relay used to resolve users
            user_endpoint: Upstream "get user by email" endpoint
            protected_routes: (method, path) pairs to guard
        """
        super().__init__(app)
        self.codec = codec
        self.relay = relay
        self.user_endpoint = user_endpoint
        self.protected_routes = frozenset(
            protected_routes if protected_routes is not None else PROTECTED_ROUTES
        )
        logger.info(
            f"Initialized AuthMiddleware guarding {len(self.protected_routes)} routes"
        )

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if not self._is_protected(request.method, request.url.path):
            return await call_next(request)

        try:
            user = await self.authenticate(request)
        except GatewayError as e:
            logger.warning(
                f"Rejected {request.method} {request.url.path}: "
                f"{type(e).__name__} ({e.message})"
            )
            return _error_response(e)
        except Exception as e:
            logger.error(f"Unexpected error authenticating {request.url.path}: {str(e)}")
            return _error_response(AuthenticationFailedError())

        request.state.user = user
        logger.info(f"Authenticated {user.get('email')} for {request.method} {request.url.path}")
        return await call_next(request)

    async def authenticate(self, request: Request) -> Dict[str, Any]:
        """
        Run the authentication state machine for one request.

        Returns:
            Resolved, verified user record

        Raises:
            MissingTokenError: No token in header or query string
            InvalidTokenError: Token does not decode, or decodes to ""
            AuthenticationFailedError: Email does not resolve to a user
            UnverifiedEmailError: User has not verified their email
        """
        token = self._extract_token(request)
        if not token:
            raise MissingTokenError()

        try:
            email = self.codec.decode(token)
        except DecryptError:
            raise InvalidTokenError()

        if not email:
            raise InvalidTokenError()

        lookup = await resolve_user(self.relay, email, self.user_endpoint)
        if lookup.outcome == LookupOutcome.NOT_FOUND:
            logger.info("Token resolved to an unknown user")
            raise AuthenticationFailedError()
        if lookup.outcome == LookupOutcome.UPSTREAM_FAILURE:
            logger.warning(f"User resolution failed upstream: {lookup.error}")
            raise AuthenticationFailedError()

        user = lookup.user
        if not user.get("email_verified"):
            raise UnverifiedEmailError(email=email)

        return user

    def _is_protected(self, method: str, path: str) -> bool:
        return (method.upper(), path.rstrip("/") or "/") in self.protected_routes

    def _extract_token(self, request: Request) -> Optional[str]:
        """
        Extract token from the Authorization header or ``token`` query param.

        Expected header format: "Bearer <token>"
        """
        auth_header = request.headers.get("Authorization")
        if auth_header:
            parts = auth_header.split()
            if len(parts) == 2 and parts[0].lower() == "bearer":
                return parts[1]
        return request.query_params.get("token") or None


class AdminMiddleware(BaseHTTPMiddleware):
    """
    Gate admin routes on an upstream verification of the Authorization header.

    The header is forwarded unchanged. Any non-2xx answer or transport
    failure rejects the request with a single 401; nothing is attached to
    the request on success.
    """

    def __init__(self, app, relay: UpstreamRelay, verify_endpoint: str = "/api/admin/verify"):
        super().__init__(app)
        self.relay = relay
        self.verify_endpoint = verify_endpoint
        logger.info(f"Initialized AdminMiddleware with verify endpoint: {verify_endpoint}")

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if not self._is_admin_route(request.url.path):
            return await call_next(request)

        headers = {}
        auth_header = request.headers.get("Authorization")
        if auth_header is not None:
            headers["Authorization"] = auth_header

        try:
            await self.relay.call(self.verify_endpoint, method="GET", headers=headers)
        except GatewayError as e:
            logger.warning(f"Admin verification failed for {request.url.path}: {e.message}")
            return _error_response(AdminAuthFailedError())

        return await call_next(request)

    def _is_admin_route(self, path: str) -> bool:
        return path.startswith(ADMIN_PREFIX) and path.rstrip("/") not in ADMIN_PUBLIC_PATHS

"""Request-scoped accessors for application components"""

import json
from typing import Any, Dict

from fastapi import Request

from ..config.settings import Settings
from ..core.errors import AuthenticationFailedError, ValidationError
from ..core.token_codec import TokenCodec
from ..core.uploads import UploadStore
from ..infrastructure.upstream_relay import UpstreamRelay


def get_relay(request: Request) -> UpstreamRelay:
    return request.app.state.relay


def get_codec(request: Request) -> TokenCodec:
    return request.app.state.codec


def get_upload_store(request: Request) -> UploadStore:
    return request.app.state.upload_store


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_current_user(request: Request) -> Dict[str, Any]:
    """User record attached by AuthMiddleware"""
    user = getattr(request.state, "user", None)
    if not user:
        raise AuthenticationFailedError()
    return user


async def read_json(request: Request) -> Dict[str, Any]:
    """
    Parse the request body as a JSON object.

    An empty body yields an empty dict.

    Raises:
        ValidationError: If the body is not valid JSON or not an object
    """
    raw = await request.body()
    if not raw:
        return {}
    try:
        body = json.loads(raw)
    except ValueError:
        raise ValidationError("Request body must be valid JSON")
    if not isinstance(body, dict):
        raise ValidationError("Request body must be a JSON object")
    return body

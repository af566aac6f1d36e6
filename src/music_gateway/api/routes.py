"""API routes for health, accounts, profiles and admin access"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict
from urllib.parse import quote

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse
from starlette.datastructures import UploadFile

from ..config.settings import Settings
from ..core.errors import (
    AuthenticationFailedError,
    GatewayError,
    UpstreamError,
    ValidationError,
)
from ..core.passwords import hash_password, verify_password
from ..core.token_codec import TokenCodec
from ..core.uploads import UploadStore
from ..core.user_lookup import LookupOutcome, public_user, resolve_user
from ..infrastructure.upstream_relay import UpstreamRelay
from .dependencies import (
    get_app_settings,
    get_codec,
    get_current_user,
    get_relay,
    get_upload_store,
    read_json,
)

logger = logging.getLogger(__name__)

router = APIRouter()

# bcrypt only considers the first 72 bytes of a password
MAX_PASSWORD_BYTES = 72

PROFILE_FIELDS = ("favorite_genre", "favorite_artist", "bio")


def _require(body: Dict[str, Any], *fields: str) -> None:
    missing = [field for field in fields if not body.get(field)]
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}")
    not_strings = [field for field in fields if not isinstance(body[field], str)]
    if not_strings:
        raise ValidationError(f"Fields must be strings: {', '.join(not_strings)}")


def _with_token(result: Any, token: str) -> Dict[str, Any]:
    """Merge a freshly minted token into an upstream result."""
    response = dict(result) if isinstance(result, dict) else {"result": result}
    if isinstance(response.get("user"), dict):
        response["user"] = public_user(response["user"])
    response["token"] = token
    return response


@router.get("/api/health")
async def health_check() -> Dict[str, Any]:
    """
    Basic health check endpoint.

    Only verifies that the gateway process is running; the upstream service
    is not contacted.
    """
    return {
        "status": "ok",
        "service": "music-gateway",
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@router.get("/api/verify-token")
async def verify_token(user: Dict[str, Any] = Depends(get_current_user)) -> Dict[str, Any]:
    return {"valid": True, "user": public_user(user)}


@router.post("/api/register", status_code=status.HTTP_201_CREATED)
async def register(
    request: Request,
    relay: UpstreamRelay = Depends(get_relay),
) -> Any:
    """
    Register a new account.

    The password is bcrypt-hashed before the registration is relayed, so the
    upstream service never sees it in clear text.
    """
    body = await read_json(request)
    _require(body, "email", "password")

    password = str(body["password"])
    if len(password.encode("utf-8")) > MAX_PASSWORD_BYTES:
        raise ValidationError(f"Password must be at most {MAX_PASSWORD_BYTES} bytes")

    payload = {**body, "password": hash_password(password)}
    result = await relay.call("/registerUser", payload)
    logger.info(f"Registered account for {body['email']}")
    return result


@router.post("/api/verify-email")
async def verify_email(
    request: Request,
    relay: UpstreamRelay = Depends(get_relay),
    codec: TokenCodec = Depends(get_codec),
) -> Dict[str, Any]:
    body = await read_json(request)
    _require(body, "email")

    result = await relay.call("/verify-email", body)
    return _with_token(result, codec.encode(body["email"]))


@router.post("/api/login")
async def login(
    request: Request,
    relay: UpstreamRelay = Depends(get_relay),
    codec: TokenCodec = Depends(get_codec),
    settings: Settings = Depends(get_app_settings),
) -> Any:
    """
    Log in with email and password.

    Outcomes:
    - 401 for an unknown email or a wrong password
    - 403 with needsVerification and a tempToken for unverified emails
    - 200 with requires2FA when two-factor authentication is enabled
    - 200 with a token and the user record otherwise
    """
    body = await read_json(request)
    _require(body, "email", "password")
    email = str(body["email"])
    password = str(body["password"])

    lookup = await resolve_user(relay, email, settings.get_user_endpoint)
    if lookup.outcome == LookupOutcome.UPSTREAM_FAILURE:
        raise UpstreamError(lookup.status_code or 502, lookup.error or "User lookup failed")
    if lookup.outcome == LookupOutcome.NOT_FOUND:
        logger.warning("Login attempt for unknown email")
        raise AuthenticationFailedError("Invalid email or password")

    user = lookup.user
    if not verify_password(password, user.get("password")):
        logger.warning("Login attempt with wrong password")
        raise AuthenticationFailedError("Invalid email or password")

    if not user.get("email_verified"):
        return JSONResponse(
            status_code=status.HTTP_403_FORBIDDEN,
            content={
                "error": "Please verify your email before logging in",
                "needsVerification": True,
                "email": email,
                "tempToken": codec.encode(email),
            },
        )

    if user.get("two_factor_enabled"):
        return {
            "message": "Two-factor authentication required",
            "requires2FA": True,
            "email": email,
        }

    logger.info(f"Login successful for {email}")
    return {
        "message": "Login successful",
        "token": codec.encode(email),
        "user": public_user(user),
    }


@router.post("/api/verify-2fa")
async def verify_two_factor(
    request: Request,
    relay: UpstreamRelay = Depends(get_relay),
    codec: TokenCodec = Depends(get_codec),
) -> Dict[str, Any]:
    body = await read_json(request)
    _require(body, "email")

    result = await relay.call("/verify-2fa", body)
    return _with_token(result, codec.encode(body["email"]))


@router.post("/api/toggle-2fa")
async def toggle_two_factor(
    request: Request,
    relay: UpstreamRelay = Depends(get_relay),
) -> Any:
    body = await read_json(request)
    _require(body, "email")
    return await relay.call("/toggle-2fa", body)


@router.post("/api/update")
async def update_profile(
    request: Request,
    user: Dict[str, Any] = Depends(get_current_user),
    relay: UpstreamRelay = Depends(get_relay),
    store: UploadStore = Depends(get_upload_store),
) -> Dict[str, Any]:
    """
    Update profile fields and, optionally, the avatar image.

    Accepts multipart form data (with an ``avatar`` file) or a JSON object.
    """
    avatar_filename = None
    content_type = request.headers.get("content-type", "")

    if content_type.startswith("multipart/form-data"):
        form = await request.form()
        fields = {key: form.get(key) for key in PROFILE_FIELDS if key in form}
        not_text = [key for key, value in fields.items() if not isinstance(value, str)]
        if not_text:
            raise ValidationError(f"Fields must be text: {', '.join(not_text)}")
        avatar = form.get("avatar")
        if isinstance(avatar, UploadFile) and avatar.filename:
            avatar_filename = await store.save("avatar", avatar)
    else:
        body = await read_json(request)
        fields = {key: body[key] for key in PROFILE_FIELDS if key in body}

    payload: Dict[str, Any] = {"email": user["email"], **fields}
    if avatar_filename:
        payload["avatar"] = avatar_filename

    try:
        result = await relay.call("/update-profile", payload)
    except GatewayError:
        # Nothing upstream references the avatar if the update failed
        if avatar_filename:
            await store.delete(avatar_filename)
        raise

    response: Dict[str, Any] = {"message": "Profile updated successfully"}
    if isinstance(result, dict):
        response.update(result)
    if avatar_filename:
        response["avatar"] = avatar_filename
    return response


@router.get("/api/profile")
async def get_profile(user: Dict[str, Any] = Depends(get_current_user)) -> Dict[str, Any]:
    return {"user": public_user(user)}


@router.post("/api/admin/login")
async def admin_login(
    request: Request,
    relay: UpstreamRelay = Depends(get_relay),
) -> Any:
    body = await read_json(request)
    return await relay.call("/api/admin/login", body)


@router.get("/api/admin/verify")
async def admin_verify() -> Dict[str, Any]:
    """Reached only when AdminMiddleware accepted the Authorization header."""
    return {"valid": True}


@router.get("/mostCommonGenre/{rating}")
async def most_common_genre(
    rating: str,
    relay: UpstreamRelay = Depends(get_relay),
) -> Any:
    return await relay.call(f"/mostCommonGenre/{quote(rating, safe='')}", method="GET")

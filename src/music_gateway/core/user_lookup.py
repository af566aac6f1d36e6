"""Resolution of an email address to an upstream user record"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

from .errors import GatewayError

logger = logging.getLogger(__name__)


class LookupOutcome(Enum):
    """Result of resolving a user against the upstream service."""
    FOUND = "found"
    NOT_FOUND = "not_found"
    UPSTREAM_FAILURE = "upstream_failure"


@dataclass
class UserLookup:
    """
    Explicit result of a user lookup.

    ``NOT_FOUND`` and ``UPSTREAM_FAILURE`` both reject a request with the same
    401 on the wire, but stay distinct here so they can be logged apart.
    """

    outcome: LookupOutcome
    user: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    status_code: Optional[int] = None

    @property
    def found(self) -> bool:
        return self.outcome == LookupOutcome.FOUND


def extract_user(payload: Any) -> Optional[Dict[str, Any]]:
    """Return the user record from an upstream payload, or None if empty.

    Accepts either the bare record or ``{"user": {...}}``.
    """
    if isinstance(payload, dict) and isinstance(payload.get("user"), dict):
        payload = payload["user"]
    if isinstance(payload, list):
        payload = payload[0] if payload else None
    if not isinstance(payload, dict) or not payload.get("email"):
        return None
    return payload


def public_user(user: Dict[str, Any]) -> Dict[str, Any]:
    """Copy of a user record without the password field"""
    return {key: value for key, value in user.items() if key != "password"}


async def resolve_user(relay, email: str, endpoint: str) -> UserLookup:
    """
    Resolve ``email`` to a user record through the upstream relay.

    Args:
        relay: UpstreamRelay used for the lookup
        email: Email decoded from an identity token or submitted at login
        endpoint: Upstream "get user by email" endpoint

    Returns:
        UserLookup describing the outcome; never raises for upstream errors
    """
    try:
        payload = await relay.call(endpoint, {"email": email})
    except GatewayError as e:
        if e.status_code == 404:
            return UserLookup(LookupOutcome.NOT_FOUND, error=e.message, status_code=404)
        logger.warning(f"User lookup failed upstream: {e.message}")
        return UserLookup(
            LookupOutcome.UPSTREAM_FAILURE,
            error=e.message,
            status_code=e.status_code,
        )

    user = extract_user(payload)
    if user is None:
        return UserLookup(LookupOutcome.NOT_FOUND)
    return UserLookup(LookupOutcome.FOUND, user=user)

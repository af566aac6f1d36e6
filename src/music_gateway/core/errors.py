"""Gateway error taxonomy.

Every error carries the HTTP status it maps to and renders as
``{"error": <message>}`` plus any contextual fields.
"""

from typing import Any, Dict


class GatewayError(Exception):
    """Base class for errors surfaced to clients as JSON"""

    status_code: int = 500

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code

    def to_body(self) -> Dict[str, Any]:
        return {"error": self.message}


class DecryptError(Exception):
    """Token could not be decrypted (malformed, truncated or foreign secret)"""


class MissingTokenError(GatewayError):
    status_code = 401

    def __init__(self, message: str = "No token provided"):
        super().__init__(message)


class InvalidTokenError(GatewayError):
    status_code = 401

    def __init__(self, message: str = "Invalid token"):
        super().__init__(message)


class AuthenticationFailedError(GatewayError):
    status_code = 401

    def __init__(self, message: str = "Authentication failed"):
        super().__init__(message)


class UnverifiedEmailError(GatewayError):
    """Resolved user has not verified their email address"""

    status_code = 403

    def __init__(self, email: str, message: str = "Email not verified"):
        super().__init__(message)
        self.email = email

    def to_body(self) -> Dict[str, Any]:
        return {
            "error": self.message,
            "needsVerification": True,
            "email": self.email,
        }


class AdminAuthFailedError(GatewayError):
    status_code = 401

    def __init__(self, message: str = "Admin authentication failed"):
        super().__init__(message)


class UpstreamError(GatewayError):
    """Upstream service answered with a non-2xx status"""

    def __init__(self, status_code: int, message: str):
        super().__init__(message, status_code=status_code)


class TransportError(GatewayError):
    """Upstream service could not be reached"""

    status_code = 502


class ValidationError(GatewayError):
    status_code = 400

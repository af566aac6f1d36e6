"""Core domain: identity tokens, user resolution, uploads and errors"""

from .token_codec import TokenCodec
from .uploads import UploadStore
from .user_lookup import LookupOutcome, UserLookup, public_user, resolve_user

__all__ = [
    "TokenCodec",
    "UploadStore",
    "LookupOutcome",
    "UserLookup",
    "public_user",
    "resolve_user",
]

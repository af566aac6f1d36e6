"""Identity token codec.

Tokens are compact JWE strings (``dir`` + ``A256GCM``) whose plaintext is the
user's email. The content key is the SHA-256 digest of the shared secret, so
any process holding the secret can mint or read tokens. There is no expiry.
"""

import hashlib
import logging

from jose import jwe
from jose.constants import ALGORITHMS
from jose.exceptions import JOSEError

from .errors import DecryptError

logger = logging.getLogger(__name__)


class TokenCodec:
    """Reversible symmetric encoding of an email into a bearer token"""

    def __init__(self, secret: str):
        if not secret:
            raise ValueError("Token secret must not be empty")
        self._key = hashlib.sha256(secret.encode("utf-8")).digest()

    def encode(self, email: str) -> str:
        token = jwe.encrypt(
            email.encode("utf-8"),
            self._key,
            algorithm=ALGORITHMS.DIR,
            encryption=ALGORITHMS.A256GCM,
        )
        return token.decode("ascii")

    def decode(self, token: str) -> str:
        """
        Recover the email encoded in ``token``.

        An empty string is returned unchanged when the token encrypts an
        empty email; callers decide how to treat it.

        Raises:
            DecryptError: If the token is malformed, truncated or was produced
                under a different secret
        """
        try:
            plaintext = jwe.decrypt(token, self._key)
        except (JOSEError, ValueError, TypeError) as e:
            logger.debug(f"Token decryption failed: {e}")
            raise DecryptError(str(e)) from e

        if plaintext is None:
            raise DecryptError("Token did not decrypt")

        try:
            return plaintext.decode("utf-8")
        except UnicodeDecodeError as e:
            raise DecryptError("Token payload is not valid UTF-8") from e

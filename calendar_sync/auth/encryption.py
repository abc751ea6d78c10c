"""
Encryption of OAuth material at rest.

Tokens are only ever stored as Fernet cipher text. The same cipher signs the
OAuth ``state`` parameter so a callback can be bound to the user who started
the flow.
"""

import base64
import hashlib
import logging
from typing import Optional, Protocol

from cryptography.fernet import Fernet, InvalidToken

logger = logging.getLogger(__name__)


class TokenCipher(Protocol):
    """Symmetric cipher used by the token manager."""

    def encrypt(self, data: bytes) -> bytes:
        ...

    def decrypt(self, data: bytes) -> bytes:
        ...


class InvalidOAuthStateError(Exception):
    """OAuth state was forged, tampered with or has expired."""


def derive_fernet_key(secret: str) -> bytes:
    """
    Turn an arbitrary secret into a Fernet key.

    A value that already is a urlsafe base64 32-byte key is used as-is;
    anything else is hashed with SHA-256.
    """
    raw = secret.encode()
    try:
        if len(base64.urlsafe_b64decode(raw)) == 32:
            return raw
    except ValueError:
        pass
    return base64.urlsafe_b64encode(hashlib.sha256(raw).digest())


class FernetTokenCipher:
    """TokenCipher backed by cryptography's Fernet (AES-128-CBC + HMAC)."""

    def __init__(self, key: Optional[str] = None):
        if key:
            self._fernet = Fernet(derive_fernet_key(key))
        else:
            logger.warning(
                "TOKEN_ENCRYPTION_KEY not set. Using an ephemeral key; stored "
                "tokens become unreadable after restart."
            )
            self._fernet = Fernet(Fernet.generate_key())

    def encrypt(self, data: bytes) -> bytes:
        return self._fernet.encrypt(data)

    def decrypt(self, data: bytes, ttl: Optional[int] = None) -> bytes:
        return self._fernet.decrypt(data, ttl=ttl)

    def create_oauth_state(self, user_id: str) -> str:
        """Encrypt the user ID into an opaque, timestamped state token."""
        return self.encrypt(user_id.encode()).decode()

    def read_oauth_state(self, state: str, ttl_seconds: int) -> str:
        """
        Recover the user ID from a state token.

        Raises:
            InvalidOAuthStateError: If the token is invalid or older than ttl_seconds
        """
        try:
            return self.decrypt(state.encode(), ttl=ttl_seconds).decode()
        except (InvalidToken, UnicodeDecodeError) as e:
            raise InvalidOAuthStateError("Invalid or expired OAuth state") from e

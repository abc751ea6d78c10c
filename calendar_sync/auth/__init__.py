"""
Credential protection for the calendar sync service.

OAuth tokens are encrypted at rest and the OAuth state is signed with the
same key.
"""

from calendar_sync.auth.encryption import (
    FernetTokenCipher,
    InvalidOAuthStateError,
    TokenCipher,
    derive_fernet_key,
)

__all__ = [
    "FernetTokenCipher",
    "InvalidOAuthStateError",
    "TokenCipher",
    "derive_fernet_key",
]

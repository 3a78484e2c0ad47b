"""Spaces Vault — Per-user encryption of stored credentials.

Security Note (Threat Model):
    Secret values are decrypted in process memory while a request is being
    handled. A compromised server process can read them; protecting against
    that is out of scope. Keys are fetched per operation and never cached.
"""

from .version import __version__
from .config import VaultConfig
from .errors import (
    VaultError,
    InvalidKey,
    AuthenticationFailure,
    MalformedEnvelope,
    KeyUnavailable,
    KeyGenerationFailure,
    ValidationFailure,
    PersistenceFailure,
    SecretNotFound,
    KeySwapFailure,
)
from .crypto import encrypt, decrypt, generate_key
from .envelope import encode, decode, protect, reveal
from .locks import UserLocker, LocalUserLocker, AdvisoryUserLocker
from .rotation import rotate_user_key
from .service import SecretService

__all__ = [
    "__version__",
    "VaultConfig",
    "VaultError",
    "InvalidKey",
    "AuthenticationFailure",
    "MalformedEnvelope",
    "KeyUnavailable",
    "KeyGenerationFailure",
    "ValidationFailure",
    "PersistenceFailure",
    "SecretNotFound",
    "KeySwapFailure",
    "encrypt",
    "decrypt",
    "generate_key",
    "encode",
    "decode",
    "protect",
    "reveal",
    "UserLocker",
    "LocalUserLocker",
    "AdvisoryUserLocker",
    "rotate_user_key",
    "SecretService",
]

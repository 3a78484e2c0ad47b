"""
Vault Errors — Exception taxonomy for secret protection and key rotation.

Every error raised by the vault derives from ``VaultError``. Errors are
surfaced to the immediate caller unmodified and are never retried.

Security Note:
    Error messages must never contain key material, plaintext or ciphertext.
"""
from typing import Any, Optional


class VaultError(Exception):
    """Base class for vault failures.

    ``secret_id`` and ``user_id`` are filled in by the caller that knows
    which record or user triggered the failure (rotation, export).
    """

    default_message = "vault operation failed"

    def __init__(
        self,
        message: Optional[str] = None,
        *,
        secret_id: Optional[str] = None,
        user_id: Optional[str] = None,
    ) -> None:
        self.message = message or self.default_message
        self.secret_id = secret_id
        self.user_id = user_id
        super().__init__(self.message)

    def __str__(self) -> str:
        if self.secret_id:
            return f"{self.message} (secret_id={self.secret_id})"
        return self.message


class InvalidKey(VaultError):
    default_message = "encryption key must be exactly 32 bytes"


class AuthenticationFailure(VaultError):
    """Ciphertext did not verify: wrong key or corrupted data."""
    default_message = "the stored value cannot be decoded with the current key"


class MalformedEnvelope(VaultError):
    default_message = "invalid encoded data length"


class KeyUnavailable(VaultError):
    default_message = "no encryption key is on record for this user"


class KeyGenerationFailure(VaultError):
    default_message = "failed to generate a new encryption key"


class ValidationFailure(VaultError):
    """Plaintext fields violate their constraints.

    Raised before any cryptographic operation takes place.
    """

    default_message = "invalid secret data"

    def __init__(
        self,
        message: Optional[str] = None,
        *,
        errors: Optional[list[dict[str, Any]]] = None,
        **kwargs: Any,
    ) -> None:
        self.errors = errors or []
        super().__init__(message, **kwargs)


class PersistenceFailure(VaultError):
    default_message = "failed to persist vault data"


class SecretNotFound(PersistenceFailure):
    default_message = "the secret does not exist or does not belong to the user"


class KeySwapFailure(PersistenceFailure):
    """Secrets were re-encrypted and committed, but the new key was not stored.

    Requires manual reconciliation: every secret of the user is now
    readable only with the key generated by the failed rotation. That key
    is kept in ``pending_key`` so an operator-side handler can retry
    ``UserKeyStore.set_key`` with it.
    """
    default_message = (
        "secrets were re-encrypted but the user key could not be replaced"
    )

    def __init__(
        self,
        message: Optional[str] = None,
        *,
        pending_key: Optional[bytes] = None,
        **kwargs: Any,
    ) -> None:
        # the key the committed envelopes are encrypted under; never logged
        self.pending_key = pending_key
        super().__init__(message, **kwargs)

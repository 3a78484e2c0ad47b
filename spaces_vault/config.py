"""
Vault Configuration — Validated settings for the secret service.

Reads optional overrides from environment variables:
    VAULT_CIPHER_BACKEND = aesgcm | chacha20
    VAULT_SEARCH_LIMIT = <integer>
    VAULT_MAX_SECRETS_PER_USER = <integer>

Security Note:
    User keys are never part of the configuration; they live in the
    user key store and are fetched per operation.
"""
import os
import logging

from pydantic import BaseModel, Field, field_validator

logger = logging.getLogger("spaces.vault")

EXPORT_PASSWORD_LENGTH = 32


class VaultConfig(BaseModel):
    """Validated vault configuration.

    ``cipher_backend`` does not pick the cipher: ``crypto`` resolves it once
    at import from VAULT_CIPHER_BACKEND. ``SecretService`` refuses a config
    whose backend differs from the one the process encrypts with.
    """

    cipher_backend: str = Field(default="aesgcm")
    search_limit: int = Field(default=10, ge=1, le=1000)
    max_secrets_per_user: int = Field(default=1000, ge=1)

    @field_validator("cipher_backend")
    @classmethod
    def validate_cipher(cls, v: str) -> str:
        """Validate cipher backend is supported."""
        v = v.lower()
        if v not in ("aesgcm", "chacha20"):
            raise ValueError(f"Unsupported cipher backend: {v}")
        return v

    @classmethod
    def from_env(cls) -> "VaultConfig":
        """Create VaultConfig by loading values from environment.

        Returns:
            Populated VaultConfig instance.
        """
        values = {
            "cipher_backend": os.environ.get("VAULT_CIPHER_BACKEND", "aesgcm"),
        }
        if "VAULT_SEARCH_LIMIT" in os.environ:
            values["search_limit"] = os.environ["VAULT_SEARCH_LIMIT"]
        if "VAULT_MAX_SECRETS_PER_USER" in os.environ:
            values["max_secrets_per_user"] = os.environ["VAULT_MAX_SECRETS_PER_USER"]
        config = cls(**values)
        logger.debug(
            "Vault config loaded: cipher=%s search_limit=%d max_secrets=%d",
            config.cipher_backend, config.search_limit,
            config.max_secrets_per_user,
        )
        return config

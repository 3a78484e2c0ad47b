"""
Vault Stores — Persistence contracts for secret rows and user keys.

The secret service only talks to these two interfaces. Store errors are
raised as ``PersistenceFailure`` (or ``SecretNotFound``) and are opaque to
the service.
"""
from abc import ABC, abstractmethod
from collections.abc import Mapping
from typing import Optional

from ..models import ProtectedFields, SecretInput, SecretRecord


class SecretStore(ABC):
    """Persistence for secret rows.

    Every read and write is scoped to (user_id, secret_id).
    """

    @abstractmethod
    async def fetch_all(self, user_id: str) -> list[SecretRecord]:
        """Return every secret owned by user_id."""

    @abstractmethod
    async def fetch_one(self, user_id: str, secret_id: str) -> SecretRecord:
        """Return one secret.

        Raises:
            SecretNotFound: If it does not exist or belongs to another user.
        """

    @abstractmethod
    async def insert(self, record: SecretRecord) -> str:
        """Persist a new secret row and return its id."""

    @abstractmethod
    async def update(
        self,
        user_id: str,
        secret_id: str,
        fields: SecretInput,
        protected: ProtectedFields,
    ) -> None:
        """Replace metadata and envelopes of an owned secret.

        Ownership is checked inside the same transaction as the update.

        Raises:
            SecretNotFound: If the secret does not belong to user_id.
        """

    @abstractmethod
    async def delete(self, user_id: str, secret_id: str) -> None:
        """Delete an owned secret.

        Raises:
            SecretNotFound: If the secret does not belong to user_id.
        """

    @abstractmethod
    async def name_taken(
        self, user_id: str, name: str, exclude_id: Optional[str] = None,
    ) -> bool:
        """Check whether user_id already owns a secret called name."""

    @abstractmethod
    async def replace_protected_fields(
        self, user_id: str, items: Mapping[str, ProtectedFields],
    ) -> None:
        """Replace the envelopes of many secrets at once.

        All-or-nothing: either every listed row is updated or none is.

        Raises:
            PersistenceFailure: If any id does not match exactly one row
                owned by user_id, or the batch could not be committed.
        """


class UserKeyStore(ABC):
    """Persistence for each user's current encryption key."""

    @abstractmethod
    async def get_key(self, user_id: str) -> Optional[bytes]:
        """Return the user's current key, or None if none is on record."""

    @abstractmethod
    async def set_key(self, user_id: str, key: bytes) -> None:
        """Replace the user's current key.

        Raises:
            PersistenceFailure: If the key could not be stored.
        """

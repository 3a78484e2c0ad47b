"""In-process stores, used by tests and local development."""
from collections.abc import Mapping
from datetime import datetime, timezone
from typing import Optional

from ..errors import PersistenceFailure, SecretNotFound
from ..models import ProtectedFields, SecretInput, SecretRecord
from .abstract import SecretStore, UserKeyStore


class MemorySecretStore(SecretStore):
    """Dict-backed secret store.

    Records are copied on the way in and out so callers never hold a
    reference to stored state.
    """

    def __init__(self) -> None:
        self._rows: dict[str, SecretRecord] = {}

    def _owned(self, user_id: str, secret_id: str) -> SecretRecord:
        row = self._rows.get(secret_id)
        if row is None or row.user_id != user_id:
            raise SecretNotFound(secret_id=secret_id, user_id=user_id)
        return row

    async def fetch_all(self, user_id: str) -> list[SecretRecord]:
        return [
            row.model_copy(deep=True)
            for row in self._rows.values()
            if row.user_id == user_id
        ]

    async def fetch_one(self, user_id: str, secret_id: str) -> SecretRecord:
        return self._owned(user_id, secret_id).model_copy(deep=True)

    async def insert(self, record: SecretRecord) -> str:
        if record.id in self._rows:
            raise PersistenceFailure(
                "duplicate secret id", secret_id=record.id,
            )
        self._rows[record.id] = record.model_copy(deep=True)
        return record.id

    async def update(
        self,
        user_id: str,
        secret_id: str,
        fields: SecretInput,
        protected: ProtectedFields,
    ) -> None:
        row = self._owned(user_id, secret_id)
        self._rows[secret_id] = row.model_copy(update={
            "name": fields.name,
            "url": fields.url,
            "description": fields.description,
            "tags": list(fields.tags),
            "encoded_secret": protected.encoded_secret,
            "encoded_username": protected.encoded_username,
            "updated_at": datetime.now(timezone.utc),
        })

    async def delete(self, user_id: str, secret_id: str) -> None:
        self._owned(user_id, secret_id)
        del self._rows[secret_id]

    async def name_taken(
        self, user_id: str, name: str, exclude_id: Optional[str] = None,
    ) -> bool:
        return any(
            row.user_id == user_id and row.name == name and row.id != exclude_id
            for row in self._rows.values()
        )

    async def replace_protected_fields(
        self, user_id: str, items: Mapping[str, ProtectedFields],
    ) -> None:
        if not items:
            return
        # validate the whole batch before touching any row
        missing = [
            secret_id for secret_id in items
            if secret_id not in self._rows
            or self._rows[secret_id].user_id != user_id
        ]
        if missing:
            raise PersistenceFailure(
                f"{len(missing)} secret(s) not found, batch rejected",
                secret_id=missing[0], user_id=user_id,
            )
        now = datetime.now(timezone.utc)
        for secret_id, fields in items.items():
            self._rows[secret_id] = self._rows[secret_id].model_copy(update={
                "encoded_secret": fields.encoded_secret,
                "encoded_username": fields.encoded_username,
                "updated_at": now,
            })


class MemoryUserKeyStore(UserKeyStore):
    """Dict-backed user key store.

    Only users registered through ``add_user`` can hold a key.
    """

    def __init__(self, keys: Optional[Mapping[str, Optional[bytes]]] = None) -> None:
        self._keys: dict[str, Optional[bytes]] = dict(keys or {})

    def add_user(self, user_id: str, key: Optional[bytes] = None) -> None:
        self._keys[user_id] = key

    async def get_key(self, user_id: str) -> Optional[bytes]:
        return self._keys.get(user_id)

    async def set_key(self, user_id: str, key: bytes) -> None:
        if user_id not in self._keys:
            raise PersistenceFailure("unknown user", user_id=user_id)
        self._keys[user_id] = bytes(key)

"""
PostgreSQL stores over an asyncpg-compatible connection pool.

Expected tables (schema management lives outside this package)::

    CREATE TABLE password_record (
        id          text PRIMARY KEY,
        user_id     text NOT NULL,
        name        varchar(128) NOT NULL,
        url         varchar(256) NOT NULL DEFAULT '',
        description varchar(512) NOT NULL DEFAULT '',
        tags        text[] NOT NULL,
        secret      bytea,
        username    bytea,
        created_at  timestamptz NOT NULL DEFAULT NOW(),
        updated_at  timestamptz NOT NULL DEFAULT NOW(),
        UNIQUE (user_id, name)
    );
    -- users.auth_key bytea holds the current 32-byte key of each user

Security Note:
    Never log envelope or key values. Only log ids and row counts.
"""
import logging
from collections.abc import Mapping
from typing import Any, Optional

from ..errors import PersistenceFailure, SecretNotFound, VaultError
from ..models import ProtectedFields, SecretInput, SecretRecord
from .abstract import SecretStore, UserKeyStore

logger = logging.getLogger("spaces.vault")

# SQL statements
_SELECT_ALL = """
SELECT id, user_id, name, url, description, tags, secret, username,
       created_at, updated_at
FROM password_record
WHERE user_id = $1
ORDER BY name
"""

_SELECT_ONE = """
SELECT id, user_id, name, url, description, tags, secret, username,
       created_at, updated_at
FROM password_record
WHERE user_id = $1 AND id = $2
"""

_INSERT_SECRET = """
INSERT INTO password_record
    (id, user_id, name, url, description, tags, secret, username,
     created_at, updated_at)
VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10)
"""

_BELONGS_TO_USER = """
SELECT COUNT(1) FROM password_record
WHERE user_id = $1 AND id = $2
"""

_UPDATE_SECRET = """
UPDATE password_record
SET name = $3, url = $4, description = $5, tags = $6,
    secret = $7, username = $8, updated_at = NOW()
WHERE user_id = $1 AND id = $2
"""

_DELETE_SECRET = """
DELETE FROM password_record
WHERE user_id = $1 AND id = $2
"""

_NAME_TAKEN = """
SELECT COUNT(1) FROM password_record
WHERE user_id = $1 AND name = $2 AND ($3::text IS NULL OR id <> $3)
"""

_UPDATE_PROTECTED = """
UPDATE password_record
SET secret = $3, username = $4, updated_at = NOW()
WHERE user_id = $1 AND id = $2
"""

_SELECT_KEY = """
SELECT auth_key FROM users WHERE id = $1
"""

_UPDATE_KEY = """
UPDATE users SET auth_key = $2 WHERE id = $1
"""


def _affected(status: str) -> int:
    """Row count from an asyncpg command status such as ``UPDATE 1``."""
    try:
        return int(status.split()[-1])
    except (AttributeError, IndexError, ValueError):
        return 0


def _nullable(blob: bytes) -> Optional[bytes]:
    # empty envelopes are stored as NULL
    return bytes(blob) if blob else None


def _to_record(row: Any) -> SecretRecord:
    return SecretRecord(
        id=row["id"],
        user_id=row["user_id"],
        name=row["name"],
        url=row["url"] or "",
        description=row["description"] or "",
        tags=list(row["tags"] or []),
        encoded_secret=bytes(row["secret"] or b""),
        encoded_username=bytes(row["username"] or b""),
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


class PgSecretStore(SecretStore):
    """Secret rows in the ``password_record`` table."""

    def __init__(self, db_pool: Any):
        self._db = db_pool

    async def fetch_all(self, user_id: str) -> list[SecretRecord]:
        try:
            async with self._db.acquire() as conn:
                rows = await conn.fetch(_SELECT_ALL, user_id)
        except Exception as err:
            raise PersistenceFailure(
                "failed to select secrets", user_id=user_id,
            ) from err
        return [_to_record(row) for row in rows]

    async def fetch_one(self, user_id: str, secret_id: str) -> SecretRecord:
        try:
            async with self._db.acquire() as conn:
                row = await conn.fetchrow(_SELECT_ONE, user_id, secret_id)
        except Exception as err:
            raise PersistenceFailure(
                "failed to select secret", secret_id=secret_id, user_id=user_id,
            ) from err
        if row is None:
            raise SecretNotFound(secret_id=secret_id, user_id=user_id)
        return _to_record(row)

    async def insert(self, record: SecretRecord) -> str:
        try:
            async with self._db.acquire() as conn:
                await conn.execute(
                    _INSERT_SECRET,
                    record.id, record.user_id, record.name, record.url,
                    record.description, list(record.tags),
                    _nullable(record.encoded_secret),
                    _nullable(record.encoded_username),
                    record.created_at, record.updated_at,
                )
        except Exception as err:
            raise PersistenceFailure(
                "failed to insert secret", secret_id=record.id,
                user_id=record.user_id,
            ) from err
        return record.id

    async def _in_owned_tx(
        self, user_id: str, secret_id: str, query: str, *args: Any,
    ) -> None:
        """Run query in a transaction after checking ownership."""
        async with self._db.acquire() as conn:
            tx = conn.transaction()
            await tx.start()
            try:
                count = await conn.fetchval(_BELONGS_TO_USER, user_id, secret_id)
                if not count:
                    raise SecretNotFound(secret_id=secret_id, user_id=user_id)
                await conn.execute(query, user_id, secret_id, *args)
                await tx.commit()
            except VaultError:
                await tx.rollback()
                raise
            except Exception as err:
                await tx.rollback()
                raise PersistenceFailure(
                    "failed to write secret", secret_id=secret_id,
                    user_id=user_id,
                ) from err

    async def update(
        self,
        user_id: str,
        secret_id: str,
        fields: SecretInput,
        protected: ProtectedFields,
    ) -> None:
        await self._in_owned_tx(
            user_id, secret_id, _UPDATE_SECRET,
            fields.name, fields.url, fields.description, list(fields.tags),
            _nullable(protected.encoded_secret),
            _nullable(protected.encoded_username),
        )

    async def delete(self, user_id: str, secret_id: str) -> None:
        await self._in_owned_tx(user_id, secret_id, _DELETE_SECRET)

    async def name_taken(
        self, user_id: str, name: str, exclude_id: Optional[str] = None,
    ) -> bool:
        try:
            async with self._db.acquire() as conn:
                count = await conn.fetchval(_NAME_TAKEN, user_id, name, exclude_id)
        except Exception as err:
            raise PersistenceFailure(
                "failed to check secret name", user_id=user_id,
            ) from err
        return bool(count)

    async def replace_protected_fields(
        self, user_id: str, items: Mapping[str, ProtectedFields],
    ) -> None:
        if not items:
            return
        async with self._db.acquire() as conn:
            tx = conn.transaction()
            await tx.start()
            try:
                for secret_id, fields in items.items():
                    status = await conn.execute(
                        _UPDATE_PROTECTED,
                        user_id, secret_id,
                        _nullable(fields.encoded_secret),
                        _nullable(fields.encoded_username),
                    )
                    if _affected(status) != 1:
                        raise PersistenceFailure(
                            "secret not found, batch rejected",
                            secret_id=secret_id, user_id=user_id,
                        )
                await tx.commit()
            except VaultError:
                await tx.rollback()
                raise
            except Exception as err:
                await tx.rollback()
                raise PersistenceFailure(
                    "failed to update secrets in transaction", user_id=user_id,
                ) from err
        logger.debug(
            "Replaced envelopes of %d secret(s) for user=%s", len(items), user_id,
        )


class PgUserKeyStore(UserKeyStore):
    """User keys in the ``users.auth_key`` column."""

    def __init__(self, db_pool: Any):
        self._db = db_pool

    async def get_key(self, user_id: str) -> Optional[bytes]:
        try:
            async with self._db.acquire() as conn:
                key = await conn.fetchval(_SELECT_KEY, user_id)
        except Exception as err:
            raise PersistenceFailure(
                "failed to read encryption key", user_id=user_id,
            ) from err
        if not key:
            return None
        return bytes(key)

    async def set_key(self, user_id: str, key: bytes) -> None:
        try:
            async with self._db.acquire() as conn:
                status = await conn.execute(_UPDATE_KEY, user_id, bytes(key))
        except Exception as err:
            raise PersistenceFailure(
                "failed to update encryption key", user_id=user_id,
            ) from err
        if _affected(status) != 1:
            raise PersistenceFailure("unknown user", user_id=user_id)

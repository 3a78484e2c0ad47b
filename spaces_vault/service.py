"""
SecretService — Credential storage with per-user authenticated encryption.

Provides the caller-facing API for stored credentials:
- ``create`` / ``update`` / ``delete`` — validated, encrypted writes
- ``get`` — one secret with its password and username revealed
- ``get_all`` / ``count`` / ``get_tags`` / ``search`` — list views, never decrypt
- ``export_all`` / ``import_items`` — bulk reveal and bulk protect
- ``rotate`` — re-encrypt everything under a new key

The user's key is fetched from the key store on every call and is never
cached, so a rotation takes effect on the very next operation.

Security Note:
    Never log plaintext or ciphertext values. Only log secret ids,
    operations and user IDs.
"""
import uuid
import logging
from collections.abc import Callable, Iterable
from datetime import datetime, timezone
from typing import Any, Optional

from .config import VaultConfig
from .crypto import cipher_backend, generate_key
from .envelope import protect, reveal
from .errors import KeyUnavailable, ValidationFailure, VaultError
from .locks import UserLocker
from .models import (
    ProtectedFields,
    Secret,
    SecretExportItem,
    SecretInput,
    SecretQuery,
    SecretRecord,
    SecretSummary,
)
from .rotation import rotate_user_key
from .stores import SecretStore, UserKeyStore

logger = logging.getLogger("spaces.vault")


class SecretService:
    """Stored credentials of every user, encrypted with the user's own key.

    Every write path and rotation runs inside the user's exclusive section
    provided by ``locker``; reads are not serialized.
    """

    def __init__(
        self,
        secrets: SecretStore,
        keys: UserKeyStore,
        locker: UserLocker,
        config: Optional[VaultConfig] = None,
    ):
        self._secrets = secrets
        self._keys = keys
        self._locker = locker
        self._config = config or VaultConfig.from_env()
        if self._config.cipher_backend != cipher_backend():
            raise ValueError(
                f"Configured cipher backend {self._config.cipher_backend!r} "
                f"does not match the process backend {cipher_backend()!r} "
                "(VAULT_CIPHER_BACKEND)"
            )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _user_key(self, user_id: str) -> bytes:
        key = await self._keys.get_key(user_id)
        if not key:
            raise KeyUnavailable(user_id=user_id)
        return key

    @staticmethod
    def _require_id(secret_id: str) -> None:
        if not secret_id:
            raise ValidationFailure("secret ID must be provided")

    async def _check_name(
        self, user_id: str, name: str, exclude_id: Optional[str] = None,
    ) -> None:
        if await self._secrets.name_taken(user_id, name, exclude_id):
            raise ValidationFailure(
                f"a secret named {name!r} already exists",
                secret_id=exclude_id, user_id=user_id,
            )

    async def _check_capacity(self, user_id: str) -> None:
        limit = self._config.max_secrets_per_user
        if len(await self._secrets.fetch_all(user_id)) >= limit:
            raise ValidationFailure(
                f"Max secrets per user ({limit}) exceeded", user_id=user_id,
            )

    @staticmethod
    def _protect_input(data: SecretInput, key: bytes) -> ProtectedFields:
        return ProtectedFields(
            encoded_secret=protect(data.password, key),
            encoded_username=protect(data.username, key),
        )

    @staticmethod
    def _new_record(
        user_id: str, data: SecretInput, protected: ProtectedFields,
    ) -> SecretRecord:
        now = datetime.now(timezone.utc)
        return SecretRecord(
            id=uuid.uuid4().hex,
            user_id=user_id,
            name=data.name,
            url=data.url,
            description=data.description,
            tags=data.tags,
            encoded_secret=protected.encoded_secret,
            encoded_username=protected.encoded_username,
            created_at=now,
            updated_at=now,
        )

    async def _listed(
        self, user_id: str, query: Optional[SecretQuery],
    ) -> list[SecretRecord]:
        records = await self._secrets.fetch_all(user_id)
        if query is not None:
            records = [r for r in records if query.matches(r)]
        return sorted(records, key=lambda r: r.name)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def create(self, user_id: str, **fields: Any) -> str:
        """Validate, encrypt and persist a new secret.

        Args:
            user_id: Owner of the new secret.
            **fields: name, url, description, tags, password, username.

        Returns:
            Identifier of the new secret.

        Raises:
            ValidationFailure: If fields are invalid, the name is taken,
                or the user already owns the maximum number of secrets.
            KeyUnavailable: If the user has no key on record.
        """
        data = SecretInput.parse(**fields)
        async with self._locker.hold(user_id):
            await self._check_name(user_id, data.name)
            await self._check_capacity(user_id)
            key = await self._user_key(user_id)
            protected = self._protect_input(data, key)
            secret_id = await self._secrets.insert(
                self._new_record(user_id, data, protected)
            )
        logger.debug("Secret created: user=%s id=%s", user_id, secret_id)
        return secret_id

    async def update(self, user_id: str, secret_id: str, **fields: Any) -> None:
        """Validate, re-encrypt and replace an owned secret.

        Raises:
            ValidationFailure: If secret_id is empty or fields are invalid.
            SecretNotFound: If the secret does not belong to user_id.
            KeyUnavailable: If the user has no key on record.
        """
        self._require_id(secret_id)
        data = SecretInput.parse(**fields)
        async with self._locker.hold(user_id):
            await self._check_name(user_id, data.name, exclude_id=secret_id)
            key = await self._user_key(user_id)
            protected = self._protect_input(data, key)
            await self._secrets.update(user_id, secret_id, data, protected)
        logger.debug("Secret updated: user=%s id=%s", user_id, secret_id)

    async def delete(self, user_id: str, secret_id: str) -> None:
        """Delete an owned secret.

        Raises:
            ValidationFailure: If secret_id is empty.
            SecretNotFound: If the secret does not belong to user_id.
        """
        self._require_id(secret_id)
        async with self._locker.hold(user_id):
            await self._secrets.delete(user_id, secret_id)
        logger.debug("Secret deleted: user=%s id=%s", user_id, secret_id)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get(self, user_id: str, secret_id: str) -> Secret:
        """Return one secret with password and username revealed.

        Raises:
            SecretNotFound: If the secret does not belong to user_id.
            KeyUnavailable: If the user has no key on record.
            MalformedEnvelope, AuthenticationFailure: If a stored value
                cannot be decoded with the current key.
        """
        self._require_id(secret_id)
        record = await self._secrets.fetch_one(user_id, secret_id)
        key = await self._user_key(user_id)
        try:
            password = reveal(record.encoded_secret, key)
            username = reveal(record.encoded_username, key)
        except VaultError as err:
            err.secret_id = record.id
            err.user_id = user_id
            logger.warning(
                "Cannot decode secret id=%s for user=%s: %s",
                record.id, user_id, err.message,
            )
            raise
        return Secret(
            id=record.id,
            name=record.name,
            url=record.url,
            description=record.description,
            tags=record.tags,
            username=username,
            password=password,
            created_at=record.created_at,
            updated_at=record.updated_at,
        )

    async def get_all(
        self, user_id: str, query: Optional[SecretQuery] = None,
    ) -> list[SecretSummary]:
        """List secrets (id, name, tags) sorted by name."""
        return [
            SecretSummary(id=r.id, name=r.name, tags=r.tags)
            for r in await self._listed(user_id, query)
        ]

    async def count(self, user_id: str, query: Optional[SecretQuery] = None) -> int:
        return len(await self._listed(user_id, query))

    async def get_tags(self, user_id: str) -> list[str]:
        """Distinct tags across the user's secrets, sorted."""
        tags = set()
        for record in await self._secrets.fetch_all(user_id):
            tags.update(t for t in record.tags if t)
        return sorted(tags)

    async def search(
        self, user_id: str, term: str, limit: Optional[int] = None,
    ) -> list[SecretSummary]:
        """Case-insensitive match of term against name, url and description."""
        term = (term or "").strip().lower()
        if not term:
            return []
        limit = limit or self._config.search_limit
        found = [
            SecretSummary(id=r.id, name=r.name, tags=r.tags)
            for r in await self._listed(user_id, None)
            if term in r.name.lower()
            or term in r.url.lower()
            or term in r.description.lower()
        ]
        return found[:limit]

    # ------------------------------------------------------------------
    # Import / export
    # ------------------------------------------------------------------

    async def export_all(self, user_id: str) -> list[SecretExportItem]:
        """Reveal every secret of the user for an export bundle.

        The bundle holds plaintext; callers must protect it (see
        ``export.seal_bundle``) before it leaves the system.

        Raises:
            KeyUnavailable: If the user has no key on record.
            MalformedEnvelope, AuthenticationFailure: On the first secret
                that cannot be revealed; nothing is returned.
        """
        key = await self._user_key(user_id)
        items = []
        for record in await self._listed(user_id, None):
            try:
                password = reveal(record.encoded_secret, key)
                username = reveal(record.encoded_username, key)
            except VaultError as err:
                err.secret_id = record.id
                err.user_id = user_id
                logger.error(
                    "Export aborted for user=%s at secret id=%s: %s",
                    user_id, record.id, err.message,
                )
                raise
            items.append(SecretExportItem(
                name=record.name,
                url=record.url,
                description=record.description,
                tags=record.tags,
                username=username,
                password=password,
                encoded_password=record.encoded_secret,
                encoded_username=record.encoded_username,
            ))
        logger.info("Exported %d secret(s) for user=%s", len(items), user_id)
        return items

    async def import_items(
        self, user_id: str, items: Iterable[SecretExportItem],
    ) -> dict:
        """Create a secret for every imported item under the current key.

        Failing items are reported and skipped; the rest are still created.
        Items that would take the user past ``max_secrets_per_user`` are
        reported the same way.

        Returns:
            Stats dict with keys: imported, errors (list of messages).

        Raises:
            KeyUnavailable: If the user has no key on record.
        """
        stats: dict[str, Any] = {"imported": 0, "errors": []}
        async with self._locker.hold(user_id):
            key = await self._user_key(user_id)
            for item in items:
                try:
                    data = SecretInput.parse(
                        name=item.name,
                        url=item.url,
                        description=item.description,
                        tags=item.tags,
                        password=item.password,
                        username=item.username,
                    )
                    await self._check_name(user_id, data.name)
                    await self._check_capacity(user_id)
                    protected = self._protect_input(data, key)
                    await self._secrets.insert(
                        self._new_record(user_id, data, protected)
                    )
                    stats["imported"] += 1
                except VaultError as err:
                    stats["errors"].append(
                        f"failed to import secret {item.name!r}: {err}"
                    )
        logger.info(
            "Imported %d secret(s) for user=%s (%d error(s))",
            stats["imported"], user_id, len(stats["errors"]),
        )
        return stats

    # ------------------------------------------------------------------
    # Rotation
    # ------------------------------------------------------------------

    async def rotate(
        self,
        user_id: str,
        key_factory: Callable[[], bytes] = generate_key,
    ) -> dict:
        """Rotate the user's key while holding the user's exclusive section.

        See ``rotation.rotate_user_key`` for the protocol and its errors.
        """
        async with self._locker.hold(user_id):
            return await rotate_user_key(
                self._secrets, self._keys, user_id, key_factory=key_factory,
            )

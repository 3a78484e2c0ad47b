"""
Tests for export bundles and import.
"""
import orjson
import pytest

from spaces_vault import crypto
from spaces_vault.config import VaultConfig
from spaces_vault.envelope import encode
from spaces_vault.errors import (
    AuthenticationFailure,
    KeyUnavailable,
    MalformedEnvelope,
    ValidationFailure,
)
from spaces_vault.export import (
    _bundle_key,
    generate_export_password,
    open_bundle,
    seal_bundle,
)
from spaces_vault.models import SecretExportItem
from spaces_vault.service import SecretService
from spaces_vault.stores import MemoryUserKeyStore

from .conftest import K2, USER_ID, OTHER_USER_ID, secret_fields

PASSWORD = "0123456789abcdef0123456789abcdef"


class TestExportAll:
    """Bulk reveal of a user's secrets."""

    @pytest.mark.asyncio
    async def test_export_reveals_everything(self, service, secret_store):
        await service.create(USER_ID, **secret_fields(name="b"))
        await service.create(USER_ID, **secret_fields(name="a", password=""))
        await service.create(OTHER_USER_ID, **secret_fields(name="c"))

        items = await service.export_all(USER_ID)

        assert [i.name for i in items] == ["a", "b"]
        assert items[0].password == ""
        assert items[1].password == "p@ss"
        assert items[1].username == "bob"
        stored = {r.name: r for r in await secret_store.fetch_all(USER_ID)}
        assert items[1].encoded_password == stored["b"].encoded_secret
        assert items[1].encoded_username == stored["b"].encoded_username

    @pytest.mark.asyncio
    async def test_export_aborts_on_stale_secret(self, service, key_store):
        await service.create(USER_ID, **secret_fields())
        await key_store.set_key(USER_ID, K2)
        with pytest.raises(AuthenticationFailure) as exc:
            await service.export_all(USER_ID)
        assert exc.value.secret_id

    @pytest.mark.asyncio
    async def test_export_without_key(self, secret_store, locker):
        service = SecretService(
            secret_store, MemoryUserKeyStore({USER_ID: None}), locker,
        )
        with pytest.raises(KeyUnavailable):
            await service.export_all(USER_ID)


class TestBundle:
    """Sealing export bundles with an export password."""

    def _items(self):
        return [
            SecretExportItem(
                name="mail", tags=["personal"], username="bob", password="p@ss",
                encoded_password=b"\x00" * 30,
            ),
            SecretExportItem(name="empty", tags=["x"]),
        ]

    def test_round_trip(self):
        items = open_bundle(seal_bundle(self._items(), PASSWORD), PASSWORD)
        assert [i.name for i in items] == ["mail", "empty"]
        assert items[0].password == "p@ss"
        assert items[0].username == "bob"
        # envelopes never leave in a bundle
        assert items[0].encoded_password == b""

    def test_bundle_hides_plaintext(self):
        assert b"p@ss" not in seal_bundle(self._items(), PASSWORD)

    def test_wrong_password(self):
        blob = seal_bundle(self._items(), PASSWORD)
        with pytest.raises(AuthenticationFailure):
            open_bundle(blob, "f" * 32)

    @pytest.mark.parametrize("password", ["", "short", "x" * 33])
    def test_password_length(self, password):
        with pytest.raises(ValidationFailure):
            seal_bundle(self._items(), password)

    def test_truncated_bundle(self):
        with pytest.raises(MalformedEnvelope):
            open_bundle(b"x" * 7, PASSWORD)

    def test_empty_bundle(self):
        assert open_bundle(b"", PASSWORD) == []

    def test_not_a_list(self):
        nonce, ct = crypto.encrypt(orjson.dumps({"name": "x"}), _bundle_key(PASSWORD))
        with pytest.raises(ValidationFailure):
            open_bundle(encode(nonce, ct), PASSWORD)

    def test_generated_password(self):
        password = generate_export_password()
        assert len(password) == 32
        assert password != generate_export_password()
        assert open_bundle(seal_bundle([], password), password) == []


class TestImport:
    """Creating secrets from export rows."""

    @pytest.mark.asyncio
    async def test_export_then_import_into_other_user(self, service):
        await service.create(USER_ID, **secret_fields(name="mail"))
        await service.create(USER_ID, **secret_fields(name="bank", username=""))
        blob = seal_bundle(await service.export_all(USER_ID), PASSWORD)

        stats = await service.import_items(OTHER_USER_ID, open_bundle(blob, PASSWORD))

        assert stats == {"imported": 2, "errors": []}
        items = {i.name: i for i in await service.get_all(OTHER_USER_ID)}
        bank = await service.get(OTHER_USER_ID, items["bank"].id)
        assert bank.password == "p@ss"
        assert bank.username == ""

    @pytest.mark.asyncio
    async def test_import_collects_errors(self, service):
        await service.create(USER_ID, **secret_fields(name="taken"))
        stats = await service.import_items(USER_ID, [
            SecretExportItem(name="taken", tags=["x"], password="a"),
            SecretExportItem(name="no-tags", tags=[], password="b"),
            SecretExportItem(name="fine", tags=["x"], password="c"),
        ])
        assert stats["imported"] == 1
        assert len(stats["errors"]) == 2
        assert "'taken'" in stats["errors"][0]
        assert "'no-tags'" in stats["errors"][1]
        assert await service.count(USER_ID) == 2

    @pytest.mark.asyncio
    async def test_import_respects_max_secrets(self, secret_store, key_store, locker):
        service = SecretService(
            secret_store, key_store, locker,
            VaultConfig(max_secrets_per_user=2),
        )
        await service.create(USER_ID, **secret_fields(name="mail"))
        stats = await service.import_items(USER_ID, [
            SecretExportItem(name="a", tags=["x"], password="a"),
            SecretExportItem(name="b", tags=["x"], password="b"),
            SecretExportItem(name="c", tags=["x"], password="c"),
        ])
        assert stats["imported"] == 1
        assert len(stats["errors"]) == 2
        assert "'b'" in stats["errors"][0]
        assert "Max secrets" in stats["errors"][1]
        assert await service.count(USER_ID) == 2

    @pytest.mark.asyncio
    async def test_import_without_key(self, secret_store, locker):
        service = SecretService(
            secret_store, MemoryUserKeyStore({USER_ID: None}), locker,
        )
        with pytest.raises(KeyUnavailable):
            await service.import_items(USER_ID, [])

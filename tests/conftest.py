import contextlib
from typing import Any, Callable, Optional

import pytest

from spaces_vault.locks import LocalUserLocker
from spaces_vault.service import SecretService
from spaces_vault.stores import MemorySecretStore, MemoryUserKeyStore

USER_ID = "user-1"
OTHER_USER_ID = "user-2"

# 32 zero bytes, for deterministic tests
K1 = bytes(32)
K2 = bytes(range(32))


@pytest.fixture
def secret_store():
    return MemorySecretStore()


@pytest.fixture
def key_store():
    store = MemoryUserKeyStore()
    store.add_user(USER_ID, K1)
    store.add_user(OTHER_USER_ID, K2)
    return store


@pytest.fixture
def locker():
    return LocalUserLocker()


@pytest.fixture
def service(secret_store, key_store, locker):
    return SecretService(secret_store, key_store, locker)


def secret_fields(**overrides: Any) -> dict:
    """Valid create/update fields, with overrides."""
    fields = {
        "name": "mail",
        "url": "https://mail.example.com",
        "description": "personal mailbox",
        "tags": ["personal"],
        "password": "p@ss",
        "username": "bob",
    }
    fields.update(overrides)
    return fields


# --- asyncpg-compatible fakes ---

class FakeTransaction:
    def __init__(self, conn: "FakeConnection"):
        self._conn = conn

    async def start(self) -> None:
        self._conn.started = True

    async def commit(self) -> None:
        self._conn.committed = True

    async def rollback(self) -> None:
        self._conn.rolled_back = True


class FakeConnection:
    """Records statements; results come from the constructor arguments."""

    def __init__(
        self,
        rows: Optional[list[dict]] = None,
        value: Any = None,
        status: Optional[Callable[[str, tuple], str]] = None,
        error: Optional[Exception] = None,
    ):
        self.rows = rows or []
        self.value = value
        self.status = status or (lambda query, args: "UPDATE 1")
        self.error = error
        self.executed: list[tuple[str, tuple]] = []
        self.started = False
        self.committed = False
        self.rolled_back = False

    def _maybe_fail(self) -> None:
        if self.error is not None:
            raise self.error

    async def execute(self, query: str, *args: Any) -> str:
        self._maybe_fail()
        self.executed.append((query, args))
        return self.status(query, args)

    async def fetch(self, query: str, *args: Any) -> list[dict]:
        self._maybe_fail()
        return self.rows

    async def fetchrow(self, query: str, *args: Any) -> Optional[dict]:
        self._maybe_fail()
        return self.rows[0] if self.rows else None

    async def fetchval(self, query: str, *args: Any) -> Any:
        self._maybe_fail()
        return self.value

    def transaction(self) -> FakeTransaction:
        return FakeTransaction(self)


class FakePool:
    def __init__(self, conn: FakeConnection):
        self.conn = conn
        self.acquired = 0

    @contextlib.asynccontextmanager
    async def acquire(self):
        self.acquired += 1
        yield self.conn

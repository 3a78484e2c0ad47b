"""Secret and user key persistence backends."""
from .abstract import SecretStore, UserKeyStore
from .memory import MemorySecretStore, MemoryUserKeyStore
from .postgres import PgSecretStore, PgUserKeyStore

__all__ = [
    "SecretStore",
    "UserKeyStore",
    "MemorySecretStore",
    "MemoryUserKeyStore",
    "PgSecretStore",
    "PgUserKeyStore",
]

"""
Vault Key Rotation — Re-encrypt every secret of a user under a new key.

Rotation process, single pass, no persisted intermediate state:
    1. fetch the current key of the user
    2. generate a new key
    3. fetch all secrets of the user
    4. reveal both protected fields under the current key and protect
       them again under the new key
    5. replace every envelope in one all-or-nothing batch
    6. only then replace the user's key

A failure in steps 1-5 leaves the key and every stored envelope untouched,
so rotation can simply be run again. A failure in step 6 happens after the
batch committed and cannot be rolled back; it is logged as critical and
needs manual reconciliation.

The caller must hold the user's exclusive section (see ``locks``) for the
whole run. ``SecretService.rotate`` does so.

Security Note:
    Plaintext exists in memory only while a record is re-encrypted.
    Never log plaintext, ciphertext or key values.
"""
import logging
from collections.abc import Callable
from datetime import datetime, timezone

from .crypto import KEY_LENGTH, generate_key
from .envelope import protect, reveal
from .errors import (
    KeyGenerationFailure,
    KeySwapFailure,
    KeyUnavailable,
    PersistenceFailure,
    VaultError,
)
from .models import ProtectedFields
from .stores import SecretStore, UserKeyStore

logger = logging.getLogger("spaces.vault")


def _new_key(key_factory: Callable[[], bytes], current: bytes) -> bytes:
    try:
        key = key_factory()
    except KeyGenerationFailure:
        raise
    except (OSError, NotImplementedError) as err:
        raise KeyGenerationFailure() from err
    if not isinstance(key, (bytes, bytearray)) or len(key) != KEY_LENGTH:
        raise KeyGenerationFailure(
            f"generated key must be exactly {KEY_LENGTH} bytes"
        )
    if bytes(key) == current:
        raise KeyGenerationFailure("generated key equals the current key")
    return bytes(key)


async def rotate_user_key(
    secrets: SecretStore,
    keys: UserKeyStore,
    user_id: str,
    key_factory: Callable[[], bytes] = generate_key,
) -> dict:
    """Re-encrypt all secrets of user_id under a fresh key and swap keys.

    Args:
        secrets: Store holding the user's secret rows.
        keys: Store holding the user's current key.
        user_id: Owner whose secrets are rotated.
        key_factory: Source of the new 32-byte key.

    Returns:
        Stats dict with keys: total, rotated, empty_fields.

    Raises:
        KeyUnavailable: If the user has no key on record.
        KeyGenerationFailure: If no usable new key could be produced.
        MalformedEnvelope, AuthenticationFailure: If any stored envelope
            cannot be revealed; ``secret_id`` names the aborting record.
        PersistenceFailure: If the batch of new envelopes was rejected.
        KeySwapFailure: If the envelopes were committed but the new key
            could not be stored; ``pending_key`` holds the new key.
            A cancellation at that point is logged the same way and
            re-raised as is.
    """
    stats = {"total": 0, "rotated": 0, "empty_fields": 0}

    # 1. current key
    current_key = await keys.get_key(user_id)
    if not current_key:
        raise KeyUnavailable(user_id=user_id)

    # 2. new key
    new_key = _new_key(key_factory, current_key)

    # 3. secrets
    records = await secrets.fetch_all(user_id)
    stats["total"] = len(records)
    logger.info(
        "Starting key rotation for user=%s (%d secret(s))", user_id, len(records),
    )

    # 4. re-encrypt in memory
    reencrypted: dict[str, ProtectedFields] = {}
    for record in records:
        try:
            password = reveal(record.encoded_secret, current_key)
            username = reveal(record.encoded_username, current_key)
            reencrypted[record.id] = ProtectedFields(
                encoded_secret=protect(password, new_key),
                encoded_username=protect(username, new_key),
            )
        except VaultError as err:
            err.secret_id = record.id
            err.user_id = user_id
            logger.error(
                "Key rotation aborted for user=%s at secret id=%s: %s",
                user_id, record.id, err.message,
            )
            raise
        stats["empty_fields"] += (not password) + (not username)
        stats["rotated"] += 1

    # 5. all-or-nothing persist
    try:
        await secrets.replace_protected_fields(user_id, reencrypted)
    except PersistenceFailure as err:
        err.user_id = user_id
        logger.error(
            "Key rotation aborted for user=%s: failed to store new envelopes: %s",
            user_id, err.message,
        )
        raise

    # 6. key swap
    try:
        await keys.set_key(user_id, new_key)
    except BaseException as err:
        logger.critical(
            "Key rotation for user=%s at %s: %d secret(s) were re-encrypted "
            "and committed under the new key, but the user key could not be "
            "replaced (%r). Manual reconciliation required.",
            user_id, datetime.now(timezone.utc).isoformat(),
            len(reencrypted), err,
        )
        if not isinstance(err, Exception):
            # cancellation and interpreter exit propagate unchanged
            raise
        raise KeySwapFailure(user_id=user_id, pending_key=new_key) from err

    logger.info("User encryption key rotated: user=%s %s", user_id, stats)
    return stats

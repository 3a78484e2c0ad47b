"""
Vault Export — Sealing export bundles before they leave the system.

An export bundle holds revealed secret values, so it is wrapped in its own
envelope keyed by a one-off 32-character export password:
    HKDF(password, "spaces-export") → AEAD → [nonce 12B][orjson payload + tag]

The user's vault key is never used for bundles; a bundle can be opened
again after the vault key has been rotated.

Security Note:
    Never log the export password or bundle contents.
"""
import secrets
import logging
from collections.abc import Iterable

import orjson
from pydantic import ValidationError
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

from . import crypto
from .config import EXPORT_PASSWORD_LENGTH
from .envelope import decode, encode
from .errors import ValidationFailure
from .models import SecretExportItem

logger = logging.getLogger("spaces.vault")

_EXPORT_CONTEXT = "spaces-export"


def generate_export_password() -> str:
    """Return a random URL-safe export password of the required length."""
    return secrets.token_urlsafe(EXPORT_PASSWORD_LENGTH)[:EXPORT_PASSWORD_LENGTH]


def _bundle_key(password: str) -> bytes:
    if not password:
        raise ValidationFailure("password cannot be empty")
    if len(password) != EXPORT_PASSWORD_LENGTH:
        raise ValidationFailure(
            f"the password must be exactly {EXPORT_PASSWORD_LENGTH} "
            "characters long"
        )
    hkdf = HKDF(
        algorithm=hashes.SHA256(),
        length=crypto.KEY_LENGTH,
        salt=None,
        info=_EXPORT_CONTEXT.encode("utf-8"),
    )
    return hkdf.derive(password.encode("utf-8"))


def seal_bundle(items: Iterable[SecretExportItem], password: str) -> bytes:
    """Serialize and encrypt export items.

    Args:
        items: Revealed export rows; their envelopes are not included.
        password: 32-character export password.

    Returns:
        Sealed bundle bytes.

    Raises:
        ValidationFailure: If the password has the wrong length.
    """
    key = _bundle_key(password)
    rows = [item.model_dump(mode="json") for item in items]
    nonce, ct = crypto.encrypt(orjson.dumps(rows), key)
    logger.debug("Sealed export bundle with %d item(s)", len(rows))
    return encode(nonce, ct)


def open_bundle(blob: bytes, password: str) -> list[SecretExportItem]:
    """Decrypt and parse a sealed export bundle.

    Raises:
        ValidationFailure: If the password has the wrong length or the
            payload is not a list of export rows.
        MalformedEnvelope: If the bundle is truncated.
        AuthenticationFailure: If the password is wrong or the bundle
            was tampered with.
    """
    key = _bundle_key(password)
    parts = decode(blob)
    if parts is None:
        return []
    nonce, ct = parts
    data = crypto.decrypt(nonce, ct, key)
    try:
        rows = orjson.loads(data)
        if not isinstance(rows, list):
            raise ValueError("bundle payload must be a list")
        return [SecretExportItem.model_validate(row) for row in rows]
    except (orjson.JSONDecodeError, ValidationError, ValueError) as err:
        raise ValidationFailure("failed to decode export bundle") from err

"""
Vault Envelope — Stored byte format of one protected field.

Format: [nonce 12B][encrypted_payload + tag]

There is no delimiter or length prefix; the fixed nonce size makes the
split unambiguous. An empty blob means "no value was ever set" and is
produced for empty plaintext without touching the cipher.

``protect`` and ``reveal`` are the only way secret values are turned into
stored envelopes and back; callers never use the AEAD primitive directly.
"""
from typing import Optional

from . import crypto
from .crypto import NONCE_SIZE
from .errors import AuthenticationFailure, MalformedEnvelope

# nonce + at least one byte of authenticated output
MIN_ENVELOPE_SIZE = NONCE_SIZE + 1


def encode(nonce: bytes, ciphertext: bytes) -> bytes:
    """Concatenate nonce and ciphertext into a stored envelope."""
    return nonce + ciphertext


def decode(blob: bytes) -> Optional[tuple[bytes, bytes]]:
    """Split a stored envelope back into (nonce, ciphertext).

    Args:
        blob: Stored envelope bytes.

    Returns:
        ``None`` for an empty blob (value never set), otherwise
        the (nonce, ciphertext) tuple.

    Raises:
        MalformedEnvelope: If the blob is 1 to 12 bytes long.
    """
    if not blob:
        return None
    if len(blob) < MIN_ENVELOPE_SIZE:
        raise MalformedEnvelope(
            f"invalid encoded data length: {len(blob)} bytes "
            f"(minimum {MIN_ENVELOPE_SIZE})"
        )
    blob = bytes(blob)
    return blob[:NONCE_SIZE], blob[NONCE_SIZE:]


def protect(plaintext: str, key: bytes) -> bytes:
    """Encrypt a plaintext string into a stored envelope.

    Empty string encryption is a shortcut: it returns an empty blob and
    the key is not used at all.
    """
    if not plaintext:
        return b""
    nonce, ct = crypto.encrypt(plaintext.encode("utf-8"), key)
    return encode(nonce, ct)


def reveal(blob: bytes, key: bytes) -> str:
    """Decrypt a stored envelope back into its plaintext string.

    Raises:
        MalformedEnvelope: If the blob has an invalid length.
        AuthenticationFailure: If the blob does not verify under key.
    """
    parts = decode(blob)
    if parts is None:
        return ""
    nonce, ct = parts
    data = crypto.decrypt(nonce, ct, key)
    try:
        return data.decode("utf-8")
    except UnicodeDecodeError as err:
        raise AuthenticationFailure() from err

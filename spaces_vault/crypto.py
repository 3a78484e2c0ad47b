"""
Vault Crypto Core — AEAD primitive and key generation.

Every protected field is encrypted with the owning user's 32-byte key:
    AEAD(user_key) → (nonce 12B, encrypted_payload + tag 16B)

No associated data is used. The primitive is stateless and safe to share
between concurrent tasks.

Security Note:
    Never log plaintext, ciphertext or key values.
    Nonces are random 96-bit; do not use more than 2**32 random nonces
    with a single key because of the risk of a repeat.
"""
import os
import secrets
import logging

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM, ChaCha20Poly1305

from .errors import AuthenticationFailure, InvalidKey, KeyGenerationFailure

logger = logging.getLogger("spaces.vault")

NONCE_SIZE = 12  # 96-bit nonce
KEY_LENGTH = 32  # AES-256
TAG_SIZE = 16


def _get_cipher_cls() -> type:
    """Return the AEAD cipher class based on VAULT_CIPHER_BACKEND env var."""
    backend = os.environ.get("VAULT_CIPHER_BACKEND", "aesgcm").lower()
    if backend == "chacha20":
        return ChaCha20Poly1305
    return AESGCM


# Resolve cipher once at module load to prevent encrypt/decrypt mismatch
# if the env var changes mid-process.
CIPHER_CLS = _get_cipher_cls()


def cipher_backend() -> str:
    """Name of the backend this process encrypts with."""
    return "chacha20" if CIPHER_CLS is ChaCha20Poly1305 else "aesgcm"


def _cipher(key: bytes):
    if not isinstance(key, (bytes, bytearray)) or len(key) != KEY_LENGTH:
        raise InvalidKey()
    return CIPHER_CLS(bytes(key))


def encrypt(plaintext: bytes, key: bytes) -> tuple[bytes, bytes]:
    """Encrypt plaintext under key with a fresh random nonce.

    Args:
        plaintext: Data to encrypt.
        key: Raw 32-byte user key.

    Returns:
        Tuple of (nonce, ciphertext_with_tag).

    Raises:
        InvalidKey: If key is not exactly 32 bytes.
    """
    cipher = _cipher(key)
    nonce = os.urandom(NONCE_SIZE)
    ct = cipher.encrypt(nonce, plaintext, None)
    return nonce, ct


def decrypt(nonce: bytes, ciphertext: bytes, key: bytes) -> bytes:
    """Decrypt and verify ciphertext produced by ``encrypt``.

    Args:
        nonce: The 12-byte nonce used at encryption time.
        ciphertext: Encrypted payload followed by the tag.
        key: Raw 32-byte user key.

    Returns:
        Decrypted plaintext bytes.

    Raises:
        InvalidKey: If key is not exactly 32 bytes.
        AuthenticationFailure: If the tag does not verify (wrong key,
            wrong nonce or tampered data).
    """
    cipher = _cipher(key)
    try:
        return cipher.decrypt(nonce, ciphertext, None)
    except (InvalidTag, ValueError) as err:
        # ValueError covers a nonce of the wrong size handed to the cipher
        raise AuthenticationFailure() from err


def generate_key() -> bytes:
    """Generate a random 32-byte user key.

    Raises:
        KeyGenerationFailure: If the system random source is unusable.
    """
    try:
        key = secrets.token_bytes(KEY_LENGTH)
    except (OSError, NotImplementedError) as err:
        logger.error("Random source unavailable for key generation: %s", err)
        raise KeyGenerationFailure() from err
    return key

"""
Key derivation and authenticated encryption for stored API keys.

Security Design:
    - API keys are encrypted with AES-256-GCM; the GCM tag detects tampering
      and wrong keys instead of yielding garbage plaintext
    - A fresh random 96-bit nonce is generated for every encryption
    - The 256-bit key is derived from a password and a per-store random
      salt using PBKDF2-HMAC-SHA256
    - Stores written by the earlier tool used SHA-256(password || salt);
      that construction is kept only to read those stores

Threat Model:
    - When no password is supplied, a weak default derived from stable
      machine characteristics is used. It protects against casual
      inspection of the config file and accidental exposure in backups
    - It does NOT protect against anyone able to run code as the user
"""

import binascii
import hashlib
import platform
import secrets
import sys
from dataclasses import dataclass

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from wikit.config.errors import DecryptionFailedError, MalformedInputError
from wikit.config.settings import DEFAULT_KDF_ITERATIONS, ConfigurationError

# Security parameters - do not reduce these values
PBKDF2_ITERATIONS = DEFAULT_KDF_ITERATIONS
SALT_LENGTH = 32  # 256 bits
KEY_LENGTH = 32  # AES-256
NONCE_LENGTH = 12  # 96 bits, the GCM standard
TAG_LENGTH = 16  # 128 bits

KDF_PBKDF2 = "pbkdf2-sha256"
KDF_LEGACY_SHA256 = "sha256"


@dataclass(frozen=True)
class EncryptedValue:
    """Hex-encoded output of a single encryption."""

    ciphertext: str
    nonce: str
    tag: str


def generate_salt() -> bytes:
    """Generate a cryptographically secure random salt."""
    return secrets.token_bytes(SALT_LENGTH)


def _check_salt(salt: bytes) -> None:
    if len(salt) != SALT_LENGTH:
        raise ConfigurationError(
            f"Invalid salt length: expected {SALT_LENGTH} bytes, got {len(salt)}"
        )


def derive_key(password: str, salt: bytes, iterations: int = PBKDF2_ITERATIONS) -> bytes:
    """
    Derive an encryption key from password and salt.

    Args:
        password: Explicit password or the machine default.
        salt: The store's 32-byte random salt.
        iterations: PBKDF2 iteration count recorded in the store.

    Returns:
        32-byte AES key.

    Raises:
        ConfigurationError: If the salt is not 32 bytes long.
    """
    _check_salt(salt)
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=KEY_LENGTH,
        salt=salt,
        iterations=iterations,
    )
    return kdf.derive(password.encode("utf-8"))


def derive_legacy_key(password: str, salt: bytes) -> bytes:
    """Derive a key the way stores without a ``kdf`` block were keyed."""
    _check_salt(salt)
    digest = hashlib.sha256()
    digest.update(password.encode("utf-8"))
    digest.update(salt)
    return digest.digest()


def machine_identity() -> str:
    """Describe the local machine with values that survive reboots and upgrades."""
    return f"{sys.platform}-{platform.machine()}-{platform.system()}"


def default_password() -> str:
    """
    Weak default password used when the user supplies none.

    Derived from the platform identifier, architecture and OS name so that
    the same machine always reproduces it. Anyone who can read the store
    file on this machine can also reproduce it.
    """
    return hashlib.sha256(machine_identity().encode("utf-8")).hexdigest()[:16]


def encrypt(plaintext: str, key: bytes) -> EncryptedValue:
    """
    Encrypt a secret string with AES-256-GCM.

    Every call draws a new random nonce, so encrypting the same plaintext
    twice never produces the same nonce or ciphertext.
    """
    nonce = secrets.token_bytes(NONCE_LENGTH)
    sealed = AESGCM(key).encrypt(nonce, plaintext.encode("utf-8"), None)
    ciphertext, tag = sealed[:-TAG_LENGTH], sealed[-TAG_LENGTH:]
    return EncryptedValue(
        ciphertext=ciphertext.hex(),
        nonce=nonce.hex(),
        tag=tag.hex(),
    )


def decrypt(ciphertext: str, key: bytes, nonce: str, tag: str) -> str:
    """
    Decrypt and authenticate a secret string.

    Raises:
        MalformedInputError: If any component is missing or not valid hex.
        DecryptionFailedError: If the tag does not verify (tampering or
                              wrong key).
    """
    if not nonce:
        raise MalformedInputError("Missing nonce")
    if not tag:
        raise MalformedInputError("Missing authentication tag")

    try:
        ciphertext_bytes = bytes.fromhex(ciphertext)
        nonce_bytes = bytes.fromhex(nonce)
        tag_bytes = bytes.fromhex(tag)
    except (ValueError, binascii.Error) as e:
        raise MalformedInputError(f"Invalid hex encoding: {e}") from e

    if len(tag_bytes) != TAG_LENGTH:
        raise MalformedInputError(
            f"Invalid tag length: expected {TAG_LENGTH} bytes, got {len(tag_bytes)}"
        )
    # Earlier stores used 16-byte IVs; GCM accepts any length of 8 bytes or more
    if len(nonce_bytes) < 8:
        raise MalformedInputError(f"Nonce too short: {len(nonce_bytes)} bytes")

    try:
        plaintext = AESGCM(key).decrypt(nonce_bytes, ciphertext_bytes + tag_bytes, None)
    except InvalidTag as e:
        raise DecryptionFailedError(
            "Authentication failed (wrong password or tampered data)"
        ) from e

    try:
        return plaintext.decode("utf-8")
    except UnicodeDecodeError as e:
        raise DecryptionFailedError("Decrypted value is not valid UTF-8") from e


def join_encrypted_key(ciphertext: str, tag: str) -> str:
    """Build the stored ``ciphertext:tag`` field."""
    return f"{ciphertext}:{tag}"


def split_encrypted_key(value: str) -> tuple[str, str]:
    """
    Split a stored ``ciphertext:tag`` field.

    Raises:
        MalformedInputError: Unless there are exactly two non-empty parts.
    """
    parts = value.split(":")
    if len(parts) != 2:
        raise MalformedInputError("Invalid encrypted key format")
    ciphertext, tag = parts
    if not ciphertext or not tag:
        raise MalformedInputError(
            "Invalid encrypted key format: missing encrypted data or tag"
        )
    return ciphertext, tag

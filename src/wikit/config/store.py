"""
Encrypted multi-instance credential store for wikit.

The store is a single JSON document holding one record per Wiki.js
instance. Only the API key is secret: it is encrypted with AES-256-GCM
under a key derived from the store password and a random per-store salt.
Names and URLs stay in plaintext so listings never need the password.

File Structure:
    ~/.config/wikit/config.json - version, salt, kdf parameters,
                                  instance records and preferences
"""

from __future__ import annotations

import json
import logging
import os
import re
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Any
from urllib.parse import urlparse

from wikit.config import crypto
from wikit.config.errors import (
    CredentialError,
    DecryptionFailedError,
    DuplicateInstanceError,
    InstanceNotFoundError,
    InvalidInstanceError,
    NotInitializedError,
)
from wikit.config.settings import DEFAULT_CONFIG_DIR, ConfigurationError

logger = logging.getLogger(__name__)

CONFIG_VERSION = "1.0.0"
CONFIG_FILENAME = "config.json"
INSTANCE_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]+$")


@dataclass(frozen=True)
class WikiInstance:
    """Decrypted view of an instance. Never persisted in this form."""

    id: str
    name: str
    url: str
    key: str

    def __repr__(self) -> str:
        return f"WikiInstance(id={self.id!r}, name={self.name!r}, url={self.url!r}, key='***')"

    def info(self) -> InstanceInfo:
        return InstanceInfo(id=self.id, name=self.name, url=self.url)


@dataclass(frozen=True)
class InstanceInfo:
    """Non-secret projection of an instance, safe to list and display."""

    id: str
    name: str
    url: str


def is_valid_url(url: str) -> bool:
    """Check that a URL is http(s) with a host. No network access."""
    try:
        parsed = urlparse(url)
    except ValueError:
        return False
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def validate_instance(instance: WikiInstance) -> None:
    """
    Perform basic syntactic checks on an instance record.

    Raises:
        InvalidInstanceError: If any field is empty, the id contains
                            characters other than letters, digits, ``_``
                            and ``-``, or the URL is not http(s).
    """
    for field_name in ("id", "name", "url", "key"):
        if not getattr(instance, field_name).strip():
            raise InvalidInstanceError(f"Instance {field_name} is required")

    if not INSTANCE_ID_PATTERN.match(instance.id):
        raise InvalidInstanceError(
            f"Invalid instance ID '{instance.id}': only letters, numbers, "
            "underscores, and dashes are allowed"
        )

    if not is_valid_url(instance.url):
        raise InvalidInstanceError(f"Invalid URL format: {instance.url}")


def _check_records(records: list[Any]) -> None:
    """Reject instance records missing required fields or sharing an id."""
    seen: set[str] = set()
    for index, record in enumerate(records):
        if not isinstance(record, dict) or not all(
            isinstance(record.get(field_name), str) for field_name in ("id", "name", "url")
        ):
            raise ValueError(f"Instance record {index} needs string id, name and url")
        if record["id"] in seen:
            raise ValueError(f"Duplicate instance ID '{record['id']}'")
        seen.add(record["id"])


class CredentialStore:
    """
    Encrypted instance store backed by one JSON document.

    The store starts uninitialized. ``initialize()`` loads the document (or
    creates it on first run) and derives the encryption key; every mutation
    after that rewrites the whole document before returning.

    Usage:
        store = CredentialStore()
        store.initialize()  # or initialize("explicit password")

        store.add_instance(WikiInstance("mywiki", "My Wiki", url, api_key))
        instance = store.get_instance("mywiki")

    Attributes:
        config_dir: Directory containing the store document.
        config_path: Path to the store document.
        iterations: PBKDF2 iterations used when creating a new document.
    """

    def __init__(
        self,
        config_dir: Path | None = None,
        iterations: int = crypto.PBKDF2_ITERATIONS,
    ) -> None:
        self.config_dir = Path(config_dir) if config_dir else DEFAULT_CONFIG_DIR
        self.config_path = self.config_dir / CONFIG_FILENAME
        self.iterations = iterations
        self._config: dict[str, Any] | None = None
        self._key: bytes | None = None

    def initialize(self, password: str | None = None) -> None:
        """
        Load the store document, creating it on first run.

        May be called more than once; each call re-reads the file and
        re-derives the key.

        Args:
            password: Explicit store password. The weak machine-derived
                     default is used when omitted.

        Raises:
            ConfigurationError: If the document cannot be read, is corrupt,
                              or the directory cannot be created.
        """
        if password is None:
            logger.debug("No store password supplied, using machine default")
            password = crypto.default_password()

        if self.config_path.exists():
            self._load_config(password)
        else:
            self._create_default_config(password)

    def is_loaded(self) -> bool:
        """Check whether the document is in memory and the key derived."""
        return self._config is not None and self._key is not None

    def _load_config(self, password: str) -> None:
        try:
            data = json.loads(self.config_path.read_text(encoding="utf-8"))
            if not isinstance(data, dict) or not data.get("salt"):
                raise ValueError("Invalid config format")
            if not isinstance(data.get("instances", []), list):
                raise ValueError("Invalid config format: 'instances' must be a list")
            _check_records(data.get("instances", []))

            salt = bytes.fromhex(data["salt"])
            kdf = data.get("kdf")
            if kdf is None:
                key = crypto.derive_legacy_key(password, salt)
            elif kdf.get("name") == crypto.KDF_PBKDF2:
                key = crypto.derive_key(password, salt, int(kdf["iterations"]))
            else:
                raise ValueError(f"Unsupported key derivation: {kdf.get('name')}")
        except (OSError, ValueError, KeyError, TypeError, AttributeError, ConfigurationError) as e:
            raise ConfigurationError(f"Failed to load config: {e}") from e

        data.setdefault("instances", [])
        data.setdefault("preferences", {})
        self._config = data
        self._key = key
        logger.debug(
            "Loaded credential store %s with %d instance(s)",
            self.config_path,
            len(data["instances"]),
        )

    def _create_default_config(self, password: str) -> None:
        try:
            self.config_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise ConfigurationError(
                f"Cannot create config directory {self.config_dir}: {e}"
            ) from e
        try:
            os.chmod(self.config_dir, 0o700)
        except OSError:
            # Windows or permission error - continue anyway
            pass

        salt = crypto.generate_salt()
        key = crypto.derive_key(password, salt, self.iterations)
        self._commit(
            {
                "version": CONFIG_VERSION,
                "salt": salt.hex(),
                "kdf": {"name": crypto.KDF_PBKDF2, "iterations": self.iterations},
                "instances": [],
                "preferences": {},
            }
        )
        self._key = key
        logger.info("Created credential store at %s", self.config_path)

    def _save_config(self) -> None:
        """
        Write the whole document with owner-only permissions.

        Uses atomic write (temp file in the same directory, then replace)
        so a crash never leaves a truncated store.
        """
        if self._config is None:
            raise NotInitializedError("No config to save")

        payload = json.dumps(self._config, indent=2)
        fd, temp_name = tempfile.mkstemp(
            dir=self.config_dir, prefix=".config-", suffix=".tmp"
        )
        temp_path = Path(temp_name)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(payload)
                f.flush()
                os.fsync(f.fileno())
            try:
                os.chmod(temp_path, 0o600)
            except OSError:
                pass
            os.replace(temp_path, self.config_path)
        except Exception:
            if temp_path.exists():
                temp_path.unlink()
            raise

    def _commit(self, config: dict[str, Any]) -> None:
        """Save an updated document, keeping the previous one in memory if the write fails."""
        previous = self._config
        self._config = config
        try:
            self._save_config()
        except Exception:
            self._config = previous
            raise

    def _require_loaded(self) -> tuple[dict[str, Any], bytes]:
        if self._config is None or self._key is None:
            raise NotInitializedError("Config not initialized")
        return self._config, self._key

    def _find(self, instance_id: str) -> dict[str, Any] | None:
        if self._config is None:
            return None
        for record in self._config["instances"]:
            if record.get("id") == instance_id:
                return record
        return None

    def add_instance(self, instance: WikiInstance) -> None:
        """
        Encrypt and store a new instance.

        Raises:
            NotInitializedError: If initialize() has not been called.
            InvalidInstanceError: If the record fails validation.
            DuplicateInstanceError: If the id is already present.
        """
        config, key = self._require_loaded()
        validate_instance(instance)

        if self._find(instance.id) is not None:
            raise DuplicateInstanceError(
                f"Instance with ID '{instance.id}' already exists"
            )

        sealed = crypto.encrypt(instance.key, key)
        record = {
            "id": instance.id,
            "name": instance.name,
            "url": instance.url,
            "encryptedKey": crypto.join_encrypted_key(sealed.ciphertext, sealed.tag),
            "iv": sealed.nonce,
        }
        self._commit({**config, "instances": [*config["instances"], record]})
        logger.info("Added instance '%s'", instance.id)

    def update_instance(
        self,
        instance_id: str,
        name: str | None = None,
        url: str | None = None,
        key: str | None = None,
    ) -> None:
        """
        Update the supplied fields of an existing instance.

        Empty values are treated as not supplied. A new key is always
        encrypted under a fresh nonce.

        Raises:
            NotInitializedError: If initialize() has not been called.
            InstanceNotFoundError: If the instance does not exist.
            InvalidInstanceError: If the new URL is not valid.
        """
        config, encryption_key = self._require_loaded()
        record = self._find(instance_id)
        if record is None:
            raise InstanceNotFoundError(f"Instance '{instance_id}' not found")

        if url and not is_valid_url(url):
            raise InvalidInstanceError(f"Invalid URL format: {url}")

        updated = dict(record)
        if name:
            updated["name"] = name
        if url:
            updated["url"] = url
        if key:
            sealed = crypto.encrypt(key, encryption_key)
            updated["encryptedKey"] = crypto.join_encrypted_key(sealed.ciphertext, sealed.tag)
            updated["iv"] = sealed.nonce

        instances = [updated if r is record else r for r in config["instances"]]
        self._commit({**config, "instances": instances})
        logger.info("Updated instance '%s'", instance_id)

    def remove_instance(self, instance_id: str) -> None:
        """
        Remove an instance.

        Raises:
            NotInitializedError: If initialize() has not been called.
            InstanceNotFoundError: If the instance does not exist.
        """
        config, _ = self._require_loaded()
        record = self._find(instance_id)
        if record is None:
            raise InstanceNotFoundError(f"Instance '{instance_id}' not found")

        instances = [r for r in config["instances"] if r is not record]
        self._commit({**config, "instances": instances})
        logger.info("Removed instance '%s'", instance_id)

    def get_instance_ids(self) -> list[str]:
        if self._config is None:
            return []
        return [record["id"] for record in self._config["instances"]]

    def get_instance_info(self, instance_id: str) -> InstanceInfo | None:
        """Return the non-secret fields of an instance without decrypting."""
        record = self._find(instance_id)
        if record is None:
            return None
        return InstanceInfo(id=record["id"], name=record["name"], url=record["url"])

    def get_all_instances(self) -> list[InstanceInfo]:
        if self._config is None:
            return []
        return [
            InstanceInfo(id=record["id"], name=record["name"], url=record["url"])
            for record in self._config["instances"]
        ]

    def get_instance(self, instance_id: str) -> WikiInstance | None:
        """
        Decrypt and return an instance.

        Returns:
            The decrypted instance, or None if no instance has this id.

        Raises:
            NotInitializedError: If initialize() has not been called.
            DecryptionFailedError: If the stored key cannot be authenticated
                                 (wrong password, corruption, tampering).
        """
        _, key = self._require_loaded()
        record = self._find(instance_id)
        if record is None:
            return None

        try:
            ciphertext, tag = crypto.split_encrypted_key(record.get("encryptedKey") or "")
            api_key = crypto.decrypt(ciphertext, key, record.get("iv") or "", tag)
        except CredentialError as e:
            raise DecryptionFailedError(
                f"Failed to decrypt instance '{instance_id}': {e}"
            ) from e

        return WikiInstance(
            id=record["id"],
            name=record["name"],
            url=record["url"],
            key=api_key,
        )

    def test_connection(self, instance_id: str) -> bool:
        """
        Validate an instance's URL and key syntactically.

        This performs no network access; it only checks the URL shape and
        that a key is present.
        """
        instance = self.get_instance(instance_id)
        if instance is None:
            return False
        return is_valid_url(instance.url) and len(instance.key) > 0

    def has_config_file(self) -> bool:
        return self.config_path.exists()

    def get_config_path(self) -> Path:
        return self.config_path

    def reset_config(self) -> None:
        """
        Delete the store document and clear in-memory state.

        The store behaves as uninitialized until initialize() is called
        again, which creates a fresh document with a new salt.
        """
        if self.config_path.exists():
            self.config_path.unlink()
            logger.info("Deleted credential store %s", self.config_path)

        self._config = None
        self._key = None

    def get_default_theme(self) -> str | None:
        if self._config is None:
            return None
        return (self._config.get("preferences") or {}).get("defaultTheme")

    def set_default_theme(self, theme: str) -> None:
        """
        Persist the default UI theme preference.

        Raises:
            NotInitializedError: If initialize() has not been called.
        """
        config, _ = self._require_loaded()
        preferences = config.get("preferences")
        if not isinstance(preferences, dict):
            preferences = {}
        self._commit({**config, "preferences": {**preferences, "defaultTheme": theme}})

"""
Resolution of the effective credential for an instance.

Two sources are reconciled: the encrypted store and the legacy
environment variables. The store wins. As soon as it holds any instance,
legacy-only instances disappear from listings and default selection, which
keeps the choice unambiguous and moves users towards the encrypted store.
While the store is empty the legacy variables act as a transparent
fallback so existing setups keep working unmodified.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping

from wikit.config.errors import (
    DecryptionFailedError,
    NoInstancesConfiguredError,
    UnknownInstanceError,
)
from wikit.config.legacy import (
    DEFAULT_INSTANCE_ENV,
    LEGACY_INSTANCES,
    WikiConfig,
    get_legacy_config,
)
from wikit.config.store import CredentialStore

logger = logging.getLogger(__name__)


class ConfigResolver:
    """
    Picks the credential to use for a requested instance.

    The store is initialized lazily on first use. A store that cannot be
    opened is an error for every operation; there is no fallback to the
    legacy source in that case.

    Attributes:
        store: The credential store handle.
        environ: Environment mapping for legacy variables and the default
                instance. Defaults to os.environ.
        default_instance: Configured default instance id, consulted after
                         the environment variable.
    """

    def __init__(
        self,
        store: CredentialStore,
        environ: Mapping[str, str] | None = None,
        password: str | None = None,
        default_instance: str = "",
    ) -> None:
        self.store = store
        self.environ = os.environ if environ is None else environ
        self.default_instance = default_instance
        self._password = password
        self._initialized = False

    def _ensure_initialized(self) -> None:
        if self._initialized:
            return
        self.store.initialize(self._password)
        self._initialized = True

    def get_available_instances(self) -> list[str]:
        """
        List the instance ids that can be selected.

        Store ids when the store has any, otherwise the fully configured
        legacy ids.
        """
        self._ensure_initialized()

        encrypted_ids = self.store.get_instance_ids()
        if encrypted_ids:
            return encrypted_ids

        return [
            instance_id
            for instance_id in LEGACY_INSTANCES
            if get_legacy_config(instance_id, self.environ) is not None
        ]

    def _select_default(self) -> str:
        instance_id = self.environ.get(DEFAULT_INSTANCE_ENV) or self.default_instance
        if instance_id:
            return instance_id

        available = self.get_available_instances()
        if not available:
            raise NoInstancesConfiguredError("No instances configured")

        logger.debug("Auto-selected instance %s from %s", available[0], available)
        return available[0]

    def get_dynamic_config(self, instance_id: str | None = None) -> WikiConfig:
        """
        Resolve the URL and key for an instance.

        Args:
            instance_id: Instance to resolve. When omitted, the
                        WIKIJS_DEFAULT_INSTANCE variable, then the
                        configured default, then the first available
                        instance is used.

        Returns:
            The effective credential.

        Raises:
            NoInstancesConfiguredError: If no instance exists anywhere.
            UnknownInstanceError: If neither source knows the instance.
            DecryptionFailedError: If the store holds the instance but it
                                 cannot be decrypted and no legacy
                                 credential exists for it.
        """
        if not instance_id:
            instance_id = self._select_default()

        self._ensure_initialized()

        decryption_error: DecryptionFailedError | None = None
        if self.store.is_loaded():
            try:
                instance = self.store.get_instance(instance_id)
            except DecryptionFailedError as e:
                logger.warning("%s; trying legacy environment configuration", e)
                decryption_error = e
            else:
                if instance is not None:
                    return WikiConfig(url=instance.url, key=instance.key)

        legacy = get_legacy_config(instance_id, self.environ)
        if legacy is not None:
            if decryption_error is not None:
                logger.warning(
                    "Using legacy environment credentials for '%s'", instance_id
                )
            return legacy

        if decryption_error is not None:
            raise decryption_error

        available = self.get_available_instances()
        if not available:
            raise NoInstancesConfiguredError("No instances configured")

        raise UnknownInstanceError(
            f"Unknown or unconfigured instance: {instance_id}", available
        )

    def get_instance_labels(self) -> dict[str, str]:
        """Map instance ids to display names, store entries first."""
        self._ensure_initialized()

        labels: dict[str, str] = {}
        for info in self.store.get_all_instances():
            labels[info.id] = info.name

        for instance_id, mapping in LEGACY_INSTANCES.items():
            if instance_id in labels:
                continue
            if get_legacy_config(instance_id, self.environ) is not None:
                labels[instance_id] = mapping.label

        return labels

    def has_any_instances(self) -> bool:
        return len(self.get_available_instances()) > 0

    def needs_setup(self) -> bool:
        """True while the encrypted store is empty; legacy config is ignored."""
        self._ensure_initialized()
        return len(self.store.get_instance_ids()) == 0

    def get_default_theme(self) -> str | None:
        self._ensure_initialized()
        return self.store.get_default_theme()

    def set_default_theme(self, theme: str) -> None:
        self._ensure_initialized()
        self.store.set_default_theme(theme)

"""
Migration between the legacy environment configuration and the encrypted
credential store.

Batch operations recover per instance: one failing instance is logged and
counted, and the rest of the batch still runs.
"""

from __future__ import annotations

import json
import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from wikit.config.errors import CredentialError, MigrationError
from wikit.config.legacy import get_env_instances, parse_env_text, render_env_lines
from wikit.config.store import CredentialStore, InstanceInfo, WikiInstance

logger = logging.getLogger(__name__)

DIRECTION_TO_ENCRYPTED = "to-encrypted"
DIRECTION_TO_ENV = "to-env"

STATUS_SUCCESS = "success"
STATUS_SKIPPED = "skipped"


@dataclass
class MigrationResult:
    """Counts from a batch migration or import."""

    migrated: int = 0
    skipped: int = 0
    errors: int = 0


@dataclass
class ConfigStatus:
    """Snapshot of both credential sources."""

    has_encrypted_config: bool
    has_env_config: bool
    encrypted_instances: list[InstanceInfo]
    env_instances: list[InstanceInfo]
    config_path: Path


@dataclass
class PreviewItem:
    """Planned outcome for one instance in a dry run."""

    id: str
    name: str
    status: str
    message: str | None = None


@dataclass
class MigrationSummary:
    """Dry-run projection of a migration in either direction."""

    action: str
    source: str
    target: str
    instances: list[PreviewItem] = field(default_factory=list)
    config_path: Path | None = None


class MigrationCoordinator:
    """
    Copies credentials between the legacy environment and the store.

    Attributes:
        store: The credential store handle.
        environ: Environment mapping holding the legacy variables.
    """

    def __init__(
        self,
        store: CredentialStore,
        environ: Mapping[str, str] | None = None,
        password: str | None = None,
    ) -> None:
        self.store = store
        self.environ = os.environ if environ is None else environ
        self._password = password

    def _ensure_loaded(self) -> None:
        if not self.store.is_loaded():
            self.store.initialize(self._password)

    def get_env_instances(self) -> list[WikiInstance]:
        return get_env_instances(self.environ)

    def get_config_status(self) -> ConfigStatus:
        self._ensure_loaded()

        env_instances = [instance.info() for instance in self.get_env_instances()]
        encrypted_instances = self.store.get_all_instances()

        return ConfigStatus(
            has_encrypted_config=len(encrypted_instances) > 0,
            has_env_config=len(env_instances) > 0,
            encrypted_instances=encrypted_instances,
            env_instances=env_instances,
            config_path=self.store.get_config_path(),
        )

    def _store_instances(
        self, instances: list[WikiInstance], overwrite: bool
    ) -> MigrationResult:
        result = MigrationResult()

        for instance in instances:
            try:
                existing = self.store.get_instance_info(instance.id)

                if existing is not None and not overwrite:
                    logger.info(
                        "Skipping %s - already exists (use --overwrite to replace)",
                        instance.id,
                    )
                    result.skipped += 1
                    continue

                if existing is not None:
                    logger.info("Updating %s", instance.id)
                    self.store.update_instance(
                        instance.id,
                        name=instance.name,
                        url=instance.url,
                        key=instance.key,
                    )
                else:
                    logger.info("Adding %s", instance.id)
                    self.store.add_instance(instance)

                result.migrated += 1
            except (CredentialError, OSError) as e:
                logger.error("Error migrating %s: %s", instance.id, e)
                result.errors += 1

        return result

    def migrate_to_encrypted(self, overwrite: bool = False) -> MigrationResult:
        """
        Copy every legacy instance into the store.

        Args:
            overwrite: Replace instances already present in the store.
                      When False they are skipped.

        Returns:
            Counts of migrated, skipped and failed instances.

        Raises:
            MigrationError: If no legacy configuration exists.
        """
        self._ensure_loaded()

        env_instances = self.get_env_instances()
        if not env_instances:
            raise MigrationError("No .env configuration found to migrate")

        result = self._store_instances(env_instances, overwrite)
        logger.info(
            "Migration complete: migrated=%d skipped=%d errors=%d",
            result.migrated,
            result.skipped,
            result.errors,
        )
        return result

    def generate_env_from_encrypted(self) -> list[str]:
        """
        Render every stored instance as ``.env`` lines.

        An instance that cannot be decrypted becomes an inline
        ``# Error exporting`` comment instead of aborting the export.

        Raises:
            MigrationError: If the store holds no instances.
        """
        self._ensure_loaded()

        instance_ids = self.store.get_instance_ids()
        if not instance_ids:
            raise MigrationError("No encrypted instances found to export")

        env_lines = [
            "# Generated from encrypted Wiki.js configuration",
            "# Copy these lines to your .env file",
            "",
        ]

        for instance_id in instance_ids:
            try:
                instance = self.store.get_instance(instance_id)
            except CredentialError as e:
                logger.error("Error exporting %s: %s", instance_id, e)
                env_lines.append(f"# Error exporting {instance_id}: {e}")
                env_lines.append("")
                continue
            if instance is None:
                continue
            env_lines.extend(render_env_lines([instance]))

        return env_lines

    def import_from_env_text(self, text: str, overwrite: bool = False) -> MigrationResult:
        """Re-import ``.env`` text such as the output of an export."""
        self._ensure_loaded()

        instances = parse_env_text(text)
        if not instances:
            raise MigrationError("No instances found in .env text")

        return self._store_instances(instances, overwrite)

    def import_from_file(self, config_path: Path) -> MigrationResult:
        """
        Import instances from a JSON file with an ``instances`` array.

        Each entry needs non-empty ``id``, ``name``, ``url`` and ``key``.
        Ids already in the store are skipped; invalid entries are counted
        as errors.

        Raises:
            MigrationError: If the file is missing, is not valid JSON, or
                          has no ``instances`` array.
        """
        config_path = Path(config_path)
        if not config_path.exists():
            raise MigrationError(f"Config file not found: {config_path}")

        try:
            import_data: Any = json.loads(config_path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            raise MigrationError("Invalid JSON format in config file") from e
        except OSError as e:
            raise MigrationError(f"Cannot read config file: {e}") from e

        if not isinstance(import_data, dict) or not isinstance(
            import_data.get("instances"), list
        ):
            raise MigrationError("Config file must contain an 'instances' array")

        self._ensure_loaded()

        result = MigrationResult()
        for entry in import_data["instances"]:
            if not isinstance(entry, dict) or not all(
                isinstance(entry.get(k), str) and entry.get(k)
                for k in ("id", "name", "url", "key")
            ):
                logger.error("Error importing instance: missing required fields (id, name, url, key)")
                result.errors += 1
                continue

            instance = WikiInstance(
                id=entry["id"], name=entry["name"], url=entry["url"], key=entry["key"]
            )
            if self.store.get_instance_info(instance.id) is not None:
                logger.info("Skipping %s - already exists", instance.id)
                result.skipped += 1
                continue

            try:
                self.store.add_instance(instance)
                result.migrated += 1
            except CredentialError as e:
                logger.error("Error importing %s: %s", instance.id, e)
                result.errors += 1

        return result

    def preview_migration(self, direction: str) -> MigrationSummary:
        """
        Describe what a migration would do without writing anything.

        Args:
            direction: ``"to-encrypted"`` or ``"to-env"``.

        Raises:
            ValueError: For any other direction.
        """
        status = self.get_config_status()

        if direction == DIRECTION_TO_ENCRYPTED:
            encrypted_ids = {info.id for info in status.encrypted_instances}
            items = [
                PreviewItem(
                    id=env.id,
                    name=env.name,
                    status=STATUS_SKIPPED if env.id in encrypted_ids else STATUS_SUCCESS,
                    message=(
                        "Already exists in encrypted config"
                        if env.id in encrypted_ids
                        else None
                    ),
                )
                for env in status.env_instances
            ]
            return MigrationSummary(
                action="Migrate to encrypted configuration",
                source="env",
                target="encrypted",
                instances=items,
                config_path=status.config_path,
            )

        if direction == DIRECTION_TO_ENV:
            items = [
                PreviewItem(id=enc.id, name=enc.name, status=STATUS_SUCCESS)
                for enc in status.encrypted_instances
            ]
            return MigrationSummary(
                action="Generate .env configuration",
                source="encrypted",
                target="env",
                instances=items,
            )

        raise ValueError(f"Unknown migration direction: {direction}")

    def reset_encrypted_config(self) -> None:
        self.store.reset_config()

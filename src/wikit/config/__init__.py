"""
Configuration management for wikit.

This module handles the non-secret tool settings and the encrypted
multi-instance credential store, together with the legacy environment
variable source it replaces and the migration between the two.
"""

from wikit.config.errors import (
    CredentialError,
    DecryptionFailedError,
    DuplicateInstanceError,
    InstanceNotFoundError,
    InstanceResolutionError,
    InvalidInstanceError,
    MalformedInputError,
    MigrationError,
    NoInstancesConfiguredError,
    NotInitializedError,
    UnknownInstanceError,
)
from wikit.config.legacy import LEGACY_INSTANCES, WikiConfig
from wikit.config.migration import MigrationCoordinator, MigrationResult
from wikit.config.resolver import ConfigResolver
from wikit.config.settings import (
    ConfigurationError,
    Settings,
    load_config,
    save_config,
)
from wikit.config.store import CredentialStore, InstanceInfo, WikiInstance

__all__ = [
    # Settings
    "Settings",
    "load_config",
    "save_config",
    "ConfigurationError",
    # Store
    "CredentialStore",
    "WikiInstance",
    "InstanceInfo",
    # Resolution and migration
    "ConfigResolver",
    "WikiConfig",
    "LEGACY_INSTANCES",
    "MigrationCoordinator",
    "MigrationResult",
    # Errors
    "CredentialError",
    "NotInitializedError",
    "DuplicateInstanceError",
    "InstanceNotFoundError",
    "InvalidInstanceError",
    "DecryptionFailedError",
    "MalformedInputError",
    "MigrationError",
    "InstanceResolutionError",
    "UnknownInstanceError",
    "NoInstancesConfiguredError",
]

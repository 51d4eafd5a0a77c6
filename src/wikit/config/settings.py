"""
Configuration settings management for wikit.

This module handles loading, validating, and saving the non-secret tool
settings from a YAML file with support for environment variable overrides.
Instance credentials are not stored here; see ``wikit.config.store``.

Settings are loaded from ~/.config/wikit/settings.yaml by default, with the
path overridable via the WIKIT_SETTINGS environment variable.
"""

import os
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

# Default configuration directory
DEFAULT_CONFIG_DIR = Path.home() / ".config" / "wikit"
DEFAULT_SETTINGS_FILE = DEFAULT_CONFIG_DIR / "settings.yaml"

# OWASP 2023 recommends 600,000 iterations for PBKDF2-SHA256
DEFAULT_KDF_ITERATIONS = 600_000
MIN_KDF_ITERATIONS = 1_000


@dataclass
class Settings:
    """
    Complete wikit configuration settings.

    Attributes:
        config_dir: Directory holding the encrypted instance store.
        log_level: Logging verbosity (DEBUG, INFO, WARNING, ERROR).
        default_instance: Instance used when a command names none.
        kdf_iterations: PBKDF2 iterations used when creating a new store.
    """

    config_dir: str = str(DEFAULT_CONFIG_DIR)
    log_level: str = "INFO"
    default_instance: str = ""
    kdf_iterations: int = DEFAULT_KDF_ITERATIONS


class ConfigurationError(Exception):
    """Raised when configuration is invalid or cannot be loaded."""

    pass


def get_settings_path() -> Path:
    """
    Get the settings file path.

    Returns the path from WIKIT_SETTINGS environment variable if set,
    otherwise returns the default path (~/.config/wikit/settings.yaml).
    """
    env_path = os.environ.get("WIKIT_SETTINGS")
    if env_path:
        return Path(env_path)
    return DEFAULT_SETTINGS_FILE


def load_config(config_path: Path | None = None) -> Settings:
    """
    Load settings from YAML file.

    Args:
        config_path: Optional path to the settings file. If not provided,
                    uses WIKIT_SETTINGS environment variable or default path.

    Returns:
        Validated Settings instance.

    Raises:
        ConfigurationError: If the settings file cannot be read or
                          contains invalid settings.
    """
    if config_path is None:
        config_path = get_settings_path()

    settings = Settings()

    if config_path.exists():
        try:
            with open(config_path) as f:
                config_data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in settings file: {e}") from e
        except OSError as e:
            raise ConfigurationError(f"Cannot read settings file: {e}") from e

        if not isinstance(config_data, dict):
            raise ConfigurationError("Settings file must contain a mapping")

        settings = _apply_config_data(settings, config_data)

    settings = _apply_environment_overrides(settings)

    _validate_config(settings)

    return settings


def save_config(settings: Settings, config_path: Path | None = None) -> None:
    """
    Save settings to YAML file.

    Raises:
        ConfigurationError: If the settings cannot be written.
    """
    if config_path is None:
        config_path = get_settings_path()

    config_path.parent.mkdir(parents=True, exist_ok=True)

    config_data = _settings_to_dict(settings)

    try:
        with open(config_path, "w") as f:
            yaml.safe_dump(config_data, f, default_flow_style=False, sort_keys=False)
    except OSError as e:
        raise ConfigurationError(f"Cannot write settings file: {e}") from e


def _apply_config_data(settings: Settings, data: dict[str, Any]) -> Settings:
    """Apply configuration data from parsed YAML to settings."""
    wikit_data = data.get("wikit", {}) or {}

    if "config_dir" in wikit_data:
        settings.config_dir = str(wikit_data["config_dir"])
    if "log_level" in wikit_data:
        settings.log_level = str(wikit_data["log_level"]).upper()
    if "default_instance" in wikit_data:
        settings.default_instance = str(wikit_data["default_instance"] or "")

    security = data.get("security", {}) or {}
    if "kdf_iterations" in security:
        try:
            settings.kdf_iterations = int(security["kdf_iterations"])
        except (TypeError, ValueError) as e:
            raise ConfigurationError(
                f"kdf_iterations must be an integer: {security['kdf_iterations']!r}"
            ) from e

    return settings


def _apply_environment_overrides(settings: Settings) -> Settings:
    """Apply environment variable overrides to settings."""
    env_map: dict[str, tuple[str, Callable[[str], Any]]] = {
        "WIKIT_CONFIG_DIR": ("config_dir", str),
        "WIKIT_LOG_LEVEL": ("log_level", lambda x: x.upper()),
        "WIKIT_DEFAULT_INSTANCE": ("default_instance", str),
        "WIKIT_KDF_ITERATIONS": ("kdf_iterations", int),
    }

    for env_var, (attr, converter) in env_map.items():
        value = os.environ.get(env_var)
        if value is not None:
            try:
                setattr(settings, attr, converter(value))
            except ValueError as e:
                raise ConfigurationError(f"Invalid value for {env_var}: {value!r}") from e

    return settings


def _validate_config(settings: Settings) -> None:
    """
    Validate configuration settings.

    Raises:
        ConfigurationError: If configuration is invalid.
    """
    valid_log_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
    if settings.log_level not in valid_log_levels:
        raise ConfigurationError(
            f"Invalid log_level: {settings.log_level}. "
            f"Must be one of: {', '.join(sorted(valid_log_levels))}"
        )

    if settings.kdf_iterations < MIN_KDF_ITERATIONS:
        raise ConfigurationError(
            f"kdf_iterations must be at least {MIN_KDF_ITERATIONS:,}"
        )

    if not settings.config_dir:
        raise ConfigurationError("config_dir must not be empty")


def _settings_to_dict(settings: Settings) -> dict[str, Any]:
    """Convert Settings instance to dictionary for YAML serialization."""
    return {
        "wikit": {
            "config_dir": settings.config_dir,
            "log_level": settings.log_level,
            "default_instance": settings.default_instance,
        },
        "security": {
            "kdf_iterations": settings.kdf_iterations,
        },
    }

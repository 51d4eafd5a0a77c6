"""Tests for the settings module."""

import os
import shutil
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

from wikit.config.settings import (
    DEFAULT_CONFIG_DIR,
    DEFAULT_KDF_ITERATIONS,
    DEFAULT_SETTINGS_FILE,
    ConfigurationError,
    Settings,
    _apply_environment_overrides,
    _settings_to_dict,
    _validate_config,
    get_settings_path,
    load_config,
    save_config,
)

WIKIT_ENV_VARS = (
    "WIKIT_SETTINGS",
    "WIKIT_CONFIG_DIR",
    "WIKIT_LOG_LEVEL",
    "WIKIT_DEFAULT_INSTANCE",
    "WIKIT_KDF_ITERATIONS",
)


def clean_environ() -> dict[str, str]:
    return {k: v for k, v in os.environ.items() if k not in WIKIT_ENV_VARS}


class TestSettings(unittest.TestCase):
    """Tests for Settings defaults."""

    def test_defaults(self) -> None:
        settings = Settings()

        self.assertEqual(settings.config_dir, str(DEFAULT_CONFIG_DIR))
        self.assertEqual(settings.log_level, "INFO")
        self.assertEqual(settings.default_instance, "")
        self.assertEqual(settings.kdf_iterations, DEFAULT_KDF_ITERATIONS)

    def test_default_paths(self) -> None:
        self.assertEqual(DEFAULT_CONFIG_DIR, Path.home() / ".config" / "wikit")
        self.assertEqual(DEFAULT_SETTINGS_FILE, DEFAULT_CONFIG_DIR / "settings.yaml")


class TestGetSettingsPath(unittest.TestCase):
    """Tests for get_settings_path."""

    def test_default_path(self) -> None:
        with patch.dict(os.environ, clean_environ(), clear=True):
            self.assertEqual(get_settings_path(), DEFAULT_SETTINGS_FILE)

    def test_env_override(self) -> None:
        with patch.dict(os.environ, {"WIKIT_SETTINGS": "/tmp/custom.yaml"}):
            self.assertEqual(get_settings_path(), Path("/tmp/custom.yaml"))


class TestLoadConfig(unittest.TestCase):
    """Tests for load_config."""

    def setUp(self) -> None:
        self.temp_dir = tempfile.mkdtemp()
        self.config_path = Path(self.temp_dir) / "settings.yaml"
        self.env = patch.dict(os.environ, clean_environ(), clear=True)
        self.env.start()

    def tearDown(self) -> None:
        self.env.stop()
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def test_nonexistent_file_returns_defaults(self) -> None:
        settings = load_config(Path(self.temp_dir) / "missing.yaml")

        self.assertEqual(settings, Settings())

    def test_load_from_yaml(self) -> None:
        self.config_path.write_text(
            """
wikit:
  config_dir: /custom/wikit
  log_level: debug
  default_instance: tlwiki

security:
  kdf_iterations: 310000
"""
        )

        settings = load_config(self.config_path)

        self.assertEqual(settings.config_dir, "/custom/wikit")
        self.assertEqual(settings.log_level, "DEBUG")
        self.assertEqual(settings.default_instance, "tlwiki")
        self.assertEqual(settings.kdf_iterations, 310000)

    def test_empty_file_returns_defaults(self) -> None:
        self.config_path.write_text("")

        self.assertEqual(load_config(self.config_path), Settings())

    def test_invalid_yaml(self) -> None:
        self.config_path.write_text("wikit: [unclosed")

        with self.assertRaises(ConfigurationError) as ctx:
            load_config(self.config_path)

        self.assertIn("Invalid YAML", str(ctx.exception))

    def test_non_mapping_yaml(self) -> None:
        self.config_path.write_text("- a\n- b\n")

        with self.assertRaises(ConfigurationError):
            load_config(self.config_path)

    def test_non_integer_iterations(self) -> None:
        self.config_path.write_text("security:\n  kdf_iterations: lots\n")

        with self.assertRaises(ConfigurationError):
            load_config(self.config_path)

    def test_invalid_log_level(self) -> None:
        self.config_path.write_text("wikit:\n  log_level: chatty\n")

        with self.assertRaises(ConfigurationError):
            load_config(self.config_path)

    def test_env_overrides_file(self) -> None:
        self.config_path.write_text("wikit:\n  default_instance: rmwiki\n")

        with patch.dict(os.environ, {"WIKIT_DEFAULT_INSTANCE": "tlwiki"}):
            settings = load_config(self.config_path)

        self.assertEqual(settings.default_instance, "tlwiki")

    def test_uses_env_settings_path(self) -> None:
        self.config_path.write_text("wikit:\n  log_level: ERROR\n")

        with patch.dict(os.environ, {"WIKIT_SETTINGS": str(self.config_path)}):
            settings = load_config()

        self.assertEqual(settings.log_level, "ERROR")


class TestSaveConfig(unittest.TestCase):
    """Tests for save_config."""

    def setUp(self) -> None:
        self.temp_dir = tempfile.mkdtemp()
        self.env = patch.dict(os.environ, clean_environ(), clear=True)
        self.env.start()

    def tearDown(self) -> None:
        self.env.stop()
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def test_save_and_reload(self) -> None:
        config_path = Path(self.temp_dir) / "nested" / "settings.yaml"
        settings = Settings(
            config_dir="/data/wikit",
            log_level="WARNING",
            default_instance="mywiki",
            kdf_iterations=200_000,
        )

        save_config(settings, config_path)

        self.assertTrue(config_path.exists())
        self.assertEqual(load_config(config_path), settings)

    def test_save_to_unwritable_path(self) -> None:
        blocker = Path(self.temp_dir) / "settings.yaml"
        blocker.mkdir()

        with self.assertRaises(ConfigurationError):
            save_config(Settings(), blocker)


class TestApplyEnvironmentOverrides(unittest.TestCase):
    """Tests for _apply_environment_overrides."""

    def test_all_overrides(self) -> None:
        env = {
            "WIKIT_CONFIG_DIR": "/env/wikit",
            "WIKIT_LOG_LEVEL": "debug",
            "WIKIT_DEFAULT_INSTANCE": "rmwiki",
            "WIKIT_KDF_ITERATIONS": "5000",
        }
        with patch.dict(os.environ, env):
            settings = _apply_environment_overrides(Settings())

        self.assertEqual(settings.config_dir, "/env/wikit")
        self.assertEqual(settings.log_level, "DEBUG")
        self.assertEqual(settings.default_instance, "rmwiki")
        self.assertEqual(settings.kdf_iterations, 5000)

    def test_invalid_integer(self) -> None:
        with patch.dict(os.environ, {"WIKIT_KDF_ITERATIONS": "many"}):
            with self.assertRaises(ConfigurationError):
                _apply_environment_overrides(Settings())


class TestValidateConfig(unittest.TestCase):
    """Tests for _validate_config."""

    def test_valid_defaults(self) -> None:
        _validate_config(Settings())

    def test_too_few_iterations(self) -> None:
        with self.assertRaises(ConfigurationError):
            _validate_config(Settings(kdf_iterations=10))

    def test_empty_config_dir(self) -> None:
        with self.assertRaises(ConfigurationError):
            _validate_config(Settings(config_dir=""))


class TestSettingsToDict(unittest.TestCase):
    """Tests for _settings_to_dict."""

    def test_structure(self) -> None:
        data = _settings_to_dict(Settings(default_instance="rmwiki"))

        self.assertEqual(set(data), {"wikit", "security"})
        self.assertEqual(data["wikit"]["default_instance"], "rmwiki")
        self.assertEqual(data["security"]["kdf_iterations"], DEFAULT_KDF_ITERATIONS)


if __name__ == "__main__":
    unittest.main()

"""
Command-line interface for wikit configuration.

Provides the ``config`` commands for managing Wiki.js instances in the
encrypted credential store, migrating from and exporting to .env format,
and the ``resolve`` command for checking which credential would be used.

Uses Python's argparse module (no external CLI libraries).
"""

from __future__ import annotations

import argparse
import getpass
import json
import logging
import os
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import NoReturn

from wikit import __version__
from wikit.config.errors import (
    CredentialError,
    InstanceResolutionError,
    MigrationError,
    NotInitializedError,
)
from wikit.config.migration import (
    DIRECTION_TO_ENCRYPTED,
    DIRECTION_TO_ENV,
    STATUS_SKIPPED,
    MigrationCoordinator,
)
from wikit.config.resolver import ConfigResolver
from wikit.config.settings import ConfigurationError, Settings, load_config
from wikit.config.store import CredentialStore, WikiInstance, validate_instance

# Set up logging
logger = logging.getLogger(__name__)

# Global verbosity settings (set during main() based on args)
_quiet_mode = False


def set_output_mode(quiet: bool = False) -> None:
    """Set the output mode for the CLI."""
    global _quiet_mode
    _quiet_mode = quiet


def output(message: str = "", force: bool = False) -> None:
    """
    Print a message to stdout, respecting quiet mode.

    Args:
        message: The message to print.
        force: If True, print even in quiet mode (for essential output).
    """
    if force or not _quiet_mode:
        print(message)


def output_error(message: str) -> None:
    """Print an error message (always shown, even in quiet mode)."""
    print(message, file=sys.stderr)


def mask_key(key: str) -> str:
    return "•" * min(len(key), 20)


@dataclass
class AppContext:
    """Handles shared by every command, built once per invocation."""

    settings: Settings
    store: CredentialStore
    resolver: ConfigResolver
    migration: MigrationCoordinator
    password: str | None


def create_parser() -> argparse.ArgumentParser:
    """Create and configure the argument parser for the wikit CLI."""
    parser = argparse.ArgumentParser(
        prog="wikit",
        description="Wiki.js command-line client: instance configuration",
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"wikit {__version__}",
    )

    parser.add_argument(
        "--settings",
        metavar="PATH",
        help="Override settings file location (default: ~/.config/wikit/settings.yaml)",
    )

    parser.add_argument(
        "--config-dir",
        metavar="PATH",
        help="Override the directory holding the encrypted store",
    )

    parser.add_argument(
        "--password-env",
        metavar="VAR",
        help="Read the store password from this environment variable "
        "instead of using the machine-derived default",
    )

    parser.add_argument(
        "-v", "--verbose",
        action="count",
        default=0,
        help="Increase output verbosity (can be repeated)",
    )

    parser.add_argument(
        "-q", "--quiet",
        action="store_true",
        help="Suppress non-essential output",
    )

    subparsers = parser.add_subparsers(
        title="commands",
        dest="command",
        metavar="<command>",
    )

    # config command
    config_parser = subparsers.add_parser(
        "config",
        help="Manage configured Wiki.js instances",
        description="List, add, remove and migrate Wiki.js instance credentials.",
    )
    config_sub = config_parser.add_subparsers(
        title="actions",
        dest="action",
        metavar="<action>",
    )

    list_parser = config_sub.add_parser("list", help="List configured instances")
    list_parser.add_argument("--json", action="store_true", help="Output as JSON")
    list_parser.set_defaults(func=cmd_list)

    add_parser = config_sub.add_parser(
        "add",
        help="Add a new instance",
        description="Add an instance. Missing values are prompted for; "
        "the API key is always read without echo unless --key-env is given.",
    )
    add_parser.add_argument("--id", dest="instance_id", help="Instance ID (e.g. 'mywiki')")
    add_parser.add_argument("--name", help="Display name")
    add_parser.add_argument("--url", help="API URL (e.g. https://wiki.example.com/graphql)")
    add_parser.add_argument(
        "--key-env",
        metavar="VAR",
        help="Read the API key from this environment variable",
    )
    add_parser.set_defaults(func=cmd_add)

    show_parser = config_sub.add_parser("show", help="Show instance details (key masked)")
    show_parser.add_argument("instance_id", metavar="ID")
    show_parser.set_defaults(func=cmd_show)

    remove_parser = config_sub.add_parser("remove", help="Remove an instance")
    remove_parser.add_argument("instance_id", metavar="ID")
    remove_parser.add_argument("-y", "--yes", action="store_true", help="Do not ask for confirmation")
    remove_parser.set_defaults(func=cmd_remove)

    test_parser = config_sub.add_parser(
        "test",
        help="Validate an instance's URL and key (no network access)",
    )
    test_parser.add_argument("instance_id", metavar="ID")
    test_parser.set_defaults(func=cmd_test)

    migrate_parser = config_sub.add_parser(
        "migrate",
        help="Migrate .env configuration to encrypted storage",
    )
    migrate_parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Show what would be migrated without making changes",
    )
    migrate_parser.add_argument(
        "--overwrite",
        action="store_true",
        help="Overwrite existing instances during migration",
    )
    migrate_parser.set_defaults(func=cmd_migrate)

    export_parser = config_sub.add_parser("export", help="Export encrypted config to .env format")
    export_parser.add_argument(
        "--dry-run",
        action="store_true",
        help="List the instances that would be exported without decrypting them",
    )
    export_parser.set_defaults(func=cmd_export)

    import_parser = config_sub.add_parser(
        "import",
        help="Import instances from a JSON file or .env file",
    )
    import_parser.add_argument("path", metavar="FILE")
    import_parser.add_argument(
        "--format",
        choices=["json", "env"],
        default=None,
        help="Input format (default: guessed from the file extension)",
    )
    import_parser.add_argument(
        "--overwrite",
        action="store_true",
        help="Overwrite existing instances (.env input only)",
    )
    import_parser.set_defaults(func=cmd_import)

    status_parser = config_sub.add_parser("status", help="Show configuration status")
    status_parser.add_argument("--json", action="store_true", help="Output as JSON")
    status_parser.set_defaults(func=cmd_status)

    reset_parser = config_sub.add_parser("reset", help="Delete the encrypted configuration")
    reset_parser.add_argument("-y", "--yes", action="store_true", help="Do not ask for confirmation")
    reset_parser.set_defaults(func=cmd_reset)

    theme_parser = config_sub.add_parser("theme", help="Show or set the default theme")
    theme_parser.add_argument("theme", nargs="?", help="Theme name to store")
    theme_parser.set_defaults(func=cmd_theme)

    # resolve command
    resolve_parser = subparsers.add_parser(
        "resolve",
        help="Show which credential a command would use",
        description="Resolve an instance through the encrypted store and the "
        "legacy environment variables and print its URL.",
    )
    resolve_parser.add_argument("instance_id", metavar="ID", nargs="?")
    resolve_parser.set_defaults(func=cmd_resolve)

    return parser


def setup_logging(verbose: int, quiet: bool, default_level: str = "WARNING") -> None:
    """Configure logging based on verbosity level."""
    if quiet:
        level = logging.ERROR
    elif verbose == 0:
        level = getattr(logging, default_level, logging.WARNING)
    elif verbose == 1:
        level = logging.INFO
    else:
        level = logging.DEBUG

    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def build_context(args: argparse.Namespace) -> AppContext:
    """
    Load settings and construct the store handle and its collaborators.

    Raises:
        ConfigurationError: If the settings are invalid or the password
                          variable is missing.
    """
    settings_path = Path(args.settings) if args.settings else None
    settings = load_config(settings_path)
    if args.config_dir:
        settings.config_dir = args.config_dir

    password = None
    if args.password_env:
        password = os.environ.get(args.password_env)
        if not password:
            raise ConfigurationError(
                f"Environment variable {args.password_env} is not set or empty"
            )

    store = CredentialStore(Path(settings.config_dir), iterations=settings.kdf_iterations)
    resolver = ConfigResolver(
        store,
        password=password,
        default_instance=settings.default_instance,
    )
    migration = MigrationCoordinator(store, password=password)
    return AppContext(
        settings=settings,
        store=store,
        resolver=resolver,
        migration=migration,
        password=password,
    )


def _confirm(prompt: str) -> bool:
    answer = input(f"{prompt} (y/N): ").strip().lower()
    return answer in ("y", "yes")


def cmd_list(args: argparse.Namespace, ctx: AppContext) -> int:
    """List configured instances."""
    instance_ids = ctx.resolver.get_available_instances()
    labels = ctx.resolver.get_instance_labels()

    if args.json:
        rows = []
        for instance_id in instance_ids:
            info = ctx.store.get_instance_info(instance_id)
            rows.append(
                {
                    "id": instance_id,
                    "name": labels.get(instance_id, instance_id),
                    "url": info.url if info else None,
                    "source": "encrypted" if info else "env",
                }
            )
        output(json.dumps(rows, indent=2), force=True)
        return 0

    output("Configured Wiki.js Instances:")
    output()

    if not instance_ids:
        output("No instances configured.")
        output("Run 'wikit config add' to configure your first instance.")
        return 0

    for instance_id in instance_ids:
        info = ctx.store.get_instance_info(instance_id)
        if info:
            output(f"  {instance_id}:")
            output(f"    Name: {info.name}")
            output(f"    URL:  {info.url}")
        else:
            output(f"  {instance_id}: (from .env file)")
        output()

    return 0


def cmd_add(args: argparse.Namespace, ctx: AppContext) -> int:
    """Add a new instance."""
    ctx.store.initialize(ctx.password)

    output("Add New Wiki.js Instance")
    output()

    instance_id = args.instance_id or input("Instance ID (e.g., 'mywiki'): ").strip()
    name = args.name or input("Display Name (e.g., 'My Wiki'): ").strip()
    url = args.url or input("API URL (e.g., 'https://your-wiki.com/graphql'): ").strip()

    if args.key_env:
        key = os.environ.get(args.key_env, "")
    else:
        key = getpass.getpass("API Key: ")

    instance = WikiInstance(id=instance_id, name=name, url=url, key=key)
    try:
        validate_instance(instance)
        ctx.store.add_instance(instance)
    except CredentialError as e:
        output_error(f"Error adding instance: {e}")
        return 1

    output()
    output(f"Instance '{instance.name}' added successfully!")
    return 0


def cmd_show(args: argparse.Namespace, ctx: AppContext) -> int:
    """Show instance details with the key masked."""
    ctx.store.initialize(ctx.password)

    instance = ctx.store.get_instance(args.instance_id)
    if instance is None:
        output_error(f"Instance '{args.instance_id}' not found.")
        return 1

    output(f"Instance: {instance.name}")
    output()
    output(f"  ID:   {instance.id}")
    output(f"  Name: {instance.name}")
    output(f"  URL:  {instance.url}")
    output(f"  Key:  {mask_key(instance.key)}")
    return 0


def cmd_remove(args: argparse.Namespace, ctx: AppContext) -> int:
    """Remove an instance after confirmation."""
    ctx.store.initialize(ctx.password)

    info = ctx.store.get_instance_info(args.instance_id)
    if info is None:
        output_error(f"Instance '{args.instance_id}' not found.")
        return 1

    output(f"Remove Instance: {info.name}")
    output("This action cannot be undone.")

    if not args.yes and not _confirm("Are you sure you want to remove this instance?"):
        output("Operation cancelled.")
        return 0

    ctx.store.remove_instance(args.instance_id)
    output(f"Instance '{info.name}' removed successfully.")
    return 0


def cmd_test(args: argparse.Namespace, ctx: AppContext) -> int:
    """Validate an instance's URL and key syntactically."""
    ctx.store.initialize(ctx.password)

    output(f"Testing configuration of '{args.instance_id}'...")
    if ctx.store.test_connection(args.instance_id):
        output("Connection test passed (basic validation)")
        return 0

    output_error("Connection test failed")
    return 1


def cmd_migrate(args: argparse.Namespace, ctx: AppContext) -> int:
    """Migrate legacy .env configuration into the encrypted store."""
    env_instances = ctx.migration.get_env_instances()
    if not env_instances:
        output("No .env configuration found to migrate.")
        return 0

    output(f"Found {len(env_instances)} instance(s) in .env configuration:")
    output()
    for instance in env_instances:
        output(f"  {instance.id}: {instance.name}")
        output(f"    URL: {instance.url}")
        output(f"    Key: {mask_key(instance.key)}")
        output()

    if args.dry_run:
        summary = ctx.migration.preview_migration(DIRECTION_TO_ENCRYPTED)
        for item in summary.instances:
            verb = "skip" if item.status == STATUS_SKIPPED else "migrate"
            reason = f" ({item.message})" if item.message else ""
            output(f"  Would {verb} {item.id}{reason}")
        output()
        output("Dry run mode - no changes will be made.")
        return 0

    output("Migrating instances to encrypted configuration...")
    result = ctx.migration.migrate_to_encrypted(overwrite=args.overwrite)

    output()
    output("Migration complete:")
    output(f"  Migrated: {result.migrated}")
    output(f"  Skipped:  {result.skipped}")
    output(f"  Errors:   {result.errors}")

    if result.migrated > 0:
        output()
        output("Your instances are now stored in encrypted configuration at:")
        output(f"  {ctx.store.get_config_path()}")
        output("Your .env file can be kept for backwards compatibility or removed if no longer needed.")

    return 1 if result.errors else 0


def cmd_export(args: argparse.Namespace, ctx: AppContext) -> int:
    """Export the encrypted store in .env format."""
    if args.dry_run:
        summary = ctx.migration.preview_migration(DIRECTION_TO_ENV)
        if not summary.instances:
            output("No encrypted instances found to export.")
            return 0
        for item in summary.instances:
            output(f"  Would export {item.id} ({item.name})")
        return 0

    try:
        lines = ctx.migration.generate_env_from_encrypted()
    except MigrationError as e:
        output(f"{e}.")
        return 0

    output("\n".join(lines), force=True)
    return 0


def cmd_import(args: argparse.Namespace, ctx: AppContext) -> int:
    """Import instances from a JSON or .env file."""
    path = Path(args.path)
    fmt = args.format
    if fmt is None:
        fmt = "json" if path.suffix.lower() == ".json" else "env"

    try:
        if fmt == "json":
            result = ctx.migration.import_from_file(path)
        else:
            try:
                text = path.read_text(encoding="utf-8")
            except OSError as e:
                raise MigrationError(f"Cannot read file: {e}") from e
            result = ctx.migration.import_from_env_text(text, overwrite=args.overwrite)
    except MigrationError as e:
        output_error(f"Failed to import config: {e}")
        return 1

    output("Import complete:")
    output(f"  Imported: {result.migrated}")
    output(f"  Skipped:  {result.skipped}")
    output(f"  Errors:   {result.errors}")
    return 1 if result.errors else 0


def cmd_status(args: argparse.Namespace, ctx: AppContext) -> int:
    """Show configuration status for both sources."""
    status = ctx.migration.get_config_status()

    if args.json:
        data = {
            "config_path": str(status.config_path),
            "has_encrypted_config": status.has_encrypted_config,
            "has_env_config": status.has_env_config,
            "encrypted_instances": [i.id for i in status.encrypted_instances],
            "env_instances": [i.id for i in status.env_instances],
        }
        output(json.dumps(data, indent=2), force=True)
        return 0

    output("Configuration Status")
    output("=" * 50)
    output()
    output(f"Config file: {status.config_path}")
    output()
    output(f"Encrypted instances: {len(status.encrypted_instances)}")
    for info in status.encrypted_instances:
        output(f"  {info.id}: {info.name} ({info.url})")
    output(f".env instances:      {len(status.env_instances)}")
    for info in status.env_instances:
        output(f"  {info.id}: {info.name} ({info.url})")
    output()

    if status.has_env_config and not status.has_encrypted_config:
        output("Run 'wikit config migrate' to move .env instances to encrypted storage.")
    elif status.has_env_config and status.has_encrypted_config:
        output("Note: .env instances are ignored while encrypted instances exist.")

    return 0


def cmd_reset(args: argparse.Namespace, ctx: AppContext) -> int:
    """Delete the encrypted configuration."""
    if not ctx.store.has_config_file():
        output("No encrypted configuration to reset.")
        return 0

    output("This will delete ALL encrypted instance configuration:")
    output(f"  {ctx.store.get_config_path()}")

    if not args.yes and not _confirm("Are you sure?"):
        output("Operation cancelled.")
        return 0

    ctx.migration.reset_encrypted_config()
    output("Encrypted configuration reset.")
    return 0


def cmd_theme(args: argparse.Namespace, ctx: AppContext) -> int:
    """Show or set the default theme."""
    if args.theme:
        ctx.resolver.set_default_theme(args.theme)
        output(f"Default theme set to '{args.theme}'.")
        return 0

    theme = ctx.resolver.get_default_theme()
    output(theme or "(not set)", force=True)
    return 0


def cmd_resolve(args: argparse.Namespace, ctx: AppContext) -> int:
    """Print the URL of the credential that would be used."""
    config = ctx.resolver.get_dynamic_config(args.instance_id)
    output(config.url, force=True)
    return 0


def _report_resolution_error(error: InstanceResolutionError) -> None:
    output_error(f"Error: {error}")
    if error.available:
        output_error(f"Available instances: {', '.join(error.available)}")
    else:
        output_error("Run 'wikit config add' or set WIKIJS_API_URL and WIKIJS_API_KEY.")


def main(argv: list[str] | None = None) -> NoReturn:
    """Main entry point for the wikit CLI."""
    parser = create_parser()
    args = parser.parse_args(argv)

    set_output_mode(args.quiet)

    if args.command is None or not hasattr(args, "func"):
        setup_logging(args.verbose, args.quiet)
        parser.print_help()
        sys.exit(0)

    try:
        ctx = build_context(args)
        setup_logging(args.verbose, args.quiet, ctx.settings.log_level)
        exit_code = args.func(args, ctx)
        sys.exit(exit_code)
    except KeyboardInterrupt:
        output("\nOperation cancelled.")
        sys.exit(130)
    except InstanceResolutionError as e:
        _report_resolution_error(e)
        sys.exit(2)
    except ConfigurationError as e:
        output_error(f"Configuration error: {e}")
        sys.exit(2)
    except NotInitializedError as e:
        output_error(f"Credential error: {e}")
        sys.exit(2)
    except CredentialError as e:
        output_error(f"Error: {e}")
        sys.exit(1)
    except Exception as e:
        if args.verbose > 0:
            raise
        output_error(f"Error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()

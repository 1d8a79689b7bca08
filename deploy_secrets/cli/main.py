"""CLI entrypoint for secrets-manager."""
import sys
import argparse
import logging
import os
from pathlib import Path

from deploy_secrets.secrets.domains.config_loader import default_config_path
from deploy_secrets.secrets.domains.encryption import timestamp_now
from deploy_secrets.secrets.domains.errors import InvalidValueError
from deploy_secrets.secrets.domains.github_client import GitHubSecretsClient
from deploy_secrets.secrets.workflows.rotation import Rotator, backup_filename
from deploy_secrets.secrets.workflows.secret_operations import SecretsManager

from .common import EXIT_CODES_EPILOG, common_options, configure_logging, load_runtime, run_command
from .validators import require_option, validate_environment, validate_secret_name, validate_secret_value

VERSION = "0.1.0"

logger = logging.getLogger(__name__)


def build_manager(args) -> SecretsManager:
    config, store, audit_log = load_runtime(args)
    rotator = Rotator(store, audit_log, config, secondary_store=GitHubSecretsClient.from_config(config))
    return SecretsManager(store, audit_log, config, rotator=rotator)


def _print_batch(result, verb: str, environment: str) -> None:
    prefix = "[DRY RUN] Would have " if result.dry_run else ""
    print(f"{prefix}{verb} {len(result.applied)} secrets in {environment}")
    for key in result.skipped:
        print(f"  Skipped (already set): {key}")
    if result.errors:
        print(f"Errors ({len(result.errors)}):", file=sys.stderr)
        for error in result.errors:
            print(f"  - {error}", file=sys.stderr)
        sys.exit(1)


def cmd_version(args):
    """Show version information."""
    print(f"deploy-secrets-toolkit {VERSION}")


def cmd_add(args):
    """Add a secret, every entry of a JSON file, or prompt for required secrets."""
    environment = validate_environment(args.env)
    manager = build_manager(args)

    if args.required:
        result = manager.add_required(environment, dry_run=args.dry_run)
        _print_batch(result, "Added", environment)
        return

    if args.file:
        result = manager.add_from_file(environment, args.file, dry_run=args.dry_run)
        _print_batch(result, "Added", environment)
        return

    validate_secret_name(args.key)
    validate_secret_value(args.value)
    try:
        result = manager.add(environment, args.key, args.value, dry_run=args.dry_run)
    except InvalidValueError as e:
        # Rejected values are reported, the command itself did its job
        print(f"Error: {e}", file=sys.stderr)
        return

    if result.dry_run:
        print(f"[DRY RUN] Would add {result.key} to {environment} (value: {result.masked_value})")
    else:
        print(f"Added {result.key} to {environment} (value: {result.masked_value})")


def cmd_list(args):
    """List secret keys stored for an environment."""
    environment = validate_environment(args.env)
    keys = build_manager(args).list(environment)
    if not keys:
        print(f"No secrets found in {environment}")
        return
    print(f"Secrets in {environment} ({len(keys)}):")
    for key in keys:
        print(f"  - {key}")


def cmd_get(args):
    """Print one secret value."""
    environment = validate_environment(args.env)
    validate_secret_name(args.key)
    print(build_manager(args).get(environment, args.key))


def cmd_remove(args):
    """Remove a secret after confirmation."""
    environment = validate_environment(args.env)
    validate_secret_name(args.key)
    if args.dry_run:
        print(f"[DRY RUN] Would remove {args.key} from {environment}")
        return
    build_manager(args).remove(environment, args.key, force=args.force)
    print(f"Removed {args.key} from {environment}")


def cmd_validate(args):
    """Validate stored (or file) values against the environment template."""
    environment = validate_environment(args.env)
    report = build_manager(args).validate(environment, file=args.file)

    for warning in report.warnings:
        print(f"Warning: {warning}")
    if report.valid:
        print(f"Validation passed for {environment}")
        return

    print(f"Validation failed for {environment}:", file=sys.stderr)
    for error in report.errors:
        print(f"  - {error}", file=sys.stderr)
    sys.exit(1)


def cmd_rotate(args):
    """Regenerate generator-backed secrets for one environment."""
    environment = validate_environment(args.env)
    result = build_manager(args).rotate(environment, force=args.force, dry_run=args.dry_run, backup=args.backup)

    if result.dry_run:
        print(f"[DRY RUN] Would rotate {len(result.planned)} secrets in {environment}:")
        for key, (old, new) in result.planned.items():
            print(f"  {key}: {old} -> {new}")
        return

    if result.backup_file:
        print(f"Backup created: {result.backup_file}")
    print(f"Rotated {len(result.rotated)} secrets in {environment}")
    for key in result.rotated:
        print(f"  - {key}")
    for error in result.secondary_errors:
        print(f"Warning: {error}", file=sys.stderr)
    if result.errors:
        print(f"Errors ({len(result.errors)}):", file=sys.stderr)
        for error in result.errors:
            print(f"  - {error}", file=sys.stderr)
        sys.exit(1)


def cmd_backup(args):
    """Write an encrypted backup of an environment."""
    environment = validate_environment(args.env)
    config, store, audit_log = load_runtime(args)
    manager = SecretsManager(store, audit_log, config)

    file = args.file or os.path.join(config["backup_dir"], backup_filename(environment, timestamp_now()))
    backup = manager.backup(environment, file)
    print(f"Backup created: {file} ({len(backup.secrets)} secrets)")


def cmd_restore(args):
    """Restore an environment from an encrypted backup."""
    environment = validate_environment(args.env)
    require_option(args.file, "--file", "restore")
    result = build_manager(args).restore(environment, args.file, force=args.force)
    _print_batch(result, "Restored", environment)


def cmd_audit(args):
    """Show the audit trail, most recent first."""
    environment = validate_environment(args.env) if args.env else None
    print(build_manager(args).format_audit(environment))


def cmd_sync(args):
    """Copy every secret from one environment to another."""
    require_option(args.from_env, "--from", "sync")
    require_option(args.to_env, "--to", "sync")
    from_env = validate_environment(args.from_env)
    to_env = validate_environment(args.to_env)
    if from_env == to_env:
        print("Error: Source and target environments must be different", file=sys.stderr)
        sys.exit(2)

    result = build_manager(args).sync(from_env, to_env, force=args.force)
    _print_batch(result, "Synced", to_env)


def cmd_export(args):
    """Export plaintext values to a JSON file."""
    environment = validate_environment(args.env)
    require_option(args.file, "--file", "export")
    count = build_manager(args).export(environment, args.file)
    print(f"Exported {count} secrets from {environment} to {args.file}")
    print("Warning: the export file contains plaintext secrets; delete it when done.", file=sys.stderr)


def cmd_import(args):
    """Import secrets from a JSON file."""
    environment = validate_environment(args.env)
    require_option(args.file, "--file", "import")
    result = build_manager(args).import_(environment, args.file, force=args.force)
    _print_batch(result, "Imported", environment)


def cmd_setup(args):
    """Check store authentication and report missing required secrets."""
    result = build_manager(args).setup(prompt_missing=args.prompt_missing)
    print(f"Store authenticated as: {result.identity}")
    for environment, missing in result.missing.items():
        if missing:
            print(f"{environment}: missing {', '.join(missing)}")
        else:
            print(f"{environment}: all required secrets set")
    print(f"State saved to: {result.state_file}")


def cmd_config_set_path(args):
    """Set config file path preference."""
    from deploy_secrets.secrets.domains.preferences import CONFIG_PATH, set_preference

    config_path = Path(args.path).resolve()

    # Validate that the path exists
    if not config_path.exists():
        print(f"Error: Config file does not exist: {config_path}", file=sys.stderr)
        sys.exit(1)

    if not config_path.is_file():
        print(f"Error: Path is not a file: {config_path}", file=sys.stderr)
        sys.exit(1)

    # Store absolute path in preferences
    set_preference(CONFIG_PATH, str(config_path))
    print(f"Config path set to: {config_path}")


def cmd_config_show(args):
    """Show current config file path."""
    from deploy_secrets.secrets.domains.preferences import CONFIG_PATH, get_preference

    config_path_pref = get_preference(CONFIG_PATH)

    if config_path_pref:
        config_path = Path(config_path_pref)
        if config_path.exists():
            print(f"Config path: {config_path}")
        else:
            print(f"Config path (from preference, but file not found): {config_path}")
        print("Source: preference")
    else:
        default_config = default_config_path()
        print(f"Config path: {default_config}")
        if default_config.exists():
            print("Source: default")
        else:
            print("Source: default (file not found, built-in defaults in use)")


def cmd_config_clear(args):
    """Clear config path preference."""
    from deploy_secrets.secrets.domains.preferences import CONFIG_PATH, clear_preference

    clear_preference(CONFIG_PATH)
    print(f"Config path preference cleared. Will use default: {default_config_path()}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="secrets-manager",
        description="Manage deployment secrets across development, staging and production",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=EXIT_CODES_EPILOG
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    common = common_options()
    secret_options = argparse.ArgumentParser(add_help=False)
    secret_options.add_argument("--env", help="Environment: development (dev), staging, production (prod)")
    secret_options.add_argument("--key", help="Secret name")
    secret_options.add_argument("--value", help="Secret value")
    secret_options.add_argument("--file", help="JSON file (add/validate/import/export) or backup file")
    secret_options.add_argument("--force", action="store_true", help="Skip confirmation prompts")
    secret_options.add_argument("--dry-run", action="store_true", help="Show what would change without writing")
    parents = [common, secret_options]

    subparsers.add_parser("version", help="Show version information")

    add_parser = subparsers.add_parser(
        "add",
        parents=parents,
        help="Add or overwrite secrets",
        description="""
Add a single secret (--key/--value), every entry of a JSON map (--file),
or prompt for every required secret not yet set (--required).

Values are validated against the environment template before they are written.
        """,
        formatter_class=argparse.RawDescriptionHelpFormatter
    )
    add_parser.add_argument("--required", action="store_true", help="Prompt for missing required secrets")

    subparsers.add_parser("list", parents=parents, help="List secret keys")
    subparsers.add_parser("get", parents=parents, help="Print a secret value")
    subparsers.add_parser("remove", parents=parents, help="Remove a secret")
    subparsers.add_parser("validate", parents=parents, help="Validate secrets against the template")

    rotate_parser = subparsers.add_parser("rotate", parents=parents, help="Rotate generated secrets")
    rotate_parser.add_argument("--backup", action="store_true", help="Write an encrypted backup first")

    subparsers.add_parser(
        "backup",
        parents=parents,
        help="Create an encrypted backup",
        description="Requires the SECRETS_ENCRYPTION_PASSWORD environment variable (or the configured one)."
    )
    subparsers.add_parser("restore", parents=parents, help="Restore from an encrypted backup")
    subparsers.add_parser("audit", parents=parents, help="Show the audit log")

    sync_parser = subparsers.add_parser("sync", parents=parents, help="Copy secrets between environments")
    sync_parser.add_argument("--from", dest="from_env", help="Source environment")
    sync_parser.add_argument("--to", dest="to_env", help="Target environment")

    subparsers.add_parser("export", parents=parents, help="Export secrets to a plaintext JSON file")
    subparsers.add_parser("import", parents=parents, help="Import secrets from a JSON file")

    setup_parser = subparsers.add_parser("setup", parents=[common], help="Check store access and required secrets")
    setup_parser.add_argument("--prompt-missing", action="store_true", help="Prompt for missing required secrets")

    config_parser = subparsers.add_parser(
        "config",
        help="Configuration management",
        description="Manage the deploy-secrets config file location"
    )
    config_subparsers = config_parser.add_subparsers(dest="config_command")
    config_set_path_parser = config_subparsers.add_parser(
        "set-path",
        help="Set config file path",
        description="""
Set the configuration file path preference.

This stores the absolute path to your config file in:
~/.config/deploy-secrets/preferences.json
        """
    )
    config_set_path_parser.add_argument("path", help="Path to config file")
    config_subparsers.add_parser("show", help="Show current config path")
    config_subparsers.add_parser("clear", help="Clear config path preference")

    parser.set_defaults(config_parser=config_parser)
    return parser


COMMANDS = {
    "version": cmd_version,
    "add": cmd_add,
    "list": cmd_list,
    "get": cmd_get,
    "remove": cmd_remove,
    "validate": cmd_validate,
    "rotate": cmd_rotate,
    "backup": cmd_backup,
    "restore": cmd_restore,
    "audit": cmd_audit,
    "sync": cmd_sync,
    "export": cmd_export,
    "import": cmd_import,
    "setup": cmd_setup,
}

CONFIG_COMMANDS = {
    "set-path": cmd_config_set_path,
    "show": cmd_config_show,
    "clear": cmd_config_clear,
}


def main(argv=None):
    """Main CLI entrypoint.

    Exit codes:
        0 - Success (including a declined confirmation prompt)
        1 - Runtime errors (store failure, failed validation, decrypt failure, etc.)
        2 - Usage errors (invalid arguments, unknown environment, invalid secret name)
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    # If no command provided, show help and exit with usage error code
    if not args.command:
        parser.print_help()
        sys.exit(2)

    configure_logging(getattr(args, "verbose", False))

    if args.command == "config":
        handler = CONFIG_COMMANDS.get(args.config_command)
        if handler is None:
            args.config_parser.print_help()
            sys.exit(2)
    else:
        handler = COMMANDS[args.command]

    run_command(handler, args)


if __name__ == "__main__":
    main()

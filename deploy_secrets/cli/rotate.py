"""CLI entrypoint for rotate-secrets."""
import sys
import argparse
import logging

from deploy_secrets.secrets.domains.errors import ConfirmationDeclinedError
from deploy_secrets.secrets.domains.github_client import GitHubSecretsClient
from deploy_secrets.secrets.domains.models import ENVIRONMENTS
from deploy_secrets.secrets.domains.notifier import Notifier
from deploy_secrets.secrets.workflows.rotation import Rotator

from .common import EXIT_CODES_EPILOG, common_options, configure_logging, load_runtime, parse_environments, run_command
from .validators import validate_environment

logger = logging.getLogger(__name__)


def confirm_rotation(environments, force: bool, prompt=input) -> None:
    if force:
        return
    answer = prompt(f"Are you sure you want to rotate secrets in {', '.join(environments)}? (y/N): ")
    if answer.strip().lower() not in ("y", "yes"):
        raise ConfirmationDeclinedError("Operation cancelled")


def build_rotator(args) -> Rotator:
    config, store, audit_log = load_runtime(args)
    return Rotator(
        store,
        audit_log,
        config,
        secondary_store=GitHubSecretsClient.from_config(config),
        notifier=Notifier.from_config(config) if args.notify else None,
    )


def cmd_rotate(args):
    """Rotate every requested environment, one after another."""
    environments = [validate_environment(env) for env in parse_environments(args.env, ENVIRONMENTS)]
    if not args.dry_run:
        confirm_rotation(environments, args.force)

    rotator = build_rotator(args)
    results = rotator.rotate(environments, dry_run=args.dry_run, backup=args.backup, notify=args.notify)

    failed = False
    for result in results:
        if result.dry_run:
            print(f"[DRY RUN] {result.environment}: would rotate {len(result.planned)} secrets")
            for key, (old, new) in result.planned.items():
                print(f"  {key}: {old} -> {new}")
            continue

        print(f"{result.environment}: rotated {len(result.rotated)} secrets")
        if result.backup_file:
            print(f"  Backup: {result.backup_file}")
        for key in result.rotated:
            print(f"  - {key}")
        for error in result.secondary_errors:
            print(f"  Warning: {error}", file=sys.stderr)
        for error in result.errors:
            print(f"  Error: {error}", file=sys.stderr)
        failed = failed or not result.ok

    if failed:
        sys.exit(1)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="rotate-secrets",
        description="Rotate generated secrets (session and signing keys) per environment",
        parents=[common_options()],
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=EXIT_CODES_EPILOG
    )
    parser.add_argument("--env", default="all", help="Environment, comma-separated list, or 'all' (default)")
    parser.add_argument("--force", action="store_true", help="Skip the confirmation prompt")
    parser.add_argument("--dry-run", action="store_true", help="Show planned changes without writing")
    parser.add_argument("--notify", action="store_true", help="Post a summary to the alert webhook")
    parser.add_argument("--backup", action="store_true", help="Write an encrypted backup before rotating")
    return parser


def main(argv=None):
    args = build_parser().parse_args(argv)
    configure_logging(args.verbose)
    run_command(cmd_rotate, args)


if __name__ == "__main__":
    main()

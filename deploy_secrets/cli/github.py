"""CLI entrypoint for update-github-secrets."""
import sys
import argparse
import logging

from deploy_secrets.secrets.domains.errors import ConfirmationDeclinedError, RemoteStoreError
from deploy_secrets.secrets.domains.github_client import GitHubSecretsClient
from deploy_secrets.secrets.workflows.github_sync import GitHubSync

from .common import EXIT_CODES_EPILOG, common_options, configure_logging, load_runtime, run_command
from .validators import validate_environment

logger = logging.getLogger(__name__)


def build_sync(args) -> GitHubSync:
    config, store, audit_log = load_runtime(args)
    github = GitHubSecretsClient.from_config(config)
    if github is None:
        raise RemoteStoreError(
            "GitHub is not configured: set github.owner and github.repo in the config "
            "and the GITHUB_TOKEN environment variable"
        )
    return GitHubSync(store, github, audit_log)


def cmd_update(args, prompt=input):
    """Push the environment's required secrets to GitHub Actions secrets."""
    environment = validate_environment(args.env)
    sync = build_sync(args)
    updates = sync.plan_updates(environment)

    if not updates:
        print(f"No required secrets found in the store for {environment}")
        return

    print(f"Planned GitHub secret updates for {environment}:")
    for update in updates:
        print(f"  {update.action}: {update.name}")

    if not args.dry_run and not args.force:
        answer = prompt(f"Apply {len(updates)} updates to {sync.github.owner}/{sync.github.repo}? (y/N): ")
        if answer.strip().lower() not in ("y", "yes"):
            raise ConfirmationDeclinedError("Operation cancelled")

    result = sync.apply_updates(updates, dry_run=args.dry_run)
    prefix = "[DRY RUN] Would update" if result.dry_run else "Updated"
    print(f"{prefix} {len(result.applied)} GitHub secrets")
    if result.errors:
        for error in result.errors:
            print(f"  Error: {error}", file=sys.stderr)
        sys.exit(1)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="update-github-secrets",
        description="Copy required secrets from the primary store into GitHub Actions secrets",
        parents=[common_options()],
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=EXIT_CODES_EPILOG + """
Environment variables:
  GITHUB_TOKEN          - token with repository secrets access
  GITHUB_SECRET_KEY     - key used to encrypt values before upload
  GITHUB_SECRET_KEY_ID  - key id sent alongside encrypted values
"""
    )
    parser.add_argument("--env", default="production", help="Environment to copy from (default: production)")
    parser.add_argument("--force", action="store_true", help="Skip the confirmation prompt")
    parser.add_argument("--dry-run", action="store_true", help="Show planned updates without writing")
    return parser


def main(argv=None):
    args = build_parser().parse_args(argv)
    configure_logging(args.verbose)
    run_command(cmd_update, args)


if __name__ == "__main__":
    main()

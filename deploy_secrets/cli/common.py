"""Shared plumbing for the deploy-secrets command line tools."""
import argparse
import logging
import sys
import traceback
from typing import Any, Callable, Dict, Tuple

from deploy_secrets.secrets.domains.audit_log import AuditLog
from deploy_secrets.secrets.domains.config_loader import load_config
from deploy_secrets.secrets.domains.errors import ConfirmationDeclinedError
from deploy_secrets.secrets.domains.stores import SecretStore, create_store

# Configure logging to stderr
logging.basicConfig(
    level=logging.WARNING,
    format="%(message)s",
    stream=sys.stderr
)
logger = logging.getLogger(__name__)

EXIT_CODES_EPILOG = """
Exit codes:
  0 - Success
  1 - Runtime error, failed check, or findings reported
  2 - Usage error (invalid arguments, unknown environment, invalid secret name)

Configuration:
  Default location: ~/.config/deploy-secrets/config.yml
  Custom path: Set with 'secrets-manager config set-path <path>' or pass --config
"""


def common_options() -> argparse.ArgumentParser:
    """Parent parser carrying the flags every command accepts."""
    parser = argparse.ArgumentParser(add_help=False)
    parser.add_argument(
        "--config",
        help="Path to config file (defaults to the stored preference, then ~/.config/deploy-secrets/config.yml)"
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Show debug logging and tracebacks on error"
    )
    return parser


def configure_logging(verbose: bool) -> None:
    logging.getLogger().setLevel(logging.DEBUG if verbose else logging.WARNING)


def load_runtime(args) -> Tuple[Dict[str, Any], SecretStore, AuditLog]:
    """Config, primary store and audit log for one CLI invocation."""
    config = load_config(getattr(args, "config", None))
    store = create_store(config)
    audit_log = AuditLog(config["audit_log"])
    logger.debug(f"Using {store.name} store, audit log at {audit_log.path}")
    return config, store, audit_log


def parse_environments(value: str, all_environments) -> list:
    """Expand ``all`` or a comma-separated list into environment names."""
    if not value or value == "all":
        return list(all_environments)
    return [env.strip() for env in value.split(",") if env.strip()]


def run_command(handler: Callable, args) -> None:
    """
    Run a command handler and translate failures into exit codes.

    Exit codes:
        0 - Success, or the user declined a confirmation prompt
        1 - Runtime errors
    """
    try:
        handler(args)
    except ConfirmationDeclinedError as e:
        print(str(e))
        sys.exit(0)
    except KeyboardInterrupt:
        print("\nInterrupted", file=sys.stderr)
        sys.exit(1)
    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        if getattr(args, "verbose", False):
            traceback.print_exc()
        sys.exit(1)

"""Input validation for CLI arguments."""
import re
import sys

from deploy_secrets.secrets.domains.models import ENVIRONMENT_ALIASES, ENVIRONMENTS, normalize_environment


def validate_environment(environment: str) -> str:
    """
    Validate an environment name and return its canonical form.

    Accepts the aliases ``dev`` and ``prod``.

    Raises:
        SystemExit with code 2 if validation fails
    """
    if not environment:
        print("Error: Environment is required (use --env)", file=sys.stderr)
        print(f"\nValid environments: {', '.join(ENVIRONMENTS)}", file=sys.stderr)
        sys.exit(2)

    canonical = normalize_environment(environment)
    if canonical not in ENVIRONMENTS:
        print(f"Error: Unknown environment '{environment}'", file=sys.stderr)
        print(f"\nValid environments: {', '.join(ENVIRONMENTS)}", file=sys.stderr)
        print(f"Aliases: {', '.join(f'{k} -> {v}' for k, v in ENVIRONMENT_ALIASES.items())}", file=sys.stderr)
        sys.exit(2)
    return canonical


def validate_secret_name(name: str) -> None:
    """
    Validate secret name is usable as an environment variable.

    Allowed: letters, digits and underscores, not starting with a digit.

    Raises:
        SystemExit with code 2 if validation fails
    """
    if not name:
        print("Error: Secret name cannot be empty (use --key)", file=sys.stderr)
        sys.exit(2)

    pattern = r'^[A-Za-z_][A-Za-z0-9_]*$'

    if not re.match(pattern, name):
        print(f"Error: Invalid secret name '{name}'", file=sys.stderr)
        print("\nAllowed characters: letters, numbers, underscores (_); must not start with a number",
              file=sys.stderr)
        print("\nExamples of valid names:", file=sys.stderr)
        print("  ✓ DATABASE_URL", file=sys.stderr)
        print("  ✓ NEXTAUTH_SECRET", file=sys.stderr)
        print("\nExamples of invalid names:", file=sys.stderr)
        print("  ✗ api-key (contains hyphen)", file=sys.stderr)
        print("  ✗ 1PASSWORD (starts with a number)", file=sys.stderr)
        sys.exit(2)


def validate_secret_value(value: str) -> None:
    """
    Validate secret value is not empty.

    Raises:
        SystemExit with code 2 if validation fails
    """
    if not value or value.strip() == "":
        print("Error: Secret value cannot be empty", file=sys.stderr)
        sys.exit(2)


def require_option(value, flag: str, command: str) -> None:
    """Exit with a usage error when a flag a command needs was not given."""
    if not value:
        print(f"Error: {flag} is required for '{command}'", file=sys.stderr)
        sys.exit(2)

"""Secrets manager: validated writes, batch operations and the audit trail."""
import json
import logging
import os
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from ..domains.audit_log import AuditLog, format_entries
from ..domains.encryption import create_backup, get_passphrase, read_backup, write_backup
from ..domains.errors import (
    ConfirmationDeclinedError,
    InvalidValueError,
    MalformedInputError,
    NotFoundError,
    RemoteStoreError,
)
from ..domains.masking import mask_value
from ..domains.models import AuditEntry, Backup, ENVIRONMENTS, normalize_environment
from ..domains.stores import SecretStore
from ..domains.templates import get_required_secrets, get_template
from ..domains.validation import ensure_valid, validate_secret_value

logger = logging.getLogger(__name__)

STATE_FILE_NAME = "secrets-config.json"
STATE_VERSION = "1.0.0"


@dataclass
class OperationResult:
    """Outcome of a single-key write or delete."""
    environment: str
    key: str
    action: str
    masked_value: Optional[str] = None
    dry_run: bool = False


@dataclass
class BatchResult:
    """Outcome of a multi-key operation; per-key failures are collected, not raised."""
    applied: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    dry_run: bool = False

    @property
    def ok(self) -> bool:
        return not self.errors


@dataclass
class ValidationReport:
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    @property
    def valid(self) -> bool:
        return not self.errors


@dataclass
class SetupResult:
    identity: str
    missing: Dict[str, List[str]]
    state_file: str


def resolve_environment(environment: str) -> str:
    """
    Canonical environment name.

    Raises:
        NotFoundError: If there is no template for the environment
    """
    canonical = normalize_environment(environment)
    if get_template(canonical) is None:
        raise NotFoundError(
            f"Template not found for environment: {environment}. "
            f"Valid environments: {', '.join(ENVIRONMENTS)}"
        )
    return canonical


def read_secrets_file(path: str) -> Dict[str, str]:
    """
    Load a flat ``{key: value}`` JSON map.

    Scalar values are converted to strings; nested values, nulls and
    non-object documents make the whole file malformed.

    Raises:
        NotFoundError: If the file does not exist
        MalformedInputError: If the file is not a flat JSON map
    """
    try:
        with open(path, "r") as f:
            data = json.load(f)
    except FileNotFoundError:
        raise NotFoundError(f"File not found: {path}")
    except json.JSONDecodeError as e:
        raise MalformedInputError(f"Failed to parse {path}: {e}")

    if not isinstance(data, dict):
        raise MalformedInputError(f"{path} must contain a JSON object of key/value pairs")

    secrets: Dict[str, str] = {}
    for key, value in data.items():
        if isinstance(value, str):
            secrets[key] = value
        elif isinstance(value, (bool, int, float)):
            secrets[key] = json.dumps(value)
        else:
            raise MalformedInputError(f"Value for {key} in {path} must be a string, number or boolean")
    return secrets


class SecretsManager:
    """
    Single entry point for operations against the primary secret store.

    Every write is validated before it reaches the store, and an audit entry
    is appended only after the store accepted the write.
    """

    def __init__(
        self,
        store: SecretStore,
        audit_log: AuditLog,
        config: Optional[Dict[str, Any]] = None,
        prompt: Callable[[str], str] = input,
        rotator=None,
    ):
        self.store = store
        self.audit_log = audit_log
        self.config = config or {}
        self.prompt = prompt
        self.rotator = rotator

    @property
    def passphrase_env(self) -> str:
        return (self.config.get("encryption") or {}).get("passphrase_env", "SECRETS_ENCRYPTION_PASSWORD")

    def _confirm(self, message: str, force: bool) -> None:
        if force:
            return
        answer = self.prompt(f"{message} (y/N): ")
        if answer.strip().lower() not in ("y", "yes"):
            raise ConfirmationDeclinedError("Operation cancelled")

    def _write(
        self,
        environment: str,
        key: str,
        value: str,
        action: str,
        dry_run: bool = False,
        file: Optional[str] = None,
        details: Optional[dict] = None,
    ) -> OperationResult:
        if not value:
            raise InvalidValueError(key, ["Value must not be empty"])
        ensure_valid(environment, key, value)

        masked = mask_value(key, value, environment)
        if dry_run:
            logger.info(f"[DRY RUN] Would {action} {key} in {environment}")
            return OperationResult(environment, key, action, masked, dry_run=True)

        self.store.push(environment, key, value)
        self.audit_log.record(action, environment, key=key, masked_value=masked, file=file, details=details)
        logger.info(f"{action}: {key} in {environment}")
        return OperationResult(environment, key, action, masked)

    def _write_many(
        self,
        environment: str,
        secrets: Dict[str, str],
        action: str,
        dry_run: bool = False,
        file: Optional[str] = None,
        details: Optional[dict] = None,
    ) -> BatchResult:
        result = BatchResult(dry_run=dry_run)
        for key, value in secrets.items():
            try:
                self._write(environment, key, value, action, dry_run=dry_run, file=file, details=details)
            except (InvalidValueError, RemoteStoreError) as e:
                logger.warning(f"Skipping {key}: {e}")
                result.errors.append(str(e))
                continue
            result.applied.append(key)
        return result

    def add(self, environment: str, key: str, value: str, dry_run: bool = False) -> OperationResult:
        """
        Validate and write one secret, overwriting any existing value.

        Raises:
            InvalidValueError: If the value fails its definition's rule
            RemoteStoreError: If the store rejects the write
        """
        environment = resolve_environment(environment)
        return self._write(environment, key, value, "add", dry_run=dry_run)

    def add_from_file(self, environment: str, path: str, dry_run: bool = False) -> BatchResult:
        """Add every entry of a JSON map; a malformed file aborts before any write."""
        environment = resolve_environment(environment)
        secrets = read_secrets_file(path)
        logger.info(f"Adding {len(secrets)} secrets from {path} to {environment}")
        return self._write_many(environment, secrets, "add", dry_run=dry_run, file=path)

    def add_required(self, environment: str, dry_run: bool = False) -> BatchResult:
        """Prompt for every required secret the store does not hold yet."""
        environment = resolve_environment(environment)
        template = get_template(environment)
        existing = self.store.pull(environment)
        result = BatchResult(dry_run=dry_run)

        for name in template.required_secrets():
            if name in existing:
                result.skipped.append(name)
                continue

            definition = template.get_secret(name)
            default = definition.resolve_default()
            hint = " [press Enter to use the default]" if default else ""
            value = self.prompt(f"Enter value for {name} ({environment}){hint}: ").strip() or default
            if not value:
                result.errors.append(f"No value provided for required secret {name}")
                continue

            try:
                self._write(environment, name, value, "add", dry_run=dry_run)
            except (InvalidValueError, RemoteStoreError) as e:
                result.errors.append(str(e))
                continue
            result.applied.append(name)
        return result

    def get(self, environment: str, key: str) -> str:
        environment = resolve_environment(environment)
        secrets = self.store.pull(environment)
        if key not in secrets:
            raise NotFoundError(f"Secret {key} not found in {environment}")
        return secrets[key]

    def list(self, environment: str) -> List[str]:
        """Keys currently stored for the environment; values are never returned here."""
        environment = resolve_environment(environment)
        return list(self.store.pull(environment).keys())

    def remove(self, environment: str, key: str, force: bool = False) -> OperationResult:
        """
        Delete one secret after confirmation.

        Raises:
            ConfirmationDeclinedError: If the prompt is not answered affirmatively
        """
        environment = resolve_environment(environment)
        self._confirm(f"Are you sure you want to remove {key} from {environment}?", force)
        self.store.delete(environment, key)
        self.audit_log.record("remove", environment, key=key)
        logger.info(f"Removed {key} from {environment}")
        return OperationResult(environment, key, "remove")

    def validate(self, environment: str, file: Optional[str] = None) -> ValidationReport:
        """
        Validate stored values, or a file's proposed values, against the template.

        Unknown keys are warnings. Missing required secrets are errors only when
        validating the store.
        """
        environment = resolve_environment(environment)
        secrets = read_secrets_file(file) if file else self.store.pull(environment)

        report = ValidationReport()
        for key, value in secrets.items():
            result = validate_secret_value(environment, key, value)
            if not result.known:
                report.warnings.append(f"Unknown secret: {key}")
            elif not result.valid:
                report.errors.append(f"Invalid value for {key}: {'; '.join(result.reasons)}")

        if file is None:
            for name in get_required_secrets(environment):
                if name not in secrets:
                    report.errors.append(f"Missing required secret: {name}")
        return report

    def rotate(self, environment: str, force: bool = False, dry_run: bool = False, backup: bool = False):
        """Regenerate every generator-bearing secret through the Rotator."""
        from .rotation import Rotator

        environment = resolve_environment(environment)
        if not dry_run:
            self._confirm(f"Are you sure you want to rotate secrets in {environment}?", force)
        rotator = self.rotator or Rotator(self.store, self.audit_log, self.config)
        return rotator.rotate_environment(environment, dry_run=dry_run, backup=backup)

    def backup(self, environment: str, file: str) -> Backup:
        """
        Write an encrypted, checksummed snapshot of the environment.

        Raises:
            EncryptionError: If no passphrase is configured
        """
        environment = resolve_environment(environment)
        passphrase = get_passphrase(self.passphrase_env)
        backup = create_backup(environment, self.store.pull(environment))
        write_backup(file, backup, passphrase)
        self.audit_log.record("backup", environment, file=file, details={"keys": len(backup.secrets)})
        return backup

    def restore(self, environment: str, file: str, force: bool = False) -> BatchResult:
        """
        Replay a backup through the validated write path.

        Raises:
            EncryptionError: On a wrong passphrase or checksum mismatch
        """
        environment = resolve_environment(environment)
        self._confirm(f"Are you sure you want to restore secrets to {environment} from {file}?", force)
        backup = read_backup(file, get_passphrase(self.passphrase_env))
        if backup.environment and backup.environment != environment:
            logger.warning(f"Restoring a {backup.environment} backup into {environment}")
        return self._write_many(environment, backup.secrets, "restore", file=file)

    def audit(self, environment: Optional[str] = None) -> List[AuditEntry]:
        """Audit entries, most recent first."""
        if environment:
            environment = resolve_environment(environment)
        return list(reversed(self.audit_log.read(environment)))

    def format_audit(self, environment: Optional[str] = None) -> str:
        entries = self.audit(environment)
        if not entries:
            return "No audit entries found"
        return format_entries(entries)

    def sync(self, from_env: str, to_env: str, force: bool = False) -> BatchResult:
        from_env = resolve_environment(from_env)
        to_env = resolve_environment(to_env)
        if from_env == to_env:
            raise ValueError("Source and target environments must be different")

        self._confirm(f"Are you sure you want to sync secrets from {from_env} to {to_env}?", force)
        secrets = self.store.pull(from_env)
        return self._write_many(to_env, secrets, "add", details={"synced_from": from_env})

    def export(self, environment: str, file: str) -> int:
        """Write plaintext values to ``file`` (owner-only permissions). Returns the key count."""
        environment = resolve_environment(environment)
        secrets = self.store.pull(environment)
        parent = os.path.dirname(os.path.abspath(file))
        os.makedirs(parent, exist_ok=True)
        with open(file, "w") as f:
            json.dump(secrets, f, indent=2)
        os.chmod(file, 0o600)
        logger.info(f"Exported {len(secrets)} secrets from {environment} to {file}")
        return len(secrets)

    def import_(self, environment: str, file: str, force: bool = False) -> BatchResult:
        environment = resolve_environment(environment)
        self._confirm(f"Are you sure you want to import secrets to {environment} from {file}?", force)
        secrets = read_secrets_file(file)
        return self._write_many(environment, secrets, "add", file=file)

    def setup(self, prompt_missing: bool = False) -> SetupResult:
        """
        Verify store credentials, report missing required secrets and write the state file.

        With ``prompt_missing`` the missing values are requested interactively.
        """
        identity = self.store.check_auth()
        logger.info(f"Store authenticated as {identity}")

        missing: Dict[str, List[str]] = {}
        for environment in ENVIRONMENTS:
            if prompt_missing:
                result = self.add_required(environment)
                missing[environment] = [
                    name for name in get_required_secrets(environment)
                    if name not in result.applied and name not in result.skipped
                ]
            else:
                existing = self.store.pull(environment)
                missing[environment] = [name for name in get_required_secrets(environment) if name not in existing]

        state_file = self.save_state()
        return SetupResult(identity=identity, missing=missing, state_file=state_file)

    def save_state(self) -> str:
        state_dir = Path(self.config.get("state_dir") or Path.home() / ".config" / "deploy-secrets")
        state_dir.mkdir(parents=True, exist_ok=True)
        state_file = state_dir / STATE_FILE_NAME
        state = {
            "version": STATE_VERSION,
            "environments": list(ENVIRONMENTS),
            "auditLogFile": str(self.audit_log.path),
            "lastUpdated": datetime.now(timezone.utc).isoformat(),
        }
        with open(state_file, "w") as f:
            json.dump(state, f, indent=2)
        return str(state_file)

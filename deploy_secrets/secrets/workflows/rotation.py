"""Secret rotation: backup, regenerate, propagate, audit."""
import logging
import os
import tempfile
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

from ..domains.audit_log import AuditLog
from ..domains.encryption import create_backup, get_passphrase, timestamp_now, write_backup
from ..domains.errors import InvalidValueError, NotFoundError, RemoteStoreError
from ..domains.locking import RotationLock
from ..domains.masking import mask_value
from ..domains.models import normalize_environment
from ..domains.notifier import DANGER, GOOD, Notifier, build_message
from ..domains.stores import SecretStore
from ..domains.templates import get_template
from ..domains.validation import ensure_valid

logger = logging.getLogger(__name__)


@dataclass
class RotationResult:
    environment: str
    dry_run: bool = False
    rotated: List[str] = field(default_factory=list)
    # key -> (masked old value, masked new value), filled on dry runs
    planned: Dict[str, Tuple[str, str]] = field(default_factory=dict)
    errors: List[str] = field(default_factory=list)
    secondary_errors: List[str] = field(default_factory=list)
    backup_file: Optional[str] = None

    @property
    def ok(self) -> bool:
        return not self.errors


def backup_filename(environment: str, timestamp: str) -> str:
    safe = timestamp.replace(":", "-").replace(".", "-").replace("+", "-")
    return f"secrets-{environment}-{safe}.json"


class Rotator:
    """
    Regenerates every generator-bearing secret of an environment.

    Keys are processed one at a time; a failure part way through leaves the
    already-rotated prefix in place. Only one rotation per environment runs
    at a time (see RotationLock).
    """

    def __init__(
        self,
        store: SecretStore,
        audit_log: AuditLog,
        config: Optional[Dict[str, Any]] = None,
        secondary_store=None,
        notifier: Optional[Notifier] = None,
        lock_dir: Optional[str] = None,
    ):
        self.store = store
        self.audit_log = audit_log
        self.config = config or {}
        self.secondary_store = secondary_store
        self.notifier = notifier
        state_dir = self.config.get("state_dir")
        self.lock_dir = lock_dir or (os.path.join(state_dir, "locks") if state_dir else tempfile.gettempdir())
        self.backup_dir = self.config.get("backup_dir") or "backups"

    def _create_backup(self, environment: str, secrets: Dict[str, str]) -> str:
        passphrase_env = (self.config.get("encryption") or {}).get("passphrase_env", "SECRETS_ENCRYPTION_PASSWORD")
        passphrase = get_passphrase(passphrase_env)
        backup = create_backup(environment, secrets, timestamp=timestamp_now())
        path = os.path.join(self.backup_dir, backup_filename(environment, backup.timestamp))
        write_backup(path, backup, passphrase)
        self.audit_log.record("backup", environment, file=path, details={"keys": len(secrets)})
        return path

    def _propagate(self, environment: str, new_values: Dict[str, str], result: RotationResult) -> None:
        if self.secondary_store is None or not new_values:
            return
        if not self.secondary_store.has_secret_access():
            message = "Secondary store not reachable, skipping propagation"
            logger.warning(f"{message} for {environment}")
            result.secondary_errors.append(message)
            return
        for key, value in new_values.items():
            try:
                self.secondary_store.put_secret(key, value)
            except RemoteStoreError as e:
                logger.warning(f"Failed to propagate {key} to secondary store: {e}")
                result.secondary_errors.append(f"{key}: {e}")

    def rotate_environment(self, environment: str, dry_run: bool = False, backup: bool = False) -> RotationResult:
        """
        Rotate one environment.

        Order: pull, optional backup, regenerate and write per key, propagate
        to the secondary store, then append one ``rotate`` audit entry per key.

        Raises:
            NotFoundError: If the environment has no template
            RotationLockedError: If another rotation of the environment is running
            EncryptionError: If a requested backup cannot be written; nothing is rotated
        """
        environment = normalize_environment(environment)
        template = get_template(environment)
        if template is None:
            raise NotFoundError(f"Template not found for environment: {environment}")

        if dry_run:
            return self._plan(environment, template)

        with RotationLock(self.lock_dir, environment):
            return self._rotate(environment, template, backup)

    def _plan(self, environment: str, template) -> RotationResult:
        result = RotationResult(environment=environment, dry_run=True)
        current = self.store.pull(environment)
        for definition in template.secrets:
            if not definition.has_generator:
                continue
            old_value = current.get(definition.name)
            new_value = definition.generator()
            result.planned[definition.name] = (
                mask_value(definition.name, old_value, environment) if old_value is not None else "Not set",
                mask_value(definition.name, new_value, environment),
            )
        return result

    def _rotate(self, environment: str, template, backup: bool) -> RotationResult:
        result = RotationResult(environment=environment)
        current = self.store.pull(environment)

        if backup:
            result.backup_file = self._create_backup(environment, current)
            logger.info(f"Created backup: {result.backup_file}")

        new_values: Dict[str, str] = {}
        for definition in template.secrets:
            # Default-only and plain definitions keep their stored value.
            if not definition.has_generator:
                continue
            new_value = definition.generator()
            try:
                ensure_valid(environment, definition.name, new_value)
                self.store.push(environment, definition.name, new_value)
            except (InvalidValueError, RemoteStoreError) as e:
                logger.error(f"Failed to rotate {definition.name} in {environment}: {e}")
                result.errors.append(f"{definition.name}: {e}")
                continue
            new_values[definition.name] = new_value
            result.rotated.append(definition.name)

        self._propagate(environment, new_values, result)

        for key, new_value in new_values.items():
            old_value = current.get(key)
            self.audit_log.record(
                "rotate",
                environment,
                key=key,
                masked_value=mask_value(key, new_value, environment),
                details={"previous": mask_value(key, old_value, environment) if old_value is not None else None},
            )

        logger.info(f"Rotated {len(result.rotated)} secrets in {environment}")
        return result

    def rotate(
        self,
        environments: Sequence[str],
        dry_run: bool = False,
        backup: bool = False,
        notify: bool = False,
    ) -> List[RotationResult]:
        """Rotate environments one after another, optionally posting a summary notification."""
        results = [self.rotate_environment(env, dry_run=dry_run, backup=backup) for env in environments]

        if notify and not dry_run:
            self.send_notification(results)
        return results

    def send_notification(self, results: List[RotationResult]) -> bool:
        if self.notifier is None:
            logger.warning("No notification webhook configured")
            return False

        failed = any(not r.ok for r in results)
        message = build_message(
            "Secret Rotation Completed",
            DANGER if failed else GOOD,
            [
                {"title": "Environments", "value": ", ".join(r.environment for r in results)},
                {"title": "Status", "value": "Completed with errors" if failed else "Completed successfully"},
                {"title": "Timestamp", "value": timestamp_now(), "short": False},
            ],
        )
        return self.notifier.send(message)

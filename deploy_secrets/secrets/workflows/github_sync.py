"""Copy required secrets from the primary store into GitHub Actions secrets."""
import logging
from dataclasses import dataclass, field
from typing import List

from ..domains.audit_log import AuditLog
from ..domains.errors import RemoteStoreError
from ..domains.github_client import GitHubSecretsClient
from ..domains.masking import mask_value
from ..domains.stores import SecretStore
from ..domains.templates import get_required_secrets
from .secret_operations import resolve_environment

logger = logging.getLogger(__name__)


@dataclass
class SecretUpdate:
    environment: str
    name: str
    value: str
    action: str  # "add" or "update"


@dataclass
class SyncResult:
    applied: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    dry_run: bool = False

    @property
    def ok(self) -> bool:
        return not self.errors


class GitHubSync:
    """Plans and applies required-secret updates from a SecretStore to GitHub."""

    def __init__(self, store: SecretStore, github: GitHubSecretsClient, audit_log: AuditLog):
        self.store = store
        self.github = github
        self.audit_log = audit_log

    def plan_updates(self, environment: str) -> List[SecretUpdate]:
        """
        Required secrets of ``environment`` that the primary store holds.

        Secrets the store is missing are logged and left out of the plan.
        """
        environment = resolve_environment(environment)
        stored = self.store.pull(environment)
        existing = set(self.github.list_secret_names())

        updates: List[SecretUpdate] = []
        for name in get_required_secrets(environment):
            if name not in stored:
                logger.warning(f"{name} not found in store for {environment}, skipping")
                continue
            action = "update" if name in existing else "add"
            updates.append(SecretUpdate(environment, name, stored[name], action))
        return updates

    def apply_updates(self, updates: List[SecretUpdate], dry_run: bool = False) -> SyncResult:
        result = SyncResult(dry_run=dry_run)
        for update in updates:
            if dry_run:
                logger.info(f"[DRY RUN] Would {update.action} GitHub secret {update.name}")
                result.applied.append(update.name)
                continue
            try:
                self.github.put_secret(update.name, update.value)
            except RemoteStoreError as e:
                logger.error(f"Failed to {update.action} {update.name}: {e}")
                result.errors.append(f"{update.name}: {e}")
                continue
            self.audit_log.record(
                "github-sync",
                update.environment,
                key=update.name,
                masked_value=mask_value(update.name, update.value, update.environment),
                details={"action": update.action, "repository": f"{self.github.owner}/{self.github.repo}"},
            )
            result.applied.append(update.name)
        return result

    def sync(self, environment: str, dry_run: bool = False) -> SyncResult:
        return self.apply_updates(self.plan_updates(environment), dry_run=dry_run)

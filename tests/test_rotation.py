"""Tests for secret rotation and the rotation lock."""
import os
import time

import pytest

from deploy_secrets.secrets.domains.encryption import read_backup
from deploy_secrets.secrets.domains.errors import EncryptionError, RemoteStoreError, RotationLockedError
from deploy_secrets.secrets.domains.locking import RotationLock
from deploy_secrets.secrets.domains.masking import MASK
from deploy_secrets.secrets.workflows.rotation import Rotator, backup_filename
from deploy_secrets.secrets.workflows.secret_operations import SecretsManager

from conftest import PRODUCTION_SECRETS


class FakeSecondary:
    def __init__(self, reachable=True, failing=()):
        self.reachable = reachable
        self.failing = set(failing)
        self.received = {}

    def has_secret_access(self):
        return self.reachable

    def put_secret(self, name, value):
        if name in self.failing:
            raise RemoteStoreError(f"GitHub rejected {name}")
        self.received[name] = value


class FakeNotifier:
    def __init__(self):
        self.sent = []

    def send(self, payload):
        self.sent.append(payload)
        return True


@pytest.fixture
def rotator(store, audit_log, config):
    return Rotator(store, audit_log, config)


class TestDryRun:

    def test_plan_masks_and_marks_unset(self, rotator, store, audit_log):
        before = store.pull("production")

        result = rotator.rotate_environment("production", dry_run=True)

        assert result.dry_run
        assert result.planned["NEXTAUTH_SECRET"] == (MASK, MASK)
        assert result.planned["JWT_SECRET"][0] == "Not set"
        assert result.rotated == []
        assert store.pull("production") == before
        assert audit_log.read() == []

    def test_plan_skips_default_only_secrets(self, rotator):
        result = rotator.rotate_environment("development", dry_run=True)
        assert list(result.planned) == ["NEXTAUTH_SECRET"]


class TestRotate:

    def test_only_generator_secrets_change(self, rotator, store):
        before = store.pull("development")

        result = rotator.rotate_environment("development")

        after = store.pull("development")
        assert result.rotated == ["NEXTAUTH_SECRET"]
        assert after["NEXTAUTH_SECRET"] != before["NEXTAUTH_SECRET"]
        assert len(after["NEXTAUTH_SECRET"]) == 64
        assert after["LOG_LEVEL"] == "debug"

    def test_rotate_entries_are_masked(self, rotator, audit_log):
        rotator.rotate_environment("production")

        entries = audit_log.read("production")
        assert [e.action for e in entries] == ["rotate"] * 3
        nextauth = entries[0]
        assert nextauth.key == "NEXTAUTH_SECRET"
        assert nextauth.masked_value == MASK
        assert nextauth.details == {"previous": MASK}
        assert entries[1].details == {"previous": None}
        assert PRODUCTION_SECRETS["NEXTAUTH_SECRET"] not in audit_log.path.read_text()

    def test_lock_is_released(self, rotator, config):
        rotator.rotate_environment("development")
        rotator.rotate_environment("development")
        assert not os.listdir(os.path.join(config["state_dir"], "locks"))

    def test_unknown_environment(self, rotator):
        from deploy_secrets.secrets.domains.errors import NotFoundError

        with pytest.raises(NotFoundError):
            rotator.rotate_environment("qa")


class TestBackupBeforeRotate:

    def test_backup_holds_previous_values(self, rotator, config, monkeypatch):
        monkeypatch.setenv("SECRETS_ENCRYPTION_PASSWORD", "passphrase")

        result = rotator.rotate_environment("production", backup=True)

        assert os.path.dirname(result.backup_file) == config["backup_dir"]
        restored = read_backup(result.backup_file, "passphrase")
        assert restored.secrets == PRODUCTION_SECRETS

    def test_backup_failure_rotates_nothing(self, rotator, store, monkeypatch):
        monkeypatch.delenv("SECRETS_ENCRYPTION_PASSWORD", raising=False)

        with pytest.raises(EncryptionError):
            rotator.rotate_environment("production", backup=True)
        assert store.pull("production") == PRODUCTION_SECRETS

    def test_backup_filename_is_path_safe(self):
        name = backup_filename("staging", "2024-01-01T10:00:00.123+00:00")
        assert name == "secrets-staging-2024-01-01T10-00-00-123-00-00.json"


class TestSecondaryPropagation:

    def test_new_values_are_propagated(self, store, audit_log, config):
        secondary = FakeSecondary()
        result = Rotator(store, audit_log, config, secondary_store=secondary).rotate_environment("development")

        assert result.secondary_errors == []
        assert secondary.received == {"NEXTAUTH_SECRET": store.pull("development")["NEXTAUTH_SECRET"]}

    def test_secondary_failures_do_not_undo_primary(self, store, audit_log, config):
        secondary = FakeSecondary(failing={"NEXTAUTH_SECRET"})
        result = Rotator(store, audit_log, config, secondary_store=secondary).rotate_environment("development")

        assert result.ok
        assert result.rotated == ["NEXTAUTH_SECRET"]
        assert len(result.secondary_errors) == 1
        assert audit_log.read()[0].action == "rotate"

    def test_unreachable_secondary_is_reported(self, store, audit_log, config):
        secondary = FakeSecondary(reachable=False)
        result = Rotator(store, audit_log, config, secondary_store=secondary).rotate_environment("development")

        assert secondary.received == {}
        assert result.secondary_errors == ["Secondary store not reachable, skipping propagation"]


class TestNotification:

    def test_summary_is_sent(self, store, audit_log, config):
        notifier = FakeNotifier()
        rotator = Rotator(store, audit_log, config, notifier=notifier)

        rotator.rotate(["development", "production"], notify=True)

        payload = notifier.sent[0]
        attachment = payload["attachments"][0]
        assert payload["text"] == "Secret Rotation Completed"
        assert attachment["color"] == "good"
        assert attachment["fields"][0]["value"] == "development, production"

    def test_no_notification_on_dry_run(self, store, audit_log, config):
        notifier = FakeNotifier()
        Rotator(store, audit_log, config, notifier=notifier).rotate(["development"], dry_run=True, notify=True)
        assert notifier.sent == []

    def test_without_notifier(self, rotator):
        assert rotator.send_notification([]) is False


class TestRotationLock:

    def test_concurrent_rotation_is_rejected(self, rotator, store, config):
        before = store.pull("production")
        with RotationLock(rotator.lock_dir, "production"):
            with pytest.raises(RotationLockedError):
                rotator.rotate_environment("production")
        assert store.pull("production") == before

    def test_other_environment_is_not_blocked(self, rotator):
        with RotationLock(rotator.lock_dir, "production"):
            assert rotator.rotate_environment("development").ok

    def test_stale_lock_is_reclaimed(self, tmp_path):
        path = tmp_path / "rotate-staging.lock"
        path.write_text("{}")
        old = time.time() - 7200
        os.utime(path, (old, old))

        lock = RotationLock(tmp_path, "staging")
        lock.acquire()
        assert path.exists()
        lock.release()
        assert not path.exists()

    def test_fresh_lock_is_respected(self, tmp_path):
        (tmp_path / "rotate-staging.lock").write_text("{}")
        with pytest.raises(RotationLockedError):
            RotationLock(tmp_path, "staging").acquire()


class TestManagerRotate:

    def test_declined_confirmation(self, store, audit_log, config):
        from deploy_secrets.secrets.domains.errors import ConfirmationDeclinedError

        manager = SecretsManager(store, audit_log, config, prompt=lambda message: "n")
        with pytest.raises(ConfirmationDeclinedError):
            manager.rotate("production")

    def test_dry_run_does_not_prompt(self, store, audit_log, config):
        def prompt(message):
            raise AssertionError("prompted on dry run")

        result = SecretsManager(store, audit_log, config, prompt=prompt).rotate("production", dry_run=True)
        assert "NEXTAUTH_SECRET" in result.planned

"""Tests for backup envelopes and value encryption."""
import hashlib
import json

import pytest

from deploy_secrets.secrets.domains.encryption import (
    GCM_ALGORITHM,
    calculate_checksum,
    create_backup,
    decrypt_payload,
    decrypt_value,
    encrypt_legacy_payload,
    encrypt_payload,
    encrypt_value,
    get_passphrase,
    read_backup,
    verify_backup,
    write_backup,
)
from deploy_secrets.secrets.domains.errors import EncryptionError, MalformedInputError


class TestChecksum:

    def test_checksum_ignores_key_order(self):
        assert calculate_checksum({"A": "1", "B": "2"}) == calculate_checksum({"B": "2", "A": "1"})

    def test_checksum_changes_with_values(self):
        assert calculate_checksum({"A": "1"}) != calculate_checksum({"A": "2"})

    def test_backup_checksum_is_sha256_of_canonical_json(self, tmp_path):
        secrets = {"SUPABASE_URL": "https://x.supabase.co", "DATABASE_URL": "postgresql://db/app"}
        path = tmp_path / "backup.json"
        write_backup(str(path), create_backup("production", secrets), "passphrase")

        restored = read_backup(str(path), "passphrase")

        canonical = json.dumps(secrets, sort_keys=True, separators=(",", ":"))
        assert restored.checksum == hashlib.sha256(canonical.encode("utf-8")).hexdigest()
        assert restored.secrets == secrets

    def test_verify_detects_tampering(self):
        backup = create_backup("production", {"A": "1"})
        backup.secrets["A"] = "2"
        with pytest.raises(EncryptionError) as exc_info:
            verify_backup(backup)
        assert "checksum mismatch" in str(exc_info.value)


class TestBackupFiles:

    def test_envelope_layout(self):
        envelope = encrypt_payload({"A": "1"}, "passphrase")
        assert envelope["algorithm"] == GCM_ALGORITHM
        assert {"salt", "iv", "tag", "encrypted", "kdf"} <= set(envelope)

    def test_salt_and_iv_are_fresh(self):
        first = encrypt_payload({"A": "1"}, "passphrase")
        second = encrypt_payload({"A": "1"}, "passphrase")
        assert first["salt"] != second["salt"]
        assert first["iv"] != second["iv"]

    def test_write_then_read_backup(self, tmp_path):
        path = tmp_path / "nested" / "backup.json"
        backup = create_backup("staging", {"LOG_LEVEL": "info", "JWT_SECRET": "s" * 40})

        write_backup(str(path), backup, "passphrase")
        restored = read_backup(str(path), "passphrase")

        assert restored.environment == "staging"
        assert restored.secrets == backup.secrets
        assert restored.checksum == backup.checksum
        assert "JWT_SECRET" not in path.read_text()

    def test_wrong_passphrase(self, tmp_path):
        path = tmp_path / "backup.json"
        write_backup(str(path), create_backup("staging", {"A": "1"}), "right")

        with pytest.raises(EncryptionError) as exc_info:
            read_backup(str(path), "wrong")
        assert "wrong passphrase" in str(exc_info.value)

    def test_legacy_cbc_envelope_still_readable(self, tmp_path):
        path = tmp_path / "legacy.json"
        path.write_text(json.dumps(encrypt_legacy_payload({"LOG_LEVEL": "warn"}, "passphrase")))

        restored = read_backup(str(path), "passphrase")

        assert restored.secrets == {"LOG_LEVEL": "warn"}

    def test_unknown_algorithm(self):
        with pytest.raises(EncryptionError):
            decrypt_payload({"algorithm": "rot13", "encrypted": ""}, "passphrase")

    def test_not_json(self, tmp_path):
        path = tmp_path / "backup.json"
        path.write_text("not json")
        with pytest.raises(MalformedInputError):
            read_backup(str(path), "passphrase")


class TestPassphrase:

    def test_missing_passphrase_has_no_default(self, monkeypatch):
        monkeypatch.delenv("SECRETS_ENCRYPTION_PASSWORD", raising=False)
        with pytest.raises(EncryptionError) as exc_info:
            get_passphrase("SECRETS_ENCRYPTION_PASSWORD")
        assert "SECRETS_ENCRYPTION_PASSWORD" in str(exc_info.value)

    def test_passphrase_from_environment(self, monkeypatch):
        monkeypatch.setenv("SECRETS_ENCRYPTION_PASSWORD", "hunter22")
        assert get_passphrase("SECRETS_ENCRYPTION_PASSWORD") == "hunter22"


class TestValueEncryption:

    def test_encrypt_value_roundtrip_uses_fresh_nonce(self):
        first = encrypt_value("secret-value", "key")
        second = encrypt_value("secret-value", "key")
        assert first != second
        assert decrypt_value(first, "key") == "secret-value"

    def test_decrypt_value_wrong_key(self):
        with pytest.raises(EncryptionError):
            decrypt_value(encrypt_value("secret-value", "key"), "other")

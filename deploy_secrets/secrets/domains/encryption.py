"""Backup envelopes, checksums and per-value encryption.

Backups are JSON envelopes encrypted with AES-256-GCM. The key is derived
from a passphrase with PBKDF2-SHA256 and a fresh salt per backup; the IV is
random per encryption. Envelopes written by the older tooling
(``aes-256-cbc`` with ``sha256(passphrase)`` as the key) can still be read.
"""
import base64
import hashlib
import json
import logging
import os
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes, padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from .errors import EncryptionError
from .models import Backup

logger = logging.getLogger(__name__)

ENVELOPE_VERSION = 2
GCM_ALGORITHM = "aes-256-gcm"
LEGACY_ALGORITHM = "aes-256-cbc"
KDF_NAME = "pbkdf2-sha256"
KDF_ITERATIONS = 390000
SALT_BYTES = 16
NONCE_BYTES = 12
TAG_BYTES = 16


def serialize_secrets(secrets: Dict[str, str]) -> str:
    """Canonical JSON form of a secrets map, used for checksums."""
    return json.dumps(secrets, sort_keys=True, separators=(",", ":"))


def calculate_checksum(secrets: Dict[str, str]) -> str:
    return hashlib.sha256(serialize_secrets(secrets).encode("utf-8")).hexdigest()


def timestamp_now() -> str:
    return datetime.now(timezone.utc).isoformat()


def create_backup(environment: str, secrets: Dict[str, str], timestamp: Optional[str] = None) -> Backup:
    """Snapshot ``secrets`` with a SHA-256 checksum."""
    snapshot = dict(secrets)
    return Backup(
        environment=environment,
        timestamp=timestamp or timestamp_now(),
        secrets=snapshot,
        checksum=calculate_checksum(snapshot),
    )


def verify_backup(backup: Backup) -> None:
    """
    Recompute the checksum of a backup.

    Raises:
        EncryptionError: If the stored checksum does not match
    """
    expected = calculate_checksum(backup.secrets)
    if expected != backup.checksum:
        raise EncryptionError(
            f"Backup checksum mismatch for {backup.environment}: "
            f"stored {backup.checksum[:12]}..., computed {expected[:12]}..."
        )


def get_passphrase(env_var: str) -> str:
    """
    Read the backup passphrase from an environment variable.

    Raises:
        EncryptionError: If the variable is unset or empty; there is no default passphrase
    """
    passphrase = os.getenv(env_var)
    if not passphrase:
        raise EncryptionError(
            f"Encryption passphrase not set. Export {env_var} before running backup or restore."
        )
    return passphrase


def _derive_key(passphrase: str, salt: bytes) -> bytes:
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=32,
        salt=salt,
        iterations=KDF_ITERATIONS,
    )
    return kdf.derive(passphrase.encode("utf-8"))


def _b64(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def encrypt_payload(payload: Dict[str, Any], passphrase: str) -> Dict[str, Any]:
    """Encrypt a JSON-serializable payload into an envelope dict."""
    salt = os.urandom(SALT_BYTES)
    nonce = os.urandom(NONCE_BYTES)
    key = _derive_key(passphrase, salt)

    encryptor = Cipher(algorithms.AES(key), modes.GCM(nonce)).encryptor()
    plaintext = json.dumps(payload).encode("utf-8")
    ciphertext = encryptor.update(plaintext) + encryptor.finalize()

    return {
        "version": ENVELOPE_VERSION,
        "algorithm": GCM_ALGORITHM,
        "kdf": KDF_NAME,
        "iterations": KDF_ITERATIONS,
        "salt": _b64(salt),
        "iv": _b64(nonce),
        "tag": _b64(encryptor.tag),
        "encrypted": _b64(ciphertext),
    }


def _decrypt_legacy(envelope: Dict[str, Any], passphrase: str) -> bytes:
    key = hashlib.sha256(passphrase.encode("utf-8")).digest()
    iv = bytes.fromhex(envelope["iv"])
    decryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).decryptor()
    padded = decryptor.update(bytes.fromhex(envelope["encrypted"])) + decryptor.finalize()
    unpadder = padding.PKCS7(algorithms.AES.block_size).unpadder()
    return unpadder.update(padded) + unpadder.finalize()


def encrypt_legacy_payload(payload: Dict[str, Any], passphrase: str) -> Dict[str, Any]:
    """Write an ``aes-256-cbc`` envelope in the older ``{iv, encrypted}`` layout."""
    key = hashlib.sha256(passphrase.encode("utf-8")).digest()
    iv = os.urandom(16)
    padder = padding.PKCS7(algorithms.AES.block_size).padder()
    padded = padder.update(json.dumps(payload).encode("utf-8")) + padder.finalize()
    encryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).encryptor()
    encrypted = encryptor.update(padded) + encryptor.finalize()
    return {"iv": iv.hex(), "encrypted": encrypted.hex()}


def decrypt_payload(envelope: Dict[str, Any], passphrase: str) -> Dict[str, Any]:
    """
    Decrypt an envelope produced by encrypt_payload (or the legacy CBC layout).

    Raises:
        EncryptionError: On a wrong passphrase, tampered data or unknown layout
    """
    algorithm = envelope.get("algorithm", LEGACY_ALGORITHM)
    try:
        if algorithm == GCM_ALGORITHM:
            salt = base64.b64decode(envelope["salt"])
            nonce = base64.b64decode(envelope["iv"])
            tag = base64.b64decode(envelope["tag"])
            ciphertext = base64.b64decode(envelope["encrypted"])
            key = _derive_key(passphrase, salt)
            decryptor = Cipher(algorithms.AES(key), modes.GCM(nonce, tag)).decryptor()
            plaintext = decryptor.update(ciphertext) + decryptor.finalize()
        elif algorithm == LEGACY_ALGORITHM:
            plaintext = _decrypt_legacy(envelope, passphrase)
        else:
            raise EncryptionError(f"Unsupported backup algorithm: {algorithm}")
        return json.loads(plaintext.decode("utf-8"))
    except EncryptionError:
        raise
    except InvalidTag as e:
        raise EncryptionError("Backup decryption failed: wrong passphrase or corrupted file") from e
    except (KeyError, ValueError) as e:
        raise EncryptionError(f"Backup decryption failed: {e}") from e


def write_backup(path: str, backup: Backup, passphrase: str) -> None:
    """Encrypt a backup and write it to ``path`` (parent directories are created)."""
    envelope = encrypt_payload(backup.to_dict(), passphrase)
    parent = os.path.dirname(os.path.abspath(path))
    os.makedirs(parent, exist_ok=True)
    with open(path, "w") as f:
        json.dump(envelope, f, indent=2)
    logger.info(f"Wrote encrypted backup of {backup.environment} to {path}")


def read_backup(path: str, passphrase: str) -> Backup:
    """
    Read, decrypt and verify a backup file.

    Legacy files that hold a bare secrets map instead of a Backup record are
    wrapped with a freshly computed checksum.

    Raises:
        EncryptionError: If decryption or checksum verification fails
        MalformedInputError: If the file is not a JSON envelope
    """
    from .errors import MalformedInputError

    try:
        with open(path, "r") as f:
            envelope = json.load(f)
    except json.JSONDecodeError as e:
        raise MalformedInputError(f"Backup file {path} is not valid JSON: {e}") from e

    payload = decrypt_payload(envelope, passphrase)
    if "secrets" in payload and "checksum" in payload:
        backup = Backup(
            environment=payload.get("environment", ""),
            timestamp=payload.get("timestamp", ""),
            secrets=payload["secrets"],
            checksum=payload["checksum"],
        )
        verify_backup(backup)
        return backup

    logger.warning(f"Backup {path} has no checksum; treating it as a bare secrets map")
    return create_backup("", payload)


def encrypt_value(value: str, passphrase: str) -> str:
    """
    Encrypt a single value for a secondary store.

    AES-256-GCM, key ``sha256(passphrase)``, fresh 12-byte nonce per value.
    Returns base64 of ``nonce || ciphertext || tag``.
    """
    key = hashlib.sha256(passphrase.encode("utf-8")).digest()
    nonce = os.urandom(NONCE_BYTES)
    encryptor = Cipher(algorithms.AES(key), modes.GCM(nonce)).encryptor()
    ciphertext = encryptor.update(value.encode("utf-8")) + encryptor.finalize()
    return _b64(nonce + ciphertext + encryptor.tag)


def decrypt_value(token: str, passphrase: str) -> str:
    """Inverse of encrypt_value."""
    raw = base64.b64decode(token)
    nonce, ciphertext, tag = raw[:NONCE_BYTES], raw[NONCE_BYTES:-TAG_BYTES], raw[-TAG_BYTES:]
    key = hashlib.sha256(passphrase.encode("utf-8")).digest()
    decryptor = Cipher(algorithms.AES(key), modes.GCM(nonce, tag)).decryptor()
    try:
        return (decryptor.update(ciphertext) + decryptor.finalize()).decode("utf-8")
    except InvalidTag as e:
        raise EncryptionError("Value decryption failed") from e

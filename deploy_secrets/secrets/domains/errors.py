"""Error taxonomy for secret operations."""
from typing import List, Optional


class SecretsError(Exception):
    """Base class for all secret management errors."""
    pass


class InvalidValueError(SecretsError):
    """A value failed its SecretDefinition validation rule."""

    def __init__(self, key: str, reasons: Optional[List[str]] = None):
        self.key = key
        self.reasons = reasons or []
        detail = "; ".join(self.reasons) if self.reasons else "validation failed"
        super().__init__(f"Invalid value for secret '{key}': {detail}")


class NotFoundError(SecretsError):
    """Unknown environment, template or key."""
    pass


class RemoteStoreError(SecretsError):
    """The remote secret store (CLI or API) call failed."""
    pass


class ConfirmationDeclinedError(SecretsError):
    """The user declined an interactive confirmation prompt."""
    pass


class MalformedInputError(SecretsError):
    """An input file could not be parsed."""
    pass


class EncryptionError(SecretsError):
    """Backup encryption or decryption failed, or a checksum did not match."""
    pass


class RotationLockedError(SecretsError):
    """Another rotation of the same environment holds the lock."""
    pass

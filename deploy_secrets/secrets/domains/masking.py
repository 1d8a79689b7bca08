"""Masking of secret values in printed and logged output."""
from typing import Optional

MASK = "***"

# Key-name heuristic, see is_sensitive_key.
SENSITIVE_KEY_PARTS = ("password", "secret", "key", "token", "dsn")


def is_sensitive_key(key: str, environment: Optional[str] = None) -> bool:
    """
    Decide whether a key's value must be masked.

    A key is sensitive when its name contains one of SENSITIVE_KEY_PARTS
    (case-insensitive), or when the environment template marks its
    definition ``sensitive``.
    """
    lowered = key.lower()
    if any(part in lowered for part in SENSITIVE_KEY_PARTS):
        return True

    if environment:
        from .templates import get_template

        template = get_template(environment)
        definition = template.get_secret(key) if template else None
        if definition is not None and definition.sensitive:
            return True
    return False


def mask_value(key: str, value: Optional[str], environment: Optional[str] = None) -> Optional[str]:
    """Return ``value`` or the fixed mask if ``key`` is sensitive."""
    if value is None:
        return None
    return MASK if is_sensitive_key(key, environment) else value

"""Template and secret value validation."""
import logging
import re
import secrets
from dataclasses import dataclass, field
from typing import Any, List

logger = logging.getLogger(__name__)


@dataclass
class TemplateValidation:
    """Result of validating a whole template."""
    valid: bool
    errors: List[str] = field(default_factory=list)


@dataclass
class ValueValidation:
    """Result of validating one secret value.

    ``known`` is False when the key has no definition in the template; the
    value is then reported valid and the caller decides how to treat it.
    """
    valid: bool
    reasons: List[str] = field(default_factory=list)
    known: bool = True


def generate_secret(length_bytes: int = 32) -> str:
    """
    Generate a random hex secret.

    Args:
        length_bytes: Number of random bytes; the result has twice as many characters

    Returns:
        Hex string produced by the operating system CSPRNG
    """
    return secrets.token_hex(length_bytes)


def validate_template(template: Any) -> TemplateValidation:
    """
    Validate a template's structure without modifying it.

    Checks:
        - the template has a name
        - ``secrets`` is a list or tuple
        - every secret has a name
        - every required secret has a default value (a generator counts)
        - every validation pattern compiles
    """
    errors: List[str] = []

    if not getattr(template, "name", None):
        errors.append("Template must have a name")

    definitions = getattr(template, "secrets", None)
    if not isinstance(definitions, (list, tuple)):
        errors.append("Template secrets must be a list")
        return TemplateValidation(valid=False, errors=errors)

    for index, definition in enumerate(definitions):
        name = getattr(definition, "name", None)
        if not name:
            errors.append(f"Secret at position {index} must have a name")
            name = f"#{index}"

        if definition.required and not (definition.default or definition.generator):
            errors.append(f"Required secret '{name}' must have a default value")

        pattern = definition.validation.pattern
        if pattern:
            try:
                re.compile(pattern)
            except re.error as e:
                errors.append(f"Secret '{name}' has an invalid pattern '{pattern}': {e}")

    return TemplateValidation(valid=not errors, errors=errors)


def check_value(definition, value: str) -> List[str]:
    """Return the reasons a value violates a definition's rule (empty if valid)."""
    rule = definition.validation
    reasons: List[str] = []

    if rule.min_length is not None and len(value) < rule.min_length:
        reasons.append(f"Minimum length is {rule.min_length}")
    if rule.max_length is not None and len(value) > rule.max_length:
        reasons.append(f"Maximum length is {rule.max_length}")
    # Patterns must match the whole value, not a substring.
    if rule.pattern and re.fullmatch(rule.pattern, value) is None:
        reasons.append("Value does not match required pattern")
    if value in rule.forbidden_values:
        reasons.append("Value is forbidden")

    return reasons


def validate_secret_value(environment: str, key: str, value: str) -> ValueValidation:
    """
    Validate a value against the environment template's definition for ``key``.

    Raises:
        NotFoundError: If the environment has no template
    """
    from .errors import NotFoundError
    from .templates import get_template

    template = get_template(environment)
    if template is None:
        raise NotFoundError(f"Template not found for environment: {environment}")

    definition = template.get_secret(key)
    if definition is None:
        logger.debug(f"No definition for '{key}' in {environment} template")
        return ValueValidation(valid=True, known=False)

    reasons = check_value(definition, value)
    return ValueValidation(valid=not reasons, reasons=reasons)


def ensure_valid(environment: str, key: str, value: str) -> None:
    """
    Validate a value before it is written to a store.

    Raises:
        InvalidValueError: If the value violates the key's definition
        NotFoundError: If the environment has no template
    """
    from .errors import InvalidValueError

    result = validate_secret_value(environment, key, value)
    if not result.valid:
        raise InvalidValueError(key, result.reasons)

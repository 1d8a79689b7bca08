"""Tests for the template registry, value validation and masking."""
import json
import re

import pytest

from deploy_secrets.secrets.domains import templates
from deploy_secrets.secrets.domains.errors import InvalidValueError, NotFoundError
from deploy_secrets.secrets.domains.masking import MASK, is_sensitive_key, mask_value
from deploy_secrets.secrets.domains.models import SecretDefinition, Template, ValidationRule
from deploy_secrets.secrets.domains.validation import (
    ensure_valid,
    generate_secret,
    validate_secret_value,
    validate_template,
)


class TestTemplateRegistry:

    def test_production_required_secrets_in_order(self):
        assert templates.get_required_secrets("production") == [
            "DATABASE_URL", "NEXTAUTH_SECRET", "SUPABASE_URL", "SUPABASE_ANON_KEY"
        ]

    def test_unknown_environment_is_not_found(self):
        assert templates.get_template("qa") is None
        assert templates.get_required_secrets("qa") == []
        assert templates.get_optional_secrets("qa") == []

    def test_dev_alias(self):
        assert templates.get_template("dev") is templates.get_template("development")

    def test_every_template_validates(self):
        for name, template in templates.get_all_templates().items():
            result = validate_template(template)
            assert result.valid, f"{name}: {result.errors}"

    def test_optional_secrets_exclude_required(self):
        required = set(templates.get_required_secrets("staging"))
        optional = templates.get_optional_secrets("staging")
        assert optional
        assert not required & set(optional)

    def test_platform_profiles(self):
        vercel = templates.get_platform("vercel")
        assert "VERCEL_TOKEN" in vercel.environment_variables
        assert templates.get_platform("heroku") is None
        names = [d.name for d in templates.get_platform_secrets("render", "production")]
        assert "DATABASE_URL" in names

    def test_generate_secrets_uses_generators_and_defaults(self):
        values = templates.generate_secrets("development")
        assert values["LOG_LEVEL"] == "debug"
        assert re.fullmatch(r"[0-9a-f]{64}", values["NEXTAUTH_SECRET"])

    def test_generate_secrets_required_only(self):
        values = templates.generate_secrets("production", include_optional=False)
        assert list(values) == templates.get_required_secrets("production")

    def test_template_differences(self):
        diff = templates.get_template_differences("development", "production")
        assert "ENABLE_MOCK_DATA" in diff["only_in_first"]
        assert "AWS_REGION" in diff["only_in_second"]
        assert "DATABASE_URL" in diff["common"]
        assert "LOG_LEVEL" in diff["differences"]
        assert templates.get_template_differences("development", "qa") is None

    def test_export_template_is_json(self):
        exported = json.loads(templates.export_template("staging"))
        assert exported["environment"] == "staging"
        assert exported["secrets"][0]["name"] == "DATABASE_URL"
        assert templates.export_template("qa") is None


class TestValidateTemplate:

    def _template(self, *secrets, name="Custom"):
        return Template(name=name, description="", environment="custom", secrets=tuple(secrets))

    def test_required_without_default_is_an_error(self):
        result = validate_template(self._template(SecretDefinition(name="API_TOKEN", required=True)))
        assert not result.valid
        assert "Required secret 'API_TOKEN' must have a default value" in result.errors

    def test_generator_counts_as_default(self):
        definition = SecretDefinition(name="SESSION", required=True, generator=generate_secret)
        assert validate_template(self._template(definition)).valid

    def test_invalid_pattern_is_reported(self):
        definition = SecretDefinition(name="X", validation=ValidationRule(pattern="(unclosed"))
        result = validate_template(self._template(definition))
        assert not result.valid
        assert "invalid pattern" in result.errors[0]

    def test_missing_name(self):
        result = validate_template(self._template(name=""))
        assert "Template must have a name" in result.errors


class TestValueValidation:

    def test_generated_secret_is_hex(self):
        value = generate_secret()
        assert len(value) == 64
        assert re.fullmatch(r"[0-9a-f]+", value)
        assert generate_secret(16) != generate_secret(16)

    def test_short_session_secret_rejected(self):
        result = validate_secret_value("production", "NEXTAUTH_SECRET", "short")
        assert not result.valid
        assert "Minimum length is 32" in result.reasons

    def test_session_secret_upper_bound(self):
        assert validate_secret_value("production", "NEXTAUTH_SECRET", "A" * 128).valid
        result = validate_secret_value("production", "NEXTAUTH_SECRET", "A" * 129)
        assert result.reasons == ["Maximum length is 128"]

    @pytest.mark.parametrize("environment", ["development", "staging", "production"])
    def test_values_over_max_length_are_rejected(self, environment):
        bounded = [d for d in templates.get_template(environment).secrets if d.validation.max_length]
        assert bounded

        for definition in bounded:
            limit = definition.validation.max_length
            too_long = validate_secret_value(environment, definition.name, "A" * (limit + 1))
            at_limit = validate_secret_value(environment, definition.name, "A" * limit)
            assert not too_long.valid
            assert f"Maximum length is {limit}" in too_long.reasons
            assert f"Maximum length is {limit}" not in at_limit.reasons

    def test_environment_name_forbidden_for_session_secrets(self):
        result = validate_secret_value("production", "NEXTAUTH_SECRET", "production")
        assert "Value is forbidden" in result.reasons

    def test_pattern_must_match_whole_value(self):
        assert validate_secret_value("production", "LOG_LEVEL", "warn").valid
        assert not validate_secret_value("production", "LOG_LEVEL", "warning").valid

    def test_placeholder_default_is_rejected(self):
        placeholder = templates.get_template("production").get_secret("SUPABASE_ANON_KEY").default
        result = validate_secret_value("production", "SUPABASE_ANON_KEY", placeholder)
        assert not result.valid

    def test_unknown_key_is_valid_but_unknown(self):
        result = validate_secret_value("production", "SOMETHING_ELSE", "x")
        assert result.valid
        assert result.known is False

    def test_unknown_environment_raises(self):
        with pytest.raises(NotFoundError):
            validate_secret_value("qa", "LOG_LEVEL", "debug")

    def test_ensure_valid_raises_with_reasons(self):
        with pytest.raises(InvalidValueError) as exc_info:
            ensure_valid("production", "DATABASE_URL", "mysql://nope")
        assert exc_info.value.key == "DATABASE_URL"
        assert exc_info.value.reasons


class TestMasking:

    @pytest.mark.parametrize("key", ["DB_PASSWORD", "NEXTAUTH_SECRET", "api_key", "GITHUB_TOKEN", "SENTRY_DSN"])
    def test_sensitive_names_are_masked(self, key):
        assert mask_value(key, "value") == MASK

    def test_plain_names_are_shown(self):
        assert mask_value("LOG_LEVEL", "debug") == "debug"

    def test_definition_flag_forces_masking(self):
        assert not is_sensitive_key("DATABASE_URL")
        assert is_sensitive_key("DATABASE_URL", "production")
        assert mask_value("DATABASE_URL", "postgresql://x", "production") == MASK

    def test_none_passes_through(self):
        assert mask_value("API_KEY", None) is None

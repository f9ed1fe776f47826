"""
Tests for environment settings and the configuration check endpoints' logic.

Everything reads from an explicit dict, so the real process environment
never leaks into these tests.
"""

import pytest

from portfolio_api.config import ContactSettings, parse_duration
from portfolio_api.errors import ConfigurationError
from portfolio_api.services.config_checker import (
    check_contact_form_requirements,
    check_email_service,
    required_contact_vars,
)


class TestParseDuration:
    """'<n> <unit>' window strings."""

    def test_units(self):
        """Every supported unit converts to seconds."""
        assert parse_duration("10 m") == 600
        assert parse_duration("1 d") == 86400
        assert parse_duration("2h") == 7200
        assert parse_duration("30 s") == 30
        assert parse_duration("500 ms") == 0.5

    def test_invalid(self):
        """Unknown units, missing numbers and zero are rejected."""
        for value in ["", "10", "m", "10 w", "0 m", "-1 m"]:
            with pytest.raises(ValueError):
                parse_duration(value)


class TestContactSettings:
    """ContactSettings.from_env."""

    def test_defaults(self):
        """An empty environment yields the documented defaults."""
        settings = ContactSettings.from_env({})
        assert settings.rate_limit_requests == 5
        assert settings.rate_limit_window == 600
        assert settings.global_rate_limit_requests == 100
        assert settings.global_rate_limit_window == 86400
        assert settings.rate_limit_fail_open is True
        assert settings.bot_verification_provider == "turnstile"
        assert settings.bot_score_threshold == 0.5
        assert settings.csrf_token_ttl_seconds == 900
        assert settings.message_min_length == 50
        assert settings.message_max_length == 1000
        assert settings.store_backend == "supabase"
        assert settings.trusted_proxy_hops == 1

    def test_overrides(self):
        """Values from the environment are parsed into their types."""
        settings = ContactSettings.from_env({
            "RATE_LIMIT_REQUESTS": "3",
            "RATE_LIMIT_WINDOW": "1 h",
            "RATE_LIMIT_FAIL_OPEN": "false",
            "BOT_VERIFICATION_PROVIDER": "reCAPTCHA",
            "RECAPTCHA_SECRET_KEY": "rc-secret",
            "BOT_SCORE_THRESHOLD": "0",
            "STORE_BACKEND": "memory",
        })
        assert settings.rate_limit_requests == 3
        assert settings.rate_limit_window == 3600
        assert settings.rate_limit_fail_open is False
        assert settings.bot_verification_provider == "recaptcha"
        assert settings.bot_secret_key == "rc-secret"
        assert settings.bot_score_threshold == 0
        assert settings.store_backend == "memory"

    def test_blank_values_count_as_unset(self):
        """Whitespace-only values fall back to defaults."""
        settings = ContactSettings.from_env({"RATE_LIMIT_REQUESTS": "  ", "RESEND_API_KEY": ""})
        assert settings.rate_limit_requests == 5
        assert settings.resend_api_key is None

    def test_test_env_disables_email(self):
        """APP_ENV=test forces mock delivery."""
        assert ContactSettings.from_env({"APP_ENV": "test"}).email_delivery_enabled is False
        assert ContactSettings.from_env({"SEND_EMAIL_ENABLED": "false"}).email_delivery_enabled is False
        assert ContactSettings.from_env({}).email_delivery_enabled is True

    @pytest.mark.parametrize("env", [
        {"RATE_LIMIT_REQUESTS": "five"},
        {"RATE_LIMIT_REQUESTS": "0"},
        {"RATE_LIMIT_WINDOW": "soon"},
        {"RATE_LIMIT_FAIL_OPEN": "maybe"},
        {"BOT_VERIFICATION_PROVIDER": "hcaptcha"},
        {"BOT_SCORE_THRESHOLD": "1.5"},
        {"STORE_BACKEND": "redis"},
        {"MIN_RESPONSE_TIME_MS": "-1"},
        {"BOT_VERIFY_TIMEOUT_SECONDS": "0"},
        {"TRUSTED_PROXY_HOPS": "-1"},
        {"MESSAGE_MIN_LENGTH": "200", "MESSAGE_MAX_LENGTH": "100"},
    ])
    def test_invalid_values_raise(self, env):
        """Malformed values raise ConfigurationError naming the variable."""
        with pytest.raises(ConfigurationError) as exc_info:
            ContactSettings.from_env(env)
        assert exc_info.value.to_response() == {"error": "Server configuration error"}
        assert any(name in exc_info.value.internal_message for name in env)


    def test_error_does_not_echo_secret_values(self):
        """A bad value is reported by name and type, never by content."""
        with pytest.raises(ConfigurationError) as exc_info:
            ContactSettings.from_env({"EMAIL_TIMEOUT_SECONDS": "re_live_secret", "STORE_BACKEND": "redis"})
        message = exc_info.value.internal_message
        assert "EMAIL_TIMEOUT_SECONDS" in message
        assert "STORE_BACKEND" in message
        assert "re_live_secret" not in message
        assert "redis" not in message

    def test_bad_duration_message_omits_value(self):
        """Duration errors name the variable only."""
        with pytest.raises(ConfigurationError) as exc_info:
            ContactSettings.from_env({"GLOBAL_RATE_LIMIT_WINDOW": "forever"})
        assert "GLOBAL_RATE_LIMIT_WINDOW" in exc_info.value.internal_message
        assert "forever" not in exc_info.value.internal_message

    def test_process_environment_is_read(self, monkeypatch):
        """Without an explicit mapping the process environment is used."""
        monkeypatch.setenv("RATE_LIMIT_REQUESTS", "7")
        monkeypatch.setenv("TRUSTED_PROXY_HOPS", "2")
        settings = ContactSettings.from_env()
        assert settings.rate_limit_requests == 7
        assert settings.trusted_proxy_hops == 2


COMPLETE_ENV = {
    "RESEND_API_KEY": "re_key",
    "FROM_EMAIL": "contact@example.dev",
    "TO_EMAIL": "owner@example.dev",
    "EMAIL_SENDER_NAME": "Contact Form",
    "EMAIL_RECIPIENT_NAME": "Owner",
    "TURNSTILE_SECRET_KEY": "ts-secret",
    "SUPABASE_URL": "https://project.supabase.co",
    "SUPABASE_SERVICE_KEY": "service-key",
}


class TestConfigChecker:
    """Required-variable checks."""

    def test_required_vars_follow_provider_and_backend(self):
        """The bot secret and store variables depend on the selected options."""
        assert "TURNSTILE_SECRET_KEY" in required_contact_vars({})
        assert "SUPABASE_URL" in required_contact_vars({})

        recaptcha_memory = required_contact_vars({"BOT_VERIFICATION_PROVIDER": "recaptcha", "STORE_BACKEND": "memory"})
        assert "RECAPTCHA_SECRET_KEY" in recaptcha_memory
        assert "TURNSTILE_SECRET_KEY" not in recaptcha_memory
        assert "SUPABASE_URL" not in recaptcha_memory

    def test_contact_form_configured(self):
        """All variables present reports configured."""
        assert check_contact_form_requirements(COMPLETE_ENV).configured is True

    def test_contact_form_missing(self):
        """Missing variables are listed for the logs."""
        env = {k: v for k, v in COMPLETE_ENV.items() if k != "TURNSTILE_SECRET_KEY"}
        result = check_contact_form_requirements(env)
        assert result.configured is False
        assert result.missing == ["TURNSTILE_SECRET_KEY"]

    def test_email_service_configured(self):
        """Complete email settings are valid."""
        assert check_email_service(COMPLETE_ENV).configured is True

    def test_email_service_bad_address(self):
        """A malformed sender address is reported."""
        result = check_email_service({**COMPLETE_ENV, "FROM_EMAIL": "not-an-email"})
        assert result.configured is False
        assert result.missing == ["FROM_EMAIL"]

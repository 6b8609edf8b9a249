"""Unit tests for settings validation."""

import pytest
from pydantic import ValidationError

from app.config import Settings


def make_settings(**overrides) -> Settings:
    fields = {"jwt_secret_key": "test-secret", "_env_file": None}
    fields.update(overrides)
    return Settings(**fields)


class TestSettings:
    def test_currency_is_lowercased(self):
        assert make_settings(default_currency=" EUR ").default_currency == "eur"

    def test_invalid_currency_rejected(self):
        with pytest.raises(ValidationError):
            make_settings(default_currency="euro")

    def test_cors_origins_from_comma_separated_env(self, monkeypatch):
        monkeypatch.setenv("CORS_ORIGINS", "https://a.example, https://b.example")
        settings = make_settings(frontend_url="https://a.example")
        assert settings.cors_origins == ["https://a.example", "https://b.example"]

    def test_frontend_url_appended_to_cors(self):
        settings = make_settings(cors_origins=["https://a.example"], frontend_url="https://app.example")
        assert settings.cors_origins == ["https://a.example", "https://app.example"]

    def test_async_database_url_adds_driver(self):
        settings = make_settings(database_url="postgresql://u:p@db:5432/jobs")
        assert settings.async_database_url == "postgresql+asyncpg://u:p@db:5432/jobs"

    def test_default_jwt_secret_warns_outside_production(self, monkeypatch):
        monkeypatch.delenv("JWT_SECRET_KEY", raising=False)
        with pytest.warns(UserWarning, match="JWT_SECRET_KEY"):
            Settings(_env_file=None)

    def test_default_jwt_secret_rejected_in_production(self, monkeypatch):
        monkeypatch.delenv("JWT_SECRET_KEY", raising=False)
        with pytest.raises(ValidationError, match="JWT_SECRET_KEY"):
            Settings(_env_file=None, environment="production")

    def test_production_stripe_requires_webhook_secret(self):
        with pytest.raises(ValidationError, match="STRIPE_WEBHOOK_SECRET"):
            make_settings(environment="production", stripe_secret_key="sk_test_x", stripe_webhook_secret="")

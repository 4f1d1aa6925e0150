import pytest

from .config import ConfigurationError, get_admin_emails, get_frontend_url, validate_environment


@pytest.fixture
def production_env(monkeypatch):
    monkeypatch.setenv("ENVIRONMENT", "production")
    for name in ("SUPABASE_URL", "SUPABASE_ANON_KEY", "SUPABASE_SERVICE_ROLE_KEY", "PORT"):
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


def test_validation_skipped_in_test_environment():
    report = validate_environment()
    assert report.ok
    assert report.warnings == []


def test_missing_core_variables_raise(production_env):
    with pytest.raises(ConfigurationError):
        validate_environment()


def test_missing_core_variables_reported(production_env):
    report = validate_environment(raise_on_missing=False)
    assert "core: SUPABASE_URL" in report.missing
    assert not report.ok


def test_feature_variables_only_warn(production_env):
    production_env.setenv("SUPABASE_URL", "https://example.supabase.co")
    production_env.setenv("SUPABASE_ANON_KEY", "anon")
    production_env.setenv("SUPABASE_SERVICE_ROLE_KEY", "service")
    production_env.delenv("STRIPE_SECRET_KEY", raising=False)
    report = validate_environment()
    assert report.ok
    assert any("STRIPE_SECRET_KEY" in warning for warning in report.warnings)


def test_port_must_be_numeric(production_env):
    production_env.setenv("PORT", "eighty")
    report = validate_environment(raise_on_missing=False)
    assert "core: PORT must be a number" in report.missing


def test_frontend_url(monkeypatch):
    monkeypatch.delenv("FRONTEND_URL", raising=False)
    monkeypatch.delenv("RAILWAY_ENVIRONMENT", raising=False)
    assert get_frontend_url() == "http://localhost:5173"

    monkeypatch.setenv("ENVIRONMENT", "production")
    monkeypatch.setenv("RAILWAY_PUBLIC_DOMAIN", "app.example.com")
    assert get_frontend_url() == "https://app.example.com"

    monkeypatch.setenv("FRONTEND_URL", "https://dash.example.com/")
    assert get_frontend_url() == "https://dash.example.com"


def test_admin_emails(monkeypatch):
    monkeypatch.setenv("ADMIN_EMAILS", " Owner@Example.com, ,ops@example.com")
    assert get_admin_emails() == ["owner@example.com", "ops@example.com"]

"""Tests for environment-driven settings."""

from portfolio_api.config.settings import MetricsSettings, Settings


def test_default_settings():
    """Test defaults match the built-in metric capacities."""
    settings = Settings()
    assert settings.environment == "development"
    assert settings.is_production is False
    assert settings.metrics.max_response_times == 1000
    assert settings.metrics.max_endpoint_times == 100
    assert settings.metrics.max_recent_errors == 50
    assert settings.metrics.max_slow_queries == 100
    assert settings.metrics.slow_query_ms == 100
    assert settings.metrics.very_slow_query_ms == 500
    assert settings.metrics.slow_request_ms == 1000


def test_settings_from_env(monkeypatch):
    """Test environment variables override defaults."""
    monkeypatch.setenv("APP_ENV", "Production")
    monkeypatch.setenv("ADMIN_TOKEN", "s3cret")
    monkeypatch.setenv("LOG_LEVEL", "debug")
    monkeypatch.setenv("PORT", "8080")
    monkeypatch.setenv("METRICS_MAX_RESPONSE_TIMES", "250")
    monkeypatch.setenv("METRICS_SLOW_REQUEST_MS", "2000")

    settings = Settings.from_env()

    assert settings.is_production is True
    assert settings.admin_token == "s3cret"
    assert settings.log_level == "DEBUG"
    assert settings.server.port == 8080
    assert settings.metrics.max_response_times == 250
    assert settings.metrics.slow_request_ms == 2000


def test_metrics_settings_from_env_defaults(monkeypatch):
    """Test unset variables fall back to defaults."""
    for name in ("METRICS_MAX_SLOW_QUERIES", "METRICS_VERY_SLOW_QUERY_MS"):
        monkeypatch.delenv(name, raising=False)
    cfg = MetricsSettings.from_env()
    assert cfg.max_slow_queries == 100
    assert cfg.very_slow_query_ms == 500

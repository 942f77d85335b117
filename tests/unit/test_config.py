"""
Unit Tests - Configuration
"""
import logging

import pytest
from pydantic import ValidationError

from retail_analytics.config import OrderSourceConfig, OrdersSettings, Settings
from retail_analytics.config.logging import configure_logging
from retail_analytics.config.settings import CatalogSettings, VerificationSettings


class TestSettings:
    """Tests for settings sections"""

    def test_defaults(self):
        settings = Settings()

        assert settings.orders.active_source.layout == "split"
        assert settings.catalog.daily_lookback_days == 120
        assert settings.catalog.monthly_lookback_months == 24
        assert settings.catalog.cache_ttl_seconds == 300
        assert settings.provider.request_timeout_seconds is None
        assert not settings.verification.remember_decisions

    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("CATALOG_CACHE_TTL_SECONDS", "60")
        monkeypatch.setenv("VERIFICATION_REMEMBER_DECISIONS", "true")

        assert CatalogSettings().cache_ttl_seconds == 60
        assert VerificationSettings().remember_decisions

    def test_invalid_environment_rejected(self):
        with pytest.raises(ValidationError):
            Settings(app_env="qa")

    def test_invalid_layout_rejected(self):
        with pytest.raises(ValidationError):
            OrderSourceConfig(manifest_url="m.json", base_dir="orders", layout="parquet")

    def test_unknown_active_source(self):
        settings = OrdersSettings(active="warehouse")

        with pytest.raises(ValueError):
            settings.active_source


def test_configure_logging_json(test_settings):
    test_settings.monitoring.log_format = "json"

    configure_logging("DEBUG", settings=test_settings)

    assert logging.getLogger().level == logging.DEBUG
    assert logging.getLogger("httpx").level == logging.WARNING

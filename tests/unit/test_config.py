"""Unit tests for configuration loading.

Tests defaults, environment overrides and validation error messages.
"""

import os
from decimal import Decimal

import pytest

from grouptrip.services.config import LedgerConfig, load_config

ENV_VARS = ("DATABASE_URL", "LOG_FILE", "LOG_LEVEL", "DEFAULT_CURRENCY", "SPLIT_TOLERANCE")


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Start every test without ledger variables in the environment."""
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    yield
    # load_dotenv writes straight into os.environ
    for name in ENV_VARS:
        os.environ.pop(name, None)


class TestLoadConfig:
    """Tests for load_config function."""

    def test_defaults(self, tmp_path):
        """Test that a missing .env file yields the defaults."""
        config = load_config(str(tmp_path / "missing.env"))

        assert config == LedgerConfig()
        assert config.database_url == "sqlite:///./grouptrip.db"
        assert config.default_currency == "EUR"
        assert config.split_tolerance == Decimal("0.01")

    def test_env_file_values_loaded(self, tmp_path):
        """Test that values from the .env file are picked up."""
        env_file = tmp_path / ".env"
        env_file.write_text(
            "DATABASE_URL=sqlite:///./trip.db\n"
            "DEFAULT_CURRENCY=USD\n"
            "SPLIT_TOLERANCE=0.05\n"
            "LOG_LEVEL=debug\n"
        )

        config = load_config(str(env_file))

        assert config.database_url == "sqlite:///./trip.db"
        assert config.default_currency == "USD"
        assert config.split_tolerance == Decimal("0.05")
        assert config.log_level == "DEBUG"

    def test_environment_overrides_env_file(self, monkeypatch, tmp_path):
        """Test that real environment variables win over the .env file."""
        env_file = tmp_path / ".env"
        env_file.write_text("DEFAULT_CURRENCY=USD\n")
        monkeypatch.setenv("DEFAULT_CURRENCY", "GBP")

        config = load_config(str(env_file))

        assert config.default_currency == "GBP"

    def test_invalid_currency(self, monkeypatch, tmp_path):
        """Test that a non ISO 4217 currency raises ValueError."""
        monkeypatch.setenv("DEFAULT_CURRENCY", "euro")

        with pytest.raises(ValueError, match="not an ISO 4217 code"):
            load_config(str(tmp_path / "missing.env"))

    def test_invalid_tolerance(self, monkeypatch, tmp_path):
        """Test that a non-numeric tolerance raises ValueError."""
        monkeypatch.setenv("SPLIT_TOLERANCE", "a cent")

        with pytest.raises(ValueError, match="not a decimal number"):
            load_config(str(tmp_path / "missing.env"))

    def test_negative_tolerance(self, monkeypatch, tmp_path):
        monkeypatch.setenv("SPLIT_TOLERANCE", "-0.01")

        with pytest.raises(ValueError, match="must not be negative"):
            load_config(str(tmp_path / "missing.env"))

    def test_empty_database_url(self, monkeypatch, tmp_path):
        monkeypatch.setenv("DATABASE_URL", "")

        with pytest.raises(ValueError, match="DATABASE_URL is empty"):
            load_config(str(tmp_path / "missing.env"))

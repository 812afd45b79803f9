"""Configuration loading for the vacation ledger.

Loads settings from .env file and environment variables with sensible defaults.
Validates configuration and provides clear error messages.
"""

import os
import re
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from pathlib import Path

from dotenv import load_dotenv

CURRENCY_PATTERN = re.compile(r"^[A-Z]{3}$")


@dataclass
class LedgerConfig:
    """Runtime configuration for the ledger."""

    database_url: str = "sqlite:///./grouptrip.db"
    """SQLAlchemy database URL (default: local SQLite)"""

    log_file: str = "logs/grouptrip.log"
    """Path to log file"""

    log_level: str = "INFO"
    """Root log level name"""

    default_currency: str = "EUR"
    """ISO 4217 code applied to expenses created without a currency"""

    split_tolerance: Decimal = Decimal("0.01")
    """Allowed gap between split sums and the expense amount"""


def load_config(env_file: str = ".env") -> LedgerConfig:
    """
    Load configuration from .env file and environment variables.

    Priority (highest to lowest):
    1. Environment variables (DATABASE_URL, LOG_FILE, LOG_LEVEL, ...)
    2. .env file in project root
    3. Default values

    Returns:
        LedgerConfig with all settings

    Raises:
        ValueError: If a value is present but invalid
    """
    env_path = Path(env_file)
    if env_path.exists():
        load_dotenv(env_path)

    defaults = LedgerConfig()
    database_url = os.getenv("DATABASE_URL", defaults.database_url)
    log_file = os.getenv("LOG_FILE", defaults.log_file)
    log_level = os.getenv("LOG_LEVEL", defaults.log_level).upper()
    currency = os.getenv("DEFAULT_CURRENCY", defaults.default_currency)
    raw_tolerance = os.getenv("SPLIT_TOLERANCE", str(defaults.split_tolerance))

    if not database_url:
        raise ValueError("DATABASE_URL is empty. Unset it to use the SQLite default")

    if not CURRENCY_PATTERN.match(currency):
        raise ValueError(
            f"DEFAULT_CURRENCY '{currency}' is not an ISO 4217 code (three upper-case letters)"
        )

    try:
        split_tolerance = Decimal(raw_tolerance)
    except InvalidOperation:
        raise ValueError(f"SPLIT_TOLERANCE '{raw_tolerance}' is not a decimal number")
    if split_tolerance < 0:
        raise ValueError("SPLIT_TOLERANCE must not be negative")

    return LedgerConfig(
        database_url=database_url,
        log_file=log_file,
        log_level=log_level,
        default_currency=currency,
        split_tolerance=split_tolerance,
    )

"""Settings configuration for the FlipEdge worker."""

import os
from functools import lru_cache
from pathlib import Path
from typing import List, Optional

TRADING_MODES = ("live", "testnet", "demo", "simulated")


def _get_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _get_list(name: str, default: str = "") -> List[str]:
    return [item.strip() for item in os.getenv(name, default).split(",") if item.strip()]


class Settings:
    """Application settings read from environment variables."""

    def __init__(self):
        # Application
        self.APP_NAME = os.getenv("APP_NAME", "FlipEdge Worker")
        self.APP_VERSION = os.getenv("APP_VERSION", "0.1.0")
        self.APP_ENVIRONMENT = os.getenv("APP_ENVIRONMENT", "development")

        # API
        self.API_HOST = os.getenv("API_HOST", "0.0.0.0")
        self.API_PORT = int(os.getenv("API_PORT", os.getenv("PORT", "8080")))
        self.API_DEBUG = _get_bool("API_DEBUG")
        self.CORS_ORIGINS = _get_list("CORS_ORIGINS", "*")

        # Logging
        self.LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
        self.LOGS_DIR = Path(os.getenv("LOGS_DIR", "./logs"))
        self.LOG_BUFFER_SIZE = int(os.getenv("LOG_BUFFER_SIZE", "50"))

        # Trading
        self.TRADING_MODE = os.getenv("TRADING_MODE", "simulated").strip().lower()
        if self.TRADING_MODE not in TRADING_MODES:
            raise ValueError(
                f"Invalid TRADING_MODE {self.TRADING_MODE!r}, expected one of {TRADING_MODES}"
            )
        self.EXCHANGE_ID = os.getenv("EXCHANGE_ID", "bybit")
        self.STRATEGY_IDS = _get_list("STRATEGY_IDS")
        self.SIMULATED_INITIAL_BALANCE = float(os.getenv("SIMULATED_INITIAL_BALANCE", "1000"))

        # Decision oracle
        self.ORACLE_PROVIDER = os.getenv("ORACLE_PROVIDER", "google")
        self.ORACLE_MODEL_ID = os.getenv("ORACLE_MODEL_ID", "gemini-2.5-flash")

        # Delays (seconds)
        self.COOLDOWN_SECONDS = float(os.getenv("COOLDOWN_SECONDS", "120"))
        self.REJECTION_COOLDOWN_SECONDS = float(os.getenv("REJECTION_COOLDOWN_SECONDS", "60"))
        self.ERROR_RETRY_SECONDS = float(os.getenv("ERROR_RETRY_SECONDS", "10"))
        self.HOLD_CHECK_SECONDS = float(os.getenv("HOLD_CHECK_SECONDS", "300"))
        self.CLOSE_RECHECK_SECONDS = float(os.getenv("CLOSE_RECHECK_SECONDS", "5"))
        self.SETTLE_DELAY_SECONDS = float(os.getenv("SETTLE_DELAY_SECONDS", "2"))
        self.MAX_HOLD_SECONDS = float(os.getenv("MAX_HOLD_SECONDS", str(4 * 60 * 60)))
        self.START_STAGGER_SECONDS = float(os.getenv("START_STAGGER_SECONDS", "15"))

    def exchange_credentials(self, strategy_id: str) -> tuple[Optional[str], Optional[str]]:
        """Per-strategy Bybit key pair from BYBIT_API_KEY_<ID> / BYBIT_API_SECRET_<ID>."""
        return (
            os.getenv(f"BYBIT_API_KEY_{strategy_id}") or None,
            os.getenv(f"BYBIT_API_SECRET_{strategy_id}") or None,
        )


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()

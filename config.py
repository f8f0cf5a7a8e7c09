# affiliate-engine/config.py
"""
Configuration management for the affiliate commission engine.
Loads from .env, validates critical keys.
"""
import os
import logging
from typing import Any, Dict
from dotenv import load_dotenv

logger = logging.getLogger(__name__)


class ConfigurationError(Exception):
    """Configuration error exception."""
    code = "CONFIGURATION_ERROR"


class Config:
    """
    Configuration manager with static and dynamic values.

    Usage:
        # Load from .env
        Config.initialize_from_env()

        # Get value
        url = Config.get(Config.DATABASE_URL)

        # Set dynamic value
        Config.set(Config.CURRENCY_DECIMALS, 2)
    """

    # ═══════════════════════════════════════════════════════════════════════
    # CONFIGURATION KEYS
    # ═══════════════════════════════════════════════════════════════════════

    # Database
    DATABASE_URL = "DATABASE_URL"

    # Commission engine
    CURRENCY_DECIMALS = "CURRENCY_DECIMALS"
    BUSINESS_UTC_OFFSET_HOURS = "BUSINESS_UTC_OFFSET_HOURS"
    INVOICE_COMPLETED_STATUS = "INVOICE_COMPLETED_STATUS"
    INVOICE_CANCELLED_STATUS = "INVOICE_CANCELLED_STATUS"

    # Lock period fallback (used when lock_payment_settings has no active row)
    DEFAULT_LOCK_PERIOD_DAYS = "DEFAULT_LOCK_PERIOD_DAYS"
    DEFAULT_LOCK_PERIOD_HOURS = "DEFAULT_LOCK_PERIOD_HOURS"
    DEFAULT_LOCK_PERIOD_MINUTES = "DEFAULT_LOCK_PERIOD_MINUTES"

    # Scheduler
    LOCK_SWEEP_INTERVAL_MINUTES = "LOCK_SWEEP_INTERVAL_MINUTES"
    COMMISSION_SYNC_INTERVAL_MINUTES = "COMMISSION_SYNC_INTERVAL_MINUTES"
    COMMISSION_SYNC_BATCH_SIZE = "COMMISSION_SYNC_BATCH_SIZE"

    # External order source
    ORDER_SOURCE_URL = "ORDER_SOURCE_URL"
    ORDER_SOURCE_TOKEN = "ORDER_SOURCE_TOKEN"
    ORDER_SOURCE_TIMEOUT = "ORDER_SOURCE_TIMEOUT"

    # Webhook server
    WEBHOOK_SECRET_KEY = "WEBHOOK_SECRET_KEY"
    WEBHOOK_HOST = "WEBHOOK_HOST"
    WEBHOOK_PORT = "WEBHOOK_PORT"

    # ═══════════════════════════════════════════════════════════════════════
    # CRITICAL KEYS (must be present)
    # ═══════════════════════════════════════════════════════════════════════

    CRITICAL_KEYS = [
        DATABASE_URL,
        WEBHOOK_SECRET_KEY,
    ]

    # ═══════════════════════════════════════════════════════════════════════
    # STORAGE
    # ═══════════════════════════════════════════════════════════════════════

    _config: Dict[str, Any] = {}
    _initialized: bool = False

    # ═══════════════════════════════════════════════════════════════════════
    # METHODS
    # ═══════════════════════════════════════════════════════════════════════

    @classmethod
    def initialize_from_env(cls) -> None:
        """
        Load configuration from .env file.

        Raises:
            ConfigurationError: If a value cannot be parsed
        """
        load_dotenv()

        logger.info("Loading configuration from environment...")

        try:
            # Database
            cls._config[cls.DATABASE_URL] = os.getenv(
                "DATABASE_URL",
                "sqlite:///affiliate.db"
            )

            # Commission engine
            cls._config[cls.CURRENCY_DECIMALS] = int(os.getenv("CURRENCY_DECIMALS", "0"))
            cls._config[cls.BUSINESS_UTC_OFFSET_HOURS] = int(
                os.getenv("BUSINESS_UTC_OFFSET_HOURS", "7")
            )
            cls._config[cls.INVOICE_COMPLETED_STATUS] = os.getenv(
                "INVOICE_COMPLETED_STATUS",
                "completed"
            )
            cls._config[cls.INVOICE_CANCELLED_STATUS] = os.getenv(
                "INVOICE_CANCELLED_STATUS",
                "cancelled"
            )

            # Lock period fallback: 24 hours
            cls._config[cls.DEFAULT_LOCK_PERIOD_DAYS] = int(os.getenv("DEFAULT_LOCK_PERIOD_DAYS", "0"))
            cls._config[cls.DEFAULT_LOCK_PERIOD_HOURS] = int(os.getenv("DEFAULT_LOCK_PERIOD_HOURS", "24"))
            cls._config[cls.DEFAULT_LOCK_PERIOD_MINUTES] = int(os.getenv("DEFAULT_LOCK_PERIOD_MINUTES", "0"))

            # Scheduler
            cls._config[cls.LOCK_SWEEP_INTERVAL_MINUTES] = int(
                os.getenv("LOCK_SWEEP_INTERVAL_MINUTES", "15")
            )
            cls._config[cls.COMMISSION_SYNC_INTERVAL_MINUTES] = int(
                os.getenv("COMMISSION_SYNC_INTERVAL_MINUTES", "30")
            )
            cls._config[cls.COMMISSION_SYNC_BATCH_SIZE] = int(
                os.getenv("COMMISSION_SYNC_BATCH_SIZE", "50")
            )

            # External order source
            cls._config[cls.ORDER_SOURCE_URL] = os.getenv("ORDER_SOURCE_URL")
            cls._config[cls.ORDER_SOURCE_TOKEN] = os.getenv("ORDER_SOURCE_TOKEN")
            cls._config[cls.ORDER_SOURCE_TIMEOUT] = int(os.getenv("ORDER_SOURCE_TIMEOUT", "30"))

            # Webhook server
            cls._config[cls.WEBHOOK_SECRET_KEY] = os.getenv("WEBHOOK_SECRET_KEY")
            cls._config[cls.WEBHOOK_HOST] = os.getenv("WEBHOOK_HOST", "0.0.0.0")
            cls._config[cls.WEBHOOK_PORT] = int(os.getenv("WEBHOOK_PORT", "8080"))

            cls._initialized = True
            logger.info("Configuration loaded from environment successfully")

        except ValueError as e:
            logger.error(f"Failed to load configuration: {e}")
            raise ConfigurationError(f"Configuration loading failed: {e}")

    @classmethod
    def validate_critical_keys(cls) -> None:
        """
        Validate that all critical configuration keys are present.

        Raises:
            ConfigurationError: If any critical key is missing
        """
        missing = []
        for key in cls.CRITICAL_KEYS:
            if not cls.get(key):
                missing.append(key)

        if missing:
            error_msg = f"Missing critical configuration keys: {', '.join(missing)}"
            logger.critical(error_msg)
            raise ConfigurationError(error_msg)

        logger.info("All critical configuration keys validated ✓")

    @classmethod
    def get(cls, key: str, default: Any = None) -> Any:
        """
        Get configuration value.

        Args:
            key: Configuration key
            default: Default value if key not found

        Returns:
            Configuration value or default
        """
        return cls._config.get(key, default)

    @classmethod
    def set(cls, key: str, value: Any, source: str = "runtime") -> None:
        """
        Set configuration value (for dynamic updates).

        Args:
            key: Configuration key
            value: New value
            source: Source of the update (for logging)
        """
        cls._config[key] = value
        logger.debug(f"Config updated: {key} = {value} (source: {source})")

    @classmethod
    def get_all(cls) -> Dict[str, Any]:
        """Get a copy of all configuration values."""
        return cls._config.copy()

    @classmethod
    def is_initialized(cls) -> bool:
        return cls._initialized

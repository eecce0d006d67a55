# pairing/config.py
"""
Configuration management for the pairing engine.
Loads from .env, validates critical keys.
"""
import os
import logging
from typing import Any, Dict
from dotenv import load_dotenv

logger = logging.getLogger(__name__)


class ConfigurationError(Exception):
    """Configuration error exception."""
    pass


class Config:
    """
    Configuration manager with static and dynamic values.

    Usage:
        # Load from .env
        Config.initialize_from_env()

        # Get value
        url = Config.get(Config.DATABASE_URL)

        # Override at runtime (tests, admin commands)
        Config.set(Config.PLACEMENT_MAX_ATTEMPTS, 3)
    """

    # ═══════════════════════════════════════════════════════════════════════
    # CONFIGURATION KEYS
    # ═══════════════════════════════════════════════════════════════════════

    # Database
    DATABASE_URL = "DATABASE_URL"
    DATABASE_ECHO = "DATABASE_ECHO"
    PLACEMENT_ISOLATION_LEVEL = "PLACEMENT_ISOLATION_LEVEL"

    # Plan defaults (used when a plan has no chain settings row)
    DEFAULT_PAIRING_LIMIT = "DEFAULT_PAIRING_LIMIT"
    DEFAULT_MAX_DEPTH = "DEFAULT_MAX_DEPTH"
    DEFAULT_CASHBACK_PERCENTAGE = "DEFAULT_CASHBACK_PERCENTAGE"

    # Placement writer
    PLACEMENT_MAX_ATTEMPTS = "PLACEMENT_MAX_ATTEMPTS"
    PLACEMENT_RETRY_BASE_DELAY = "PLACEMENT_RETRY_BASE_DELAY"

    # Logging
    LOG_LEVEL = "LOG_LEVEL"
    LOG_FILE = "LOG_FILE"

    # ═══════════════════════════════════════════════════════════════════════
    # CRITICAL KEYS (must be present)
    # ═══════════════════════════════════════════════════════════════════════

    CRITICAL_KEYS = [
        DATABASE_URL,
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
        Load configuration from .env file and process environment.

        Raises:
            ConfigurationError: If a value cannot be parsed
        """
        load_dotenv()

        logger.info("Loading configuration from environment...")

        try:
            # Database
            cls._config[cls.DATABASE_URL] = os.getenv(
                "DATABASE_URL",
                "sqlite:///pairing.db"
            )
            cls._config[cls.DATABASE_ECHO] = os.getenv("DATABASE_ECHO", "false").lower() == "true"
            cls._config[cls.PLACEMENT_ISOLATION_LEVEL] = os.getenv("PLACEMENT_ISOLATION_LEVEL") or None

            # Plan defaults
            cls._config[cls.DEFAULT_PAIRING_LIMIT] = int(os.getenv("DEFAULT_PAIRING_LIMIT", "2"))
            cls._config[cls.DEFAULT_MAX_DEPTH] = int(os.getenv("DEFAULT_MAX_DEPTH", "50"))
            cls._config[cls.DEFAULT_CASHBACK_PERCENTAGE] = int(
                os.getenv("DEFAULT_CASHBACK_PERCENTAGE", "20")
            )

            # Placement writer
            cls._config[cls.PLACEMENT_MAX_ATTEMPTS] = int(os.getenv("PLACEMENT_MAX_ATTEMPTS", "5"))
            cls._config[cls.PLACEMENT_RETRY_BASE_DELAY] = float(
                os.getenv("PLACEMENT_RETRY_BASE_DELAY", "0.1")
            )

            # Logging
            cls._config[cls.LOG_LEVEL] = os.getenv("LOG_LEVEL", "INFO").upper()
            cls._config[cls.LOG_FILE] = os.getenv("LOG_FILE", "pairing.log")

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
    def is_initialized(cls) -> bool:
        return cls._initialized

"""Centralized logging configuration for neo-storage.

Configures the ``neo_storage`` logger tree from environment variables so
embedding services get consistent output without touching the root logger.
"""

import logging
import logging.config
import os
from enum import Enum
from typing import Any, Dict


class LogLevel(str, Enum):
    """Supported log levels."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class LogVerbosity(str, Enum):
    """Log verbosity modes."""
    QUIET = "QUIET"      # Only errors and critical
    NORMAL = "NORMAL"    # Warnings and above
    VERBOSE = "VERBOSE"  # Info level logging
    DEBUG = "DEBUG"      # Full debug logging


class LogFormat(str, Enum):
    """Log format options."""
    SIMPLE = "simple"
    DETAILED = "detailed"
    JSON = "json"


def get_log_level_from_verbosity(verbosity: str) -> str:
    """Map verbosity mode to log level."""
    verbosity_map = {
        LogVerbosity.QUIET: LogLevel.ERROR.value,
        LogVerbosity.NORMAL: LogLevel.WARNING.value,
        LogVerbosity.VERBOSE: LogLevel.INFO.value,
        LogVerbosity.DEBUG: LogLevel.DEBUG.value,
    }
    try:
        return verbosity_map[LogVerbosity(verbosity.upper())]
    except ValueError:
        return LogLevel.WARNING.value


class LoggingConfig:
    """Logging configuration manager for the ``neo_storage`` namespace."""

    ROOT_LOGGER = "neo_storage"

    # Chatty modules that only log errors unless running in DEBUG
    QUIET_MODULES = [
        "neo_storage.infrastructure.locking",
        "neo_storage.infrastructure.persistence.memory_store",
    ]

    ERROR_ONLY_MODULES = [
        "asyncpg",
        "redis",
    ]

    FORMATS = {
        LogFormat.SIMPLE: "%(asctime)s - %(levelname)s - %(message)s",
        LogFormat.DETAILED: "%(asctime)s - %(name)s - %(levelname)s - [%(filename)s:%(lineno)d] - %(message)s",
        LogFormat.JSON: '{"time":"%(asctime)s","level":"%(levelname)s","module":"%(name)s","message":"%(message)s"}',
    }

    @classmethod
    def build(cls) -> Dict[str, Any]:
        """Build a ``dictConfig`` mapping from the environment."""
        explicit_level = os.getenv("LOG_LEVEL")
        verbosity = os.getenv("LOG_VERBOSITY", LogVerbosity.NORMAL.value)
        effective_level = (
            explicit_level.upper() if explicit_level else get_log_level_from_verbosity(verbosity)
        )
        if effective_level not in LogLevel.__members__:
            effective_level = LogLevel.WARNING.value

        try:
            log_format = LogFormat(os.getenv("LOG_FORMAT", LogFormat.SIMPLE.value).lower())
        except ValueError:
            log_format = LogFormat.SIMPLE

        config: Dict[str, Any] = {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "default": {
                    "format": cls.FORMATS[log_format],
                    "datefmt": "%Y-%m-%d %H:%M:%S",
                },
            },
            "handlers": {
                "neo_storage_console": {
                    "class": "logging.StreamHandler",
                    "level": effective_level,
                    "formatter": "default",
                    "stream": "ext://sys.stdout",
                },
            },
            "loggers": {
                cls.ROOT_LOGGER: {
                    "level": effective_level,
                    "handlers": ["neo_storage_console"],
                    "propagate": False,
                },
            },
        }

        quiet_level = "DEBUG" if effective_level == "DEBUG" else "WARNING"
        for module in cls.QUIET_MODULES:
            config["loggers"][module] = {"level": quiet_level}

        for module in cls.ERROR_ONLY_MODULES:
            config["loggers"][module] = {"level": "ERROR"}

        return config

    @classmethod
    def configure(cls) -> None:
        """Apply the environment-derived configuration."""
        config = cls.build()
        logging.config.dictConfig(config)
        logging.getLogger(__name__).debug(
            "Logging configured: level=%s", config["loggers"][cls.ROOT_LOGGER]["level"]
        )

    @classmethod
    def set_module_level(cls, module_name: str, level: str) -> None:
        """Set log level for a specific module."""
        logging.getLogger(module_name).setLevel(getattr(logging, level.upper()))


def setup_logging() -> None:
    """Configure logging from environment variables.

    Runs once on package import; safe to call again after changing the
    environment.
    """
    LoggingConfig.configure()

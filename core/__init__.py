"""
Core utilities and configuration for the genealogy discovery backend.

Modules:
    config: Application configuration and environment variable management
    database: Engine and session factory helpers
    exceptions: Custom exception hierarchy for error handling
    logging: Logging configuration

Usage:
    from core.config import settings
    from core.database import create_engine, create_session_maker
    from core.exceptions import InvalidInputError, UpstreamError
    from core.logging import setup_logging
"""

from core.config import settings, Settings
from core.logging import setup_logging
from core.exceptions import (
    GenealogyException,
    RetryableError,
    NonRetryableError,
    InvalidInputError,
    UpstreamError,
    NoResponseError,
    PersistenceError,
    ImportTimeoutError,
)

__all__ = [
    "settings",
    "Settings",
    "setup_logging",
    # Exceptions
    "GenealogyException",
    "RetryableError",
    "NonRetryableError",
    "InvalidInputError",
    "UpstreamError",
    "NoResponseError",
    "PersistenceError",
    "ImportTimeoutError",
]

# repricer/core/logging_config.py
"""
Centralized logging configuration for the application.

App code logs at LOG_LEVEL (default INFO); HTTP client and database
libraries are held at WARNING so run logs stay readable.
"""

import logging
import os


def configure_logging():
    """Configure root logging once for the process."""

    log_level = os.environ.get("LOG_LEVEL", "INFO").upper()
    level = getattr(logging, log_level, logging.INFO)

    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[logging.StreamHandler()]
    )

    # Quiet noisy HTTP client loggers
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)

    # Quiet database loggers
    logging.getLogger("sqlalchemy").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("asyncpg").setLevel(logging.WARNING)
    logging.getLogger("aiosqlite").setLevel(logging.WARNING)

    # Scheduler emits a line per job execution
    logging.getLogger("apscheduler").setLevel(logging.WARNING)

    logging.getLogger("repricer").setLevel(level)
    logging.getLogger("__main__").setLevel(level)

    logger = logging.getLogger(__name__)
    logger.info(f"Logging configured at level: {log_level}")


def mask_token(token: str) -> str:
    """Shorten a credential for log output."""
    if not token:
        return "<empty>"
    if len(token) <= 8:
        return "****"
    return f"{token[:4]}...{token[-4:]}"

"""
Logging utilities for the broker service and operator scripts.

Provides a consistent logging format and keeps chatty HTTP client loggers from
writing request lines for every token endpoint call.
"""

import logging
import sys

_QUIET_LOGGERS = ("httpx", "httpcore", "botocore", "boto3")


def configure_logging(level: str = "INFO") -> None:
    """Configure root logging with a sensible default format."""
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
        stream=sys.stdout,
    )
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def redact(value: str | None, visible: int = 6) -> str:
    """Shorten an identifier to a prefix that is safe to log."""
    if not value:
        return "<none>"
    return f"{value[:visible]}..."


__all__ = ["configure_logging", "redact"]

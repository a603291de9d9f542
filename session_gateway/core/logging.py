"""
Logging utilities for the FastAPI application and maintenance scripts.

Provides a consistent logging format and keeps bearer credentials out of the
log stream.
"""

import logging
import re
import sys

_SENSITIVE_PATTERN = re.compile(
    r"(?P<key>access_token|refresh_token|id_token|client_secret|Bearer)"
    r"(?P<sep>[\"']?\s*[:= ]\s*[\"']?)(?P<value>[A-Za-z0-9._~+/=-]{6,})"
)


def redact(text: str) -> str:
    """Mask token-like values while keeping the first and last two characters."""

    def _mask(match: re.Match) -> str:
        value = match.group("value")
        return f"{match.group('key')}{match.group('sep')}{value[:2]}***{value[-2:]}"

    return _SENSITIVE_PATTERN.sub(_mask, text)


class TokenRedactingFilter(logging.Filter):
    """Rewrite records so rendered messages never carry raw tokens."""

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        redacted = redact(message)
        if redacted != message:
            record.msg = redacted
            record.args = None
        return True


def configure_logging(level: str = "INFO") -> None:
    """Configure root logging with a sensible default format."""
    handler = logging.StreamHandler(stream=sys.stdout)
    handler.addFilter(TokenRedactingFilter())
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
        handlers=[handler],
    )


__all__ = ["TokenRedactingFilter", "configure_logging", "redact"]

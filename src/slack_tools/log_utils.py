"""Logging helpers that keep Slack secrets out of log output."""

from __future__ import annotations

import logging
import re
import sys

_SECRET_PATTERNS = (
    re.compile(r"xox[cd]-[0-9A-Za-z%_\-.+/=]+"),
    re.compile(r"d=[A-Za-z0-9%_\-.+/=]+"),
)


def _redact_match(match: re.Match[str]) -> str:
    text = match.group(0)
    return f"{text[:5]}...{text[-5:]}"


def redact(message: object) -> object:
    """Mask token and cookie values in *message*, keeping 5 chars at each end.

    Non-string values are returned unchanged.
    """
    if not isinstance(message, str):
        return message
    for pattern in _SECRET_PATTERNS:
        message = pattern.sub(_redact_match, message)
    return message


class RedactingFilter(logging.Filter):
    """Rewrite each record's message so no full token or cookie is emitted."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.msg = redact(record.getMessage())
        record.args = None
        return True


def configure_logging(debug: bool = False) -> None:
    """Send ``slack_tools`` logs to stderr through a RedactingFilter."""
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter("%(levelname)s %(name)s: %(message)s"))
    handler.addFilter(RedactingFilter())

    root = logging.getLogger("slack_tools")
    root.handlers = [handler]
    root.setLevel(logging.DEBUG if debug else logging.WARNING)
    root.propagate = False

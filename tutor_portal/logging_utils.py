"""
Process-wide logging setup.

Verbosity is gated on the environment: development logs everything from
DEBUG up, production only warnings and errors. In production, error records
are sanitized so that user data attached to log calls never reaches the
log sink.
"""

from __future__ import annotations

import logging
from typing import Optional

from tutor_portal.config import Settings, get_settings

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
REDACTED = "[Object]"


def _sanitize_arg(arg):
    if isinstance(arg, BaseException):
        return str(arg)
    if isinstance(arg, (str, int, float, bool)) or arg is None:
        return arg
    return REDACTED


class SanitizingFilter(logging.Filter):
    """Strip structured payloads and tracebacks from error records."""

    def filter(self, record: logging.LogRecord) -> bool:
        if record.levelno < logging.ERROR:
            return True
        if isinstance(record.args, tuple):
            record.args = tuple(_sanitize_arg(arg) for arg in record.args)
        elif record.args:
            record.args = ()
            record.msg = str(record.msg)
        if record.exc_info:
            exc = record.exc_info[1]
            if exc is not None:
                detail = str(exc).replace("%", "%%") if record.args else str(exc)
                record.msg = f"{record.msg} ({detail})"
            record.exc_info = None
            record.exc_text = None
        return True


def resolve_level(settings: Settings) -> int:
    if settings.log_level:
        return logging.getLevelName(settings.log_level.upper())
    return logging.DEBUG if settings.is_development else logging.WARNING


def configure_logging(settings: Optional[Settings] = None) -> None:
    """Configure the root logger once at process start."""
    settings = settings or get_settings()
    level = resolve_level(settings)
    logging.basicConfig(level=level, format=LOG_FORMAT)
    root = logging.getLogger()
    root.setLevel(level)
    if settings.is_development:
        return
    for handler in root.handlers:
        if not any(isinstance(f, SanitizingFilter) for f in handler.filters):
            handler.addFilter(SanitizingFilter())

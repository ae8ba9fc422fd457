from __future__ import annotations

import logging
import re
from typing import Iterable

from flask import Flask

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
SECRET_PATTERNS = {
    "bearer": re.compile(r"Bearer\s+[A-Za-z0-9\-_.=:+/]+", re.IGNORECASE),
    "secret": re.compile(
        r"(access_token|client_secret|secret|token|api[_-]?key|authorization)(['\"]?\s*[:=]\s*['\"]?)([^\s,;'\"&]+)",
        re.IGNORECASE,
    ),
}


class SecretRedactionFilter(logging.Filter):
    """Mask bearer tokens and credential fragments before records are emitted."""

    def filter(self, record: logging.LogRecord) -> bool:
        msg = record.getMessage()
        masked = SECRET_PATTERNS["bearer"].sub("Bearer [REDACTED]", msg)
        masked = SECRET_PATTERNS["secret"].sub(lambda m: f"{m.group(1)}{m.group(2)}[REDACTED]", masked)
        if masked != msg:
            record.msg = masked
            record.args = None
        return True


def configure_logging(app: Flask) -> None:
    level = _coerce_level(app.config.get("LOG_LEVEL", "DEBUG" if app.debug else "INFO"))
    root = logging.getLogger()
    root.setLevel(level)
    app.logger.setLevel(level)

    if not root.handlers:
        root.addHandler(logging.StreamHandler())

    if level > logging.DEBUG:
        for noisy in ("werkzeug", "sqlalchemy.engine", "urllib3", "apscheduler.executors.default"):
            logging.getLogger(noisy).setLevel(logging.WARNING)

    formatter = logging.Formatter(LOG_FORMAT)
    _apply_formatter(root.handlers, formatter)
    _apply_formatter(app.logger.handlers, formatter)


def _apply_formatter(handlers: Iterable[logging.Handler], formatter: logging.Formatter) -> None:
    for handler in handlers:
        handler.setFormatter(formatter)
        if not any(isinstance(f, SecretRedactionFilter) for f in handler.filters):
            handler.addFilter(SecretRedactionFilter())


def _coerce_level(raw_level) -> int:
    if isinstance(raw_level, int):
        return raw_level
    if isinstance(raw_level, str):
        candidate = raw_level.strip().upper()
        return getattr(logging, candidate, logging.INFO)
    return logging.INFO

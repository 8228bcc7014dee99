from __future__ import annotations

import json
import logging
import re
import sys
from datetime import datetime, timezone
from typing import Any


class RedactingFilter(logging.Filter):
    """Strips bearer tokens and registered secrets from log records."""

    PATTERNS = [
        (re.compile(r"(Bearer\s+)[A-Za-z0-9._~+/=|-]+"), r"\1[TOKEN-REDACTED]"),
    ]

    def __init__(self, secrets: list[str] | None = None):
        super().__init__()
        self._secrets = secrets or []

    def add_secret(self, secret: str) -> None:
        if secret and len(secret) > 3 and secret not in self._secrets:
            self._secrets.append(secret)

    def filter(self, record: logging.LogRecord) -> bool:
        msg = record.getMessage()
        for pattern, replacement in self.PATTERNS:
            msg = pattern.sub(replacement, msg)
        for secret in self._secrets:
            msg = msg.replace(secret, "[SECRET-REDACTED]")
        record.msg = msg
        record.args = ()
        return True


class JsonFormatter(logging.Formatter):
    """One JSON object per line; ``event`` is the leading ``area.action`` token of the message."""

    def format(self, record: logging.LogRecord) -> str:
        msg = record.getMessage()
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(timespec="milliseconds"),
            "level": record.levelname,
            "logger": record.name,
            "event": msg.split(" ", 1)[0],
            "msg": msg,
        }
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False)


_redacting_filter = RedactingFilter()


def configure_logging(verbose: bool = False) -> None:
    # stdout carries command output, so logs go to stderr
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JsonFormatter())
    handler.addFilter(_redacting_filter)

    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(logging.DEBUG if verbose else logging.WARNING)
    root.addHandler(handler)


def register_secret(secret: str) -> None:
    """Add a secret (e.g. the resolved API token) to the global redaction filter."""
    _redacting_filter.add_secret(secret)

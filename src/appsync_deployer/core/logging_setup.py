"""
Central logging for appsync-deployer.

- Console handler on stderr: INFO..CRITICAL by default
- Timed rotated file handler: DEBUG (logs/app.log, daily rotation)
- Per-run file handler: DEBUG (logs/YYYY-MM-DD/<action>_<run_id>.log)
- Secret redaction in msg and % args: API keys (da2-...), AWS access and
  secret keys, bearer tokens, passwords
- Context fields (run_id, action, api, region) default to "-" so records
  from plain library loggers format too
- UTC timestamps in ISO-8601
"""

from __future__ import annotations

import logging
import logging.handlers
import os
import re
import sys
import time
from datetime import datetime, timezone
from typing import Any, Dict, Optional

CONTEXT_FIELDS = ("run_id", "action", "api", "region")
REDACTED = "***REDACTED***"


class MaskSecretsFilter(logging.Filter):
    """
    Redact credentials and API keys from log records.
    """

    _patterns = [
        (re.compile(r"(Authorization:\s*Bearer\s+)([A-Za-z0-9._-]+)", re.IGNORECASE), r"\1" + REDACTED),
        (re.compile(r"(aws_secret_access_key\s*[=:]\s*)([A-Za-z0-9/+=]+)", re.IGNORECASE), r"\1" + REDACTED),
        (re.compile(r"(api[_-]?key\s*[=:]\s*)([A-Za-z0-9._-]+)", re.IGNORECASE), r"\1" + REDACTED),
        (re.compile(r"(password\s*[=:]\s*)([^,\s]+)", re.IGNORECASE), r"\1" + REDACTED),
        (re.compile(r"(\btoken\s*[=:]\s*)([A-Za-z0-9._-]+)", re.IGNORECASE), r"\1" + REDACTED),
        (re.compile(r"\bda2-[a-z0-9]{26}\b"), REDACTED),
        (re.compile(r"\b(AKIA|ASIA)[A-Z0-9]{16}\b"), REDACTED),
    ]

    @classmethod
    def mask(cls, text: str) -> str:
        for pat, repl in cls._patterns:
            text = pat.sub(repl, text)
        return text

    def filter(self, record: logging.LogRecord) -> bool:
        if isinstance(record.args, dict):
            record.args = {k: self.mask(str(v)) for k, v in record.args.items()}
        elif isinstance(record.args, tuple):
            record.args = tuple(self.mask(a) if isinstance(a, str) else a for a in record.args)
        if isinstance(record.msg, str):
            record.msg = self.mask(record.msg)
        return True


class ContextDefaultsFilter(logging.Filter):
    """Fill missing context fields so the shared format never fails."""

    def filter(self, record: logging.LogRecord) -> bool:
        for name in CONTEXT_FIELDS:
            if getattr(record, name, None) is None:
                setattr(record, name, "-")
        return True


def _utc_formatter(fmt: str) -> logging.Formatter:
    f = logging.Formatter(fmt=fmt, datefmt="%Y-%m-%dT%H:%M:%SZ")
    f.converter = time.gmtime  # type: ignore[attr-defined]
    return f


def _level(name: str, default: int) -> int:
    return getattr(logging, str(name).upper(), default)


def _prepare(handler: logging.Handler, level: int, formatter: logging.Formatter) -> logging.Handler:
    handler.setLevel(level)
    handler.setFormatter(formatter)
    handler.addFilter(ContextDefaultsFilter())
    handler.addFilter(MaskSecretsFilter())
    return handler


def _drop_handlers(logger: logging.Logger, kind: type, keep_path: Optional[str] = None) -> bool:
    """
    Remove handlers of `kind` from `logger` except one writing to `keep_path`.
    Returns True when a handler for `keep_path` is still attached.
    """
    kept = False
    for h in list(logger.handlers):
        if type(h) is not kind:
            continue
        if keep_path and os.path.abspath(getattr(h, "baseFilename", "")) == keep_path:
            kept = True
            continue
        logger.removeHandler(h)
        h.close()
    return kept


def build_logger(
    *,
    name: str = "appsync",
    run_id: str,
    action: str,
    base_dir: str = "logs",
    console_level: str = "INFO",
    file_level: str = "DEBUG",
    extra: Optional[Dict[str, Any]] = None,
) -> logging.LoggerAdapter:
    """
    Configure and return a LoggerAdapter.

    - The base logger `<name>` holds the console and rotating file handlers;
      they are rebuilt on every call so a changed cwd or stderr is honoured.
    - A child logger `<name>.<action>.<run_id>` holds the per-run file.
    - Records propagate to the base logger so they reach every sink.
    """
    fmt = (
        "%(asctime)s | %(levelname)-8s | %(name)s | "
        "run=%(run_id)s action=%(action)s api=%(api)s region=%(region)s | "
        "%(message)s"
    )
    formatter = _utc_formatter(fmt)
    os.makedirs(base_dir, exist_ok=True)

    base = logging.getLogger(name)
    base.setLevel(logging.DEBUG)

    _drop_handlers(base, logging.StreamHandler)
    base.addHandler(_prepare(logging.StreamHandler(stream=sys.stderr), _level(console_level, logging.INFO), formatter))

    app_log = os.path.abspath(os.path.join(base_dir, "app.log"))
    if not _drop_handlers(base, logging.handlers.TimedRotatingFileHandler, keep_path=app_log):
        rotating = logging.handlers.TimedRotatingFileHandler(
            app_log, when="midnight", backupCount=14, encoding="utf-8", utc=True
        )
        base.addHandler(_prepare(rotating, _level(file_level, logging.DEBUG), formatter))

    child = logging.getLogger(f"{name}.{action}.{run_id}")
    child.setLevel(logging.DEBUG)
    child.propagate = True
    if not any(isinstance(h, logging.FileHandler) for h in child.handlers):
        today = datetime.now(timezone.utc).strftime("%Y-%m-%d")
        dated_dir = os.path.join(base_dir, today)
        os.makedirs(dated_dir, exist_ok=True)
        per_run = logging.FileHandler(os.path.join(dated_dir, f"{action}_{run_id}.log"), encoding="utf-8")
        child.addHandler(_prepare(per_run, _level(file_level, logging.DEBUG), formatter))

    context = {"run_id": run_id, "action": action, "api": None, "region": None}
    context.update({k: v for k, v in (extra or {}).items() if k in CONTEXT_FIELDS})
    adapter = logging.LoggerAdapter(child, context)
    adapter.debug("Logger initialised")
    return adapter

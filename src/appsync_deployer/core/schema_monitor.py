"""
Schema monitor: poll schema creation until it reaches a terminal status.

States:
  IDLE -> SUBMITTED -> (polling) -> SUCCESS | FAILED | NOT_APPLICABLE

Polling is bounded by both ``timeout_sec`` and ``max_attempts``; the wait
between polls goes through a ``threading.Event`` so a caller can cancel it.

Config:
  interval_sec: 1.0
  timeout_sec:  300.0
  max_attempts: 300
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

from .appsync_client import AppSyncProvider
from .errors import SchemaCreationFailed, SchemaTimeout


class SchemaStatus(str, Enum):
    IDLE = "IDLE"
    SUBMITTED = "SUBMITTED"
    PROCESSING = "PROCESSING"
    ACTIVE = "ACTIVE"
    DELETING = "DELETING"
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"
    NOT_APPLICABLE = "NOT_APPLICABLE"

    @property
    def terminal(self) -> bool:
        return self in TERMINAL_STATES


TERMINAL_STATES = frozenset({SchemaStatus.SUCCESS, SchemaStatus.FAILED, SchemaStatus.NOT_APPLICABLE})


@dataclass
class MonitorConfig:
    interval_sec: float = 1.0
    timeout_sec: float = 300.0
    max_attempts: int = 300

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("MonitorConfig.max_attempts must be >= 1")


def _parse_status(raw: Any) -> Optional[SchemaStatus]:
    try:
        return SchemaStatus(str(raw or "").upper())
    except ValueError:
        return None


class SchemaMonitor:
    """Submits a schema definition and polls its creation status."""

    def __init__(
        self,
        client: AppSyncProvider,
        cfg: Optional[MonitorConfig] = None,
        *,
        logger: Optional[logging.LoggerAdapter] = None,
        cancel: Optional[threading.Event] = None,
    ) -> None:
        self.client = client
        self.cfg = cfg or MonitorConfig()
        self.log = logger or logging.getLogger("appsync.schema")
        self.cancel = cancel or threading.Event()
        self.state = SchemaStatus.IDLE

    def submit(self, api_id: str, definition: str) -> SchemaStatus:
        """Start schema creation, then block until a terminal status.

        Returns SUCCESS or NOT_APPLICABLE.
        Raises SchemaCreationFailed on FAILED, SchemaTimeout when the bounds
        are exhausted or the wait is cancelled.
        """
        self.log.info("Starting schema creation for %s", api_id)
        self.client.start_schema_creation(api_id, definition)
        self.state = SchemaStatus.SUBMITTED
        return self.wait(api_id)

    def wait(self, api_id: str) -> SchemaStatus:
        deadline = time.monotonic() + float(self.cfg.timeout_sec)
        last: Dict[str, Any] = {}

        for attempt in range(1, int(self.cfg.max_attempts) + 1):
            last = self.client.get_schema_creation_status(api_id) or {}
            status = _parse_status(last.get("status"))
            self.log.info("Schema creation status %s for %s (attempt %d)", last.get("status"), api_id, attempt)
            if status is not None:
                self.state = status

            if status is SchemaStatus.FAILED:
                raise SchemaCreationFailed(
                    "get_schema_creation_status", "FAILED", str(last.get("details") or "schema creation failed")
                )
            if status is not None and status.terminal:
                return status

            if time.monotonic() >= deadline:
                break
            if self.cancel.wait(float(self.cfg.interval_sec)):
                raise SchemaTimeout(f"schema polling cancelled for {api_id}; last_status='{last.get('status')}'")

        raise SchemaTimeout(
            f"timeout waiting for schema creation on {api_id}; last_status='{last.get('status')}'"
        )

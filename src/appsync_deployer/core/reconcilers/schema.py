"""
Schema convergence.

Only the API's creating owner manages the schema: with no schema declared
and a caller that did not create the API, nothing is touched. A creator
with no schema declared falls back to ``schema.graphql`` under the source
root. Upload is skipped when the content checksum matches the prior one.
"""
from __future__ import annotations

import os
from typing import Optional

from ..errors import ConfigurationError
from ..schema_monitor import MonitorConfig, SchemaMonitor
from ..templates import checksum, read_if_file
from .base import ReconcileContext

DEFAULT_SCHEMA_FILE = "schema.graphql"


def resolve_schema(schema: Optional[str], src: str, *, is_api_creator: bool) -> Optional[str]:
    """Return the schema text to manage, or ``None`` when schema management is skipped."""
    if schema is None:
        if not is_api_creator:
            return None
        default_path = os.path.join(src, DEFAULT_SCHEMA_FILE)
        if not os.path.isfile(default_path):
            raise ConfigurationError(f"Schema not defined and {default_path} does not exist")
        schema = DEFAULT_SCHEMA_FILE
    return read_if_file(schema, src)


def converge_schema(
    ctx: ReconcileContext,
    schema: Optional[str],
    prior_checksum: Optional[str],
    *,
    is_api_creator: bool,
    monitor_cfg: Optional[MonitorConfig] = None,
    monitor: Optional[SchemaMonitor] = None,
) -> Optional[str]:
    """Upload the schema if its checksum changed; return the checksum to persist."""
    text = resolve_schema(schema, ctx.src, is_api_creator=is_api_creator)
    if text is None:
        ctx.log.info("Schema not defined, ignoring create/update")
        return prior_checksum

    new_checksum = checksum(text)
    if new_checksum == prior_checksum:
        ctx.log.info("Schema unchanged for %s", ctx.api_id)
        return prior_checksum

    monitor = monitor or SchemaMonitor(ctx.client, monitor_cfg, logger=ctx.log)
    status = monitor.submit(ctx.api_id, text)
    ctx.log.info("Schema creation finished for %s with status %s", ctx.api_id, status.value)
    return new_checksum

"""
File-backed text helpers: schema and mapping-template resolution.

A value is treated as a path (relative to the configured source root) when a
file exists there; otherwise it is returned unchanged as literal text.
"""

from __future__ import annotations

import hashlib
import logging
import os
from typing import Optional

log = logging.getLogger("appsync.templates")


def read_if_file(value: Optional[str], root: str = ".") -> Optional[str]:
    """Return the content of ``root/value`` if it is a file, else ``value``."""
    if value is None:
        return None
    candidate = value if os.path.isabs(value) else os.path.join(root, value)
    if os.path.isfile(candidate):
        log.debug("Reading template file %s", candidate)
        with open(candidate, "r", encoding="utf-8") as f:
            return f.read()
    return value


def checksum(text: str) -> str:
    """Stable content hash (sha256 hex) used to detect schema changes."""
    return hashlib.sha256(text.encode("utf-8")).hexdigest()

"""
JSON snapshot persistence for :class:`PriorState`.

The file is replaced atomically (temp file in the same directory, then
``os.replace``) so an interrupted run never leaves a truncated state.
"""
from __future__ import annotations

import json
import os
import tempfile
from typing import Any, Dict

from .errors import ConfigurationError
from .models import PriorState


def load_state(path: str) -> PriorState:
    """Return the state stored at ``path``; a missing file is an empty state."""
    if not os.path.exists(path):
        return PriorState()
    with open(path, "r", encoding="utf-8") as f:
        try:
            raw: Dict[str, Any] = json.load(f) or {}
        except json.JSONDecodeError as exc:
            raise ConfigurationError(f"State file is not valid JSON: {path}") from exc
    if not isinstance(raw, dict):
        raise ConfigurationError(f"State file must hold a JSON object: {path}")
    return PriorState.from_dict(raw)


def save_state(path: str, state: PriorState) -> None:
    directory = os.path.dirname(os.path.abspath(path))
    os.makedirs(directory, exist_ok=True)
    fd, tmp = tempfile.mkstemp(prefix=".state-", suffix=".json", dir=directory)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(state.to_dict(), f, indent=2, sort_keys=True)
            f.write("\n")
        os.replace(tmp, path)
    except BaseException:
        if os.path.exists(tmp):
            os.unlink(tmp)
        raise

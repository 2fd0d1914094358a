"""
Diff engine for appsync-deployer.

Pure helpers shared by every reconciler, plus the decision model that
classifies a desired item as CREATE, UPDATE or IGNORE against its remote
counterpart (DELETE is produced by the removal pass).

Missing keys and keys set to ``None`` are treated the same everywhere.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from .errors import ConfigurationError


class Mode(str, Enum):
    """Closed set of reconciliation outcomes for one resource."""

    CREATE = "create"
    UPDATE = "update"
    IGNORE = "ignore"
    DELETE = "delete"


@dataclass(frozen=True)
class PlannedAction:
    """One planned mutation (or non-mutation) for a single resource.

    Attributes:
        kind: Resource kind, e.g. ``"dataSource"`` or ``"function"``.
        key: Natural-key projection identifying the resource.
        mode: The decided :class:`Mode`.
        reason: Human-friendly explanation of the decision.
        resource: Desired (or prior, for deletes) representation.
        identifier: Provider-assigned id; always ``None`` for CREATE.
    """
    kind: str
    key: Tuple[Any, ...]
    mode: Mode
    reason: str = ""
    resource: Optional[Dict[str, Any]] = None
    identifier: Optional[str] = None

    def __post_init__(self) -> None:
        if self.mode is Mode.CREATE and self.identifier is not None:
            raise ValueError("create actions cannot carry an identifier")


@dataclass(frozen=True)
class Decision:
    mode: Mode
    reason: str


# ----- primitives --------------------------------------------------------

def project(keys: Sequence[str], item: Mapping[str, Any]) -> Tuple[Any, ...]:
    """Return the values of ``keys`` in ``item`` as a hashable-ish tuple."""
    return tuple(item.get(k) for k in keys)


def keyed_equals(keys: Iterable[str], a: Mapping[str, Any], b: Mapping[str, Any]) -> bool:
    """True iff ``a`` and ``b`` agree on every field in ``keys``."""
    return all(a.get(k) == b.get(k) for k in keys)


def set_difference(
    keys: Sequence[str],
    list_a: Iterable[Mapping[str, Any]],
    list_b: Iterable[Mapping[str, Any]],
) -> List[Mapping[str, Any]]:
    """Elements of ``list_a`` whose projection on ``keys`` is absent from ``list_b``."""
    seen = [project(keys, b) for b in list_b]
    return [a for a in list_a if project(keys, a) not in seen]


def duplicate_check(keys: Sequence[str], items: Iterable[Mapping[str, Any]], kind: str = "item") -> None:
    """Raise :class:`ConfigurationError` if two items share a projection on ``keys``."""
    seen: List[Tuple[Any, ...]] = []
    for item in items:
        key = project(keys, item)
        if key in seen:
            pairs = ", ".join(f"{k}={v!r}" for k, v in zip(keys, key))
            raise ConfigurationError(f"Duplicate {kind} found: {pairs}")
        seen.append(key)


def normalize_list(value: Any) -> List[Any]:
    """``None`` -> ``[]``, scalar -> ``[scalar]``, sequence -> list."""
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return list(value)
    return [value]


def find_by_keys(
    keys: Sequence[str],
    probe: Mapping[str, Any],
    items: Iterable[Mapping[str, Any]],
) -> Optional[Mapping[str, Any]]:
    target = project(keys, probe)
    for it in items:
        if project(keys, it) == target:
            return it
    return None


# ----- decisions ---------------------------------------------------------

def decide(
    desired: Mapping[str, Any],
    existing: Optional[Mapping[str, Any]],
    *,
    compare_keys: Sequence[str],
) -> Decision:
    """Classify ``desired`` against ``existing`` on ``compare_keys``.

    Returns CREATE when nothing exists, UPDATE on the first differing key,
    IGNORE otherwise.
    """
    if existing is None:
        return Decision(Mode.CREATE, "Not found")

    for k in compare_keys:
        if desired.get(k) != existing.get(k):
            return Decision(Mode.UPDATE, f"Field differs: {k}")

    return Decision(Mode.IGNORE, "Identical subset")


def summarize(actions: Iterable[PlannedAction]) -> Dict[str, int]:
    """Count actions per mode, in a stable order."""
    counts = {m.value: 0 for m in Mode}
    for a in actions:
        counts[a.mode.value] += 1
    return counts


def subset_equals(desired: Any, remote: Any) -> bool:
    """Recursive equality restricted to the keys ``desired`` sets.

    Fields present only on ``remote`` (provider defaults) are ignored.
    """
    if isinstance(desired, Mapping):
        if not isinstance(remote, Mapping):
            return False
        return all(subset_equals(v, remote.get(k)) for k, v in desired.items() if v is not None)
    return desired == remote

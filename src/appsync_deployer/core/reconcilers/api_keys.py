"""
API keys.

Keys have no natural key on the provider side (only an opaque id), so names
live in the prior state:

1) merge prior-state keys with remote keys by id (drops keys the provider
   no longer holds),
2) classify each desired key by name against that merged set,
3) create / update (description, expires) / ignore,
4) removal: names in prior state but no longer desired, deleted by the id
   recorded in prior state.

``expires`` accepts epoch seconds (< 1e12), epoch milliseconds, or an
ISO-8601 date/datetime string; the provider always receives rounded epoch
seconds. AppSync stores expiry rounded down to the hour, so expiries are
compared at hour granularity.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Sequence

from ..concurrency import run_all
from ..diff_engine import Mode, PlannedAction, duplicate_check, set_difference
from ..errors import ConfigurationError, NotFoundError
from ..models import ApiKeySpec
from .base import ReconcileContext, ReconcileResult, Resource

MILLIS_THRESHOLD = 1_000_000_000_000
EXPIRY_GRANULARITY_SEC = 3600


def normalize_expires(value: Any) -> Optional[int]:
    """Return ``value`` as rounded epoch seconds (``None`` passes through)."""
    if value is None:
        return None
    if isinstance(value, bool):
        raise ConfigurationError(f"Invalid api key expiry: {value!r}")
    if isinstance(value, str):
        text = value.strip()
        try:
            value = float(text)
        except ValueError:
            return _parse_date(text)
    if isinstance(value, (int, float)):
        seconds = value if value < MILLIS_THRESHOLD else value / 1000.0
        return int(round(seconds))
    if isinstance(value, datetime):
        return _epoch(value)
    raise ConfigurationError(f"Invalid api key expiry: {value!r}")


def expiry_hour(value: Any) -> Optional[int]:
    """Floor an epoch-seconds expiry to the hour the provider keeps."""
    if value is None:
        return None
    seconds = int(value)
    return seconds - seconds % EXPIRY_GRANULARITY_SEC


def _parse_date(text: str) -> int:
    try:
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError as exc:
        raise ConfigurationError(f"Invalid api key expiry: {text!r}") from exc
    return _epoch(parsed)


def _epoch(dt: datetime) -> int:
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return int(round(dt.timestamp()))


class ApiKeyReconciler:
    kind = "apiKey"

    def __init__(self, ctx: ReconcileContext) -> None:
        self.ctx = ctx
        self.client = ctx.client
        self.log = ctx.log

    def merged_state(self, prior: Sequence[Mapping[str, Any]]) -> List[Resource]:
        """Prior-state keys still held by the provider, enriched with remote fields."""
        remote = {k.get("id"): k for k in self.client.list_api_keys(self.ctx.api_id)}
        merged: List[Resource] = []
        for state_key in prior:
            deployed = remote.get(state_key.get("id"))
            if deployed is not None:
                merged.append({**state_key, **deployed})
        return merged

    def plan(self, specs: Sequence[ApiKeySpec], merged: Sequence[Mapping[str, Any]]) -> List[PlannedAction]:
        duplicate_check(["name"], [{"name": s.name} for s in specs], "api key")
        by_name = {k.get("name"): k for k in merged}
        actions: List[PlannedAction] = []
        for spec in specs:
            expires = normalize_expires(spec.expires)
            desired = {"name": spec.name, "description": spec.description, "expires": expires}
            existing = by_name.get(spec.name)
            if existing is None:
                mode, reason, identifier = Mode.CREATE, "Not found", None
            elif spec.description is not None and spec.description != existing.get("description"):
                mode, reason, identifier = Mode.UPDATE, "Field differs: description", existing.get("id")
            elif expires is not None and expiry_hour(expires) != expiry_hour(existing.get("expires")):
                mode, reason, identifier = Mode.UPDATE, "Field differs: expires", existing.get("id")
            else:
                mode, reason, identifier = Mode.IGNORE, "Identical subset", existing.get("id")
            actions.append(
                PlannedAction(
                    kind=self.kind,
                    key=(spec.name,),
                    mode=mode,
                    reason=reason,
                    resource=desired,
                    identifier=identifier,
                )
            )
        return actions

    def plan_specs(self, specs: Sequence[ApiKeySpec], prior: Sequence[Mapping[str, Any]]) -> List[PlannedAction]:
        return self.plan(specs, self.merged_state(prior))

    def reconcile(self, specs: Sequence[ApiKeySpec], prior: Sequence[Mapping[str, Any]]) -> ReconcileResult:
        actions = self.plan_specs(specs, prior)
        items = run_all(self._apply, actions, max_workers=self.ctx.concurrency)
        return ReconcileResult(actions=actions, items=items)

    def _apply(self, action: PlannedAction) -> Resource:
        item = dict(action.resource or {})
        params = {"description": item.get("description"), "expires": item.get("expires")}
        suffix = f" (expires {item['expires']})" if item.get("expires") is not None else ""
        if action.mode is Mode.CREATE:
            self.log.info("Creating api key %s%s", item["name"], suffix)
            created = self.client.create_api_key(self.ctx.api_id, params)
            key_id = created.get("id")
        elif action.mode is Mode.UPDATE:
            self.log.info("Updating api key %s%s", item["name"], suffix)
            self.client.update_api_key(self.ctx.api_id, str(action.identifier), params)
            key_id = action.identifier
        elif action.mode is Mode.IGNORE:
            self.log.debug("Unchanged api key %s", item["name"])
            key_id = action.identifier
        else:
            raise ValueError(f"Unexpected mode {action.mode!r} for api key")
        return {"name": item["name"], "id": key_id}

    # ----- removal --------------------------------------------------------
    def obsolete(self, prior: Sequence[Mapping[str, Any]], specs: Sequence[ApiKeySpec]) -> List[PlannedAction]:
        orphans = set_difference(["name"], prior, [{"name": s.name} for s in specs])
        return [
            PlannedAction(
                kind=self.kind,
                key=(orphan.get("name"),),
                mode=Mode.DELETE,
                reason="No longer declared",
                resource={"name": orphan.get("name"), "id": orphan.get("id")},
                identifier=orphan.get("id"),
            )
            for orphan in orphans
        ]

    def remove_obsolete(self, prior: Sequence[Mapping[str, Any]], specs: Sequence[ApiKeySpec]) -> List[PlannedAction]:
        actions = self.obsolete(prior, specs)
        run_all(self._delete, actions, max_workers=self.ctx.concurrency)
        return actions

    def _delete(self, action: PlannedAction) -> None:
        name = action.key[0]
        self.log.info("Removing api key %s", name)
        try:
            self.client.delete_api_key(self.ctx.api_id, str(action.identifier))
        except NotFoundError:
            self.log.info("Api key %s already removed", name)

    @staticmethod
    def to_state(item: Dict[str, Any]) -> Dict[str, Any]:
        return {"name": item["name"], "id": item["id"]}

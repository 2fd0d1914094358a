"""
BaseReconciler: fetch -> duplicate check -> resolve -> decide -> apply -> report.

Concrete reconcilers only implement the resource-specific hooks (how to list,
shape, create, update and delete one kind). Matching, classification,
concurrent execution and the idempotent removal pass are handled here.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union

from ..appsync_client import AppSyncProvider
from ..concurrency import run_all
from ..diff_engine import (
    Decision,
    Mode,
    PlannedAction,
    decide,
    duplicate_check,
    find_by_keys,
    project,
    set_difference,
)
from ..errors import NotFoundError

Resource = Dict[str, Any]
Logger = Union[logging.Logger, logging.LoggerAdapter]


@dataclass
class ReconcileContext:
    """Per-run values shared by every reconciler.

    Attributes:
        client: AppSync provider.
        api_id: Identifier of the GraphQL API being reconciled.
        region: Region of the API (default for data-source configs).
        src: Root directory for file-backed schema and templates.
        concurrency: Max concurrent mutations within one kind.
        log: Logger or adapter carrying the run context.
    """
    client: AppSyncProvider
    api_id: str
    region: str
    src: str = "."
    concurrency: int = 4
    log: Logger = field(default_factory=lambda: logging.getLogger("appsync.reconcile"))


@dataclass(frozen=True)
class ReconcileResult:
    actions: List[PlannedAction]
    items: List[Resource]


class BaseReconciler:
    """Abstract base class for list-shaped resource kinds.

    Class Attributes:
        kind: Short resource identifier used in logs and actions.
        natural_key: Provider field names identifying a resource.
        compare_keys: Provider fields compared to decide UPDATE vs IGNORE.
        state_key: Field names of the natural key in the persisted state.
        id_field: Provider-assigned identifier field.
    """

    kind: str = "resource"
    natural_key: Tuple[str, ...] = ()
    compare_keys: Tuple[str, ...] = ()
    state_key: Tuple[str, ...] = ()
    id_field: str = "id"

    def __init__(self, ctx: ReconcileContext) -> None:
        self.ctx = ctx
        self.client = ctx.client
        self.log = ctx.log

    # ----- hooks to implement --------------------------------------------
    def fetch_remote(self, desired: Sequence[Resource]) -> List[Resource]:
        """Return the full (all pages) remote listing for this kind."""
        raise NotImplementedError

    def to_desired(self, spec: Any) -> Resource:
        """Return the provider-shaped desired item, templates resolved."""
        raise NotImplementedError

    def create(self, item: Resource) -> Resource:
        raise NotImplementedError

    def update(self, item: Resource, identifier: Optional[str]) -> Resource:
        raise NotImplementedError

    def delete(self, prior_item: Mapping[str, Any]) -> None:
        raise NotImplementedError

    def state_of(self, spec: Any) -> Resource:
        """Project a spec onto ``state_key`` (used by the removal pass)."""
        raise NotImplementedError

    def to_state(self, item: Resource) -> Resource:
        """Minimal projection of a reconciled item to persist."""
        raise NotImplementedError

    def compare(self, desired: Resource, existing: Optional[Resource]) -> Decision:
        return decide(desired, existing, compare_keys=self.compare_keys)

    def params(self, item: Resource) -> Resource:
        """Request parameters for create/update: no identifier, no ``None``."""
        return {k: v for k, v in item.items() if k != self.id_field and v is not None}

    # ----- planning -------------------------------------------------------
    def plan(self, desired: Sequence[Resource], remote: Sequence[Resource]) -> List[PlannedAction]:
        duplicate_check(self.natural_key, desired, self.kind)
        return self._classify(desired, remote)

    def _classify(self, desired: Sequence[Resource], remote: Sequence[Resource]) -> List[PlannedAction]:
        actions: List[PlannedAction] = []
        for item in desired:
            existing = find_by_keys(self.natural_key, item, remote)
            decision = self.compare(item, existing)
            identifier = None
            if decision.mode is not Mode.CREATE and existing is not None:
                identifier = existing.get(self.id_field)
            actions.append(
                PlannedAction(
                    kind=self.kind,
                    key=project(self.natural_key, item),
                    mode=decision.mode,
                    reason=decision.reason,
                    resource=item,
                    identifier=identifier,
                )
            )
        return actions

    def plan_specs(self, specs: Sequence[Any]) -> List[PlannedAction]:
        """Read-only: resolve specs, list remote and classify."""
        desired = [self.to_desired(s) for s in specs]
        duplicate_check(self.natural_key, desired, self.kind)
        return self._classify(desired, self.fetch_remote(desired))

    # ----- execution ------------------------------------------------------
    def reconcile(self, specs: Sequence[Any]) -> ReconcileResult:
        """Converge remote resources of this kind to ``specs``.

        Returns every desired item (ignored + updated + created) annotated
        with its provider identifier, in desired order.
        """
        actions = self.plan_specs(specs)
        items = run_all(self._apply, actions, max_workers=self.ctx.concurrency)
        return ReconcileResult(actions=actions, items=items)

    def _apply(self, action: PlannedAction) -> Resource:
        item = dict(action.resource or {})
        if action.mode is Mode.CREATE:
            self.log.info("Creating %s %s", self.kind, self._label(action.key))
            created = self.create(item)
            item[self.id_field] = created.get(self.id_field)
        elif action.mode is Mode.UPDATE:
            self.log.info("Updating %s %s (%s)", self.kind, self._label(action.key), action.reason)
            self.update(item, action.identifier)
            item[self.id_field] = action.identifier
        elif action.mode is Mode.IGNORE:
            self.log.debug("Unchanged %s %s", self.kind, self._label(action.key))
            item[self.id_field] = action.identifier
        else:
            raise ValueError(f"Unexpected mode {action.mode!r} for {self.kind}")
        return item

    # ----- removal --------------------------------------------------------
    def obsolete(self, prior: Sequence[Mapping[str, Any]], specs: Sequence[Any]) -> List[PlannedAction]:
        """Prior-state items whose natural key is no longer desired."""
        desired = [self.state_of(s) for s in specs]
        orphans = set_difference(self.state_key, prior, desired)
        return [
            PlannedAction(
                kind=self.kind,
                key=project(self.state_key, orphan),
                mode=Mode.DELETE,
                reason="No longer declared",
                resource=dict(orphan),
                identifier=self.prior_identifier(orphan),
            )
            for orphan in orphans
        ]

    def prior_identifier(self, prior_item: Mapping[str, Any]) -> Optional[str]:
        return None

    def remove_obsolete(self, prior: Sequence[Mapping[str, Any]], specs: Sequence[Any]) -> List[PlannedAction]:
        actions = self.obsolete(prior, specs)
        run_all(self._delete, actions, max_workers=self.ctx.concurrency)
        return actions

    def _delete(self, action: PlannedAction) -> None:
        self.log.info("Removing %s %s", self.kind, self._label(action.key))
        try:
            self.delete(action.resource or {})
        except NotFoundError:
            self.log.info("%s %s already removed", self.kind, self._label(action.key))

    @staticmethod
    def _label(key: Tuple[Any, ...]) -> str:
        return ".".join(str(k) for k in key)

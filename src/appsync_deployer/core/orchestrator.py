"""
Orchestrator: one reconciliation pass over a GraphQL API.

Order (each step aborts the pass on failure, nothing is rolled back):
  1) resolve or create the API container
  2) synthesize the service role
  3) data sources
  4) schema (blocking poll)
  5) resolvers
  6) functions
  7) api keys
  8) obsolete resolvers, functions, api keys, then data sources
  9) reduced state projection + user-facing output

``plan`` runs the same classification without any mutation and
``teardown`` removes the API and the synthesized role.
"""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence

from .appsync_client import Clients
from .diff_engine import Mode, PlannedAction, keyed_equals, summarize
from .models import DesiredConfig, PriorState
from .reconcilers.api_keys import ApiKeyReconciler
from .reconcilers.base import Logger, ReconcileContext
from .reconcilers.data_sources import DataSourceReconciler
from .reconcilers.functions import FunctionReconciler
from .reconcilers.graphql_api import create_or_update_graphql_api, delete_graphql_api, find_graphql_api
from .reconcilers.resolvers import ResolverReconciler
from .reconcilers.role import build_policy_statements, ensure_service_role, policy_document, remove_role
from .reconcilers.schema import converge_schema, resolve_schema
from .schema_monitor import MonitorConfig
from .templates import checksum


@dataclass
class SyncOptions:
    src: str = "."
    concurrency: int = 4
    monitor: MonitorConfig = field(default_factory=MonitorConfig)
    role_settle_sec: float = 10.0


@dataclass(frozen=True)
class SyncResult:
    state: PriorState
    output: Dict[str, Any]
    actions: List[PlannedAction]


def build_output(api: Dict[str, Any], api_keys: Optional[Sequence[Dict[str, Any]]]) -> Dict[str, Any]:
    output: Dict[str, Any] = {
        "graphqlApi": {"apiId": api.get("apiId"), "arn": api.get("arn"), "uris": dict(api.get("uris") or {})}
    }
    if api_keys:
        output["apiKeys"] = [k.get("id") for k in api_keys]
    return output


class Orchestrator:
    """Sequences the per-kind reconcilers against one AppSync API."""

    def __init__(
        self,
        clients: Clients,
        options: Optional[SyncOptions] = None,
        *,
        logger: Optional[Logger] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.clients = clients
        self.options = options or SyncOptions()
        self.log = logger or logging.getLogger("appsync.orchestrator")
        self.sleep = sleep

    def _context(self, api_id: str, region: str) -> ReconcileContext:
        return ReconcileContext(
            client=self.clients.appsync,
            api_id=api_id,
            region=region,
            src=self.options.src,
            concurrency=self.options.concurrency,
            log=self.log,
        )

    # ----- deploy ---------------------------------------------------------
    def synchronize(self, desired: DesiredConfig, prior: Optional[PriorState] = None) -> SyncResult:
        """Converge the remote API to ``desired``; returns the new state and output."""
        prior = prior or PriorState()
        region = desired.region
        self.log.info("Synchronizing graphql API %s in %s", desired.name, region)

        api, created = create_or_update_graphql_api(
            self.clients.appsync, desired, desired.api_id or prior.api_id, self.log
        )
        api_id = str(api["apiId"])
        same_api = prior.api_id == api_id
        if desired.is_api_creator is not None:
            is_creator = desired.is_api_creator
        else:
            is_creator = created or (same_api and prior.is_api_creator)

        statements = build_policy_statements(desired.data_sources, region, self.clients.account_id)
        role = ensure_service_role(
            self.clients.iam,
            desired.name,
            statements,
            prior.service_role,
            account_id=self.clients.account_id,
            settle_sec=self.options.role_settle_sec,
            log=self.log,
            sleep=self.sleep,
        )
        role_arn = role["roleArn"] if role else None
        data_sources = [ds.with_service_role(role_arn) for ds in desired.data_sources]

        ctx = self._context(api_id, region)
        ds_rec = DataSourceReconciler(ctx)
        res_rec = ResolverReconciler(ctx)
        fn_rec = FunctionReconciler(ctx)
        key_rec = ApiKeyReconciler(ctx)

        ds_result = ds_rec.reconcile(data_sources)
        schema_checksum = converge_schema(
            ctx,
            desired.schema,
            prior.schema_checksum if same_api else None,
            is_api_creator=is_creator,
            monitor_cfg=self.options.monitor,
        )
        res_result = res_rec.reconcile(desired.resolvers)
        fn_result = fn_rec.reconcile(desired.functions)
        key_result = key_rec.reconcile(desired.api_keys, prior.api_keys if same_api else ())

        removed: List[PlannedAction] = []
        if same_api:
            removed += res_rec.remove_obsolete(prior.resolvers, desired.resolvers)
            removed += fn_rec.remove_obsolete(prior.functions, desired.functions)
            removed += key_rec.remove_obsolete(prior.api_keys, desired.api_keys)
            removed += ds_rec.remove_obsolete(prior.data_sources, data_sources)

        state = PriorState(
            api_id=api_id,
            arn=api.get("arn"),
            uris=dict(api.get("uris") or {}),
            region=region,
            is_api_creator=bool(is_creator),
            schema_checksum=schema_checksum,
            api_keys=tuple(key_rec.to_state(k) for k in key_result.items),
            data_sources=tuple(ds_rec.to_state(d) for d in ds_result.items),
            resolvers=tuple(res_rec.to_state(r) for r in res_result.items),
            functions=tuple(fn_rec.to_state(f) for f in fn_result.items),
            service_role=role,
        )
        actions = ds_result.actions + res_result.actions + fn_result.actions + key_result.actions + removed
        self.log.info("Synchronize summary for %s: %s", api_id, summarize(actions))
        return SyncResult(state=state, output=build_output(api, key_result.items), actions=actions)

    # ----- plan -----------------------------------------------------------
    def plan(self, desired: DesiredConfig, prior: Optional[PriorState] = None) -> List[PlannedAction]:
        """Read-only classification of every resource; nothing is mutated."""
        prior = prior or PriorState()
        api = find_graphql_api(self.clients.appsync, desired, desired.api_id or prior.api_id, self.log)
        actions: List[PlannedAction] = []

        if api is None:
            actions.append(PlannedAction("graphqlApi", (desired.name,), Mode.CREATE, "Not found"))
        elif keyed_equals(desired.api_input_fields(), desired.api_inputs(), api):
            actions.append(PlannedAction("graphqlApi", (desired.name,), Mode.IGNORE, "Identical subset", identifier=api["apiId"]))
        else:
            actions.append(PlannedAction("graphqlApi", (desired.name,), Mode.UPDATE, "Inputs differ", identifier=api["apiId"]))

        statements = build_policy_statements(desired.data_sources, desired.region, self.clients.account_id)
        actions += self._plan_role(desired.name, statements, prior.service_role)
        role_arn = (prior.service_role or {}).get("roleArn") if statements else None
        data_sources = [ds.with_service_role(role_arn) for ds in desired.data_sources]

        api_id = str(api["apiId"]) if api else ""
        same_api = api is not None and prior.api_id == api_id
        is_creator = desired.is_api_creator
        if is_creator is None:
            is_creator = api is None or (same_api and prior.is_api_creator)

        ctx = self._context(api_id, desired.region)
        ds_rec = DataSourceReconciler(ctx)
        res_rec = ResolverReconciler(ctx)
        fn_rec = FunctionReconciler(ctx)
        key_rec = ApiKeyReconciler(ctx)

        actions += self._plan_schema(desired, prior.schema_checksum if same_api else None, api_id, is_creator)
        if api is None:
            actions += ds_rec.plan([ds_rec.to_desired(s) for s in data_sources], [])
            actions += res_rec.plan([res_rec.to_desired(s) for s in desired.resolvers], [])
            actions += fn_rec.plan([fn_rec.to_desired(s) for s in desired.functions], [])
            actions += key_rec.plan(desired.api_keys, [])
            return actions

        actions += ds_rec.plan_specs(data_sources)
        actions += res_rec.plan_specs(desired.resolvers)
        actions += fn_rec.plan_specs(desired.functions)
        actions += key_rec.plan_specs(desired.api_keys, prior.api_keys if same_api else ())
        if same_api:
            actions += res_rec.obsolete(prior.resolvers, desired.resolvers)
            actions += fn_rec.obsolete(prior.functions, desired.functions)
            actions += key_rec.obsolete(prior.api_keys, desired.api_keys)
            actions += ds_rec.obsolete(prior.data_sources, data_sources)
        self.log.info("Plan summary for %s: %s", desired.name, summarize(actions))
        return actions

    def _plan_role(self, api_name: str, statements: Sequence[Dict[str, Any]], prior_role: Optional[Dict[str, Any]]) -> List[PlannedAction]:
        key = (f"{api_name}-role",)
        if not statements:
            if prior_role:
                return [PlannedAction("serviceRole", key, Mode.DELETE, "No data source needs a role",
                                      identifier=prior_role.get("roleArn"))]
            return []
        if not prior_role:
            return [PlannedAction("serviceRole", key, Mode.CREATE, "Not found")]
        if prior_role.get("policyDocument") == policy_document(statements):
            return [PlannedAction("serviceRole", key, Mode.IGNORE, "Identical policy", identifier=prior_role.get("roleArn"))]
        return [PlannedAction("serviceRole", key, Mode.UPDATE, "Field differs: policyDocument",
                              identifier=prior_role.get("roleArn"))]

    def _plan_schema(self, desired: DesiredConfig, prior_checksum: Optional[str], api_id: str, is_creator: bool) -> List[PlannedAction]:
        text = resolve_schema(desired.schema, self.options.src, is_api_creator=is_creator)
        if text is None:
            return []
        identifier = api_id or None
        if checksum(text) == prior_checksum:
            return [PlannedAction("schema", (desired.name,), Mode.IGNORE, "Checksum unchanged", identifier=identifier)]
        if identifier is None:
            return [PlannedAction("schema", (desired.name,), Mode.CREATE, "Not found")]
        return [PlannedAction("schema", (desired.name,), Mode.UPDATE, "Checksum differs", identifier=identifier)]

    # ----- remove ---------------------------------------------------------
    def teardown(self, prior: PriorState) -> PriorState:
        """Delete the API and the synthesized role; returns an empty state."""
        self.log.info("Tearing down graphql API %s", prior.api_id)
        delete_graphql_api(self.clients.appsync, prior.api_id, self.log)
        if prior.service_role:
            remove_role(self.clients.iam, prior.service_role, log=self.log)
        return PriorState()

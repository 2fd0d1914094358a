"""
Data sources: natural key ``name``.

The user-facing ``config`` block is reshaped into the provider's
type-specific sub-object before comparison:

  AWS_LAMBDA           -> lambdaConfig
  AMAZON_DYNAMODB      -> dynamodbConfig
  AMAZON_ELASTICSEARCH -> elasticsearchConfig
  RELATIONAL_DATABASE  -> relationalDatabaseConfig (RDS Data API)
  HTTP, ...            -> passed through opaque
"""
from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional, Sequence

from ..diff_engine import Decision, Mode, decide, subset_equals
from ..models import DataSourceSpec
from .base import BaseReconciler, Resource

CONFIG_KEYS: Dict[str, str] = {
    "AWS_LAMBDA": "lambdaConfig",
    "AMAZON_DYNAMODB": "dynamodbConfig",
    "AMAZON_ELASTICSEARCH": "elasticsearchConfig",
    "RELATIONAL_DATABASE": "relationalDatabaseConfig",
    "HTTP": "httpConfig",
    "AMAZON_OPENSEARCH_SERVICE": "openSearchServiceConfig",
    "AMAZON_EVENTBRIDGE": "eventBridgeConfig",
}


def format_config(ds_type: str, config: Mapping[str, Any], region: str) -> Optional[Dict[str, Any]]:
    """Return the provider-shaped config sub-object for ``ds_type``."""
    if not config:
        return None
    if ds_type == "AWS_LAMBDA":
        return {"lambdaFunctionArn": config.get("lambdaFunctionArn")}
    if ds_type == "AMAZON_DYNAMODB":
        out = {
            "tableName": config.get("tableName"),
            "awsRegion": config.get("region") or region,
        }
        if config.get("useCallerCredentials") is not None:
            out["useCallerCredentials"] = bool(config["useCallerCredentials"])
        return out
    if ds_type == "AMAZON_ELASTICSEARCH":
        return {"endpoint": config.get("endpoint"), "awsRegion": config.get("region") or region}
    if ds_type == "RELATIONAL_DATABASE":
        http_cfg = {
            "awsRegion": config.get("region") or region,
            "dbClusterIdentifier": config.get("dbClusterIdentifier"),
            "databaseName": config.get("databaseName"),
            "schema": config.get("schema"),
            "awsSecretStoreArn": config.get("awsSecretStoreArn"),
        }
        return {
            "relationalDatabaseSourceType": "RDS_HTTP_ENDPOINT",
            "rdsHttpEndpointConfig": {k: v for k, v in http_cfg.items() if v is not None},
        }
    return dict(config)


class DataSourceReconciler(BaseReconciler):
    kind = "dataSource"
    natural_key = ("name",)
    compare_keys = ("name", "type", "description", "serviceRoleArn")
    state_key = ("name",)
    id_field = "dataSourceArn"

    def fetch_remote(self, desired: Sequence[Resource]) -> List[Resource]:
        return self.client.list_data_sources(self.ctx.api_id)

    def to_desired(self, spec: DataSourceSpec) -> Resource:
        item: Resource = {
            "name": spec.name,
            "type": spec.type,
            "description": spec.description,
            "serviceRoleArn": spec.service_role_arn,
        }
        key = CONFIG_KEYS.get(spec.type)
        if key:
            cfg = format_config(spec.type, spec.config, self.ctx.region)
            if cfg is not None:
                item[key] = cfg
        return item

    def compare(self, desired: Resource, existing: Optional[Resource]) -> Decision:
        decision = decide(desired, existing, compare_keys=self.compare_keys)
        if decision.mode is not Mode.IGNORE:
            return decision
        key = CONFIG_KEYS.get(desired["type"])
        if key and not subset_equals(desired.get(key), (existing or {}).get(key)):
            return Decision(Mode.UPDATE, f"Field differs: {key}")
        return decision

    def create(self, item: Resource) -> Resource:
        return self.client.create_data_source(self.ctx.api_id, self.params(item))

    def update(self, item: Resource, identifier: Optional[str]) -> Resource:
        return self.client.update_data_source(self.ctx.api_id, self.params(item))

    def delete(self, prior_item: Mapping[str, Any]) -> None:
        self.client.delete_data_source(self.ctx.api_id, prior_item["name"])

    def state_of(self, spec: DataSourceSpec) -> Resource:
        return {"name": spec.name}

    def to_state(self, item: Resource) -> Resource:
        return {"name": item["name"], "type": item["type"]}

"""
Typed models for a reconciliation pass.

- Desired side: :class:`DesiredConfig` and one spec type per resource kind,
  parsed from the camelCase document users write (``appsync.yml``).
- Durable side: :class:`PriorState`, the minimal snapshot written back at the
  end of a successful run.

Specs are frozen; transforms such as stamping the synthesized service role
onto a data source return new values (``dataclasses.replace``).
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Mapping, Optional, Tuple

from .diff_engine import duplicate_check, normalize_list
from .errors import ConfigurationError, check_for_required

DEFAULT_REGION = "us-east-1"
DEFAULT_FUNCTION_VERSION = "2018-05-29"

# authenticationType -> name of the provider field holding its settings
AUTH_CONFIG_KEYS: Dict[str, str] = {
    "AMAZON_COGNITO_USER_POOLS": "userPoolConfig",
    "OPENID_CONNECT": "openIDConnectConfig",
    "AWS_LAMBDA": "lambdaAuthorizerConfig",
}


def auth_config_key(authentication_type: Optional[str]) -> Optional[str]:
    return AUTH_CONFIG_KEYS.get(authentication_type or "")


# ---------- Specs ----------

@dataclass(frozen=True)
class DataSourceSpec:
    name: str
    type: str
    description: Optional[str] = None
    service_role_arn: Optional[str] = None
    config: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "DataSourceSpec":
        check_for_required(["name", "type"], raw, "data source")
        return cls(
            name=str(raw["name"]),
            type=str(raw["type"]),
            description=raw.get("description"),
            service_role_arn=raw.get("serviceRoleArn"),
            config=dict(raw.get("config") or {}),
        )

    def with_service_role(self, arn: Optional[str]) -> "DataSourceSpec":
        """Return a copy bound to ``arn`` unless an explicit role is already set."""
        if self.service_role_arn is not None or arn is None:
            return self
        return replace(self, service_role_arn=arn)


@dataclass(frozen=True)
class ResolverSpec:
    type: str
    field: str
    data_source: Optional[str] = None
    request: Optional[str] = None
    response: Optional[str] = None
    kind: str = "UNIT"
    functions: Tuple[str, ...] = ()

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "ResolverSpec":
        check_for_required(["type", "field"], raw, "mapping template")
        kind = str(raw.get("kind") or "UNIT").upper()
        if kind not in ("UNIT", "PIPELINE"):
            raise ConfigurationError(f"Unknown resolver kind '{kind}' for {raw['type']}.{raw['field']}")
        if kind == "UNIT" and not raw.get("dataSource"):
            raise ConfigurationError(
                f"Unit resolver {raw['type']}.{raw['field']} requires a dataSource"
            )
        return cls(
            type=str(raw["type"]),
            field=str(raw["field"]),
            data_source=raw.get("dataSource"),
            request=raw.get("request"),
            response=raw.get("response"),
            kind=kind,
            functions=tuple(str(f) for f in normalize_list(raw.get("functions"))),
        )


@dataclass(frozen=True)
class FunctionSpec:
    name: str
    data_source: str
    request: Optional[str] = None
    response: Optional[str] = None
    description: Optional[str] = None
    function_version: str = DEFAULT_FUNCTION_VERSION

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "FunctionSpec":
        check_for_required(["name", "dataSource"], raw, "function")
        return cls(
            name=str(raw["name"]),
            data_source=str(raw["dataSource"]),
            request=raw.get("request"),
            response=raw.get("response"),
            description=raw.get("description"),
            function_version=str(raw.get("functionVersion") or DEFAULT_FUNCTION_VERSION),
        )


@dataclass(frozen=True)
class ApiKeySpec:
    name: str
    description: Optional[str] = None
    expires: Any = None

    @classmethod
    def from_value(cls, raw: Any) -> "ApiKeySpec":
        """Accept a bare name or a mapping with ``name``/``description``/``expires``."""
        if isinstance(raw, str):
            raw = {"name": raw}
        check_for_required(["name"], raw, "api key")
        return cls(name=str(raw["name"]), description=raw.get("description"), expires=raw.get("expires"))


@dataclass(frozen=True)
class DesiredConfig:
    """User-declared target for one reconciliation pass."""
    name: str
    region: str = DEFAULT_REGION
    api_id: Optional[str] = None
    authentication_type: str = "API_KEY"
    auth_config: Optional[Dict[str, Any]] = None
    additional_authentication_providers: Tuple[Dict[str, Any], ...] = ()
    log_config: Optional[Dict[str, Any]] = None
    schema: Optional[str] = None
    data_sources: Tuple[DataSourceSpec, ...] = ()
    resolvers: Tuple[ResolverSpec, ...] = ()
    functions: Tuple[FunctionSpec, ...] = ()
    api_keys: Tuple[ApiKeySpec, ...] = ()
    is_api_creator: Optional[bool] = None

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "DesiredConfig":
        check_for_required(["name"], raw, "graphql api")
        auth_type = str(raw.get("authenticationType") or "API_KEY")
        auth_key = auth_config_key(auth_type)

        data_sources = [DataSourceSpec.from_dict(d) for d in normalize_list(raw.get("dataSources"))]
        resolvers = [ResolverSpec.from_dict(r) for r in normalize_list(raw.get("mappingTemplates"))]
        functions = [FunctionSpec.from_dict(f) for f in normalize_list(raw.get("functions"))]
        api_keys = [ApiKeySpec.from_value(k) for k in normalize_list(raw.get("apiKeys"))]

        duplicate_check(["name"], [{"name": d.name} for d in data_sources], "data source")
        duplicate_check(["type", "field"], [{"type": r.type, "field": r.field} for r in resolvers], "mapping template")
        duplicate_check(
            ["name", "dataSource"],
            [{"name": f.name, "dataSource": f.data_source} for f in functions],
            "function",
        )
        duplicate_check(["name"], [{"name": k.name} for k in api_keys], "api key")

        creator = raw.get("isApiCreator")
        return cls(
            name=str(raw["name"]),
            region=str(raw.get("region") or DEFAULT_REGION),
            api_id=raw.get("apiId"),
            authentication_type=auth_type,
            auth_config=dict(raw[auth_key]) if auth_key and raw.get(auth_key) else None,
            additional_authentication_providers=tuple(
                dict(p) for p in normalize_list(raw.get("additionalAuthenticationProviders"))
            ),
            log_config=dict(raw["logConfig"]) if raw.get("logConfig") else None,
            schema=raw.get("schema"),
            data_sources=tuple(data_sources),
            resolvers=tuple(resolvers),
            functions=tuple(functions),
            api_keys=tuple(api_keys),
            is_api_creator=None if creator is None else bool(creator),
        )

    def api_inputs(self) -> Dict[str, Any]:
        """Provider-shaped create/update inputs for the API container."""
        inputs: Dict[str, Any] = {"name": self.name, "authenticationType": self.authentication_type}
        key = auth_config_key(self.authentication_type)
        if key and self.auth_config:
            inputs[key] = dict(self.auth_config)
        if self.additional_authentication_providers:
            inputs["additionalAuthenticationProviders"] = [dict(p) for p in self.additional_authentication_providers]
        if self.log_config:
            inputs["logConfig"] = dict(self.log_config)
        return inputs

    def api_input_fields(self) -> List[str]:
        fields = ["name", "authenticationType", "additionalAuthenticationProviders", "logConfig"]
        key = auth_config_key(self.authentication_type)
        if key:
            fields.insert(2, key)
        return fields


# ---------- Prior state ----------

@dataclass(frozen=True)
class PriorState:
    """Minimal durable snapshot of the last successful run."""
    api_id: Optional[str] = None
    arn: Optional[str] = None
    uris: Dict[str, str] = field(default_factory=dict)
    region: Optional[str] = None
    is_api_creator: bool = False
    schema_checksum: Optional[str] = None
    api_keys: Tuple[Dict[str, Any], ...] = ()
    data_sources: Tuple[Dict[str, Any], ...] = ()
    resolvers: Tuple[Dict[str, Any], ...] = ()
    functions: Tuple[Dict[str, Any], ...] = ()
    service_role: Optional[Dict[str, Any]] = None

    @classmethod
    def from_dict(cls, raw: Optional[Mapping[str, Any]]) -> "PriorState":
        raw = raw or {}
        return cls(
            api_id=raw.get("apiId"),
            arn=raw.get("arn"),
            uris=dict(raw.get("uris") or {}),
            region=raw.get("region"),
            is_api_creator=bool(raw.get("isApiCreator", False)),
            schema_checksum=raw.get("schemaChecksum"),
            api_keys=tuple(dict(k) for k in normalize_list(raw.get("apiKeys"))),
            data_sources=tuple(dict(d) for d in normalize_list(raw.get("dataSources"))),
            resolvers=tuple(dict(r) for r in normalize_list(raw.get("mappingTemplates"))),
            functions=tuple(dict(f) for f in normalize_list(raw.get("functions"))),
            service_role=dict(raw["serviceRole"]) if raw.get("serviceRole") else None,
        )

    def to_dict(self) -> Dict[str, Any]:
        if self.api_id is None:
            return {}
        return {
            "apiId": self.api_id,
            "arn": self.arn,
            "uris": dict(self.uris),
            "region": self.region,
            "isApiCreator": self.is_api_creator,
            "schemaChecksum": self.schema_checksum,
            "apiKeys": [dict(k) for k in self.api_keys],
            "dataSources": [dict(d) for d in self.data_sources],
            "mappingTemplates": [dict(r) for r in self.resolvers],
            "functions": [dict(f) for f in self.functions],
            "serviceRole": dict(self.service_role) if self.service_role else None,
        }


# ---------- Overrides ----------

def apply_overrides(
    defaults: Mapping[str, Any],
    prior: Optional[Mapping[str, Any]] = None,
    explicit: Optional[Mapping[str, Any]] = None,
) -> Dict[str, Any]:
    """Merge three layers: ``explicit`` wins over ``prior`` wins over ``defaults``.

    Nested mappings merge recursively; a ``None`` value never overrides.
    Returns a new dict; inputs are not modified.
    """
    out: Dict[str, Any] = dict(defaults)
    for layer in (prior or {}, explicit or {}):
        for k, v in layer.items():
            if v is None:
                continue
            if isinstance(v, Mapping) and isinstance(out.get(k), Mapping):
                out[k] = apply_overrides(out[k], None, v)
            else:
                out[k] = v
    return out

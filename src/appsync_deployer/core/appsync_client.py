"""
Provider clients for AppSync, IAM and STS.

- ``AppSyncProvider`` / ``IamProvider`` describe the capabilities the
  reconcilers need; anything implementing them can be injected (tests use
  in-memory fakes).
- ``Boto3AppSync`` / ``Boto3Iam`` are the production adapters built on boto3.
- Listings are fully paginated (``nextToken``) before being returned.
- Every botocore failure is translated: NotFoundException / NoSuchEntity ->
  NotFoundError, anything else -> ProviderError.
- ``None`` values are stripped from request parameters (boto3 rejects them).

Usage:
    clients = get_clients(region="eu-west-1")
    apis = clients.appsync.list_graphql_apis()
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterator, List, Optional, Protocol

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from .errors import NotFoundError, ProviderError

Resource = Dict[str, Any]

NOT_FOUND_CODES = {"NotFoundException", "NoSuchEntity", "ResourceNotFoundException"}


class AppSyncProvider(Protocol):
    def get_graphql_api(self, api_id: str) -> Resource: ...
    def list_graphql_apis(self) -> List[Resource]: ...
    def create_graphql_api(self, inputs: Resource) -> Resource: ...
    def update_graphql_api(self, api_id: str, inputs: Resource) -> Resource: ...
    def delete_graphql_api(self, api_id: str) -> None: ...

    def list_data_sources(self, api_id: str) -> List[Resource]: ...
    def create_data_source(self, api_id: str, params: Resource) -> Resource: ...
    def update_data_source(self, api_id: str, params: Resource) -> Resource: ...
    def delete_data_source(self, api_id: str, name: str) -> None: ...

    def list_resolvers(self, api_id: str, type_name: str) -> List[Resource]: ...
    def create_resolver(self, api_id: str, params: Resource) -> Resource: ...
    def update_resolver(self, api_id: str, params: Resource) -> Resource: ...
    def delete_resolver(self, api_id: str, type_name: str, field_name: str) -> None: ...

    def list_functions(self, api_id: str) -> List[Resource]: ...
    def create_function(self, api_id: str, params: Resource) -> Resource: ...
    def update_function(self, api_id: str, function_id: str, params: Resource) -> Resource: ...
    def delete_function(self, api_id: str, function_id: str) -> None: ...

    def list_api_keys(self, api_id: str) -> List[Resource]: ...
    def create_api_key(self, api_id: str, params: Resource) -> Resource: ...
    def update_api_key(self, api_id: str, key_id: str, params: Resource) -> Resource: ...
    def delete_api_key(self, api_id: str, key_id: str) -> None: ...

    def start_schema_creation(self, api_id: str, definition: str) -> str: ...
    def get_schema_creation_status(self, api_id: str) -> Resource: ...


class IamProvider(Protocol):
    def create_role(self, role_name: str, assume_role_policy: str) -> str: ...
    def get_role(self, role_name: str) -> Resource: ...
    def create_policy(self, policy_name: str, document: str) -> str: ...
    def get_policy(self, policy_arn: str) -> Resource: ...
    def update_policy(self, policy_arn: str, document: str) -> None: ...
    def attach_role_policy(self, role_name: str, policy_arn: str) -> None: ...
    def detach_role_policy(self, role_name: str, policy_arn: str) -> None: ...
    def delete_policy(self, policy_arn: str) -> None: ...
    def delete_role(self, role_name: str) -> None: ...


@dataclass
class Clients:
    appsync: AppSyncProvider
    iam: IamProvider
    account_id: Callable[[], str]


# ---------- Helpers ----------

@contextmanager
def _translate(operation: str) -> Iterator[None]:
    try:
        yield
    except ClientError as e:
        err = e.response.get("Error", {}) if isinstance(e.response, dict) else {}
        code = str(err.get("Code", ""))
        msg = str(err.get("Message", ""))
        if code in NOT_FOUND_CODES:
            raise NotFoundError(operation, code, msg) from e
        raise ProviderError(operation, code, msg) from e
    except BotoCoreError as e:
        raise ProviderError(operation, message=str(e)) from e


def _clean(params: Dict[str, Any]) -> Dict[str, Any]:
    return {k: v for k, v in params.items() if v is not None}


# ---------- AppSync ----------

class Boto3AppSync:
    """AppSync adapter over a boto3 ``appsync`` client."""

    def __init__(self, client: Any, *, logger: Optional[logging.LoggerAdapter] = None) -> None:
        self.client = client
        self.log = logger or logging.getLogger("appsync.client")

    def _call(self, method: str, **params: Any) -> Dict[str, Any]:
        self.log.debug("appsync.%s %s", method, sorted(params))
        with _translate(method):
            return getattr(self.client, method)(**_clean(params))

    def _list_all(self, method: str, key: str, **params: Any) -> List[Resource]:
        items: List[Resource] = []
        token: Optional[str] = None
        while True:
            resp = self._call(method, nextToken=token, **params)
            items.extend(resp.get(key) or [])
            token = resp.get("nextToken")
            if not token:
                return items

    # ----- graphql api -----
    def get_graphql_api(self, api_id: str) -> Resource:
        return self._call("get_graphql_api", apiId=api_id)["graphqlApi"]

    def list_graphql_apis(self) -> List[Resource]:
        return self._list_all("list_graphql_apis", "graphqlApis")

    def create_graphql_api(self, inputs: Resource) -> Resource:
        return self._call("create_graphql_api", **inputs)["graphqlApi"]

    def update_graphql_api(self, api_id: str, inputs: Resource) -> Resource:
        return self._call("update_graphql_api", apiId=api_id, **inputs)["graphqlApi"]

    def delete_graphql_api(self, api_id: str) -> None:
        self._call("delete_graphql_api", apiId=api_id)

    # ----- data sources -----
    def list_data_sources(self, api_id: str) -> List[Resource]:
        return self._list_all("list_data_sources", "dataSources", apiId=api_id)

    def create_data_source(self, api_id: str, params: Resource) -> Resource:
        return self._call("create_data_source", apiId=api_id, **params)["dataSource"]

    def update_data_source(self, api_id: str, params: Resource) -> Resource:
        return self._call("update_data_source", apiId=api_id, **params)["dataSource"]

    def delete_data_source(self, api_id: str, name: str) -> None:
        self._call("delete_data_source", apiId=api_id, name=name)

    # ----- resolvers -----
    def list_resolvers(self, api_id: str, type_name: str) -> List[Resource]:
        return self._list_all("list_resolvers", "resolvers", apiId=api_id, typeName=type_name)

    def create_resolver(self, api_id: str, params: Resource) -> Resource:
        return self._call("create_resolver", apiId=api_id, **params)["resolver"]

    def update_resolver(self, api_id: str, params: Resource) -> Resource:
        return self._call("update_resolver", apiId=api_id, **params)["resolver"]

    def delete_resolver(self, api_id: str, type_name: str, field_name: str) -> None:
        self._call("delete_resolver", apiId=api_id, typeName=type_name, fieldName=field_name)

    # ----- functions -----
    def list_functions(self, api_id: str) -> List[Resource]:
        return self._list_all("list_functions", "functions", apiId=api_id)

    def create_function(self, api_id: str, params: Resource) -> Resource:
        return self._call("create_function", apiId=api_id, **params)["functionConfiguration"]

    def update_function(self, api_id: str, function_id: str, params: Resource) -> Resource:
        return self._call("update_function", apiId=api_id, functionId=function_id, **params)["functionConfiguration"]

    def delete_function(self, api_id: str, function_id: str) -> None:
        self._call("delete_function", apiId=api_id, functionId=function_id)

    # ----- api keys -----
    def list_api_keys(self, api_id: str) -> List[Resource]:
        return self._list_all("list_api_keys", "apiKeys", apiId=api_id)

    def create_api_key(self, api_id: str, params: Resource) -> Resource:
        return self._call("create_api_key", apiId=api_id, **params)["apiKey"]

    def update_api_key(self, api_id: str, key_id: str, params: Resource) -> Resource:
        return self._call("update_api_key", apiId=api_id, id=key_id, **params)["apiKey"]

    def delete_api_key(self, api_id: str, key_id: str) -> None:
        self._call("delete_api_key", apiId=api_id, id=key_id)

    # ----- schema -----
    def start_schema_creation(self, api_id: str, definition: str) -> str:
        resp = self._call("start_schema_creation", apiId=api_id, definition=definition.encode("utf-8"))
        return str(resp.get("status", ""))

    def get_schema_creation_status(self, api_id: str) -> Resource:
        return self._call("get_schema_creation_status", apiId=api_id)


# ---------- IAM ----------

class Boto3Iam:
    """IAM adapter over a boto3 ``iam`` client."""

    MAX_POLICY_VERSIONS = 5

    def __init__(self, client: Any, *, logger: Optional[logging.LoggerAdapter] = None) -> None:
        self.client = client
        self.log = logger or logging.getLogger("appsync.iam")

    def _call(self, method: str, **params: Any) -> Dict[str, Any]:
        self.log.debug("iam.%s %s", method, sorted(params))
        with _translate(method):
            return getattr(self.client, method)(**_clean(params))

    def create_role(self, role_name: str, assume_role_policy: str) -> str:
        resp = self._call("create_role", RoleName=role_name, Path="/", AssumeRolePolicyDocument=assume_role_policy)
        return resp["Role"]["Arn"]

    def get_role(self, role_name: str) -> Resource:
        return self._call("get_role", RoleName=role_name)["Role"]

    def create_policy(self, policy_name: str, document: str) -> str:
        resp = self._call("create_policy", PolicyName=policy_name, PolicyDocument=document)
        return resp["Policy"]["Arn"]

    def get_policy(self, policy_arn: str) -> Resource:
        return self._call("get_policy", PolicyArn=policy_arn)["Policy"]

    def update_policy(self, policy_arn: str, document: str) -> None:
        """Publish ``document`` as the new default version, pruning the oldest if full."""
        versions = self._call("list_policy_versions", PolicyArn=policy_arn).get("Versions") or []
        old = sorted((v for v in versions if not v.get("IsDefaultVersion")), key=lambda v: v.get("CreateDate") or "")
        if len(versions) >= self.MAX_POLICY_VERSIONS and old:
            self._call("delete_policy_version", PolicyArn=policy_arn, VersionId=old[0]["VersionId"])
        self._call("create_policy_version", PolicyArn=policy_arn, PolicyDocument=document, SetAsDefault=True)

    def attach_role_policy(self, role_name: str, policy_arn: str) -> None:
        self._call("attach_role_policy", RoleName=role_name, PolicyArn=policy_arn)

    def detach_role_policy(self, role_name: str, policy_arn: str) -> None:
        self._call("detach_role_policy", RoleName=role_name, PolicyArn=policy_arn)

    def delete_policy(self, policy_arn: str) -> None:
        """Delete ``policy_arn`` after pruning its non-default versions."""
        versions = self._call("list_policy_versions", PolicyArn=policy_arn).get("Versions") or []
        for version in versions:
            if not version.get("IsDefaultVersion"):
                self._call("delete_policy_version", PolicyArn=policy_arn, VersionId=version["VersionId"])
        self._call("delete_policy", PolicyArn=policy_arn)

    def delete_role(self, role_name: str) -> None:
        self._call("delete_role", RoleName=role_name)


# ---------- Factory ----------

def get_clients(
    region: str,
    profile: Optional[str] = None,
    *,
    logger: Optional[logging.LoggerAdapter] = None,
) -> Clients:
    """Build boto3-backed clients for ``region`` (optionally a named profile)."""
    session = boto3.session.Session(profile_name=profile or None, region_name=region)
    sts = session.client("sts")

    def account_id() -> str:
        with _translate("get_caller_identity"):
            return str(sts.get_caller_identity()["Account"])

    return Clients(
        appsync=Boto3AppSync(session.client("appsync"), logger=logger),
        iam=Boto3Iam(session.client("iam"), logger=logger),
        account_id=account_id,
    )

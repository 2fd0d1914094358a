"""
Service role synthesis for data sources declared without ``serviceRoleArn``.

Statements are grouped per data-source type in first-appearance order, with
identical configs deduplicated:

  AWS_LAMBDA           -> lambda:invokeFunction on the function (and its qualifiers)
  AMAZON_DYNAMODB      -> item/query actions on table/<name> and table/<name>/*
  AMAZON_ELASTICSEARCH -> ESHttp* on domain/<host>
  RELATIONAL_DATABASE  -> rds-data actions on the cluster + secretsmanager:GetSecretValue

Other types contribute nothing. The role (``<api>-role``) and its managed
policy (``<api>-policy``) are looked up in IAM before anything is created,
and reused as long as the policy document is unchanged; a changed document
is published as a new policy version.
"""
from __future__ import annotations

import json
import logging
import re
import time
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

from ..appsync_client import IamProvider
from ..errors import ConfigurationError, NotFoundError
from ..models import DataSourceSpec
from .base import Logger

Statement = Dict[str, Any]

POLICY_VERSION = "2012-10-17"
ES_ENDPOINT = re.compile(r"^https://([a-z0-9\-]+\.\w{2}\-[a-z]+\-\d\.es\.amazonaws\.com)$")

DYNAMODB_ACTIONS = [
    "dynamodb:DeleteItem",
    "dynamodb:GetItem",
    "dynamodb:PutItem",
    "dynamodb:Query",
    "dynamodb:Scan",
    "dynamodb:UpdateItem",
    "dynamodb:BatchGetItem",
    "dynamodb:BatchWriteItem",
]
ES_ACTIONS = ["es:ESHttpDelete", "es:ESHttpGet", "es:ESHttpHead", "es:ESHttpPost", "es:ESHttpPut"]
RDS_ACTIONS = [
    "rds-data:DeleteItems",
    "rds-data:ExecuteSql",
    "rds-data:ExecuteStatement",
    "rds-data:GetItems",
    "rds-data:InsertItems",
    "rds-data:UpdateItems",
]

ASSUME_ROLE_POLICY = {
    "Version": POLICY_VERSION,
    "Statement": {
        "Effect": "Allow",
        "Principal": {"Service": ["appsync.amazonaws.com"]},
        "Action": "sts:AssumeRole",
    },
}


# ---------- Statements ----------

def _group_configs(data_sources: Sequence[DataSourceSpec]) -> Dict[str, List[Mapping[str, Any]]]:
    groups: Dict[str, List[Mapping[str, Any]]] = {}
    for ds in data_sources:
        if ds.service_role_arn is not None:
            continue
        configs = groups.setdefault(ds.type, [])
        if ds.config not in configs:
            configs.append(ds.config)
    return groups


def _es_domain(endpoint: Optional[str]) -> str:
    match = ES_ENDPOINT.match(endpoint or "")
    if not match:
        raise ConfigurationError(f"Invalid Elasticsearch endpoint: {endpoint!r}")
    return match.group(1)


def build_policy_statements(
    data_sources: Sequence[DataSourceSpec],
    region: str,
    account_id: Callable[[], str],
) -> List[Statement]:
    """Return the IAM statements needed by data sources lacking a role.

    ``account_id`` is only called when a statement needs it and the config
    does not carry its own ``accountId``.
    """
    statements: List[Statement] = []

    def account(cfg: Mapping[str, Any]) -> str:
        return str(cfg.get("accountId") or account_id())

    def where(cfg: Mapping[str, Any]) -> str:
        return str(cfg.get("region") or region)

    for ds_type, configs in _group_configs(data_sources).items():
        if ds_type == "AWS_LAMBDA":
            resources = []
            for cfg in configs:
                arn = cfg.get("lambdaFunctionArn")
                resources += [arn, f"{arn}:*"]
            statements.append({"Action": ["lambda:invokeFunction"], "Effect": "Allow", "Resource": resources})
        elif ds_type == "AMAZON_DYNAMODB":
            resources = []
            for cfg in configs:
                table = f"arn:aws:dynamodb:{where(cfg)}:{account(cfg)}:table/{cfg.get('tableName')}"
                resources += [table, f"{table}/*"]
            statements.append({"Action": list(DYNAMODB_ACTIONS), "Effect": "Allow", "Resource": resources})
        elif ds_type == "AMAZON_ELASTICSEARCH":
            resources = [
                f"arn:aws:es:{where(cfg)}:{account(cfg)}:domain/{_es_domain(cfg.get('endpoint'))}"
                for cfg in configs
            ]
            statements.append({"Action": list(ES_ACTIONS), "Effect": "Allow", "Resource": resources})
        elif ds_type == "RELATIONAL_DATABASE":
            clusters: List[str] = []
            secrets: List[str] = []
            for cfg in configs:
                cluster = f"arn:aws:rds:{where(cfg)}:{account(cfg)}:cluster:{cfg.get('dbClusterIdentifier')}"
                clusters += [cluster, f"{cluster}:*"]
                secret = cfg.get("awsSecretStoreArn")
                secrets += [secret, f"{secret}:*"]
            statements.append({"Effect": "Allow", "Action": list(RDS_ACTIONS), "Resource": clusters})
            statements.append(
                {"Effect": "Allow", "Action": ["secretsmanager:GetSecretValue"], "Resource": secrets}
            )
    return statements


def policy_document(statements: Sequence[Statement]) -> str:
    return json.dumps({"Version": POLICY_VERSION, "Statement": list(statements)}, sort_keys=True)


# ---------- Role lifecycle ----------

def role_name_for(api_name: str) -> str:
    return f"{api_name}-role"


def policy_name_for(api_name: str) -> str:
    return f"{api_name}-policy"


def policy_arn_for(api_name: str, account: str) -> str:
    return f"arn:aws:iam::{account}:policy/{policy_name_for(api_name)}"


def _get_role(iam: IamProvider, role_name: str) -> Optional[Dict[str, Any]]:
    try:
        return iam.get_role(role_name)
    except NotFoundError:
        return None


def _policy_exists(iam: IamProvider, policy_arn: str) -> bool:
    try:
        iam.get_policy(policy_arn)
    except NotFoundError:
        return False
    return True


def ensure_service_role(
    iam: IamProvider,
    api_name: str,
    statements: Sequence[Statement],
    prior_role: Optional[Mapping[str, Any]],
    *,
    account_id: Callable[[], str],
    settle_sec: float = 10.0,
    log: Optional[Logger] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> Optional[Dict[str, Any]]:
    """Converge the synthesized service role; returns the role state or ``None``.

    With no statements any previously synthesized role is removed. A recorded
    role with an unchanged document is reused after a single ``get_role``.
    Otherwise the role and its policy are looked up in IAM and created only
    when missing, so leftovers of an interrupted run are adopted. An existing
    policy receives the document as a new default version. Any change waits
    ``settle_sec`` for IAM propagation.
    """
    log = log or logging.getLogger("appsync.role")
    if not statements:
        if prior_role:
            remove_role(iam, prior_role, log=log)
        return None

    role_name = role_name_for(api_name)
    document = policy_document(statements)
    role = _get_role(iam, role_name)

    if prior_role and role is not None and prior_role.get("policyDocument") == document:
        log.info("Service role %s unchanged", role_name)
        return dict(prior_role)

    if role is None:
        log.info("Creating service role %s", role_name)
        role_arn = iam.create_role(role_name, json.dumps(ASSUME_ROLE_POLICY))
    else:
        log.info("Using existing service role %s", role_name)
        role_arn = str(role["Arn"])

    policy_arn = str((prior_role or {}).get("policyArn") or policy_arn_for(api_name, account_id()))
    if _policy_exists(iam, policy_arn):
        log.info("Updating service role policy %s", policy_arn)
        iam.update_policy(policy_arn, document)
    else:
        log.info("Creating service role policy %s", policy_name_for(api_name))
        policy_arn = iam.create_policy(policy_name_for(api_name), document)
    iam.attach_role_policy(role_name, policy_arn)
    sleep(settle_sec)
    return {"roleArn": role_arn, "policyArn": policy_arn, "policyDocument": document}


def remove_role(iam: IamProvider, role: Mapping[str, Any], *, log: Optional[Logger] = None) -> None:
    """Detach and delete the synthesized policy and role; missing pieces are skipped."""
    log = log or logging.getLogger("appsync.role")
    role_arn = str(role.get("roleArn") or "")
    role_name = role_arn.split("/")[-1]
    policy_arn = role.get("policyArn")
    log.info("Removing service role %s", role_name)

    steps: List[Callable[[], None]] = []
    if policy_arn:
        steps.append(lambda: iam.detach_role_policy(role_name, str(policy_arn)))
        steps.append(lambda: iam.delete_policy(str(policy_arn)))
    if role_name:
        steps.append(lambda: iam.delete_role(role_name))

    for step in steps:
        try:
            step()
        except NotFoundError:
            log.debug("Service role piece already removed")

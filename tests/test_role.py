import json

import pytest

from appsync_deployer.core.errors import ConfigurationError
from appsync_deployer.core.models import DataSourceSpec
from appsync_deployer.core.reconcilers.role import (
    build_policy_statements,
    ensure_service_role,
    policy_document,
    remove_role,
)

from conftest import ACCOUNT_ID


def _account():
    return ACCOUNT_ID


def test_single_lambda_statement():
    specs = [DataSourceSpec(name="A", type="AWS_LAMBDA", config={"lambdaFunctionArn": "arn:aws:lambda:us-east-1:1:function:f"})]
    statements = build_policy_statements(specs, "us-east-1", _account)
    assert statements == [
        {
            "Action": ["lambda:invokeFunction"],
            "Effect": "Allow",
            "Resource": ["arn:aws:lambda:us-east-1:1:function:f", "arn:aws:lambda:us-east-1:1:function:f:*"],
        }
    ]


def test_statements_group_by_type_and_dedupe_configs():
    specs = [
        DataSourceSpec(name="T1", type="AMAZON_DYNAMODB", config={"tableName": "orders"}),
        DataSourceSpec(name="L", type="AWS_LAMBDA", config={"lambdaFunctionArn": "arn:fn"}),
        DataSourceSpec(name="T2", type="AMAZON_DYNAMODB", config={"tableName": "orders"}),
        DataSourceSpec(name="T3", type="AMAZON_DYNAMODB", config={"tableName": "users", "region": "eu-west-1", "accountId": "999"}),
        DataSourceSpec(name="X", type="AWS_LAMBDA", service_role_arn="arn:mine", config={"lambdaFunctionArn": "arn:other"}),
        DataSourceSpec(name="H", type="HTTP", config={"endpoint": "https://example.com"}),
    ]
    statements = build_policy_statements(specs, "us-east-1", _account)
    assert [s["Action"][0] for s in statements] == ["dynamodb:DeleteItem", "lambda:invokeFunction"]
    assert statements[0]["Resource"] == [
        f"arn:aws:dynamodb:us-east-1:{ACCOUNT_ID}:table/orders",
        f"arn:aws:dynamodb:us-east-1:{ACCOUNT_ID}:table/orders/*",
        "arn:aws:dynamodb:eu-west-1:999:table/users",
        "arn:aws:dynamodb:eu-west-1:999:table/users/*",
    ]
    assert statements[1]["Resource"] == ["arn:fn", "arn:fn:*"]


def test_rds_emits_cluster_and_secret_statements():
    specs = [
        DataSourceSpec(
            name="db",
            type="RELATIONAL_DATABASE",
            config={"dbClusterIdentifier": "cluster-1", "awsSecretStoreArn": "arn:secret"},
        )
    ]
    rds, secrets = build_policy_statements(specs, "eu-central-1", _account)
    assert rds["Resource"] == [
        f"arn:aws:rds:eu-central-1:{ACCOUNT_ID}:cluster:cluster-1",
        f"arn:aws:rds:eu-central-1:{ACCOUNT_ID}:cluster:cluster-1:*",
    ]
    assert secrets == {"Effect": "Allow", "Action": ["secretsmanager:GetSecretValue"], "Resource": ["arn:secret", "arn:secret:*"]}


def test_elasticsearch_endpoint_shape():
    good = [DataSourceSpec(name="es", type="AMAZON_ELASTICSEARCH",
                           config={"endpoint": "https://search-logs-abc.eu-west-1.es.amazonaws.com"})]
    (statement,) = build_policy_statements(good, "eu-west-1", _account)
    assert statement["Resource"] == [f"arn:aws:es:eu-west-1:{ACCOUNT_ID}:domain/search-logs-abc.eu-west-1.es.amazonaws.com"]

    bad = [DataSourceSpec(name="es", type="AMAZON_ELASTICSEARCH", config={"endpoint": "http://localhost:9200"})]
    with pytest.raises(ConfigurationError):
        build_policy_statements(bad, "eu-west-1", _account)


def test_account_lookup_only_when_needed():
    def fail():
        raise AssertionError("account id should not be resolved")

    specs = [DataSourceSpec(name="A", type="AWS_LAMBDA", config={"lambdaFunctionArn": "arn:fn"})]
    assert build_policy_statements(specs, "us-east-1", fail)


def _statements():
    return [{"Action": ["lambda:invokeFunction"], "Effect": "Allow", "Resource": ["arn:fn", "arn:fn:*"]}]


def test_role_created_then_reused(iam):
    sleeps = []
    role = ensure_service_role(iam, "orders", _statements(), None, account_id=_account, settle_sec=10.0, sleep=sleeps.append)
    assert role["roleArn"] == f"arn:aws:iam::{ACCOUNT_ID}:role/orders-role"
    assert ("orders-role", role["policyArn"]) in iam.attachments
    assert json.loads(iam.roles["orders-role"]["AssumeRolePolicyDocument"])["Statement"]["Action"] == "sts:AssumeRole"
    assert sleeps == [10.0]

    again = ensure_service_role(iam, "orders", _statements(), role, account_id=_account, settle_sec=10.0, sleep=sleeps.append)
    assert again == role
    assert iam.calls["create_role"] == 1 and sleeps == [10.0]


def test_role_policy_updated_when_statements_change(iam):
    role = ensure_service_role(iam, "orders", _statements(), None, account_id=_account, settle_sec=0, sleep=lambda s: None)
    changed = _statements() + [{"Action": ["es:ESHttpGet"], "Effect": "Allow", "Resource": ["arn:es"]}]
    updated = ensure_service_role(iam, "orders", changed, role, account_id=_account, settle_sec=0, sleep=lambda s: None)
    assert updated["roleArn"] == role["roleArn"]
    assert iam.policies[role["policyArn"]] == policy_document(changed)
    assert iam.calls["update_policy"] == 1


def test_role_removed_when_no_longer_needed(iam):
    role = ensure_service_role(iam, "orders", _statements(), None, account_id=_account, settle_sec=0, sleep=lambda s: None)
    assert ensure_service_role(iam, "orders", [], role, account_id=_account, sleep=lambda s: None) is None
    assert iam.roles == {} and iam.policies == {} and iam.attachments == set()


def test_remove_role_tolerates_missing_pieces(iam):
    remove_role(iam, {"roleArn": f"arn:aws:iam::{ACCOUNT_ID}:role/ghost-role", "policyArn": "arn:ghost"})
    assert iam.calls["delete_role"] == 1


def test_role_left_by_interrupted_run_is_adopted(iam):
    first = ensure_service_role(iam, "orders", _statements(), None, account_id=_account, settle_sec=0, sleep=lambda s: None)
    adopted = ensure_service_role(iam, "orders", _statements(), None, account_id=_account, settle_sec=0, sleep=lambda s: None)
    assert adopted == first
    assert iam.calls["create_role"] == 1 and iam.calls["create_policy"] == 1
    assert iam.calls["update_policy"] == 1
    assert iam.attachments == {("orders-role", first["policyArn"])}


def test_deleted_role_is_recreated_around_surviving_policy(iam):
    role = ensure_service_role(iam, "orders", _statements(), None, account_id=_account, settle_sec=0, sleep=lambda s: None)
    del iam.roles["orders-role"]
    iam.attachments.clear()
    again = ensure_service_role(iam, "orders", _statements(), role, account_id=_account, settle_sec=0, sleep=lambda s: None)
    assert again == role
    assert iam.calls["create_role"] == 2 and iam.calls["create_policy"] == 1
    assert ("orders-role", role["policyArn"]) in iam.attachments

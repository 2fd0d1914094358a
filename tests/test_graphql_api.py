import logging

from appsync_deployer.core.models import DesiredConfig
from appsync_deployer.core.reconcilers.graphql_api import create_or_update_graphql_api, delete_graphql_api

log = logging.getLogger("test.graphql_api")


def _desired(**extra):
    return DesiredConfig.from_dict({"name": "orders", **extra})


def test_creates_when_nothing_matches(appsync):
    api, created = create_or_update_graphql_api(appsync, _desired(), None, log)
    assert created is True
    assert api["name"] == "orders" and api["authenticationType"] == "API_KEY"


def test_found_by_id_and_unchanged(appsync):
    api, _ = create_or_update_graphql_api(appsync, _desired(), None, log)
    again, created = create_or_update_graphql_api(appsync, _desired(), api["apiId"], log)
    assert created is False and again["apiId"] == api["apiId"]
    assert appsync.calls["update_graphql_api"] == 0


def test_unknown_id_falls_back_to_name(appsync):
    api, _ = create_or_update_graphql_api(appsync, _desired(), None, log)
    again, created = create_or_update_graphql_api(appsync, _desired(), "missing", log)
    assert created is False and again["apiId"] == api["apiId"]


def test_changed_inputs_update(appsync):
    api, _ = create_or_update_graphql_api(appsync, _desired(), None, log)
    log_config = {"fieldLogLevel": "ALL", "cloudWatchLogsRoleArn": "arn:logs"}
    updated, created = create_or_update_graphql_api(appsync, _desired(logConfig=log_config), api["apiId"], log)
    assert created is False
    assert updated["logConfig"] == log_config
    assert appsync.calls["update_graphql_api"] == 1


def test_delete_tolerates_missing(appsync):
    api, _ = create_or_update_graphql_api(appsync, _desired(), None, log)
    delete_graphql_api(appsync, api["apiId"], log)
    delete_graphql_api(appsync, api["apiId"], log)
    delete_graphql_api(appsync, None, log)
    assert appsync.calls["delete_graphql_api"] == 2

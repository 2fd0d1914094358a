import pytest

from appsync_deployer.core.diff_engine import Mode
from appsync_deployer.core.errors import ConfigurationError
from appsync_deployer.core.models import ApiKeySpec
from appsync_deployer.core.reconcilers.api_keys import ApiKeyReconciler, normalize_expires
from appsync_deployer.core.reconcilers.base import ReconcileContext


@pytest.fixture
def rec(appsync, api_id):
    return ApiKeyReconciler(ReconcileContext(client=appsync, api_id=api_id, region="us-east-1"))


@pytest.mark.parametrize(
    "value,expected",
    [
        (1700000000, 1700000000),
        (1700000000000, 1700000000),
        (1700000000.4, 1700000000),
        (1700000000600, 1700000001),
        ("1700000000", 1700000000),
        ("2023-11-14T22:13:20Z", 1700000000),
        ("2023-11-14T22:13:20", 1700000000),
        (None, None),
    ],
)
def test_normalize_expires(value, expected):
    assert normalize_expires(value) == expected


@pytest.mark.parametrize("value", ["next tuesday", True, [1]])
def test_normalize_expires_rejects_garbage(value):
    with pytest.raises(ConfigurationError):
        normalize_expires(value)


def test_create_then_ignore(rec, appsync, api_id):
    first = rec.reconcile([ApiKeySpec(name="default", expires=1900000000000)], [])
    assert [a.mode for a in first.actions] == [Mode.CREATE]
    key_id = first.items[0]["id"]
    assert appsync.api_keys[api_id][key_id]["expires"] == 1899997200

    second = rec.reconcile([ApiKeySpec(name="default", expires=1900000000)], first.items)
    assert [a.mode for a in second.actions] == [Mode.IGNORE]
    assert second.items == [{"name": "default", "id": key_id}]
    assert appsync.calls["create_api_key"] == 1


def test_description_and_expiry_changes_update(rec, appsync, api_id):
    created = rec.reconcile([ApiKeySpec(name="k", description="old")], []).items
    described = rec.reconcile([ApiKeySpec(name="k", description="new")], created)
    assert described.actions[0].mode is Mode.UPDATE
    assert described.actions[0].reason == "Field differs: description"
    expired = rec.reconcile([ApiKeySpec(name="k", description="new", expires=1950000000)], created)
    assert expired.actions[0].reason == "Field differs: expires"
    assert appsync.api_keys[api_id][created[0]["id"]] == {"id": created[0]["id"], "description": "new", "expires": 1949997600}


def test_key_removed_remotely_is_recreated(rec, appsync, api_id):
    created = rec.reconcile([ApiKeySpec(name="k")], []).items
    appsync.api_keys[api_id].clear()
    again = rec.reconcile([ApiKeySpec(name="k")], created)
    assert again.actions[0].mode is Mode.CREATE
    assert again.items[0]["id"] != created[0]["id"]


def test_remove_obsolete_keys_by_recorded_id(rec, appsync, api_id):
    created = rec.reconcile([ApiKeySpec(name="a"), ApiKeySpec(name="b")], []).items
    removed = rec.remove_obsolete(created, [ApiKeySpec(name="a")])
    assert [a.identifier for a in removed] == [created[1]["id"]]
    assert list(appsync.api_keys[api_id]) == [created[0]["id"]]
    assert rec.remove_obsolete(created, [ApiKeySpec(name="a")])


def test_expiry_rounded_to_the_hour_is_unchanged(rec, appsync, api_id):
    first = rec.reconcile([ApiKeySpec(name="k", expires=1700000000)], [])
    assert appsync.api_keys[api_id][first.items[0]["id"]]["expires"] == 1699999200

    second = rec.reconcile([ApiKeySpec(name="k", expires=1700000000)], first.items)
    assert [a.mode for a in second.actions] == [Mode.IGNORE]
    moved = rec.reconcile([ApiKeySpec(name="k", expires=1700003600)], first.items)
    assert moved.actions[0].reason == "Field differs: expires"
    assert appsync.calls["update_api_key"] == 1

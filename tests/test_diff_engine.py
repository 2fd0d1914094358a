import pytest

from appsync_deployer.core.diff_engine import (
    Mode,
    PlannedAction,
    decide,
    duplicate_check,
    keyed_equals,
    normalize_list,
    set_difference,
    subset_equals,
    summarize,
)
from appsync_deployer.core.errors import ConfigurationError


def test_keyed_equals_reflexive_symmetric_and_scoped():
    a = {"name": "A", "type": "HTTP", "extra": 1}
    b = {"name": "A", "type": "HTTP", "extra": 2}
    assert keyed_equals(["name", "type"], a, a)
    assert keyed_equals(["name", "type"], a, b) and keyed_equals(["name", "type"], b, a)
    assert not keyed_equals(["extra"], a, b)


def test_keyed_equals_missing_equals_none():
    assert keyed_equals(["description"], {"description": None}, {})


def test_set_difference_by_key_projection():
    prior = [{"name": "f1", "dataSource": "A"}, {"name": "f2", "dataSource": "A"}]
    desired = [{"name": "f2", "dataSource": "A", "functionId": "x"}]
    assert set_difference(["name", "dataSource"], prior, desired) == [{"name": "f1", "dataSource": "A"}]
    assert set_difference(["name"], prior, prior) == []


def test_duplicate_check_fails_only_on_shared_projection():
    duplicate_check(["type", "field"], [{"type": "Query", "field": "a"}, {"type": "Query", "field": "b"}])
    with pytest.raises(ConfigurationError) as exc:
        duplicate_check(
            ["type", "field"],
            [{"type": "Query", "field": "a"}, {"type": "Query", "field": "a", "dataSource": "X"}],
            "mapping template",
        )
    assert "Duplicate mapping template found" in str(exc.value)


@pytest.mark.parametrize("value,expected", [(None, []), ("a", ["a"]), (["a", "b"], ["a", "b"]), (("a",), ["a"])])
def test_normalize_list(value, expected):
    assert normalize_list(value) == expected


def test_decide_modes():
    desired = {"name": "A", "type": "HTTP"}
    assert decide(desired, None, compare_keys=["type"]).mode is Mode.CREATE
    assert decide(desired, {"name": "A", "type": "HTTP", "arn": "x"}, compare_keys=["type"]).mode is Mode.IGNORE
    decision = decide(desired, {"name": "A", "type": "AWS_LAMBDA"}, compare_keys=["type"])
    assert decision.mode is Mode.UPDATE and decision.reason == "Field differs: type"


def test_create_action_cannot_carry_identifier():
    with pytest.raises(ValueError):
        PlannedAction(kind="function", key=("f",), mode=Mode.CREATE, identifier="fn-1")


def test_subset_equals_ignores_provider_defaults():
    desired = {"tableName": "t", "awsRegion": "us-east-1"}
    remote = {"tableName": "t", "awsRegion": "us-east-1", "versioned": False}
    assert subset_equals(desired, remote)
    assert not subset_equals({"tableName": "other"}, remote)
    assert not subset_equals({"tableName": "t"}, None)


def test_summarize_counts_every_mode():
    actions = [
        PlannedAction("dataSource", ("A",), Mode.CREATE),
        PlannedAction("dataSource", ("B",), Mode.IGNORE, identifier="arn"),
        PlannedAction("dataSource", ("C",), Mode.IGNORE, identifier="arn"),
    ]
    assert summarize(actions) == {"create": 1, "update": 0, "ignore": 2, "delete": 0}

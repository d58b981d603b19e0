import pytest

from npdetect.plugintypes import (
    ConditionStatus,
    CustomRule,
    ProblemType,
    Result,
    Status,
)


def test_from_dict_full():
    rule = CustomRule.from_dict(
        {
            "type": "permanent",
            "condition": "DiskBroken",
            "reason": "DiskFailed",
            "path": "/usr/bin/check-disk",
            "args": ["--all"],
            "timeout": "3s",
        }
    )
    assert rule == CustomRule(
        type=ProblemType.PERMANENT,
        condition="DiskBroken",
        reason="DiskFailed",
        path="/usr/bin/check-disk",
        args=["--all"],
        timeout_string="3s",
        timeout=None,
    )


def test_from_dict_defaults():
    rule = CustomRule.from_dict({})
    assert rule == CustomRule()
    assert rule.args == []
    assert rule.type is None
    assert rule.timeout_string is None


def test_from_dict_null_args():
    rule = CustomRule.from_dict({"type": "temporary", "args": None})
    assert rule.type is ProblemType.TEMPORARY
    assert rule.args == []


@pytest.mark.parametrize(
    "data",
    [
        {"type": "sometimes"},
        {"args": "not-a-list"},
        {"args": [1, 2]},
        {"timeout": 5},
        {"path": 7},
        ["not", "a", "mapping"],
    ],
)
def test_from_dict_rejects_bad_input(data):
    with pytest.raises(ValueError):
        CustomRule.from_dict(data)


@pytest.mark.parametrize(
    "code, expected",
    [(0, Status.OK), (1, Status.NON_OK), (2, Status.UNKNOWN)],
)
def test_result_status_from_exit_code(code, expected):
    rule = CustomRule(path="/bin/check")
    result = Result(rule=rule, exit_status=Status(code), message="msg")
    assert result.exit_status is expected
    assert result.rule is rule


def test_condition_status_values_parse():
    assert ConditionStatus("True") is ConditionStatus.TRUE
    assert ConditionStatus("Unknown") is ConditionStatus.UNKNOWN
    with pytest.raises(ValueError):
        ConditionStatus("true")
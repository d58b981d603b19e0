import time
from datetime import datetime, timedelta, timezone

import pytest

from npdetect.conditions import RESYNC_PERIOD, ConditionManager, RealClock
from npdetect.plugintypes import Condition, ConditionStatus
from npdetect.problemclient import FakeProblemClient, to_node_condition

HEARTBEAT_PERIOD = 60.0
BASE_TIME = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, start: datetime) -> None:
        self._now = start

    def now(self) -> datetime:
        return self._now

    def since(self, moment: datetime) -> float:
        return (self._now - moment).total_seconds()

    def step(self, seconds: float) -> None:
        self._now += timedelta(seconds=seconds)


def new_test_manager():
    client = FakeProblemClient()
    clock = FakeClock(BASE_TIME)
    manager = ConditionManager(client, clock, HEARTBEAT_PERIOD)
    return manager, client, clock


def new_test_condition(condition_type: str, transition: datetime = BASE_TIME) -> Condition:
    return Condition(
        type=condition_type,
        status=ConditionStatus.TRUE,
        transition=transition,
        reason="TestReason",
        message="test message",
    )


def test_need_updates():
    m, _, _ = new_test_manager()

    c = new_test_condition("TestCondition", BASE_TIME)
    m.update_condition(c)
    assert m.need_updates() is True
    assert m.conditions[c.type] == c

    # Same condition again does not need an update.
    m.update_condition(c)
    assert m.need_updates() is False
    assert m.conditions[c.type] == c

    # Same condition with a different timestamp needs an update.
    c = new_test_condition("TestCondition", BASE_TIME + timedelta(microseconds=1))
    m.update_condition(c)
    assert m.need_updates() is True
    assert m.conditions[c.type] == c

    # A new condition needs an update.
    c = new_test_condition("TestConditionNew", BASE_TIME + timedelta(seconds=2))
    m.update_condition(c)
    assert m.need_updates() is True
    assert m.conditions[c.type] == c


def test_get_conditions():
    m, _, _ = new_test_manager()
    assert m.get_conditions() == []
    c1 = new_test_condition("TestCondition1")
    c2 = new_test_condition("TestCondition2")
    m.update_condition(c1)
    m.update_condition(c2)
    assert m.need_updates() is True
    conditions = m.get_conditions()
    assert c1 in conditions
    assert c2 in conditions
    assert len(conditions) == 2


def test_updates_are_not_visible_before_need_updates():
    m, _, _ = new_test_manager()
    m.update_condition(new_test_condition("TestCondition"))
    assert m.get_conditions() == []


def test_resync():
    m, client, clock = new_test_manager()
    condition = new_test_condition("TestCondition")
    m.conditions = {condition.type: condition}
    m.sync()
    client.assert_conditions([to_node_condition(condition)])

    assert m.need_resync() is False
    clock.step(RESYNC_PERIOD)
    assert m.need_resync() is False

    client.inject_error("set_conditions", RuntimeError("injected error"))
    m.sync()

    assert m.need_resync() is False
    clock.step(RESYNC_PERIOD)
    assert m.need_resync() is True


def test_heartbeat():
    m, client, clock = new_test_manager()
    condition = new_test_condition("TestCondition")
    m.conditions = {condition.type: condition}
    m.sync()
    client.assert_conditions([to_node_condition(condition)])

    assert m.need_heartbeat() is False
    clock.step(HEARTBEAT_PERIOD)
    assert m.need_heartbeat() is True


def test_sync_records_latest_try():
    m, _, clock = new_test_manager()
    clock.step(5)
    m.sync()
    assert m.latest_try == BASE_TIME + timedelta(seconds=5)
    assert m.resync_needed is False


def test_fresh_manager_needs_heartbeat():
    m, _, _ = new_test_manager()
    assert m.need_heartbeat() is True


def test_real_clock_since():
    clock = RealClock()
    earlier = clock.now() - timedelta(seconds=5)
    assert clock.since(earlier) >= 5.0
    assert clock.now().tzinfo is not None and clock.now().utcoffset() == timedelta(0)


def test_background_loop_pushes_conditions():
    client = FakeProblemClient()
    manager = ConditionManager(client, RealClock(), HEARTBEAT_PERIOD, update_period=0.01)
    condition = new_test_condition("LoopCondition")
    manager.update_condition(condition)
    manager.start()
    try:
        deadline = time.monotonic() + 5
        got = []
        while time.monotonic() < deadline:
            got = client.get_conditions(["LoopCondition"])
            if got:
                break
            time.sleep(0.01)
    finally:
        manager.stop()
    assert got == [to_node_condition(condition)]


@pytest.mark.parametrize("steps", [0.0, RESYNC_PERIOD - 1])
def test_no_resync_without_failure(steps):
    m, _, clock = new_test_manager()
    m.sync()
    clock.step(steps)
    assert m.need_resync() is False
"""Keeps node conditions in sync with the API server without flooding it."""

from __future__ import annotations

import logging
import threading
from dataclasses import replace
from datetime import datetime, timezone
from typing import Protocol

from npdetect.plugintypes import ZERO_TIME, Condition
from npdetect.problemclient import NodeCondition, to_node_condition

# How often the manager checks for condition updates, in seconds.
UPDATE_PERIOD = 1.0
# How long after a failed sync the manager retries, in seconds.
RESYNC_PERIOD = 10.0

log = logging.getLogger(__name__)


class Clock(Protocol):
    def now(self) -> datetime: ...

    def since(self, moment: datetime) -> float: ...


class ConditionClient(Protocol):
    def set_conditions(self, conditions: list[NodeCondition]) -> None: ...


class RealClock:
    """Wall clock in UTC."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)

    def since(self, moment: datetime) -> float:
        """Seconds elapsed since ``moment``."""
        return (self.now() - moment).total_seconds()


class ConditionManager:
    """Synchronizes node conditions with the API server through a problem client.

    Updates are pushed as soon as they are noticed (checked every update
    period), a failed sync is retried after the resync period, and all
    conditions are pushed again at least once per heartbeat period so nobody
    else can change them for long.
    """

    def __init__(
        self,
        client: ConditionClient,
        clock: Clock | None = None,
        heartbeat_period: float = 300.0,
        *,
        update_period: float = UPDATE_PERIOD,
    ) -> None:
        self._client = client
        self._clock: Clock = clock if clock is not None else RealClock()
        self.heartbeat_period = heartbeat_period
        self._update_period = update_period
        self._lock = threading.Lock()
        self._updates: dict[str, Condition] = {}
        self.conditions: dict[str, Condition] = {}
        self.latest_try: datetime = ZERO_TIME
        self.resync_needed = False
        self._stopping = threading.Event()
        self._thread: threading.Thread | None = None

    def start(self) -> None:
        """Start the background sync loop."""
        if self._thread is not None and self._thread.is_alive():
            return
        self._stopping.clear()
        self._thread = threading.Thread(
            target=self._sync_loop, name="condition-manager", daemon=True
        )
        self._thread.start()

    def stop(self) -> None:
        """Stop the background sync loop and wait for it to finish."""
        self._stopping.set()
        if self._thread is not None:
            self._thread.join()
            self._thread = None

    def update_condition(self, condition: Condition) -> None:
        """Queue ``condition``; a newer one of the same type replaces it."""
        with self._lock:
            self._updates[condition.type] = replace(condition)

    def get_conditions(self) -> list[Condition]:
        """All conditions currently maintained."""
        with self._lock:
            return [replace(c) for c in self.conditions.values()]

    def _sync_loop(self) -> None:
        while not self._stopping.wait(self._update_period):
            if self.need_updates() or self.need_resync() or self.need_heartbeat():
                self.sync()

    def need_updates(self) -> bool:
        """Apply queued updates; True if any of them changed a condition."""
        with self._lock:
            changed = False
            for condition_type, update in self._updates.items():
                if self.conditions.get(condition_type) != update:
                    changed = True
                    self.conditions[condition_type] = update
            self._updates.clear()
            return changed

    def need_resync(self) -> bool:
        """True when the last sync failed and the resync period has passed."""
        return self.resync_needed and self._clock.since(self.latest_try) >= RESYNC_PERIOD

    def need_heartbeat(self) -> bool:
        """True when the heartbeat period has passed since the last sync."""
        return self._clock.since(self.latest_try) >= self.heartbeat_period

    def sync(self) -> None:
        """Push all conditions to the API server; a failure schedules a resync."""
        self.latest_try = self._clock.now()
        self.resync_needed = False
        with self._lock:
            conditions = [to_node_condition(c) for c in self.conditions.values()]
        try:
            self._client.set_conditions(conditions)
        except Exception as err:
            log.error("failed to update node conditions: %s", err)
            self.resync_needed = True
"""Shared fixtures for netguard tests."""

from __future__ import annotations

import time

import pytest

from netguard import NetGuard
from netguard.exceptions import RulesetToolBusyError, RulesetToolError, SchedulingFailureError
from netguard.rollback.coordinator import TransactionCoordinator
from netguard.rollback.store import TransactionStore
from netguard.rollback.watchdog import BaseWatchdog
from netguard.ruleset.memory import MemoryRulesetTool


class FakeClock:
    """A clock the test moves by hand. Starts at the current whole second."""

    def __init__(self, start: float | None = None) -> None:
        self.now = float(int(time.time())) if start is None else start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingWatchdog(BaseWatchdog):
    """Watchdog that records arm/cancel calls and can be fired by hand."""

    name = "recording"

    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.armed: list[tuple[float, str]] = []
        self.cancelled = 0
        self._fire = None

    def bind(self, fire) -> None:
        self._fire = fire

    def arm(self, deadline: float, transaction_id: str) -> None:
        if self.fail:
            raise SchedulingFailureError("systemd-run not available")
        self.armed.append((deadline, transaction_id))

    def cancel(self) -> None:
        self.cancelled += 1

    def fire(self):
        return self._fire()


class FlakyTool(MemoryRulesetTool):
    """Memory tool whose dump, load or apply can be made to fail."""

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.fail_dump = False
        self.fail_load = False
        self.fail_persist = False
        self.fail_apply_on: str | None = None
        self.busy_loads = 0
        self.load_attempts = 0

    def dump(self) -> bytes:
        if self.fail_dump:
            raise RulesetToolError("iptables-save exited with 1: permission denied")
        return super().dump()

    def load(self, data: bytes) -> None:
        self.load_attempts += 1
        if self.busy_loads > 0:
            self.busy_loads -= 1
            raise RulesetToolBusyError("iptables-restore exited with 4: xtables lock")
        if self.fail_load:
            raise RulesetToolError("iptables-restore exited with 2: line 3 failed")
        super().load(data)

    def persist(self) -> None:
        if self.fail_persist:
            raise RulesetToolError("netfilter-persistent exited with 1")
        super().persist()

    def apply(self, argv: list[str]) -> None:
        if self.fail_apply_on and self.fail_apply_on in argv:
            raise RulesetToolError(f"iptables: rejected {argv!r}", command=argv)
        super().apply(argv)


def set_input_policy(policy: str):
    """A minimal mutation: set the filter/INPUT policy."""

    def mutate(tool):
        tool.apply(["iptables", "-P", "INPUT", policy])

    return mutate


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def watchdog() -> RecordingWatchdog:
    return RecordingWatchdog()


@pytest.fixture
def tool() -> FlakyTool:
    return FlakyTool()


@pytest.fixture
def store(tmp_path) -> TransactionStore:
    return TransactionStore(str(tmp_path / "state"), lock_timeout=5.0)


@pytest.fixture
def coordinator(store, tool, watchdog, clock) -> TransactionCoordinator:
    """A coordinator with a 300s window, fake clock and recording watchdog."""
    return TransactionCoordinator(
        store=store,
        tool=tool,
        watchdog=watchdog,
        window_seconds=300,
        clock=clock,
        retry_delay=0.0,
    )


@pytest.fixture
def guard_config(tmp_path) -> dict:
    return {
        "transaction": {"state_dir": str(tmp_path / "guard"), "window_seconds": 300},
        "ruleset": {"tool": "memory", "retry_delay": 0.0},
        "observability": {"exporters": []},
    }


@pytest.fixture
def guard(guard_config, watchdog, clock) -> NetGuard:
    """A NetGuard in mock mode with a recording watchdog."""
    return NetGuard.from_dict(guard_config, watchdog=watchdog, clock=clock)

"""
Rollback Watchdog
~~~~~~~~~~~~~~~~~

Schedules the unattended rollback of a pending change. The detached
backends run outside the API process, so a change that cuts the API
off from the network is still undone.

A watchdog never decides anything itself: when it fires it runs
``netguard expire`` (or the bound callback), which re-reads the marker
under the store lock. Re-arming therefore needs no cancellation; an
older watchdog finds a later deadline and does nothing.
"""

from __future__ import annotations

import logging
import math
import subprocess
import sys
import threading
import time
from abc import ABC, abstractmethod
from collections.abc import Callable

from netguard.exceptions import NetGuardError, SchedulingFailureError

__all__ = [
    "BaseWatchdog",
    "ProcessWatchdog",
    "SystemdWatchdog",
    "ThreadWatchdog",
    "CompositeWatchdog",
    "netguard_command",
]

logger = logging.getLogger(__name__)


def netguard_command(config_path: str, python: str | None = None) -> list[str]:
    """The argv prefix that runs the netguard CLI against ``config_path``."""
    return [python or sys.executable, "-m", "netguard", "--config", config_path]


class BaseWatchdog(ABC):
    """
    Abstract base class for watchdog backends.

    Subclasses must implement arm(); bind() and cancel() are optional.
    """

    name: str = "base"

    @abstractmethod
    def arm(self, deadline: float, transaction_id: str) -> None:
        """
        Schedule the expiry check for ``deadline`` (Unix time).

        Raises:
            SchedulingFailureError: If the check could not be scheduled.
        """
        ...

    def bind(self, fire: Callable[[], object]) -> None:
        """Give in-process backends the callback to run on expiry."""

    def cancel(self) -> None:
        """Drop in-process timers. Detached timers are left to no-op."""

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} name={self.name!r}>"


class ProcessWatchdog(BaseWatchdog):
    """
    Spawns ``netguard watchdog --deadline ...`` in its own session.

    The child sleeps until the deadline and then runs the expiry check.
    It survives the API process exiting or being restarted.
    """

    name = "process"

    def __init__(self, command: list[str]) -> None:
        self._command = command

    def arm(self, deadline: float, transaction_id: str) -> None:
        argv = [
            *self._command,
            "watchdog",
            "--deadline",
            repr(deadline),
            "--transaction-id",
            transaction_id,
        ]
        try:
            proc = subprocess.Popen(
                argv,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                close_fds=True,
                start_new_session=True,
            )
        except OSError as exc:
            raise SchedulingFailureError(
                f"Could not spawn watchdog process: {exc}"
            ) from exc
        logger.info(
            "Armed watchdog process %d for transaction %s", proc.pid, transaction_id
        )


class SystemdWatchdog(BaseWatchdog):
    """
    Schedules ``netguard expire`` as a transient systemd timer.

    The timer is owned by systemd, not by the API process.
    """

    name = "systemd"

    def __init__(
        self,
        command: list[str],
        sudo: bool = False,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._command = command
        self._sudo = sudo
        self._clock = clock

    def arm(self, deadline: float, transaction_id: str) -> None:
        delay = max(1, math.ceil(deadline - self._clock()))
        unit = f"netguard-rollback-{transaction_id[:8]}-{int(deadline)}"
        argv = [
            *(["sudo", "-n"] if self._sudo else []),
            "systemd-run",
            f"--unit={unit}",
            f"--on-active={delay}s",
            "--timer-property=AccuracySec=1s",
            "--collect",
            *self._command,
            "expire",
        ]
        try:
            proc = subprocess.run(
                argv,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
                timeout=15,
                check=False,
            )
        except (OSError, subprocess.TimeoutExpired) as exc:
            raise SchedulingFailureError(f"systemd-run could not run: {exc}") from exc
        if proc.returncode != 0:
            raise SchedulingFailureError(
                f"systemd-run exited with {proc.returncode}: {(proc.stdout or '').strip()}"
            )
        logger.info("Armed systemd timer %s in %ds", unit, delay)


class ThreadWatchdog(BaseWatchdog):
    """
    In-process timer. Redundant layer only: it dies with the API process.
    """

    name = "thread"

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._fire: Callable[[], object] | None = None
        self._timer: threading.Timer | None = None
        self._lock = threading.Lock()

    def bind(self, fire: Callable[[], object]) -> None:
        self._fire = fire

    def arm(self, deadline: float, transaction_id: str) -> None:
        if self._fire is None:
            raise SchedulingFailureError("Thread watchdog has no expiry callback bound")
        delay = max(0.0, deadline - self._clock())
        timer = threading.Timer(delay, self._run, args=(transaction_id,))
        timer.daemon = True
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
            self._timer = timer
        timer.start()
        logger.debug("Armed in-process timer for %s in %.1fs", transaction_id, delay)

    def _run(self, transaction_id: str) -> None:
        if self._fire is None:
            return
        try:
            self._fire()
        except NetGuardError:
            logger.exception(
                "In-process watchdog for transaction %s failed", transaction_id
            )

    def cancel(self) -> None:
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None


class CompositeWatchdog(BaseWatchdog):
    """
    A required detached backend plus optional redundant layers.

    Only the primary's failure counts as a scheduling failure; a failing
    redundant layer is logged and ignored.
    """

    name = "composite"

    def __init__(self, primary: BaseWatchdog, redundant: list[BaseWatchdog] | None = None) -> None:
        self._primary = primary
        self._redundant = list(redundant or [])

    @property
    def primary(self) -> BaseWatchdog:
        return self._primary

    def bind(self, fire: Callable[[], object]) -> None:
        self._primary.bind(fire)
        for layer in self._redundant:
            layer.bind(fire)

    def arm(self, deadline: float, transaction_id: str) -> None:
        self._primary.arm(deadline, transaction_id)
        for layer in self._redundant:
            try:
                layer.arm(deadline, transaction_id)
            except SchedulingFailureError as exc:
                logger.warning("Redundant watchdog %s not armed: %s", layer.name, exc)

    def cancel(self) -> None:
        self._primary.cancel()
        for layer in self._redundant:
            layer.cancel()

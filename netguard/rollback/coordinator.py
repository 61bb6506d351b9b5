"""
Transaction Coordinator
~~~~~~~~~~~~~~~~~~~~~~~

Orchestrates commit-confirm transactions for risky ruleset changes:
snapshot before the first unconfirmed change, arm a watchdog, and
either keep the change on confirm or restore the snapshot on revert or
expiry.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import replace

from netguard.core.state import (
    BeginResult,
    ConfirmResult,
    PendingStatus,
    RevertResult,
    TransactionEvent,
    TransactionState,
    new_transaction_id,
)
from netguard.exceptions import (
    RestoreFailureError,
    RulesetToolError,
    SchedulingFailureError,
    TransactionError,
)
from netguard.observability.audit_log import AuditLog
from netguard.rollback.snapshot_manager import SnapshotManager
from netguard.rollback.store import StoreSession, TransactionStore
from netguard.rollback.watchdog import BaseWatchdog
from netguard.ruleset.base import BaseRulesetTool, call_with_retry

__all__ = ["TransactionCoordinator", "host_boot_time"]

logger = logging.getLogger(__name__)


def host_boot_time(stat_path: str = "/proc/stat") -> float | None:
    """Return the host boot time (Unix seconds) from /proc/stat, if available."""
    try:
        with open(stat_path, encoding="ascii") as f:
            for line in f:
                if line.startswith("btime "):
                    return float(line.split()[1])
    except (OSError, ValueError, IndexError):
        return None
    return None


class TransactionCoordinator:
    """
    Coordinates the commit-confirm protocol.

    Handles:
    - begin: snapshot (first change only), mutate, arm, write marker
    - confirm: drop the snapshot, keep and persist the change
    - revert: restore the snapshot now
    - status/expire: roll back once the deadline has passed

    At most one of {confirm, revert, watchdog expiry, status expiry}
    restores or clears a given transaction, because each of them
    decides and acts inside one exclusive store session. begin holds
    that session from the snapshot until the watchdog is armed.
    """

    def __init__(
        self,
        store: TransactionStore,
        tool: BaseRulesetTool,
        watchdog: BaseWatchdog,
        audit_log: AuditLog | None = None,
        snapshot_manager: SnapshotManager | None = None,
        window_seconds: int = 300,
        on_scheduling_failure: str = "abort",
        clock: Callable[[], float] = time.time,
        boot_time: float | None = None,
        retry_attempts: int = 3,
        retry_delay: float = 0.5,
    ) -> None:
        if on_scheduling_failure not in ("abort", "lazy"):
            raise ValueError(
                f"on_scheduling_failure must be 'abort' or 'lazy', got {on_scheduling_failure!r}"
            )
        self._store = store
        self._tool = tool
        self._watchdog = watchdog
        self._audit_log = audit_log or AuditLog(store)
        self._snapshots = snapshot_manager or SnapshotManager(
            tool, retry_attempts=retry_attempts, retry_delay=retry_delay
        )
        self._window = window_seconds
        self._on_scheduling_failure = on_scheduling_failure
        self._clock = clock
        self._boot_time = boot_time
        self._retry_attempts = retry_attempts
        self._retry_delay = retry_delay

        self._watchdog.bind(lambda: self.expire(actor="watchdog"))

    @property
    def tool(self) -> BaseRulesetTool:
        return self._tool

    @property
    def store(self) -> TransactionStore:
        return self._store

    @property
    def audit_log(self) -> AuditLog:
        return self._audit_log

    @property
    def window_seconds(self) -> int:
        return self._window

    # ── Protocol operations ───────────────────────────────────────

    def begin(
        self,
        mutate: Callable[[BaseRulesetTool], object],
        description: str = "",
        actor: str = "api",
    ) -> BeginResult:
        """
        Apply ``mutate`` as a protected change.

        The snapshot is only captured when no change is pending, so a
        rollback always returns to the last confirmed state. A failing
        mutation still leaves the transaction pending and armed.

        Args:
            mutate: Callable that applies the change through the tool.
            description: Human-readable summary for the journal.
            actor: Who requested the change.

        Returns:
            BeginResult; ``success`` reflects the mutation only.

        Raises:
            SnapshotFailureError: The current state could not be captured;
                nothing was mutated.
            TransactionError: A previous automatic rollback failed and has
                not been resolved by confirm or revert.
            SchedulingFailureError: The watchdog could not be armed and
                the policy is ``abort``; the change has been reverted.
        """
        # A stale transaction must roll back, not be extended.
        self.expire(actor=actor)

        # The session stays open until the watchdog is armed, so no confirm,
        # revert or expiry can land between the snapshot and the mutation.
        with self._store.session() as session:
            state = session.read_marker()
            if state.restore_error:
                raise TransactionError(
                    "A previous rollback failed and is unresolved; "
                    "revert or confirm before making new changes",
                    details={"transaction_id": state.transaction_id},
                )
            if state.pending:
                transaction_id = state.transaction_id or new_transaction_id()
                snapshot_id = state.snapshot_id
                started_at = state.started_at
                snapshot_taken = False
            else:
                transaction_id = new_transaction_id()
                snapshot_id = self._snapshots.capture(session, transaction_id)
                started_at = self._clock()
                snapshot_taken = True

            marker = TransactionState(
                pending=True,
                deadline=self._clock() + self._window,
                transaction_id=transaction_id,
                snapshot_id=snapshot_id,
                started_at=started_at,
                watchdog_armed=state.watchdog_armed if state.pending else False,
            )
            session.write_marker(marker)
            self._audit_log.record(
                "begin",
                transaction_id,
                actor=actor,
                detail=description if snapshot_taken else f"{description} (snapshot kept)",
                session=session,
            )

            error: str | None = None
            try:
                mutate(self._tool)
            except Exception as exc:
                error = str(exc)
                if isinstance(exc, (TransactionError, RulesetToolError)):
                    logger.error("Mutation %r failed: %s", description, exc)
                else:
                    logger.exception("Mutation %r raised unexpectedly", description)
                self._audit_log.record(
                    "mutation_failed", transaction_id, actor=actor, detail=error, session=session
                )

            deadline = self._clock() + self._window
            scheduling_error = self._arm(session, transaction_id, deadline, actor)
            session.write_marker(
                replace(marker, deadline=deadline, watchdog_armed=scheduling_error is None)
            )

        if scheduling_error is not None and self._on_scheduling_failure == "abort":
            logger.error(
                "Watchdog not armed for %s, reverting the change: %s",
                transaction_id,
                scheduling_error,
            )
            self.revert(actor=actor)
            raise scheduling_error

        logger.info(
            "Transaction %s pending until %.0f (%s)",
            transaction_id,
            deadline,
            description or "change",
        )
        return BeginResult(
            success=error is None,
            transaction_id=transaction_id,
            deadline=deadline,
            snapshot_taken=snapshot_taken,
            watchdog_armed=scheduling_error is None,
            error=error,
        )

    def _arm(
        self, session: StoreSession, transaction_id: str, deadline: float, actor: str
    ) -> SchedulingFailureError | None:
        try:
            self._watchdog.arm(deadline, transaction_id)
        except SchedulingFailureError as exc:
            self._audit_log.record(
                "scheduling_failed",
                transaction_id,
                actor=actor,
                detail=f"{exc} (policy: {self._on_scheduling_failure})",
                session=session,
            )
            if self._on_scheduling_failure == "lazy":
                logger.warning(
                    "Watchdog not armed for %s; relying on status-poll expiry only: %s",
                    transaction_id,
                    exc,
                )
            return exc
        return None

    def confirm(self, actor: str = "api") -> ConfirmResult:
        """
        Keep the pending change and drop the snapshot.

        Idempotent: with nothing pending this succeeds with
        ``confirmed=False``. The committed ruleset is then saved for the
        next boot; a failure there is reported but does not un-confirm.
        """
        with self._store.session() as session:
            state = session.read_marker()
            if not state.pending:
                return ConfirmResult(confirmed=False)
            session.clear_marker()
            self._snapshots.clear(session, state.snapshot_id)
            self._audit_log.record(
                "confirm", state.transaction_id, actor=actor, session=session
            )

        self._watchdog.cancel()
        logger.info("Transaction %s confirmed", state.transaction_id)
        self._audit_log.prune()

        try:
            call_with_retry(
                self._tool.persist,
                attempts=self._retry_attempts,
                delay=self._retry_delay,
                what="ruleset persist",
            )
        except RulesetToolError as exc:
            logger.error("Confirmed ruleset could not be persisted: %s", exc)
            self._audit_log.record(
                "persist_failed", state.transaction_id, actor=actor, detail=str(exc)
            )
            return ConfirmResult(
                confirmed=True,
                persisted=False,
                transaction_id=state.transaction_id,
                error=str(exc),
            )

        return ConfirmResult(
            confirmed=True, persisted=True, transaction_id=state.transaction_id
        )

    def revert(self, actor: str = "api") -> RevertResult:
        """
        Restore the snapshot now. Synchronous and idempotent.

        This is also the explicit retry after a failed automatic rollback.

        Raises:
            RestoreFailureError: The snapshot could not be loaded; the
                transaction stays pending with the error recorded.
        """
        state = self._rollback(actor=actor, only_if_expired=False)
        if state is None:
            return RevertResult(reverted=False)
        self._watchdog.cancel()
        return RevertResult(reverted=True, transaction_id=state.transaction_id)

    def expire(self, actor: str = "watchdog") -> bool:
        """
        Roll back if the pending change is past its deadline.

        Shared by the watchdog and by status(). Does nothing when idle,
        before the deadline, or once an automatic restore has failed.

        Returns:
            True if this call performed the rollback.
        """
        return self._rollback(actor=actor, only_if_expired=True) is not None

    def status(self) -> PendingStatus:
        """
        Report the pending change, expiring it first if overdue.

        A failed restore is reported as ``alert`` rather than raised, so
        the operator keeps seeing it on every poll.
        """
        try:
            self.expire(actor="status")
        except RestoreFailureError:
            logger.error("Lazy expiry could not restore the snapshot; see alert")

        state = self._store.read_marker()
        return PendingStatus(
            pending=state.pending,
            seconds_remaining=state.seconds_remaining(self._clock()),
            transaction_id=state.transaction_id,
            alert=state.restore_error,
        )

    def state(self) -> TransactionState:
        """Return the raw marker without expiring anything."""
        return self._store.read_marker()

    def history(self, limit: int | None = None) -> list[TransactionEvent]:
        """Return recent journal events, newest first."""
        return self._audit_log.query(limit)

    # ── Internals ─────────────────────────────────────────────────

    def _rollback(self, actor: str, only_if_expired: bool) -> TransactionState | None:
        failure: RestoreFailureError | None = None

        with self._store.session() as session:
            state = session.read_marker()
            if not state.pending:
                return None
            if only_if_expired and (
                not state.expired(self._clock()) or state.restore_error
            ):
                return None

            try:
                self._snapshots.restore(
                    session,
                    state.snapshot_id or "",
                    transaction_id=state.transaction_id or "",
                    actor=actor,
                )
            except RestoreFailureError as exc:
                session.record_restore_error(str(exc.args[0]))
                self._audit_log.record(
                    "restore_failed",
                    state.transaction_id,
                    actor=actor,
                    detail=str(exc.args[0]),
                    session=session,
                )
                failure = exc
            else:
                session.clear_marker()
                self._snapshots.clear(session, state.snapshot_id)
                self._audit_log.record(
                    self._rollback_kind(state, only_if_expired),
                    state.transaction_id,
                    actor=actor,
                    session=session,
                )

        if failure is not None:
            logger.error("%s", failure)
            raise failure

        logger.info(
            "Transaction %s rolled back by %s", state.transaction_id, actor
        )
        self._audit_log.prune()
        return state

    def _rollback_kind(self, state: TransactionState, expired: bool) -> str:
        if not expired:
            return "revert"
        if (
            self._boot_time is not None
            and state.started_at is not None
            and state.started_at < self._boot_time
        ):
            logger.warning(
                "Transaction %s began before the last host boot; "
                "restored its pre-boot snapshot",
                state.transaction_id,
            )
            return "expired_after_reboot"
        return "expire"

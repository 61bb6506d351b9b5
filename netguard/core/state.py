"""
Transaction State & Result Data Models
~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~

Defines the dataclasses that flow through the commit-confirm protocol:
TransactionState (the durable marker), the per-operation results, and
the journal event type.
"""

from __future__ import annotations

import math
import uuid
from dataclasses import asdict, dataclass, field
from datetime import UTC, datetime
from typing import Any

__all__ = [
    "TransactionState",
    "BeginResult",
    "ConfirmResult",
    "RevertResult",
    "PendingStatus",
    "TransactionEvent",
    "new_transaction_id",
]


def new_transaction_id() -> str:
    """Return a fresh transaction identifier."""
    return str(uuid.uuid4())


@dataclass(frozen=True)
class TransactionState:
    """
    The durable marker: either Idle or Pending with an absolute deadline.

    Only ``pending`` and ``deadline`` decide behaviour. The remaining
    fields annotate a pending transaction for operators and the journal.

    Attributes:
        pending: True while an unconfirmed change is live.
        deadline: Unix time after which the change is rolled back.
        transaction_id: Identifier shared by the marker, snapshot and events.
        snapshot_id: The snapshot captured before the first mutation.
        started_at: Unix time the transaction began.
        watchdog_armed: False when only lazy expiry protects the change.
        restore_error: Set when an automatic restore failed.
    """

    pending: bool = False
    deadline: float | None = None
    transaction_id: str | None = None
    snapshot_id: str | None = None
    started_at: float | None = None
    watchdog_armed: bool = True
    restore_error: str | None = None

    @classmethod
    def idle(cls) -> TransactionState:
        return cls()

    def expired(self, now: float) -> bool:
        """True when pending and the deadline has been reached."""
        return self.pending and self.deadline is not None and now >= self.deadline

    def seconds_remaining(self, now: float) -> int | None:
        """Whole seconds left before auto-rollback, or None when idle."""
        if not self.pending or self.deadline is None:
            return None
        return max(0, math.ceil(self.deadline - now))


@dataclass
class BeginResult:
    """Outcome of starting (or extending) a protected change."""

    success: bool
    transaction_id: str
    deadline: float
    pending: bool = True
    snapshot_taken: bool = True
    watchdog_armed: bool = True
    error: str | None = None


@dataclass
class ConfirmResult:
    """Outcome of confirming the pending change."""

    confirmed: bool
    persisted: bool = False
    transaction_id: str | None = None
    error: str | None = None

    @property
    def message(self) -> str:
        if not self.confirmed:
            return "No pending changes."
        if not self.persisted:
            return (
                "Changes confirmed, but saving them for the next boot failed: "
                f"{self.error}"
            )
        return "Changes confirmed and saved."


@dataclass
class RevertResult:
    """Outcome of reverting the pending change."""

    reverted: bool
    transaction_id: str | None = None

    @property
    def message(self) -> str:
        if not self.reverted:
            return "No pending changes."
        return "Changes reverted to previous state."


@dataclass
class PendingStatus:
    """What the operator sees when polling for a pending change."""

    pending: bool
    seconds_remaining: int | None = None
    transaction_id: str | None = None
    alert: str | None = None

    @property
    def message(self) -> str:
        if self.alert:
            return f"Automatic rollback failed: {self.alert}"
        if self.pending:
            return (
                "Changes pending confirmation. "
                f"Auto-revert in {self.seconds_remaining or 0} seconds."
            )
        return "No pending changes."

    def to_dict(self) -> dict[str, Any]:
        return {
            "pending": self.pending,
            "seconds_remaining": self.seconds_remaining,
            "message": self.message,
            "alert": self.alert,
        }


@dataclass
class TransactionEvent:
    """
    A single entry in the transaction journal.

    Attributes:
        kind: Event name, e.g. "begin", "confirm", "restore_failed".
        transaction_id: The transaction the event belongs to.
        actor: Who caused it: "api", "watchdog", "status", "cli".
        detail: Free-form human-readable detail.
        timestamp: When the event was recorded.
    """

    kind: str
    transaction_id: str | None = None
    actor: str = "api"
    detail: str = ""
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["timestamp"] = self.timestamp.isoformat()
        return data

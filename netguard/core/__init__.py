"""netguard core module — transaction state, results and the NetGuard class."""

from netguard.core.state import (
    BeginResult,
    ConfirmResult,
    PendingStatus,
    RevertResult,
    TransactionEvent,
    TransactionState,
)

__all__ = [
    "TransactionState",
    "BeginResult",
    "ConfirmResult",
    "RevertResult",
    "PendingStatus",
    "TransactionEvent",
]

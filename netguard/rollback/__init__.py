"""netguard rollback system — snapshot, marker, watchdog and coordinator."""

from netguard.rollback.coordinator import TransactionCoordinator
from netguard.rollback.snapshot_manager import SnapshotManager
from netguard.rollback.store import StoreSession, TransactionStore
from netguard.rollback.watchdog import (
    BaseWatchdog,
    CompositeWatchdog,
    ProcessWatchdog,
    SystemdWatchdog,
    ThreadWatchdog,
)

__all__ = [
    "TransactionCoordinator",
    "SnapshotManager",
    "TransactionStore",
    "StoreSession",
    "BaseWatchdog",
    "CompositeWatchdog",
    "ProcessWatchdog",
    "SystemdWatchdog",
    "ThreadWatchdog",
]

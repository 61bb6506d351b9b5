"""
netguard — Commit-confirm protection for router firewall changes.

netguard wraps risky firewall changes in a transaction that rolls
itself back unless the operator confirms it in time:

- Snapshot of the last confirmed ruleset before the first change
- Detached watchdog that restores the snapshot at the deadline
- Lazy expiry on every status poll as a second line of defence
- Durable marker and journal shared by the API, watchdog and CLI
- HTTP API and command-line interface

Quick Start::

    from netguard import NetGuard

    guard = NetGuard.from_config("/etc/netguard/netguard.yaml")

    result = guard.toggle_firewall(enabled=True)
    print(guard.pending().message)
    # Changes pending confirmation. Auto-revert in 300 seconds.

    guard.confirm()

:license: Apache-2.0
"""

from netguard.core.guard import NetGuard
from netguard.core.state import (
    BeginResult,
    ConfirmResult,
    PendingStatus,
    RevertResult,
    TransactionEvent,
    TransactionState,
)
from netguard.firewall.mutations import MutationPlan, best_effort, required
from netguard.observability.exporters.stdout_exporter import StdoutExporter
from netguard.rollback.coordinator import TransactionCoordinator
from netguard.rollback.watchdog import BaseWatchdog
from netguard.ruleset.base import BaseRulesetTool

__version__ = "0.1.0"
__license__ = "Apache-2.0"

__all__ = [
    # Main class
    "NetGuard",
    "TransactionCoordinator",
    # Data models
    "TransactionState",
    "BeginResult",
    "ConfirmResult",
    "RevertResult",
    "PendingStatus",
    "TransactionEvent",
    # Mutations
    "MutationPlan",
    "required",
    "best_effort",
    # Extension points
    "BaseRulesetTool",
    "BaseWatchdog",
    "StdoutExporter",
]

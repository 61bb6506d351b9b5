"""
Snapshot Manager
~~~~~~~~~~~~~~~~

Captures the live ruleset before a protected change and restores it on
rollback. Blobs are kept in the transaction store so they survive the
API process and are visible to the detached watchdog.
"""

from __future__ import annotations

import logging
import uuid

from netguard.exceptions import (
    RestoreFailureError,
    RulesetToolError,
    SnapshotFailureError,
)
from netguard.rollback.store import StoreSession
from netguard.ruleset.base import BaseRulesetTool, call_with_retry

__all__ = ["SnapshotManager"]

logger = logging.getLogger(__name__)


class SnapshotManager:
    """
    Manages capture, restore and removal of the rollback snapshot.

    All methods run inside a :class:`StoreSession` so that writing the
    snapshot and writing the marker commit together.
    """

    def __init__(
        self,
        tool: BaseRulesetTool,
        retry_attempts: int = 3,
        retry_delay: float = 0.5,
    ) -> None:
        self._tool = tool
        self._retry_attempts = retry_attempts
        self._retry_delay = retry_delay

    def capture(self, session: StoreSession, transaction_id: str) -> str:
        """
        Dump the live ruleset and store it.

        Args:
            session: Open store session.
            transaction_id: The transaction the snapshot protects.

        Returns:
            The new snapshot_id.

        Raises:
            SnapshotFailureError: If the tool cannot dump the ruleset.
        """
        try:
            data = call_with_retry(
                self._tool.dump,
                attempts=self._retry_attempts,
                delay=self._retry_delay,
                what="ruleset dump",
            )
        except RulesetToolError as exc:
            raise SnapshotFailureError(
                f"Could not capture the current ruleset: {exc}",
                details={"command": exc.command, "returncode": exc.returncode},
            ) from exc

        snapshot_id = str(uuid.uuid4())
        session.put_snapshot(snapshot_id, transaction_id, data)
        logger.info(
            "Captured snapshot %s (%d bytes) for transaction %s",
            snapshot_id,
            len(data),
            transaction_id,
        )
        return snapshot_id

    def restore(
        self,
        session: StoreSession,
        snapshot_id: str,
        transaction_id: str = "",
        actor: str = "",
    ) -> None:
        """
        Load the stored snapshot back into the live ruleset.

        Only a busy tool is retried; any other failure is raised at once.

        Raises:
            RestoreFailureError: If the snapshot is missing or the load fails.
        """
        data = session.get_snapshot(snapshot_id)
        if data is None:
            raise RestoreFailureError(
                f"Snapshot {snapshot_id} is missing from the store",
                transaction_id=transaction_id,
                actor=actor,
            )

        try:
            call_with_retry(
                lambda: self._tool.load(data),
                attempts=self._retry_attempts,
                delay=self._retry_delay,
                what="ruleset restore",
            )
        except RulesetToolError as exc:
            raise RestoreFailureError(
                f"Loading snapshot {snapshot_id} failed: {exc}",
                transaction_id=transaction_id,
                actor=actor,
                details={"command": exc.command, "returncode": exc.returncode},
            ) from exc

        logger.info("Restored snapshot %s", snapshot_id)

    def clear(self, session: StoreSession, snapshot_id: str | None) -> None:
        """Delete the stored snapshot. A missing snapshot is a no-op."""
        if snapshot_id is None:
            return
        session.delete_snapshot(snapshot_id)
        logger.debug("Cleared snapshot %s", snapshot_id)

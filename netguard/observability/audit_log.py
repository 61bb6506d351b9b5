"""
Audit Log
~~~~~~~~~

Journal of commit-confirm transitions. Entries are stored in the
transaction store, so events recorded by the detached watchdog process
are visible to the API, and forwarded to configured exporters.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from netguard.core.state import TransactionEvent

if TYPE_CHECKING:
    from netguard.rollback.store import StoreSession, TransactionStore

__all__ = ["AuditLog"]

logger = logging.getLogger(__name__)


class AuditLog:
    """
    Durable, queryable journal of transaction events.

    Every begin, confirm, revert, expiry and failure gets an entry here.
    """

    def __init__(self, store: TransactionStore, max_entries: int = 200) -> None:
        self._store = store
        self._max_entries = max_entries
        self._exporters: list[Any] = []

    def add_exporter(self, exporter: Any) -> None:
        """Add an exporter to receive journal events."""
        self._exporters.append(exporter)

    def record(
        self,
        kind: str,
        transaction_id: str | None = None,
        actor: str = "api",
        detail: str = "",
        session: StoreSession | None = None,
    ) -> TransactionEvent:
        """
        Write an event and forward it to exporters.

        When ``session`` is given the event commits together with the
        state change it describes.
        """
        event = TransactionEvent(
            kind=kind,
            transaction_id=transaction_id,
            actor=actor,
            detail=detail,
        )
        if session is not None:
            session.append_event(event)
        else:
            self._store.append_event(event)

        for exporter in self._exporters:
            try:
                exporter.export(event)
            except Exception as exc:
                logger.error(
                    "Exporter %s failed: %s",
                    type(exporter).__name__,
                    exc,
                )
        return event

    def query(self, limit: int | None = None) -> list[TransactionEvent]:
        """Return the newest events first."""
        return self._store.list_events(limit or self._max_entries)

    def prune(self) -> int:
        """Drop events beyond the configured history size."""
        return self._store.prune_events(self._max_entries)

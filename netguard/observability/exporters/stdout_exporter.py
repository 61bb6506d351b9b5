"""
Stdout Exporter
~~~~~~~~~~~~~~~

Streams the transaction journal to stdout as JSON lines, one per
event, so a router's log collector can alert on failed rollbacks.
"""

from __future__ import annotations

import json
import socket
import sys
from typing import Any, TextIO

from netguard.core.state import TransactionEvent

__all__ = ["StdoutExporter", "event_severity"]

_ERROR_KINDS = frozenset(
    {"restore_failed", "mutation_failed", "scheduling_failed", "persist_failed"}
)
_WARNING_KINDS = frozenset({"expired_after_reboot", "expire", "revert"})


def event_severity(kind: str) -> str:
    """Map a journal event kind to a log severity."""
    if kind in _ERROR_KINDS:
        return "error"
    if kind in _WARNING_KINDS:
        return "warning"
    return "info"


class StdoutExporter:
    """
    Writes each journal event as one JSON object per line.

    Lines carry the host name and a severity next to the event fields;
    an empty ``detail`` is left out.
    """

    def __init__(self, stream: TextIO | None = None, host: str | None = None) -> None:
        self._stream = stream or sys.stdout
        self._host = host or socket.gethostname()

    def format(self, event: TransactionEvent) -> dict[str, Any]:
        data: dict[str, Any] = {
            "timestamp": event.timestamp.isoformat(),
            "host": self._host,
            "severity": event_severity(event.kind),
            "kind": event.kind,
            "transaction_id": event.transaction_id,
            "actor": event.actor,
        }
        if event.detail:
            data["detail"] = event.detail
        return data

    def export(self, event: TransactionEvent) -> None:
        self._stream.write(json.dumps(self.format(event)) + "\n")
        self._stream.flush()

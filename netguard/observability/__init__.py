"""Observability — the transaction journal and its exporters."""

from netguard.observability.audit_log import AuditLog
from netguard.observability.exporters import StdoutExporter, create_exporter

__all__ = ["AuditLog", "StdoutExporter", "create_exporter"]

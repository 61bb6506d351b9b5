"""Journal exporters."""

from netguard.observability.exporters.stdout_exporter import StdoutExporter

__all__ = ["StdoutExporter", "create_exporter"]


def create_exporter(name: str) -> StdoutExporter:
    """Create an exporter by its configured name."""
    if name == "stdout":
        return StdoutExporter()
    raise ValueError(f"Unknown exporter: {name!r}")

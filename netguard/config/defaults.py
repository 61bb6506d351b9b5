"""
Default Configuration
~~~~~~~~~~~~~~~~~~~~~

Sensible defaults for netguard when no config file is provided.
"""

from __future__ import annotations

__all__ = ["DEFAULT_CONFIG"]

DEFAULT_CONFIG: dict = {
    "version": "1.0",
    "transaction": {
        "window_seconds": 300,
        "state_dir": "/var/lib/netguard",
        "lock_timeout": 30.0,
    },
    "watchdog": {
        "backend": "process",
        "in_process": True,
        "on_failure": "abort",
        "python": None,
    },
    "ruleset": {
        "tool": "iptables",
        "sudo": True,
        "wan_interface": "enp1s0",
        "lan_interfaces": ["enp2s0", "wlo1", "br0"],
        "retry_attempts": 3,
        "retry_delay": 0.5,
    },
    "observability": {
        "exporters": ["stdout"],
        "history_limit": 200,
    },
    "server": {
        "host": "0.0.0.0",
        "port": 8080,
    },
    "logging": {
        "level": "INFO",
    },
}

"""
NetGuard — Main Class
~~~~~~~~~~~~~~~~~~~~~

The primary entry point for netguard. Assembles the store, ruleset
tool, watchdog and coordinator from configuration and exposes the
protected firewall operations used by the HTTP API and the CLI.
"""

from __future__ import annotations

import logging
import os
import time
from collections.abc import Callable
from typing import Any

import yaml

from netguard.config.loader import load_config, load_config_from_dict
from netguard.config.schema import NetGuardConfig
from netguard.core.state import (
    BeginResult,
    ConfirmResult,
    PendingStatus,
    RevertResult,
    TransactionEvent,
)
from netguard.firewall import mutations, views
from netguard.firewall.mutations import MutationPlan
from netguard.observability.audit_log import AuditLog
from netguard.observability.exporters import create_exporter
from netguard.rollback.coordinator import TransactionCoordinator, host_boot_time
from netguard.rollback.store import TransactionStore
from netguard.rollback.watchdog import (
    BaseWatchdog,
    CompositeWatchdog,
    ProcessWatchdog,
    SystemdWatchdog,
    ThreadWatchdog,
    netguard_command,
)
from netguard.ruleset.base import BaseRulesetTool, call_with_retry
from netguard.ruleset.parser import Ruleset, parse_save
from netguard.ruleset.registry import create_tool

__all__ = ["NetGuard", "WATCHDOG_CONFIG_FILENAME"]

logger = logging.getLogger(__name__)

WATCHDOG_CONFIG_FILENAME = "watchdog-config.yaml"


def _write_watchdog_config(config: NetGuardConfig) -> str:
    """
    Write the effective configuration where a detached watchdog can read it.

    The watchdog must act on the same store and tool as the API even
    when the API was configured from a dict.
    """
    path = os.path.join(config.transaction.state_dir, WATCHDOG_CONFIG_FILENAME)
    data = config.model_dump(mode="json")
    # The watchdog process only expires; it never needs to arm again.
    data["watchdog"]["in_process"] = False
    data["observability"]["exporters"] = []
    with open(path, "w", encoding="utf-8") as f:
        yaml.safe_dump(data, f, sort_keys=False)
    logger.debug("Wrote watchdog configuration to %s", path)
    return path


def _build_watchdog(
    config: NetGuardConfig,
    config_path: str | None,
    clock: Callable[[], float],
) -> BaseWatchdog:
    path = os.path.abspath(config_path) if config_path else _write_watchdog_config(config)
    command = netguard_command(path, python=config.watchdog.python)

    primary: BaseWatchdog
    if config.watchdog.backend == "systemd":
        primary = SystemdWatchdog(command, sudo=config.ruleset.sudo, clock=clock)
    else:
        primary = ProcessWatchdog(command)

    redundant: list[BaseWatchdog] = []
    if config.watchdog.in_process:
        redundant.append(ThreadWatchdog(clock=clock))
    return CompositeWatchdog(primary, redundant)


class NetGuard:
    """
    Commit-confirm protection for firewall changes.

    Usage::

        guard = NetGuard.from_config("/etc/netguard/netguard.yaml")
        result = guard.toggle_firewall(enabled=True)
        # ... the operator checks they can still reach the box ...
        guard.confirm()
    """

    def __init__(
        self,
        config: NetGuardConfig | None = None,
        *,
        tool: BaseRulesetTool | None = None,
        watchdog: BaseWatchdog | None = None,
        clock: Callable[[], float] = time.time,
        config_path: str | None = None,
    ) -> None:
        self._config = config or load_config_from_dict({})
        cfg = self._config

        self._store = TransactionStore(
            cfg.transaction.state_dir, lock_timeout=cfg.transaction.lock_timeout
        )
        self._tool = tool or create_tool(cfg)

        self._audit_log = AuditLog(self._store, max_entries=cfg.observability.history_limit)
        for name in cfg.observability.exporters:
            self._audit_log.add_exporter(create_exporter(name))

        self._coordinator = TransactionCoordinator(
            store=self._store,
            tool=self._tool,
            watchdog=watchdog or _build_watchdog(cfg, config_path, clock),
            audit_log=self._audit_log,
            window_seconds=cfg.transaction.window_seconds,
            on_scheduling_failure=cfg.watchdog.on_failure,
            clock=clock,
            boot_time=host_boot_time(),
            retry_attempts=cfg.ruleset.retry_attempts,
            retry_delay=cfg.ruleset.retry_delay,
        )

    @classmethod
    def default(cls) -> NetGuard:
        """Create a NetGuard with the default configuration."""
        return cls(load_config_from_dict({}))

    @classmethod
    def from_config(cls, path: str, **kwargs: Any) -> NetGuard:
        """Create a NetGuard from a YAML configuration file."""
        return cls(load_config(path), config_path=path, **kwargs)

    @classmethod
    def from_dict(cls, data: dict[str, Any], **kwargs: Any) -> NetGuard:
        """Create a NetGuard from a configuration dictionary."""
        return cls(load_config_from_dict(data), **kwargs)

    @property
    def config(self) -> NetGuardConfig:
        return self._config

    @property
    def coordinator(self) -> TransactionCoordinator:
        return self._coordinator

    @property
    def tool(self) -> BaseRulesetTool:
        return self._tool

    # ── Commit-confirm protocol ───────────────────────────────────

    def apply(self, plan: MutationPlan, actor: str = "api") -> BeginResult:
        """Run a mutation plan as a protected change."""
        plan.retry_attempts = self._config.ruleset.retry_attempts
        plan.retry_delay = self._config.ruleset.retry_delay
        return self._coordinator.begin(plan, description=plan.description, actor=actor)

    def pending(self) -> PendingStatus:
        return self._coordinator.status()

    def confirm(self, actor: str = "api") -> ConfirmResult:
        return self._coordinator.confirm(actor=actor)

    def revert(self, actor: str = "api") -> RevertResult:
        return self._coordinator.revert(actor=actor)

    def expire(self, actor: str = "watchdog") -> bool:
        return self._coordinator.expire(actor=actor)

    def history(self, limit: int | None = None) -> list[TransactionEvent]:
        return self._coordinator.history(limit)

    # ── Firewall views ────────────────────────────────────────────

    def raw_rules(self) -> str:
        """The live ruleset in iptables-save format."""
        data = call_with_retry(
            self._tool.dump,
            attempts=self._config.ruleset.retry_attempts,
            delay=self._config.ruleset.retry_delay,
            what="ruleset dump",
        )
        return data.decode(errors="replace")

    def ruleset(self) -> Ruleset:
        return parse_save(self.raw_rules())

    def firewall_status(self) -> tuple[views.FirewallStatus, PendingStatus]:
        """Current policies plus the pending-change status (which may expire it)."""
        pending = self.pending()
        return views.firewall_status(self.ruleset()), pending

    def port_forwards(self) -> list[views.PortForward]:
        return views.port_forwards(self.ruleset())

    def blocked_ips(self) -> list[views.BlockedIP]:
        return views.blocked_ips(self.ruleset())

    def dmz(self) -> views.DmzStatus:
        return views.dmz_status(self.ruleset())

    # ── Protected firewall changes ────────────────────────────────

    def toggle_firewall(self, enabled: bool) -> BeginResult:
        return self.apply(
            mutations.toggle_firewall(
                enabled,
                lan_interfaces=self._config.ruleset.lan_interfaces,
                wan_interface=self._config.ruleset.wan_interface,
            )
        )

    def add_port_forward(
        self, protocol: str, external_port: int, internal_ip: str, internal_port: int
    ) -> BeginResult:
        return self.apply(
            mutations.add_port_forward(
                protocol,
                external_port,
                internal_ip,
                internal_port,
                wan_interface=self._config.ruleset.wan_interface,
            )
        )

    def remove_port_forward(
        self, protocol: str, external_port: int, internal_ip: str, internal_port: int
    ) -> BeginResult:
        return self.apply(
            mutations.remove_port_forward(
                protocol,
                external_port,
                internal_ip,
                internal_port,
                wan_interface=self._config.ruleset.wan_interface,
            )
        )

    def block_ip(self, ip: str) -> BeginResult:
        return self.apply(mutations.block_ip(ip))

    def unblock_ip(self, ip: str) -> BeginResult:
        return self.apply(mutations.unblock_ip(ip))

    def set_dmz(self, enabled: bool, target_ip: str | None = None) -> BeginResult:
        current = self.dmz()
        return self.apply(
            mutations.set_dmz(
                enabled,
                target_ip,
                wan_interface=self._config.ruleset.wan_interface,
                current_target=current.target_ip if current.enabled else None,
            )
        )

    # ── HTTP server ───────────────────────────────────────────────

    def serve(self, host: str | None = None, port: int | None = None) -> None:
        """
        Start the HTTP API server.

        Args:
            host: Bind address (defaults to server.host).
            port: Port number (defaults to server.port).
        """
        import uvicorn

        from netguard.api.server import create_app

        app = create_app(self)
        uvicorn.run(
            app,
            host=host or self._config.server.host,
            port=port or self._config.server.port,
        )

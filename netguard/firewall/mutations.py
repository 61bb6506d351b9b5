"""
Firewall Mutations
~~~~~~~~~~~~~~~~~~

Builders for the protected firewall changes. Each change is a
:class:`MutationPlan`: an ordered list of iptables commands where some
steps are required and others are explicitly best-effort.

Best-effort steps are for commands whose failure is expected and
harmless, such as deleting a rule that may not exist. Their failures
are logged and ignored; a failing required step fails the whole plan.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from netguard.exceptions import MutationFailureError, RulesetToolError
from netguard.ruleset.base import BaseRulesetTool, call_with_retry

__all__ = [
    "Step",
    "MutationPlan",
    "required",
    "best_effort",
    "toggle_firewall",
    "add_port_forward",
    "remove_port_forward",
    "block_ip",
    "unblock_ip",
    "set_dmz",
]

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Step:
    """One command of a mutation plan."""

    argv: tuple[str, ...]
    best_effort: bool = False


def required(*argv: str) -> Step:
    """A step whose failure fails the plan."""
    return Step(argv=tuple(argv))


def best_effort(*argv: str) -> Step:
    """A step whose failure is logged and ignored."""
    return Step(argv=tuple(argv), best_effort=True)


@dataclass
class MutationPlan:
    """
    An ordered set of steps that implements one firewall change.

    Calling the plan with a tool runs it, which makes a plan directly
    usable as the ``mutate`` argument of ``TransactionCoordinator.begin``.
    """

    description: str
    steps: list[Step] = field(default_factory=list)
    retry_attempts: int = 3
    retry_delay: float = 0.5

    def __call__(self, tool: BaseRulesetTool) -> int:
        return self.run(tool)

    def run(self, tool: BaseRulesetTool) -> int:
        """
        Apply every step in order.

        Returns:
            The number of steps that applied successfully.

        Raises:
            MutationFailureError: On the first failing required step.
                Steps before it stay applied.
        """
        applied = 0
        for step in self.steps:
            argv = list(step.argv)
            try:
                call_with_retry(
                    lambda: tool.apply(argv),
                    attempts=self.retry_attempts,
                    delay=self.retry_delay,
                    what=argv[0],
                )
            except RulesetToolError as exc:
                if step.best_effort:
                    logger.debug("Best-effort step %s skipped: %s", argv, exc)
                    continue
                raise MutationFailureError(
                    f"{self.description}: {exc}", step=argv
                ) from exc
            applied += 1
        return applied


def _iptables(*args: str, table: str | None = None) -> list[str]:
    prefix = ["iptables"] + (["-t", table] if table else [])
    return [*prefix, *args]


def toggle_firewall(
    enabled: bool,
    lan_interfaces: list[str],
    wan_interface: str,
) -> MutationPlan:
    """
    Switch the INPUT policy between default-deny and accept.

    Before setting DROP, allow rules for the LAN interfaces, loopback,
    established connections and DHCP renewals on the WAN are inserted
    at the top of INPUT so the management API stays reachable.
    """
    if not enabled:
        return MutationPlan(
            description="Disable firewall",
            steps=[required(*_iptables("-P", "INPUT", "ACCEPT"))],
        )

    allow_rules = [
        *[["-i", iface, "-j", "ACCEPT"] for iface in lan_interfaces],
        ["-i", "lo", "-j", "ACCEPT"],
        ["-m", "state", "--state", "ESTABLISHED,RELATED", "-j", "ACCEPT"],
        ["-i", wan_interface, "-p", "udp", "--dport", "68", "-j", "ACCEPT"],
    ]
    steps: list[Step] = []
    for position, rule in enumerate(allow_rules, start=1):
        # Drop an earlier copy so re-enabling does not stack duplicates.
        steps.append(best_effort(*_iptables("-D", "INPUT", *rule)))
        steps.append(best_effort(*_iptables("-I", "INPUT", str(position), *rule)))
    steps.append(required(*_iptables("-P", "INPUT", "DROP")))
    return MutationPlan(description="Enable firewall", steps=steps)


def _protocols(protocol: str) -> list[str]:
    protocol = protocol.lower()
    if protocol == "both":
        return ["tcp", "udp"]
    if protocol in ("tcp", "udp"):
        return [protocol]
    raise ValueError(f"Invalid protocol: {protocol!r}")


def _forward_rules(
    proto: str,
    external_port: int,
    internal_ip: str,
    internal_port: int,
    wan_interface: str,
) -> tuple[list[str], list[str]]:
    dnat = [
        "-i", wan_interface,
        "-p", proto,
        "--dport", str(external_port),
        "-j", "DNAT",
        "--to-destination", f"{internal_ip}:{internal_port}",
    ]
    accept = [
        "-p", proto,
        "-d", internal_ip,
        "--dport", str(internal_port),
        "-j", "ACCEPT",
    ]
    return dnat, accept


def add_port_forward(
    protocol: str,
    external_port: int,
    internal_ip: str,
    internal_port: int,
    wan_interface: str,
) -> MutationPlan:
    """DNAT ``external_port`` on the WAN to ``internal_ip:internal_port``."""
    steps: list[Step] = []
    for proto in _protocols(protocol):
        dnat, accept = _forward_rules(
            proto, external_port, internal_ip, internal_port, wan_interface
        )
        steps.append(required(*_iptables("-A", "PREROUTING", *dnat, table="nat")))
        steps.append(required(*_iptables("-A", "FORWARD", *accept)))
    return MutationPlan(
        description=f"Forward {protocol}/{external_port} to {internal_ip}:{internal_port}",
        steps=steps,
    )


def remove_port_forward(
    protocol: str,
    external_port: int,
    internal_ip: str,
    internal_port: int,
    wan_interface: str,
) -> MutationPlan:
    """Delete a port forward. Missing rules are ignored."""
    steps: list[Step] = []
    for proto in _protocols(protocol):
        dnat, accept = _forward_rules(
            proto, external_port, internal_ip, internal_port, wan_interface
        )
        steps.append(best_effort(*_iptables("-D", "PREROUTING", *dnat, table="nat")))
        steps.append(best_effort(*_iptables("-D", "FORWARD", *accept)))
    return MutationPlan(
        description=f"Remove forward {protocol}/{external_port}",
        steps=steps,
    )


def block_ip(ip: str) -> MutationPlan:
    """Drop all traffic from ``ip`` on INPUT and FORWARD."""
    return MutationPlan(
        description=f"Block {ip}",
        steps=[
            required(*_iptables("-I", "INPUT", "1", "-s", ip, "-j", "DROP")),
            required(*_iptables("-I", "FORWARD", "1", "-s", ip, "-j", "DROP")),
        ],
    )


def unblock_ip(ip: str) -> MutationPlan:
    """Remove the DROP rules for ``ip``. Missing rules are ignored."""
    return MutationPlan(
        description=f"Unblock {ip}",
        steps=[
            best_effort(*_iptables("-D", "INPUT", "-s", ip, "-j", "DROP")),
            best_effort(*_iptables("-D", "FORWARD", "-s", ip, "-j", "DROP")),
        ],
    )


def set_dmz(
    enabled: bool,
    target_ip: str | None,
    wan_interface: str,
    current_target: str | None = None,
) -> MutationPlan:
    """
    Point all unmatched WAN traffic at ``target_ip``, or clear the DMZ.

    The rules for ``current_target`` are removed first.
    """
    steps: list[Step] = []
    if current_target:
        steps.append(
            best_effort(
                *_iptables(
                    "-D", "PREROUTING",
                    "-i", wan_interface,
                    "-j", "DNAT",
                    "--to-destination", current_target,
                    table="nat",
                )
            )
        )
        steps.append(best_effort(*_iptables("-D", "FORWARD", "-d", current_target, "-j", "ACCEPT")))

    if enabled:
        if not target_ip:
            raise ValueError("target_ip is required to enable the DMZ")
        steps.append(
            required(
                *_iptables(
                    "-A", "PREROUTING",
                    "-i", wan_interface,
                    "-j", "DNAT",
                    "--to-destination", target_ip,
                    table="nat",
                )
            )
        )
        steps.append(required(*_iptables("-A", "FORWARD", "-d", target_ip, "-j", "ACCEPT")))
        description = f"Set DMZ to {target_ip}"
    else:
        description = "Disable DMZ"
    return MutationPlan(description=description, steps=steps)

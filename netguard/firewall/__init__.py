"""Firewall changes and views built on the ruleset tool."""

from netguard.firewall.mutations import (
    MutationPlan,
    Step,
    add_port_forward,
    best_effort,
    block_ip,
    remove_port_forward,
    required,
    set_dmz,
    toggle_firewall,
    unblock_ip,
)
from netguard.firewall.views import (
    BlockedIP,
    DmzStatus,
    FirewallStatus,
    PortForward,
    blocked_ips,
    dmz_status,
    firewall_status,
    port_forwards,
)

__all__ = [
    "MutationPlan",
    "Step",
    "required",
    "best_effort",
    "toggle_firewall",
    "add_port_forward",
    "remove_port_forward",
    "block_ip",
    "unblock_ip",
    "set_dmz",
    "FirewallStatus",
    "PortForward",
    "BlockedIP",
    "DmzStatus",
    "firewall_status",
    "port_forwards",
    "blocked_ips",
    "dmz_status",
]

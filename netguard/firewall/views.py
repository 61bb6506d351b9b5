"""
Firewall Views
~~~~~~~~~~~~~~

Read-only views over a ruleset dump: firewall status, port forwards,
blocked addresses and the DMZ target.
"""

from __future__ import annotations

from dataclasses import dataclass

from netguard.ruleset.parser import Ruleset, option_value

__all__ = [
    "FirewallStatus",
    "PortForward",
    "BlockedIP",
    "DmzStatus",
    "firewall_status",
    "port_forwards",
    "blocked_ips",
    "dmz_status",
]


@dataclass
class FirewallStatus:
    enabled: bool
    input_policy: str
    forward_policy: str
    output_policy: str


@dataclass
class PortForward:
    id: int
    protocol: str
    external_port: int
    internal_ip: str
    internal_port: int
    enabled: bool = True
    description: str = ""


@dataclass
class BlockedIP:
    ip: str
    description: str = ""


@dataclass
class DmzStatus:
    enabled: bool
    target_ip: str | None = None


def _strip_host_mask(address: str) -> str:
    """iptables-save prints single hosts as a.b.c.d/32."""
    if address.endswith("/32") or address.endswith("/128"):
        return address.rsplit("/", 1)[0]
    return address


def _split_destination(dest: str) -> tuple[str, int | None]:
    host, sep, port = dest.rpartition(":")
    if not sep or not port.isdigit():
        return dest, None
    return host, int(port)


def firewall_status(ruleset: Ruleset) -> FirewallStatus:
    """The firewall is enabled when INPUT defaults to DROP."""
    input_policy = ruleset.policy("filter", "INPUT")
    return FirewallStatus(
        enabled=input_policy == "DROP",
        input_policy=input_policy,
        forward_policy=ruleset.policy("filter", "FORWARD"),
        output_policy=ruleset.policy("filter", "OUTPUT"),
    )


def port_forwards(ruleset: Ruleset) -> list[PortForward]:
    """DNAT rules in nat/PREROUTING that match a destination port."""
    forwards: list[PortForward] = []
    for index, rule in enumerate(ruleset.chain("nat", "PREROUTING").rules, start=1):
        if option_value(rule, "-j") != "DNAT":
            continue
        dport = option_value(rule, "--dport")
        dest = option_value(rule, "--to-destination")
        if dport is None or dest is None or not dport.isdigit():
            continue
        internal_ip, internal_port = _split_destination(dest)
        forwards.append(
            PortForward(
                id=index,
                protocol=option_value(rule, "-p") or "all",
                external_port=int(dport),
                internal_ip=internal_ip,
                internal_port=internal_port or int(dport),
            )
        )
    return forwards


def blocked_ips(ruleset: Ruleset) -> list[BlockedIP]:
    """Sources dropped by a rule in filter/INPUT."""
    blocked: list[BlockedIP] = []
    for rule in ruleset.chain("filter", "INPUT").rules:
        if option_value(rule, "-j") != "DROP":
            continue
        source = option_value(rule, "-s")
        if source is None or source == "0.0.0.0/0":
            continue
        blocked.append(BlockedIP(ip=_strip_host_mask(source)))
    return blocked


def dmz_status(ruleset: Ruleset) -> DmzStatus:
    """The DMZ is a DNAT rule in nat/PREROUTING without a port match."""
    for rule in ruleset.chain("nat", "PREROUTING").rules:
        if option_value(rule, "-j") != "DNAT" or "--dport" in rule:
            continue
        dest = option_value(rule, "--to-destination")
        if dest:
            target_ip, _ = _split_destination(dest)
            return DmzStatus(enabled=True, target_ip=target_ip)
    return DmzStatus(enabled=False)

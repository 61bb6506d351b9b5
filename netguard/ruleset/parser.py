"""
Ruleset Parser
~~~~~~~~~~~~~~

Parses and renders the ``iptables-save`` text format. Both the live
iptables tool and the in-memory tool speak this format, so firewall
views are derived from a dump rather than from ``iptables -L`` output.
"""

from __future__ import annotations

import shlex
from dataclasses import dataclass, field

__all__ = ["Chain", "Ruleset", "parse_save", "render_save", "option_value", "BUILTIN_CHAINS"]

BUILTIN_CHAINS: dict[str, tuple[str, ...]] = {
    "filter": ("INPUT", "FORWARD", "OUTPUT"),
    "nat": ("PREROUTING", "INPUT", "OUTPUT", "POSTROUTING"),
}


@dataclass
class Chain:
    """One chain: its policy (None for user chains) and its rules in order."""

    policy: str | None = None
    rules: list[list[str]] = field(default_factory=list)


@dataclass
class Ruleset:
    """All tables of a dump, keyed by table then chain name."""

    tables: dict[str, dict[str, Chain]] = field(default_factory=dict)

    @classmethod
    def default(cls) -> Ruleset:
        """An empty ruleset with ACCEPT policies on the built-in chains."""
        return cls(
            tables={
                table: {name: Chain(policy="ACCEPT") for name in chains}
                for table, chains in BUILTIN_CHAINS.items()
            }
        )

    def chain(self, table: str, name: str) -> Chain:
        """Return the chain, or an empty one if it does not exist."""
        return self.tables.get(table, {}).get(name, Chain())

    def policy(self, table: str, name: str) -> str:
        return self.chain(table, name).policy or "UNKNOWN"


def option_value(tokens: list[str], flag: str) -> str | None:
    """Return the argument following ``flag`` in a rule, if present."""
    try:
        idx = tokens.index(flag)
    except ValueError:
        return None
    if idx + 1 < len(tokens):
        return tokens[idx + 1]
    return None


def parse_save(text: str) -> Ruleset:
    """
    Parse ``iptables-save`` output.

    Comment lines, packet counters and COMMIT markers are accepted and
    dropped. Rules outside a ``*table`` section raise ValueError.
    """
    ruleset = Ruleset()
    current: dict[str, Chain] | None = None

    for raw in text.splitlines():
        line = raw.strip()
        if not line or line.startswith("#"):
            continue
        if line.startswith("*"):
            current = ruleset.tables.setdefault(line[1:], {})
            continue
        if line == "COMMIT":
            current = None
            continue
        if current is None:
            raise ValueError(f"Line outside of a table section: {line!r}")
        if line.startswith(":"):
            parts = line[1:].split()
            name = parts[0]
            policy = parts[1] if len(parts) > 1 and parts[1] != "-" else None
            current[name] = Chain(policy=policy)
            continue
        if line.startswith("-A "):
            tokens = shlex.split(line)
            chain_name = tokens[1]
            current.setdefault(chain_name, Chain()).rules.append(tokens[2:])
            continue
        raise ValueError(f"Unrecognized ruleset line: {line!r}")

    return ruleset


def render_save(ruleset: Ruleset) -> str:
    """Render a ruleset in ``iptables-save`` format."""
    lines: list[str] = []
    for table, chains in ruleset.tables.items():
        lines.append(f"*{table}")
        for name, chain in chains.items():
            lines.append(f":{name} {chain.policy or '-'} [0:0]")
        for name, chain in chains.items():
            for rule in chain.rules:
                lines.append(f"-A {name} {shlex.join(rule)}")
        lines.append("COMMIT")
    return "\n".join(lines) + "\n"

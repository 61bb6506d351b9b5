"""
In-Memory Ruleset Tool
~~~~~~~~~~~~~~~~~~~~~~

A model of the iptables filter and nat tables that understands the
subset of ``iptables`` commands netguard issues. Used for mock mode
and tests.

When given a ``path`` the live ruleset is kept in that file, so the API
process and a detached watchdog process see the same state.
"""

from __future__ import annotations

import logging
import os
import threading

from netguard.exceptions import RulesetToolError
from netguard.ruleset.base import BaseRulesetTool
from netguard.ruleset.parser import Ruleset, parse_save, render_save

__all__ = ["MemoryRulesetTool"]

logger = logging.getLogger(__name__)


class MemoryRulesetTool(BaseRulesetTool):
    """
    Ruleset tool that simulates iptables.

    Supports ``-t``, ``-A``, ``-I [n]``, ``-D`` (by spec or number),
    ``-P`` and ``-F``. Deleting a rule that does not exist fails like
    iptables does.
    """

    name = "memory"

    def __init__(self, initial: str | None = None, path: str | None = None) -> None:
        self._path = path
        self._lock = threading.RLock()
        self._persisted: bytes | None = None
        self.dump_calls = 0
        self.load_calls = 0
        self.applied: list[list[str]] = []

        if path and os.path.exists(path):
            with open(path, encoding="utf-8") as f:
                self._ruleset = parse_save(f.read())
        elif initial is not None:
            self._ruleset = parse_save(initial)
        else:
            self._ruleset = Ruleset.default()
        self._save()

    # ── Persistence of the simulated live state ───────────────────

    def _reload(self) -> None:
        if self._path and os.path.exists(self._path):
            with open(self._path, encoding="utf-8") as f:
                self._ruleset = parse_save(f.read())

    def _save(self) -> None:
        if not self._path:
            return
        tmp = f"{self._path}.tmp"
        with open(tmp, "w", encoding="utf-8") as f:
            f.write(render_save(self._ruleset))
        os.replace(tmp, self._path)

    # ── Tool contract ─────────────────────────────────────────────

    @property
    def ruleset(self) -> Ruleset:
        with self._lock:
            self._reload()
            return self._ruleset

    @property
    def persisted(self) -> bytes | None:
        return self._persisted

    def dump(self) -> bytes:
        with self._lock:
            self._reload()
            self.dump_calls += 1
            return render_save(self._ruleset).encode()

    def load(self, data: bytes) -> None:
        try:
            ruleset = parse_save(data.decode())
        except (UnicodeDecodeError, ValueError) as exc:
            raise RulesetToolError(f"iptables-restore: invalid input: {exc}") from exc
        with self._lock:
            self.load_calls += 1
            self._ruleset = ruleset
            self._save()

    def persist(self) -> None:
        self._persisted = self.dump()

    def apply(self, argv: list[str]) -> None:
        with self._lock:
            self._reload()
            self._apply(list(argv))
            self.applied.append(list(argv))
            self._save()

    def _apply(self, argv: list[str]) -> None:
        if not argv or argv[0] != "iptables":
            raise RulesetToolError(f"Unsupported command: {argv!r}", command=argv)
        args = [a for a in argv[1:] if a != "-w"]

        table = "filter"
        if len(args) >= 2 and args[0] == "-t":
            table = args[1]
            args = args[2:]
        if not args:
            raise RulesetToolError("iptables: no command specified", command=argv)

        chains = self._ruleset.tables.get(table)
        if chains is None:
            raise RulesetToolError(
                f"iptables: table '{table}' does not exist", command=argv, returncode=3
            )

        op, rest = args[0], args[1:]

        if op == "-F":
            targets = [rest[0]] if rest else list(chains)
            for name in targets:
                self._chain(chains, name, argv).rules.clear()
            return

        if not rest:
            raise RulesetToolError(f"iptables: {op} requires a chain", command=argv)
        chain = self._chain(chains, rest[0], argv)
        spec = rest[1:]

        if op == "-P":
            if chain.policy is None or len(spec) != 1:
                raise RulesetToolError("iptables: bad policy command", command=argv, returncode=2)
            chain.policy = spec[0]
        elif op == "-A":
            chain.rules.append(spec)
        elif op == "-I":
            position = 0
            if spec and spec[0].isdigit():
                position = int(spec[0]) - 1
                spec = spec[1:]
            chain.rules.insert(min(position, len(chain.rules)), spec)
        elif op == "-D":
            if len(spec) == 1 and spec[0].isdigit():
                index = int(spec[0]) - 1
                if not 0 <= index < len(chain.rules):
                    raise RulesetToolError(
                        "iptables: Index of deletion too big.", command=argv, returncode=1
                    )
                del chain.rules[index]
            elif spec in chain.rules:
                chain.rules.remove(spec)
            else:
                raise RulesetToolError(
                    "iptables: Bad rule (does a matching rule exist in that chain?).",
                    command=argv,
                    returncode=1,
                )
        else:
            raise RulesetToolError(f"iptables: unsupported option {op!r}", command=argv)

    @staticmethod
    def _chain(chains: dict, name: str, argv: list[str]):
        if name not in chains:
            raise RulesetToolError(
                "iptables: No chain/target/match by that name.", command=argv, returncode=1
            )
        return chains[name]

"""
iptables Ruleset Tool
~~~~~~~~~~~~~~~~~~~~~

Drives the host firewall through ``iptables-save``, ``iptables-restore``
and ``iptables``, optionally via ``sudo``.
"""

from __future__ import annotations

import logging
import subprocess

from netguard.exceptions import RulesetToolBusyError, RulesetToolError
from netguard.ruleset.base import BaseRulesetTool

__all__ = ["IptablesTool"]

logger = logging.getLogger(__name__)

# iptables exits with 4 when another process holds the xtables lock.
_XTABLES_BUSY = 4


class IptablesTool(BaseRulesetTool):
    """
    Ruleset tool backed by the iptables userland.

    - dump: ``iptables-save`` (all tables)
    - load: ``iptables-restore`` fed the dump on stdin
    - apply: the given ``iptables ...`` argv
    - persist: ``netfilter-persistent save``
    """

    name = "iptables"

    def __init__(
        self,
        sudo: bool = True,
        persist_command: list[str] | None = None,
        timeout: float = 30.0,
    ) -> None:
        self._sudo = sudo
        self._persist_command = persist_command or ["netfilter-persistent", "save"]
        self._timeout = timeout

    def _run(self, argv: list[str], stdin: bytes | None = None) -> bytes:
        """Run a command and return its stdout. Raises on any failure."""
        cmd = (["sudo", "-n"] if self._sudo else []) + argv
        try:
            proc = subprocess.run(
                cmd,
                input=stdin,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                timeout=self._timeout,
                check=False,
            )
        except (OSError, subprocess.TimeoutExpired) as exc:
            raise RulesetToolError(
                f"{argv[0]} could not run: {exc}", command=cmd
            ) from exc

        if proc.returncode != 0:
            output = (proc.stderr or proc.stdout or b"").decode(errors="replace").strip()
            error_cls = (
                RulesetToolBusyError
                if proc.returncode == _XTABLES_BUSY
                else RulesetToolError
            )
            raise error_cls(
                f"{argv[0]} exited with {proc.returncode}: {output}",
                command=cmd,
                returncode=proc.returncode,
                output=output,
            )
        return proc.stdout or b""

    def dump(self) -> bytes:
        data = self._run(["iptables-save"])
        if not data.strip():
            raise RulesetToolError("iptables-save produced no output", command=["iptables-save"])
        return data

    def load(self, data: bytes) -> None:
        self._run(["iptables-restore", "-w"], stdin=data)
        logger.debug("Restored %d bytes via iptables-restore", len(data))

    def apply(self, argv: list[str]) -> None:
        if argv and argv[0] == "iptables" and "-w" not in argv:
            argv = [argv[0], "-w", *argv[1:]]
        self._run(argv)

    def persist(self) -> None:
        self._run(list(self._persist_command))

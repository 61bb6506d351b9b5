"""
Base Ruleset Tool
~~~~~~~~~~~~~~~~~

Abstract base class for the mechanism that reads and writes the live
firewall configuration.
"""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import TypeVar

from netguard.exceptions import RulesetToolBusyError

__all__ = ["BaseRulesetTool", "call_with_retry"]

logger = logging.getLogger(__name__)

T = TypeVar("T")


class BaseRulesetTool(ABC):
    """
    Abstract base class for ruleset tools.

    Each tool is responsible for:
    1. Dumping the full mutable ruleset (dump)
    2. Loading a previous dump back (load)
    3. Applying a single mutation command (apply)
    4. Saving the live ruleset for the next boot (persist)

    All failures raise RulesetToolError; a transient lock conflict
    raises RulesetToolBusyError.
    """

    name: str = "base"

    @abstractmethod
    def dump(self) -> bytes:
        """Capture the live ruleset of every relevant table."""
        ...

    @abstractmethod
    def load(self, data: bytes) -> None:
        """
        Replace the live ruleset with a previous dump.

        Loading the same dump twice leaves the same state as loading it once.
        """
        ...

    @abstractmethod
    def apply(self, argv: list[str]) -> None:
        """
        Run one mutation command, e.g. ``["iptables", "-P", "INPUT", "DROP"]``.
        """
        ...

    @abstractmethod
    def persist(self) -> None:
        """Save the live ruleset so it survives a reboot."""
        ...

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} name={self.name!r}>"


def call_with_retry(
    fn: Callable[[], T],
    attempts: int = 3,
    delay: float = 0.5,
    what: str = "ruleset tool call",
) -> T:
    """
    Call ``fn``, retrying only on RulesetToolBusyError.

    Any other error propagates on the first occurrence. The last busy
    error propagates once ``attempts`` is exhausted.
    """
    for attempt in range(1, attempts + 1):
        try:
            return fn()
        except RulesetToolBusyError as exc:
            if attempt >= attempts:
                raise
            logger.warning(
                "%s busy (attempt %d/%d): %s", what, attempt, attempts, exc
            )
            time.sleep(delay)
    raise AssertionError("unreachable")

"""
Ruleset Tool Registry
~~~~~~~~~~~~~~~~~~~~~

Builds the configured ruleset tool.
"""

from __future__ import annotations

import logging
import os

from netguard.config.schema import NetGuardConfig
from netguard.exceptions import ConfigValidationError
from netguard.ruleset.base import BaseRulesetTool
from netguard.ruleset.iptables import IptablesTool
from netguard.ruleset.memory import MemoryRulesetTool

__all__ = ["create_tool", "MEMORY_RULESET_FILENAME"]

logger = logging.getLogger(__name__)

MEMORY_RULESET_FILENAME = "memory-ruleset.rules"


def create_tool(config: NetGuardConfig) -> BaseRulesetTool:
    """
    Create the ruleset tool named by ``config.ruleset.tool``.

    The memory tool keeps its live state in the state directory so
    that the detached watchdog acts on the same simulated firewall.
    """
    name = config.ruleset.tool
    if name == "iptables":
        return IptablesTool(sudo=config.ruleset.sudo)
    if name == "memory":
        path = os.path.join(config.transaction.state_dir, MEMORY_RULESET_FILENAME)
        logger.info("Using in-memory ruleset tool (mock mode) at %s", path)
        return MemoryRulesetTool(path=path)
    raise ConfigValidationError(f"Unknown ruleset tool: {name!r}")

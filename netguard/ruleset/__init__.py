"""Ruleset tools — the mechanism that reads and writes the live firewall."""

from netguard.ruleset.base import BaseRulesetTool, call_with_retry
from netguard.ruleset.iptables import IptablesTool
from netguard.ruleset.memory import MemoryRulesetTool
from netguard.ruleset.parser import Chain, Ruleset, parse_save, render_save
from netguard.ruleset.registry import create_tool

__all__ = [
    "BaseRulesetTool",
    "IptablesTool",
    "MemoryRulesetTool",
    "Chain",
    "Ruleset",
    "parse_save",
    "render_save",
    "call_with_retry",
    "create_tool",
]

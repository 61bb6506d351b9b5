"""
Configuration Schema
~~~~~~~~~~~~~~~~~~~~

Pydantic models for validating netguard configuration.
"""

from __future__ import annotations

import logging
from typing import Literal

from pydantic import BaseModel, Field, field_validator

__all__ = [
    "NetGuardConfig",
    "TransactionConfig",
    "WatchdogConfig",
    "RulesetConfig",
    "ObservabilityConfig",
    "ServerConfig",
    "LoggingConfig",
]


class TransactionConfig(BaseModel):
    """Commit-confirm transaction settings."""

    window_seconds: int = Field(default=300, ge=1)
    state_dir: str = "/var/lib/netguard"
    lock_timeout: float = Field(default=30.0, gt=0.0)


class WatchdogConfig(BaseModel):
    """
    Rollback watchdog settings.

    ``backend`` is the detached layer that outlives the API process.
    ``in_process`` adds a redundant in-process timer on top of it.
    """

    backend: Literal["systemd", "process"] = "process"
    in_process: bool = True
    on_failure: Literal["abort", "lazy"] = "abort"
    python: str | None = None


class RulesetConfig(BaseModel):
    """Ruleset tool settings."""

    tool: Literal["iptables", "memory"] = "iptables"
    sudo: bool = True
    wan_interface: str = "enp1s0"
    lan_interfaces: list[str] = Field(
        default_factory=lambda: ["enp2s0", "wlo1", "br0"]
    )
    retry_attempts: int = Field(default=3, ge=1)
    retry_delay: float = Field(default=0.5, ge=0.0)


class ObservabilityConfig(BaseModel):
    """Journal exporters and history settings."""

    exporters: list[str] = Field(default_factory=lambda: ["stdout"])
    history_limit: int = Field(default=200, ge=1)

    @field_validator("exporters")
    @classmethod
    def validate_exporters(cls, v: list[str]) -> list[str]:
        """Only known exporter names are accepted."""
        unknown = [name for name in v if name not in ("stdout",)]
        if unknown:
            raise ValueError(f"Unknown exporters: {unknown!r}")
        return v


class ServerConfig(BaseModel):
    """HTTP API server configuration."""

    host: str = "0.0.0.0"
    port: int = Field(default=8080, ge=1, le=65535)


class LoggingConfig(BaseModel):
    """Root logger settings used by the CLI."""

    level: str = "INFO"

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        """Validate the logging level name."""
        level = v.upper()
        if not isinstance(logging.getLevelName(level), int):
            raise ValueError(f"Invalid logging level: {v!r}")
        return level


class NetGuardConfig(BaseModel):
    """
    Root configuration model for netguard.

    Validated on load with clear error messages for invalid values.
    """

    version: str = "1.0"
    transaction: TransactionConfig = Field(default_factory=TransactionConfig)
    watchdog: WatchdogConfig = Field(default_factory=WatchdogConfig)
    ruleset: RulesetConfig = Field(default_factory=RulesetConfig)
    observability: ObservabilityConfig = Field(default_factory=ObservabilityConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

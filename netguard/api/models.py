"""
API Pydantic Models
~~~~~~~~~~~~~~~~~~~

Request/response models for the HTTP API endpoints.
"""

from __future__ import annotations

import ipaddress
from typing import Annotated, Literal

from pydantic import BaseModel, Field, field_validator, model_validator

__all__ = [
    "PendingResponse",
    "MutationResponse",
    "FirewallStatusResponse",
    "ToggleRequest",
    "ToggleResponse",
    "PortForwardRequest",
    "PortForwardResponse",
    "BlockIPRequest",
    "BlockedIPResponse",
    "DmzRequest",
    "DmzResponse",
    "RawRulesResponse",
    "HistoryEntryResponse",
    "ErrorResponse",
    "HealthResponse",
]

Port = Annotated[int, Field(ge=1, le=65535)]


def _ipv4_host(value: str) -> str:
    try:
        return str(ipaddress.IPv4Address(value.strip()))
    except ipaddress.AddressValueError as exc:
        raise ValueError(f"Invalid IPv4 address: {value!r}") from exc


class PendingResponse(BaseModel):
    """Response for GET /pending, POST /confirm and POST /revert."""

    pending: bool
    seconds_remaining: int | None = None
    message: str = ""
    alert: str | None = None


class MutationResponse(BaseModel):
    """Response for every protected change."""

    success: bool
    pending: bool = True
    transaction_id: str | None = None
    seconds_remaining: int | None = None
    watchdog_armed: bool = True
    error: str | None = None


class FirewallStatusResponse(BaseModel):
    """Response for GET /status."""

    enabled: bool
    input_policy: str
    forward_policy: str
    output_policy: str
    pending_changes: bool = False
    pending_timeout: int | None = None


class ToggleRequest(BaseModel):
    """Request body for POST /toggle."""

    enabled: bool


class ToggleResponse(MutationResponse):
    """Response for POST /toggle: the change plus the resulting policies."""

    firewall: FirewallStatusResponse | None = None


class PortForwardRequest(BaseModel):
    """Request body for POST /port-forwards/add and /port-forwards/remove."""

    protocol: Literal["tcp", "udp", "both"] = "tcp"
    external_port: Port
    internal_ip: str
    internal_port: Port

    @field_validator("internal_ip")
    @classmethod
    def validate_internal_ip(cls, v: str) -> str:
        return _ipv4_host(v)


class PortForwardResponse(BaseModel):
    """A single entry in the GET /port-forwards response."""

    id: int
    protocol: str
    external_port: int
    internal_ip: str
    internal_port: int
    enabled: bool = True
    description: str = ""


class BlockIPRequest(BaseModel):
    """Request body for POST /blocked-ips/add and /blocked-ips/remove."""

    ip: str

    @field_validator("ip")
    @classmethod
    def validate_ip(cls, v: str) -> str:
        try:
            network = ipaddress.IPv4Network(v.strip(), strict=False)
        except ValueError as exc:
            raise ValueError(f"Invalid IPv4 address or network: {v!r}") from exc
        if network.prefixlen == 32:
            return str(network.network_address)
        return str(network)


class BlockedIPResponse(BaseModel):
    """A single entry in the GET /blocked-ips response."""

    ip: str
    description: str = ""


class DmzRequest(BaseModel):
    """Request body for POST /dmz/set."""

    enabled: bool
    target_ip: str | None = None

    @field_validator("target_ip")
    @classmethod
    def validate_target_ip(cls, v: str | None) -> str | None:
        return _ipv4_host(v) if v else None

    @model_validator(mode="after")
    def require_target(self) -> DmzRequest:
        if self.enabled and not self.target_ip:
            raise ValueError("target_ip is required to enable the DMZ")
        return self


class DmzResponse(BaseModel):
    """Response for GET /dmz."""

    enabled: bool
    target_ip: str | None = None


class RawRulesResponse(BaseModel):
    """Response for GET /rules."""

    rules: str


class HistoryEntryResponse(BaseModel):
    """A single journal event in the GET /history response."""

    kind: str
    transaction_id: str | None = None
    actor: str
    detail: str = ""
    timestamp: str


class ErrorResponse(BaseModel):
    """Body returned by the exception handlers."""

    error: str
    detail: str
    pending: bool


class HealthResponse(BaseModel):
    """Response for GET /health."""

    status: str = "ok"
    version: str

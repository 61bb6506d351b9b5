"""
API Routes
~~~~~~~~~~

FastAPI route handlers for the firewall API.

Handlers are plain ``def`` functions: they run ruleset commands and
wait on the store lock, so FastAPI runs them in its threadpool.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from netguard.api.models import (
    BlockedIPResponse,
    BlockIPRequest,
    DmzRequest,
    DmzResponse,
    FirewallStatusResponse,
    HealthResponse,
    HistoryEntryResponse,
    MutationResponse,
    PendingResponse,
    PortForwardRequest,
    PortForwardResponse,
    RawRulesResponse,
    ToggleRequest,
    ToggleResponse,
)
from netguard.core.state import BeginResult, PendingStatus

if TYPE_CHECKING:
    from netguard.core.guard import NetGuard

__all__ = ["register_routes", "API_PREFIX"]

API_PREFIX = "/api/firewall"


def _pending_response(status: PendingStatus) -> PendingResponse:
    return PendingResponse(**status.to_dict())


def register_routes(app: Any, guard: NetGuard) -> None:
    """Register all API routes on the FastAPI app."""
    from fastapi import APIRouter, Query
    from fastapi.responses import JSONResponse

    router = APIRouter(prefix=API_PREFIX)

    def _mutation(
        result: BeginResult,
        model: type[MutationResponse] = MutationResponse,
        **extra: Any,
    ) -> Any:
        """Report a protected change; a failed mutation is a 500 that is still pending."""
        status = guard.pending()
        body = model(
            success=result.success,
            pending=status.pending,
            transaction_id=result.transaction_id,
            seconds_remaining=status.seconds_remaining,
            watchdog_armed=result.watchdog_armed,
            error=result.error,
            **extra,
        )
        if not result.success:
            return JSONResponse(status_code=500, content=body.model_dump())
        return body

    # ── Commit-confirm ────────────────────────────────────────────

    @router.get("/pending", response_model=PendingResponse)
    def get_pending() -> PendingResponse:
        """Report the pending change, rolling it back first if overdue."""
        return _pending_response(guard.pending())

    @router.post("/confirm", response_model=PendingResponse)
    def confirm_changes() -> PendingResponse:
        """Keep the pending change."""
        result = guard.confirm()
        return PendingResponse(pending=False, message=result.message)

    @router.post("/revert", response_model=PendingResponse)
    def revert_changes() -> PendingResponse:
        """Roll back the pending change now."""
        result = guard.revert()
        return PendingResponse(pending=False, message=result.message)

    @router.get("/history", response_model=list[HistoryEntryResponse])
    def get_history(limit: int = Query(50, ge=1, le=1000)) -> list[HistoryEntryResponse]:
        """Recent journal events, newest first."""
        return [HistoryEntryResponse(**event.to_dict()) for event in guard.history(limit)]

    # ── Firewall ──────────────────────────────────────────────────

    @router.get("/status", response_model=FirewallStatusResponse)
    def get_status() -> FirewallStatusResponse:
        """Current policies and whether a change is pending."""
        firewall, pending = guard.firewall_status()
        return FirewallStatusResponse(
            enabled=firewall.enabled,
            input_policy=firewall.input_policy,
            forward_policy=firewall.forward_policy,
            output_policy=firewall.output_policy,
            pending_changes=pending.pending,
            pending_timeout=pending.seconds_remaining,
        )

    @router.post("/toggle", response_model=ToggleResponse)
    def toggle_firewall(req: ToggleRequest) -> Any:
        """Switch the INPUT policy between DROP and ACCEPT. Protected."""
        result = guard.toggle_firewall(req.enabled)
        firewall, pending = guard.firewall_status()
        return _mutation(
            result,
            ToggleResponse,
            firewall=FirewallStatusResponse(
                enabled=firewall.enabled,
                input_policy=firewall.input_policy,
                forward_policy=firewall.forward_policy,
                output_policy=firewall.output_policy,
                pending_changes=pending.pending,
                pending_timeout=pending.seconds_remaining,
            ),
        )

    @router.get("/rules", response_model=RawRulesResponse)
    def get_rules() -> RawRulesResponse:
        """The live ruleset in iptables-save format."""
        return RawRulesResponse(rules=guard.raw_rules())

    # ── Port forwards ─────────────────────────────────────────────

    @router.get("/port-forwards", response_model=list[PortForwardResponse])
    def list_port_forwards() -> list[PortForwardResponse]:
        return [PortForwardResponse(**vars(pf)) for pf in guard.port_forwards()]

    @router.post("/port-forwards/add", response_model=MutationResponse)
    def add_port_forward(req: PortForwardRequest) -> Any:
        """Forward a WAN port to an internal host. Protected."""
        return _mutation(
            guard.add_port_forward(
                req.protocol, req.external_port, req.internal_ip, req.internal_port
            )
        )

    @router.post("/port-forwards/remove", response_model=MutationResponse)
    def remove_port_forward(req: PortForwardRequest) -> Any:
        """Remove a port forward. Protected."""
        return _mutation(
            guard.remove_port_forward(
                req.protocol, req.external_port, req.internal_ip, req.internal_port
            )
        )

    # ── Blocked addresses ─────────────────────────────────────────

    @router.get("/blocked-ips", response_model=list[BlockedIPResponse])
    def list_blocked_ips() -> list[BlockedIPResponse]:
        return [BlockedIPResponse(**vars(b)) for b in guard.blocked_ips()]

    @router.post("/blocked-ips/add", response_model=MutationResponse)
    def block_ip(req: BlockIPRequest) -> Any:
        """Drop all traffic from an address. Protected."""
        return _mutation(guard.block_ip(req.ip))

    @router.post("/blocked-ips/remove", response_model=MutationResponse)
    def unblock_ip(req: BlockIPRequest) -> Any:
        """Stop dropping traffic from an address. Protected."""
        return _mutation(guard.unblock_ip(req.ip))

    # ── DMZ ───────────────────────────────────────────────────────

    @router.get("/dmz", response_model=DmzResponse)
    def get_dmz() -> DmzResponse:
        dmz = guard.dmz()
        return DmzResponse(enabled=dmz.enabled, target_ip=dmz.target_ip)

    @router.post("/dmz/set", response_model=MutationResponse)
    def set_dmz(req: DmzRequest) -> Any:
        """Set or clear the DMZ host. Protected."""
        return _mutation(guard.set_dmz(req.enabled, req.target_ip))

    app.include_router(router)

    @app.get("/health", response_model=HealthResponse)
    def health_check() -> HealthResponse:
        """Health check endpoint."""
        from netguard import __version__

        return HealthResponse(status="ok", version=__version__)

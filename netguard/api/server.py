"""
API Server
~~~~~~~~~~

FastAPI application for the firewall API, with the transaction error
taxonomy mapped to HTTP statuses.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any

from netguard.api.models import ErrorResponse
from netguard.exceptions import (
    RestoreFailureError,
    RulesetToolError,
    SchedulingFailureError,
    SnapshotFailureError,
    StoreError,
    TransactionError,
)

if TYPE_CHECKING:
    from netguard.core.guard import NetGuard

__all__ = ["create_app"]

logger = logging.getLogger(__name__)

# (status code, error name, change still pending?)
_ERROR_MAP: list[tuple[type[Exception], int, str, bool]] = [
    (SnapshotFailureError, 503, "snapshot_failed", False),
    (RestoreFailureError, 500, "restore_failed", True),
    (SchedulingFailureError, 500, "scheduling_failed", False),
    (TransactionError, 409, "transaction_error", True),
    (RulesetToolError, 502, "ruleset_tool_error", False),
    (StoreError, 500, "store_error", False),
]


def create_app(guard: NetGuard) -> Any:
    """
    Create a FastAPI application wired to the given NetGuard instance.

    Args:
        guard: The NetGuard instance to expose via HTTP.

    Returns:
        A FastAPI application instance.
    """
    from fastapi import FastAPI, Request
    from fastapi.middleware.cors import CORSMiddleware
    from fastapi.responses import JSONResponse

    from netguard import __version__

    @asynccontextmanager
    async def lifespan(app: Any) -> AsyncIterator[None]:
        # A change left pending by a previous run may already be overdue.
        status = guard.pending()
        if status.alert:
            logger.error("Startup: %s", status.message)
        elif status.pending:
            logger.warning("Startup: %s", status.message)
        yield

    app = FastAPI(
        title="netguard",
        description="Commit-confirm HTTP API for router firewall changes",
        version=__version__,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    def _handler(status_code: int, error: str, pending: bool) -> Any:
        async def handle(request: Request, exc: Exception) -> JSONResponse:
            if status_code >= 500:
                logger.error("%s %s failed: %s", request.method, request.url.path, exc)
            body = ErrorResponse(error=error, detail=str(exc), pending=pending)
            return JSONResponse(status_code=status_code, content=body.model_dump())

        return handle

    for exc_type, status_code, error, pending in _ERROR_MAP:
        app.add_exception_handler(exc_type, _handler(status_code, error, pending))

    from netguard.api.routes import register_routes

    register_routes(app, guard)

    return app

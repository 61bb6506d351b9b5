"""netguard HTTP API — FastAPI app factory, routes and models."""

from netguard.api.server import create_app

__all__ = ["create_app"]

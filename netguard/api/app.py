"""
ASGI entry point for standalone uvicorn usage.

Usage:
    NETGUARD_CONFIG=/etc/netguard/netguard.yaml \
        uvicorn netguard.api.app:app --host 0.0.0.0 --port 8080
"""

import os

from netguard.api.server import create_app
from netguard.core.guard import NetGuard

_config_path = os.environ.get("NETGUARD_CONFIG")
_guard = NetGuard.from_config(_config_path) if _config_path else NetGuard.default()
app = create_app(_guard)

"""
Routing module for the relay server.

Handles:
- Per-connection outbound queues
- Chat message persistence and fan-out
- Call signaling pass-through
- Identity registration
"""

from relay_server.routing.connection import Connection, ConnectionState
from relay_server.routing.router import Router

__all__ = ["Connection", "ConnectionState", "Router"]

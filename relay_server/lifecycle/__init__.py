"""
Lifecycle module for the relay server.

Handles:
- Connection ids and handles
- Disconnect cleanup of sessions and presence
- Roster broadcasts
"""

from relay_server.lifecycle.manager import ConnectionLifecycleManager

__all__ = ["ConnectionLifecycleManager"]

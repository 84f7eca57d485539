"""
Presence module for the relay server.

Handles:
- Identity -> connection bindings (session directory)
- The roster of online identities (presence registry)
"""

from relay_server.presence.registry import PresenceRegistry
from relay_server.presence.sessions import SessionDirectory

__all__ = ["PresenceRegistry", "SessionDirectory"]

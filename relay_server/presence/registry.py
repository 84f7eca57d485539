"""
Presence registry module.

The set of identities that currently have at least one open connection.
This is what gets broadcast as the public roster.
"""

import asyncio
from typing import FrozenSet

from relay_server.presence.sessions import SessionDirectory


class PresenceRegistry:
    """Server-owned roster of online identities."""

    def __init__(self, directory: SessionDirectory):
        self.directory = directory
        self._present: FrozenSet[str] = frozenset()
        # One lock per directory shard; snapshot reads take no lock
        self._locks = [asyncio.Lock() for _ in range(directory.shard_count)]

    def lock_for(self, identity: str) -> asyncio.Lock:
        return self._locks[self.directory.shard_of(identity)]

    async def register(self, identity: str) -> bool:
        """Add identity. Returns True if it was not present before."""
        async with self.lock_for(identity):
            if identity in self._present:
                return False
            self._present = self._present | {identity}
            return True

    async def unregister(self, identity: str) -> bool:
        """
        Remove identity unless a connection still references it.

        Returns True if the identity was removed.
        """
        async with self.lock_for(identity):
            if identity not in self._present:
                return False
            if self.directory.has_connections(identity):
                return False
            self._present = self._present - {identity}
            return True

    def snapshot(self) -> FrozenSet[str]:
        """The roster as of this call."""
        return self._present

    def clear(self):
        """Drop every entry; used at server shutdown."""
        self._present = frozenset()

    def __contains__(self, identity: str) -> bool:
        return identity in self._present

    def __len__(self) -> int:
        return len(self._present)

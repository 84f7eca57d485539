"""
Session directory module.

Maps each identity to the set of connections currently bound to it. An identity
may have any number of simultaneous connections (several devices or tabs).

Writers take a per-shard asyncio.Lock chosen by hashing the identity, so binds
and unbinds for unrelated identities never wait on each other. Each identity's
connection set is an immutable frozenset that is replaced on every change;
readers never lock and always see a complete set, either before or after a
concurrent change.
"""

import asyncio
from contextlib import AsyncExitStack
from typing import Dict, FrozenSet, List, Optional, Tuple

from relay_common.constants import DIRECTORY_SHARDS

_EMPTY: FrozenSet = frozenset()


class SessionDirectory:
    """identity -> set of live connection handles."""

    def __init__(self, shards: int = DIRECTORY_SHARDS):
        if shards < 1:
            raise ValueError("shards must be >= 1")
        self._locks = [asyncio.Lock() for _ in range(shards)]
        self._sessions: Dict[str, FrozenSet] = {}
        self._bindings: Dict[object, str] = {}  # connection -> identity

    def shard_of(self, identity: str) -> int:
        return hash(identity) % len(self._locks)

    @property
    def shard_count(self) -> int:
        return len(self._locks)

    def _add(self, identity: str, connection):
        self._sessions[identity] = self._sessions.get(identity, _EMPTY) | {connection}
        self._bindings[connection] = identity

    def _discard(self, identity: str, connection) -> bool:
        """Remove connection from identity; return True if the set is now empty."""
        remaining = self._sessions.get(identity, _EMPTY) - {connection}
        self._bindings.pop(connection, None)
        if remaining:
            self._sessions[identity] = remaining
            return False
        self._sessions.pop(identity, None)
        return True

    async def bind(self, identity: str, connection) -> Optional[str]:
        """
        Record that connection belongs to identity.

        Binding the same pair again is a no-op. Binding a connection that is
        already bound elsewhere moves it; if that leaves the previous identity
        with no connections, the previous identity is returned.
        """
        while True:
            previous = self._bindings.get(connection)
            if previous == identity:
                return None

            shards = {self.shard_of(identity)}
            if previous is not None:
                shards.add(self.shard_of(previous))

            # Shard locks are always taken in index order.
            async with AsyncExitStack() as stack:
                for index in sorted(shards):
                    await stack.enter_async_context(self._locks[index])
                if self._bindings.get(connection) != previous:
                    continue  # raced with another bind/unbind, start over
                orphaned = previous is not None and self._discard(previous, connection)
                self._add(identity, connection)
            return previous if orphaned else None

    async def unbind(self, connection) -> Tuple[Optional[str], bool]:
        """
        Remove connection from whatever identity it is bound to.

        Returns ``(identity, was_last)``. ``was_last`` is True when the identity
        has no connections left and its presence should be dropped. Unbound
        connections give ``(None, False)``.
        """
        identity = self._bindings.get(connection)
        if identity is None:
            return None, False
        async with self._locks[self.shard_of(identity)]:
            # Re-check under the lock; a concurrent unbind may have won.
            if self._bindings.get(connection) != identity:
                return identity, False
            return identity, self._discard(identity, connection)

    def connections_for(self, identity: str) -> FrozenSet:
        """Current connections for identity; empty when offline."""
        return self._sessions.get(identity, _EMPTY)

    def has_connections(self, identity: str) -> bool:
        return bool(self._sessions.get(identity))

    def identity_of(self, connection) -> Optional[str]:
        return self._bindings.get(connection)

    def identities(self) -> List[str]:
        return list(self._sessions)

    def connection_count(self) -> int:
        return len(self._bindings)

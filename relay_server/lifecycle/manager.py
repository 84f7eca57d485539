"""
Connection lifecycle module.

Owns every connection handle from accept to close:
CONNECTING -> BOUND (after add-user) -> CLOSED.
"""

import itertools
from typing import Dict, List

from relay_common.constants import OUTBOUND_QUEUE_SIZE
from relay_common.protocol_definitions import create_roster_frame
from relay_server.errors import DeliveryError
from relay_server.routing.connection import Connection, ConnectionState
from relay_server.utils.logger import logger


class ConnectionLifecycleManager:
    """Creates, tracks and tears down connections."""

    def __init__(self, directory, registry, max_pending: int = OUTBOUND_QUEUE_SIZE):
        self.directory = directory
        self.registry = registry
        self.max_pending = max_pending
        self.connections: Dict[int, Connection] = {}  # cid -> connection
        self._cids = itertools.count(1)

    def open(self, writer, addr=None) -> Connection:
        """Wrap a freshly accepted stream and start its sender task."""
        connection = Connection(next(self._cids), writer, addr, max_pending=self.max_pending)
        self.connections[connection.cid] = connection
        connection.start()
        logger.log_connection(addr, connection.cid)
        return connection

    def open_connections(self) -> List[Connection]:
        return list(self.connections.values())

    async def broadcast_roster(self):
        """Push the current roster to every open connection, bound or not."""
        frame = create_roster_frame(self.registry.snapshot())
        for connection in self.open_connections():
            try:
                connection.deliver(frame)
            except DeliveryError as e:
                logger.log_delivery_failure(connection.cid, connection.identity, e)

    async def close(self, connection: Connection):
        """
        Tear down a connection. Idempotent.

        A bound connection is unbound; if it was its identity's last one the
        identity leaves the roster and the new roster is broadcast.
        """
        if connection.state is ConnectionState.CLOSED:
            return

        was_bound = connection.state is ConnectionState.BOUND
        self.connections.pop(connection.cid, None)
        await connection.close()
        logger.log_disconnect(connection.identity, connection.cid)

        if not was_bound:
            return

        identity, was_last = await self.directory.unbind(connection)
        if identity is None or not was_last:
            return

        if await self.registry.unregister(identity):
            logger.log_presence_removed(identity)
            await self.broadcast_roster()

    async def shutdown(self):
        """Close every connection and clear presence."""
        for connection in self.open_connections():
            await self.close(connection)
        self.registry.clear()

"""
Router module.

Routes chat and signaling messages to every live connection of their
recipient, and registers identities on connections.
"""

import asyncio
from typing import Dict, List, Optional, Tuple

from relay_common.constants import Destinations
from relay_common.protocol_definitions import ChatMessage, create_delivery_frame
from relay_server.errors import DeliveryError, IdentityConflictError
from relay_server.routing.connection import Connection, ConnectionState
from relay_server.utils.logger import logger


class DeliveryChain:
    """
    Keeps deliveries to one recipient in invocation order.

    Each send reserves a turn before it starts persisting and only delivers
    once the previous turn for the same key has finished, so slow writes run
    concurrently without reordering what a recipient sees.
    """

    def __init__(self):
        self._tails: Dict[Tuple[str, str], asyncio.Future] = {}

    def reserve(self, key: Tuple[str, str]) -> Tuple[Optional[asyncio.Future], asyncio.Future]:
        previous = self._tails.get(key)
        turn = asyncio.get_running_loop().create_future()
        self._tails[key] = turn
        return previous, turn

    def release(self, key: Tuple[str, str], turn: asyncio.Future):
        if not turn.done():
            turn.set_result(None)
        if self._tails.get(key) is turn:
            del self._tails[key]

    def release_after(self, key: Tuple[str, str], previous: Optional[asyncio.Future],
                      turn: asyncio.Future):
        """Release turn once previous has finished, so later sends cannot skip ahead."""
        if previous is None or previous.done():
            self.release(key, turn)
        else:
            previous.add_done_callback(lambda _: self.release(key, turn))

    def __len__(self):
        return len(self._tails)


class Router:
    """Delivery side of the relay: send_message, add_user and signal."""

    def __init__(self, directory, registry, message_log, lifecycle):
        self.directory = directory
        self.registry = registry
        self.message_log = message_log
        self.lifecycle = lifecycle
        self.chain = DeliveryChain()

    def _fan_out(self, recipient: str, frame: dict) -> int:
        """Hand frame to each of recipient's connections; return how many took it."""
        delivered = 0
        for connection in self.directory.connections_for(recipient):
            try:
                connection.deliver(frame)
                delivered += 1
            except DeliveryError as e:
                logger.log_delivery_failure(connection.cid, recipient, e)
        return delivered

    async def send_message(self, message: ChatMessage) -> ChatMessage:
        """
        Persist message, then deliver it to the recipient's connections.

        Raises PersistenceError if the log write fails; nothing is delivered
        in that case. An offline recipient is not an error.
        """
        key = (message.recipient, Destinations.MESSAGES_QUEUE)
        previous, turn = self.chain.reserve(key)
        try:
            stored = await self.message_log.save(message)
            logger.log_chat(stored)

            if previous is not None:
                await asyncio.shield(previous)
            self._fan_out(stored.recipient, create_delivery_frame(stored))
            return stored
        finally:
            # A failed save still holds its place until the earlier turn is done
            self.chain.release_after(key, previous, turn)

    async def signal(self, message: ChatMessage) -> int:
        """Deliver a signaling message without persisting it."""
        delivered = self._fan_out(message.recipient, create_delivery_frame(message))
        logger.log_signal(message, delivered)
        return delivered

    async def add_user(self, identity: str, connection: Connection):
        """
        Bind identity to connection, mark it present and broadcast the roster.

        Repeating the call with the same identity is harmless; a different
        identity on an already bound connection raises IdentityConflictError.
        """
        if connection.state is ConnectionState.CLOSED:
            raise DeliveryError(f"connection cid={connection.cid} is closed")
        if connection.state is ConnectionState.BOUND and connection.identity != identity:
            raise IdentityConflictError(
                f"connection is already registered as {connection.identity!r}"
            )

        connection.mark_bound(identity)
        await self.directory.bind(identity, connection)
        await self.registry.register(identity)
        logger.log_bind(identity, connection.cid)

        await self.lifecycle.broadcast_roster()

    async def history(self, user_a: str, user_b: str) -> List[ChatMessage]:
        """Conversation between two identities, oldest first."""
        return await self.message_log.history(user_a, user_b)

"""
Connection handle module.

A Connection wraps one client's stream writer with a bounded outbound queue.
Frames are queued without blocking and written by a per-connection sender task,
so a slow consumer only ever fills its own queue.
"""

import asyncio
import json
from enum import Enum
from typing import Optional

from relay_common.constants import OUTBOUND_QUEUE_SIZE
from relay_server.errors import DeliveryError, OutboundQueueFull
from relay_server.utils.logger import logger


class ConnectionState(Enum):
    CONNECTING = 'connecting'
    BOUND = 'bound'
    CLOSED = 'closed'


class Connection:
    """One live client channel plus the identity bound to it."""

    def __init__(self, cid: int, writer: asyncio.StreamWriter, addr=None,
                 max_pending: int = OUTBOUND_QUEUE_SIZE):
        self.cid = cid
        self.writer = writer
        self.addr = addr
        self.state = ConnectionState.CONNECTING
        self.identity: Optional[str] = None
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=max_pending)
        self._sender_task: Optional[asyncio.Task] = None
        self._broken = False

    def __repr__(self):
        return f"<Connection cid={self.cid} identity={self.identity!r} state={self.state.value}>"

    @property
    def is_open(self) -> bool:
        return self.state is not ConnectionState.CLOSED and not self._broken

    @property
    def pending(self) -> int:
        """Number of frames queued but not yet written."""
        return self._queue.qsize()

    def start(self):
        """Start the sender task."""
        if self._sender_task is None:
            self._sender_task = asyncio.create_task(self._drain_loop())

    def mark_bound(self, identity: str):
        """Move CONNECTING -> BOUND. The identity cannot change afterwards."""
        if self.state is ConnectionState.BOUND and self.identity != identity:
            raise ValueError(f"cid={self.cid} is already bound to {self.identity!r}")
        if self.state is ConnectionState.CLOSED:
            raise ValueError(f"cid={self.cid} is closed")
        self.identity = identity
        self.state = ConnectionState.BOUND

    def deliver(self, frame: dict):
        """
        Queue a frame for this connection without waiting.

        Raises DeliveryError if the connection is closed or broken, and
        OutboundQueueFull if the queue is at capacity; in that case the
        new frame is dropped and queued frames are kept.
        """
        if not self.is_open:
            raise DeliveryError(f"connection cid={self.cid} is closed")
        try:
            self._queue.put_nowait(frame)
        except asyncio.QueueFull:
            raise OutboundQueueFull(
                f"outbound queue full ({self._queue.maxsize} frames) for cid={self.cid}"
            )

    async def flush(self):
        """Wait until every queued frame has been written."""
        await self._queue.join()

    async def _drain_loop(self):
        while True:
            frame = await self._queue.get()
            try:
                if not self._broken:
                    self.writer.write(json.dumps(frame).encode('utf-8') + b'\n')
                    await self.writer.drain()
            except (ConnectionError, OSError, RuntimeError) as e:
                # Half-closed socket: later deliveries fail fast; the reader
                # side notices EOF and closes the connection.
                self._broken = True
                logger.warning(f"Write failed for cid={self.cid}: {e}")
            finally:
                self._queue.task_done()

    async def close(self):
        """Stop the sender task and close the underlying stream. Idempotent."""
        if self.state is ConnectionState.CLOSED:
            return
        self.state = ConnectionState.CLOSED

        if self._sender_task is not None:
            self._sender_task.cancel()
            try:
                await self._sender_task
            except asyncio.CancelledError:
                pass

        try:
            self.writer.close()
            await self.writer.wait_closed()
        except (ConnectionError, OSError):
            pass

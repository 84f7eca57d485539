#!/usr/bin/env python3
"""
Chat Relay Server

Accepts TCP clients speaking line-delimited JSON frames and turns each frame
into a call on the router. One task runs per connection.
"""

import asyncio
import json
from typing import Optional

from relay_common.constants import Destinations, ErrorCodes
from relay_common.protocol_definitions import (
    MalformedPayloadError, parse_add_user, parse_history_request, parse_send_message,
    parse_signal_message, create_error_frame, create_heartbeat_ack_frame, create_history_frame
)
from relay_server.errors import DeliveryError, RelayError
from relay_server.lifecycle.manager import ConnectionLifecycleManager
from relay_server.presence.registry import PresenceRegistry
from relay_server.presence.sessions import SessionDirectory
from relay_server.routing.connection import Connection
from relay_server.routing.router import Router
from relay_server.storage import MessageLog, create_message_log
from relay_server.utils.config import RelayConfig
from relay_server.utils.logger import logger


class RelayServer:
    """Main server class that wires presence, routing and storage together."""

    def __init__(self, config: Optional[RelayConfig] = None, message_log: Optional[MessageLog] = None):
        self.config = config or RelayConfig()
        self.message_log = message_log or create_message_log(self.config.get_storage_settings()['db_path'])
        self.server: Optional[asyncio.AbstractServer] = None

        # Shared state, owned by this server instance
        self.directory = SessionDirectory(self.config.directory_shards)
        self.registry = PresenceRegistry(self.directory)
        self.lifecycle = ConnectionLifecycleManager(
            self.directory, self.registry, max_pending=self.config.outbound_queue_size
        )
        self.router = Router(self.directory, self.registry, self.message_log, self.lifecycle)

    @property
    def port(self) -> int:
        """Bound port (useful when configured with port 0)."""
        if self.server and self.server.sockets:
            return self.server.sockets[0].getsockname()[1]
        return self.config.port

    def reply(self, connection: Connection, frame: dict):
        """Send a frame back to the originating connection."""
        try:
            connection.deliver(frame)
        except DeliveryError as e:
            logger.log_delivery_failure(connection.cid, connection.identity, e)

    def reply_error(self, connection: Connection, code: str, message: str):
        logger.warning(f"[{code}] cid={connection.cid}: {message}")
        self.reply(connection, create_error_frame(code, message))

    async def dispatch(self, connection: Connection, frame):
        """Route one decoded frame to the matching operation."""
        if not isinstance(frame, dict):
            self.reply_error(connection, ErrorCodes.MALFORMED_FRAME, "Frame must be a JSON object")
            return

        destination = frame.get('destination')
        payload = frame.get('payload')
        logger.debug(f"Received from cid={connection.cid}: {destination}")

        try:
            if destination == Destinations.SEND_MESSAGE:
                await self.router.send_message(parse_send_message(payload))
            elif destination == Destinations.ADD_USER:
                await self.router.add_user(parse_add_user(payload), connection)
            elif destination == Destinations.WEBRTC_SIGNAL:
                await self.router.signal(parse_signal_message(payload))
            elif destination == Destinations.CHAT_HISTORY:
                user_a, user_b = parse_history_request(payload)
                messages = await self.router.history(user_a, user_b)
                self.reply(connection, create_history_frame(messages))
            elif destination == Destinations.HEARTBEAT:
                self.reply(connection, create_heartbeat_ack_frame())
            else:
                self.reply_error(connection, ErrorCodes.UNKNOWN_DESTINATION,
                                 f"Unknown destination '{destination}'")

        except MalformedPayloadError as e:
            self.reply_error(connection, ErrorCodes.MALFORMED_PAYLOAD, str(e))
        except RelayError as e:
            if e.code is None:
                logger.log_error(destination, e)
            else:
                self.reply_error(connection, e.code, str(e))

    async def handle_client(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter):
        """Handle individual client connection."""
        addr = writer.get_extra_info('peername')
        connection = self.lifecycle.open(writer, addr)
        idle_timeout = self.config.get_idle_timeout()

        try:
            while True:
                # Read line-delimited JSON
                try:
                    data = await asyncio.wait_for(reader.readline(), timeout=idle_timeout)
                except asyncio.TimeoutError:
                    logger.info(f"No frames from cid={connection.cid} for {idle_timeout}s, dropping")
                    break
                except ValueError:
                    # Line exceeded the stream limit; framing is lost, so hang up.
                    self.reply_error(connection, ErrorCodes.FRAME_TOO_LARGE,
                                     f"Frame exceeds {self.config.max_frame_bytes} bytes")
                    await asyncio.wait_for(connection.flush(), timeout=1.0)
                    break
                if not data:
                    break

                try:
                    frame = json.loads(data.decode('utf-8').strip())
                except (UnicodeDecodeError, json.JSONDecodeError) as e:
                    self.reply_error(connection, ErrorCodes.MALFORMED_FRAME, f"Malformed JSON: {e}")
                    continue

                await self.dispatch(connection, frame)

        except asyncio.CancelledError:
            logger.info(f"Connection cancelled for cid={connection.cid}")
            raise
        except asyncio.TimeoutError:
            logger.warning(f"Timed out flushing cid={connection.cid}")
        except (ConnectionError, OSError) as e:
            logger.error(f"Socket error for cid={connection.cid}: {e}")
        finally:
            await self.lifecycle.close(connection)

    async def listen(self) -> asyncio.AbstractServer:
        """Open the message log and start accepting connections."""
        logger.set_logs_dir(self.config.get_log_settings()['logs_dir'])
        await self.message_log.open()
        if self.config.get_storage_settings()['in_memory']:
            logger.warning("Message log is in memory; history is lost on restart")

        conn_info = self.config.get_connection_info()
        self.server = await asyncio.start_server(
            self.handle_client,
            conn_info['host'],
            conn_info['port'],
            limit=self.config.max_frame_bytes
        )

        addr = ', '.join(str(sock.getsockname()) for sock in self.server.sockets)
        logger.info(f"Relay listening on {addr}")
        return self.server

    async def start(self):
        """Start the server and serve until cancelled."""
        server = await self.listen()
        try:
            await server.serve_forever()
        finally:
            await self.stop()

    async def stop(self):
        """Stop accepting, close every connection and release storage."""
        if self.server is not None:
            self.server.close()
        await self.lifecycle.shutdown()
        if self.server is not None:
            await self.server.wait_closed()
            self.server = None
        await self.message_log.close()
        logger.info("Relay stopped")

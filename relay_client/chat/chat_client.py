"""
Chat client module.

This module handles client-side chat messaging functionality.
"""

import asyncio
import json
from typing import Callable, List, Optional

from relay_common.constants import Destinations
from relay_common.protocol_definitions import (
    MessageType, create_add_user_frame, create_send_message_frame, create_signal_frame,
    create_history_request_frame, create_heartbeat_frame
)
from relay_client.utils.logger import logger


class ChatClient:
    """Client-side chat functionality."""

    def __init__(self, username: str, writer: Optional[asyncio.StreamWriter] = None):
        self.username = username
        self.writer = writer
        self.roster: List[str] = []
        self.signal_handler: Optional[Callable] = None

    def set_writer(self, writer: asyncio.StreamWriter):
        """Set the writer for sending frames."""
        self.writer = writer

    def set_signal_handler(self, handler: Callable):
        """Set the callback for incoming call-signaling payloads."""
        self.signal_handler = handler

    async def send_frame(self, frame: dict) -> bool:
        """Send a JSON frame to the server."""
        if not self.writer:
            logger.error("[ERROR] Not connected to server")
            return False

        try:
            self.writer.write(json.dumps(frame).encode('utf-8') + b'\n')
            await self.writer.drain()
            return True
        except (ConnectionError, OSError) as e:
            logger.error(f"[ERROR] Failed to send frame: {e}")
            return False

    async def add_user(self) -> bool:
        """Register this client's identity with the relay."""
        logger.show_login_info(self.username)
        return await self.send_frame(create_add_user_frame(self.username))

    async def send_chat(self, recipient: str, text: str) -> bool:
        """Send a chat message."""
        return await self.send_frame(create_send_message_frame(self.username, recipient, text))

    async def send_file(self, recipient: str, url: str) -> bool:
        """Send a link to an uploaded file."""
        return await self.send_frame(
            create_send_message_frame(self.username, recipient, url, MessageType.FILE)
        )

    async def send_signal(self, recipient: str, payload: dict) -> bool:
        """Send a call-setup payload (SDP offer/answer or ICE candidate)."""
        return await self.send_frame(create_signal_frame(self.username, recipient, json.dumps(payload)))

    async def request_history(self, other: str) -> bool:
        """Request the conversation with another user."""
        return await self.send_frame(create_history_request_frame(self.username, other))

    async def send_heartbeat(self) -> bool:
        return await self.send_frame(create_heartbeat_frame())

    async def handle_frame(self, frame: dict):
        """Handle different kinds of frames from the server."""
        destination = frame.get('destination', '')
        payload = frame.get('payload')

        if destination == Destinations.PUBLIC_TOPIC:
            self.roster = list(payload or [])
            logger.show_roster(self.roster, self.username)
        elif destination.endswith('/queue/' + Destinations.MESSAGES_QUEUE):
            logger.show_message(payload or {})
        elif destination.endswith('/queue/' + Destinations.WEBRTC_QUEUE):
            await self._handle_signal(payload or {})
        elif destination == Destinations.HISTORY:
            logger.show_history((payload or {}).get('messages', []))
        elif destination == Destinations.ERRORS:
            error = payload or {}
            logger.error(f"[ERROR] {error.get('code')}: {error.get('message')}")
        elif destination == Destinations.HEARTBEAT_ACK:
            pass
        else:
            logger.warning(f"[WARN] Unhandled destination '{destination}'")

    async def _handle_signal(self, message: dict):
        """Decode a signaling payload and pass it to the handler."""
        try:
            signal = json.loads(message.get('content', ''))
        except json.JSONDecodeError as e:
            logger.error(f"[ERROR] Bad signal from {message.get('sender')}: {e}")
            return

        if self.signal_handler:
            await self.signal_handler(message.get('sender'), signal)
        else:
            logger.debug(f"Signal from {message.get('sender')} ignored (no handler)")

#!/usr/bin/env python3
"""
Chat Relay Client

Connects to the relay, registers an identity and keeps it registered across
reconnects. Incoming frames go to the chat client and onto ``frames`` for
callers that want to consume them directly.
"""

import asyncio
import json
import sys
from typing import Optional

from relay_common.constants import DEFAULT_HOST, DEFAULT_PORT
from relay_client.chat.chat_client import ChatClient
from relay_client.utils.config import ClientConfig
from relay_client.utils.logger import logger


class RelayClient:
    """Main client class that owns the connection and its background tasks."""

    def __init__(self, host: str = None, port: int = None, username: str = None,
                 config: Optional[ClientConfig] = None):
        self.config = config or ClientConfig(host or DEFAULT_HOST, port or DEFAULT_PORT, username)
        self.reader: Optional[asyncio.StreamReader] = None
        self.writer: Optional[asyncio.StreamWriter] = None
        self.running = False

        self.chat_client = ChatClient(self.config.username)
        self.frames: asyncio.Queue = asyncio.Queue()
        self.listener_task: Optional[asyncio.Task] = None
        self.heartbeat_task: Optional[asyncio.Task] = None

    async def connect(self, retry_count: int = None, base_delay: float = None) -> bool:
        """Establish connection to the server with retry logic and exponential backoff."""
        retry_count = retry_count or self.config.reconnect_attempts
        base_delay = base_delay if base_delay is not None else self.config.reconnect_delay_base
        attempt = 0

        while attempt < retry_count:
            try:
                self.reader, self.writer = await asyncio.open_connection(self.config.host, self.config.port)
                logger.log_connection(self.config.host, self.config.port, True)
                self.running = True
                self.chat_client.set_writer(self.writer)
                return True
            except OSError as e:
                attempt += 1
                logger.log_connection(self.config.host, self.config.port, False)
                logger.log_error("connection", e)

                if attempt < retry_count:
                    delay = base_delay * (2 ** (attempt - 1))  # Exponential backoff
                    logger.info(f"[INFO] Retrying connection in {delay}s (attempt {attempt}/{retry_count})...")
                    await asyncio.sleep(delay)
                else:
                    logger.error(f"[ERROR] Failed to connect after {retry_count} attempts")
        return False

    async def start(self) -> bool:
        """Connect, register and start listening."""
        if not await self.connect():
            return False
        await self.chat_client.add_user()
        self.listener_task = asyncio.create_task(self.listen_for_frames())
        self.heartbeat_task = asyncio.create_task(self.send_heartbeat())
        return True

    async def next_frame(self, timeout: float = None) -> dict:
        """Wait for the next frame received from the server."""
        return await asyncio.wait_for(self.frames.get(), timeout)

    async def send_heartbeat(self):
        """Send periodic heartbeat frames."""
        while self.running:
            await asyncio.sleep(self.config.heartbeat_interval)
            if self.running:
                await self.chat_client.send_heartbeat()

    async def listen_for_frames(self):
        """Listen for incoming frames from server with automatic reconnection."""
        while self.running:
            try:
                data = await self.reader.readline()
                if not data:
                    logger.info("[INFO] Server closed connection, attempting to reconnect...")
                    if not await self._reconnect():
                        break
                    continue

                try:
                    frame = json.loads(data.decode('utf-8').strip())
                except json.JSONDecodeError as e:
                    logger.error(f"[ERROR] Malformed JSON received: {e}")
                    continue

                await self.frames.put(frame)
                await self.chat_client.handle_frame(frame)

            except asyncio.CancelledError:
                logger.info("[INFO] Listener cancelled")
                raise
            except ConnectionError as e:
                logger.error(f"[ERROR] Connection lost: {e}")
                if self.running and await self._reconnect():
                    continue  # Resume listening after successful reconnection
                break

    async def _reconnect(self) -> bool:
        """Reconnect to the server with exponential backoff and re-register."""
        max_attempts = self.config.reconnect_attempts
        base_delay = self.config.reconnect_delay_base

        for attempt in range(max_attempts):
            if not self.running:
                return False
            delay = base_delay * (2 ** attempt)
            logger.info(f"[INFO] Attempting to reconnect in {delay}s (attempt {attempt + 1}/{max_attempts})...")
            await asyncio.sleep(delay)

            if await self.connect(retry_count=1):
                logger.info("[INFO] Reconnected successfully!")
                await self.chat_client.add_user()
                return True

        logger.error("[ERROR] Failed to reconnect after multiple attempts")
        self.running = False
        return False

    async def close(self):
        """Stop background tasks and close the connection."""
        self.running = False
        for task in (self.listener_task, self.heartbeat_task):
            if task is None:
                continue
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

        if self.writer:
            self.writer.close()
            try:
                await self.writer.wait_closed()
            except (ConnectionError, OSError):
                pass
            self.writer = None

        logger.info("[INFO] Disconnected from server")

    async def handle_command(self, line: str) -> bool:
        """Handle one line of user input. Returns False to quit."""
        line = line.strip()
        if not line:
            return True
        if line == '/quit':
            return False
        if line == '/who':
            logger.show_roster(self.chat_client.roster, self.config.username)
        elif line.startswith('/history '):
            await self.chat_client.request_history(line.split(' ', 1)[1].strip())
        elif ':' in line:
            recipient, text = line.split(':', 1)
            await self.chat_client.send_chat(recipient.strip(), text.strip())
        else:
            logger.warning("[WARN] Use '<recipient>: <message>'")
        return True

    async def interactive_mode(self):
        """Run client with interactive chat input."""
        if not await self.start():
            return

        logger.show_interactive_mode_info()
        loop = asyncio.get_running_loop()
        try:
            while self.running:
                user_input = await loop.run_in_executor(None, sys.stdin.readline)
                if not user_input:
                    break  # EOF
                if not await self.handle_command(user_input):
                    break
        finally:
            await self.close()

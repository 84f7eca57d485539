"""
Message log module.

Append-only store of chat messages. The router persists every chat message
here before delivering it; history queries return the conversation between
two identities in timestamp order.
"""

import asyncio
import itertools
import sqlite3
from abc import ABC, abstractmethod
from typing import List, Optional

import aiosqlite

from relay_common.protocol_definitions import ChatMessage, MessageType, format_timestamp, parse_timestamp
from relay_server.errors import PersistenceError
from relay_server.utils.logger import logger


class MessageLog(ABC):
    """Interface shared by message log backends."""

    async def open(self):
        """Acquire backend resources."""
        pass

    async def close(self):
        """Release backend resources."""
        pass

    async def __aenter__(self):
        await self.open()
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()

    @abstractmethod
    async def save(self, message: ChatMessage) -> ChatMessage:
        """Persist message and return the copy carrying its assigned id."""

    @abstractmethod
    async def history(self, user_a: str, user_b: str) -> List[ChatMessage]:
        """Messages exchanged between user_a and user_b, oldest first."""


class InMemoryMessageLog(MessageLog):
    """Process-local log; ids come from a simple counter."""

    def __init__(self):
        self._messages: List[ChatMessage] = []
        self._ids = itertools.count(1)

    async def save(self, message: ChatMessage) -> ChatMessage:
        stored = message.with_id(next(self._ids))
        self._messages.append(stored)
        return stored

    async def history(self, user_a: str, user_b: str) -> List[ChatMessage]:
        pair = {(user_a, user_b), (user_b, user_a)}
        found = [m for m in self._messages if (m.sender, m.recipient) in pair]
        return sorted(found, key=lambda m: (m.timestamp, m.id))

    def __len__(self):
        return len(self._messages)


SCHEMA = """
CREATE TABLE IF NOT EXISTS chat_messages (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    sender TEXT NOT NULL,
    recipient TEXT NOT NULL,
    content TEXT NOT NULL,
    timestamp TEXT NOT NULL,
    type TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_chat_pair ON chat_messages(sender, recipient, timestamp);
"""


class SqliteMessageLog(MessageLog):
    """Durable log backed by SQLite through aiosqlite."""

    def __init__(self, db_path: str):
        self.db_path = db_path
        self.db: Optional[aiosqlite.Connection] = None
        self.write_lock = asyncio.Lock()  # keeps insert + commit together

    async def open(self):
        if self.db is not None:
            return
        try:
            db = await aiosqlite.connect(self.db_path)
        except (sqlite3.Error, OSError) as e:
            raise PersistenceError(f"cannot open message log {self.db_path}: {e}") from e
        try:
            db.row_factory = aiosqlite.Row
            await db.execute("PRAGMA journal_mode=WAL;")
            await db.executescript(SCHEMA)
            await db.commit()
        except sqlite3.Error as e:
            await db.close()
            raise PersistenceError(f"cannot initialise message log {self.db_path}: {e}") from e
        self.db = db
        logger.info(f"Message log opened at {self.db_path}")

    async def close(self):
        if self.db is not None:
            await self.db.close()
            self.db = None

    async def save(self, message: ChatMessage) -> ChatMessage:
        if self.db is None:
            raise PersistenceError("message log is not open")
        async with self.write_lock:
            try:
                cursor = await self.db.execute(
                    "INSERT INTO chat_messages(sender, recipient, content, timestamp, type) "
                    "VALUES (?, ?, ?, ?, ?)",
                    (message.sender, message.recipient, message.content,
                     format_timestamp(message.timestamp), message.type.value)
                )
                await self.db.commit()
            except (sqlite3.Error, ValueError) as e:
                # The insert must not ride along with the next successful commit
                await self._rollback()
                raise PersistenceError(f"failed to save message from {message.sender}: {e}") from e
        return message.with_id(cursor.lastrowid)

    async def _rollback(self):
        try:
            await self.db.rollback()
        except sqlite3.Error as e:
            logger.error(f"Rollback failed on {self.db_path}: {e}")

    async def history(self, user_a: str, user_b: str) -> List[ChatMessage]:
        if self.db is None:
            raise PersistenceError("message log is not open")
        try:
            cursor = await self.db.execute(
                "SELECT id, sender, recipient, content, timestamp, type FROM chat_messages "
                "WHERE (sender = ? AND recipient = ?) OR (sender = ? AND recipient = ?) "
                "ORDER BY timestamp ASC, id ASC",
                (user_a, user_b, user_b, user_a)
            )
            rows = await cursor.fetchall()
        except sqlite3.Error as e:
            raise PersistenceError(f"failed to load history for {user_a}/{user_b}: {e}") from e

        return [
            ChatMessage(
                id=row["id"],
                sender=row["sender"],
                recipient=row["recipient"],
                content=row["content"],
                timestamp=parse_timestamp(row["timestamp"]),
                type=MessageType(row["type"]),
            )
            for row in rows
        ]

"""
Storage module for the relay server.

Handles:
- Durable chat message log (SQLite)
- In-memory log for tests and throwaway runs
- Conversation history queries
"""

from typing import Optional

from relay_server.storage.message_log import InMemoryMessageLog, MessageLog, SqliteMessageLog


def create_message_log(db_path: Optional[str]) -> MessageLog:
    """Pick a backend: SQLite for a path, memory for None."""
    if db_path is None:
        return InMemoryMessageLog()
    return SqliteMessageLog(db_path)


__all__ = ["MessageLog", "InMemoryMessageLog", "SqliteMessageLog", "create_message_log"]

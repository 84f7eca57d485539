"""
Server configuration module.

This module handles server-side configuration settings.
"""

from typing import Optional

from relay_common.constants import (
    DEFAULT_SERVER_HOST, DEFAULT_PORT, DEFAULT_DB_PATH, OUTBOUND_QUEUE_SIZE,
    MAX_FRAME_BYTES, DIRECTORY_SHARDS, HEARTBEAT_INTERVAL, IDLE_HEARTBEATS, LOG_DIR
)


class RelayConfig:
    """Server configuration class."""
    
    def __init__(self, host: str = DEFAULT_SERVER_HOST, port: int = DEFAULT_PORT,
                 db_path: Optional[str] = DEFAULT_DB_PATH):
        self.host = host
        self.port = port
        
        # Storage; None keeps the message log in memory
        self.db_path = db_path
        
        # Logging configuration
        self.logs_dir = LOG_DIR
        
        # Delivery settings
        self.outbound_queue_size = OUTBOUND_QUEUE_SIZE
        self.max_frame_bytes = MAX_FRAME_BYTES
        
        # Presence settings
        self.directory_shards = DIRECTORY_SHARDS
        
        # Connection settings
        self.heartbeat_interval = HEARTBEAT_INTERVAL  # seconds
    
    def get_connection_info(self):
        """Get connection information."""
        return {
            'host': self.host,
            'port': self.port
        }
    
    def get_storage_settings(self):
        """Get message log settings."""
        return {
            'db_path': self.db_path,
            'in_memory': self.db_path is None
        }
    
    def get_idle_timeout(self):
        """Seconds of silence before a client is dropped; None disables it."""
        if not self.heartbeat_interval:
            return None
        return self.heartbeat_interval * IDLE_HEARTBEATS
    
    def get_log_settings(self):
        """Get logging settings."""
        return {
            'logs_dir': self.logs_dir
        }

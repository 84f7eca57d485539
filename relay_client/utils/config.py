"""
Client configuration module.

This module handles client-side configuration settings.
"""

from relay_common.constants import DEFAULT_HOST, DEFAULT_PORT, HEARTBEAT_INTERVAL, RECONNECT_ATTEMPTS, RECONNECT_DELAY_BASE


class ClientConfig:
    """Client configuration class."""
    
    def __init__(self, host: str = DEFAULT_HOST, port: int = DEFAULT_PORT, username: str = None):
        self.host = host
        self.port = port
        self.username = username or f"user_{id(self) % 10000}"
        
        # Connection settings
        self.heartbeat_interval = HEARTBEAT_INTERVAL  # seconds
        self.reconnect_attempts = RECONNECT_ATTEMPTS
        self.reconnect_delay_base = RECONNECT_DELAY_BASE
    
    def get_connection_info(self):
        """Get connection information."""
        return {
            'host': self.host,
            'port': self.port,
            'username': self.username
        }

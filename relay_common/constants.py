"""
Shared constants for the Chat Relay.

This module contains all constants used across client and server components.
"""

# Network Configuration
DEFAULT_HOST = 'localhost'
DEFAULT_SERVER_HOST = '0.0.0.0'
DEFAULT_PORT = 8080

# Buffer Sizes
MAX_FRAME_BYTES = 1024 * 1024  # 1MB per JSON line
OUTBOUND_QUEUE_SIZE = 256  # frames buffered per connection

# Presence
DIRECTORY_SHARDS = 16

# Timeouts
HEARTBEAT_INTERVAL = 10  # seconds
IDLE_HEARTBEATS = 3  # missed heartbeats before the server drops a silent client
RECONNECT_ATTEMPTS = 5
RECONNECT_DELAY_BASE = 1.0

# Storage
DEFAULT_DB_PATH = 'chat.db'

# Logging
LOG_DIR = 'logs'
CHAT_LOG_FILE = 'chat_history.log'


# Inbound destinations (client -> server)
class Destinations:
    SEND_MESSAGE = 'send-message'
    ADD_USER = 'add-user'
    WEBRTC_SIGNAL = 'webrtc-signal'
    CHAT_HISTORY = 'chat-history'
    HEARTBEAT = 'heartbeat'

    # Server to Client
    PUBLIC_TOPIC = '/topic/public'
    MESSAGES_QUEUE = 'messages'
    WEBRTC_QUEUE = 'webrtc'
    HISTORY = '/user/queue/history'
    ERRORS = '/user/queue/errors'
    HEARTBEAT_ACK = '/user/queue/heartbeat'


# Error codes carried on the errors queue
class ErrorCodes:
    MALFORMED_FRAME = 'MALFORMED_FRAME'
    MALFORMED_PAYLOAD = 'MALFORMED_PAYLOAD'
    UNKNOWN_DESTINATION = 'UNKNOWN_DESTINATION'
    PERSISTENCE_FAILED = 'PERSISTENCE_FAILED'
    IDENTITY_CONFLICT = 'IDENTITY_CONFLICT'
    FRAME_TOO_LARGE = 'FRAME_TOO_LARGE'

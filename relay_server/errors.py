"""
Relay server exceptions.
"""

from relay_common.constants import ErrorCodes


class RelayError(Exception):
    """Base class for relay server errors."""
    code = None


class PersistenceError(RelayError):
    """Raised when the message log fails to store a message."""
    code = ErrorCodes.PERSISTENCE_FAILED


class DeliveryError(RelayError):
    """Raised when a frame cannot be handed to one connection."""
    pass


class OutboundQueueFull(DeliveryError):
    """Raised when a connection's outbound queue is at capacity (newest frame dropped)."""
    pass


class IdentityConflictError(RelayError):
    """Raised when add-user asks to bind a connection to a second identity."""
    code = ErrorCodes.IDENTITY_CONFLICT

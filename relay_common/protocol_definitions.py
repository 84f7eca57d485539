"""
Protocol definitions for the Chat Relay.

This module defines the message structures and frame formats used in communication
between client and server components. Every frame is a single JSON object on its
own line, shaped as ``{"destination": ..., "payload": ...}``.
"""

import dataclasses
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional

from relay_common.constants import Destinations


class MalformedPayloadError(ValueError):
    """Raised when an inbound payload is missing or has invalid required fields."""
    pass


class MessageType(str, Enum):
    """Kinds of ChatMessage."""
    CHAT = 'CHAT'
    FILE = 'FILE'
    JOIN = 'JOIN'
    LEAVE = 'LEAVE'
    SIGNAL = 'SIGNAL'


def utc_now() -> datetime:
    """Return the current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def parse_timestamp(value: Any) -> datetime:
    """Parse an ISO-8601 timestamp, normalising to UTC (naive values are UTC)."""
    if isinstance(value, datetime):
        ts = value
    elif isinstance(value, str):
        try:
            ts = datetime.fromisoformat(value.replace('Z', '+00:00'))
        except ValueError:
            raise MalformedPayloadError(f"invalid timestamp: {value!r}")
    else:
        raise MalformedPayloadError(f"invalid timestamp: {value!r}")

    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    try:
        return ts.astimezone(timezone.utc)
    except OverflowError:
        # Offset pushes the instant outside datetime's range
        raise MalformedPayloadError(f"timestamp out of range: {value!r}")


def format_timestamp(ts: datetime) -> str:
    return ts.isoformat(timespec='microseconds')


@dataclass(frozen=True)
class ChatMessage:
    """Chat message structure. ``id`` is set only on the persisted copy."""
    sender: str
    recipient: Optional[str]
    content: Optional[str]
    type: MessageType = MessageType.CHAT
    timestamp: datetime = dataclasses.field(default_factory=utc_now)
    id: Optional[int] = None

    def with_id(self, message_id: int) -> 'ChatMessage':
        """Return the persisted copy of this message."""
        return dataclasses.replace(self, id=message_id)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "sender": self.sender,
            "recipient": self.recipient,
            "content": self.content,
            "timestamp": format_timestamp(self.timestamp),
            "type": self.type.value,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ChatMessage':
        """Build a message from its wire form without boundary validation."""
        raw_type = data.get('type') or MessageType.CHAT.value
        raw_ts = data.get('timestamp')
        return cls(
            sender=data.get('sender'),
            recipient=data.get('recipient'),
            content=data.get('content'),
            type=MessageType(raw_type),
            timestamp=parse_timestamp(raw_ts) if raw_ts else utc_now(),
            id=data.get('id'),
        )


# --- Boundary validation ---

def _require_text(payload: Dict[str, Any], field: str) -> str:
    value = payload.get(field)
    if not isinstance(value, str) or not value.strip():
        raise MalformedPayloadError(f"missing or empty field '{field}'")
    return value


def _parse_type(payload: Dict[str, Any], allowed: Iterable[MessageType], default: MessageType) -> MessageType:
    raw = payload.get('type')
    if raw is None:
        return default
    try:
        msg_type = MessageType(raw)
    except ValueError:
        raise MalformedPayloadError(f"unknown message type: {raw!r}")
    if msg_type not in allowed:
        raise MalformedPayloadError(f"message type {msg_type.value} not allowed here")
    return msg_type


def _parse_routed(payload: Any, allowed: Iterable[MessageType], default: MessageType) -> ChatMessage:
    if not isinstance(payload, dict):
        raise MalformedPayloadError("payload must be a JSON object")

    sender = _require_text(payload, 'sender')
    recipient = _require_text(payload, 'recipient')
    content = _require_text(payload, 'content')
    msg_type = _parse_type(payload, allowed, default)
    raw_ts = payload.get('timestamp')

    return ChatMessage(
        sender=sender,
        recipient=recipient,
        content=content,
        type=msg_type,
        timestamp=parse_timestamp(raw_ts) if raw_ts else utc_now(),
    )


def parse_send_message(payload: Any) -> ChatMessage:
    """Validate a send-message payload (CHAT or FILE)."""
    return _parse_routed(payload, (MessageType.CHAT, MessageType.FILE), MessageType.CHAT)


def parse_signal_message(payload: Any) -> ChatMessage:
    """Validate a webrtc-signal payload (SIGNAL only)."""
    return _parse_routed(payload, (MessageType.SIGNAL,), MessageType.SIGNAL)


def parse_add_user(payload: Any) -> str:
    """Validate an add-user payload and return the asserted identity."""
    if not isinstance(payload, dict):
        raise MalformedPayloadError("payload must be a JSON object")
    return _require_text(payload, 'sender')


def parse_history_request(payload: Any) -> tuple:
    """Validate a chat-history payload and return ``(user_a, user_b)``."""
    if not isinstance(payload, dict):
        raise MalformedPayloadError("payload must be a JSON object")
    return _require_text(payload, 'sender'), _require_text(payload, 'recipient')


# --- Client -> Server frames ---

def create_frame(destination: str, payload: Any) -> Dict[str, Any]:
    """Create a frame addressed to a destination."""
    return {
        "destination": destination,
        "payload": payload
    }


def create_add_user_frame(username: str) -> Dict[str, Any]:
    """Create an add-user frame."""
    return create_frame(Destinations.ADD_USER, {
        "sender": username,
        "type": MessageType.JOIN.value
    })


def create_send_message_frame(sender: str, recipient: str, content: str,
                              msg_type: MessageType = MessageType.CHAT) -> Dict[str, Any]:
    """Create a send-message frame."""
    return create_frame(Destinations.SEND_MESSAGE, {
        "sender": sender,
        "recipient": recipient,
        "content": content,
        "type": msg_type.value
    })


def create_signal_frame(sender: str, recipient: str, content: str) -> Dict[str, Any]:
    """Create a webrtc-signal frame."""
    return create_frame(Destinations.WEBRTC_SIGNAL, {
        "sender": sender,
        "recipient": recipient,
        "content": content,
        "type": MessageType.SIGNAL.value
    })


def create_history_request_frame(sender: str, recipient: str) -> Dict[str, Any]:
    """Create a chat-history frame."""
    return create_frame(Destinations.CHAT_HISTORY, {
        "sender": sender,
        "recipient": recipient
    })


def create_heartbeat_frame() -> Dict[str, Any]:
    """Create a heartbeat frame."""
    return create_frame(Destinations.HEARTBEAT, {
        "timestamp": format_timestamp(utc_now())
    })


# --- Server -> Client frames ---

def user_queue(identity: str, queue: str) -> str:
    """Address of a per-user queue, e.g. ``/user/bob/queue/messages``."""
    return f"/user/{identity}/queue/{queue}"


def create_delivery_frame(message: ChatMessage) -> Dict[str, Any]:
    """Create the frame pushed to a recipient's message or webrtc queue."""
    queue = Destinations.WEBRTC_QUEUE if message.type is MessageType.SIGNAL else Destinations.MESSAGES_QUEUE
    return create_frame(user_queue(message.recipient, queue), message.to_dict())


def create_roster_frame(identities: Iterable[str]) -> Dict[str, Any]:
    """Create a roster broadcast frame."""
    return create_frame(Destinations.PUBLIC_TOPIC, sorted(identities))


def create_history_frame(messages: List[ChatMessage]) -> Dict[str, Any]:
    """Create a history message."""
    return create_frame(Destinations.HISTORY, {
        "messages": [m.to_dict() for m in messages],
        "count": len(messages)
    })


def create_error_frame(code: str, message: str) -> Dict[str, Any]:
    """Create an error message."""
    return create_frame(Destinations.ERRORS, {
        "code": code,
        "message": message
    })


def create_heartbeat_ack_frame() -> Dict[str, Any]:
    """Create a heartbeat acknowledgment message."""
    return create_frame(Destinations.HEARTBEAT_ACK, {
        "timestamp": format_timestamp(utc_now())
    })

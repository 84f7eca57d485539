"""
Common package for the Chat Relay.

Shared by client and server:
- Network and protocol constants
- ChatMessage and frame definitions
- Boundary validation of inbound payloads
"""

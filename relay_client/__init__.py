"""
Client package for the Chat Relay.

This package contains client-side functionality including:
- Chat and call-signaling messaging
- Roster and history handling
- Connection management with reconnect
- Configuration and utilities
"""

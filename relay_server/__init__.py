"""
Server package for the Chat Relay.

This package contains all server-side functionality including:
- Presence tracking (roster and session directory)
- Message routing and per-connection delivery
- Connection lifecycle management
- Durable chat message log
- Configuration and utilities
"""

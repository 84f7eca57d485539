"""
Chat module for client-side messaging functionality.

Handles:
- Sending chat, file and signaling messages
- Receiving messages, roster updates and errors
- Chat history requests
"""

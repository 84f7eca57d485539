"""
Client logging module.

This module handles client-side logging functionality.
"""

import logging
import sys


class ClientLogger:
    """Client logging class."""
    
    def __init__(self, log_level: int = logging.INFO):
        self.logger = logging.getLogger('chat_relay_client')
        self.logger.setLevel(log_level)
        
        # Remove existing handlers
        for handler in self.logger.handlers[:]:
            self.logger.removeHandler(handler)
        
        # Create console handler
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(log_level)
        
        # Create formatter
        formatter = logging.Formatter(
            '%(asctime)s [%(levelname)s] %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )
        console_handler.setFormatter(formatter)
        
        # Add handler to logger
        self.logger.addHandler(console_handler)
    
    def info(self, message: str):
        """Log info message."""
        self.logger.info(message)
    
    def error(self, message: str):
        """Log error message."""
        self.logger.error(message)
    
    def warning(self, message: str):
        """Log warning message."""
        self.logger.warning(message)
    
    def debug(self, message: str):
        """Log debug message."""
        self.logger.debug(message)
    
    def log_connection(self, host: str, port: int, success: bool):
        """Log connection attempt."""
        status = "Connected" if success else "Failed to connect"
        self.info(f"{status} to {host}:{port}")
    
    def show_login_info(self, username: str):
        """Show login information."""
        self.info(f"[INFO] Registering as '{username}'...")
    
    def show_roster(self, identities: list, current: str):
        """Show who is online."""
        others = [u for u in identities if u != current]
        self.info(f"[INFO] Online ({len(others)}): {', '.join(others) if others else '-'}")
    
    def show_message(self, message: dict):
        """Show an incoming chat or file message."""
        prefix = "[FILE]" if message.get('type') == 'FILE' else "[CHAT]"
        self.info(f"{prefix} {message.get('sender')}: {message.get('content')}")
    
    def show_history(self, messages: list):
        """Show a conversation history."""
        if not messages:
            self.info("[HISTORY] No previous messages")
            return
        self.info(f"[HISTORY] {len(messages)} message(s):")
        for msg in messages:
            self.info(f"  [{msg.get('timestamp', '')[:19]}] {msg.get('sender')}: {msg.get('content')}")
    
    def show_interactive_mode_info(self):
        """Show interactive mode information."""
        self.info("[INFO] Type '<recipient>: <message>' to chat (Ctrl+C to exit)")
        self.info("[INFO] Commands: /history <user>  /who  /quit")
    
    def log_error(self, operation: str, error: Exception):
        """Log error with operation context."""
        self.error(f"Error in {operation}: {error}")


# Global logger instance
logger = ClientLogger()

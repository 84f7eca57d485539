#!/usr/bin/env python3
"""
Chat Relay Client - Main Entry Point

Usage:
    python main_client.py alice

Optional arguments:
    --host HOST           Relay address (default: localhost)
    --port PORT           Relay TCP port (default: 8080)
"""

import argparse
import asyncio

from relay_common.constants import DEFAULT_HOST, DEFAULT_PORT
from relay_client.main_client import RelayClient


async def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(description='Chat Relay Client')
    parser.add_argument('username', nargs='?', default=None,
                        help='Identity to register as')
    parser.add_argument('--host', type=str, default=DEFAULT_HOST,
                        help=f'Relay address (default: {DEFAULT_HOST})')
    parser.add_argument('--port', type=int, default=DEFAULT_PORT,
                        help=f'Relay TCP port (default: {DEFAULT_PORT})')
    args = parser.parse_args()

    username = args.username or input("Enter username: ").strip() or "anonymous"
    client = RelayClient(host=args.host, port=args.port, username=username)
    await client.interactive_mode()


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        print("\n[INFO] Client terminated")

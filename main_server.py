#!/usr/bin/env python3
"""
Chat Relay Server - Main Entry Point

Usage:
    python main_server.py

Optional arguments:
    --host HOST           Bind address (default: 0.0.0.0)
    --port PORT           TCP port (default: 8080)
    --db PATH             SQLite message log (default: chat.db)
    --memory              Keep the message log in memory instead
    --queue-size N        Outbound frames buffered per connection (default: 256)
    --logs-dir DIR        Directory for the chat transcript (default: logs)
    --log-level LEVEL     DEBUG, INFO, WARNING or ERROR (default: INFO)
"""

import argparse
import asyncio
import logging

from relay_common.constants import DEFAULT_SERVER_HOST, DEFAULT_PORT, DEFAULT_DB_PATH, OUTBOUND_QUEUE_SIZE, LOG_DIR
from relay_server.errors import PersistenceError
from relay_server.main_server import RelayServer
from relay_server.utils.config import RelayConfig
from relay_server.utils.logger import logger


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description='Chat Relay Server')
    parser.add_argument('--host', type=str, default=DEFAULT_SERVER_HOST,
                        help=f'Host to bind to (default: {DEFAULT_SERVER_HOST})')
    parser.add_argument('--port', type=int, default=DEFAULT_PORT,
                        help=f'TCP port (default: {DEFAULT_PORT})')
    parser.add_argument('--db', type=str, default=DEFAULT_DB_PATH,
                        help=f'SQLite message log path (default: {DEFAULT_DB_PATH})')
    parser.add_argument('--memory', action='store_true',
                        help='Keep the message log in memory')
    parser.add_argument('--queue-size', type=int, default=OUTBOUND_QUEUE_SIZE,
                        help=f'Outbound frames buffered per connection (default: {OUTBOUND_QUEUE_SIZE})')
    parser.add_argument('--logs-dir', type=str, default=LOG_DIR,
                        help=f'Directory for the chat transcript (default: {LOG_DIR})')
    parser.add_argument('--log-level', type=str, default='INFO',
                        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
                        help='Console log level (default: INFO)')
    return parser


def build_config(args) -> RelayConfig:
    config = RelayConfig(host=args.host, port=args.port,
                         db_path=None if args.memory else args.db)
    config.outbound_queue_size = args.queue_size
    config.logs_dir = args.logs_dir
    return config


if __name__ == "__main__":
    args = build_parser().parse_args()
    logger.set_level(getattr(logging, args.log_level))

    server = RelayServer(build_config(args))
    try:
        asyncio.run(server.start())
    except KeyboardInterrupt:
        logger.info("Server shutting down...")
    except PersistenceError as e:
        logger.error(f"Server failed to start: {e}")

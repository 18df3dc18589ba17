#!/usr/bin/env python3
"""
Run a chat room server.

Usage:
    python examples/run_server.py
    python examples/run_server.py --port 3001 --log-level DEBUG

Environment (optional, via .env):
    ROOMFLOW_HOST (default: 0.0.0.0)
    ROOMFLOW_PORT (default: 3000)
"""

import argparse
import asyncio
import logging
import os

from dotenv import load_dotenv

from roomflow.server import RoomServer
from setup_logging import setup_logging

load_dotenv()


async def main():
    parser = argparse.ArgumentParser(description="Run a roomflow chat room server")
    parser.add_argument("--host", default=os.getenv("ROOMFLOW_HOST", "0.0.0.0"))
    parser.add_argument("--port", "-p", type=int, default=int(os.getenv("ROOMFLOW_PORT", "3000")))
    parser.add_argument(
        "--log-level",
        "-l",
        default=os.getenv("LOG_LEVEL", "INFO"),
        help="Logging level (default: INFO or LOG_LEVEL env var)",
    )
    args = parser.parse_args()

    setup_logging(getattr(logging, args.log_level.upper(), logging.INFO))
    logger = logging.getLogger(__name__)

    server = RoomServer(host=args.host, port=args.port)
    await server.start()
    logger.info(f"Room server listening on {args.host}:{args.port}")
    try:
        await asyncio.Event().wait()
    finally:
        await server.stop()


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass

"""
Entry point for running the relay as a module.

Usage:
    python -m miband_relay --auth-key 94359d5b8b092e1286a43cfb62ee7923
    python -m miband_relay --auth-key <hex> --address E1:2C:9F:0B:F1:44 -v
"""

import argparse
import asyncio
import sys

from .client import main as run_client
from .relay import RELAY_URI
from .session import KEEPALIVE_INTERVAL


def main() -> int:
    parser = argparse.ArgumentParser(description="Mi Band heart rate relay")
    parser.add_argument(
        "--auth-key",
        type=str,
        required=True,
        help="Band auth key in hex format (32 characters)",
    )
    parser.add_argument(
        "--address",
        type=str,
        help="Band address; scans for the Mi Band service if omitted",
    )
    parser.add_argument(
        "--relay-uri",
        type=str,
        default=RELAY_URI,
        help=f"WebSocket URI of the analysis service (default: {RELAY_URI})",
    )
    parser.add_argument(
        "--keepalive-interval",
        type=float,
        default=KEEPALIVE_INTERVAL,
        help=f"Seconds between relay pings (default: {KEEPALIVE_INTERVAL:.0f})",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )
    args = parser.parse_args()

    try:
        return asyncio.run(
            run_client(
                args.auth_key,
                address=args.address,
                relay_uri=args.relay_uri,
                keepalive_interval=args.keepalive_interval,
                verbose=args.verbose,
            )
        )
    except KeyboardInterrupt:
        return 0


if __name__ == "__main__":
    sys.exit(main())

#!/usr/bin/env python3
"""
Relay client command line.

Streams webhooks from a relay channel and forwards each one to a local
target URL.

Usage:
    python -m relay_client.main --source https://smee.io/abc123 --target http://localhost:3000/webhook
    python -m relay_client.main --target http://localhost:3000/webhook   # provisions a new channel

Environment variables:
    RELAY_SOURCE_URL: Channel URL
    RELAY_URL: Relay server for new channels
    RELAY_TARGET_URL: Local target URL
    RELAY_LOG_LEVEL: DEBUG, INFO, WARNING, ERROR
"""

import argparse
import asyncio
import logging
import signal
import sys
from typing import Optional

from relay_client.channel import provision_channel
from relay_client.client import RelayClient
from relay_client.config import ClientConfig
from relay_client.exceptions import ProvisioningError
from relay_client.forwarder import WebhookForwarder

logger = logging.getLogger(__name__)


def setup_logging(level: str = "INFO", format_str: Optional[str] = None) -> None:
    """Configure logging."""
    log_level = getattr(logging, level.upper(), logging.INFO)
    log_format = format_str or "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    logging.basicConfig(
        level=log_level, format=log_format, handlers=[logging.StreamHandler(sys.stdout)]
    )

    # Set aiohttp logging level
    logging.getLogger("aiohttp").setLevel(logging.WARNING)


def parse_args(argv=None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        prog="relay-client",
        description="Forward webhooks from a relay channel to a local server",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    # Forward an existing channel
    %(prog)s --source https://smee.io/abc123 --target http://localhost:3000/webhook

    # Create a new channel on the default relay
    %(prog)s --target http://localhost:3000/webhook

    # Using a configuration file
    %(prog)s --config relay.yaml
        """,
    )

    parser.add_argument(
        "--config", "-c", help="Path to configuration file (JSON or YAML)"
    )

    parser.add_argument("--source", "-s", help="Relay channel URL")

    parser.add_argument("--target", "-t", help="Local URL to forward webhooks to")

    parser.add_argument(
        "--relay-url", help="Relay server used when creating a new channel"
    )

    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: INFO)",
    )

    parser.add_argument(
        "--no-verify-ssl",
        action="store_true",
        help="Disable SSL certificate verification",
    )

    return parser.parse_args(argv)


def build_config(args: argparse.Namespace) -> ClientConfig:
    """Build configuration from arguments, file and environment."""
    config = ClientConfig.load(args.config)

    # Command line arguments take precedence
    if args.source:
        config.source_url = args.source
    if args.target:
        config.target_url = args.target
    if args.relay_url:
        config.relay_url = args.relay_url
    if args.log_level:
        config.log_level = args.log_level
    if args.no_verify_ssl:
        config.verify_ssl = False

    return config


async def main_async(config: ClientConfig) -> None:
    """Run the client until SIGINT/SIGTERM."""
    source = config.source_url
    if not source:
        source = await provision_channel(config.relay_url)
        logger.info(f"Created new channel: {source}")

    forwarder = WebhookForwarder(
        config.target_url,
        timeout_seconds=config.target_timeout,
        verify_ssl=config.verify_ssl,
    )
    await forwarder.start()

    client = RelayClient(source, config=config)
    client.subscribe("message", forwarder.handle)
    client.subscribe("open", lambda _: logger.info(f"Connected to {client.source}"))
    client.subscribe("ping", lambda _: logger.debug("Received ping"))
    client.subscribe("error", lambda e: logger.warning(f"Stream error: {e}"))

    loop = asyncio.get_running_loop()
    stop_event = asyncio.Event()

    def signal_handler():
        logger.info("Received shutdown signal")
        stop_event.set()

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, signal_handler)

    logger.info(f"Forwarding {source} to {config.target_url}")
    client.start()

    try:
        await stop_event.wait()
    finally:
        client.stop()
        await forwarder.stop()


def main(argv=None) -> int:
    """Main entry point."""
    args = parse_args(argv)

    try:
        config = build_config(args)
    except (OSError, TypeError, ValueError) as e:
        print(f"Invalid configuration: {e}", file=sys.stderr)
        return 1

    setup_logging(level=config.log_level, format_str=config.log_format)

    errors = config.validate()
    if errors:
        logger.error("Configuration errors:")
        for error in errors:
            logger.error(f"  - {error}")
        return 1

    try:
        asyncio.run(main_async(config))
        return 0
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 130
    except ProvisioningError as e:
        logger.error(f"{e} at {config.relay_url}")
        return 1
    except Exception as e:
        logger.error(f"Fatal error: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())

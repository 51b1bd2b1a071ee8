"""
Command-line interface for the MCP aggregation gateway.

Usage:
    mcp-aggregator --config servers.yaml --port 39400
    mcp-aggregator --help
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal
import sys
from pathlib import Path

from mcp_aggregator.config import GatewayConfig
from mcp_aggregator.gateway import Gateway
from mcp_aggregator.version import __version__


def setup_logging(level: str) -> None:
    """Configure logging for the application."""
    logging.basicConfig(
        level=getattr(logging, level.upper()),
        format="%(asctime)s [%(levelname)s] %(message)s",
        handlers=[logging.StreamHandler()],
    )


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        prog="mcp-aggregator",
        description="MCP aggregation gateway - one namespaced catalog over many backends",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Start with config file
  mcp-aggregator --config servers.yaml

  # Override port
  mcp-aggregator --config servers.yaml --port 8080

  # Enable debug logging
  mcp-aggregator --config servers.yaml --log-level DEBUG

Configuration file format (YAML):
  port: 39400

  aliases:
    journey: journey-service-mcp

  backends:
    journey-service-mcp:
      name: "Journey Service"
      endpoint: "https://journey.example.com/mcp"
      headers:
        Authorization: "Bearer ${JOURNEY_TOKEN}"

  retry:
    max_attempts: 3

  health:
    check_interval: 60
""",
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )

    parser.add_argument(
        "-c",
        "--config",
        type=Path,
        help="Path to YAML configuration file",
    )

    parser.add_argument(
        "-p",
        "--port",
        type=int,
        default=None,
        help="Port to listen on (default: 39400)",
    )

    parser.add_argument(
        "--host",
        type=str,
        default=None,
        help="Host to bind to (default: 127.0.0.1)",
    )

    parser.add_argument(
        "--log-level",
        type=str,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=None,
        help="Logging level (default: INFO)",
    )

    return parser.parse_args(argv)


def load_config(args: argparse.Namespace) -> GatewayConfig:
    """Load the YAML config (or defaults) and apply command-line overrides.

    Raises:
        FileNotFoundError: If the config file doesn't exist
        ValueError: If the configuration is invalid
    """
    config = GatewayConfig.from_yaml(args.config) if args.config else GatewayConfig()

    # Apply command-line overrides
    if args.port is not None:
        config = config.model_copy(update={"port": args.port})
    if args.host is not None:
        config = config.model_copy(update={"host": args.host})
    if args.log_level is not None:
        config = config.model_copy(update={"log_level": args.log_level})
    return config


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    args = parse_args(argv)

    try:
        config = load_config(args)
    except FileNotFoundError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except ValueError as e:
        print(f"Error: Invalid configuration: {e}", file=sys.stderr)
        return 1

    # Setup logging
    setup_logging(config.log_level)

    # Validate config
    if not config.backends:
        print("Warning: No backends configured", file=sys.stderr)

    # Create gateway
    gateway = Gateway(config)

    # Setup signal handlers
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)

    main_task = loop.create_task(gateway.run())

    def signal_handler(_sig: int, _frame: object) -> None:
        print("\nShutting down...")
        loop.call_soon_threadsafe(main_task.cancel)

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    # Run
    try:
        loop.run_until_complete(main_task)
    except (KeyboardInterrupt, asyncio.CancelledError):
        pass
    finally:
        loop.run_until_complete(gateway.stop())
        loop.close()

    return 0


if __name__ == "__main__":
    sys.exit(main())

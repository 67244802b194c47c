#!/usr/bin/env python3
"""
Cloud Guardian Agent - Main Entry Point

Usage:
    cloud-guardian                          # Run forever, config from default locations
    cloud-guardian --config agent.yaml      # Use a specific config file
    cloud-guardian --one-shot               # Run every task group once and exit
    cloud-guardian --register               # Register this host and exit
    cloud-guardian --version

The agent will:
1. Load and validate configuration
2. Report monitoring data every 5 minutes and inventory daily
3. Fetch, verify and execute signed jobs every 5 minutes
"""

import argparse
import asyncio
import sys

from guardian import __version__
from guardian.common.config import find_and_load_config
from guardian.common.exceptions import ConfigError, GuardianError
from guardian.common.logging_setup import get_service_logger, setup_logging_from_env
from guardian.services.agent import GuardianAgent

logger = get_service_logger("main")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="cloud-guardian",
        description="Cloud Guardian host agent",
    )
    parser.add_argument(
        "--config", "-c",
        type=str,
        default=None,
        help="Path to configuration file (default: search standard locations)",
    )
    parser.add_argument(
        "--api-url",
        type=str,
        default=None,
        help="API URL to submit updates to",
    )
    parser.add_argument(
        "--api-key",
        type=str,
        default=None,
        help="API key for authentication",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging",
    )
    parser.add_argument(
        "--one-shot",
        action="store_true",
        help="Run all task groups once and exit",
    )
    parser.add_argument(
        "--register",
        action="store_true",
        help="Register this host with the API and exit",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)

    setup_logging_from_env(debug=args.debug)

    try:
        config = find_and_load_config(args.config)

        if args.debug:
            config.debug = True
        if args.api_key:
            config.api_key = args.api_key
        if args.api_url:
            config.api_url = args.api_url
        config.normalized()
        config.validate()

        if config.debug:
            setup_logging_from_env(debug=True)
            logger.debug("Debug mode enabled")

        if not config.api_key:
            raise ConfigError("API key is required. Use --api-key to set it.")
    except ConfigError as e:
        logger.critical(str(e))
        return 2

    logger.info(f"Using API URL: {config.api_url}", extra={"config_source": config.source or "defaults"})
    agent = GuardianAgent(config)

    try:
        if args.register:
            asyncio.run(agent.register())
        else:
            asyncio.run(agent.run(one_shot=args.one_shot))
    except GuardianError as e:
        # Only non-recoverable errors (bad API URL/key) escape the scheduler
        logger.critical(str(e))
        return 1
    except KeyboardInterrupt:
        logger.info("Stopped by user")

    return 0


if __name__ == "__main__":
    sys.exit(main())

#!/usr/bin/env python3
"""Command line entry point for the ZetaFlow resolver.

Resolves a transaction hash or address on ZetaChain mainnet or testnet and
prints the normalized result as JSON.
"""

import argparse
import asyncio
import json
import logging
import os
import sys

from dotenv import load_dotenv


def setup_logging(level: str = "INFO") -> None:
    """Configure logging for the application.

    Args:
        level: Logging level as string (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """
    log_level: int = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(
        level=log_level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        stream=sys.stderr,
    )


# Get logger for this module
logger = logging.getLogger(__name__)

from zetaflow.config import SUPPORTED_NETWORKS, ResolverConfig
from zetaflow.errors import SearchError
from zetaflow.search_orchestrator import OrchestratorRegistry


def build_parser() -> argparse.ArgumentParser:
    epilog_lines = "\n".join(f"  {name:<22}- {help_text}" for name, help_text in ResolverConfig.ENV_VARIABLES)
    parser = argparse.ArgumentParser(
        description="ZetaFlow - resolve ZetaChain transactions and addresses",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=f"Environment Variables:\n{epilog_lines}\n  {'LOG_LEVEL':<22}- Logging level",
    )
    parser.add_argument(
        "query",
        nargs="?",
        default="",
        help="Transaction hash (64 hex chars) or address (40 hex chars)",
    )
    parser.add_argument(
        "--network",
        choices=SUPPORTED_NETWORKS,
        default=None,
        help="Network to search (default: NETWORK or testnet)",
    )
    parser.add_argument(
        "--no-cache",
        action="store_true",
        default=False,
        help="Ignore cached results",
    )
    parser.add_argument(
        "--limit",
        type=int,
        default=None,
        help="Maximum number of address transactions returned",
    )
    parser.add_argument(
        "--health",
        action="store_true",
        default=False,
        help="Report source reachability instead of searching",
    )
    parser.add_argument(
        "--log-level",
        default=os.environ.get("LOG_LEVEL", "INFO"),
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Set the logging level (default: INFO)",
    )
    return parser


async def main() -> None:
    """Parse arguments, run one search or health check, print JSON to stdout.

    Raises:
        SystemExit: On configuration errors and failed searches
    """
    load_dotenv()
    parser = build_parser()
    args: argparse.Namespace = parser.parse_args()

    setup_logging(args.log_level)

    try:
        config = ResolverConfig.from_env()
    except ValueError as e:
        logger.error(f"Configuration Error: {e}")
        logger.error("Please check your environment variables:")
        for name, help_text in ResolverConfig.ENV_VARIABLES:
            logger.error(f"  - {name}: {help_text}")
        sys.exit(1)

    if args.log_level == "DEBUG":
        config.log_config()

    registry = OrchestratorRegistry(config)
    orchestrator = registry.get_instance(args.network or config.network)

    try:
        if args.health:
            status = await orchestrator.get_health_status()
            print(json.dumps(status.to_dict(), indent=2))
            sys.exit(0 if status.reachable else 1)

        if not args.query:
            parser.error("a query is required unless --health is given")

        result = await orchestrator.search(args.query, use_cache=not args.no_cache, limit=args.limit)
        print(json.dumps(result.to_dict(), indent=2))

    except SearchError as e:
        logger.error(f"{e.type.value}: {e.message}")
        print(json.dumps({"error": e.to_dict()}, indent=2))
        sys.exit(1)

    except KeyboardInterrupt:
        logger.info("Received interrupt signal, shutting down...")
        sys.exit(0)


if __name__ == "__main__":
    asyncio.run(main())

#!/usr/bin/env python3
"""
Creator Post Archiver CLI

Command-line entry point: parses the flags, loads the .env configuration and
runs an archiving session.
"""

import sys
import asyncio
import logging
import argparse
from typing import List, Optional

from post_archiver.core.orchestrator import ArchiveOptions, run_archive
from post_archiver.utils.env_loader import (
    build_playwright_proxy, get_general_config, get_proxy_config, load_env_vars
)

logger = logging.getLogger("post_archiver")


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """
    Parse command-line arguments.

    Args:
        argv (Optional[List[str]], optional): Arguments to parse. Defaults to sys.argv.

    Returns:
        argparse.Namespace: Parsed arguments.
    """
    parser = argparse.ArgumentParser(
        description="Archive creator posts from Patreon, pixivFANBOX and Substack to Markdown"
    )

    parser.add_argument(
        "--dir",
        required=True,
        help="Output directory"
    )

    parser.add_argument(
        "--url",
        required=True,
        help="Feed or post URL"
    )

    parser.add_argument(
        "--year",
        help="Year to archive (required for Patreon feeds)"
    )

    parser.add_argument(
        "--update",
        action="store_true",
        help="Stop once already archived posts are reached"
    )

    parser.add_argument(
        "--recover",
        action="store_true",
        help="Restart the run automatically after failures"
    )

    parser.add_argument(
        "--server",
        help="Proxy server, e.g. http://host:port"
    )

    parser.add_argument(
        "--username",
        help="Proxy username"
    )

    parser.add_argument(
        "--password",
        help="Proxy password"
    )

    parser.add_argument(
        "--env-file",
        default=".env",
        help="Path to the .env file"
    )

    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose output"
    )

    return parser.parse_args(argv)


def build_options(args: argparse.Namespace) -> ArchiveOptions:
    """Merge the environment configuration with the command-line flags."""
    load_env_vars(args.env_file)
    proxy_config = get_proxy_config()
    proxy = build_playwright_proxy(
        args.server or proxy_config['server'],
        args.username or proxy_config['username'],
        args.password or proxy_config['password']
    )
    return ArchiveOptions.from_config(
        get_general_config(),
        out_dir=args.dir,
        url=args.url,
        year=args.year,
        update=args.update,
        recover=args.recover,
        proxy=proxy
    )


def main(argv: Optional[List[str]] = None) -> int:
    """Main function."""
    args = parse_args(argv)
    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    try:
        options = build_options(args)
        asyncio.run(run_archive(options))
    except KeyboardInterrupt:
        print("\nOperation cancelled by user")
        return 0
    except Exception as e:
        logger.error(f"Error: {e}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())

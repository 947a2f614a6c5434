#!/usr/bin/env python3
"""Command-line entry point for the conduit client."""

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import Dict, List, Optional

from .client import Client
from .config import Config
from .errors import ConduitError, RemoteError
from .utils import setup_logging, get_logger


def parse_options(pairs: Optional[List[str]]) -> Dict[str, str]:
    """
    Parse ``key=value`` command-line pairs into an option mapping.

    Args:
        pairs: Strings of the form ``key=value``

    Returns:
        Option mapping in argument order

    Raises:
        ValueError: If a pair has no ``=``
    """
    options: Dict[str, str] = {}
    for pair in pairs or []:
        if '=' not in pair:
            raise ValueError(f"Option must be key=value, got {pair!r}")
        key, value = pair.split('=', 1)
        options[key] = value
    return options


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser."""
    parser = argparse.ArgumentParser(description="Conduit RPC client")
    parser.add_argument(
        '-c', '--config',
        help='Configuration file path',
        default=None
    )
    parser.add_argument(
        '-v', '--verbose',
        action='store_true',
        help='Enable verbose logging'
    )
    parser.add_argument('--origin', help='Server origin URL')
    parser.add_argument('--key', help='Session key')
    parser.add_argument('--id', type=int, help='Connection id')

    subparsers = parser.add_subparsers(dest='action', required=True)

    call_parser = subparsers.add_parser('call', help='Perform a remote call and print the result')
    call_parser.add_argument('command', help='Remote route, e.g. fs.stat')
    call_parser.add_argument('-o', '--option', action='append', dest='options',
                             metavar='KEY=VALUE', help='Call option (repeatable)')
    call_parser.add_argument('--payload-file', help='File to upload before the call')
    call_parser.add_argument('--type', choices=['json', 'arraybuffer'], default='json',
                             help='Reply interpretation')
    call_parser.add_argument('--timeout', type=float, help='Seconds to wait for each reply')

    send_parser = subparsers.add_parser('send', help='Send a one-way message')
    send_parser.add_argument('-o', '--option', action='append', dest='options',
                             metavar='KEY=VALUE', help='Message option (repeatable)')
    send_parser.add_argument('--payload-file', help='File to send as the payload')

    return parser


def apply_overrides(config: Config, args: argparse.Namespace) -> Config:
    """Apply command-line overrides to the loaded configuration."""
    if args.origin:
        config.connection.origin = args.origin
    if args.key is not None:
        config.connection.key = args.key
    if args.id is not None:
        config.connection.id = args.id
    if getattr(args, 'timeout', None) is not None:
        config.protocol.call_timeout = args.timeout
    if args.verbose:
        config.logging.level = "DEBUG"
    return config


def write_result(result) -> None:
    """Write a call result to stdout: bytes raw, everything else as JSON."""
    if isinstance(result, (bytes, bytearray)):
        sys.stdout.buffer.write(result)
        sys.stdout.buffer.flush()
    else:
        print(json.dumps(result, indent=2))


async def run(config: Config, args: argparse.Namespace) -> int:
    """Connect, perform the requested action and close."""
    logger = get_logger(__name__)

    options = parse_options(args.options)
    payload = Path(args.payload_file).read_bytes() if args.payload_file else None

    async with await Client.from_config(config) as client:
        if args.action == 'send':
            await client.send(options, payload)
            logger.info("Message sent", options=options)
            return 0

        if args.type == 'arraybuffer':
            options['type'] = 'arraybuffer'

        try:
            result = await client.call(args.command, options, payload)
        except RemoteError as e:
            print(f"Remote error: {e.message}", file=sys.stderr)
            return 1

    write_result(result)
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    config = apply_overrides(Config.load_from_file(args.config), args)

    setup_logging(
        log_level=config.logging.level,
        log_file=config.logging.file,
        max_size=config.logging.max_size,
        backup_count=config.logging.backup_count
    )

    try:
        return asyncio.run(run(config, args))
    except (ConduitError, OSError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())

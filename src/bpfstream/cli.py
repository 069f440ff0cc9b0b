#!/usr/bin/env python3
# SPDX-License-Identifier: MIT
# Copyright (c) 2025 KernelSight AI
"""
Command line interface for bpfstream.

    bpftrace -f json vfs_count.bt | bpfstream vfs count --format json
    bpftrace -f json vfs_raw.bt | bpfstream vfs raw --db-path data/trace.db --table vfs
"""

import argparse
import logging
import sqlite3
import sys
from typing import List, Optional

from rich.console import Console
from rich.logging import RichHandler

from . import __version__
from .backends import BACKENDS
from .config import StreamConfig
from .diagnostics import Diagnostics
from .domains import DOMAINS, get_domain
from .errors import StreamError
from .output import FORMATS, render_counts
from .pipeline import count_stream, ingest_raw
from .sink import SQLiteSink
from .source import STDIN, open_input

logger = logging.getLogger(__name__)


def setup_logging(verbose: bool = False):
    """Send log records to stderr through rich."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=verbose)],
        force=True,
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="bpfstream",
        description="Aggregate or store bpftrace JSON output",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument('--version', action='version', version=f"%(prog)s {__version__}")
    parser.add_argument('--verbose', action='store_true', help='Enable debug logging')

    domains = parser.add_subparsers(dest='domain', metavar='DOMAIN', required=True)
    for domain in DOMAINS.values():
        domain_parser = domains.add_parser(domain.name, help=domain.description)
        commands = domain_parser.add_subparsers(dest='command', metavar='COMMAND', required=True)

        count = commands.add_parser(
            'count', help=f"Aggregate {domain.name} operation counts",
            formatter_class=argparse.ArgumentDefaultsHelpFormatter)
        count.add_argument('-i', '--input', default=STDIN, help='Input file (- for stdin)')
        count.add_argument('--format', choices=FORMATS, default='table', help='Output format')
        count.add_argument('--live', action='store_true',
                           help='Print each interval as it arrives')
        count.add_argument('--parser', choices=['json'], default='json',
                           help='Parser backend')

        raw = commands.add_parser(
            'raw', help=f"Write raw {domain.name} events to SQLite",
            formatter_class=argparse.ArgumentDefaultsHelpFormatter)
        raw.add_argument('-i', '--input', default=STDIN, help='Input file (- for stdin)')
        raw.add_argument('--db-path', default=None,
                         help='SQLite database file (default: BPFSTREAM_DB_PATH or data/bpfstream.db)')
        raw.add_argument('--table', required=True, help='Target table name')
        raw.add_argument('--parser', choices=sorted(BACKENDS), default='json',
                         help='Parser backend')
        raw.add_argument('--batch-size', type=int, default=None,
                         help='Rows per commit')

    return parser


def run_count(args, config: StreamConfig, diagnostics: Diagnostics) -> int:
    domain = get_domain(args.domain)

    def print_interval(snapshot, index):
        render_counts(snapshot, index, args.format)

    with open_input(args.input) as stream:
        accumulator = count_stream(
            stream, domain,
            backend=args.parser,
            on_interval=print_interval if args.live else None,
            diagnostics=diagnostics,
            config=config,
        )

    if not args.live:
        render_counts(accumulator.total, accumulator.interval_count, args.format)
    elif accumulator.interval_count > 1:
        print("\n--- Total ---")
        render_counts(accumulator.total, accumulator.interval_count, args.format)
    return 0


def run_raw(args, config: StreamConfig, diagnostics: Diagnostics) -> int:
    domain = get_domain(args.domain)
    config = config.with_overrides(db_path=args.db_path, batch_size=args.batch_size)

    with SQLiteSink(config.db_path, args.table, domain, batch_size=config.batch_size) as sink:
        with open_input(args.input) as stream:
            stats = ingest_raw(stream, domain, sink,
                               backend=args.parser, diagnostics=diagnostics, config=config)

    logger.info(f"Stored {stats.rows} {domain.name} events in {config.db_path}:{args.table}")
    if stats.lost_events:
        logger.warning(f"Tracer reported {stats.lost_events} lost events")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)
    setup_logging(args.verbose)

    try:
        config = StreamConfig.from_env()
        diagnostics = Diagnostics(logging.getLogger("bpfstream"))
        if args.command == 'count':
            return run_count(args, config, diagnostics)
        return run_raw(args, config, diagnostics)
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 130
    except (StreamError, ValueError, OSError, sqlite3.Error) as e:
        logger.error(f"Unexpected error: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())

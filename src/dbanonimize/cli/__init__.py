#!/usr/bin/env python3
"""dbanonimize CLI - Command line interface for database anonymization.

Usage:
    dbanonimize anonymize URL CONFIG [--exclude T ...] [--only T ...] [--per-column]
    dbanonimize clean URL [--force]
    dbanonimize count CONFIG

Examples:
    # Anonymize everything configured
    dbanonimize anonymize sqlite:///app.db anonymization.yaml

    # Resume after a failure, skipping tables already done
    dbanonimize anonymize sqlite:///app.db anonymization.yaml --exclude users orders

    # List, then drop, left-over temporary tables
    dbanonimize clean sqlite:///app.db
    dbanonimize clean sqlite:///app.db --force
"""

import argparse
import logging
import sys

from sqlalchemy import create_engine

from dbanonimize import __version__
from dbanonimize.anonymizator import Anonymizator
from dbanonimize.config import YamlLoader
from dbanonimize.errors import format_error


def print_error(message: str):
    """Print an error message."""
    print(f"✗ {message}", file=sys.stderr)


def print_success(message: str):
    """Print a success message."""
    print(f"✓ {message}")


def print_info(message: str):
    """Print an info message."""
    print(f"ℹ {message}")


def cmd_anonymize(args) -> int:
    """Handle the anonymize command."""
    loader = YamlLoader(args.config, connection_name=args.connection_key)
    engine = create_engine(args.url)

    try:
        with engine.connect() as connection:
            anonymizator = Anonymizator(args.name, connection, loader=loader)
            print_info(
                f"Anonymizing {anonymizator.count()} configured table(s) "
                f"on '{anonymizator.get_connection_name()}'"
            )
            for line in anonymizator.anonymize(
                excluded_targets=args.exclude,
                only_targets=args.only,
                at_once=not args.per_column,
            ):
                print(line, flush=True)
    except Exception as e:
        print_error(f"Anonymization failed: {format_error(e)}")
        return 1
    finally:
        engine.dispose()

    print_success("Anonymization complete!")
    return 0


def cmd_clean(args) -> int:
    """Handle the clean command."""
    engine = create_engine(args.url)

    try:
        with engine.connect() as connection:
            anonymizator = Anonymizator(args.name, connection)
            found = 0
            for line in anonymizator.clean(dry_run=not args.force):
                print(f"  {line}")
                found += 1
    except Exception as e:
        print_error(f"Cleaning failed: {format_error(e)}")
        return 1
    finally:
        engine.dispose()

    if not found:
        print_info("No left-over temporary table")
    elif args.force:
        print_success(f"Dropped {found} temporary table(s)")
    else:
        print(f"\nDRY RUN - {found} table(s) would be dropped, run with --force to drop them")
    return 0


def cmd_count(args) -> int:
    """Handle the count command."""
    try:
        config = YamlLoader(args.config, connection_name=args.connection_key).load()
    except Exception as e:
        print_error(format_error(e))
        return 1

    print(config.count())
    return 0


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="dbanonimize",
        description="""
dbanonimize - In-place anonymization of database tables.

Quick Start:
    dbanonimize anonymize sqlite:///app.db anonymization.yaml
    dbanonimize clean sqlite:///app.db
        """,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}"
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Show debug logs"
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    anonymize_parser = subparsers.add_parser(
        "anonymize",
        aliases=["anon"],
        help="Anonymize the configured tables in place"
    )
    anonymize_parser.add_argument("url", help="SQLAlchemy database URL")
    anonymize_parser.add_argument("config", help="YAML anonymization configuration")
    filters = anonymize_parser.add_mutually_exclusive_group()
    filters.add_argument(
        "-x", "--exclude",
        nargs="+",
        metavar="TARGET",
        help="Skip these targets ('TABLE' or 'TABLE.TARGET')"
    )
    filters.add_argument(
        "-t", "--only",
        nargs="+",
        metavar="TARGET",
        help="Only process these targets ('TABLE' or 'TABLE.TARGET')"
    )
    anonymize_parser.add_argument(
        "--per-column",
        action="store_true",
        help="Run one UPDATE per column instead of one per table"
    )

    clean_parser = subparsers.add_parser(
        "clean",
        help="List or drop temporary tables left by failed runs"
    )
    clean_parser.add_argument("url", help="SQLAlchemy database URL")
    clean_parser.add_argument(
        "--force",
        action="store_true",
        help="Really drop the tables (default: dry run)"
    )

    count_parser = subparsers.add_parser(
        "count",
        help="Count configured tables"
    )
    count_parser.add_argument("config", help="YAML anonymization configuration")

    for subparser in (anonymize_parser, clean_parser):
        subparser.add_argument(
            "--name",
            default="default",
            help="Connection name used in messages (default: default)"
        )
    for subparser in (anonymize_parser, count_parser):
        subparser.add_argument(
            "--connection-key",
            help="Read tables under this top-level key of the configuration file"
        )

    return parser


def main(argv=None):
    """Main entry point."""
    parser = create_parser()
    args = parser.parse_args(argv)

    if args.verbose:
        logging.basicConfig(format="%(levelname)s %(name)s: %(message)s")
        logging.getLogger("dbanonimize").setLevel(logging.DEBUG)

    if args.command in ("anonymize", "anon"):
        return cmd_anonymize(args)

    elif args.command == "clean":
        return cmd_clean(args)

    elif args.command == "count":
        return cmd_count(args)

    parser.print_help()
    return 0


if __name__ == "__main__":
    sys.exit(main())

"""
Command-line interface for geolocation-compiler.

Provides commands for building a database and inspecting one.
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import Optional

from .compiler import GazetteerCompiler
from .config import load_config
from .errors import CompilerError
from .indices import FormatVersion
from .serialize import read_database


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="geolocation-compiler",
        description="Compile GeoNames gazetteer dumps into a geolocation database",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable debug logging",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # Build command
    build_parser = subparsers.add_parser(
        "build",
        help="Build a database from a run configuration file",
    )
    build_parser.add_argument(
        "config",
        type=Path,
        help="JSON run configuration",
    )
    build_parser.add_argument(
        "-o", "--output-dir",
        type=Path,
        help="Output directory (overrides the configuration)",
    )
    build_parser.add_argument(
        "--format-version",
        type=int,
        choices=[int(v) for v in FormatVersion],
        default=None,
        help="Format version to target (overrides the configuration)",
    )

    # Stats command
    stats_parser = subparsers.add_parser(
        "stats",
        help="Show statistics for a compiled database",
    )
    stats_parser.add_argument(
        "database",
        type=Path,
        help="Database file",
    )

    return parser


def setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s [%(levelname)-8s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        handlers=[logging.StreamHandler(sys.stderr)],
    )


def cmd_build(args: argparse.Namespace) -> int:
    """Handle the build command."""
    config = load_config(args.config)
    if args.output_dir:
        config.output_dir = args.output_dir
    if args.format_version:
        config.version = FormatVersion(args.format_version)

    print(f"Building geolocation database from {len(config.datasets)} dataset(s)...")
    compiler = GazetteerCompiler(config)
    result = compiler.compile()
    stats = result.stats

    print(f"\nBuild statistics:")
    print(f"  Format version: {stats.version}" + (" (upgraded)" if stats.escalated else ""))
    print(f"  Rows retained: {stats.rows_retained}")
    print(f"  Coordinate collisions: {stats.collisions}")
    print(f"  Cities written: {stats.cities_written}")
    print(f"  Countries: {stats.countries}")
    print(f"  Regions: {stats.regions}")
    print(f"  Subregions: {stats.subregions}")
    print(f"  Timezones: {stats.timezones}")
    print(f"  Feature codes: {stats.feature_codes}")
    print(f"  Language tables: {stats.languages_written}")
    print(f"\nWrote {result.database_path}")

    return 0


def cmd_stats(args: argparse.Namespace) -> int:
    """Handle the stats command."""
    db = read_database(args.database.read_bytes())

    print(f"Database {args.database}:")
    print(f"  Format version: {int(db.version)}")
    print(f"  Comment: {db.comment}")
    print(f"  Cities: {len(db.cities)}")
    print(f"  Countries: {len(db.countries)}")
    print(f"  Regions: {len(db.regions)}")
    print(f"  Subregions: {len(db.subregions)}")
    print(f"  Timezones: {len(db.timezones)}")
    print(f"  Feature codes: {len(db.feature_codes)}")

    return 0


def main(argv: Optional[list] = None) -> int:
    """Main entry point."""
    parser = create_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 1

    setup_logging(args.verbose)

    try:
        if args.command == "build":
            return cmd_build(args)
        elif args.command == "stats":
            return cmd_stats(args)
    except CompilerError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except (OSError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    parser.print_help()
    return 1


if __name__ == "__main__":
    sys.exit(main())

"""
Pixiv2Billfish CLI - Entry point

Loads the configuration, applies command line overrides and runs one sync
against the configured Billfish library.
"""

import argparse
import sys
from pathlib import Path
from typing import List, Optional

from loguru import logger

from pixiv_billfish.core.config import Config, load_config, write_default_config
from pixiv_billfish.core.console import build_stats_table, get_console, print_unwritten
from pixiv_billfish.core.database import AssetStore, StoreError
from pixiv_billfish.core.output import setup_from_config
from pixiv_billfish.domain.sync import InitializationError, SyncEngine, SyncReport


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="pixiv-billfish",
        description="Pixiv2Billfish - write Pixiv tags and descriptions into a Billfish library",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--config", type=Path, help="Path to config.toml")
    parser.add_argument("--db", help="Billfish database (overrides [database] path)")
    parser.add_argument("--start", type=int, help="Index of the first file to process")
    parser.add_argument(
        "--limit", type=int, help="Number of files to process (0 = all remaining)"
    )
    parser.add_argument("--no-tags", action="store_true", help="Skip the tag pipeline")
    parser.add_argument("--no-notes", action="store_true", help="Skip the note pipeline")
    parser.add_argument(
        "--no-skip",
        action="store_true",
        help="Process files that already have tags or notes",
    )
    parser.add_argument(
        "--init-config",
        action="store_true",
        help="Write the default config file and exit",
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        type=str.upper,
        help="Console log level",
    )
    return parser


def apply_overrides(config: Config, args: argparse.Namespace) -> Config:
    """Apply command line flags on top of the loaded configuration."""
    if args.db:
        config.database.path = args.db
    if args.start is not None:
        config.sync.start_file_num = args.start
    if args.limit is not None:
        config.sync.end_file_num = args.limit
    if args.no_tags:
        config.sync.write_tag = False
    if args.no_notes:
        config.sync.write_note = False
    if args.no_skip:
        config.sync.skip_existing = False
    if args.log_level:
        config.logging.level = args.log_level
    return config


def print_report(report: SyncReport) -> None:
    console = get_console()
    rows = []
    for name, snap in (("Tags", report.tag_stats), ("Notes", report.note_stats)):
        if snap is not None:
            rows.append((name, snap.total, snap.success, snap.fail, snap.skip))

    if rows:
        console.print(build_stats_table(rows))
    if report.regrouped_artist_tags:
        console.print(f"Moved {report.regrouped_artist_tags} artist tags under 'Artist'")
    print_unwritten(report.unwritten, console)
    console.print(f"[bold]Total time:[/bold] {report.elapsed_seconds:.1f}s")


def run(args: argparse.Namespace) -> int:
    """Run one sync.

    Returns:
        Exit code (0 for success, 1 for failure)
    """
    console = get_console()

    if args.init_config:
        path = write_default_config(args.config)
        console.print(f"[green]Wrote default configuration to {path}[/green]")
        return 0

    config = apply_overrides(load_config(args.config), args)
    log_file = setup_from_config(config.logging)
    logger.debug(f"Logging to {log_file}")

    if not config.sync.write_tag and not config.sync.write_note:
        console.print("[yellow]Both pipelines are disabled, nothing to do[/yellow]")
        return 0

    try:
        with AssetStore(config.database.path) as store:
            report = SyncEngine(config, store).run()
    except InitializationError as e:
        console.print(f"[red]Sync could not start: {e}[/red]")
        return 1
    except StoreError as e:
        logger.error(f"Billfish database error: {e}")
        console.print(f"[red]Billfish database error: {e}[/red]")
        return 1

    print_report(report)
    return 0


def main(argv: Optional[List[str]] = None) -> None:
    """Main entry point for the pixiv-billfish command."""
    args = build_parser().parse_args(argv)
    try:
        sys.exit(run(args))
    except KeyboardInterrupt:
        logger.warning("Interrupted by user")
        sys.exit(130)


if __name__ == "__main__":
    main()

"""Centralized Rich Console management and run summaries."""

from typing import Dict, Optional, Sequence, Tuple

from rich.console import Console
from rich.table import Table

_console: Console | None = None


def get_console() -> Console:
    """Get or create the global Rich Console instance.

    Returns:
        Console: The global Rich Console instance
    """
    global _console
    if _console is None:
        _console = Console()
    return _console


def build_stats_table(
    rows: Sequence[Tuple[str, int, int, int, int]], title: str = "Sync statistics"
) -> Table:
    """Build a table of pipeline counters.

    Args:
        rows: (pipeline, total, success, fail, skip) per pipeline
        title: Table title
    """
    table = Table(title=title)
    table.add_column("Pipeline", style="bold")
    table.add_column("Total", justify="right")
    table.add_column("Success", justify="right", style="green")
    table.add_column("Failed", justify="right", style="red")
    table.add_column("Skipped", justify="right", style="yellow")

    for name, total, success, fail, skip in rows:
        table.add_row(name, str(total), str(success), str(fail), str(skip))
    return table


def print_unwritten(unwritten: Dict[str, int], console: Optional[Console] = None) -> None:
    """Warn about rows that were still queued when the run ended."""
    if not unwritten:
        return
    console = console or get_console()
    for name, count in unwritten.items():
        console.print(f"[red]{count} {name} could not be written[/red]")

"""Logging setup and the debug/monitoring panel."""

import sys
from pathlib import Path
from typing import Any, Dict, Optional, Union

from loguru import logger
from rich.console import Console
from rich.table import Table

LOG_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan> - <level>{message}</level>"
)

STATUS_STYLES = {
    'good': 'green',
    'warning': 'yellow',
    'critical': 'red',
}


def configure_logging(level: str = "INFO", log_file: Optional[Union[str, Path]] = None) -> None:
    """
    Route loguru output to stderr and, optionally, a rotating file.

    Args:
        level: Minimum level for the stderr sink
        log_file: File sink path; always logs at DEBUG
    """
    logger.remove()
    logger.add(sys.stderr, format=LOG_FORMAT, level=level)

    if log_file:
        log_path = Path(log_file).expanduser()
        log_path.parent.mkdir(parents=True, exist_ok=True)
        logger.add(
            log_path,
            rotation="1 day",
            retention="7 days",
            level="DEBUG"
        )


def _stats_table(title: str, stats: Dict[str, Any]) -> Table:
    table = Table(title=title)
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right")
    for name, value in stats.items():
        table.add_row(name, str(value))
    return table


def usage_table(usage: Dict[str, Any]) -> Table:
    table = Table(title="Daily Token Usage")
    table.add_column("Requests", justify="right")
    table.add_column("Tokens", justify="right")
    table.add_column("Used", justify="right")
    table.add_column("Status")

    status = usage.get('status', 'good')
    style = STATUS_STYLES.get(status, 'white')
    table.add_row(
        str(usage.get('requests', 0)),
        f"{usage.get('estimated_tokens', 0):,}",
        f"{usage.get('percentage', 0.0):.2f}%",
        f"[{style}]{status.upper()}[/{style}]",
    )
    return table


def render_debug_panel(assistant, console: Optional[Console] = None):
    """
    Build the monitoring tables from an assistant's read-only getters.

    Prints them when a console is given; returns the tables either way.
    """
    tables = [
        usage_table(assistant.get_daily_usage()),
        _stats_table("Response Cache", assistant.get_cache_stats()),
        _stats_table("Request Coordinator", assistant.get_coordinator_stats()),
    ]

    if console is not None:
        for table in tables:
            console.print(table)
    return tables

"""
cli.py — prodspace command line

Renders a day's timeline in the terminal from a YAML file of task rows.

Usage:
    python -m prodspace --tasks tasks.yaml
    python -m prodspace --tasks tasks.yaml --now 2025-07-14T09:40
    python -m prodspace --tasks tasks.yaml --log-level DEBUG --config path/to/config.yaml

tasks.yaml is either a list of rows or a mapping with a "tasks" list; each
row uses the store's column names (id, text, estimate, placed,
assigned_time, status, created_at).
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from datetime import datetime
from pathlib import Path
from typing import Any, Optional, Sequence

import yaml
from rich import box
from rich.console import Console
from rich.markup import escape
from rich.table import Table
from rich.text import Text


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="prodspace",
        description="prodspace — render today's task timeline",
    )
    parser.add_argument(
        "--tasks",
        default=None,
        help="YAML file of task rows to load into an in-memory store",
    )
    parser.add_argument(
        "--now",
        default=None,
        help="Pretend the current time is this ISO timestamp (default: the real clock)",
    )
    parser.add_argument(
        "--config",
        default=None,
        help="Path to config.yaml (default: $PRODSPACE_CONFIG or config/config.yaml)",
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default=None,
        help="Override log level from config",
    )
    return parser.parse_args(argv)


def bootstrap(args: argparse.Namespace, console: Console):
    """
    Load config, validate it fully, and set up logging.
    Returns settings, or None after printing a clear message if the config
    is invalid.
    """
    from pydantic import ValidationError

    from prodspace.config.settings import ConfigError, load_settings
    from prodspace.observability.logger import setup_logging

    try:
        settings = load_settings(args.config)
    except ValidationError as exc:
        problems = "\n".join(
            f"  • {'.'.join(str(p) for p in e['loc']) or '?'}: {escape(e['msg'])}"
            for e in exc.errors()
        )
        console.print(
            f"\n[red]❌  Config validation failed:[/]\n\n{problems}\n\n"
            f"    Fix config/config.yaml or your .env file and retry.\n"
        )
        return None
    except (OSError, yaml.YAMLError) as exc:
        console.print(f"\n[red]❌  Failed to load config: {type(exc).__name__}: {escape(str(exc))}[/]\n")
        return None

    try:
        settings.validate_all()
    except ConfigError as exc:
        console.print(str(exc), markup=False)
        return None

    setup_logging(settings.logging, level=args.log_level)
    return settings


def load_task_rows(path: str | Path) -> list[dict[str, Any]]:
    with Path(path).open("r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or []
    if isinstance(data, dict):
        data = data.get("tasks") or []
    if not isinstance(data, list):
        raise ValueError(f"{path}: expected a list of task rows")
    return data


# ─────────────────────────────────────────────────────────────────────────────
# Rendering
# ─────────────────────────────────────────────────────────────────────────────

def build_timeline_table(view) -> Table:
    """One row per hour label; each placed task sits in the hour it starts."""
    from prodspace.scheduling.geometry import format_hour

    geometry = view.geometry
    now = view.clock.current_instant
    now_offset = view.current_offset()

    by_hour: dict[int, list] = {}
    for task, task_box in view.boxes():
        hour = geometry.start_hour + int((task_box.top - geometry.top_padding) // geometry.hour_height)
        by_hour.setdefault(hour, []).append((task, task_box))

    table = Table(
        title=f"Today's Calendar — {now:%A %d %B %Y}",
        box=box.SIMPLE_HEAVY,
        show_lines=False,
    )
    table.add_column("Time", style="dim", width=6, justify="right")
    table.add_column("Task", style="green")
    table.add_column("Minutes", justify="right")
    table.add_column("Top", justify="right", style="dim")
    table.add_column("Height", justify="right", style="dim")

    for hour in geometry.hours():
        entries = by_hour.get(hour, [])
        if not entries:
            table.add_row(format_hour(hour), "", "", "", "")
        for i, (task, task_box) in enumerate(entries):
            interval = task.interval()
            label = Text(f"{interval.start:%H:%M} {task.text}" if interval else task.text)
            table.add_row(
                format_hour(hour) if i == 0 else "",
                label,
                str(task.estimate_minutes),
                f"{task_box.top:.0f}",
                f"{task_box.height:.0f}",
            )
        if now_offset is not None and now.hour == hour:
            table.add_row(
                "",
                Text(f"── now {now:%H:%M} ──", style="bold red"),
                "",
                f"{now_offset:.0f}",
                "",
            )
    return table


def render(view, console: Console) -> None:
    console.print(build_timeline_table(view))

    if view.unplaced:
        console.print("[bold]Unplaced tasks[/]")
        for task in view.unplaced:
            console.print(f"  • {escape(task.text)} [dim]({task.estimate_minutes} min)[/]")
    else:
        console.print("[dim]No unplaced tasks[/]")

    hidden = view.hidden()
    if hidden:
        console.print("[yellow]Placed outside the visible window[/]")
        for task in hidden:
            console.print(f"  • {escape(task.text)} [dim]{escape(task.assigned_time or '')}[/]")


async def run(args: argparse.Namespace, console: Console) -> int:
    from prodspace.observability.logger import get_logger
    from prodspace.scheduling.timeline import TimelineView
    from prodspace.store.memory import InMemoryStore

    settings = bootstrap(args, console)
    if settings is None:
        return 1
    log = get_logger("prodspace.cli")

    rows: list[dict[str, Any]] = []
    if args.tasks:
        try:
            rows = load_task_rows(args.tasks)
        except (OSError, ValueError, yaml.YAMLError) as exc:
            console.print(f"[red]❌  Cannot read tasks: {escape(str(exc))}[/]")
            return 1

    if args.now:
        try:
            fixed = datetime.fromisoformat(args.now)
        except ValueError:
            console.print(f"[red]❌  --now is not an ISO timestamp: {escape(args.now)}[/]")
            return 1
        now = lambda: fixed  # noqa: E731
    else:
        now = datetime.now

    try:
        store = InMemoryStore.from_rows(rows, now=now)
    except (KeyError, TypeError, ValueError) as exc:
        console.print(f"[red]❌  Invalid task row: {type(exc).__name__}: {escape(str(exc))}[/]")
        return 1
    view = TimelineView.from_settings(settings, store, now=now)
    log.info("cli.render", tasks=len(rows))

    await view.mount()
    try:
        render(view, console)
    finally:
        await view.unmount()
    return 0


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_args(argv)
    console = Console()
    try:
        return asyncio.run(run(args, console))
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    sys.exit(main())

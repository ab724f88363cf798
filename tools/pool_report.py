#!/usr/bin/env -S uv run
"""
Pool report tool for bean_counter

Prints every tube (stats merged across the pool) and, optionally, every job
of a beanstalkd pool. Handy when an assertion fails and you want to see what
the pool actually holds.

Usage:
    uv run tools/pool_report.py
    uv run tools/pool_report.py --urls localhost:11300,localhost:11301 --jobs
    uv run tools/pool_report.py --tube email --jobs
    uv run tools/pool_report.py --help
"""
# /// script
# requires-python = ">=3.12"
# dependencies = [
#     "pydantic>=2.0",
#     "greenstalk>=2.0",
#     "typer>=0.9.0",
#     "rich>=13.0",
# ]
# ///

from __future__ import annotations

import asyncio
import sys
from pathlib import Path

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

# Import bean_counter from the local checkout
sys.path.insert(0, str(Path(__file__).parent.parent))

from bean_counter import Job, PoolSettings, Strategy, build_strategy
from bean_counter.domain.errors import BeanCounterError

app = typer.Typer(
    help="Report tubes and jobs across a beanstalkd pool",
    add_completion=False,
)

TUBE_COLUMNS = (
    "current-jobs-ready",
    "current-jobs-reserved",
    "current-jobs-delayed",
    "current-jobs-buried",
    "total-jobs",
    "current-watching",
)

JOB_COLUMNS = ("connection", "id", "tube", "state", "pri", "age", "reserves", "buries")


# ---------------------------------------------------------------------------
# Collection
# ---------------------------------------------------------------------------


async def collect(
    strategy: Strategy, tube_name: str | None, with_jobs: bool
) -> tuple[list[dict[str, object]], list[Job]]:
    """Merged stats of every tube (or just `tube_name`) and, optionally, its jobs."""
    tubes: list[dict[str, object]] = []
    async for tube in strategy.tubes():
        if tube_name is not None and tube.name != tube_name:
            continue
        stats = await tube.to_hash()
        if stats:
            tubes.append(stats)

    jobs: list[Job] = []
    if with_jobs:
        async for job in strategy.jobs():
            if tube_name is None or job.tube == tube_name:
                jobs.append(job)
    return tubes, jobs


# ---------------------------------------------------------------------------
# Result Formatting
# ---------------------------------------------------------------------------


def print_report(
    settings: PoolSettings, tubes: list[dict[str, object]], jobs: list[Job] | None
) -> None:
    console = Console()

    console.print()
    console.print(
        Panel(
            f"[bold cyan]Pool: {', '.join(settings.urls)}[/bold cyan]",
            expand=False,
        )
    )

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Tube", style="cyan")
    for column in TUBE_COLUMNS:
        table.add_column(column, justify="right")
    for stats in tubes:
        table.add_row(
            str(stats.get("name", "")),
            *(str(stats.get(column, "")) for column in TUBE_COLUMNS),
        )
    console.print(table)

    if jobs is None:
        console.print()
        return

    table = Table(show_header=True, header_style="bold magenta")
    for column in JOB_COLUMNS:
        table.add_column(column, justify="right" if column != "tube" else "left")
    for job in jobs:
        table.add_row(*(str(job.attribute(column)) for column in JOB_COLUMNS))
    console.print()
    console.print(f"[bold yellow]Jobs: {len(jobs)}[/bold yellow]")
    console.print(table)
    console.print()


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------


@app.command()
def main(
    urls: str = typer.Option(
        None,
        "--urls",
        "-u",
        help="Comma-separated beanstalkd URLs (default: $BEANSTALKD_URLS)",
    ),
    tube: str = typer.Option(
        None,
        "--tube",
        "-t",
        help="Only report this tube",
    ),
    jobs: bool = typer.Option(
        False,
        "--jobs",
        "-j",
        help="Also list every job (climbs the id space of each server)",
    ),
) -> None:
    """
    Report the tubes and jobs of a beanstalkd pool.

    Tube counters are summed across every server in the pool.
    """
    settings = PoolSettings.from_env()
    if urls:
        settings = PoolSettings(
            urls=tuple(u.strip() for u in urls.split(",") if u.strip()),
            strategy=settings.strategy,
        )

    try:
        strategy = build_strategy(settings)
        tube_stats, job_list = asyncio.run(collect(strategy, tube, jobs))
    except (BeanCounterError, ValueError) as e:
        print(f"\nError inspecting pool: {e}", file=sys.stderr)
        raise typer.Exit(code=1)

    print_report(settings, tube_stats, job_list if jobs else None)


if __name__ == "__main__":
    app()

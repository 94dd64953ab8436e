# -*- coding: utf-8 -*-
"""Command line entry point: run the service or inspect a running one."""
import os
import typing as t
from datetime import datetime

import click
import httpx
from rich.console import Console
from rich.errors import StyleSyntaxError
from rich.style import Style
from rich.table import Table
from rich.text import Text

from planner_server.config import load_settings
from planner_server.logging_setup import setup_logging

console = Console()
err_console = Console(stderr=True)

# Service URL - configurable via environment variable
PLANNER_SERVICE_URL = os.getenv("PLANNER_SERVICE_URL", "http://localhost:8004")

STANDARD_TIMEOUT = 30.0

PRIORITY_LABELS = {1: "low", 2: "medium", 3: "high"}
PRIORITY_STYLES = {1: "green", 2: "yellow", 3: "bold red"}
STATUS_LABELS = {"pending": "Pending", "in_progress": "In progress", "completed": "Done"}


def format_datetime_human(iso_datetime: t.Optional[str]) -> str:
    """Convert ISO datetime to human-readable format (Mon 1/15 2:30 PM)."""
    if not iso_datetime:
        return "—"
    try:
        dt = datetime.fromisoformat(iso_datetime.replace("Z", "+00:00"))
        return dt.strftime("%a %-m/%-d %-I:%M %p")
    except (ValueError, AttributeError):
        return iso_datetime


def _styled(text: str, style: str) -> Text:
    """Plain text in the given style; subject colors are free-form, so bad styles are dropped."""
    try:
        return Text(text, style=Style.parse(style))
    except StyleSyntaxError:
        return Text(text)


def build_tasks_table(tasks: list[dict], subjects: list[dict]) -> Table:
    """Render tasks as returned by ``GET /tasks`` in the order received."""
    by_id = {subject["id"]: subject for subject in subjects}

    table = Table(title="📚 Tasks", show_header=True, header_style="bold magenta")
    table.add_column("#", style="cyan", width=4)
    table.add_column("Title", style="white")
    table.add_column("Subject")
    table.add_column("Priority")
    table.add_column("Status")
    table.add_column("Due", style="yellow")

    for idx, task in enumerate(tasks, 1):
        subject = by_id.get(task.get("subjectId"))
        priority = task.get("priority", 1)
        table.add_row(
            str(idx),
            Text(task["title"]),
            _styled(subject["name"], subject["color"]) if subject else Text("—"),
            _styled(PRIORITY_LABELS.get(priority, str(priority)), PRIORITY_STYLES.get(priority, "white")),
            STATUS_LABELS.get(task.get("status"), task.get("status", "")),
            format_datetime_human(task.get("dueDate")),
        )
    return table


def build_subjects_table(subjects: list[dict]) -> Table:
    table = Table(title="🎨 Subjects", show_header=True, header_style="bold magenta")
    table.add_column("Name", style="white")
    table.add_column("Color")
    table.add_column("Id", style="dim")
    for subject in subjects:
        swatch = _styled("■ ", subject["color"]) + Text(subject["color"])
        table.add_row(Text(subject["name"]), swatch, subject["id"])
    return table


def _get_json(url: str, path: str, params: t.Optional[dict] = None) -> t.Any:
    try:
        with httpx.Client(timeout=STANDARD_TIMEOUT) as client:
            response = client.get(f"{url}{path}", params=params)
            response.raise_for_status()
    except httpx.HTTPStatusError as e:
        err_console.print(f"[red]Error:[/red] {e.response.status_code} {e.response.text}")
        raise SystemExit(1)
    except httpx.HTTPError as e:
        err_console.print(f"[red]Error:[/red] could not reach planner service at {url}: {e}")
        raise SystemExit(1)
    return response.json()


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
def main() -> None:
    """Student study planner."""


@main.command()
@click.option("--host", default=None, help="Bind address (default: PLANNER_HOST or 0.0.0.0).")
@click.option("--port", type=int, default=None, help="Port (default: PLANNER_PORT or 8004).")
@click.option("--seed/--no-seed", default=None, help="Seed the default subjects.")
@click.option("--log-level", default=None, help="Logging level (default: PLANNER_LOG_LEVEL or INFO).")
def serve(host: t.Optional[str], port: t.Optional[int], seed: t.Optional[bool], log_level: t.Optional[str]) -> None:
    """Run the planner REST API."""
    import uvicorn
    from dataclasses import replace

    from services.planner_service.app import create_app

    settings = load_settings()
    overrides = {
        "host": host,
        "port": port,
        "seed_subjects": seed,
        "log_level": log_level.upper() if log_level else None,
    }
    settings = replace(settings, **{k: v for k, v in overrides.items() if v is not None})

    setup_logging(settings.log_level)
    uvicorn.run(create_app(settings=settings), host=settings.host, port=settings.port, log_config=None)


@main.command()
@click.option("--url", default=PLANNER_SERVICE_URL, show_default=True, help="Planner service URL.")
@click.option("--subject", "subject_id", default=None, help="Only tasks of this subject id.")
@click.option("--status", type=click.Choice(["pending", "in_progress", "completed"]), default=None)
@click.option("--priority", type=click.IntRange(1, 3), default=None)
def tasks(url: str, subject_id: t.Optional[str], status: t.Optional[str], priority: t.Optional[int]) -> None:
    """Show tasks from a running planner service."""
    params = {"subjectId": subject_id, "status": status, "priority": priority}
    task_list = _get_json(url, "/tasks", {k: v for k, v in params.items() if v is not None})
    subject_list = _get_json(url, "/subjects")

    if not task_list:
        console.print("✅ No tasks found.")
        return
    console.print(build_tasks_table(task_list, subject_list))
    console.print(f"Total: {len(task_list)} task(s)")


@main.command()
@click.option("--url", default=PLANNER_SERVICE_URL, show_default=True, help="Planner service URL.")
def subjects(url: str) -> None:
    """Show subjects from a running planner service."""
    subject_list = _get_json(url, "/subjects")
    if not subject_list:
        console.print("No subjects found.")
        return
    console.print(build_subjects_table(subject_list))


if __name__ == "__main__":
    main()

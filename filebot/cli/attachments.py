"""
Attachment CLI Commands
=======================

CLI commands for extracting, inspecting and deleting project attachments.
"""

from __future__ import annotations

import asyncio
import json
from pathlib import Path

import typer
from rich import print as rprint
from rich.console import Console
from rich.table import Table

from filebot.core.errors import InvalidRequestError
from filebot.ingestion.jobs import (
    JobStatus,
    enqueue_extraction,
    extract_attachments_sync,
    get_job_status,
)
from filebot.ingestion.pipeline import Filebot
from filebot.ingestion.reader import format_bytes

console = Console()
attachments_app = typer.Typer(help="Attachment pipeline commands")
jobs_app = typer.Typer(help="Job management commands")

attachments_app.add_typer(jobs_app, name="jobs")


def _load_packages(path: Path) -> list[dict]:
    """Read a package tree from a JSON file."""
    if not path.exists():
        rprint(f"[red]Error:[/red] Input file not found: {path}")
        raise typer.Exit(1)

    try:
        with open(path) as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        rprint(f"[red]Error:[/red] Invalid JSON in {path}: {e}")
        raise typer.Exit(1)

    if isinstance(data, dict):
        data = data.get("packages", [])
    if not isinstance(data, list):
        rprint("[red]Error:[/red] Expected a list of packages")
        raise typer.Exit(1)
    return data


@attachments_app.command("extract")
def extract(
    project: str = typer.Option(..., "--project", "-p", help="Project identifier"),
    location: str = typer.Option(..., "--location", "-b", help="Bucket, optionally bucket/prefix"),
    input_path: Path = typer.Option(..., "--input", "-i", help="JSON file with the package tree"),
    sync: bool = typer.Option(False, "--sync", help="Run synchronously (blocking)"),
) -> None:
    """
    Extract a project's attachments into object storage.

    Examples:
        filebot attachments extract -p ABC123 -b attachments -i packages.json --sync
        filebot attachments extract -p ABC123 -b attachments/fbo -i packages.json
    """
    packages = _load_packages(input_path)

    rprint(f"\n[bold]Extracting attachments for project:[/bold] {project}")
    rprint(f"  Location: {location}")
    rprint(f"  Packages: {len(packages)}")

    if sync:
        rprint("\n[dim]Running synchronously...[/dim]\n")

        with console.status("[bold blue]Extracting...[/bold blue]"):
            result = asyncio.run(extract_attachments_sync(project, location, packages))

        _display_job_result(result.to_dict())

        if result.status == JobStatus.FAILED:
            raise typer.Exit(1)
    else:
        rprint("\n[dim]Enqueueing job for async processing...[/dim]")

        try:
            job_id = asyncio.run(enqueue_extraction(project, location, packages))
            rprint("\n[green]Job enqueued successfully![/green]")
            rprint(f"Job ID: [bold]{job_id}[/bold]")
            rprint("\nCheck status with:")
            rprint(f"  filebot attachments jobs status {job_id}")
        except Exception as e:
            rprint(f"\n[red]Error:[/red] Failed to enqueue job: {e}")
            rprint("\nMake sure Redis is running")
            raise typer.Exit(1)


@attachments_app.command("show")
def show(
    project: str = typer.Option(..., "--project", "-p", help="Project identifier"),
    location: str = typer.Option(..., "--location", "-b", help="Bucket, optionally bucket/prefix"),
    as_json: bool = typer.Option(False, "--json", help="Print the package index as JSON"),
) -> None:
    """
    Show a project's stored attachments grouped by package.

    Examples:
        filebot attachments show -p ABC123 -b attachments
        filebot attachments show -p ABC123 -b attachments --json
    """
    try:
        entries = asyncio.run(Filebot().get_attachments(project, location))
    except InvalidRequestError as e:
        rprint(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)

    if as_json:
        typer.echo(json.dumps([entry.to_dict() for entry in entries], indent=2))
        return

    if not entries:
        rprint(f"[yellow]No attachments stored for project {project}[/yellow]")
        return

    table = Table(title=f"Attachments for {project}")
    table.add_column("Package", style="bold")
    table.add_column("File")
    table.add_column("URI")
    table.add_column("Text", justify="right")

    for entry in entries:
        for item in entry.package_details:
            table.add_row(
                entry.package_name,
                item.file_name,
                item.file_uri,
                format_bytes(len(item.file_body.encode("utf-8"))),
            )

    console.print(table)


@attachments_app.command("delete")
def delete(
    project: str = typer.Option(..., "--project", "-p", help="Project identifier"),
    location: str = typer.Option(..., "--location", "-b", help="Bucket, optionally bucket/prefix"),
    force: bool = typer.Option(False, "--force", "-f", help="Skip confirmation prompt"),
) -> None:
    """
    Delete every stored attachment of a project.

    Examples:
        filebot attachments delete -p ABC123 -b attachments
    """
    if not force:
        if not typer.confirm(f"Delete all stored attachments for project {project}?"):
            rprint("Delete cancelled.")
            raise typer.Exit(0)

    try:
        deleted = asyncio.run(Filebot().delete_attachments(project, location))
    except InvalidRequestError as e:
        rprint(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)

    rprint(f"[green]Deleted {deleted} objects[/green]")


@attachments_app.command("worker")
def start_worker(
    burst: bool = typer.Option(False, "--burst", help="Run in burst mode (exit when queue empty)"),
) -> None:
    """
    Start the extraction worker.

    The worker processes queued extraction jobs from Redis.

    Examples:
        filebot attachments worker
        filebot attachments worker --burst
    """
    from arq import run_worker

    from filebot.ingestion.jobs import WorkerSettings

    rprint("[bold]Starting extraction worker...[/bold]")
    rprint("Press Ctrl+C to stop\n")

    try:
        run_worker(WorkerSettings, burst=burst)
    except Exception as e:
        rprint(f"[red]Error:[/red] Worker failed: {e}")
        rprint("\nMake sure Redis is running")
        raise typer.Exit(1)


# Jobs subcommands


@jobs_app.command("status")
def job_status(
    job_id: str = typer.Argument(..., help="Job ID to check"),
) -> None:
    """
    Check the status of an extraction job.

    Examples:
        filebot attachments jobs status abc123
    """
    try:
        result = asyncio.run(get_job_status(job_id))
    except Exception as e:
        rprint(f"[red]Error:[/red] Failed to get job status: {e}")
        rprint("\nMake sure Redis is running")
        raise typer.Exit(1)

    if result is None:
        rprint(f"[yellow]Job '{job_id}' not found[/yellow]")
        raise typer.Exit(1)

    rprint(f"\n[bold]Job: {job_id}[/bold]")
    rprint(f"  Status: {result.get('status', 'unknown')}")

    if result.get("result"):
        _display_job_result(result["result"])


def _display_job_result(result: dict) -> None:
    """Display job result in a formatted table."""
    status = result.get("status", "unknown")
    status_color = {
        "completed": "green",
        "running": "blue",
        "pending": "yellow",
        "failed": "red",
    }.get(status, "white")

    rprint("\n[bold]Results:[/bold]")
    rprint(f"  Status: [{status_color}]{status}[/{status_color}]")
    rprint(f"  Project: {result.get('project_id', 'N/A')}")

    if result.get("duration_seconds"):
        rprint(f"  Duration: {result['duration_seconds']:.1f}s")

    report = result.get("report") or {}
    table = Table(title="Stages")
    table.add_column("Stage", style="bold")
    table.add_column("Files", justify="right")
    for label, key in [
        ("Packages received", "received"),
        ("Normalized", "normalized"),
        ("Passed filter", "filtered"),
        ("New (not stored)", "deduplicated"),
        ("Downloaded", "downloaded"),
        ("Converted", "converted"),
        ("Persisted", "persisted"),
        ("Failed writes", "failed_writes"),
    ]:
        table.add_row(label, str(report.get(key, 0)))
    console.print(table)

    errors = result.get("errors", [])
    if errors:
        rprint(f"\n[bold red]Errors ({len(errors)}):[/bold red]")
        for error in errors[:10]:  # Show first 10
            rprint(f"  • {error}")
        if len(errors) > 10:
            rprint(f"  ... and {len(errors) - 10} more")

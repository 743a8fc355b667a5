from __future__ import annotations

from datetime import UTC, datetime, timedelta

import typer

from tickspine.cli.utils import console, err_console, load_settings, open_queues, output_items
from tickspine.core.errors import InvalidTransitionError, JobNotFoundError, QueueNotFoundError
from tickspine.queue.models import JobState

app = typer.Typer(no_args_is_help=True)

DbOption = typer.Option(None, "--db", "-d", help="Queue database path (default: settings)")


@app.command("list")
def list_queues(
    db: str | None = DbOption,  # noqa: UP007
    as_json: bool = typer.Option(False, "--json", help="Output as JSON"),
) -> None:
    """Show job counts per state for every queue."""
    queues = open_queues(load_settings(db))
    rows = [{"queue": q.name, **q.counts_by_state().to_dict()} for q in queues]
    output_items(rows, as_json=as_json, title="Queues")


@app.command("failed")
def failed(
    name: str = typer.Argument(..., help="Queue name"),
    limit: int = typer.Option(10, "--limit", "-n", help="Maximum jobs to show"),
    db: str | None = DbOption,  # noqa: UP007
    as_json: bool = typer.Option(False, "--json", help="Output as JSON"),
) -> None:
    """List the most recent failed jobs in a queue."""
    queues = open_queues(load_settings(db))
    try:
        jobs = queues.get(name).list_jobs(JobState.FAILED, limit)
    except QueueNotFoundError as e:
        err_console.print(f"[bold red]Error[/bold red]: {e.message}")
        raise typer.Exit(code=1) from e
    rows = [
        {
            "id": j.id,
            "name": j.name,
            "attempts": f"{j.attempts}/{j.max_attempts}",
            "error": j.last_error,
            "finished_at": j.finished_at.isoformat() if j.finished_at else None,
        }
        for j in jobs
    ]
    output_items(rows, as_json=as_json, title=f"Failed jobs: {name}")


@app.command("retry")
def retry(
    name: str = typer.Argument(..., help="Queue name"),
    job_id: str = typer.Argument(..., help="Job ID"),
    db: str | None = DbOption,  # noqa: UP007
) -> None:
    """Return a failed job to waiting."""
    queues = open_queues(load_settings(db))
    try:
        job = queues.get(name).retry(job_id)
    except (QueueNotFoundError, JobNotFoundError) as e:
        err_console.print(f"[bold red]Error[/bold red]: {e.message}")
        raise typer.Exit(code=1) from e
    except InvalidTransitionError as e:
        err_console.print(f"[bold red]Error[/bold red]: {e}")
        raise typer.Exit(code=1) from e
    console.print(f"[green]Job {job.id} requeued[/green] ({job.name})")


@app.command("clean")
def clean(
    name: str = typer.Argument(..., help="Queue name"),
    older_than_hours: float = typer.Option(0.0, "--older-than-hours", help="Only jobs finished before this age"),
    state: str = typer.Option("completed", "--state", help="completed or failed"),
    db: str | None = DbOption,  # noqa: UP007
) -> None:
    """Delete finished jobs from a queue."""
    try:
        target = JobState(state)
    except ValueError as e:
        err_console.print(f"[bold red]Error[/bold red]: unknown state '{state}'")
        raise typer.Exit(code=1) from e
    queues = open_queues(load_settings(db))
    cutoff = datetime.now(UTC) - timedelta(hours=older_than_hours)
    if older_than_hours == 0:
        cutoff += timedelta(microseconds=1)
    try:
        removed = queues.get(name).clean(cutoff, target)
    except QueueNotFoundError as e:
        err_console.print(f"[bold red]Error[/bold red]: {e.message}")
        raise typer.Exit(code=1) from e
    except ValueError as e:
        err_console.print(f"[bold red]Error[/bold red]: {e}")
        raise typer.Exit(code=1) from e
    console.print(f"[green]Removed {removed} {target.value} job(s)[/green] from {name}")


@app.command("remove")
def remove(
    name: str = typer.Argument(..., help="Queue name"),
    job_id: str = typer.Argument(..., help="Job ID"),
    db: str | None = DbOption,  # noqa: UP007
) -> None:
    """Delete a single job, typically one that failed for good."""
    queues = open_queues(load_settings(db))
    try:
        queues.get(name).remove(job_id)
    except (QueueNotFoundError, JobNotFoundError) as e:
        err_console.print(f"[bold red]Error[/bold red]: {e.message}")
        raise typer.Exit(code=1) from e
    except InvalidTransitionError as e:
        err_console.print(f"[bold red]Error[/bold red]: {e}")
        raise typer.Exit(code=1) from e
    console.print(f"[green]Job {job_id} removed[/green] from {name}")

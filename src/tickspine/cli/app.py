from __future__ import annotations

import signal
import threading

import typer
from typer import Typer

from tickspine.cli.utils import console, err_console, load_settings, open_queues, output_items, styled_status
from tickspine.core.errors import QueueUnavailableError

app = Typer(
    name="tickspine",
    help="tickspine: scheduled market-data collection on named job queues.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


def _version_callback(value: bool) -> None:
    if value:
        from importlib.metadata import PackageNotFoundError
        from importlib.metadata import version as pkg_version

        try:
            v = pkg_version("tickspine")
        except PackageNotFoundError:
            v = "0.1.0"
        typer.echo(f"tickspine {v}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool | None = typer.Option(  # noqa: UP007
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
) -> None:
    """tickspine CLI: run the engine, inspect queues and health."""


from tickspine.cli.queues import app as queues_app  # noqa: E402

app.add_typer(queues_app, name="queues", help="Inspect and maintain job queues")


@app.command("run")
def run(
    db: str | None = typer.Option(None, "--db", "-d", help="Queue database path"),  # noqa: UP007
    no_triggers: bool = typer.Option(False, "--no-triggers", help="Do not register the default candle triggers"),
) -> None:
    """Run worker pools, scheduler and health monitor until interrupted."""
    from tickspine.core.logging import configure_logging
    from tickspine.runtime import Runtime

    settings = load_settings(db)
    if no_triggers:
        settings = settings.model_copy(update={"enable_default_triggers": False})
    configure_logging(level=settings.log_level, json_format=settings.log_json, service="tickspine")

    try:
        runtime = Runtime(settings)
    except QueueUnavailableError as e:
        err_console.print(f"[bold red]Queue store unavailable[/bold red]: {e.message}")
        raise typer.Exit(code=2) from e

    console.print(
        f"[bold green]Starting tickspine[/bold green] "
        f"(queues={', '.join(runtime.queues.names())}, triggers={len(runtime.scheduler.triggers)})"
    )

    stop = threading.Event()
    signal.signal(signal.SIGINT, lambda *_: stop.set())
    signal.signal(signal.SIGTERM, lambda *_: stop.set())

    runtime.start()
    try:
        stop.wait()
    finally:
        runtime.stop()
        console.print("\n[yellow]tickspine stopped[/yellow]")


@app.command("serve")
def serve(
    host: str | None = typer.Option(None, "--host", "-h", help="Bind address"),  # noqa: UP007
    port: int | None = typer.Option(None, "--port", "-p", help="Bind port"),  # noqa: UP007
    with_engine: bool = typer.Option(True, "--with-engine/--api-only", help="Run the engine inside the API process"),
    log_level: str = typer.Option("info", "--log-level"),
) -> None:
    """Start the operator HTTP API."""
    import uvicorn

    from tickspine.api.app import create_app
    from tickspine.core.logging import configure_logging

    settings = load_settings()
    configure_logging(level=settings.log_level, json_format=settings.log_json, service="tickspine-api")
    host = host or settings.host
    port = port or settings.port

    console.print(f"[bold green]Starting tickspine API[/bold green] on {host}:{port}")
    uvicorn.run(
        create_app(settings=settings, start_runtime=with_engine),
        host=host,
        port=port,
        log_level=log_level,
    )


@app.command("health")
def health(
    db: str | None = typer.Option(None, "--db", "-d", help="Queue database path"),  # noqa: UP007
    as_json: bool = typer.Option(False, "--json", help="Output as JSON"),
) -> None:
    """Classify every queue now. Exit code 1 when unhealthy."""
    from tickspine.health.monitor import HealthMonitor, HealthThresholds

    settings = load_settings(db)
    monitor = HealthMonitor(
        open_queues(settings),
        thresholds=HealthThresholds(failed=settings.failed_threshold, waiting=settings.waiting_threshold),
    )
    snapshot = monitor.get_health_status()
    if as_json:
        console.print_json(snapshot.model_dump_json())
    else:
        console.print(f"Overall: {styled_status(snapshot.status)}  [dim]{snapshot.timestamp}[/dim]")
        output_items(snapshot.queues, title="Queue health")
    if snapshot.status == "unhealthy":
        raise typer.Exit(code=1)


@app.command("triggers")
def triggers(
    as_json: bool = typer.Option(False, "--json", help="Output as JSON"),
) -> None:
    """Show the default candle trigger table and next fire times."""
    from tickspine.core.clock import SystemClock
    from tickspine.scheduling.triggers import default_candle_triggers

    settings = load_settings()
    now = SystemClock().now()
    rows = [
        {
            "id": trigger_id,
            "schedule": schedule.describe(),
            "queue": action.queue,
            "job_name": action.job_name,
            "next_fire_at": schedule.next_after(now).isoformat(),
        }
        for trigger_id, schedule, action in default_candle_triggers(settings.market_timezone)
    ]
    output_items(rows, as_json=as_json, title="Triggers")

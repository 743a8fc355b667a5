"""
FastAPI application factory for the operator surface.

    GET    /health                          classified queue health
    GET    /queues                          counts per queue
    GET    /queues/{name}/failed            recent failed jobs
    GET    /queues/{name}/jobs/{id}         one job
    POST   /queue/{name}/job/{id}/retry     retry a failed job
    DELETE /queues/{name}/completed         drop completed jobs
    GET    /scheduler/status                trigger table
    POST   /scheduler/triggers/{id}/fire    fire a trigger now
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from tickspine.api.errors import install_error_handlers
from tickspine.core.logging import get_logger
from tickspine.core.settings import TickSpineSettings, get_settings
from tickspine.runtime import Runtime

log = get_logger("tickspine.api")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Start the engine with the app when ``start_runtime`` was requested."""
    runtime: Runtime = app.state.runtime
    if app.state.start_runtime:
        runtime.start()
    log.info("tickspine API starting", engine_running=runtime.is_running)
    yield
    if app.state.start_runtime:
        runtime.stop()
    log.info("tickspine API shutting down")


def create_app(
    *,
    runtime: Runtime | None = None,
    settings: TickSpineSettings | None = None,
    start_runtime: bool = False,
) -> FastAPI:
    """Build the FastAPI application.

    Parameters
    ----------
    runtime : Runtime | None
        Engine to expose. Built from *settings* when omitted.
    settings : TickSpineSettings | None
        Override settings (useful for testing).
    start_runtime : bool
        Start worker pools, scheduler and monitor in the app lifespan.
    """
    settings = settings or (runtime.settings if runtime else get_settings())
    runtime = runtime or Runtime(settings)

    app = FastAPI(title="tickspine", version="0.1.0", lifespan=lifespan)
    app.state.runtime = runtime
    app.state.settings = settings
    app.state.start_runtime = start_runtime

    install_error_handlers(app)

    from tickspine.api.routers import health, queues, scheduler

    app.include_router(health.router)
    app.include_router(queues.router)
    app.include_router(scheduler.router)

    return app

"""Map engine exceptions to RFC 7807 responses."""

from __future__ import annotations

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from tickspine.api.schemas import ProblemDetail
from tickspine.core.errors import (
    InvalidTransitionError,
    JobNotFoundError,
    PersistenceError,
    QueueNotFoundError,
    TickSpineError,
)
from tickspine.core.logging import get_logger

logger = get_logger(__name__)


def problem_response(*, status: int, title: str, code: str, detail: str = "", instance: str = "") -> JSONResponse:
    body = ProblemDetail(title=title, status=status, detail=detail, instance=instance, code=code)
    return JSONResponse(status_code=status, content=body.model_dump())


async def not_found_handler(request: Request, exc: Exception) -> JSONResponse:
    return problem_response(status=404, title="Not Found", code="NOT_FOUND", detail=str(exc), instance=str(request.url))


async def conflict_handler(request: Request, exc: Exception) -> JSONResponse:
    return problem_response(status=409, title="Conflict", code="CONFLICT", detail=str(exc), instance=str(request.url))


async def unavailable_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error("queue_store_unavailable", path=request.url.path, error=str(exc))
    return problem_response(
        status=503, title="Service Unavailable", code="UNAVAILABLE", detail=str(exc), instance=str(request.url)
    )


async def engine_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error("engine_error", path=request.url.path, error=str(exc))
    return problem_response(
        status=500, title="Internal Server Error", code="INTERNAL", detail=str(exc), instance=str(request.url)
    )


def install_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(QueueNotFoundError, not_found_handler)
    app.add_exception_handler(JobNotFoundError, not_found_handler)
    app.add_exception_handler(InvalidTransitionError, conflict_handler)
    app.add_exception_handler(PersistenceError, unavailable_handler)
    app.add_exception_handler(TickSpineError, engine_error_handler)

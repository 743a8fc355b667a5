from __future__ import annotations

from fastapi import APIRouter

from tickspine.api.deps import RuntimeDep
from tickspine.health.monitor import HealthSnapshot

router = APIRouter()


@router.get("/health", response_model=HealthSnapshot)
def get_health(runtime: RuntimeDep) -> HealthSnapshot:
    """Classified queue health, read fresh on every call.

    Example:
        GET /health

        Response:
        {
            "status": "degraded",
            "queues": [
                {"name": "data-collection", "status": "degraded",
                 "waiting": 1203, "active": 5, "failed": 2, "error": null}
            ],
            "timestamp": "2026-03-02T09:00:00+00:00"
        }
    """
    return runtime.monitor.get_health_status()

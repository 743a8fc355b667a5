from __future__ import annotations

from fastapi import APIRouter, HTTPException, Path

from tickspine.api.deps import RuntimeDep
from tickspine.api.schemas import SchedulerStatusResponse, TriggerRunResponse, TriggerStatusSchema

router = APIRouter(prefix="/scheduler")


@router.get("/status", response_model=SchedulerStatusResponse)
def scheduler_status(runtime: RuntimeDep) -> SchedulerStatusResponse:
    """Registered triggers with next fire time and run counters."""
    return SchedulerStatusResponse(
        running=runtime.scheduler.is_running,
        triggers=[TriggerStatusSchema(**row) for row in runtime.scheduler.status()],
    )


@router.post("/triggers/{trigger_id}/fire", response_model=TriggerRunResponse)
def fire_trigger(
    runtime: RuntimeDep,
    trigger_id: str = Path(..., description="Trigger ID"),
) -> TriggerRunResponse:
    """Fire a trigger now, outside its schedule."""
    try:
        run = runtime.scheduler.fire(trigger_id)
    except KeyError as e:
        raise HTTPException(status_code=404, detail=f"Unknown trigger '{trigger_id}'") from e
    return TriggerRunResponse(**run.to_dict())

"""
Run API Routes.

Endpoints for inspecting and cancelling runs started through the API.
"""

from typing import Optional
from fastapi import APIRouter, HTTPException
import logging

from stepflow.api.schemas import ErrorResponse, RunListResponse, RunStateResponse
from stepflow.engine.executor import RunStatus
from stepflow.storage.memory import StoredRun, run_storage


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/runs", tags=["Runs"])

FINISHED = {RunStatus.COMPLETED.value, RunStatus.FAILED.value, RunStatus.CANCELLED.value}


def _run_state(stored: StoredRun) -> RunStateResponse:
    return RunStateResponse(
        run_id=stored.run_id,
        workflow=stored.workflow,
        status=RunStatus(stored.status),
        current_step=stored.current_step,
        current_state=stored.current_state,
        events=stored.events,
        trace=stored.trace,
        started_at=stored.started_at.isoformat(),
        completed_at=stored.completed_at.isoformat() if stored.completed_at else None,
        error=stored.error,
    )


@router.get(
    "/",
    response_model=RunListResponse,
)
async def list_runs(workflow: Optional[str] = None) -> RunListResponse:
    """List all runs, optionally filtered by workflow key."""
    if workflow:
        runs = await run_storage.list_by_workflow(workflow)
    else:
        runs = await run_storage.list_all()

    run_states = [_run_state(stored) for stored in runs]
    return RunListResponse(runs=run_states, total=len(run_states))


@router.get(
    "/{run_id}",
    response_model=RunStateResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_run_state(run_id: str) -> RunStateResponse:
    """
    Get the current state of a run.

    Use this to poll the status of async executions.
    """
    stored = await run_storage.get(run_id)
    if not stored:
        raise HTTPException(status_code=404, detail=f"Run '{run_id}' not found")
    return _run_state(stored)


@router.post(
    "/{run_id}/cancel",
    response_model=RunStateResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def cancel_run(run_id: str) -> RunStateResponse:
    """
    Request cancellation of a run.

    The run stops before its next step; a step already executing is
    allowed to finish.
    """
    stored = await run_storage.get(run_id)
    if not stored:
        raise HTTPException(status_code=404, detail=f"Run '{run_id}' not found")
    if stored.status in FINISHED:
        raise HTTPException(status_code=409, detail=f"Run '{run_id}' already {stored.status}")

    stored.signal.set()
    logger.info(f"Cancellation requested for run {run_id}")
    return _run_state(stored)

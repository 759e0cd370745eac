"""
Workflow API Routes.

Endpoints for listing, describing and running registered workflows.
"""

from typing import Any, Dict, Iterable, Optional
from fastapi import APIRouter, BackgroundTasks, HTTPException, Request
from pydantic_core import to_jsonable_python
from uuid import uuid4
import asyncio
import logging

from stepflow.api.schemas import (
    ErrorResponse,
    RunResponse,
    StepInfo,
    WorkflowInfoResponse,
    WorkflowListResponse,
    WorkflowRunRequest,
)
from stepflow.config import settings
from stepflow.engine.errors import RunCancelledError, StateValidationError, WorkflowError
from stepflow.engine.events import Observer, RunEvent
from stepflow.engine.executor import Executor, RunStatus
from stepflow.engine.state import build_state, snapshot
from stepflow.storage.memory import StoredRun, StoredWorkflow, run_storage, workflow_registry


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/workflows", tags=["Workflows"])


def jsonable(value: Any) -> Any:
    """Make state snapshots JSON-safe; unknown objects become strings."""
    return to_jsonable_python(value, serialize_unknown=True)


def _workflow_info(stored: StoredWorkflow, with_diagram: bool = True) -> WorkflowInfoResponse:
    workflow = stored.workflow
    return WorkflowInfoResponse(
        key=stored.key,
        name=workflow.name,
        description=workflow.description,
        schema_name=workflow.schema.__name__,
        output_schema=workflow.output_schema.__name__ if workflow.output_schema else None,
        step_count=len(workflow.steps),
        steps=[
            StepInfo(
                name=step.name,
                description=step.description.strip(),
                strict=step.is_strict,
                required_schema=step.required_schema.__name__ if step.required_schema else None,
            )
            for step in workflow.steps.values()
        ],
        start=workflow.start,
        edges=workflow.edges,
        created_at=stored.created_at.isoformat(),
        mermaid_diagram=workflow.to_mermaid() if with_diagram else None,
    )


def get_collaborators(request: Request) -> Dict[str, Any]:
    """Collaborators configured on the application, if any."""
    return getattr(request.app.state, "collaborators", None) or {}


# ============================================================
# Workflow Endpoints
# ============================================================

@router.get(
    "/",
    response_model=WorkflowListResponse,
)
async def list_workflows() -> WorkflowListResponse:
    """List all registered workflows."""
    workflows = await workflow_registry.list_all()
    infos = [_workflow_info(stored, with_diagram=False) for stored in workflows]
    return WorkflowListResponse(workflows=infos, total=len(infos))


@router.get(
    "/{key}",
    response_model=WorkflowInfoResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_workflow(key: str) -> WorkflowInfoResponse:
    """Get information about a specific workflow."""
    stored = await workflow_registry.get(key)
    if not stored:
        raise HTTPException(status_code=404, detail=f"Workflow '{key}' not found")
    return _workflow_info(stored)


# ============================================================
# Execution Endpoints
# ============================================================

@router.post(
    "/{key}/run",
    response_model=RunResponse,
    responses={
        404: {"model": ErrorResponse},
        422: {"model": ErrorResponse, "description": "Initial state does not match the schema"},
    }
)
async def run_workflow(
    key: str,
    body: WorkflowRunRequest,
    request: Request,
    background_tasks: BackgroundTasks,
) -> RunResponse:
    """
    Run a workflow with the given initial state.

    If `async_execution` is True, the workflow runs in the background
    and you can poll the status using GET /runs/{run_id}.
    """
    stored = await workflow_registry.get(key)
    if not stored:
        raise HTTPException(status_code=404, detail=f"Workflow '{key}' not found")

    try:
        state = build_state(stored.workflow.schema, body.initial_state)
    except StateValidationError as e:
        raise HTTPException(status_code=422, detail=e.message)

    run_id = str(uuid4())
    run = await run_storage.create(run_id, key, body.initial_state)
    collaborators = get_collaborators(request)

    if body.async_execution:
        background_tasks.add_task(execute_run, stored, run, state, collaborators)
        return RunResponse(run_id=run_id, workflow=key, status=RunStatus.PENDING)

    run = await execute_run(stored, run, state, collaborators)
    return run_to_response(run)


async def execute_run(
    stored: StoredWorkflow,
    run: StoredRun,
    initial_state: Any,
    collaborators: Dict[str, Any],
    observers: Iterable[Observer] = (),
) -> StoredRun:
    """Run a workflow and record its progress and outcome in run storage."""
    run_id = run.run_id

    async def record(event: RunEvent):
        await run_storage.record_event(run_id, jsonable(event.to_dict()))

    executor = Executor(
        stored.workflow,
        run_id=run_id,
        observers=[record, *observers],
        signal=run.signal,
        collaborators=collaborators,
    )

    try:
        result = await asyncio.wait_for(executor.run(initial_state), timeout=settings.RUN_TIMEOUT)
    except asyncio.TimeoutError:
        logger.error(f"Run {run_id} timed out after {settings.RUN_TIMEOUT}s")
        await run_storage.fail(
            run_id, "timeout", jsonable(executor.current_state), jsonable(executor.trace.to_dict())
        )
    except RunCancelledError as e:
        await run_storage.fail(
            run_id, str(e), jsonable(executor.current_state), jsonable(executor.trace.to_dict()),
            status=RunStatus.CANCELLED.value,
        )
    except WorkflowError as e:
        await run_storage.fail(
            run_id, str(e), jsonable(executor.current_state), jsonable(executor.trace.to_dict())
        )
    else:
        await run_storage.complete(
            run_id, jsonable(snapshot(result.state)), jsonable(result.trace.to_dict())
        )

    return await run_storage.get(run_id)


def _flatten(trace: Optional[Dict[str, Any]]):
    names = []
    for entry in (trace or {}).get("entries", []):
        names.extend(_flatten(entry.get("child")))
        names.append(entry["step"])
    return names


def run_to_response(run: StoredRun) -> RunResponse:
    """Convert a stored run to an API response."""
    return RunResponse(
        run_id=run.run_id,
        workflow=run.workflow,
        status=RunStatus(run.status),
        final_state=run.final_state,
        steps=_flatten(run.trace),
        trace=run.trace,
        started_at=run.started_at.isoformat(),
        completed_at=run.completed_at.isoformat() if run.completed_at else None,
        error=run.error,
    )

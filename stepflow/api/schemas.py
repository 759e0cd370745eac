"""
Pydantic Schemas for API Request/Response Models.

These schemas define the structure of data flowing through the API,
providing automatic validation and documentation.
"""

from typing import Any, Dict, List, Optional
from pydantic import BaseModel, ConfigDict, Field

from stepflow.engine.executor import RunStatus


# ============================================================
# Workflow Schemas
# ============================================================

class StepInfo(BaseModel):
    """A step of a registered workflow."""
    name: str
    description: str = ""
    strict: bool = False
    required_schema: Optional[str] = None


class WorkflowInfoResponse(BaseModel):
    """Response with workflow information."""
    key: str
    name: str
    description: Optional[str]
    schema_name: str
    output_schema: Optional[str] = None
    step_count: int
    steps: List[StepInfo]
    start: Optional[str]
    edges: Dict[str, str] = Field(default_factory=dict)
    created_at: str
    mermaid_diagram: Optional[str] = Field(None, description="Mermaid diagram of the workflow")


class WorkflowListResponse(BaseModel):
    """Response listing all workflows."""
    workflows: List[WorkflowInfoResponse]
    total: int


# ============================================================
# Run Schemas
# ============================================================

class WorkflowRunRequest(BaseModel):
    """Request to run a registered workflow."""
    initial_state: Dict[str, Any] = Field(
        default_factory=dict,
        description="Initial state data, validated against the workflow schema"
    )
    async_execution: bool = Field(
        False,
        description="If true, run in background and return immediately"
    )

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "initial_state": {"threshold": 0.5},
            "async_execution": False
        }
    })


class RunResponse(BaseModel):
    """Response after running a workflow."""
    run_id: str = Field(..., description="Unique identifier for this run")
    workflow: str
    status: RunStatus
    final_state: Optional[Dict[str, Any]] = None
    steps: List[str] = Field(default_factory=list, description="Executed steps, nested runs expanded")
    trace: Optional[Dict[str, Any]] = None
    started_at: Optional[str] = None
    completed_at: Optional[str] = None
    error: Optional[str] = None

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "run_id": "run-xyz789",
            "workflow": "nested-counter",
            "status": "completed",
            "final_state": {"threshold": 0.5, "counter": 2},
            "steps": ["start", "run", "run", "delegate_add"],
            "started_at": "2024-01-01T12:00:00",
            "completed_at": "2024-01-01T12:00:01",
            "error": None
        }
    })


class RunStateResponse(BaseModel):
    """Response with current run state."""
    run_id: str
    workflow: str
    status: RunStatus
    current_step: Optional[str]
    current_state: Dict[str, Any]
    events: List[Dict[str, Any]]
    trace: Optional[Dict[str, Any]] = None
    started_at: str
    completed_at: Optional[str]
    error: Optional[str]


class RunListResponse(BaseModel):
    """Response listing runs."""
    runs: List[RunStateResponse]
    total: int


# ============================================================
# Error Schemas
# ============================================================

class ErrorResponse(BaseModel):
    """Standard error response."""
    error: str
    detail: Optional[str] = None
    status_code: int

"""
Engine package - Core workflow orchestration components.
"""

from stepflow.engine.errors import (
    WorkflowError,
    DuplicateStepError,
    UnknownStepError,
    NoStartStepError,
    StateValidationError,
    StepExecutionError,
    RunCancelledError,
)
from stepflow.engine.state import WorkflowState, required
from stepflow.engine.step import Step
from stepflow.engine.events import EventType, RunEvent
from stepflow.engine.workflow import Workflow
from stepflow.engine.executor import (
    Executor,
    RunContext,
    RunResult,
    RunStatus,
    RunTrace,
    execute_workflow,
)

__all__ = [
    "WorkflowError",
    "DuplicateStepError",
    "UnknownStepError",
    "NoStartStepError",
    "StateValidationError",
    "StepExecutionError",
    "RunCancelledError",
    "WorkflowState",
    "required",
    "Step",
    "EventType",
    "RunEvent",
    "Workflow",
    "Executor",
    "RunContext",
    "RunResult",
    "RunStatus",
    "RunTrace",
    "execute_workflow",
]

"""
Error taxonomy for the Workflow Engine.

Construction errors (DuplicateStepError, UnknownStepError while wiring) are
raised immediately by the graph builder. Run-time errors abort the in-flight
run and carry the partial trace and the live state of that run.
"""

from typing import Any, List, Optional


class WorkflowError(Exception):
    """Base class for every error raised by the engine."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message
        # Filled in by the executor for errors raised during a run
        self.trace = None
        self.state = None

    def attach(self, trace: Any, state: Any) -> "WorkflowError":
        """
        Attach the partial trace and state of the aborted run.

        Called again by every enclosing run, so the outermost run wins.
        """
        self.trace = trace
        if state is not None:
            self.state = state
        return self


class DuplicateStepError(WorkflowError):
    """A step with the same name is already registered."""

    def __init__(self, step: str):
        super().__init__(f"Step '{step}' already exists in the workflow")
        self.step = step


class UnknownStepError(WorkflowError):
    """A step name does not resolve to a registered step."""

    def __init__(self, step: str, available: Optional[List[str]] = None):
        message = f"Step '{step}' not found in workflow"
        if available is not None:
            message += f". Available steps: {available}"
        super().__init__(message)
        self.step = step


class NoStartStepError(WorkflowError):
    """The workflow has no start step."""

    def __init__(self, workflow: str):
        super().__init__(f"Workflow '{workflow}' has no start step")
        self.workflow = workflow


class StateValidationError(WorkflowError):
    """The state does not satisfy a schema."""

    def __init__(self, message: str, errors: Optional[List[Any]] = None, step: Optional[str] = None):
        super().__init__(message)
        self.errors = errors or []
        self.step = step


class StepExecutionError(WorkflowError):
    """A step handler raised. The original exception is the __cause__."""

    def __init__(self, step: str, cause: BaseException):
        super().__init__(f"Error in step '{step}': {cause}")
        self.step = step
        self.cause = cause


class RunCancelledError(WorkflowError):
    """The run was cancelled through its cancellation signal."""

    def __init__(self, run_id: str, step: Optional[str] = None):
        where = f" at step '{step}'" if step else ""
        super().__init__(f"Run '{run_id}' was cancelled{where}")
        self.run_id = run_id
        self.step = step

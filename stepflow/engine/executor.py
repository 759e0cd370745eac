"""
Async Workflow Executor.

The executor runs a workflow, managing step transitions, strict-step
validation, nested runs, cancellation and lifecycle notices. One executor
serves exactly one run; the workflow it runs is never modified.
"""

from typing import Any, Dict, Iterable, List, Optional
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pydantic import BaseModel
import asyncio
import uuid
import time
import logging

from stepflow.engine.errors import (
    NoStartStepError,
    RunCancelledError,
    UnknownStepError,
    WorkflowError,
)
from stepflow.engine.events import EventType, Observer, RunEvent, notify
from stepflow.engine.state import build_state, check_state, merge_state, project_state, snapshot
from stepflow.engine.step import END, NEXT, PREV, SELF, START, step_key
from stepflow.engine.workflow import Workflow


logger = logging.getLogger(__name__)


class RunStatus(str, Enum):
    """Status of a workflow run."""
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass
class TraceEntry:
    """A single executed step."""
    step: str
    started_at: datetime
    completed_at: Optional[datetime] = None
    duration_ms: Optional[float] = None
    outcome: Optional[str] = None
    child: Optional["RunTrace"] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "step": self.step,
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "duration_ms": self.duration_ms,
            "outcome": self.outcome,
            "child": self.child.to_dict() if self.child else None,
        }


@dataclass
class RunTrace:
    """
    Ordered record of the steps a run executed.

    Nested runs are linked to the outer entry that wrapped them through
    TraceEntry.child, and back through parent_run_id / parent_step.
    """
    run_id: str
    workflow: str
    parent_run_id: Optional[str] = None
    parent_step: Optional[str] = None
    entries: List[TraceEntry] = field(default_factory=list)
    failed_step: Optional[str] = None
    failed_child: Optional["RunTrace"] = None
    error: Optional[str] = None

    @property
    def step_names(self) -> List[str]:
        return [entry.step for entry in self.entries]

    def flatten(self) -> List[str]:
        """Step names with nested runs expanded before the step that wrapped them."""
        names = []
        for entry in self.entries:
            if entry.child is not None:
                names.extend(entry.child.flatten())
            names.append(entry.step)
        return names

    def __len__(self) -> int:
        return len(self.entries)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "run_id": self.run_id,
            "workflow": self.workflow,
            "parent_run_id": self.parent_run_id,
            "parent_step": self.parent_step,
            "entries": [entry.to_dict() for entry in self.entries],
            "failed_step": self.failed_step,
            "error": self.error,
        }


@dataclass
class RunContext:
    """
    Per-step view of the run handed to handlers that accept a second
    argument. Gives access to injected collaborators and the
    cancellation signal.
    """
    run_id: str
    workflow: str
    step: str
    signal: asyncio.Event
    collaborators: Dict[str, Any]
    trace: RunTrace
    observers: List[Observer] = field(default_factory=list)
    child_trace: Optional[RunTrace] = None

    @property
    def cancelled(self) -> bool:
        return self.signal.is_set()

    def get(self, name: str) -> Any:
        """Get an injected collaborator by name."""
        if name not in self.collaborators:
            raise KeyError(
                f"Collaborator '{name}' is not available to step '{self.step}'. "
                f"Available: {sorted(self.collaborators)}"
            )
        return self.collaborators[name]


@dataclass
class RunResult:
    """Result of a completed workflow run."""
    run_id: str
    workflow: str
    status: RunStatus
    state: BaseModel
    trace: RunTrace
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    total_duration_ms: Optional[float] = None
    output: Optional[BaseModel] = None

    @property
    def result(self) -> BaseModel:
        """The final state, as an output_schema instance when the workflow declares one."""
        return self.output if self.output is not None else self.state

    def to_dict(self) -> Dict[str, Any]:
        return {
            "run_id": self.run_id,
            "workflow": self.workflow,
            "status": self.status.value,
            "final_state": snapshot(self.state),
            "trace": self.trace.to_dict(),
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "total_duration_ms": self.total_duration_ms,
        }


class Executor:
    """
    Async workflow executor.

    Executes a workflow with a given initial state, handling:
    - Sequential step execution following handler outcomes
    - Strict-step validation
    - Nested workflows
    - Cooperative cancellation
    - Lifecycle notices to observers

    Usage:
        executor = Executor(workflow)
        result = await executor.run({"input": "data"})
    """

    def __init__(
        self,
        workflow: Workflow,
        run_id: Optional[str] = None,
        observers: Iterable[Observer] = (),
        signal: Optional[asyncio.Event] = None,
        collaborators: Optional[Dict[str, Any]] = None,
        parent_run_id: Optional[str] = None,
        parent_step: Optional[str] = None,
    ):
        """
        Initialize the executor.

        Args:
            workflow: The workflow to execute
            run_id: Optional run ID (generated if not provided)
            observers: Callables receiving every RunEvent
            signal: Cancellation signal (created if not provided)
            collaborators: Injected handles available through RunContext.get
            parent_run_id: Run ID of the enclosing run, for nested runs
            parent_step: Outer step wrapping this run, for nested runs
        """
        self.workflow = workflow
        self.run_id = run_id or str(uuid.uuid4())
        self.observers = list(observers)
        self.signal = signal or asyncio.Event()
        self.collaborators = dict(collaborators or {})
        self.parent_run_id = parent_run_id

        self.trace = RunTrace(
            run_id=self.run_id,
            workflow=workflow.name,
            parent_run_id=parent_run_id,
            parent_step=parent_step,
        )
        self._state: Optional[BaseModel] = None
        self._current_step: Optional[str] = None
        self._status = RunStatus.PENDING

    @property
    def status(self) -> RunStatus:
        """Get the current run status."""
        return self._status

    @property
    def current_state(self) -> Optional[Dict[str, Any]]:
        """Get a snapshot of the current state."""
        if self._state is None:
            return None
        return snapshot(self._state)

    @property
    def current_step(self) -> Optional[str]:
        """Get the step currently executing."""
        return self._current_step

    def cancel(self) -> None:
        """Cancel the run. Takes effect once the current handler returns."""
        self.signal.set()

    async def run(self, initial_state: Any = None) -> RunResult:
        """
        Execute the workflow with fresh state built from initial_state.

        Raises:
            NoStartStepError: If the workflow has no start step
            StateValidationError: If initial_state, a strict step's
                precondition or the output schema is not satisfied
            UnknownStepError: If a handler routes to an unknown step
            StepExecutionError: If a handler raises
            RunCancelledError: If the signal was set during the run
        """
        if not self.workflow.start:
            raise NoStartStepError(self.workflow.name).attach(self.trace, None)
        try:
            state = build_state(self.workflow.schema, initial_state)
        except WorkflowError as e:
            self._status = RunStatus.FAILED
            raise e.attach(self.trace, None)
        return await self.run_with_state(state)

    async def run_with_state(self, state: BaseModel) -> RunResult:
        """Execute the workflow against an existing live state object."""
        if not self.workflow.start:
            raise NoStartStepError(self.workflow.name).attach(self.trace, state)

        start_time = time.time()
        started_at = datetime.now()
        self._state = state
        self._status = RunStatus.RUNNING

        logger.info(f"Starting run {self.run_id} of workflow '{self.workflow.name}'")

        output = None
        try:
            await self._loop(state)
            if self.workflow.output_schema is not None:
                output = check_state(self.workflow.output_schema, state)
        except RunCancelledError as e:
            self._status = RunStatus.CANCELLED
            self.trace.error = str(e)
            logger.info(f"Run {self.run_id} cancelled")
            await self._emit(EventType.RUN_END, state, error=str(e))
            raise e.attach(self.trace, state)
        except WorkflowError as e:
            self._status = RunStatus.FAILED
            self.trace.error = str(e)
            logger.error(f"Run {self.run_id} failed: {e}")
            await self._emit(EventType.RUN_END, state, error=str(e))
            raise e.attach(self.trace, state)

        self._status = RunStatus.COMPLETED
        self._current_step = None
        await self._emit(EventType.RUN_END, state)

        return RunResult(
            run_id=self.run_id,
            workflow=self.workflow.name,
            status=self._status,
            state=state,
            trace=self.trace,
            started_at=started_at,
            completed_at=datetime.now(),
            total_duration_ms=(time.time() - start_time) * 1000,
            output=output,
        )

    async def _loop(self, state: BaseModel) -> None:
        current = self.workflow.start
        previous: Optional[str] = None

        self._check_cancelled(current)
        while True:
            step = self.workflow.get_step(current)
            self._current_step = current

            if step.required_schema is not None:
                try:
                    check_state(step.required_schema, state, step=current)
                except WorkflowError as e:
                    self.trace.failed_step = current
                    raise e

            context = RunContext(
                run_id=self.run_id,
                workflow=self.workflow.name,
                step=current,
                signal=self.signal,
                collaborators=self.collaborators,
                trace=self.trace,
                observers=self.observers,
            )

            logger.info(f"Executing step: {current} (step {len(self.trace) + 1})")
            await self._emit(EventType.STEP_START, state, step=current)

            entry = TraceEntry(step=current, started_at=datetime.now())
            step_start = time.time()
            try:
                outcome = await step.execute(state, context)
            except asyncio.CancelledError as e:
                if not self.signal.is_set():
                    raise
                self.trace.failed_step = current
                raise RunCancelledError(self.run_id, current) from e
            except WorkflowError as e:
                self.trace.failed_step = current
                self.trace.failed_child = context.child_trace
                logger.error(f"Step {current} failed: {e}")
                await self._emit(EventType.STEP_ERROR, state, step=current, error=str(e))
                raise

            entry.completed_at = datetime.now()
            entry.duration_ms = (time.time() - step_start) * 1000
            entry.child = context.child_trace
            self.trace.entries.append(entry)

            target = self._resolve(current, previous, outcome)
            entry.outcome = target
            logger.debug(f"Step {current} returned {outcome!r} -> {target}")

            await self._emit(EventType.STEP_SUCCESS, state, step=current, outcome=target)

            self._check_cancelled(target)
            if target == END:
                return
            previous, current = current, target

    def _resolve(self, current: str, previous: Optional[str], outcome: Optional[str]) -> str:
        """Turn a handler outcome into the name of the next step (or END)."""
        if outcome is None or outcome == NEXT:
            return self.workflow.default_successor(current) or END
        if outcome == END:
            return END
        if outcome == SELF:
            return current
        if outcome == START:
            return self.workflow.start
        if outcome == PREV:
            if previous is None:
                raise UnknownStepError(PREV)
            return previous
        if outcome not in self.workflow.steps:
            raise UnknownStepError(outcome, list(self.workflow.steps))
        return outcome

    def _check_cancelled(self, step: str) -> None:
        if self.signal.is_set():
            logger.info(f"Run {self.run_id} cancelled before step '{step}'")
            raise RunCancelledError(self.run_id, None if step == END else step)

    async def _emit(self, event_type: EventType, state: BaseModel, **kwargs) -> None:
        if not self.observers:
            return
        event = RunEvent(
            type=event_type,
            run_id=self.run_id,
            workflow=self.workflow.name,
            parent_run_id=self.parent_run_id,
            state=snapshot(state),
            **kwargs,
        )
        await notify(self.observers, event)

    def get_execution_summary(self) -> Dict[str, Any]:
        """Get a summary of the current run."""
        return {
            "run_id": self.run_id,
            "workflow": self.workflow.name,
            "status": self._status.value,
            "current_step": self._current_step,
            "current_state": self.current_state,
            "step_count": len(self.trace),
        }


class NestedWorkflow:
    """
    A whole workflow used as the handler of a single step.

    The inner run works on the outer live state whenever that state is an
    instance of the inner schema. Otherwise it works on a projection of the
    outer state whose fields are written back once the inner run ends.
    """

    def __init__(self, workflow: Workflow, next: Any = None):
        self.workflow = workflow
        self.next = step_key(next) if next is not None else None
        self.__name__ = f"{workflow.name} (nested)"
        self.__doc__ = workflow.description or f"Runs the '{workflow.name}' workflow"

    async def __call__(self, state: BaseModel, context: RunContext) -> Optional[str]:
        shared = isinstance(state, self.workflow.schema)
        inner_state = state if shared else project_state(self.workflow.schema, state)

        executor = Executor(
            self.workflow,
            observers=context.observers,
            signal=context.signal,
            collaborators=context.collaborators,
            parent_run_id=context.run_id,
            parent_step=context.step,
        )
        try:
            await executor.run_with_state(inner_state)
        finally:
            context.child_trace = executor.trace

        if not shared:
            merge_state(state, inner_state)
        return self.next


async def execute_workflow(
    workflow: Workflow,
    initial_state: Any = None,
    run_id: Optional[str] = None,
    observers: Iterable[Observer] = (),
    collaborators: Optional[Dict[str, Any]] = None,
) -> RunResult:
    """
    Convenience function to execute a workflow.

    Args:
        workflow: The workflow
        initial_state: Initial state data
        run_id: Optional run ID
        observers: Optional event observers
        collaborators: Optional injected collaborators

    Returns:
        RunResult
    """
    executor = Executor(workflow, run_id, observers, collaborators=collaborators)
    return await executor.run(initial_state)

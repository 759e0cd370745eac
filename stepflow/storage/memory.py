"""
In-Memory Storage for StepFlow.

Holds the workflows exposed over HTTP and the records of runs started
there. Can be replaced with a database implementation.
"""

from typing import Any, Dict, List, Optional
from datetime import datetime
import asyncio
from dataclasses import dataclass, field

from stepflow.engine.workflow import Workflow


@dataclass
class StoredWorkflow:
    """A registered workflow."""
    key: str
    workflow: Workflow
    created_at: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "key": self.key,
            "definition": self.workflow.to_dict(),
            "created_at": self.created_at.isoformat(),
        }


@dataclass
class StoredRun:
    """A stored run."""
    run_id: str
    workflow: str
    status: str
    initial_state: Dict[str, Any]
    current_state: Dict[str, Any] = field(default_factory=dict)
    final_state: Optional[Dict[str, Any]] = None
    events: List[Dict[str, Any]] = field(default_factory=list)
    trace: Optional[Dict[str, Any]] = None
    current_step: Optional[str] = None
    started_at: datetime = field(default_factory=datetime.now)
    completed_at: Optional[datetime] = None
    error: Optional[str] = None
    signal: asyncio.Event = field(default_factory=asyncio.Event, repr=False)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "run_id": self.run_id,
            "workflow": self.workflow,
            "status": self.status,
            "initial_state": self.initial_state,
            "current_state": self.current_state,
            "final_state": self.final_state,
            "events": self.events,
            "trace": self.trace,
            "current_step": self.current_step,
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "error": self.error,
        }


class WorkflowRegistry:
    """
    Thread-safe in-memory registry of workflows by key.

    Workflows are read-only once built, so the same instance serves
    every run started through the API.
    """

    def __init__(self):
        self._workflows: Dict[str, StoredWorkflow] = {}
        self._lock = asyncio.Lock()

    async def save(self, key: str, workflow: Workflow) -> StoredWorkflow:
        """
        Register a workflow under a key, replacing any previous one.

        Raises:
            ValueError: If the workflow fails validation
        """
        errors = workflow.validate()
        if errors:
            raise ValueError(f"Workflow '{key}' is invalid: {errors}")
        async with self._lock:
            stored = StoredWorkflow(key=key, workflow=workflow)
            self._workflows[key] = stored
            return stored

    async def get(self, key: str) -> Optional[StoredWorkflow]:
        """Get a workflow by key."""
        async with self._lock:
            return self._workflows.get(key)

    async def delete(self, key: str) -> bool:
        """Unregister a workflow."""
        async with self._lock:
            if key in self._workflows:
                del self._workflows[key]
                return True
            return False

    async def list_all(self) -> List[StoredWorkflow]:
        """List all registered workflows."""
        async with self._lock:
            return list(self._workflows.values())

    async def exists(self, key: str) -> bool:
        async with self._lock:
            return key in self._workflows

    def __len__(self) -> int:
        return len(self._workflows)


class RunStorage:
    """
    Thread-safe in-memory storage for runs.

    Stores run state, allowing real-time updates and queries
    for ongoing and completed runs.
    """

    def __init__(self):
        self._runs: Dict[str, StoredRun] = {}
        self._lock = asyncio.Lock()

    async def create(
        self,
        run_id: str,
        workflow: str,
        initial_state: Dict[str, Any]
    ) -> StoredRun:
        """
        Create a new run.

        Args:
            run_id: Unique run identifier
            workflow: Key of the workflow being run
            initial_state: Initial state data

        Returns:
            The stored run
        """
        async with self._lock:
            stored = StoredRun(
                run_id=run_id,
                workflow=workflow,
                status="pending",
                initial_state=initial_state,
                current_state=initial_state.copy(),
            )
            self._runs[run_id] = stored
            return stored

    async def get(self, run_id: str) -> Optional[StoredRun]:
        """Get a run by ID."""
        async with self._lock:
            return self._runs.get(run_id)

    async def record_event(self, run_id: str, event: Dict[str, Any]) -> Optional[StoredRun]:
        """Record a lifecycle event and the state it carries."""
        async with self._lock:
            stored = self._runs.get(run_id)
            if stored is None:
                return None
            stored.events.append(event)
            if stored.status == "pending":
                stored.status = "running"
            stored.current_state = event.get("state", stored.current_state)
            if event.get("step") is not None and event.get("parent_run_id") is None:
                stored.current_step = event["step"]
            return stored

    async def complete(
        self,
        run_id: str,
        final_state: Dict[str, Any],
        trace: Dict[str, Any]
    ) -> Optional[StoredRun]:
        """Mark a run as completed."""
        async with self._lock:
            if run_id not in self._runs:
                return None
            stored = self._runs[run_id]
            stored.status = "completed"
            stored.final_state = final_state
            stored.current_state = final_state
            stored.trace = trace
            stored.completed_at = datetime.now()
            return stored

    async def fail(
        self,
        run_id: str,
        error: str,
        final_state: Optional[Dict[str, Any]] = None,
        trace: Optional[Dict[str, Any]] = None,
        status: str = "failed",
    ) -> Optional[StoredRun]:
        """Mark a run as failed (or cancelled)."""
        async with self._lock:
            if run_id not in self._runs:
                return None
            stored = self._runs[run_id]
            stored.status = status
            stored.error = error
            stored.final_state = final_state
            stored.trace = trace
            stored.completed_at = datetime.now()
            return stored

    async def list_all(self) -> List[StoredRun]:
        """List all runs."""
        async with self._lock:
            return list(self._runs.values())

    async def list_by_workflow(self, workflow: str) -> List[StoredRun]:
        """List all runs of a specific workflow."""
        async with self._lock:
            return [r for r in self._runs.values() if r.workflow == workflow]

    async def delete(self, run_id: str) -> bool:
        """Delete a run."""
        async with self._lock:
            if run_id in self._runs:
                del self._runs[run_id]
                return True
            return False

    def __len__(self) -> int:
        return len(self._runs)


# Global storage instances
workflow_registry = WorkflowRegistry()
run_storage = RunStorage()

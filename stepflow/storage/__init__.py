"""
Storage package - In-memory storage for workflows and runs.
"""

from stepflow.storage.memory import (
    WorkflowRegistry,
    RunStorage,
    workflow_registry,
    run_storage,
)

__all__ = [
    "WorkflowRegistry",
    "RunStorage",
    "workflow_registry",
    "run_storage",
]

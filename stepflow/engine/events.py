"""
Run lifecycle events.

Observers receive one RunEvent per notice, in the order steps execute.
They are read-only listeners: whatever they return is ignored and
whatever they raise is logged and swallowed.
"""

from typing import Any, Awaitable, Callable, Dict, Iterable, Optional, Union
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
import inspect
import logging


logger = logging.getLogger(__name__)


class EventType(str, Enum):
    """Lifecycle notices emitted by the executor."""
    STEP_START = "step-start"
    STEP_SUCCESS = "step-success"
    STEP_ERROR = "step-error"
    RUN_END = "run-end"


@dataclass
class RunEvent:
    """A single lifecycle notice."""
    type: EventType
    run_id: str
    workflow: str
    step: Optional[str] = None
    parent_run_id: Optional[str] = None
    state: Dict[str, Any] = field(default_factory=dict)
    outcome: Optional[str] = None
    error: Optional[str] = None
    timestamp: datetime = field(default_factory=datetime.now)

    @property
    def nested(self) -> bool:
        return self.parent_run_id is not None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type.value,
            "run_id": self.run_id,
            "workflow": self.workflow,
            "step": self.step,
            "parent_run_id": self.parent_run_id,
            "state": self.state,
            "outcome": self.outcome,
            "error": self.error,
            "timestamp": self.timestamp.isoformat(),
        }


Observer = Callable[[RunEvent], Union[None, Awaitable[None]]]


async def notify(observers: Iterable[Observer], event: RunEvent) -> None:
    """Deliver an event to every observer."""
    for observer in observers:
        try:
            result = observer(event)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logger.warning(f"Observer failed on {event.type.value} event: {e}")

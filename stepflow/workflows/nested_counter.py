"""
Nested Counter Workflow.

A coin-flip router that delegates to one of two nested workflows. Each
nested workflow has a single self-looping step that nudges the counter
until a random draw ends it:

    start ─┬─→ delegate_add      [run ↺] ─→ END
           └─→ delegate_subtract [run ↺] ─→ END
"""

from typing import Callable
from enum import Enum
from pydantic import Field
import logging
import random

from stepflow.engine.state import WorkflowState
from stepflow.engine.workflow import Workflow


logger = logging.getLogger(__name__)


class CounterState(WorkflowState):
    threshold: float = Field(..., ge=0, le=1)
    counter: int = 0


class CounterStep(str, Enum):
    START = "start"
    DELEGATE_ADD = "delegate_add"
    DELEGATE_SUBTRACT = "delegate_subtract"


def create_counter_loop(name: str, delta: int, rand: Callable[[], float] = random.random) -> Workflow:
    """A workflow whose only step adds `delta` to the counter until a draw ends it."""
    workflow = Workflow(name=name, schema=CounterState)

    def run(state: CounterState) -> str:
        state.counter += delta
        return Workflow.SELF if rand() > 0.5 else Workflow.END

    workflow.add_step("run", run, description=f"Add {delta} to the counter")
    return workflow


def create_nested_counter_workflow(rand: Callable[[], float] = random.random) -> Workflow:
    """
    Create the nested counter workflow.

    Args:
        rand: Source of draws in [0, 1), replaceable for deterministic runs

    Returns:
        Configured Workflow instance
    """
    add_flow = create_counter_loop("add", 1, rand)
    subtract_flow = create_counter_loop("subtract", -1, rand)

    def start(state: CounterState) -> CounterStep:
        if rand() > state.threshold:
            logger.debug("Delegating to the add flow")
            return CounterStep.DELEGATE_ADD
        logger.debug("Delegating to the subtract flow")
        return CounterStep.DELEGATE_SUBTRACT

    workflow = Workflow(
        name="Nested Counter",
        schema=CounterState,
        description="Delegates to a nested add or subtract loop based on a random draw",
    )
    workflow.add_step(CounterStep.START, start, description="Pick a nested flow")
    workflow.add_step(CounterStep.DELEGATE_ADD, add_flow.as_step(next=Workflow.END))
    workflow.add_step(CounterStep.DELEGATE_SUBTRACT, subtract_flow.as_step(next=Workflow.END))
    return workflow

"""
Step Definition for the Workflow Engine.

Steps are the building blocks of a workflow. Each step is a function
that receives the live state, mutates it in place and optionally returns
the name of the step to run next.
"""

from typing import Any, Callable, Dict, Optional, Type
from dataclasses import dataclass, field
from enum import Enum
from pydantic import BaseModel
import asyncio
import functools
import inspect

from stepflow.engine.errors import StepExecutionError, WorkflowError


# Special outcomes a handler can return instead of a step name
START = "__START__"
SELF = "__SELF__"
PREV = "__PREV__"
NEXT = "__NEXT__"
END = "__END__"

RESERVED = frozenset({START, SELF, PREV, NEXT, END})


def step_key(name: Any) -> str:
    """
    Normalise a step identifier.

    Accepts plain strings and members of a str-valued Enum, so a workflow
    can declare its step names as a closed set.
    """
    if isinstance(name, Enum):
        name = name.value
    if not isinstance(name, str):
        raise TypeError(f"Step name must be a string or Enum member, got {type(name).__name__}")
    return name


def _count_positional(func: Callable) -> int:
    try:
        sig = inspect.signature(func)
    except (TypeError, ValueError):
        return 1
    count = 0
    for param in sig.parameters.values():
        if param.kind == inspect.Parameter.VAR_POSITIONAL:
            return 2
        if param.default is not inspect.Parameter.empty:
            continue
        if param.kind in (inspect.Parameter.POSITIONAL_ONLY, inspect.Parameter.POSITIONAL_OR_KEYWORD):
            count += 1
    return count


@dataclass
class Step:
    """
    A step in the workflow graph.

    Attributes:
        name: Unique identifier for the step within its workflow
        handler: Function taking (state) or (state, context), sync or async
        required_schema: Schema the state must satisfy before the handler runs
        description: Human-readable description
        metadata: Additional step metadata
    """

    name: str
    handler: Callable[..., Any]
    required_schema: Optional[Type[BaseModel]] = None
    description: str = ""
    metadata: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if not self.name:
            raise ValueError("Step name cannot be empty")
        if not callable(self.handler):
            raise ValueError(f"Handler for step '{self.name}' must be callable")

    @property
    def is_strict(self) -> bool:
        return self.required_schema is not None

    @property
    def is_async(self) -> bool:
        """Check if the handler is an async function (or async callable)."""
        return inspect.iscoroutinefunction(self.handler) or inspect.iscoroutinefunction(
            getattr(self.handler, "__call__", None)
        )

    @property
    def wants_context(self) -> bool:
        return _count_positional(self.handler) >= 2

    async def execute(self, state: BaseModel, context: Any) -> Optional[str]:
        """
        Execute the step handler against the live state.

        Handles both sync and async handlers transparently.

        Returns:
            The raw outcome: a step identifier or None

        Raises:
            StepExecutionError: If the handler raises or returns something
                that is not a step identifier
        """
        args = (state, context) if self.wants_context else (state,)
        try:
            if self.is_async:
                result = await self.handler(*args)
            else:
                # Run sync handler in executor to not block
                loop = asyncio.get_running_loop()
                result = await loop.run_in_executor(
                    None,
                    functools.partial(self.handler, *args)
                )
        except WorkflowError:
            # Already carries its own context (nested runs)
            raise
        except Exception as e:
            raise StepExecutionError(self.name, e) from e

        if result is None:
            return None
        try:
            return step_key(result)
        except TypeError as e:
            error = TypeError(
                f"Step '{self.name}' handler must return a step name or None, "
                f"got {type(result).__name__}"
            )
            raise StepExecutionError(self.name, error) from e

    def to_dict(self) -> Dict[str, Any]:
        """Serialize the step to a dictionary."""
        return {
            "name": self.name,
            "description": self.description,
            "handler": getattr(self.handler, "__name__", type(self.handler).__name__),
            "strict": self.is_strict,
            "required_schema": self.required_schema.__name__ if self.required_schema else None,
            "metadata": self.metadata,
        }

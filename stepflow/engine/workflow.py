"""
Workflow Definition for the Workflow Engine.

A Workflow is a named graph of steps over a typed shared state. It is built
once (steps added in sequence), then treated as read-only and run as many
times as needed, concurrently if the caller wishes.
"""

from typing import Any, Callable, ClassVar, Dict, List, Optional, Type
from dataclasses import dataclass, field
from pydantic import BaseModel
import uuid

from stepflow.engine.errors import DuplicateStepError, UnknownStepError
from stepflow.engine.state import WorkflowState
from stepflow.engine.step import END, NEXT, PREV, RESERVED, SELF, START, Step, step_key


@dataclass
class Workflow:
    """
    A workflow graph consisting of steps and their default successors.

    Every step handler decides where to go next by returning a step name or
    one of the sentinels below. Returning nothing falls through to the
    step's default successor: the target of add_edge() if one was declared,
    otherwise the step added right after it. The last step falls through
    to the end of the run.

    Attributes:
        name: Human-readable name
        schema: Pydantic model the run state is built from
        output_schema: Optional model the final state must satisfy
        steps: Ordered dict of step_name -> Step
        edges: Declared default successors, source -> target
        start: Name of the first step to execute
    """

    START: ClassVar[str] = START
    SELF: ClassVar[str] = SELF
    PREV: ClassVar[str] = PREV
    NEXT: ClassVar[str] = NEXT
    END: ClassVar[str] = END

    name: str = "Unnamed Workflow"
    schema: Type[BaseModel] = WorkflowState
    output_schema: Optional[Type[BaseModel]] = None
    description: str = ""
    workflow_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    steps: Dict[str, Step] = field(default_factory=dict)
    edges: Dict[str, str] = field(default_factory=dict)
    start: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    def add_step(
        self,
        name: Any,
        handler: Callable,
        description: str = "",
    ) -> "Workflow":
        """
        Add a step to the workflow.

        The first step added becomes the start step unless set_start()
        says otherwise.

        Args:
            name: Unique step name (str or str-valued Enum member)
            handler: Function taking (state) or (state, context)
            description: Human-readable description

        Returns:
            Self for chaining

        Raises:
            DuplicateStepError: If the name is already registered
        """
        return self._add(Step(
            name=self._new_name(name),
            handler=handler,
            description=description or getattr(handler, "__doc__", None) or "",
        ))

    def add_strict_step(
        self,
        name: Any,
        required_schema: Type[BaseModel],
        handler: Callable,
        description: str = "",
    ) -> "Workflow":
        """
        Add a step whose handler only runs when the state satisfies
        required_schema. See stepflow.engine.state.required().
        """
        if not (isinstance(required_schema, type) and issubclass(required_schema, BaseModel)):
            raise TypeError("required_schema must be a pydantic model class")
        return self._add(Step(
            name=self._new_name(name),
            handler=handler,
            required_schema=required_schema,
            description=description or getattr(handler, "__doc__", None) or "",
        ))

    def _new_name(self, name: Any) -> str:
        key = step_key(name)
        if key in RESERVED:
            raise ValueError(f"'{key}' is reserved and cannot be used as a step name")
        if key in self.steps:
            raise DuplicateStepError(key)
        return key

    def _add(self, step: Step) -> "Workflow":
        self.steps[step.name] = step
        if self.start is None:
            self.start = step.name
        return self

    def add_edge(self, source: Any, target: Any) -> "Workflow":
        """
        Declare the default successor of a step.

        Args:
            source: Source step name
            target: Target step name (or END)

        Returns:
            Self for chaining
        """
        source, target = step_key(source), step_key(target)
        if source not in self.steps:
            raise UnknownStepError(source, list(self.steps))
        if target != END and target not in self.steps:
            raise UnknownStepError(target, list(self.steps))
        self.edges[source] = target
        return self

    def set_start(self, name: Any) -> "Workflow":
        """Set the start step of the workflow."""
        key = step_key(name)
        if key not in self.steps:
            raise UnknownStepError(key, list(self.steps))
        self.start = key
        return self

    def get_step(self, name: str) -> Step:
        step = self.steps.get(name)
        if step is None:
            raise UnknownStepError(name, list(self.steps))
        return step

    def default_successor(self, name: str) -> Optional[str]:
        """
        Get the step an implicit outcome of `name` falls through to.

        Returns:
            Next step name, END, or None if the run should end
        """
        if name in self.edges:
            return self.edges[name]
        names = list(self.steps)
        index = names.index(name)
        if index + 1 < len(names):
            return names[index + 1]
        return None

    def validate(self) -> List[str]:
        """
        Validate the workflow structure.

        Returns:
            List of validation errors (empty if valid)
        """
        errors = []

        if not self.steps:
            errors.append("Workflow must have at least one step")
            return errors

        if not self.start:
            errors.append("Workflow must have a start step")
        elif self.start not in self.steps:
            errors.append(f"Start step '{self.start}' not found in steps")

        for source, target in self.edges.items():
            if source not in self.steps:
                errors.append(f"Edge source '{source}' not found in steps")
            if target != END and target not in self.steps:
                errors.append(f"Edge target '{target}' not found in steps")

        return errors

    def as_step(self, next: Any = None) -> Callable:
        """
        Wrap this workflow so it can be used as the handler of a step in
        another workflow.

        Args:
            next: Where the outer workflow goes once this one ends. None
                falls through to the outer step's default successor.
        """
        from stepflow.engine.executor import NestedWorkflow
        return NestedWorkflow(self, next)

    async def run(
        self,
        initial_state: Any = None,
        *,
        context: Optional[Dict[str, Any]] = None,
        observers: Any = (),
        signal: Any = None,
        run_id: Optional[str] = None,
    ):
        """
        Run the workflow with fresh state built from initial_state.

        Args:
            initial_state: Dict (or model instance) validated against schema
            context: Collaborator handles made available to step handlers
            observers: Callables receiving every RunEvent
            signal: asyncio.Event that cancels the run when set
            run_id: Optional run ID (generated if not provided)

        Returns:
            RunResult with the final state and the trace
        """
        from stepflow.engine.executor import Executor
        executor = Executor(
            self,
            run_id=run_id,
            observers=observers,
            signal=signal,
            collaborators=context,
        )
        return await executor.run(initial_state)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize the workflow to a dictionary."""
        return {
            "workflow_id": self.workflow_id,
            "name": self.name,
            "description": self.description,
            "schema": self.schema.__name__,
            "output_schema": self.output_schema.__name__ if self.output_schema else None,
            "steps": {name: step.to_dict() for name, step in self.steps.items()},
            "edges": self.edges,
            "start": self.start,
            "metadata": self.metadata,
        }

    def to_mermaid(self) -> str:
        """Generate a Mermaid diagram of the workflow."""
        lines = ["graph TD"]

        for name, step in self.steps.items():
            label = name.replace("_", " ").title()
            if step.is_strict:
                label += " *"
            if name == self.start:
                lines.append(f'    {name}(["{label}"])')
            else:
                lines.append(f'    {name}["{label}"]')

        lines.append(f'    {END}(("END"))')

        # Solid arrows are declared edges, dotted ones follow insertion order
        for name in self.steps:
            target = self.default_successor(name) or END
            arrow = "-->" if name in self.edges else "-.->"
            lines.append(f"    {name} {arrow} {target}")

        return "\n".join(lines)

    def __repr__(self) -> str:
        return (
            f"Workflow(name='{self.name}', steps={list(self.steps.keys())}, "
            f"start='{self.start}')"
        )

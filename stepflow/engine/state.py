"""
State handling for the Workflow Engine.

The state of a run is an instance of the workflow's pydantic schema. It is
created fresh for every run, passed by reference to every step handler and
mutated in place. Strict steps check the state against a derived schema
before their handler runs.
"""

from typing import Annotated, Any, Dict, Optional, Type, Union, get_args, get_origin
from pydantic import AfterValidator, BaseModel, ConfigDict, ValidationError, create_model
import types

from stepflow.engine.errors import StateValidationError


class WorkflowState(BaseModel):
    """
    Default state schema.

    Accepts any field, so it can be used as-is for loosely typed workflows
    or subclassed to declare the fields a workflow works with.
    """

    model_config = ConfigDict(extra="allow", arbitrary_types_allowed=True)

    def get(self, key: str, default: Any = None) -> Any:
        """Get a field value, declared or extra."""
        return getattr(self, key, default)

    def update(self, values: Dict[str, Any]) -> None:
        """Set several fields in place."""
        for key, value in values.items():
            setattr(self, key, value)


def _not_none(value: Any) -> Any:
    if value is None:
        raise ValueError("Field is required")
    return value


def _strip_optional(annotation: Any) -> Any:
    if get_origin(annotation) in (Union, types.UnionType):
        args = tuple(a for a in get_args(annotation) if a is not type(None))
        if len(args) == 1:
            return args[0]
        return Union[args]
    return annotation


def required(schema: Type[BaseModel], *fields: str) -> Type[BaseModel]:
    """
    Derive a schema in which the given fields (all fields if none are given)
    must be present and not None.

    Usage:
        workflow.add_strict_step("writer", required(ContentState, "plan"), writer)
    """
    names = fields or tuple(schema.model_fields)
    overrides = {}
    for name in names:
        info = schema.model_fields.get(name)
        annotation = _strip_optional(info.annotation) if info else Any
        if annotation is Any:
            annotation = Annotated[Any, AfterValidator(_not_none)]
        overrides[name] = (annotation, ...)

    suffix = "".join(part.title() for part in fields) if fields else "All"
    return create_model(
        f"{schema.__name__}Required{suffix}",
        __base__=schema,
        **overrides,
    )


def build_state(schema: Type[BaseModel], initial: Optional[Any]) -> BaseModel:
    """Create the state of a new run from caller-supplied initial values."""
    if initial is None:
        initial = {}
    if isinstance(initial, schema):
        return initial.model_copy(deep=True)
    if isinstance(initial, BaseModel):
        initial = initial.model_dump()
    try:
        return schema.model_validate(initial)
    except ValidationError as e:
        raise StateValidationError(
            f"Initial state does not match schema '{schema.__name__}': {e}",
            errors=e.errors(),
        ) from e


def check_state(schema: Type[BaseModel], state: BaseModel, step: Optional[str] = None) -> BaseModel:
    """
    Validate the live state against a schema without modifying it.

    The current field values are validated rather than the instance itself,
    since pydantic accepts instances of the schema (or a subclass) as-is.

    Returns:
        A new instance of schema built from the state
    """
    try:
        return schema.model_validate(dict(state))
    except ValidationError as e:
        where = f" before step '{step}'" if step else ""
        raise StateValidationError(
            f"State failed validation against '{schema.__name__}'{where}: {e}",
            errors=e.errors(),
            step=step,
        ) from e


def snapshot(state: BaseModel) -> Dict[str, Any]:
    """A plain-dict copy of the state for observers and storage."""
    return state.model_dump()


def project_state(schema: Type[BaseModel], source: BaseModel) -> BaseModel:
    """Build a state of another schema from the attributes of a live state."""
    try:
        return schema.model_validate(source, from_attributes=True)
    except ValidationError as e:
        raise StateValidationError(
            f"State cannot be projected onto '{schema.__name__}': {e}",
            errors=e.errors(),
        ) from e


def merge_state(target: BaseModel, source: BaseModel) -> None:
    """Write every field of source that target can hold back into target."""
    accepts_extra = target.model_config.get("extra") == "allow"
    values = dict(source)
    for key, value in values.items():
        if key in type(target).model_fields or accepts_extra:
            setattr(target, key, value)

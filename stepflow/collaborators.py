"""
Interfaces of the external collaborators step handlers talk to.

The engine never calls these itself. Handlers receive them through
RunContext.get() and place whatever they return into the run state.
Only the message and memory types are implemented here, since steps
pass them around in their state.
"""

from typing import Any, AsyncIterator, Dict, List, Optional, Protocol, Sequence, Type, TypeVar, Union, runtime_checkable
from datetime import datetime
from pydantic import BaseModel, Field


T = TypeVar("T", bound=BaseModel)


class Message(BaseModel):
    """A chat message."""
    role: str
    text: str
    created_at: datetime = Field(default_factory=datetime.now)

    @classmethod
    def user(cls, text: str) -> "Message":
        return cls(role="user", text=text)

    @classmethod
    def assistant(cls, text: str) -> "Message":
        return cls(role="assistant", text=text)

    @classmethod
    def system(cls, text: str) -> "Message":
        return cls(role="system", text=text)


class ReadOnlyMemory:
    """A read-only view over another memory."""

    def __init__(self, source: "UnconstrainedMemory"):
        self._source = source

    @property
    def messages(self) -> List[Message]:
        return list(self._source.messages)

    @property
    def last(self) -> Optional[Message]:
        messages = self._source.messages
        return messages[-1] if messages else None

    async def add(self, message: Message) -> None:
        raise TypeError("Memory is read-only")

    def as_read_only(self) -> "ReadOnlyMemory":
        return self

    def __len__(self) -> int:
        return len(self._source.messages)


class UnconstrainedMemory:
    """Append-only ordered message history with no size limit."""

    def __init__(self, messages: Optional[Sequence[Message]] = None):
        self._messages: List[Message] = list(messages or [])

    @property
    def messages(self) -> List[Message]:
        return list(self._messages)

    @property
    def last(self) -> Optional[Message]:
        return self._messages[-1] if self._messages else None

    async def add(self, message: Message) -> None:
        self._messages.append(message)

    def as_read_only(self) -> ReadOnlyMemory:
        return ReadOnlyMemory(self)

    def __len__(self) -> int:
        return len(self._messages)


Memory = Union[UnconstrainedMemory, ReadOnlyMemory]


@runtime_checkable
class ChatModel(Protocol):
    """A hosted LLM completion/chat service."""

    async def generate(self, messages: Sequence[Message], **config: Any) -> str:
        ...

    async def generate_structured(self, messages: Sequence[Message], schema: Type[T], **config: Any) -> T:
        ...

    def stream(self, messages: Sequence[Message], **config: Any) -> AsyncIterator[str]:
        ...


@runtime_checkable
class Tool(Protocol):
    """A tool with structured input and output."""

    name: str
    description: str

    async def run(self, input: Union[BaseModel, Dict[str, Any]]) -> Any:
        ...


@runtime_checkable
class Agent(Protocol):
    """An agent answering the latest message of a conversation."""

    async def run(self, memory: Memory) -> Message:
        ...


class SearchResult(BaseModel):
    """A ranked vector-search hit."""
    id: str
    score: float
    text: str = ""
    metadata: Dict[str, Any] = Field(default_factory=dict)


@runtime_checkable
class Embedder(Protocol):
    async def embed(self, texts: Sequence[str]) -> List[List[float]]:
        ...


@runtime_checkable
class VectorStore(Protocol):
    async def search(
        self,
        vector: Sequence[float],
        limit: int = 10,
        filters: Optional[Dict[str, Any]] = None,
    ) -> List[SearchResult]:
        ...

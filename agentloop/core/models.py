"""Core data models shared across loop components."""
from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum, auto
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

from .errors import ChainDepthExceeded


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AgentCategory(str, Enum):
    """Declared category of a registered agent."""

    CORE = "core"
    ENHANCED = "enhanced"
    UTILITY = "utility"


class LoopType(str, Enum):
    """Loop profiles; the value doubles as the persistence key."""

    SEQUENTIAL = "sequential"
    FARM = "farm"
    DEEP = "deep"


class LoopState(Enum):
    """Lifecycle states for a loop controller."""

    STOPPED = auto()
    STARTING = auto()
    RUNNING = auto()
    STOPPING = auto()


@dataclass(slots=True)
class ExecutionContext:
    """Input handed to an agent runner."""

    payload: Dict[str, Any] = field(default_factory=dict)
    caller: Optional[str] = None
    correlation_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    timestamp: datetime = field(default_factory=utcnow)

    def derive(self, payload: Dict[str, Any], caller: Optional[str] = None) -> ExecutionContext:
        """Return a child context that keeps the correlation id."""
        return ExecutionContext(
            payload=payload,
            caller=caller if caller is not None else self.caller,
            correlation_id=self.correlation_id,
        )


@dataclass(slots=True)
class ExecutionResult:
    """Outcome of one agent invocation."""

    success: bool
    message: str = ""
    data: Optional[Dict[str, Any]] = None
    duration_ms: float = 0.0
    next_agent: Optional[str] = None
    should_continue: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "message": self.message,
            "data": self.data,
            "duration_ms": self.duration_ms,
            "next_agent": self.next_agent,
        }


AgentRunner = Callable[[ExecutionContext], Awaitable[ExecutionResult]]


@dataclass(slots=True, frozen=True)
class AgentDescriptor:
    """Catalog entry for an invocable agent."""

    name: str
    runner: AgentRunner
    category: AgentCategory = AgentCategory.CORE
    description: str = ""
    version: str = "1.0"


@dataclass(slots=True)
class HandoffChain:
    """Ordered links of a hand-off chain, bounded by ``max_length`` entries."""

    max_length: int
    links: List[Tuple[str, Dict[str, Any]]] = field(default_factory=list)
    truncated: bool = False

    def __len__(self) -> int:
        return len(self.links)

    @property
    def is_full(self) -> bool:
        return len(self.links) >= self.max_length

    @property
    def agent_names(self) -> List[str]:
        return [name for name, _ in self.links]

    def append(self, agent_name: str, payload: Dict[str, Any]) -> None:
        if self.is_full:
            self.truncated = True
            raise ChainDepthExceeded(self.max_length, agent_name)
        self.links.append((agent_name, payload))


@dataclass(slots=True)
class CycleRecord:
    """Results gathered during one tick of a loop, in invocation order."""

    index: int
    results: List[Tuple[str, ExecutionResult]] = field(default_factory=list)
    timestamp: datetime = field(default_factory=utcnow)
    errors: int = 0
    chain: Optional[HandoffChain] = None
    collaboration: Optional[ExecutionResult] = None

    @property
    def success(self) -> bool:
        return self.errors == 0

    @property
    def agent_names(self) -> List[str]:
        return [name for name, _ in self.results]

    def add(self, agent_name: str, result: ExecutionResult) -> None:
        self.results.append((agent_name, result))
        if not result.success:
            self.errors += 1

    def results_for(self, agent_name: str) -> List[ExecutionResult]:
        return [result for name, result in self.results if name == agent_name]

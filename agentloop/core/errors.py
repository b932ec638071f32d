"""Exception hierarchy for the loop engine."""
from __future__ import annotations


class AgentLoopError(Exception):
    """Base class for every error raised by agentloop."""


class UnknownAgentError(AgentLoopError, KeyError):
    """Raised when invoking or resolving a name the registry does not hold."""

    def __init__(self, name: str) -> None:
        super().__init__(f"No agent registered under name '{name}'")
        self.name = name

    def __str__(self) -> str:
        return self.args[0]


class EmptyRegistryError(AgentLoopError):
    """Raised when a selection is requested from an empty registry."""

    def __init__(self, message: str = "Agent registry is empty") -> None:
        super().__init__(message)


class AgentInvocationError(AgentLoopError):
    """A runner raised; only ever surfaced as a failed ExecutionResult."""

    def __init__(self, name: str, cause: BaseException) -> None:
        super().__init__(f"Agent '{name}' failed: {cause}")
        self.name = name
        self.cause = cause


class ChainDepthExceeded(AgentLoopError):
    """A hand-off chain reached its cap and was truncated."""

    def __init__(self, max_length: int, agent_name: str) -> None:
        super().__init__(
            f"Hand-off chain reached its cap of {max_length}; dropped link to '{agent_name}'"
        )
        self.max_length = max_length
        self.agent_name = agent_name


class PersistenceError(AgentLoopError):
    """Reading or writing a run-state snapshot failed."""

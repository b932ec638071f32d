"""Agent selection policies used by the single-agent loops."""
from __future__ import annotations

import random
from typing import Optional, Protocol, Sequence

from agentloop.core.errors import EmptyRegistryError
from agentloop.core.models import AgentDescriptor


class SelectionPolicy(Protocol):
    def select(self, snapshot: Sequence[AgentDescriptor]) -> AgentDescriptor:
        ...


class RotationPolicy:
    """Round-robin over the snapshot order.

    Over N selections against R agents every agent is picked at least N // R
    times.
    """

    def __init__(self, start: int = 0) -> None:
        self._cursor = start

    @property
    def cursor(self) -> int:
        return self._cursor

    def select(self, snapshot: Sequence[AgentDescriptor]) -> AgentDescriptor:
        if not snapshot:
            raise EmptyRegistryError()
        descriptor = snapshot[self._cursor % len(snapshot)]
        self._cursor += 1
        return descriptor

    def take(self, snapshot: Sequence[AgentDescriptor], count: int) -> list[AgentDescriptor]:
        """Select ``count`` distinct agents (fewer if the snapshot is smaller)."""
        return [self.select(snapshot) for _ in range(min(count, len(snapshot)))]


class RandomPolicy:
    """Uniform choice driven by an injected, seedable generator."""

    def __init__(self, rng: Optional[random.Random] = None, *, seed: Optional[int] = None) -> None:
        self._rng = rng or random.Random(seed)

    def select(self, snapshot: Sequence[AgentDescriptor]) -> AgentDescriptor:
        if not snapshot:
            raise EmptyRegistryError()
        return self._rng.choice(list(snapshot))

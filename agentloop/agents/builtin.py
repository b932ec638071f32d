"""Built-in simulated agents used by the demo and the default runtime."""
from __future__ import annotations

import asyncio
import random
from typing import Iterable, List, Optional, Tuple

from agentloop.core.models import (
    AgentCategory,
    AgentDescriptor,
    ExecutionContext,
    ExecutionResult,
)


class SimulatedAgent:
    """Runner that simulates work and optionally hands off to a successor.

    Randomness here is the agent's own flavor (latency, failure rate); the
    scheduler never depends on it.
    """

    def __init__(
        self,
        name: str,
        verb: str,
        *,
        next_agent: Optional[str] = None,
        ends_chain: bool = False,
        latency: Tuple[float, float] = (0.05, 0.2),
        failure_rate: float = 0.0,
        seed: Optional[int] = None,
    ) -> None:
        self.name = name
        self.verb = verb
        self.next_agent = next_agent
        self.ends_chain = ends_chain
        self.latency = latency
        self.failure_rate = failure_rate
        self._rng = random.Random(seed)

    async def __call__(self, context: ExecutionContext) -> ExecutionResult:
        await asyncio.sleep(self._rng.uniform(*self.latency))  # Simulate work
        if self._rng.random() < self.failure_rate:
            return ExecutionResult(success=False, message=f"{self.name} could not {self.verb}")

        topic = context.payload.get("subgoal") or context.payload.get("topic") or "system optimization"
        data = {"agent": self.name, "topic": topic, "cycle": context.payload.get("cycle")}
        if context.payload.get("handoff"):
            data["built_on"] = context.payload.get("from_agent")
        return ExecutionResult(
            success=True,
            message=f"{self.name} {self.verb} {topic}",
            data=data,
            next_agent=self.next_agent,
            should_continue=not self.ends_chain,
        )


async def echo_runner(context: ExecutionContext) -> ExecutionResult:
    """Agent that echoes its input payload back."""
    content = context.payload.get("content", "")
    return ExecutionResult(
        success=True,
        message=f"echo heard {content}" if content else "echo heard nothing",
        data={"echo": dict(context.payload)},
    )


# Last link of the research -> strategic -> critic -> memory chain
CHAIN_END = "MemoryAgent"

# name, category, description, verb, next agent
_CATALOG: List[Tuple[str, AgentCategory, str, str, Optional[str]]] = [
    ("SupervisorAgent", AgentCategory.CORE, "Oversees agent activity and flags drift from goals.", "reviewed", None),
    ("ResearchAgent", AgentCategory.CORE, "Gathers information on the current topic.", "researched", "StrategicAgent"),
    ("StrategicAgent", AgentCategory.CORE, "Turns research into a plan.", "planned", "CriticAgent"),
    ("CriticAgent", AgentCategory.CORE, "Evaluates plans and identifies risks.", "critiqued", "MemoryAgent"),
    ("MemoryAgent", AgentCategory.CORE, "Stores outcomes for later cycles.", "memorized", None),
    ("LearningAgent", AgentCategory.CORE, "Extracts insights from recent outcomes.", "learned from", None),
    ("OpportunityAgent", AgentCategory.ENHANCED, "Identifies opportunities worth pursuing.", "scouted", None),
    ("EvolutionAgent", AgentCategory.ENHANCED, "Adapts strategies based on feedback.", "evolved", None),
    ("CollaborationAgent", AgentCategory.ENHANCED, "Coordinates hand-offs between agents.", "coordinated", None),
]


def default_agents(*, seed: Optional[int] = None, latency: Tuple[float, float] = (0.05, 0.2)) -> Iterable[AgentDescriptor]:
    """Descriptors for the built-in agent set, in registration order."""
    for offset, (name, category, description, verb, next_agent) in enumerate(_CATALOG):
        yield AgentDescriptor(
            name=name,
            category=category,
            description=description,
            version="1.0",
            runner=SimulatedAgent(
                name,
                verb,
                next_agent=next_agent,
                ends_chain=name == CHAIN_END,
                latency=latency,
                seed=None if seed is None else seed + offset,
            ),
        )
    yield AgentDescriptor(
        name="EchoAgent",
        category=AgentCategory.UTILITY,
        description="Echoes its input payload; useful for smoke tests.",
        version="1.0",
        runner=echo_runner,
    )

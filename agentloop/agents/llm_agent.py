"""LLM-backed agent runner built on the shared LLM pool."""
from __future__ import annotations

import json
from typing import TYPE_CHECKING, Optional

from agentloop.core.models import (
    AgentCategory,
    AgentDescriptor,
    ExecutionContext,
    ExecutionResult,
)

if TYPE_CHECKING:
    from agentloop.services.llm_pool import LLMPool

DEFAULT_SYSTEM_PROMPT = "You are a helpful AI assistant agent in a multi-agent system."


class LLMRunner:
    """Send the context payload to a chat model and wrap the reply in a result."""

    def __init__(
        self,
        llm_pool: LLMPool,
        *,
        model: str = "gpt-4",
        system_prompt: str = DEFAULT_SYSTEM_PROMPT,
        temperature: float = 0.7,
    ) -> None:
        self._llm_pool = llm_pool
        self.model_name = model
        self.system_prompt = system_prompt
        self.temperature = temperature

    def _prompt(self, context: ExecutionContext) -> str:
        payload = context.payload
        prompt = payload.get("prompt") or payload.get("content")
        if prompt:
            return str(prompt)
        if payload.get("handoff"):
            return (
                f"Continue the work handed over by {payload.get('from_agent')}: "
                f"{payload.get('previous_output', '')}"
            )
        return "Summarize the current system state:\n" + json.dumps(payload, default=str)

    async def __call__(self, context: ExecutionContext) -> ExecutionResult:
        try:
            async with self._llm_pool.acquire(self.model_name) as client:
                response = await client.chat.completions.create(
                    model=self.model_name,
                    messages=[
                        {"role": "system", "content": self.system_prompt},
                        {"role": "user", "content": self._prompt(context)},
                    ],
                    temperature=self.temperature,
                )
        except KeyError as exc:
            return ExecutionResult(success=False, message=exc.args[0] if exc.args else str(exc))

        content = response.choices[0].message.content or ""
        return ExecutionResult(
            success=True,
            message=content,
            data={"model": self.model_name},
        )


def llm_agent(
    name: str,
    llm_pool: LLMPool,
    *,
    model: str = "gpt-4",
    system_prompt: Optional[str] = None,
    category: AgentCategory = AgentCategory.ENHANCED,
) -> AgentDescriptor:
    """Descriptor for an agent answering through ``model``."""
    return AgentDescriptor(
        name=name,
        category=category,
        description=f"LLM-backed agent using {model}",
        version="1.0",
        runner=LLMRunner(llm_pool, model=model, system_prompt=system_prompt or DEFAULT_SYSTEM_PROMPT),
    )

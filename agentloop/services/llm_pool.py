"""LLM client pool for shared model access with concurrency control."""
from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict

from openai import AsyncAzureOpenAI

from agentloop.config import AzureOpenAIConfig


class LLMPool:
    """Manages shared LLM clients with concurrency limiting."""

    def __init__(self) -> None:
        self._clients: Dict[str, Any] = {}
        self._semaphores: Dict[str, asyncio.Semaphore] = {}
        self._initialized: Dict[str, bool] = {}

    def register_azure_openai(self, name: str, config: AzureOpenAIConfig) -> None:
        """Register an Azure OpenAI model configuration."""
        self._clients[name] = config
        self._semaphores[name] = asyncio.Semaphore(config.max_concurrent)
        self._initialized[name] = False

    def register_client(self, name: str, client: Any, *, max_concurrent: int = 8) -> None:
        """Register an already constructed client exposing ``chat.completions.create``."""
        self._clients[name] = client
        self._semaphores[name] = asyncio.Semaphore(max_concurrent)
        self._initialized[name] = True

    def models(self) -> list[str]:
        return list(self._clients)

    @asynccontextmanager
    async def acquire(self, model_name: str) -> AsyncIterator[Any]:
        """Acquire access to a model client with concurrency control."""
        if model_name not in self._clients:
            raise KeyError(f"Model '{model_name}' not registered in LLM pool")

        semaphore = self._semaphores[model_name]
        await semaphore.acquire()

        try:
            # Lazy initialization on first use
            if not self._initialized[model_name]:
                self._initialize_client(model_name)

            yield self._clients[model_name]
        finally:
            semaphore.release()

    def _initialize_client(self, model_name: str) -> None:
        config = self._clients[model_name]
        if isinstance(config, AzureOpenAIConfig):
            self._clients[model_name] = AsyncAzureOpenAI(
                api_key=config.api_key,
                api_version=config.api_version,
                azure_endpoint=config.endpoint,
            )
        self._initialized[model_name] = True

"""Configuration management for the loop engine."""
from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Optional


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    return float(raw) if raw else default


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    return int(raw) if raw else default


@dataclass(frozen=True)
class AzureOpenAIConfig:
    """Azure OpenAI service configuration."""

    api_key: str
    endpoint: str
    api_version: str = "2024-02-15-preview"
    deployment_name: str = "gpt-4"
    max_concurrent: int = 50


@dataclass(frozen=True)
class LoopConfig:
    """Scheduling settings shared by every loop controller."""

    interval_ms: float = 3000.0
    invocation_timeout_s: Optional[float] = 30.0
    farm_max_concurrency: int = 16
    freshness_window_s: float = 600.0
    telemetry_timeout_s: float = 0.5


@dataclass(frozen=True)
class DeepLoopConfig:
    """Tunables for hand-off chains, collaboration and the adaptive interval."""

    max_chain_length: int = 5
    collaboration_every: int = 3
    collaboration_size: int = 3
    adaptive: bool = True
    window_size: int = 5
    error_threshold: float = 0.5
    backoff_factor: float = 2.0
    min_interval_ms: float = 1000.0
    max_interval_ms: float = 30000.0
    category_affinity: dict = field(
        default_factory=lambda: {"core": "enhanced", "enhanced": "utility"}
    )


@dataclass(frozen=True)
class Config:
    """Application configuration loaded from environment variables."""

    loop: LoopConfig = field(default_factory=LoopConfig)
    deep: DeepLoopConfig = field(default_factory=DeepLoopConfig)
    azure_openai: Optional[AzureOpenAIConfig] = None
    state_backend: str = "json"
    state_path: str = "data/agentloop-state.json"
    rng_seed: Optional[int] = None
    log_level: str = "INFO"
    environment: str = "development"

    @classmethod
    def from_env(cls) -> Config:
        """Load configuration from environment variables."""
        azure_key = os.getenv("AZURE_OPENAI_KEY")
        azure_endpoint = os.getenv("AZURE_OPENAI_ENDPOINT")

        azure_config = None
        if azure_key and azure_endpoint:
            azure_config = AzureOpenAIConfig(
                api_key=azure_key,
                endpoint=azure_endpoint,
                api_version=os.getenv("AZURE_OPENAI_API_VERSION", "2024-02-15-preview"),
                deployment_name=os.getenv("AZURE_OPENAI_DEPLOYMENT", "gpt-4"),
                max_concurrent=int(os.getenv("AZURE_OPENAI_MAX_CONCURRENT", "50")),
            )

        timeout = os.getenv("AGENTLOOP_INVOCATION_TIMEOUT_S", "30")
        loop = LoopConfig(
            interval_ms=_env_float("AGENTLOOP_INTERVAL_MS", 3000.0),
            # "0" or "none" disables the per-invocation deadline.
            invocation_timeout_s=None if timeout.lower() in {"0", "none", ""} else float(timeout),
            farm_max_concurrency=_env_int("AGENTLOOP_FARM_MAX_CONCURRENCY", 16),
            freshness_window_s=_env_float("AGENTLOOP_FRESHNESS_WINDOW_S", 600.0),
        )
        deep = DeepLoopConfig(
            max_chain_length=_env_int("AGENTLOOP_MAX_CHAIN_LENGTH", 5),
            collaboration_every=_env_int("AGENTLOOP_COLLABORATION_EVERY", 3),
            collaboration_size=_env_int("AGENTLOOP_COLLABORATION_SIZE", 3),
            adaptive=os.getenv("AGENTLOOP_ADAPTIVE", "true").lower() != "false",
            window_size=_env_int("AGENTLOOP_ADAPTIVE_WINDOW", 5),
            error_threshold=_env_float("AGENTLOOP_ADAPTIVE_ERROR_THRESHOLD", 0.5),
            backoff_factor=_env_float("AGENTLOOP_ADAPTIVE_BACKOFF", 2.0),
            min_interval_ms=_env_float("AGENTLOOP_MIN_INTERVAL_MS", 1000.0),
            max_interval_ms=_env_float("AGENTLOOP_MAX_INTERVAL_MS", 30000.0),
        )
        seed = os.getenv("AGENTLOOP_RNG_SEED")

        return cls(
            loop=loop,
            deep=deep,
            azure_openai=azure_config,
            state_backend=os.getenv("AGENTLOOP_STATE_BACKEND", "json"),
            state_path=os.getenv("AGENTLOOP_STATE_PATH", "data/agentloop-state.json"),
            rng_seed=int(seed) if seed else None,
            log_level=os.getenv("AGENTLOOP_LOG_LEVEL", "INFO"),
            environment=os.getenv("ENVIRONMENT", "development"),
        )


# Global config instance
config = Config.from_env()

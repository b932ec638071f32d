"""FastAPI entry-point exposing loop controls."""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from agentloop.api.loops import router as loops_router
from agentloop.api.routes import router as agents_router
from agentloop.config import config
from agentloop.runtime import get_loops, get_registry, register_default_agents, resume_loops, shutdown_loops

logging.basicConfig(
    level=config.log_level,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifecycle manager for FastAPI application."""
    # Startup: same agent set as before the restart, then resume fresh runs
    register_default_agents(get_registry())
    await resume_loops(get_loops())
    yield
    # Shutdown: halt ticking but leave running loops resumable
    await shutdown_loops(get_loops())


app = FastAPI(title="Agent Loop Engine", lifespan=lifespan)
app.include_router(agents_router)
app.include_router(loops_router)


@app.get("/health")
async def health() -> dict:
    return {"status": "ok"}

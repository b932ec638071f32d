"""Persisted run-state and KPI models."""
from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from .models import LoopType, utcnow


class KPISnapshot(BaseModel):
    """Cumulative counters for one loop; only ``reset()`` lowers them."""

    cycles: int = 0
    handoffs: int = 0
    collaborations: int = 0
    optimizations: int = 0
    errors: int = 0


class RunState(BaseModel):
    """Snapshot written at every tick boundary and read back on resume."""

    loop_type: LoopType
    is_running: bool = False
    cycle_count: int = 0
    last_update: datetime = Field(default_factory=utcnow)
    kpis: KPISnapshot = Field(default_factory=KPISnapshot)
    interval_ms: Optional[float] = None

    @classmethod
    def default(cls, loop_type: LoopType) -> RunState:
        return cls(loop_type=loop_type)

"""Run-state snapshots and the auto-resume decision."""
from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Callable

from pydantic import ValidationError

from agentloop.core.errors import PersistenceError
from agentloop.core.models import LoopType, utcnow
from agentloop.core.state import RunState
from agentloop.persistence.store import StateStore

logger = logging.getLogger(__name__)


class PersistenceManager:
    """Save and load the ``RunState`` of one loop profile.

    Store failures surface as ``PersistenceError``; callers log them and keep
    running on in-memory state. ``should_auto_resume`` never raises.
    """

    def __init__(
        self,
        store: StateStore,
        loop_type: LoopType,
        *,
        freshness_window_s: float = 600.0,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._store = store
        self.loop_type = LoopType(loop_type)
        self._freshness = timedelta(seconds=freshness_window_s)
        self._clock = clock

    @property
    def key(self) -> str:
        return self.loop_type.value

    async def save_state(self, state: RunState) -> None:
        if state.loop_type is not self.loop_type:
            raise ValueError(
                f"State for '{state.loop_type.value}' cannot be saved under '{self.key}'"
            )
        try:
            await self._store.set(self.key, state.model_dump(mode="json"))
        except Exception as exc:  # noqa: BLE001
            raise PersistenceError(f"Failed to save state '{self.key}': {exc}") from exc

    async def load_state(self) -> RunState:
        try:
            raw = await self._store.get(self.key)
        except Exception as exc:  # noqa: BLE001
            raise PersistenceError(f"Failed to load state '{self.key}': {exc}") from exc
        if raw is None:
            return RunState.default(self.loop_type)
        try:
            return RunState.model_validate(raw)
        except ValidationError as exc:
            raise PersistenceError(f"Corrupt state snapshot '{self.key}': {exc}") from exc

    async def should_auto_resume(self) -> bool:
        try:
            state = await self.load_state()
        except PersistenceError as exc:
            logger.error("%s; not resuming", exc)
            return False
        if not state.is_running:
            return False
        last_update = state.last_update
        if last_update.tzinfo is None:
            last_update = last_update.replace(tzinfo=timezone.utc)
        age = self._clock() - last_update
        if age > self._freshness:
            logger.info("Snapshot '%s' is stale (%s old); not resuming", self.key, age)
            return False
        return True

    async def clear_state(self) -> None:
        await self.save_state(RunState.default(self.loop_type))

"""Adaptive tick interval driven by a rolling window of cycle outcomes."""
from __future__ import annotations

from collections import deque
from typing import Deque


class AdaptiveInterval:
    """Back off on sustained errors, speed up on sustained success.

    Decisions are only taken on a full window. An error rate above
    ``error_threshold`` multiplies the interval by ``backoff_factor`` (capped
    at ``max_ms``); an error-free window divides it by the same factor (never
    below ``min_ms``). The window is cleared after each decision.
    """

    def __init__(
        self,
        *,
        initial_ms: float,
        min_ms: float,
        max_ms: float,
        window_size: int = 5,
        error_threshold: float = 0.5,
        backoff_factor: float = 2.0,
    ) -> None:
        if min_ms > max_ms:
            raise ValueError("min_ms must not exceed max_ms")
        if backoff_factor <= 1.0:
            raise ValueError("backoff_factor must be greater than 1")
        self.min_ms = min_ms
        self.max_ms = max_ms
        self.error_threshold = error_threshold
        self.backoff_factor = backoff_factor
        self.interval_ms = self._clamp(initial_ms)
        self._window: Deque[bool] = deque(maxlen=max(1, window_size))

    def _clamp(self, value: float) -> float:
        return min(max(value, self.min_ms), self.max_ms)

    @property
    def window(self) -> list[bool]:
        return list(self._window)

    def set_interval(self, value: float) -> None:
        self.interval_ms = self._clamp(value)

    def reset(self, initial_ms: float) -> None:
        self.interval_ms = self._clamp(initial_ms)
        self._window.clear()

    def observe(self, success: bool) -> bool:
        """Record one cycle outcome; True when the interval changed."""
        self._window.append(success)
        if len(self._window) < self._window.maxlen:
            return False

        error_rate = self._window.count(False) / len(self._window)
        if error_rate > self.error_threshold:
            proposed = self._clamp(self.interval_ms * self.backoff_factor)
        elif error_rate == 0:
            proposed = self._clamp(self.interval_ms / self.backoff_factor)
        else:
            return False

        self._window.clear()
        if proposed == self.interval_ms:
            return False
        self.interval_ms = proposed
        return True

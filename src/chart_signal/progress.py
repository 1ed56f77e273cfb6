"""Simulated progress indicator for the remote analysis wait."""

from __future__ import annotations

import asyncio
import random

import structlog

logger = structlog.get_logger()


class ProgressTicker:
    """
    Advances ``value`` by a random step every tick, never past ``ceiling``.

    The value is cosmetic and unrelated to real completion. Use as an async
    context manager so the background task is cancelled on every exit path.
    """

    def __init__(
        self,
        tick_seconds: float = 0.3,
        max_step: float = 15.0,
        ceiling: float = 90.0,
        rng: random.Random | None = None,
    ) -> None:
        self.tick_seconds = tick_seconds
        self.max_step = max_step
        self.ceiling = ceiling
        self.rng = rng or random.Random()
        self.value = 0.0
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        self.cancel()
        self.value = 0.0
        self._task = asyncio.create_task(self._run())

    def cancel(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None

    def finish(self) -> None:
        self.cancel()
        self.value = 100.0

    def reset(self) -> None:
        self.cancel()
        self.value = 0.0

    async def _run(self) -> None:
        while self.value < self.ceiling:
            await asyncio.sleep(self.tick_seconds)
            self.value = min(self.ceiling, self.value + self.rng.random() * self.max_step)
        logger.debug("progress_ceiling_reached", value=self.value)

    async def __aenter__(self) -> ProgressTicker:
        self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.cancel()

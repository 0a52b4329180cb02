"""
Rate Budget Manager
===================

Sliding-window token budgeting per model. Callers ``reserve`` an
estimate before each model call and ``record`` the usage the provider
reports afterwards. ``reserve`` never raises; it only waits.

Version: 0.1.0
"""

import asyncio
import time
from collections import deque
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from shared.config import RateLimitSettings, settings
from shared.logging import get_logger


logger = get_logger(__name__)

Clock = Callable[[], float]
Sleeper = Callable[[float], Awaitable[None]]


@dataclass
class UsageEntry:
    """Tokens consumed at a point in time."""

    timestamp: float
    tokens: int


class RateBudgetManager:
    """
    Per-model token budgets over a trailing window.

    Unlike a fixed-period counter, the window slides: a request waits only
    until enough of the oldest usage has aged out.

    Example:
        budget = RateBudgetManager()
        await budget.reserve(1200, "gpt-4o")
        response = await provider.complete(...)
        budget.record(response.usage.total_tokens or 1200, "gpt-4o")
    """

    def __init__(
        self,
        budgets: dict[str, int] | None = None,
        window_seconds: float | None = None,
        clock: Clock = time.monotonic,
        sleep: Sleeper = asyncio.sleep,
        config: RateLimitSettings | None = None,
    ) -> None:
        """
        Args:
            budgets: Tokens per window by model name (default from settings)
            window_seconds: Window length (default from settings)
            clock: Monotonic time source in seconds
            sleep: Awaitable sleep used while waiting for headroom
            config: Rate limit settings to read defaults from
        """
        config = config or settings.rate_limit
        self._budgets = dict(budgets if budgets is not None else config.model_budgets)
        self._window = window_seconds if window_seconds is not None else config.window_seconds
        self._clock = clock
        self._sleep = sleep
        self._windows: dict[str, deque[UsageEntry]] = {}

        if not self._budgets:
            raise ValueError("At least one model budget must be configured")

    def budget_for(self, model: str) -> int:
        """Budget for ``model``; unknown models get the smallest configured budget."""
        if model in self._budgets:
            return self._budgets[model]
        return min(self._budgets.values())

    def usage(self, model: str) -> int:
        """Tokens currently counted against ``model``'s window."""
        return sum(entry.tokens for entry in self._prune(model))

    def _prune(self, model: str) -> deque[UsageEntry]:
        window = self._windows.setdefault(model, deque())
        cutoff = self._clock() - self._window
        while window and window[0].timestamp <= cutoff:
            window.popleft()
        return window

    async def reserve(self, estimated_tokens: int, model: str) -> float:
        """
        Wait until ``estimated_tokens`` fits in ``model``'s window.

        An empty window always admits the request, so a single call larger
        than the whole budget proceeds rather than waiting forever.

        Returns:
            Seconds spent waiting.
        """
        budget = self.budget_for(model)
        waited = 0.0

        while True:
            window = self._prune(model)
            current = sum(entry.tokens for entry in window)
            if not window or current + estimated_tokens <= budget:
                return waited

            delay = max(window[0].timestamp + self._window - self._clock(), 0.0)
            logger.info(
                "rate_budget_wait",
                model=model,
                current_tokens=current,
                requested_tokens=estimated_tokens,
                budget=budget,
                wait_seconds=round(delay, 2),
            )
            await self._sleep(delay)
            waited += delay

    def record(self, tokens: int, model: str) -> None:
        """Count ``tokens`` actually consumed by a call to ``model``."""
        if tokens <= 0:
            return
        self._windows.setdefault(model, deque()).append(
            UsageEntry(timestamp=self._clock(), tokens=tokens)
        )
        logger.debug("rate_budget_recorded", model=model, tokens=tokens)

"""Shared rate-limit budget gating every outbound GitHub call."""

from __future__ import annotations

import asyncio
import time
from collections.abc import Mapping
from dataclasses import dataclass, field

import structlog

log = structlog.get_logger("deliverypulse.collector")

_DEFAULT_REMAINING = 5000
_DEFAULT_THRESHOLD = 100
_RESET_BUFFER = 1.0  # seconds past reset before resuming


@dataclass
class RateState:
    """Remaining quota and reset time as last reported by GitHub.

    One instance is shared by every concurrent worker of a run. It starts
    with optimistic defaults and is never persisted.
    """

    remaining: int = _DEFAULT_REMAINING
    reset_at: float = field(default_factory=lambda: time.time() + 60)
    threshold: int = _DEFAULT_THRESHOLD


class RateBudget:
    """Advisory back-pressure over a single shared :class:`RateState`.

    Workers that observe ``remaining`` above the threshold at the same time
    may still issue a small burst before the next header update lands.
    """

    def __init__(
        self,
        threshold: int = _DEFAULT_THRESHOLD,
        *,
        state: RateState | None = None,
        buffer_seconds: float = _RESET_BUFFER,
    ) -> None:
        self.state = state or RateState(threshold=threshold)
        self._buffer = buffer_seconds

    async def check_and_wait(self) -> None:
        """Sleep until the quota resets when remaining is at or below threshold."""
        now = time.time()
        if self.state.remaining > self.state.threshold or self.state.reset_at <= now:
            return
        wait = self.state.reset_at - now + self._buffer
        log.warning(
            "rate_budget.waiting",
            remaining=self.state.remaining,
            wait_seconds=round(wait, 1),
        )
        await asyncio.sleep(wait)

    def hold(self, seconds: float) -> None:
        """Mark the quota exhausted for *seconds* so every worker backs off."""
        self.state.remaining = 0
        self.state.reset_at = time.time() + seconds

    def update_from_headers(self, headers: Mapping[str, str]) -> None:
        """Overwrite state from ``X-RateLimit-*`` headers; ignore bad values."""
        lowered = {str(k).lower(): v for k, v in headers.items()}
        remaining = parse_header_int(lowered.get("x-ratelimit-remaining"))
        if remaining is not None:
            self.state.remaining = max(remaining, 0)
        reset = parse_header_int(lowered.get("x-ratelimit-reset"))
        if reset is not None:
            self.state.reset_at = float(reset)


def parse_header_int(value: str | int | None) -> int | None:
    """Safely parse an integer header value."""
    if value is None:
        return None
    try:
        return int(value)
    except (ValueError, TypeError):
        return None

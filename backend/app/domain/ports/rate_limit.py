from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol


@dataclass(frozen=True)
class BucketState:
    """Counter state right after a hit was recorded.

    window_ms is the window of the call that produced this state.
    """
    count: int
    window_start_ms: int
    window_ms: int

    @property
    def reset_at_ms(self) -> int:
        return self.window_start_ms + self.window_ms


class RateLimitStore(Protocol):
    async def hit(self, key: str, now_ms: int, window_ms: int) -> BucketState:
        """Record one call against key at now_ms.

        A fresh window starts when none exists or now_ms >= window_start + window_ms,
        using the window_ms of this call.
        """
        ...

    async def sweep(self, now_ms: int) -> int:
        """Drop buckets whose window has elapsed. Returns how many were removed."""
        ...

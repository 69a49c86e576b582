"""Frame clocks driving per-frame loops."""

import asyncio
import math
import time
from typing import List, Optional, Protocol


class FrameClock(Protocol):
    """Time source with a display-frame cadence."""

    fps: int

    def now(self) -> float:
        """Current time in seconds."""
        ...

    async def next_frame(self) -> float:
        """Wait for the next display frame and return its time."""
        ...


class RealtimeClock:
    """Wall-clock time, yielding on frame boundaries."""

    def __init__(self, fps: int = 30) -> None:
        if fps <= 0:
            raise ValueError(f"fps must be positive, got {fps}")
        self.fps = fps
        self.frame_interval = 1.0 / fps
        self._origin = time.monotonic()

    def now(self) -> float:
        return time.monotonic() - self._origin

    async def next_frame(self) -> float:
        now = self.now()
        target = (math.floor(now / self.frame_interval) + 1) * self.frame_interval
        await asyncio.sleep(target - now)
        return self.now()


class SimulatedClock:
    """Deterministic clock that advances one frame per batch of waiters.

    Every coroutine awaiting `next_frame` during the same event loop
    iteration shares one frame, so several loops stay in lockstep. Time
    never passes while nothing waits, which also makes it usable for
    faster-than-real-time export.
    """

    def __init__(self, fps: int = 30, start: float = 0.0) -> None:
        if fps <= 0:
            raise ValueError(f"fps must be positive, got {fps}")
        self.fps = fps
        self.frame_interval = 1.0 / fps
        self.frames = 0
        self._start = start
        self._offset = 0.0
        self._waiters: List[asyncio.Future] = []
        self._pump: Optional[asyncio.Handle] = None

    def now(self) -> float:
        return self._start + self._offset + self.frames * self.frame_interval

    def advance(self, seconds: float) -> None:
        """Jump forward without producing frames."""
        if seconds < 0:
            raise ValueError("Cannot move a clock backwards")
        self._offset += seconds

    async def next_frame(self) -> float:
        loop = asyncio.get_running_loop()
        waiter = loop.create_future()
        self._waiters.append(waiter)
        if self._pump is None:
            self._pump = loop.call_soon(self._tick)
        return await waiter

    async def run_for(self, seconds: float) -> None:
        """Let other frame loops run for the given amount of clock time."""
        end = self.now() + seconds - 1e-9
        while self.now() < end:
            await self.next_frame()

    def _tick(self) -> None:
        self._pump = None
        self.frames += 1
        now = self.now()
        waiters, self._waiters = self._waiters, []
        for waiter in waiters:
            if not waiter.done():
                waiter.set_result(now)

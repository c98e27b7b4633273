from __future__ import annotations

import time
from collections.abc import Callable
from typing import Protocol


class Clock(Protocol):
    """Monotonic clock abstraction.

    Timers and the session read time only through this interface.
    """

    def now(self) -> float:
        """Return monotonic seconds."""


class RealClock:
    """Production clock backed by time.monotonic()."""

    def now(self) -> float:
        return time.monotonic()


class TimerHandle:
    """A scheduled callback that can be cancelled at any point.

    Periodic handles fire every ``interval_s`` from their start time; one-shot
    handles fire once and deactivate. A cancelled handle never fires again,
    including in the middle of a catch-up loop.
    """

    def __init__(self, *, started_at_s: float, interval_s: float, repeat: bool, callback: Callable[[], None]) -> None:
        if interval_s <= 0.0:
            raise ValueError("interval_s must be > 0")
        self._interval_s = float(interval_s)
        self._repeat = bool(repeat)
        self._callback = callback
        self._next_due_s = float(started_at_s) + self._interval_s
        self._active = True
        self._fired = 0

    @property
    def active(self) -> bool:
        return self._active

    @property
    def repeat(self) -> bool:
        return self._repeat

    @property
    def interval_s(self) -> float:
        return self._interval_s

    @property
    def next_due_s(self) -> float | None:
        return self._next_due_s if self._active else None

    @property
    def fired(self) -> int:
        return self._fired

    def cancel(self) -> None:
        self._active = False

    def fire_due(self, now: float) -> int:
        count = 0
        while self._active and now >= self._next_due_s:
            if self._repeat:
                self._next_due_s += self._interval_s
            else:
                self._active = False
            self._fired += 1
            count += 1
            self._callback()
        return count


class TimerSource:
    """Creates timer handles against an injected Clock and fires them on poll().

    Nothing runs in the background: callbacks run inside ``poll()`` on the
    caller's thread, one at a time.
    """

    def __init__(self, clock: Clock) -> None:
        self._clock = clock
        self._handles: list[TimerHandle] = []

    def every(self, interval_s: float, callback: Callable[[], None]) -> TimerHandle:
        return self._add(interval_s=interval_s, repeat=True, callback=callback)

    def after(self, delay_s: float, callback: Callable[[], None]) -> TimerHandle:
        return self._add(interval_s=delay_s, repeat=False, callback=callback)

    def active_handles(self) -> list[TimerHandle]:
        return [h for h in self._handles if h.active]

    def cancel_all(self) -> None:
        for handle in self._handles:
            handle.cancel()
        self._handles.clear()

    def poll(self) -> int:
        """Fire every due callback; returns how many fired.

        Handles created by a callback are picked up on the next poll.
        """

        now = self._clock.now()
        fired = 0
        for handle in list(self._handles):
            fired += handle.fire_due(now)
        self._handles = [h for h in self._handles if h.active]
        return fired

    def _add(self, *, interval_s: float, repeat: bool, callback: Callable[[], None]) -> TimerHandle:
        handle = TimerHandle(
            started_at_s=self._clock.now(),
            interval_s=interval_s,
            repeat=repeat,
            callback=callback,
        )
        self._handles.append(handle)
        return handle

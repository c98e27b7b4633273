from __future__ import annotations

from dataclasses import dataclass

import pytest

from chess_vision_trainer.timers import RealClock, TimerSource


@dataclass
class FakeClock:
    t: float = 0.0

    def now(self) -> float:
        return self.t

    def advance(self, dt: float) -> None:
        self.t += float(dt)


def test_every_fires_on_cadence() -> None:
    clock = FakeClock()
    timers = TimerSource(clock)
    fired: list[float] = []
    handle = timers.every(1.0, lambda: fired.append(clock.now()))

    assert timers.poll() == 0
    clock.advance(0.5)
    assert timers.poll() == 0
    clock.advance(0.5)
    assert timers.poll() == 1
    clock.advance(1.0)
    assert timers.poll() == 1
    assert fired == [1.0, 2.0]
    assert handle.fired == 2
    assert handle.next_due_s == pytest.approx(3.0)


def test_every_catches_up_after_a_long_gap() -> None:
    clock = FakeClock()
    timers = TimerSource(clock)
    count = []
    timers.every(1.0, lambda: count.append(1))
    clock.advance(3.5)
    assert timers.poll() == 3
    assert len(count) == 3


def test_cancel_stops_future_ticks() -> None:
    clock = FakeClock()
    timers = TimerSource(clock)
    count = []
    handle = timers.every(1.0, lambda: count.append(1))
    clock.advance(1.0)
    timers.poll()
    handle.cancel()
    clock.advance(10.0)
    assert timers.poll() == 0
    assert len(count) == 1
    assert handle.active is False
    assert handle.next_due_s is None
    assert timers.active_handles() == []


def test_cancel_inside_callback_interrupts_catch_up() -> None:
    clock = FakeClock()
    timers = TimerSource(clock)
    count = []

    def on_tick() -> None:
        count.append(1)
        handle.cancel()

    handle = timers.every(1.0, on_tick)
    clock.advance(5.0)
    assert timers.poll() == 1
    assert len(count) == 1


def test_after_fires_once() -> None:
    clock = FakeClock()
    timers = TimerSource(clock)
    count = []
    handle = timers.after(3.0, lambda: count.append(1))
    clock.advance(2.5)
    assert timers.poll() == 0
    clock.advance(0.5)
    assert timers.poll() == 1
    clock.advance(10.0)
    assert timers.poll() == 0
    assert len(count) == 1
    assert handle.active is False
    assert handle.repeat is False


def test_handle_started_in_callback_runs_from_the_next_poll() -> None:
    clock = FakeClock()
    timers = TimerSource(clock)
    seen: list[str] = []

    def start_second() -> None:
        seen.append("first")
        timers.every(1.0, lambda: seen.append("second"))

    timers.after(1.0, start_second)
    clock.advance(1.0)
    assert timers.poll() == 1
    clock.advance(1.0)
    assert timers.poll() == 1
    assert seen == ["first", "second"]


def test_cancel_all_clears_everything() -> None:
    clock = FakeClock()
    timers = TimerSource(clock)
    a = timers.every(1.0, lambda: None)
    b = timers.after(1.0, lambda: None)
    timers.cancel_all()
    clock.advance(5.0)
    assert timers.poll() == 0
    assert not a.active and not b.active


def test_interval_must_be_positive() -> None:
    timers = TimerSource(FakeClock())
    with pytest.raises(ValueError):
        timers.every(0.0, lambda: None)
    with pytest.raises(ValueError):
        timers.after(-1.0, lambda: None)


def test_real_clock_is_monotonic() -> None:
    clock = RealClock()
    a = clock.now()
    b = clock.now()
    assert b >= a

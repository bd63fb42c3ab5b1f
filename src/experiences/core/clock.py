from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

import simpy
import simpy.rt


@dataclass(slots=True)
class Timer:
    """
    Handle for a callback scheduled on the clock.
    cancel() is idempotent; a cancelled timer never runs its callback.
    """

    due_ms: int
    _cancelled: bool = field(default=False, init=False)
    _done: bool = field(default=False, init=False)

    @property
    def pending(self) -> bool:
        return not (self._cancelled or self._done)

    def cancel(self) -> None:
        self._cancelled = True


class Clock:
    """
    Millisecond wall clock backed by a SimPy environment.

    Simulated: env.now is seconds since start_ms and only moves via advance().
    Realtime: now_ms() follows the wall clock. Due timers run on
    run_pending() (non-blocking) or advance(ms), which blocks for ms of real
    time the way RealtimeEnvironment.run() does.
    """

    def __init__(self, env: simpy.Environment, start_ms: int = 0) -> None:
        self.env = env
        self.start_ms = int(start_ms)
        self._pumping = False

    @classmethod
    def simulated(cls, start_ms: int = 1_767_225_600_000) -> Clock:
        # default start: 2026-01-01T00:00:00Z
        return cls(simpy.Environment(), start_ms=start_ms)

    @classmethod
    def realtime(cls, *, factor: float = 1.0) -> Clock:
        env = simpy.rt.RealtimeEnvironment(factor=factor, strict=False)
        return cls(env, start_ms=int(time.time() * 1000))

    @property
    def is_realtime(self) -> bool:
        return isinstance(self.env, simpy.rt.RealtimeEnvironment)

    def elapsed_s(self) -> float:
        if not self.is_realtime:
            return float(self.env.now)
        env = self.env
        wall = env.env_start + (time.monotonic() - env.real_start) / env.factor
        return max(float(env.now), wall)

    def now_ms(self) -> int:
        return int(round(self.start_ms + self.elapsed_s() * 1000.0))

    def call_later(self, delay_ms: float, callback: Callable[[], Any]) -> Timer:
        delay_ms = max(0.0, float(delay_ms))
        timer = Timer(due_ms=int(round(self.now_ms() + delay_ms)))
        # realtime env.now lags the wall clock until the next run_pending()
        lag_s = self.elapsed_s() - float(self.env.now)
        self.env.process(self._run_timer(timer, lag_s + delay_ms / 1000.0, callback))
        return timer

    def run_pending(self) -> None:
        """Process timers already due by the wall clock. No-op when simulated."""
        if not self.is_realtime or self._pumping:
            return
        self._pumping = True
        try:
            target = self.elapsed_s()
            while self.env.peek() <= target:
                self.env.step()
        finally:
            self._pumping = False

    def advance(self, ms: float) -> None:
        """Run the environment forward by ``ms`` milliseconds (processes due timers)."""
        if ms <= 0:
            return
        target = self.elapsed_s() + float(ms) / 1000.0
        self.env.run(until=target)
        # run(until=...) stops before events due exactly at the boundary
        while self.env.peek() <= target + 1e-9:
            self.env.step()

    def _run_timer(self, timer: Timer, delay_s: float, callback: Callable[[], Any]):
        yield self.env.timeout(delay_s)
        if timer._cancelled:
            return
        timer._done = True
        callback()


class Throttled:
    """
    Leading-edge throttle with a single trailing call, in clock time.
    The trailing call receives the most recent arguments.
    """

    def __init__(self, clock: Clock, wait_ms: float, fn: Callable[..., Any]) -> None:
        self._clock = clock
        self._wait_ms = float(wait_ms)
        self._fn = fn
        self._previous_ms: int | None = None
        self._trailing: Timer | None = None
        self._pending_args: tuple[Any, ...] = ()

    def __call__(self, *args: Any) -> None:
        now = self._clock.now_ms()
        remaining = (
            0.0 if self._previous_ms is None else self._wait_ms - (now - self._previous_ms)
        )

        if remaining <= 0 or remaining > self._wait_ms:
            self.cancel()
            self._previous_ms = now
            self._fn(*args)
            return

        self._pending_args = args
        if self._trailing is None or not self._trailing.pending:
            self._trailing = self._clock.call_later(remaining, self._flush)

    def _flush(self) -> None:
        self._previous_ms = self._clock.now_ms()
        self._trailing = None
        args, self._pending_args = self._pending_args, ()
        self._fn(*args)

    def cancel(self) -> None:
        if self._trailing is not None:
            self._trailing.cancel()
            self._trailing = None


def throttle(clock: Clock, wait_ms: float, fn: Callable[..., Any]) -> Throttled:
    return Throttled(clock, wait_ms, fn)

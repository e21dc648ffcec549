"""Time stepping utilities.

Classes
-------
Stepper
    Fixed-size time stepping.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterator

import numpy as np

from pyfsi.errors import ConfigurationError


@dataclass
class Stepper:
    """Fixed time stepper.

    Steps are generated from their index, so a span divided into ``n``
    equal steps yields exactly ``n`` steps of identical size.  A
    remainder shorter than the step is taken as a final partial step.

    Args:
        t_end: End time (s).
        dt: Time-step size (s).
        t_start: Start time (s).  Defaults to 0.

    Example::

        stepper = Stepper.from_steps(num_steps=100, time_span=10.0)
        for t, dt in stepper:
            integrator.make_time_step(dt)
    """

    t_end: float
    dt: float
    t_start: float = 0.0

    def __post_init__(self) -> None:
        if self.dt <= 0:
            raise ConfigurationError("Time-step size must be positive.")
        if self.t_end < self.t_start:
            raise ConfigurationError("t_end must not precede t_start.")

    @classmethod
    def from_steps(cls, num_steps: int, time_span: float, t_start: float = 0.0) -> "Stepper":
        """Stepper with *num_steps* equal steps over *time_span*."""
        if num_steps < 1:
            raise ConfigurationError("num_steps must be at least 1.")
        return cls(t_end=t_start + time_span, dt=time_span / num_steps, t_start=t_start)

    def _full_steps(self) -> tuple[int, float]:
        span = self.t_end - self.t_start
        n_full = int(np.floor(span / self.dt + 1e-9))
        remainder = span - n_full * self.dt
        if remainder <= 1e-9 * self.dt:
            remainder = 0.0
        return n_full, remainder

    @property
    def n_steps(self) -> int:
        """Number of time steps."""
        n_full, remainder = self._full_steps()
        return n_full + (1 if remainder > 0 else 0)

    @property
    def times(self) -> np.ndarray:
        """Array of all time values (including start)."""
        return np.array([self.t_start] + [t for t, _ in self])

    def __iter__(self) -> Iterator[tuple[float, float]]:
        """Yield ``(t, dt)`` tuples, ``t`` being the time reached."""
        n_full, remainder = self._full_steps()
        for i in range(1, n_full + 1):
            yield self.t_start + i * self.dt, self.dt
        if remainder > 0:
            yield self.t_end, remainder

    def __repr__(self) -> str:
        return f"Stepper(t_end={self.t_end}, dt={self.dt}, t_start={self.t_start})"

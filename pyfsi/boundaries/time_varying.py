"""Time-dependent scaling of boundary data.

Classes
-------
CosineRamp
    Smooth start-up factor rising from 0 to 1.
Hydrograph
    Piecewise-linear time series.

Functions
---------
cosine_ramp
    Evaluate the cosine ramp at one time.
"""

from __future__ import annotations

from typing import Sequence

import numpy as np


def cosine_ramp(t: float, period: float = 2.0) -> float:
    """Cosine ramp ``(1 - cos(pi t / period)) / 2``, clamped to 1 after *period*.

    Args:
        t: Time.
        period: Ramp duration.
    """
    if period <= 0:
        raise ValueError("Ramp period must be positive.")
    if t >= period:
        return 1.0
    if t <= 0:
        return 0.0
    return float(0.5 * (1.0 - np.cos(np.pi * t / period)))


class CosineRamp:
    """Callable cosine ramp.

    Args:
        period: Ramp duration (s).

    Example::

        ramp = CosineRamp(period=2.0)
        ramp(0.0), ramp(1.0), ramp(2.0)  # 0.0, 0.5, 1.0
    """

    def __init__(self, period: float = 2.0) -> None:
        if period <= 0:
            raise ValueError("Ramp period must be positive.")
        self.period = float(period)

    def __call__(self, t: float) -> float:
        return cosine_ramp(t, self.period)

    def __repr__(self) -> str:
        return f"CosineRamp(period={self.period})"


class Hydrograph:
    """Piecewise-linear time series for boundary scaling.

    Args:
        times: Sequence of time values (s).
        values: Corresponding factors.

    Example::

        load = Hydrograph(times=[0, 1, 2], values=[0.0, 1.0, 1.0])
        load(0.5)  # 0.5
    """

    def __init__(
        self,
        times: Sequence[float],
        values: Sequence[float],
    ) -> None:
        self.times = np.asarray(times, dtype=float)
        self.values = np.asarray(values, dtype=float)
        if len(self.times) != len(self.values):
            raise ValueError("times and values must have the same length.")

    def __call__(self, t: float) -> float:
        """Interpolate the value at time *t*."""
        return float(np.interp(t, self.times, self.values))

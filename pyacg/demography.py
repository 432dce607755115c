#
# Copyright (C) 2024 University of Oxford
#
# This file is part of pyacg.
#
# pyacg is free software: you can redistribute it and/or modify
# it under the terms of the GNU General Public License as published by
# the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.
#
# pyacg is distributed in the hope that it will be useful,
# but WITHOUT ANY WARRANTY; without even the implied warranty of
# MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the
# GNU General Public License for more details.
#
# You should have received a copy of the GNU General Public License
# along with pyacg.  If not, see <http://www.gnu.org/licenses/>.
#
"""
Population size trajectories. Time is measured backwards from the present
and the coalescent intensity at time ``t`` is the integral of ``1 / N(s)``
from 0 to ``t``.
"""
from __future__ import annotations

import dataclasses
import math
from typing import Any

import numpy as np


class PopulationFunction:
    """
    Superclass of population size trajectories.
    """

    def population_size(self, t: float) -> float:
        raise NotImplementedError()

    def intensity(self, t: float) -> float:
        raise NotImplementedError()

    def inverse_intensity(self, x: float) -> float:
        raise NotImplementedError()

    def integral(self, t0: float, t1: float) -> float:
        """
        Returns the integral of ``1 / N(t)`` from ``t0`` to ``t1``.
        """
        if math.isinf(t1):
            return math.inf
        return self.intensity(t1) - self.intensity(t0)


@dataclasses.dataclass
class ConstantPopulation(PopulationFunction):
    """
    A population of constant size.
    """

    size: float = 1.0

    def __post_init__(self):
        if self.size <= 0:
            raise ValueError("Population size must be > 0")

    def population_size(self, t):
        return self.size

    def intensity(self, t):
        return t / self.size

    def inverse_intensity(self, x):
        return x * self.size


@dataclasses.dataclass
class ExponentialGrowth(PopulationFunction):
    """
    A population whose size at time ``t`` in the past is
    ``initial_size * exp(-growth_rate * t)``, so that positive growth rates
    describe a population that has been growing towards the present.
    """

    initial_size: float = 1.0
    growth_rate: float = 0.0

    def __post_init__(self):
        if self.initial_size <= 0:
            raise ValueError("Initial population size must be > 0")

    def population_size(self, t):
        return self.initial_size * math.exp(-self.growth_rate * t)

    def intensity(self, t):
        r = self.growth_rate
        if r == 0:
            return t / self.initial_size
        return math.expm1(r * t) / (r * self.initial_size)

    def inverse_intensity(self, x):
        r = self.growth_rate
        if r == 0:
            return x * self.initial_size
        y = r * self.initial_size * x
        if y <= -1:
            # A shrinking population never accumulates this much intensity.
            return math.inf
        return math.log1p(y) / r


@dataclasses.dataclass(eq=False)
class PiecewiseConstantPopulation(PopulationFunction):
    """
    A population whose size is ``sizes[j]`` from ``times[j]`` until
    ``times[j + 1]``. The first time must be zero and the last size applies
    indefinitely.
    """

    # Until we can use numpy type hints properly, it's not worth adding them
    # here.
    times: Any = dataclasses.field(default_factory=lambda: [0.0])
    sizes: Any = dataclasses.field(default_factory=lambda: [1.0])

    def __post_init__(self):
        self.times = np.array(self.times, dtype=np.float64)
        self.sizes = np.array(self.sizes, dtype=np.float64)
        if self.times.ndim != 1 or self.times.shape != self.sizes.shape:
            raise ValueError("times and sizes must be 1D arrays of equal length")
        if len(self.times) == 0 or self.times[0] != 0:
            raise ValueError("The first time must be zero")
        if np.any(np.diff(self.times) <= 0):
            raise ValueError("times must be strictly increasing")
        if np.any(self.sizes <= 0):
            raise ValueError("Population sizes must be > 0")
        self._cumulative = np.zeros_like(self.times)
        self._cumulative[1:] = np.cumsum(np.diff(self.times) / self.sizes[:-1])

    def _interval(self, t):
        return int(np.searchsorted(self.times, t, side="right")) - 1

    def population_size(self, t):
        return float(self.sizes[self._interval(t)])

    def intensity(self, t):
        j = self._interval(t)
        return float(self._cumulative[j] + (t - self.times[j]) / self.sizes[j])

    def inverse_intensity(self, x):
        j = int(np.searchsorted(self._cumulative, x, side="right")) - 1
        return float(self.times[j] + (x - self._cumulative[j]) * self.sizes[j])

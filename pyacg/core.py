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
Core functions and classes used throughout pyacg.
"""
from __future__ import annotations

import numbers
import os
import random
from typing import Any
from typing import Callable
from typing import Dict
from typing import Generic
from typing import TypeVar
from typing import Union

import numpy as np

__version__ = "0.1.0"


# Some machinery here for generating default random seeds. We need a map
# indexed by process ID here because we cannot use a global variable
# to store the state across multiple processes. Copy-on-write semantics
# for child processes means that they inherit the state of the parent
# process, so if we just keep a global variable without indexing by
# PID, child processes will share the same random generator as the
# parent.

_seed_rng_map: Dict[int, random.Random] = {}


def get_seed_rng() -> Union[random.Random, None]:
    return _seed_rng_map.get(os.getpid(), None)


def clear_seed_rng():
    _seed_rng_map.pop(os.getpid(), None)


def get_random_seed() -> int:
    global _seed_rng_map
    pid = os.getpid()
    if pid not in _seed_rng_map:
        # If we don't provide a seed to Random(), Python will seed either
        # from a system source of randomness (i.e., /dev/urandom) or the
        # current time if this is not available.
        _seed_rng_map[pid] = random.Random()
    return _seed_rng_map[pid].randint(1, 2**32 - 1)


def set_seed_rng_seed(seed: int):
    """
    Convenience method to let us make unseeded simulations deterministic
    in tests.
    """
    global _seed_rng_map
    pid = os.getpid()
    _seed_rng_map[pid] = random.Random(seed)


def _parse_random_seed(seed):
    """
    Parse the specified random seed value. If no seed is provided, generate a
    high-quality random seed.
    """
    if seed is None:
        seed = get_random_seed()
    if isinstance(seed, np.ndarray):
        seed = seed[0]
    seed = int(seed)
    return seed


def get_rng(*, rng=None, random_seed=None) -> np.random.Generator:
    """
    Returns the random generator to draw from. An explicitly provided
    generator takes precedence over a seed; it is an error to give both.
    """
    if rng is not None:
        if random_seed is not None:
            raise ValueError("Cannot specify both rng and random_seed")
        if not isinstance(rng, np.random.Generator):
            raise TypeError("rng must be a numpy.random.Generator instance")
        return rng
    return np.random.default_rng(_parse_random_seed(random_seed))


def isinteger(value: Any) -> bool:
    """
    Returns True if the specified value can be converted losslessly to an
    integer.
    """
    if isinstance(value, numbers.Number):
        # Mypy doesn't realise we've done an isinstance here.
        return int(value) == float(value)  # type: ignore
    return False


def _parse_flag(value: Any, *, default: bool) -> bool:
    """
    Parses a boolean flag, which can be either True, False, or None.
    If the input value is None, return the default. Otherwise,
    check that the input value is a bool.

    Note that we do *not* cast to a bool as this would accept
    truthy values like the empty list, etc. In this case None
    would be converted to False, potentially conflicting with
    the default value.
    """
    assert isinstance(default, bool)
    if value is None:
        return default
    if not isinstance(value, bool):
        raise TypeError("Boolean flag must be True, False, or None (the default value)")
    return value


T = TypeVar("T")


class Cached(Generic[T]):
    """
    A lazily computed value with a dirty bit. The value is recomputed
    by calling ``compute`` on the first :meth:`get` after :meth:`mark_dirty`.
    """

    def __init__(self, compute: Callable[[], T]):
        self._compute = compute
        self._value: Union[T, None] = None
        self._dirty = True

    @property
    def dirty(self) -> bool:
        return self._dirty

    def mark_dirty(self):
        self._dirty = True

    def get(self) -> T:
        if self._dirty:
            self._value = self._compute()
            self._dirty = False
        return self._value

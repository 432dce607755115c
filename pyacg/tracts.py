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
Placement of conversion tracts on loci: the choice of locus, start site
and tract length, along with the exact log probability of a placement.
"""
from __future__ import annotations

import enum
import logging
import math
from typing import List
from typing import Tuple

import numpy as np

from pyacg import loci

logger = logging.getLogger(__name__)


class CircularTractModel(enum.Enum):
    """
    The distribution of tract lengths on circular loci.
    """

    #: Geometric with mean ``delta``, redrawn until the tract covers
    #: less than half of the locus.
    GEOMETRIC = "geometric"
    #: Beta-binomial over half of the locus, with mean ``delta``.
    BETA_BINOMIAL = "beta_binomial"


def _parse_circular_tract_model(model):
    if model is None:
        return CircularTractModel.GEOMETRIC
    if isinstance(model, CircularTractModel):
        return model
    try:
        return CircularTractModel(model)
    except ValueError:
        names = [m.value for m in CircularTractModel]
        raise ValueError(f"Circular tract model must be one of {names}")


def geometric_log_pmf(k: int, p: float) -> float:
    """
    Returns the log probability of ``k`` failures before the first success
    in Bernoulli trials with success probability ``p``.
    """
    if k < 0:
        return -math.inf
    if k == 0:
        return math.log(p)
    if p == 1:
        return -math.inf
    return k * math.log1p(-p) + math.log(p)


def geometric_log_sf(k: int, p: float) -> float:
    """
    Returns the log probability of at least ``k`` failures before the
    first success.
    """
    if k <= 0:
        return 0.0
    if p == 1:
        return -math.inf
    return k * math.log1p(-p)


def beta_binomial_log_pmf(k: int, n: int, a: float, b: float) -> float:
    if k < 0 or k > n:
        return -math.inf
    return (
        math.lgamma(n + 1)
        - math.lgamma(k + 1)
        - math.lgamma(n - k + 1)
        + math.lgamma(k + a)
        + math.lgamma(n - k + b)
        - math.lgamma(n + a + b)
        + math.lgamma(a + b)
        - math.lgamma(a)
        - math.lgamma(b)
    )


class TractPlacement:
    """
    The distribution of conversion tracts over a set of convertible loci.

    On a linear locus of ``L`` sites a tract may begin up to ``delta - 1``
    sites before the first site, so the locus contributes ``L + delta - 1``
    possible start positions, all of those before site 0 being mapped to
    site 0. The tract then extends by a geometric number of sites with
    mean ``delta - 1``, clipped at the end of the locus. On a circular
    locus all ``L`` start sites are equally likely and the tract length
    follows the configured :class:`CircularTractModel`.

    In whole-locus mode a tract always covers a whole locus, chosen with
    probability proportional to its site count.
    """

    def __init__(
        self,
        convertible_loci: List[loci.Locus],
        delta: float,
        *,
        whole_locus_mode: bool = False,
        circular_tract_model=None,
    ):
        if len(convertible_loci) == 0:
            raise ValueError("Must have at least one convertible locus")
        if delta < 1:
            raise ValueError("Mean tract length delta must be >= 1")
        self.loci = list(convertible_loci)
        self.delta = float(delta)
        self.whole_locus_mode = whole_locus_mode
        self.circular_tract_model = _parse_circular_tract_model(circular_tract_model)
        if (
            not whole_locus_mode
            and self.circular_tract_model == CircularTractModel.BETA_BINOMIAL
        ):
            for locus in self.loci:
                if locus.circular and not self.delta < self._half_length(locus):
                    raise ValueError(
                        f"Beta-binomial tract lengths need delta < {self._half_length(locus)}"
                        f" on locus '{locus.id}'"
                    )
        total = sum(locus.site_count for locus in self.loci)
        self.relative_locus_sizes = np.array(
            [locus.site_count / total for locus in self.loci]
        )

    @staticmethod
    def _half_length(locus):
        # The largest number of extra sites a circular tract can extend by.
        return (locus.site_count - 1) // 2

    def effective_length(self, locus: loci.Locus) -> float:
        if self.whole_locus_mode or locus.circular:
            return float(locus.site_count)
        return locus.site_count + self.delta - 1

    @property
    def total_effective_length(self) -> float:
        return sum(self.effective_length(locus) for locus in self.loci)

    def choose_locus(self, rng) -> loci.Locus:
        """
        Chooses a locus with probability proportional to its effective length
        or, in whole-locus mode, its site count.
        """
        if self.whole_locus_mode:
            return self.loci[rng.choice(len(self.loci), p=self.relative_locus_sizes)]
        u = rng.uniform(0, self.total_effective_length)
        for locus in self.loci:
            if u < self.effective_length(locus):
                return locus
            u -= self.effective_length(locus)
        raise RuntimeError("Locus choice fell through")

    def draw(self, rng) -> Tuple[loci.Locus, int, int, float]:
        """
        Draws a tract, returning the locus, start site, end site and the log
        probability of the tract.
        """
        if self.whole_locus_mode:
            j = rng.choice(len(self.loci), p=self.relative_locus_sizes)
            locus = self.loci[j]
            return locus, 0, locus.site_count - 1, math.log(self.relative_locus_sizes[j])

        u = rng.uniform(0, self.total_effective_length)
        locus = None
        for candidate in self.loci:
            if u < self.effective_length(candidate):
                locus = candidate
                break
            u -= self.effective_length(candidate)
        if locus is None:
            raise RuntimeError("Tract placement fell through")

        L = locus.site_count
        p = 1 / self.delta
        if locus.circular:
            start = min(int(u), L - 1)
            if self.circular_tract_model == CircularTractModel.GEOMETRIC:
                n = self._half_length(locus)
                k = n + 1
                while k > n:
                    k = int(rng.geometric(p)) - 1
            else:
                n = self._half_length(locus)
                a = n / (n - self.delta)
                b = n / self.delta
                k = int(rng.binomial(n, rng.beta(a, b)))
            end = (start + k) % L
        else:
            if u < self.delta:
                start = 0
            else:
                start = min(int(math.ceil(u - self.delta)), L - 1)
            end = min(start + int(rng.geometric(p)) - 1, L - 1)
        return locus, start, end, self.log_prob(locus, start, end)

    def log_prob(self, locus: loci.Locus, start: int, end: int) -> float:
        """
        Returns the log probability of drawing the specified tract.
        """
        j = self._locus_index(locus)
        L = locus.site_count
        if self.whole_locus_mode:
            if start != 0 or end != L - 1:
                return -math.inf
            return math.log(self.relative_locus_sizes[j])

        alpha = self.total_effective_length
        p = 1 / self.delta
        if locus.circular:
            log_p = -math.log(alpha)
            k = locus.interval_length(start, end) - 1
            n = self._half_length(locus)
            if self.circular_tract_model == CircularTractModel.GEOMETRIC:
                if k > n:
                    return -math.inf
                # Normalise over the accepted lengths 0 to n.
                log_p += geometric_log_pmf(k, p) - math.log1p(
                    -math.exp(geometric_log_sf(n + 1, p))
                )
            else:
                a = n / (n - self.delta)
                b = n / self.delta
                log_p += beta_binomial_log_pmf(k, n, a, b)
            return log_p

        if start > end:
            return -math.inf
        if start == 0:
            log_p = math.log(self.delta / alpha)
        else:
            log_p = -math.log(alpha)
        if end == L - 1:
            log_p += geometric_log_sf(L - 1 - start, p)
        else:
            log_p += geometric_log_pmf(end - start, p)
        return log_p

    def _locus_index(self, locus):
        for j, other in enumerate(self.loci):
            if other.id == locus.id:
                return j
        raise ValueError(f"Locus '{locus.id}' is not convertible")

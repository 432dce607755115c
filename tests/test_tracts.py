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
Tests for the placement of conversion tracts.
"""
import itertools
import math

import numpy as np
import pytest

import pyacg
import pyacg.tracts as tracts


def total_probability(placement):
    total = 0
    for locus in placement.loci:
        L = locus.site_count
        for start, end in itertools.product(range(L), repeat=2):
            total += math.exp(placement.log_prob(locus, start, end))
    return total


class TestDistributions:
    def test_geometric_pmf_sums_to_one(self):
        p = 0.3
        total = sum(math.exp(tracts.geometric_log_pmf(k, p)) for k in range(200))
        assert total == pytest.approx(1)

    def test_geometric_sf(self):
        p = 0.25
        for k in range(5):
            sf = sum(math.exp(tracts.geometric_log_pmf(j, p)) for j in range(k, 500))
            assert math.exp(tracts.geometric_log_sf(k, p)) == pytest.approx(sf)

    def test_geometric_edge_cases(self):
        assert tracts.geometric_log_pmf(-1, 0.5) == -math.inf
        assert tracts.geometric_log_pmf(0, 1) == 0
        assert tracts.geometric_log_pmf(1, 1) == -math.inf
        assert tracts.geometric_log_sf(0, 1) == 0
        assert tracts.geometric_log_sf(1, 1) == -math.inf

    def test_beta_binomial_moments(self):
        n, a, b = 10, 1.5, 3.0
        probs = [math.exp(tracts.beta_binomial_log_pmf(k, n, a, b)) for k in range(n + 1)]
        assert sum(probs) == pytest.approx(1)
        mean = sum(k * p for k, p in enumerate(probs))
        assert mean == pytest.approx(n * a / (a + b))
        assert tracts.beta_binomial_log_pmf(n + 1, n, a, b) == -math.inf

    def test_beta_binomial_uniform(self):
        for k in range(6):
            assert tracts.beta_binomial_log_pmf(k, 5, 1, 1) == pytest.approx(-math.log(6))


class TestTractPlacement:
    def test_effective_lengths(self):
        loci = [pyacg.Locus("a", 10), pyacg.Locus("b", 20, circular=True)]
        placement = tracts.TractPlacement(loci, 5)
        assert placement.effective_length(loci[0]) == 14
        assert placement.effective_length(loci[1]) == 20
        assert placement.total_effective_length == 34
        whole = tracts.TractPlacement(loci, 5, whole_locus_mode=True)
        assert whole.total_effective_length == 30

    @pytest.mark.parametrize("delta", [0, 0.5, -1])
    def test_bad_delta(self, delta):
        with pytest.raises(ValueError):
            tracts.TractPlacement([pyacg.Locus("a", 10)], delta)

    def test_no_loci(self):
        with pytest.raises(ValueError):
            tracts.TractPlacement([], 2)

    def test_beta_binomial_needs_short_tracts(self):
        locus = pyacg.Locus("a", 11, circular=True)
        with pytest.raises(ValueError):
            tracts.TractPlacement([locus], 5, circular_tract_model="beta_binomial")
        tracts.TractPlacement([locus], 4, circular_tract_model="beta_binomial")

    def test_bad_model(self):
        with pytest.raises(ValueError):
            tracts.TractPlacement([pyacg.Locus("a", 10)], 2, circular_tract_model="x")

    @pytest.mark.parametrize(
        "model", [None, "geometric", pyacg.CircularTractModel.BETA_BINOMIAL]
    )
    def test_probabilities_sum_to_one(self, model):
        loci = [
            pyacg.Locus("a", 7),
            pyacg.Locus("b", 9, circular=True),
            pyacg.Locus("c", 1),
        ]
        placement = tracts.TractPlacement(loci, 2.5, circular_tract_model=model)
        assert total_probability(placement) == pytest.approx(1)

    def test_whole_locus_probabilities(self):
        loci = [pyacg.Locus("a", 10), pyacg.Locus("b", 30)]
        placement = tracts.TractPlacement(loci, 2, whole_locus_mode=True)
        assert placement.log_prob(loci[0], 0, 9) == pytest.approx(math.log(0.25))
        assert placement.log_prob(loci[0], 0, 8) == -math.inf
        assert total_probability(placement) == pytest.approx(1)

    def test_linear_start_site_zero_weighted(self):
        locus = pyacg.Locus("a", 10)
        placement = tracts.TractPlacement([locus], 4)
        p0 = sum(math.exp(placement.log_prob(locus, 0, e)) for e in range(10))
        p1 = sum(math.exp(placement.log_prob(locus, 1, e)) for e in range(1, 10))
        assert p0 == pytest.approx(4 / 13)
        assert p1 == pytest.approx(1 / 13)

    def test_draws_are_valid(self):
        loci = [pyacg.Locus("a", 20), pyacg.Locus("b", 15, circular=True)]
        placement = tracts.TractPlacement(loci, 3)
        rng = np.random.default_rng(1)
        for _ in range(200):
            locus, start, end, log_p = placement.draw(rng)
            assert locus.contains(start)
            assert locus.contains(end)
            if not locus.circular:
                assert start <= end
            else:
                assert locus.interval_length(start, end) <= 8
            assert log_p == placement.log_prob(locus, start, end)
            assert log_p > -math.inf

    def test_draw_frequencies(self):
        locus = pyacg.Locus("a", 4)
        placement = tracts.TractPlacement([locus], 2)
        rng = np.random.default_rng(12)
        num_draws = 20000
        counts = {}
        for _ in range(num_draws):
            _, start, end, _ = placement.draw(rng)
            counts[(start, end)] = counts.get((start, end), 0) + 1
        for (start, end), count in counts.items():
            expected = math.exp(placement.log_prob(locus, start, end))
            assert count / num_draws == pytest.approx(expected, abs=0.015)

    def test_choose_locus(self):
        loci = [pyacg.Locus("a", 10), pyacg.Locus("b", 1000)]
        placement = tracts.TractPlacement(loci, 1)
        rng = np.random.default_rng(3)
        chosen = [placement.choose_locus(rng).id for _ in range(1000)]
        assert 0 < chosen.count("a") < 50

    def test_unknown_locus(self):
        placement = tracts.TractPlacement([pyacg.Locus("a", 10)], 2)
        with pytest.raises(ValueError):
            placement.log_prob(pyacg.Locus("b", 10), 0, 1)

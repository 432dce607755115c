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
Reversible-jump Metropolis-Hastings proposals on conversion graphs.

Each operator's :meth:`~ACGOperator.proposal` modifies the graph in place
and returns the log Hastings ratio of the move, or ``-inf`` if the move
must be rejected. A rejected move leaves the graph unmodified. The
acceptance step, and restoring the graph with
:meth:`.ConversionGraph.restore` afterwards, is the caller's
responsibility.
"""
from __future__ import annotations

import logging
import math
from typing import List
from typing import Tuple
from typing import Union

from pyacg import conversions
from pyacg import core
from pyacg import demography
from pyacg import simulations
from pyacg import tracts

logger = logging.getLogger(__name__)


class ACGOperator:
    """
    Superclass of proposal operators on a :class:`.ConversionGraph`.

    :param graph: The graph that proposals modify.
    :param numpy.random.Generator rng: The random generator to draw from.
    :param int random_seed: The seed for a new random generator, if
        ``rng`` is not specified.
    """

    def __init__(self, graph, *, rng=None, random_seed=None):
        self.graph = graph
        self.rng = core.get_rng(rng=rng, random_seed=random_seed)

    def proposal(self) -> float:
        raise NotImplementedError()

    def choose_conversion(self) -> conversions.Conversion:
        """
        Returns a conversion chosen uniformly from the whole graph.
        """
        j = self.rng.integers(self.graph.get_total_conv_count())
        for locus in self.graph.convertible_loci:
            count = self.graph.get_conv_count(locus)
            if j < count:
                return self.graph.get_conversions(locus)[j]
            j -= count
        raise RuntimeError("Conversion choice fell through")

    def _check_graph(self, name):
        assert not self.graph.is_invalid(), f"{name} produced an invalid graph"


# Merge and split. The log densities below are those of the two moves
# excluding the choice of locus, which is the same in both directions.


def move_choice_log_prob(total_count, max_conversions, split):
    """
    Returns the log probability that :class:`MergeSplitConversion` attempts
    a split (or a merge) in a graph with the specified number of conversions.
    """
    if max_conversions is None or total_count < max_conversions:
        return math.log(0.5)
    return -math.inf if split else 0.0


def cut_points_log_prob(site_count, start_offsets, end_offsets):
    """
    Returns the log probability that splitting a conversion with the
    specified number of sites yields pieces whose starts and ends lie at
    the specified offsets from the original start site, in the order
    (surviving piece, new piece).

    One piece keeps the original start and the other starts at a uniformly
    chosen offset; likewise for the ends. A cut at offset 0 (or at the last
    offset, for ends) can arise from either assignment.
    """
    n = site_count
    starts = sum(1 for o in start_offsets if o == 0)
    ends = sum(1 for o in end_offsets if o == n - 1)
    if starts == 0 or ends == 0:
        return -math.inf
    return math.log(0.5 * starts / n) + math.log(0.5 * ends / n)


def new_edge_log_density(clonal_frame, conv, reference_height2):
    """
    Returns the log density of the heights of a conversion created by a
    split. The departure height is uniform on the branch above ``node1``.
    The arrival height is uniform on the branch above ``node2``, or, above
    the root, exponentially distributed with mean equal to the distance
    from the root to ``reference_height2``.
    """
    frame = clonal_frame
    if frame.branch_length(conv.node1) <= 0:
        return -math.inf
    log_p = -math.log(frame.branch_length(conv.node1))
    if frame.is_root(conv.node2):
        root_height = frame.height(conv.node2)
        if reference_height2 <= root_height:
            return -math.inf
        lam = 1 / (reference_height2 - root_height)
        log_p += math.log(lam) - lam * (conv.height2 - root_height)
    elif frame.branch_length(conv.node2) <= 0:
        return -math.inf
    else:
        log_p -= math.log(frame.branch_length(conv.node2))
    return log_p


def split_proposal_log_density(locus_conv_count, cut_log_prob, edge_log_density):
    """
    Returns the log density of splitting one of ``locus_conv_count``
    conversions with the specified cut point and new edge densities.
    """
    return -math.log(locus_conv_count) + cut_log_prob + edge_log_density


def merge_proposal_log_density(locus_conv_count):
    """
    Returns the log probability of choosing an ordered pair of distinct
    conversions from ``locus_conv_count`` conversions.
    """
    return -math.log(locus_conv_count * (locus_conv_count - 1))


def envelope(locus, pieces: List[Tuple[int, int]]) -> Union[Tuple[int, int], None]:
    """
    Returns the smallest interval that starts at the start of one of the
    specified pieces, ends at the end of one and contains them all.
    Returns None if there is no such interval.
    """
    if not locus.circular:
        return min(s for s, _ in pieces), max(e for _, e in pieces)
    L = locus.site_count
    best = None
    for start in {s for s, _ in pieces}:
        for end in {e for _, e in pieces}:
            n = locus.interval_length(start, end)
            contained = all(
                (s - start) % L <= (e - start) % L <= n - 1 for s, e in pieces
            )
            if contained:
                key = (n, start, end)
                if best is None or key < best:
                    best = key
    return None if best is None else best[1:]


class MergeSplitConversion(ACGOperator):
    """
    Merges two conversions sharing the same departure and arrival branches,
    or splits one conversion into two.

    :param int max_conversions: If specified, splits are not proposed once
        the graph holds this many conversions.
    """

    def __init__(self, graph, *, max_conversions=None, rng=None, random_seed=None):
        super().__init__(graph, rng=rng, random_seed=random_seed)
        if max_conversions is not None and max_conversions < 1:
            raise ValueError("max_conversions must be >= 1")
        self.max_conversions = max_conversions

    def proposal(self):
        if self.graph.whole_locus_mode:
            return -math.inf
        locus = self.choose_locus()
        total = self.graph.get_total_conv_count()
        can_split = self.max_conversions is None or total < self.max_conversions
        if can_split and self.rng.random() < 0.5:
            return self.split(locus)
        return self.merge(locus)

    def choose_locus(self):
        """
        Returns a convertible locus chosen with probability proportional to
        its site count.
        """
        z = self.rng.integers(self.graph.total_convertible_sequence_length)
        for locus in self.graph.convertible_loci:
            if z < locus.site_count:
                return locus
            z -= locus.site_count
        raise RuntimeError("Locus choice fell through")

    def split(self, locus):
        count = self.graph.get_conv_count(locus)
        if count == 0:
            return -math.inf
        conv = self.graph.get_conversions(locus)[self.rng.integers(count)]
        return self.split_conversion(conv)

    def merge(self, locus):
        count = self.graph.get_conv_count(locus)
        if count < 2:
            return -math.inf
        convs = self.graph.get_conversions(locus)
        i = self.rng.integers(count)
        j = self.rng.integers(count - 1)
        if j >= i:
            j += 1
        return self.merge_pair(convs[i], convs[j])

    def split_conversion(self, conv1):
        """
        Splits the specified conversion, returning the log Hastings ratio.
        """
        graph = self.graph
        frame = graph.clonal_frame
        locus = conv1.locus
        L = locus.site_count
        n = conv1.site_count
        start = conv1.start_site
        m1 = int(self.rng.integers(n))
        m2 = int(self.rng.integers(n))
        if self.rng.random() < 0.5:
            start_offsets = (0, m1)
        else:
            start_offsets = (m1, 0)
        if self.rng.random() < 0.5:
            end_offsets = (n - 1, m2)
        else:
            end_offsets = (m2, n - 1)
        if end_offsets[0] < start_offsets[0] or end_offsets[1] < start_offsets[1]:
            return -math.inf
        pieces = [
            ((start + s) % L, (start + e) % L) for s, e in zip(start_offsets, end_offsets)
        ]
        if envelope(locus, pieces) != (conv1.start_site, conv1.end_site):
            return -math.inf

        node1 = conv1.node1
        node2 = conv1.node2
        height1 = frame.height(node1) + self.rng.random() * frame.branch_length(node1)
        if frame.is_root(node2):
            root_height = frame.height(node2)
            if conv1.height2 <= root_height:
                return -math.inf
            height2 = root_height + self.rng.exponential(conv1.height2 - root_height)
        else:
            height2 = frame.height(node2) + self.rng.random() * frame.branch_length(node2)
        conv2 = conversions.Conversion(
            locus, pieces[1][0], pieces[1][1], node1, height1, node2, height2
        )
        if not conv2.is_valid(frame):
            return -math.inf

        total = graph.get_total_conv_count()
        count = graph.get_conv_count(locus)
        forward = move_choice_log_prob(
            total, self.max_conversions, split=True
        ) + split_proposal_log_density(
            count,
            cut_points_log_prob(n, start_offsets, end_offsets),
            new_edge_log_density(frame, conv2, conv1.height2),
        )
        reverse = move_choice_log_prob(
            total + 1, self.max_conversions, split=False
        ) + merge_proposal_log_density(count + 1)
        if math.isinf(forward):
            return -math.inf

        conv1.set_sites(*pieces[0])
        graph.add_conversion(conv2)
        self._check_graph("Split")
        return reverse - forward

    def merge_pair(self, conv1, conv2):
        """
        Merges ``conv2`` into ``conv1``, returning the log Hastings ratio.
        The two conversions must be distinct and on the same locus.
        """
        graph = self.graph
        frame = graph.clonal_frame
        locus = conv1.locus
        assert conv1 is not conv2 and conv2.locus == locus
        if conv1.node1 != conv2.node1 or conv1.node2 != conv2.node2:
            return -math.inf
        span = envelope(
            locus,
            [(conv1.start_site, conv1.end_site), (conv2.start_site, conv2.end_site)],
        )
        if span is None:
            return -math.inf
        if frame.is_root(conv1.node2) and conv1.height2 <= frame.height(conv1.node2):
            return -math.inf
        L = locus.site_count
        start = span[0]
        n = locus.interval_length(*span)
        start_offsets = ((conv1.start_site - start) % L, (conv2.start_site - start) % L)
        end_offsets = ((conv1.end_site - start) % L, (conv2.end_site - start) % L)

        total = graph.get_total_conv_count()
        count = graph.get_conv_count(locus)
        forward = move_choice_log_prob(
            total, self.max_conversions, split=False
        ) + merge_proposal_log_density(count)
        reverse = move_choice_log_prob(
            total - 1, self.max_conversions, split=True
        ) + split_proposal_log_density(
            count - 1,
            cut_points_log_prob(n, start_offsets, end_offsets),
            new_edge_log_density(frame, conv2, conv1.height2),
        )
        if math.isinf(reverse):
            return -math.inf

        graph.delete_conversion(conv2)
        conv1.set_sites(*span)
        self._check_graph("Merge")
        return reverse - forward


class ConvertedRegionShift(ACGOperator):
    """
    Shifts the interval of sites affected by a randomly chosen conversion
    by an offset drawn uniformly from ``[-radius, radius]``, where the
    radius is half of ``aperture_size`` times the site count of its locus.

    :param float aperture_size: The size of the window of possible offsets
        relative to the locus length.
    """

    def __init__(self, graph, *, aperture_size=0.01, rng=None, random_seed=None):
        super().__init__(graph, rng=rng, random_seed=random_seed)
        if not 0 <= aperture_size <= 1:
            raise ValueError("aperture_size must be between 0 and 1")
        self.aperture_size = aperture_size

    def radius(self, locus) -> int:
        return int(math.floor(locus.site_count * self.aperture_size / 2 + 0.5))

    def proposal(self):
        if self.graph.get_total_conv_count() < 1 or self.graph.whole_locus_mode:
            return -math.inf
        conv = self.choose_conversion()
        radius = self.radius(conv.locus)
        offset = int(self.rng.integers(-radius, radius + 1))
        return self.shift(conv, offset)

    def shift(self, conv, offset):
        """
        Shifts the specified conversion by the specified number of sites,
        returning the log Hastings ratio. Shifts beyond either end of a
        linear locus are rejected; shifts on circular loci wrap around.
        """
        L = conv.locus.site_count
        start = conv.start_site + offset
        end = conv.end_site + offset
        if conv.locus.circular:
            start %= L
            end %= L
        elif start < 0 or end > L - 1:
            return -math.inf
        conv.set_sites(start, end)
        self._check_graph("Shift")
        return 0.0


class ConversionCreationOperator(ACGOperator):
    """
    Superclass of operators that create conversions, providing the choice
    of the converted interval and its log probability.

    :param float delta: The mean tract length.
    :param circular_tract_model: The tract length distribution on circular
        loci. See :class:`.CircularTractModel`.
    """

    def __init__(
        self, graph, delta, *, circular_tract_model=None, rng=None, random_seed=None
    ):
        super().__init__(graph, rng=rng, random_seed=random_seed)
        self.tract_placement = tracts.TractPlacement(
            graph.convertible_loci,
            delta,
            whole_locus_mode=graph.whole_locus_mode,
            circular_tract_model=circular_tract_model,
        )

    def choose_locus(self):
        return self.tract_placement.choose_locus(self.rng)

    def draw_affected_region(self, conv) -> float:
        """
        Sets the locus and sites of the specified conversion, which must not
        belong to a graph, returning the log probability of the choice.
        """
        locus, start, end, log_p = self.tract_placement.draw(self.rng)
        conv.locus = locus
        conv.set_sites(start, end)
        return log_p

    def get_affected_region_log_prob(self, conv) -> float:
        """
        Returns the log probability of :meth:`draw_affected_region` choosing
        the locus and sites of the specified conversion.
        """
        return self.tract_placement.log_prob(conv.locus, conv.start_site, conv.end_site)


class AddRemoveConversion(ConversionCreationOperator):
    """
    Adds a new conversion drawn from the neutral conversion model, or
    removes a randomly chosen conversion, with equal probability.

    :param PopulationFunction population_function: The population size
        trajectory used to attach new conversions. Defaults to a constant
        population of size 1.
    """

    def __init__(
        self,
        graph,
        delta,
        *,
        population_function=None,
        circular_tract_model=None,
        rng=None,
        random_seed=None,
    ):
        super().__init__(
            graph,
            delta,
            circular_tract_model=circular_tract_model,
            rng=rng,
            random_seed=random_seed,
        )
        if population_function is None:
            population_function = demography.ConstantPopulation()
        self.population_function = population_function

    def proposal(self):
        if self.rng.random() < 0.5:
            return self.add()
        return self.remove()

    def _log_density(self, conv):
        return self.get_affected_region_log_prob(
            conv
        ) + simulations.conversion_edge_log_density(
            self.graph, conv, self.population_function
        )

    def add(self):
        conv = conversions.Conversion(self.graph.convertible_loci[0])
        self.draw_affected_region(conv)
        simulations.associate_conversion_with_clonal_frame(
            self.graph, conv, self.population_function, self.rng
        )
        log_hr = -math.log(self.graph.get_total_conv_count() + 1) - self._log_density(conv)
        self.graph.add_conversion(conv)
        self._check_graph("Add")
        return log_hr

    def remove(self):
        total = self.graph.get_total_conv_count()
        if total == 0:
            return -math.inf
        conv = self.choose_conversion()
        log_hr = self._log_density(conv) + math.log(total)
        self.graph.delete_conversion(conv)
        self._check_graph("Remove")
        return log_hr

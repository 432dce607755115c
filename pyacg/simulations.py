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
Simulation of ancestral conversion graphs under the coalescent with
gene conversion.
"""
from __future__ import annotations

import collections
import logging
import math

import numpy as np

from pyacg import clonal_frame as cf
from pyacg import conversions
from pyacg import core
from pyacg import demography
from pyacg import graph as graph_module
from pyacg import tracts

logger = logging.getLogger(__name__)


def simulate_clonal_frame(leaf_heights, population_function, rng, labels=None):
    """
    Simulates a clonal frame under the heterochronous coalescent. Leaves
    become active lineages when the simulation reaches their heights, and
    each pair of active lineages coalesces at rate ``1 / N(t)``.

    Leaf ``j`` of the returned clonal frame corresponds to
    ``leaf_heights[j]``. Internal nodes are numbered in the order in which
    they are created, so that the root is the last node.
    """
    leaf_heights = np.array(leaf_heights, dtype=np.float64)
    n = leaf_heights.shape[0]
    if n < 2:
        raise ValueError("Must have at least two leaves")
    if np.any(leaf_heights < 0):
        raise ValueError("Leaf heights must be non-negative")

    parent = np.full(2 * n - 1, cf.NULL, dtype=np.int32)
    height = np.zeros(2 * n - 1)
    height[:n] = leaf_heights
    pending = collections.deque(sorted(range(n), key=lambda j: (leaf_heights[j], j)))
    active = []
    next_node = n
    tau = 0.0
    while len(pending) > 0 or len(active) > 1:
        k = len(active)
        if k >= 2:
            tau += rng.exponential(1 / (k * (k - 1) / 2))
            t = population_function.inverse_intensity(tau)
        else:
            t = math.inf
        if len(pending) > 0 and t > leaf_heights[pending[0]]:
            leaf = pending.popleft()
            active.append(leaf)
            tau = population_function.intensity(leaf_heights[leaf])
            continue
        if math.isinf(t):
            raise ValueError(
                f"The population function never coalesces the remaining {k} lineages"
            )
        i, j = rng.choice(k, size=2, replace=False)
        a = active[i]
        b = active[j]
        active = [u for u in active if u != a and u != b]
        parent[a] = next_node
        parent[b] = next_node
        height[next_node] = t
        active.append(next_node)
        next_node += 1
    assert next_node == 2 * n - 1
    return cf.ClonalFrame(parent, height, labels)


def _departure_areas(events):
    intervals = np.array(
        [events[j + 1].height - events[j].height for j in range(len(events) - 1)]
    )
    counts = np.array([events[j].lineage_count for j in range(len(events) - 1)])
    return intervals, np.cumsum(intervals * counts)


def associate_conversion_with_clonal_frame(graph, conv, population_function, rng):
    """
    Attaches the specified conversion to the clonal frame of the graph.
    The departure point is uniform over the branches of the clonal frame.
    Looking back in time from there, the conversion arrives on each
    extant lineage at rate ``1 / N(t)``, so that the arrival point is
    found by walking up through the clonal frame events until an
    exponential amount of coalescent intensity has accumulated.
    """
    frame = graph.clonal_frame
    events = graph.get_cf_events()

    intervals, cumulative = _departure_areas(events)
    u = rng.uniform(0, cumulative[-1])
    index = int(np.searchsorted(cumulative, u, side="right"))
    index = min(index, len(intervals) - 1)
    u -= cumulative[index - 1] if index > 0 else 0.0
    event = events[index]
    lineages = frame.lineages_at(event.height)
    assert len(lineages) == event.lineage_count
    j = min(int(u // intervals[index]), len(lineages) - 1)
    conv.node1 = lineages[j]
    conv.height1 = event.height + u - j * intervals[index]

    budget = rng.exponential(1)
    for index in range(index, len(events)):
        event = events[index]
        t = max(event.height, conv.height1)
        if index + 1 < len(events):
            upper = events[index + 1].height
        else:
            upper = math.inf
        k = event.lineage_count
        area = population_function.integral(t, upper)
        if budget < area * k:
            tau = population_function.intensity(t) + budget / k
            height2 = min(population_function.inverse_intensity(tau), upper)
            if math.isinf(height2):
                break
            conv.height2 = height2
            lineages = frame.lineages_at(event.height)
            conv.node2 = lineages[rng.integers(len(lineages))]
            return
        budget -= area * k
    # Only a shrinking population can leave the budget unspent above the root.
    raise ValueError(
        "The population function never completes the conversion arrival"
    )


def conversion_edge_log_density(graph, conv, population_function):
    """
    Returns the log probability density of the attachment points of the
    specified conversion under :func:`associate_conversion_with_clonal_frame`.
    """
    events = graph.get_cf_events()
    log_p = -math.log(graph.get_clonal_frame_length())
    for j, event in enumerate(events):
        upper = events[j + 1].height if j + 1 < len(events) else math.inf
        if upper <= conv.height1:
            continue
        if event.height >= conv.height2:
            break
        t0 = max(event.height, conv.height1)
        t1 = min(upper, conv.height2)
        log_p -= event.lineage_count * population_function.integral(t0, t1)
    log_p += math.log(1 / population_function.population_size(conv.height2))
    return log_p


class Simulator:
    """
    Simulates the conversions of an ancestral conversion graph over a
    fixed clonal frame.
    """

    def __init__(
        self,
        *,
        graph,
        rho,
        tract_placement,
        population_function,
        rng,
    ):
        self.graph = graph
        self.rho = rho
        self.tract_placement = tract_placement
        self.population_function = population_function
        self.rng = rng

    def conversion_rate(self):
        """
        Returns the expected total number of conversions.
        """
        return (
            self.rho
            * self.graph.get_clonal_frame_length()
            * self.tract_placement.total_effective_length
        )

    def run(self):
        num_conversions = self.rng.poisson(self.conversion_rate())
        logger.debug(
            "Simulating %d conversions on %d loci",
            num_conversions,
            len(self.tract_placement.loci),
        )
        for _ in range(num_conversions):
            locus, start, end, _ = self.tract_placement.draw(self.rng)
            conv = conversions.Conversion(locus, start, end)
            associate_conversion_with_clonal_frame(
                self.graph, conv, self.population_function, self.rng
            )
            self.graph.add_conversion(conv)
        return self.graph


def _parse_population_function(population_size, population_function):
    if population_size is not None and population_function is not None:
        raise ValueError("Cannot specify both population_size and population_function")
    if population_function is not None:
        if not isinstance(population_function, demography.PopulationFunction):
            raise TypeError("population_function must be a PopulationFunction instance")
        return population_function
    if population_size is None:
        population_size = 1
    return demography.ConstantPopulation(population_size)


def _parse_leaves(num_leaves, leaf_heights):
    if num_leaves is None and leaf_heights is None:
        raise ValueError("Must specify either num_leaves or leaf_heights")
    if leaf_heights is None:
        if not core.isinteger(num_leaves):
            raise TypeError("num_leaves must be an integer")
        leaf_heights = np.zeros(int(num_leaves))
    leaf_heights = np.array(leaf_heights, dtype=np.float64)
    if num_leaves is not None and num_leaves != leaf_heights.shape[0]:
        raise ValueError("num_leaves must equal the number of leaf heights")
    if leaf_heights.shape[0] < 2:
        raise ValueError("Must have at least two leaves")
    return leaf_heights


def sim_arg(
    num_leaves=None,
    *,
    loci,
    rho,
    delta,
    population_size=None,
    population_function=None,
    leaf_heights=None,
    leaf_labels=None,
    clonal_frame=None,
    whole_locus_mode=None,
    circular_tract_model=None,
    random_seed=None,
    rng=None,
):
    """
    Simulates an ancestral conversion graph.

    The clonal frame is simulated under the coalescent, unless one is
    provided. The number of conversions is then Poisson distributed with
    mean ``rho * F * A``, where ``F`` is the total branch length of the
    clonal frame and ``A`` is the effective convertible sequence length
    (see :class:`.TractPlacement`). Each conversion is placed on a locus
    and attached to the clonal frame independently.

    :param int num_leaves: The number of leaves, all sampled at height 0.
    :param list loci: The loci of the graph.
    :param float rho: The conversion rate per site per unit of time.
    :param float delta: The mean tract length.
    :param float population_size: The constant population size. Defaults to 1.
    :param PopulationFunction population_function: A population size
        trajectory, as an alternative to ``population_size``.
    :param list leaf_heights: The sampling heights of the leaves.
    :param list leaf_labels: The labels of the leaves.
    :param ClonalFrame clonal_frame: A fixed clonal frame to add
        conversions to. The frame is used directly, not copied.
    :param bool whole_locus_mode: If True, each conversion covers a whole
        locus.
    :param circular_tract_model: The tract length distribution for circular
        loci. See :class:`.CircularTractModel`.
    :param int random_seed: The random seed. If None, a seed is chosen
        automatically.
    :param numpy.random.Generator rng: A random generator to draw from,
        instead of one seeded by ``random_seed``.
    :return: The simulated graph.
    :rtype: ConversionGraph
    """
    rng = core.get_rng(rng=rng, random_seed=random_seed)
    population_function = _parse_population_function(population_size, population_function)
    if rho < 0:
        raise ValueError("Conversion rate rho must be >= 0")
    whole_locus_mode = core._parse_flag(whole_locus_mode, default=False)

    if clonal_frame is None:
        leaf_heights = _parse_leaves(num_leaves, leaf_heights)
        clonal_frame = simulate_clonal_frame(
            leaf_heights, population_function, rng, labels=leaf_labels
        )
        logger.debug("Simulated clonal frame with %d leaves", clonal_frame.num_leaves)
    elif num_leaves is not None or leaf_heights is not None or leaf_labels is not None:
        raise ValueError("Cannot specify leaves when a clonal frame is provided")

    graph = graph_module.ConversionGraph(
        clonal_frame, loci, whole_locus_mode=whole_locus_mode
    )
    if len(graph.convertible_loci) == 0:
        if rho > 0:
            raise ValueError("Cannot simulate conversions without a convertible locus")
        return graph
    placement = tracts.TractPlacement(
        graph.convertible_loci,
        delta,
        whole_locus_mode=whole_locus_mode,
        circular_tract_model=circular_tract_model,
    )
    sim = Simulator(
        graph=graph,
        rho=rho,
        tract_placement=placement,
        population_function=population_function,
        rng=rng,
    )
    return sim.run()

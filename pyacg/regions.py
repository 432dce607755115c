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
Partitioning of loci into regions sharing a marginal tree, and the
computation of the number of sites each conversion actually affects.
"""
from __future__ import annotations

import collections
import dataclasses
import heapq
import logging
from typing import Dict
from typing import FrozenSet
from typing import List

import numpy as np

from pyacg import core

logger = logging.getLogger(__name__)


@dataclasses.dataclass(frozen=True)
class Region:
    """
    A maximal interval of sites over which the same set of conversions
    is active, so that all of its sites share a marginal tree.

    The region covers the half-open interval ``[left, right)``. On a
    circular locus a region with ``left > right`` wraps around, covering
    ``[left, site_count)`` and ``[0, right)``.
    """

    left: int
    right: int
    active_conversions: FrozenSet = frozenset()
    site_count: int = dataclasses.field(default=0, compare=False, repr=False)

    @property
    def is_wrapped(self) -> bool:
        return self.left > self.right

    @property
    def length(self) -> int:
        if self.is_wrapped:
            return self.site_count - self.left + self.right
        return self.right - self.left

    def is_clonal_frame(self) -> bool:
        """
        Returns True if no conversion is active over this region, so that
        its marginal tree is the clonal frame.
        """
        return len(self.active_conversions) == 0

    def contains(self, site: int) -> bool:
        if self.is_wrapped:
            return site >= self.left or site < self.right
        return self.left <= site < self.right

    def sites(self) -> List[int]:
        if self.is_wrapped:
            return list(range(self.left, self.site_count)) + list(range(self.right))
        return list(range(self.left, self.right))


def compute_regions(locus, conversions) -> List[Region]:
    """
    Returns the regions of the specified locus for the specified list of
    conversions, ordered by left boundary. On circular loci a region that
    spans site 0 is placed last.
    """
    L = locus.site_count
    if len(conversions) == 0:
        return [Region(0, L, frozenset(), L)]

    starts = collections.defaultdict(list)
    ends = collections.defaultdict(list)
    for conv in conversions:
        for left, right in conv.intervals():
            starts[left].append(conv)
            ends[right].append(conv)
    boundaries = sorted(set(starts) | set(ends) | {0, L})

    regions = []
    active = set()
    for left, right in zip(boundaries[:-1], boundaries[1:]):
        for conv in ends.get(left, []):
            active.discard(conv)
        active.update(starts.get(left, []))
        current = frozenset(active)
        if len(regions) > 0 and regions[-1].active_conversions == current:
            regions[-1] = Region(regions[-1].left, right, current, L)
        else:
            regions.append(Region(left, right, current, L))

    if locus.circular and len(regions) > 1:
        first = regions[0]
        last = regions[-1]
        if first.active_conversions == last.active_conversions:
            joined = Region(last.left, first.right, first.active_conversions, L)
            regions = regions[1:-1] + [joined]
    return regions


class RegionList:
    """
    The lazily computed regions of one locus of a conversion graph.
    """

    def __init__(self, graph, locus):
        self._graph = graph
        self.locus = locus
        self._regions = core.Cached(self._compute)

    def _compute(self):
        return compute_regions(self.locus, self._graph.get_conversions(self.locus))

    def mark_dirty(self):
        self._regions.mark_dirty()

    @property
    def dirty(self) -> bool:
        return self._regions.dirty

    def get_regions(self) -> List[Region]:
        return self._regions.get()

    def get_region_count(self) -> int:
        return len(self._regions.get())


# Priorities for events occurring at the same height.
_DEPARTURE = 0
_ARRIVAL = 1
_COALESCENCE = 2


def compute_affected_sites(graph) -> Dict:
    """
    Returns a dictionary mapping each conversion in the graph to the
    boolean mask of sites in its interval that are ancestral to the
    sampled sequences.

    The clonal frame is swept from the leaves upwards, tracking the
    ancestral material carried by each lineage for each locus. A
    conversion takes the material in its interval from its departure
    lineage, and delivers it to the arrival lineage.
    """
    frame = graph.clonal_frame
    convertible = graph.convertible_loci
    material = {
        locus: np.zeros((frame.num_nodes, locus.site_count), dtype=bool)
        for locus in convertible
    }
    for locus in convertible:
        material[locus][: frame.num_leaves] = True

    heap = []
    for u in range(frame.num_leaves, frame.num_nodes):
        heap.append((frame.height(u), _COALESCENCE, u, None))
    serial = frame.num_nodes
    for locus in convertible:
        for conv in graph.get_conversions(locus):
            heap.append((conv.height1, _DEPARTURE, serial, conv))
            heap.append((conv.height2, _ARRIVAL, serial, conv))
            serial += 1
    heapq.heapify(heap)

    carried = {}
    while len(heap) > 0:
        _, kind, u, conv = heapq.heappop(heap)
        if kind == _COALESCENCE:
            children = frame.children(u)
            for locus in convertible:
                m = material[locus]
                m[u] |= m[children[0]] | m[children[1]]
        elif kind == _DEPARTURE:
            m = material[conv.locus]
            span = conv.site_mask()
            carried[conv] = m[conv.node1] & span
            m[conv.node1] &= ~span
        else:
            m = material[conv.locus]
            if conv not in carried:
                raise ValueError("Conversion arrives before it departs")
            m[conv.node2] |= carried[conv]
    return carried


class AffectedSiteList:
    """
    The lazily computed affected sites of every conversion in a graph. A
    site in a conversion's interval is affected if it is ancestral to the
    sample along the departure lineage at the time of the conversion, that
    is if no more recent conversion on that lineage has already taken it.
    """

    def __init__(self, graph):
        self._graph = graph
        self._masks = core.Cached(lambda: compute_affected_sites(self._graph))

    def mark_dirty(self):
        self._masks.mark_dirty()

    def get_affected_sites(self, conv) -> np.ndarray:
        return self._masks.get()[conv]

    def get_affected_site_count(self, conv) -> int:
        return int(np.sum(self._masks.get()[conv]))

    def get_affected_site_fraction(self, conv) -> float:
        return self.get_affected_site_count(conv) / conv.site_count

    def get_useless_conv_count(self) -> int:
        return sum(1 for mask in self._masks.get().values() if not np.any(mask))

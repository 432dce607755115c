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
Conversion edges of an ancestral conversion graph.
"""
from __future__ import annotations

from typing import List
from typing import Tuple
from typing import Union

import numpy as np

from pyacg import exceptions
from pyacg import loci


class Conversion:
    """
    A single conversion event. The ancestral material for the inclusive
    interval of sites from ``start_site`` to ``end_site`` of ``locus`` is
    copied from the lineage above clonal frame node ``node2`` at height
    ``height2`` into the lineage above ``node1`` at height ``height1``.
    Looking backwards in time the conversion departs the clonal frame at
    the lower point and arrives at the higher one.

    On a circular locus ``start_site > end_site`` denotes an interval that
    wraps past the last site back to site 0.

    Conversions compare by identity. Once a conversion has been added to a
    :class:`.ConversionGraph`, changing any of its attributes notifies the
    graph so that its derived structures are recomputed.
    """

    def __init__(
        self,
        locus: loci.Locus,
        start_site: int = 0,
        end_site: int = 0,
        node1: int = -1,
        height1: float = 0.0,
        node2: int = -1,
        height2: float = 0.0,
        *,
        metadata_bottom: Union[str, None] = None,
        metadata_middle: Union[str, None] = None,
        metadata_top: Union[str, None] = None,
    ):
        self._graph = None
        self._locus = locus
        self._start_site = int(start_site)
        self._end_site = int(end_site)
        self._node1 = int(node1)
        self._height1 = float(height1)
        self._node2 = int(node2)
        self._height2 = float(height2)
        self.metadata_bottom = metadata_bottom
        self.metadata_middle = metadata_middle
        self.metadata_top = metadata_top

    def _changed(self):
        if self._graph is not None:
            self._graph.start_editing()

    @property
    def locus(self) -> loci.Locus:
        return self._locus

    @locus.setter
    def locus(self, value: loci.Locus):
        if self._graph is not None:
            raise exceptions.ConversionGraphError(
                "Cannot change the locus of a conversion that belongs to a graph"
            )
        self._locus = value

    @property
    def start_site(self) -> int:
        return self._start_site

    @start_site.setter
    def start_site(self, value: int):
        self._start_site = int(value)
        if self._graph is not None:
            self._graph._resort(self)

    @property
    def end_site(self) -> int:
        return self._end_site

    @end_site.setter
    def end_site(self, value: int):
        self._end_site = int(value)
        self._changed()

    def set_sites(self, start_site: int, end_site: int):
        """
        Sets both ends of the converted interval.
        """
        self._end_site = int(end_site)
        self.start_site = start_site

    @property
    def node1(self) -> int:
        return self._node1

    @node1.setter
    def node1(self, value: int):
        self._node1 = int(value)
        self._changed()

    @property
    def height1(self) -> float:
        return self._height1

    @height1.setter
    def height1(self, value: float):
        self._height1 = float(value)
        self._changed()

    @property
    def node2(self) -> int:
        return self._node2

    @node2.setter
    def node2(self, value: int):
        self._node2 = int(value)
        self._changed()

    @property
    def height2(self) -> float:
        return self._height2

    @height2.setter
    def height2(self, value: float):
        self._height2 = float(value)
        self._changed()

    @property
    def is_wrapped(self) -> bool:
        return self._start_site > self._end_site

    @property
    def site_count(self) -> int:
        """
        The number of sites in the converted interval.
        """
        return self._locus.interval_length(self._start_site, self._end_site)

    def intervals(self) -> List[Tuple[int, int]]:
        """
        Returns the converted sites as a list of half-open ``[left, right)``
        intervals: one interval, or two when the conversion wraps.
        """
        if self.is_wrapped:
            return [(0, self._end_site + 1), (self._start_site, self._locus.site_count)]
        return [(self._start_site, self._end_site + 1)]

    def covers(self, site: int) -> bool:
        if self.is_wrapped:
            return site >= self._start_site or site <= self._end_site
        return self._start_site <= site <= self._end_site

    def site_mask(self) -> np.ndarray:
        """
        Returns a boolean array over the sites of the locus that is True
        exactly for the converted sites.
        """
        mask = np.zeros(self._locus.site_count, dtype=bool)
        for left, right in self.intervals():
            mask[left:right] = True
        return mask

    def is_valid(self, clonal_frame) -> bool:
        """
        Returns True if this conversion is consistent with the specified
        clonal frame and its locus.
        """
        L = self._locus.site_count
        if not (0 <= self._start_site < L and 0 <= self._end_site < L):
            return False
        if not self._locus.circular and self._start_site > self._end_site:
            return False
        n = clonal_frame.num_nodes
        if not (0 <= self._node1 < n and 0 <= self._node2 < n):
            return False
        if self._height1 > self._height2:
            return False
        if clonal_frame.is_root(self._node1):
            return False
        if not (
            clonal_frame.height(self._node1)
            < self._height1
            < clonal_frame.height(clonal_frame.parent(self._node1))
        ):
            return False
        if self._height2 < clonal_frame.height(self._node2):
            return False
        if not clonal_frame.is_root(self._node2):
            if self._height2 > clonal_frame.height(clonal_frame.parent(self._node2)):
                return False
        return True

    def copy(self) -> Conversion:
        """
        Returns a copy of this conversion that does not belong to any graph.
        """
        return Conversion(
            self._locus,
            self._start_site,
            self._end_site,
            self._node1,
            self._height1,
            self._node2,
            self._height2,
            metadata_bottom=self.metadata_bottom,
            metadata_middle=self.metadata_middle,
            metadata_top=self.metadata_top,
        )

    def state(self):
        """
        Returns a tuple summarising this conversion, for comparing
        conversions by value.
        """
        return (
            self._locus.id,
            self._start_site,
            self._end_site,
            self._node1,
            self._height1,
            self._node2,
            self._height2,
        )

    def __repr__(self):
        return (
            f"Conversion(locus={self._locus.id!r}, sites=[{self._start_site}, "
            f"{self._end_site}], node1={self._node1}, height1={self._height1}, "
            f"node2={self._node2}, height2={self._height2})"
        )

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
The ancestral conversion graph: a clonal frame plus conversion edges.
"""
from __future__ import annotations

import bisect
import logging
from typing import Dict
from typing import Iterator
from typing import List
from typing import Sequence
from typing import Tuple

from pyacg import clonal_frame as cf
from pyacg import conversions
from pyacg import core
from pyacg import events
from pyacg import exceptions
from pyacg import loci
from pyacg import regions

logger = logging.getLogger(__name__)


class ConversionGraph:
    """
    An ancestral conversion graph over a fixed set of loci.

    The graph owns the clonal frame and, for each convertible locus, the
    list of conversions on that locus sorted by start site. The region
    lists, the clonal frame event list and the affected sites are derived
    from these and recomputed lazily after any change to the conversions
    or the clonal frame.

    :param clonal_frame: The clonal frame.
    :type clonal_frame: ClonalFrame
    :param loci_list: The loci of the graph. Loci are kept sorted by id.
    :type loci: list(Locus)
    :param bool whole_locus_mode: If True, conversions are restricted to
        cover whole loci.
    """

    def __init__(
        self,
        clonal_frame: cf.ClonalFrame,
        loci_list: Sequence[loci.Locus],
        *,
        whole_locus_mode=None,
    ):
        if len(loci_list) == 0:
            raise ValueError("Must specify at least one locus")
        for locus in loci_list:
            if not isinstance(locus, loci.Locus):
                raise TypeError("loci must be a list of Locus instances")
        ids = [locus.id for locus in loci_list]
        if len(set(ids)) != len(ids):
            raise ValueError("Locus ids must be unique")
        self._loci = sorted(loci_list, key=lambda locus: locus.id)
        self._loci_by_id = {locus.id: locus for locus in self._loci}
        self.whole_locus_mode = core._parse_flag(whole_locus_mode, default=False)
        self._conversions: Dict[str, List[conversions.Conversion]] = {
            locus.id: [] for locus in self._loci if locus.convertible
        }
        self._region_lists = {
            locus.id: regions.RegionList(self, locus) for locus in self._loci
        }
        self._cf_events = events.CFEventList(self)
        self._affected_sites = regions.AffectedSiteList(self)
        self._clonal_frame = clonal_frame
        self._clonal_frame.add_edit_listener(self.start_editing)
        self._stored = None

    # Loci

    @property
    def loci(self) -> List[loci.Locus]:
        return list(self._loci)

    @property
    def convertible_loci(self) -> List[loci.Locus]:
        return [locus for locus in self._loci if locus.convertible]

    @property
    def total_convertible_sequence_length(self) -> int:
        return sum(locus.site_count for locus in self.convertible_loci)

    def get_locus_by_id(self, locus_id: str) -> loci.Locus:
        try:
            return self._loci_by_id[locus_id]
        except KeyError:
            raise KeyError(f"Locus with id '{locus_id}' not found")

    def _check_locus(self, locus):
        if self._loci_by_id.get(locus.id) != locus:
            raise exceptions.ConversionGraphError(f"Locus '{locus.id}' not in graph")
        if not locus.convertible:
            raise exceptions.ConversionGraphError(
                f"Locus '{locus.id}' does not allow conversions"
            )

    # Clonal frame

    @property
    def clonal_frame(self) -> cf.ClonalFrame:
        return self._clonal_frame

    def set_clonal_frame(self, clonal_frame: cf.ClonalFrame):
        """
        Replaces the clonal frame. Conversions keep their node indices.
        """
        self._clonal_frame.remove_edit_listener(self.start_editing)
        self._clonal_frame = clonal_frame
        self._clonal_frame.add_edit_listener(self.start_editing)
        self.start_editing()

    def get_clonal_frame_length(self) -> float:
        """
        Returns the total length of the branches of the clonal frame,
        excluding the semi-infinite branch above the root.
        """
        return self._clonal_frame.total_branch_length()

    # Conversions

    def add_conversion(self, conv: conversions.Conversion):
        """
        Adds the specified conversion to the graph, keeping the conversions
        of its locus sorted by start site.
        """
        self._check_locus(conv.locus)
        if conv._graph is not None:
            raise exceptions.ConversionGraphError("Conversion already belongs to a graph")
        self.start_editing()
        self._insert(conv)
        conv._graph = self

    def _insert(self, conv):
        convs = self._conversions[conv.locus.id]
        starts = [c.start_site for c in convs]
        convs.insert(bisect.bisect_right(starts, conv.start_site), conv)

    def _index_in_locus(self, conv):
        for j, other in enumerate(self._conversions[conv.locus.id]):
            if other is conv:
                return j
        return -1

    def delete_conversion(self, conv: conversions.Conversion):
        """
        Removes the specified conversion from the graph.
        """
        self._check_locus(conv.locus)
        j = self._index_in_locus(conv)
        if j == -1:
            raise exceptions.ConversionGraphError("Conversion not in graph")
        self.start_editing()
        del self._conversions[conv.locus.id][j]
        conv._graph = None

    def _resort(self, conv):
        # Called when a conversion's start site has changed.
        j = self._index_in_locus(conv)
        assert j != -1
        self.start_editing()
        del self._conversions[conv.locus.id][j]
        self._insert(conv)

    def get_conversions(self, locus: loci.Locus) -> Tuple[conversions.Conversion, ...]:
        """
        Returns the conversions on the specified locus in order of start site.
        Non-convertible loci have no conversions.
        """
        return tuple(self._conversions.get(locus.id, ()))

    def all_conversions(self) -> Iterator[conversions.Conversion]:
        """
        Iterates over all conversions in order of their conversion index.
        """
        for locus in self.convertible_loci:
            yield from self._conversions[locus.id]

    def get_conv_count(self, locus: loci.Locus) -> int:
        return len(self._conversions.get(locus.id, ()))

    def get_total_conv_count(self) -> int:
        return sum(len(convs) for convs in self._conversions.values())

    def get_conversion_index(self, conv: conversions.Conversion) -> int:
        """
        Returns the index of the specified conversion among all of the
        conversions in the graph, ordering loci by id and conversions within
        a locus by start site.
        """
        offset = 0
        for locus in self.convertible_loci:
            if locus.id == conv.locus.id:
                j = self._index_in_locus(conv)
                if j == -1:
                    break
                return offset + j
            offset += len(self._conversions[locus.id])
        raise exceptions.ConversionGraphError("Conversion not in graph")

    def is_invalid(self) -> bool:
        """
        Returns True if any conversion is inconsistent with the current
        clonal frame.
        """
        return any(not conv.is_valid(self._clonal_frame) for conv in self.all_conversions())

    # Derived structures

    def start_editing(self):
        """
        Marks all derived structures as needing recomputation.
        """
        for region_list in self._region_lists.values():
            region_list.mark_dirty()
        self._cf_events.mark_dirty()
        self._affected_sites.mark_dirty()

    def get_regions(self, locus: loci.Locus) -> List[regions.Region]:
        return self._region_lists[locus.id].get_regions()

    def get_region_count(self, locus: loci.Locus) -> int:
        return self._region_lists[locus.id].get_region_count()

    def get_cf_events(self) -> List[events.CFEvent]:
        return self._cf_events.get_cf_events()

    def get_affected_sites(self) -> regions.AffectedSiteList:
        return self._affected_sites

    def get_useless_conv_count(self) -> int:
        """
        Returns the number of conversions that do not affect any site
        ancestral to the sample.
        """
        return self._affected_sites.get_useless_conv_count()

    # State management

    def store(self):
        """
        Saves a copy of the clonal frame and the conversions, to be
        reinstated by :meth:`restore`.
        """
        self._stored = (
            self._clonal_frame.copy(),
            {
                locus_id: [conv.copy() for conv in convs]
                for locus_id, convs in self._conversions.items()
            },
        )

    def restore(self):
        """
        Reinstates the clonal frame and conversions saved by the last call
        to :meth:`store`.
        """
        if self._stored is None:
            raise exceptions.ConversionGraphError("No stored state to restore")
        stored_frame, stored_convs = self._stored
        self._clonal_frame.assign(stored_frame)
        for conv in self.all_conversions():
            conv._graph = None
        for locus_id, convs in stored_convs.items():
            restored = [conv.copy() for conv in convs]
            for conv in restored:
                conv._graph = self
            self._conversions[locus_id] = restored
        self.start_editing()

    def copy(self) -> ConversionGraph:
        """
        Returns an independent copy of this graph.
        """
        other = ConversionGraph(
            self._clonal_frame.copy(), self._loci, whole_locus_mode=self.whole_locus_mode
        )
        for conv in self.all_conversions():
            other.add_conversion(conv.copy())
        return other

    def state(self):
        """
        Returns a summary of the clonal frame and conversions, for comparing
        graphs by value.
        """
        frame = self._clonal_frame
        return (
            tuple(frame.parent_array),
            tuple(frame.height_array),
            tuple(conv.state() for conv in self.all_conversions()),
        )

    # Extended Newick

    def to_extended_newick(
        self, *, compute_affected_sites=True, label_leaves_by_index=True
    ):
        from pyacg import formats

        return formats.to_extended_newick(
            self,
            compute_affected_sites=compute_affected_sites,
            label_leaves_by_index=label_leaves_by_index,
        )

    @staticmethod
    def from_extended_newick(
        text, loci_list, *, taxa=None, translate=None, whole_locus_mode=None
    ):
        from pyacg import formats

        return formats.parse_extended_newick(
            text,
            loci_list,
            taxa=taxa,
            translate=translate,
            whole_locus_mode=whole_locus_mode,
        )

    def __str__(self):
        return self.to_extended_newick()

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
The ordered list of sampling and coalescence events along the clonal frame.
"""
from __future__ import annotations

import dataclasses
import enum
from typing import List

from pyacg import core


class EventType(enum.Enum):
    SAMPLE = 0
    COALESCENCE = 1


@dataclasses.dataclass(frozen=True)
class CFEvent:
    """
    An event on the clonal frame.

    :ivar height: The height of the event.
    :ivar lineage_count: The number of clonal frame lineages extant
        immediately above the event.
    :ivar node: The clonal frame node at which the event occurs.
    :ivar kind: Whether the event is the sampling of a leaf or a
        coalescence.
    """

    height: float
    lineage_count: int
    node: int
    kind: EventType

    @property
    def is_coalescence(self) -> bool:
        return self.kind == EventType.COALESCENCE


def compute_cf_events(clonal_frame) -> List[CFEvent]:
    """
    Returns the events of the specified clonal frame in order of increasing
    height. Samples sort before coalescences at the same height and ties are
    then broken by node index.
    """
    keys = []
    for u in range(clonal_frame.num_nodes):
        kind = EventType.SAMPLE if clonal_frame.is_leaf(u) else EventType.COALESCENCE
        keys.append((clonal_frame.height(u), kind.value, u))
    keys.sort()
    events = []
    k = 0
    for height, kind_value, u in keys:
        kind = EventType(kind_value)
        k += 1 if kind == EventType.SAMPLE else -1
        events.append(CFEvent(height, k, u, kind))
    top = events[-1]
    assert top.lineage_count == 1 and (top.is_coalescence or len(events) == 1)
    return events


class CFEventList:
    """
    The lazily computed event list of a conversion graph's clonal frame.
    """

    def __init__(self, graph):
        self._graph = graph
        self._events = core.Cached(lambda: compute_cf_events(self._graph.clonal_frame))

    def mark_dirty(self):
        self._events.mark_dirty()

    @property
    def dirty(self) -> bool:
        return self._events.dirty

    def get_cf_events(self) -> List[CFEvent]:
        return self._events.get()

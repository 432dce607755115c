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
Common code for the pyacg test cases.
"""
import pyacg


def three_leaf_frame():
    """
    Returns the clonal frame ((a,b)3,c)4 with node 3 at height 1 and the
    root at height 2.
    """
    return pyacg.ClonalFrame([3, 3, 4, 4, -1], [0, 0, 0, 1, 2], labels=["a", "b", "c"])


def four_leaf_frame():
    """
    Returns the clonal frame ((0,1)4,(2,3)5)6 with nodes 4 and 5 at heights
    1 and 2 and the root at height 3.
    """
    return pyacg.ClonalFrame([4, 4, 5, 5, 6, 6, -1], [0, 0, 0, 0, 1, 2, 3])


def make_graph(frame=None, loci=None, **kwargs):
    if frame is None:
        frame = three_leaf_frame()
    if loci is None:
        loci = [pyacg.Locus("locus", 100)]
    return pyacg.ConversionGraph(frame, loci, **kwargs)


def add_conversion(graph, locus, start, end, node1, height1, node2, height2):
    conv = pyacg.Conversion(locus, start, end, node1, height1, node2, height2)
    graph.add_conversion(conv)
    return conv

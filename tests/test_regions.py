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
Tests for the region list and the affected site list.
"""
import numpy as np
import pytest

import pyacg
import pyacg.regions as regions
import tests


def check_partition(locus, region_list):
    """
    Checks that the regions cover each site of the locus exactly once and
    that adjacent regions have different sets of active conversions.
    """
    counts = np.zeros(locus.site_count, dtype=int)
    for region in region_list:
        for site in region.sites():
            counts[site] += 1
    assert np.all(counts == 1)
    for r1, r2 in zip(region_list[:-1], region_list[1:]):
        assert r1.active_conversions != r2.active_conversions
    assert sum(region.length for region in region_list) == locus.site_count


class TestRegion:
    def test_linear(self):
        region = pyacg.Region(2, 5, frozenset(), 10)
        assert region.length == 3
        assert region.sites() == [2, 3, 4]
        assert region.contains(2)
        assert not region.contains(5)
        assert region.is_clonal_frame()

    def test_wrapped(self):
        region = pyacg.Region(8, 3, frozenset(["x"]), 10)
        assert region.is_wrapped
        assert region.length == 5
        assert region.sites() == [8, 9, 0, 1, 2]
        assert region.contains(9)
        assert region.contains(0)
        assert not region.contains(3)
        assert not region.is_clonal_frame()


class TestComputeRegions:
    def test_no_conversions(self):
        locus = pyacg.Locus("x", 10)
        region_list = regions.compute_regions(locus, [])
        assert region_list == [pyacg.Region(0, 10)]
        assert region_list[0].is_clonal_frame()

    def test_whole_locus_conversion(self):
        locus = pyacg.Locus("x", 10)
        conv = pyacg.Conversion(locus, 0, 9)
        region_list = regions.compute_regions(locus, [conv])
        assert region_list == [pyacg.Region(0, 10, frozenset([conv]))]

    def test_overlapping(self):
        locus = pyacg.Locus("x", 100)
        c1 = pyacg.Conversion(locus, 10, 30)
        c2 = pyacg.Conversion(locus, 20, 40)
        region_list = regions.compute_regions(locus, [c1, c2])
        assert [(r.left, r.right) for r in region_list] == [
            (0, 10),
            (10, 20),
            (20, 31),
            (31, 41),
            (41, 100),
        ]
        assert region_list[2].active_conversions == frozenset([c1, c2])
        check_partition(locus, region_list)

    def test_adjacent_conversions_not_merged(self):
        locus = pyacg.Locus("x", 10)
        c1 = pyacg.Conversion(locus, 0, 4)
        c2 = pyacg.Conversion(locus, 5, 9)
        region_list = regions.compute_regions(locus, [c1, c2])
        assert len(region_list) == 2
        check_partition(locus, region_list)

    def test_identical_conversions(self):
        locus = pyacg.Locus("x", 10)
        c1 = pyacg.Conversion(locus, 3, 4)
        c2 = pyacg.Conversion(locus, 3, 4)
        region_list = regions.compute_regions(locus, [c1, c2])
        assert len(region_list) == 3
        assert region_list[1].active_conversions == frozenset([c1, c2])

    def test_circular_wrapped_conversion(self):
        locus = pyacg.Locus("x", 10, circular=True)
        conv = pyacg.Conversion(locus, 8, 2)
        region_list = regions.compute_regions(locus, [conv])
        assert len(region_list) == 2
        assert region_list[0] == pyacg.Region(3, 8)
        assert region_list[1] == pyacg.Region(8, 3, frozenset([conv]))
        check_partition(locus, region_list)

    def test_circular_unwrapped_conversion(self):
        locus = pyacg.Locus("x", 10, circular=True)
        conv = pyacg.Conversion(locus, 3, 5)
        region_list = regions.compute_regions(locus, [conv])
        # The clonal frame regions either side of site 0 are joined.
        assert region_list == [
            pyacg.Region(3, 6, frozenset([conv])),
            pyacg.Region(6, 3),
        ]
        check_partition(locus, region_list)

    def test_linear_ends_not_joined(self):
        locus = pyacg.Locus("x", 10)
        conv = pyacg.Conversion(locus, 3, 5)
        assert len(regions.compute_regions(locus, [conv])) == 3

    @pytest.mark.parametrize("circular", [True, False])
    def test_random_partitions(self, circular):
        rng = np.random.default_rng(5)
        locus = pyacg.Locus("x", 50, circular=circular)
        for _ in range(20):
            convs = []
            for _ in range(rng.integers(1, 8)):
                start, end = sorted(rng.integers(50, size=2))
                if circular and rng.random() < 0.5:
                    start, end = end, start
                convs.append(pyacg.Conversion(locus, start, end))
            region_list = regions.compute_regions(locus, convs)
            check_partition(locus, region_list)
            for region in region_list:
                for site in region.sites():
                    active = {conv for conv in convs if conv.covers(site)}
                    assert active == region.active_conversions


class TestAffectedSites:
    def test_single_conversion(self):
        locus = pyacg.Locus("x", 10)
        graph = tests.make_graph(loci=[locus])
        conv = tests.add_conversion(graph, locus, 0, 9, 0, 0.5, 2, 1.5)
        affected = graph.get_affected_sites()
        assert affected.get_affected_site_count(conv) == 10
        assert affected.get_affected_site_fraction(conv) == 1
        assert graph.get_useless_conv_count() == 0
        assert graph.get_region_count(locus) == 1

    def test_shadowed_conversion(self):
        # The lower conversion takes all of the material of the upper one.
        locus = pyacg.Locus("x", 10)
        graph = tests.make_graph(loci=[locus])
        lower = tests.add_conversion(graph, locus, 0, 9, 0, 0.25, 2, 1.5)
        upper = tests.add_conversion(graph, locus, 5, 9, 0, 0.5, 2, 1.5)
        affected = graph.get_affected_sites()
        assert affected.get_affected_site_count(lower) == 10
        assert affected.get_affected_site_count(upper) == 0
        assert graph.get_useless_conv_count() == 1

    def test_partially_shadowed(self):
        locus = pyacg.Locus("x", 10)
        graph = tests.make_graph(loci=[locus])
        tests.add_conversion(graph, locus, 0, 4, 0, 0.25, 2, 1.5)
        upper = tests.add_conversion(graph, locus, 0, 9, 0, 0.75, 2, 1.5)
        affected = graph.get_affected_sites()
        assert list(np.where(affected.get_affected_sites(upper))[0]) == [5, 6, 7, 8, 9]
        assert affected.get_affected_site_fraction(upper) == 0.5

    def test_arrival_restores_material(self):
        locus = pyacg.Locus("x", 10)
        graph = tests.make_graph(loci=[locus])
        tests.add_conversion(graph, locus, 0, 4, 0, 0.25, 2, 1.5)
        upper = tests.add_conversion(graph, locus, 0, 9, 0, 0.75, 2, 1.5)
        assert graph.get_affected_sites().get_affected_site_count(upper) == 5
        # Material from leaf 1 arrives on the branch of leaf 0 in between.
        tests.add_conversion(graph, locus, 0, 4, 1, 0.25, 0, 0.5)
        assert graph.get_affected_sites().get_affected_site_count(upper) == 10

    def test_material_of_internal_node(self):
        locus = pyacg.Locus("x", 10)
        graph = tests.make_graph(loci=[locus])
        tests.add_conversion(graph, locus, 0, 4, 0, 0.25, 2, 1.5)
        tests.add_conversion(graph, locus, 0, 4, 1, 0.25, 2, 1.5)
        conv = tests.add_conversion(graph, locus, 0, 9, 3, 1.5, 4, 2.5)
        # Sites 0 to 4 have left both lineages below node 3.
        assert graph.get_affected_sites().get_affected_site_count(conv) == 5

    def test_loci_independent(self):
        loci = [pyacg.Locus("a", 10), pyacg.Locus("b", 10)]
        graph = tests.make_graph(loci=loci)
        tests.add_conversion(graph, loci[0], 0, 9, 0, 0.25, 2, 1.5)
        conv = tests.add_conversion(graph, loci[1], 0, 9, 0, 0.5, 2, 1.5)
        assert graph.get_affected_sites().get_affected_site_count(conv) == 10

    def test_wrapped_conversion(self):
        locus = pyacg.Locus("x", 10, circular=True)
        graph = tests.make_graph(loci=[locus])
        tests.add_conversion(graph, locus, 8, 2, 0, 0.25, 2, 1.5)
        upper = tests.add_conversion(graph, locus, 0, 9, 0, 0.75, 2, 1.5)
        mask = graph.get_affected_sites().get_affected_sites(upper)
        assert list(np.where(mask)[0]) == [3, 4, 5, 6, 7]

    def test_recomputed_after_change(self):
        locus = pyacg.Locus("x", 10)
        graph = tests.make_graph(loci=[locus])
        tests.add_conversion(graph, locus, 0, 9, 0, 0.25, 2, 1.5)
        upper = tests.add_conversion(graph, locus, 5, 9, 0, 0.5, 2, 1.5)
        assert graph.get_useless_conv_count() == 1
        upper.node1 = 1
        assert graph.get_useless_conv_count() == 0

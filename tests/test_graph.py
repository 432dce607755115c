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
Tests for the conversion graph.
"""
import pytest

import pyacg
import tests


class TestLoci:
    def test_sorted_by_id(self):
        loci = [pyacg.Locus("b", 10), pyacg.Locus("a", 20)]
        graph = tests.make_graph(loci=loci)
        assert [locus.id for locus in graph.loci] == ["a", "b"]
        assert graph.total_convertible_sequence_length == 30

    def test_convertible_loci(self):
        loci = [pyacg.Locus("a", 10), pyacg.Locus("b", 20, convertible=False)]
        graph = tests.make_graph(loci=loci)
        assert [locus.id for locus in graph.convertible_loci] == ["a"]
        assert graph.total_convertible_sequence_length == 10

    def test_get_locus_by_id(self):
        graph = tests.make_graph()
        assert graph.get_locus_by_id("locus").site_count == 100
        with pytest.raises(KeyError):
            graph.get_locus_by_id("nope")

    def test_duplicate_ids(self):
        with pytest.raises(ValueError):
            tests.make_graph(loci=[pyacg.Locus("a", 10), pyacg.Locus("a", 20)])

    def test_no_loci(self):
        with pytest.raises(ValueError):
            tests.make_graph(loci=[])

    def test_bad_loci(self):
        with pytest.raises(TypeError):
            tests.make_graph(loci=["a"])

    def test_whole_locus_mode(self):
        assert not tests.make_graph().whole_locus_mode
        assert tests.make_graph(whole_locus_mode=True).whole_locus_mode
        with pytest.raises(TypeError):
            tests.make_graph(whole_locus_mode=1)


class TestConversions:
    def test_add_keeps_start_order(self):
        graph = tests.make_graph()
        locus = graph.loci[0]
        c1 = tests.add_conversion(graph, locus, 50, 60, 0, 0.5, 2, 1.5)
        c2 = tests.add_conversion(graph, locus, 10, 20, 1, 0.5, 2, 1.5)
        c3 = tests.add_conversion(graph, locus, 50, 55, 2, 0.5, 4, 2.5)
        assert graph.get_conversions(locus) == (c2, c1, c3)
        assert graph.get_conv_count(locus) == 3
        assert graph.get_total_conv_count() == 3
        assert [graph.get_conversion_index(c) for c in (c1, c2, c3)] == [1, 0, 2]

    def test_changing_start_resorts(self):
        graph = tests.make_graph()
        locus = graph.loci[0]
        c1 = tests.add_conversion(graph, locus, 10, 20, 0, 0.5, 2, 1.5)
        c2 = tests.add_conversion(graph, locus, 30, 40, 0, 0.5, 2, 1.5)
        c1.set_sites(35, 45)
        assert graph.get_conversions(locus) == (c2, c1)

    def test_index_across_loci(self):
        loci = [pyacg.Locus("a", 10), pyacg.Locus("b", 10)]
        graph = tests.make_graph(loci=loci)
        cb = tests.add_conversion(graph, loci[1], 0, 5, 0, 0.5, 2, 1.5)
        ca = tests.add_conversion(graph, loci[0], 0, 5, 0, 0.5, 2, 1.5)
        assert list(graph.all_conversions()) == [ca, cb]
        assert graph.get_conversion_index(cb) == 1

    def test_delete(self):
        graph = tests.make_graph()
        locus = graph.loci[0]
        c1 = tests.add_conversion(graph, locus, 10, 20, 0, 0.5, 2, 1.5)
        c2 = tests.add_conversion(graph, locus, 10, 20, 0, 0.5, 2, 1.5)
        graph.delete_conversion(c1)
        assert graph.get_conversions(locus) == (c2,)
        with pytest.raises(pyacg.ConversionGraphError):
            graph.delete_conversion(c1)
        with pytest.raises(pyacg.ConversionGraphError):
            graph.get_conversion_index(c1)

    def test_add_twice(self):
        graph = tests.make_graph()
        conv = tests.add_conversion(graph, graph.loci[0], 10, 20, 0, 0.5, 2, 1.5)
        with pytest.raises(pyacg.ConversionGraphError):
            graph.add_conversion(conv)
        with pytest.raises(pyacg.ConversionGraphError):
            tests.make_graph().add_conversion(conv)

    def test_add_to_unknown_locus(self):
        graph = tests.make_graph()
        with pytest.raises(pyacg.ConversionGraphError):
            tests.add_conversion(graph, pyacg.Locus("other", 10), 1, 2, 0, 0.5, 2, 1.5)

    def test_add_to_non_convertible_locus(self):
        locus = pyacg.Locus("fixed", 10, convertible=False)
        graph = tests.make_graph(loci=[locus])
        with pytest.raises(pyacg.ConversionGraphError):
            tests.add_conversion(graph, locus, 1, 2, 0, 0.5, 2, 1.5)
        assert graph.get_conversions(locus) == ()
        assert graph.get_conv_count(locus) == 0

    def test_cannot_change_locus_in_graph(self):
        graph = tests.make_graph()
        conv = tests.add_conversion(graph, graph.loci[0], 10, 20, 0, 0.5, 2, 1.5)
        with pytest.raises(pyacg.ConversionGraphError):
            conv.locus = pyacg.Locus("other", 10)

    def test_is_invalid(self):
        graph = tests.make_graph()
        conv = tests.add_conversion(graph, graph.loci[0], 10, 20, 0, 0.5, 2, 1.5)
        assert not graph.is_invalid()
        conv.height1 = 2
        assert graph.is_invalid()


class TestDerivedStructures:
    def test_regions_recomputed_after_change(self):
        graph = tests.make_graph()
        locus = graph.loci[0]
        assert graph.get_region_count(locus) == 1
        conv = tests.add_conversion(graph, locus, 10, 20, 0, 0.5, 2, 1.5)
        assert graph.get_region_count(locus) == 3
        conv.set_sites(0, 20)
        assert graph.get_region_count(locus) == 2
        graph.delete_conversion(conv)
        assert graph.get_region_count(locus) == 1

    def test_cf_events_recomputed_after_frame_edit(self):
        graph = tests.make_graph()
        assert graph.get_cf_events()[-2].height == 1
        graph.clonal_frame.set_height(3, 1.5)
        assert graph.get_cf_events()[-2].height == 1.5

    def test_set_clonal_frame(self):
        graph = tests.make_graph()
        old = graph.clonal_frame
        frame = tests.three_leaf_frame()
        frame.set_height(4, 4)
        graph.set_clonal_frame(frame)
        assert graph.get_clonal_frame_length() == 9
        # Edits to the old frame no longer concern the graph.
        graph.get_cf_events()
        old.set_height(4, 3)
        assert graph.get_cf_events()[-1].height == 4

    def test_clonal_frame_length(self):
        assert tests.make_graph().get_clonal_frame_length() == 5


class TestStoreRestore:
    def test_restore(self):
        graph = tests.make_graph()
        locus = graph.loci[0]
        conv = tests.add_conversion(graph, locus, 10, 20, 0, 0.5, 2, 1.5)
        state = graph.state()
        graph.store()
        conv.set_sites(30, 40)
        tests.add_conversion(graph, locus, 50, 60, 1, 0.25, 3, 1.25)
        graph.clonal_frame.set_height(4, 3)
        assert graph.state() != state
        graph.restore()
        assert graph.state() == state
        assert graph.get_region_count(locus) == 3
        assert not graph.is_invalid()
        # The restored conversions belong to the graph.
        (restored,) = graph.get_conversions(locus)
        restored.set_sites(0, 5)
        assert graph.get_region_count(locus) == 2

    def test_restore_keeps_frame_object(self):
        graph = tests.make_graph()
        frame = graph.clonal_frame
        graph.store()
        frame.set_height(4, 5)
        graph.restore()
        assert graph.clonal_frame is frame
        assert frame.height(4) == 2

    def test_restore_without_store(self):
        with pytest.raises(pyacg.ConversionGraphError):
            tests.make_graph().restore()

    def test_copy(self):
        graph = tests.make_graph()
        tests.add_conversion(graph, graph.loci[0], 10, 20, 0, 0.5, 2, 1.5)
        other = graph.copy()
        assert other.state() == graph.state()
        other.clonal_frame.set_height(4, 3)
        next(other.all_conversions()).set_sites(1, 2)
        assert other.state() != graph.state()
        assert graph.clonal_frame.height(4) == 2

    def test_copy_simulated(self, simulated_graph_fixture):
        graph = simulated_graph_fixture
        other = graph.copy()
        assert other.state() == graph.state()
        for locus in graph.convertible_loci:
            assert other.get_region_count(locus) == graph.get_region_count(locus)
        assert other.get_useless_conv_count() == graph.get_useless_conv_count()

    def test_store_restore_simulated(self, simulated_graph_fixture):
        graph = simulated_graph_fixture
        before = graph.state()
        graph.store()
        for conv in list(graph.all_conversions())[::2]:
            graph.delete_conversion(conv)
        assert graph.state() != before
        graph.restore()
        assert graph.state() == before

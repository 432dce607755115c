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
Reading and writing conversion graphs as extended Newick and Nexus.

In extended Newick a conversion with index ``i`` is represented by a pair
of pseudo-nodes labelled ``#i``. The departure point is a node with a
single child, placed on the branch above ``node1`` at ``height1``. The
arrival point is a leaf, attached by a new bifurcation on the branch
above ``node2`` at ``height2`` with a branch of length
``height2 - height1``. The leaf carries the conversion's metadata, e.g.
``[&conv=0,region={10,25},locus="lacZ",relSize=0.016]``.
"""
from __future__ import annotations

import logging
import math

import newick

from pyacg import clonal_frame as cf
from pyacg import conversions
from pyacg import exceptions
from pyacg import graph as graph_module

logger = logging.getLogger(__name__)

# Keys of the arrival metadata that are generated when writing.
_STANDARD_KEYS = {
    "conv",
    "region",
    "locus",
    "relSize",
    "affectedSites",
    "uselessSiteFraction",
}


def _format_length(x):
    return repr(float(x))


def _format_label(label):
    if any(c in label for c in "():;,[]' \t\n"):
        return "'" + label.replace("'", "''") + "'"
    return label


def _arrival_metadata(graph, conv, compute_affected_sites):
    locus = conv.locus
    local_index = graph.get_conversions(locus).index(conv)
    items = [
        f"conv={local_index}",
        f"region={{{conv.start_site},{conv.end_site}}}",
        f'locus="{locus.id}"',
        f"relSize={conv.site_count / locus.site_count!r}",
    ]
    if compute_affected_sites:
        affected = graph.get_affected_sites().get_affected_site_count(conv)
        items.append(f"affectedSites={affected}")
        items.append(f"uselessSiteFraction={1 - affected / conv.site_count!r}")
    if conv.metadata_middle:
        items.append(conv.metadata_middle)
    return "[&" + ",".join(items) + "]"


def to_extended_newick(
    graph, *, compute_affected_sites=True, label_leaves_by_index=True
):
    """
    Returns the extended Newick representation of the specified graph.
    All nodes are labelled by their indices, so that parsing the string
    restores the same clonal frame and conversion attachments. If
    ``label_leaves_by_index`` is False the leaves are labelled by their
    labels instead, and the leaf order can only be recovered by passing
    the labels as ``taxa`` to :func:`parse_extended_newick`.
    """
    frame = graph.clonal_frame
    indexes = {}
    departures = {u: [] for u in range(frame.num_nodes)}
    arrivals = {u: [] for u in range(frame.num_nodes)}
    for j, conv in enumerate(graph.all_conversions()):
        indexes[conv] = j
        departures[conv.node1].append(conv)
        arrivals[conv.node2].append(conv)

    def edge_events(u):
        events = [(conv.height1, 0, indexes[conv], conv) for conv in departures[u]]
        events += [(conv.height2, 1, indexes[conv], conv) for conv in arrivals[u]]
        events.sort(key=lambda e: (-e[0], -e[1], e[2]))
        return events

    text = {}
    for u in frame.nodes("postorder"):
        last_time = math.inf if frame.is_root(u) else frame.height(frame.parent(u))
        opening = []
        closing = []
        for height, kind, index, conv in edge_events(u):
            length = 0.0 if math.isinf(last_time) else last_time - height
            opening.append("(")
            if kind == 1:
                meta = _arrival_metadata(graph, conv, compute_affected_sites)
                top = f"[&{conv.metadata_top}]" if conv.metadata_top else ""
                closing.append(
                    f",#{index}{meta}:{_format_length(conv.height2 - conv.height1)})"
                    f"{top}:{_format_length(length)}"
                )
            else:
                bottom = f"[&{conv.metadata_bottom}]" if conv.metadata_bottom else ""
                closing.append(f")#{index}{bottom}:{_format_length(length)}")
            last_time = height
        if frame.is_leaf(u):
            body = str(u) if label_leaves_by_index else _format_label(frame.label(u))
        else:
            body = "(" + ",".join(text.pop(c) for c in frame.children(u)) + ")" + str(u)
        length = 0.0 if math.isinf(last_time) else last_time - frame.height(u)
        body += ":" + _format_length(length)
        text[u] = "".join(opening) + body + "".join(reversed(closing))
    return text[frame.root] + ";"


def _is_hybrid(node):
    return node.name is not None and node.name.startswith("#")


def _is_arrival(node):
    return _is_hybrid(node) and len(node.descendants) == 0


def _is_departure(node):
    return _is_hybrid(node) and len(node.descendants) == 1


def _true_node(node):
    """
    Returns the clonal frame node below the specified node, skipping over
    conversion pseudo-nodes.
    """
    while True:
        if _is_departure(node):
            node = node.descendants[0]
            continue
        children = node.descendants
        if len(children) == 2 and any(_is_arrival(c) for c in children):
            node = children[1] if _is_arrival(children[0]) else children[0]
            continue
        return node


def _strip_ampersand(comment):
    return comment[1:] if comment.startswith("&") else comment


def _parse_region(value):
    value = value.strip()
    if not (value.startswith("{") and value.endswith("}")):
        raise exceptions.ExtendedNewickError(f"Malformed region '{value}'")
    parts = value[1:-1].split(",")
    if len(parts) != 2:
        raise exceptions.ExtendedNewickError(f"Malformed region '{value}'")
    try:
        return int(parts[0]), int(parts[1])
    except ValueError:
        raise exceptions.ExtendedNewickError(f"Malformed region '{value}'")


def _as_index(label):
    try:
        value = int(label)
    except (TypeError, ValueError):
        return None
    return value if str(value) == label else None


def parse_extended_newick(text, loci, *, taxa=None, translate=None, whole_locus_mode=None):
    """
    Parses the specified extended Newick string into a conversion graph
    over the specified loci.

    Heights are measured from the most recent node, which is placed at
    height 0. Leaves are indexed according to ``taxa``, a list of leaf
    labels, if given. Otherwise, if the leaves are labelled ``0`` to
    ``n - 1`` these labels are used as indices, and if not the leaves are
    indexed in order of appearance. Internal nodes labelled ``n`` to
    ``2n - 2`` keep their labels as indices and are otherwise numbered in
    postorder.

    :param str text: The extended Newick string.
    :param list loci: The loci of the graph.
    :param list taxa: The leaf labels in index order.
    :param dict translate: A mapping from leaf names in the string to
        leaf labels.
    :param bool whole_locus_mode: Passed to the :class:`.ConversionGraph`.
    :rtype: ConversionGraph
    """
    try:
        parsed = newick.loads(text)
    except ValueError as ve:
        raise exceptions.ExtendedNewickError(f"Malformed extended Newick: {ve}") from ve
    if len(parsed) != 1:
        raise exceptions.ExtendedNewickError("Must contain exactly one tree")
    root = parsed[0]
    loci_by_id = {locus.id: locus for locus in loci}

    # Set node heights, measured downwards from the root and then shifted
    # so that the most recent node is at height 0.
    stack = [(root, 0.0)]
    nodes = []
    while len(stack) > 0:
        node, height = stack.pop()
        node.height = height
        nodes.append(node)
        for child in node.descendants:
            try:
                length = child.length
            except ValueError as ve:
                raise exceptions.ExtendedNewickError(f"Bad branch length: {ve}") from ve
            stack.append((child, height - length))
    min_height = min(node.height for node in nodes)
    for node in nodes:
        node.height -= min_height

    # Find the clonal frame.
    frame_root = _true_node(root)
    leaves = []
    internal = []
    children = {}
    for node in frame_root.walk("postorder"):
        if _is_hybrid(node):
            continue
        if node is not _true_node(node):
            # Arrival bifurcation.
            continue
        true_children = [_true_node(c) for c in node.descendants if not _is_arrival(c)]
        if len(true_children) == 0:
            leaves.append(node)
        elif len(true_children) == 2:
            internal.append(node)
            children[node] = true_children
        else:
            raise exceptions.ExtendedNewickError(
                f"Clonal frame node has {len(true_children)} children"
            )
    n = len(leaves)
    if n < 1 or len(internal) != n - 1:
        raise exceptions.ExtendedNewickError("Clonal frame is not a full binary tree")

    index = {}
    names = [leaf.unquoted_name for leaf in leaves]
    labels = names if translate is None else [translate.get(x, x) for x in names]
    if taxa is not None:
        positions = {label: j for j, label in enumerate(taxa)}
        if len(taxa) != n or any(label not in positions for label in labels):
            raise exceptions.ExtendedNewickError("Leaf labels do not match taxa")
        leaf_indexes = [positions[label] for label in labels]
    elif sorted(_as_index(x) for x in names if _as_index(x) is not None) == list(range(n)):
        leaf_indexes = [_as_index(x) for x in names]
    else:
        leaf_indexes = list(range(n))
    for leaf, j in zip(leaves, leaf_indexes):
        index[leaf] = j
    internal_labels = [_as_index(node.name) for node in internal]
    if sorted(x for x in internal_labels if x is not None) == list(range(n, 2 * n - 1)):
        for node, j in zip(internal, internal_labels):
            index[node] = j
    else:
        for j, node in enumerate(internal):
            index[node] = n + j

    frame_labels = [None] * n
    for leaf, label in zip(leaves, labels):
        frame_labels[index[leaf]] = label if label else str(index[leaf])
    height = [0.0] * (2 * n - 1)
    for node, j in index.items():
        height[j] = node.height
    child_pairs = [None] * (n - 1)
    for node in internal:
        child_pairs[index[node] - n] = tuple(index[c] for c in children[node])
    try:
        frame = cf.ClonalFrame.from_children(child_pairs, height, frame_labels)
    except ValueError as ve:
        raise exceptions.ExtendedNewickError(f"Invalid clonal frame: {ve}") from ve

    # Pair up the conversion pseudo-nodes.
    arrival_nodes = {}
    departure_nodes = {}
    for node in nodes:
        if _is_arrival(node):
            arrival_nodes[node.name] = node
        elif _is_departure(node):
            departure_nodes[node.name] = node
        elif _is_hybrid(node):
            raise exceptions.ExtendedNewickError(f"Malformed conversion node {node.name}")
    if set(arrival_nodes) != set(departure_nodes):
        unpaired = sorted(set(arrival_nodes) ^ set(departure_nodes))
        raise exceptions.ExtendedNewickError(f"Unpaired conversion labels: {unpaired}")

    def sort_key(label):
        j = _as_index(label[1:])
        return (0, j, label) if j is not None else (1, 0, label)

    convs = []
    for label in sorted(arrival_nodes, key=sort_key):
        arrival = arrival_nodes[label]
        departure = departure_nodes[label]
        # Writers may separate metadata items with ", ".
        properties = {
            key.strip(): value.strip() for key, value in arrival.properties.items()
        }
        if "region" not in properties:
            raise exceptions.ExtendedNewickError(f"Conversion {label} has no region")
        if "locus" not in properties:
            raise exceptions.ExtendedNewickError(f"Conversion {label} has no locus")
        start, end = _parse_region(properties["region"])
        locus_id = properties["locus"].strip().strip('"')
        if locus_id not in loci_by_id:
            raise exceptions.UnknownLocusError(locus_id)
        middle = [
            f"{key}={value}"
            for key, value in properties.items()
            if key not in _STANDARD_KEYS
        ]
        top = arrival.ancestor.comments
        bottom = departure.comments
        conv = conversions.Conversion(
            loci_by_id[locus_id],
            start,
            end,
            index[_true_node(departure)],
            arrival.height,
            index[_true_node(arrival.ancestor)],
            arrival.ancestor.height,
            metadata_bottom=_strip_ampersand(bottom[0]) if len(bottom) > 0 else None,
            metadata_middle=",".join(middle) if len(middle) > 0 else None,
            metadata_top=_strip_ampersand(top[0]) if len(top) > 0 else None,
        )
        convs.append(conv)

    graph = graph_module.ConversionGraph(frame, loci, whole_locus_mode=whole_locus_mode)
    for conv in convs:
        try:
            graph.add_conversion(conv)
        except exceptions.ConversionGraphError as cge:
            raise exceptions.ExtendedNewickError(str(cge)) from cge
    logger.debug(
        "Parsed graph with %d leaves and %d conversions", n, graph.get_total_conv_count()
    )
    return graph


def write_nexus(graph, output, *, tree_name="ACG", compute_affected_sites=True):
    """
    Writes the specified graph to the specified file-like object as a Nexus
    file with a taxa block and a trees block. Leaves are written as their
    indices and translated to their labels.
    """
    frame = graph.clonal_frame
    print("#NEXUS", file=output)
    print(file=output)
    print("Begin taxa;", file=output)
    print(f"\tDimensions ntax={frame.num_leaves};", file=output)
    print("\tTaxlabels", file=output)
    for u in range(frame.num_leaves):
        print(f"\t\t{_format_label(frame.label(u))}", file=output)
    print("\t\t;", file=output)
    print("End;", file=output)
    print(file=output)
    print("Begin trees;", file=output)
    translate = ", ".join(
        f"{u} {_format_label(frame.label(u))}" for u in range(frame.num_leaves)
    )
    print(f"\tTranslate {translate};", file=output)
    newick_string = to_extended_newick(
        graph, compute_affected_sites=compute_affected_sites, label_leaves_by_index=True
    )
    print(f"\tTree {tree_name} = {newick_string}", file=output)
    print("End;", file=output)


def parse_nexus(nexus):
    """
    Parse the specified Nexus string, returning the translation mapping
    (empty if there is no translate command) and the tree string of the
    first tree command in the trees block.
    """
    # Whitespace only separates words, so newlines can be replaced by spaces.
    nexus_string = " ".join(nexus.replace("\n", " ").split())
    # Commands are case-insensitive, but labels in the tree are not, so we
    # search a lowercase copy and cut from the original.
    lowered = nexus_string.lower()
    if lowered[0:6] != "#nexus":
        raise exceptions.FileFormatError("The string does not appear to be in Nexus format.")
    begin = lowered.find("begin trees;")
    if begin == -1:
        raise exceptions.FileFormatError("The Nexus string does not include a trees block.")
    end = lowered.find("end;", begin)
    if end == -1:
        raise exceptions.FileFormatError(
            "The Nexus string does not include a complete trees block."
        )
    commands = nexus_string[begin + len("begin trees;") : end].split(";")
    commands = [c.strip() for c in commands if len(c.strip()) > 0]

    mapping = {}
    tree_string = None
    for command in commands:
        name = command.split()[0].lower()
        if name == "translate":
            for item in command[len("translate") :].split(","):
                item_list = item.split()
                if len(item_list) != 2:
                    raise exceptions.FileFormatError(
                        "Malformed translation in translate command."
                    )
                newick_id, label = item_list
                if newick_id in mapping:
                    raise exceptions.FileFormatError(
                        f"Newick ID {newick_id} defined multiple times in translation"
                    )
                mapping[newick_id] = label.strip("'")
        elif name == "tree" and tree_string is None:
            if "(" not in command:
                raise exceptions.FileFormatError("No parentheses in tree string")
            tree_string = command[command.find("(") :] + ";"
    if tree_string is None:
        raise exceptions.FileFormatError("The Nexus string does not contain a tree command.")
    return mapping, tree_string


def read_nexus(nexus, loci, *, whole_locus_mode=None):
    """
    Reads a conversion graph from the first tree of the specified Nexus
    string, as written by :func:`write_nexus`.
    """
    mapping, tree_string = parse_nexus(nexus)
    return parse_extended_newick(
        tree_string, loci, translate=mapping, whole_locus_mode=whole_locus_mode
    )

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
The clonal frame: the rooted binary tree of vertical descent underlying
an ancestral conversion graph.
"""
from __future__ import annotations

import logging
from typing import Callable
from typing import List
from typing import Sequence
from typing import Tuple
from typing import Union

import numpy as np

logger = logging.getLogger(__name__)

NULL = -1


class ClonalFrame:
    """
    A rooted, full binary tree stored as an arena of nodes addressed by
    integer indices. The ``n`` leaves occupy indices ``0`` to ``n - 1``
    and the ``n - 1`` internal nodes occupy indices ``n`` to ``2n - 2``.
    Conversions refer to nodes by index, so replacing the contents of the
    arena never invalidates a conversion's endpoints.

    :param parent: The parent of each node, with ``-1`` for the root.
    :param height: The height (time before present) of each node.
    :param labels: Optional labels for the leaves. Defaults to the leaf
        indices as strings.
    """

    def __init__(
        self,
        parent: Sequence[int],
        height: Sequence[float],
        labels: Union[Sequence[str], None] = None,
    ):
        parent = np.array(parent, dtype=np.int32)
        height = np.array(height, dtype=np.float64)
        if parent.ndim != 1 or parent.shape != height.shape:
            raise ValueError("parent and height must be 1D arrays of equal length")
        num_nodes = parent.shape[0]
        if num_nodes < 1 or num_nodes % 2 != 1:
            raise ValueError("A full binary tree must have an odd number of nodes")
        self._num_leaves = (num_nodes + 1) // 2
        self._parent = parent
        self._height = height
        self._children = np.full((num_nodes, 2), NULL, dtype=np.int32)
        for child in range(num_nodes):
            u = parent[child]
            if u == NULL:
                continue
            if u < 0 or u >= num_nodes:
                raise ValueError(f"Parent of node {child} out of bounds")
            if self._children[u, 0] == NULL:
                self._children[u, 0] = child
            elif self._children[u, 1] == NULL:
                self._children[u, 1] = child
            else:
                raise ValueError(f"Node {u} has more than two children")
        if labels is None:
            labels = [str(j) for j in range(self._num_leaves)]
        if len(labels) != self._num_leaves:
            raise ValueError("Must supply one label per leaf")
        self._labels = [str(label) for label in labels]
        self._listeners: List[Callable[[], None]] = []
        self._root = NULL
        self.validate()

    @staticmethod
    def from_children(
        children: Sequence[Tuple[int, int]],
        height: Sequence[float],
        labels: Union[Sequence[str], None] = None,
    ) -> ClonalFrame:
        """
        Returns a clonal frame built from a list giving the pair of children
        of each internal node ``n, n + 1, ...`` in turn. Child order is kept.
        """
        num_nodes = len(height)
        num_leaves = (num_nodes + 1) // 2
        if len(children) != num_nodes - num_leaves:
            raise ValueError("Must supply one pair of children per internal node")
        parent = np.full(num_nodes, NULL, dtype=np.int32)
        for j, pair in enumerate(children):
            for child in pair:
                parent[child] = num_leaves + j
        frame = ClonalFrame(parent, height, labels)
        for j, pair in enumerate(children):
            frame._children[num_leaves + j] = pair
        return frame

    def validate(self):
        """
        Checks that the arena describes a full binary tree with leaves in the
        first ``n`` slots and heights that increase towards the root.
        """
        n = self._num_leaves
        roots = np.where(self._parent == NULL)[0]
        if len(roots) != 1:
            raise ValueError(f"Clonal frame must have exactly one root; found {len(roots)}")
        self._root = int(roots[0])
        for u in range(self.num_nodes):
            num_children = np.sum(self._children[u] != NULL)
            if u < n and num_children != 0:
                raise ValueError(f"Leaf node {u} has children")
            if u >= n and num_children != 2:
                raise ValueError(f"Internal node {u} must have exactly two children")
            if self._parent[u] != NULL:
                if self._height[u] > self._height[self._parent[u]]:
                    raise ValueError(f"Node {u} is higher than its parent")
        if np.any(~np.isfinite(self._height)):
            raise ValueError("Node heights must be finite")
        # All nodes must be reachable from the root, otherwise there's a cycle.
        if len(list(self.nodes())) != self.num_nodes:
            raise ValueError("Clonal frame contains a cycle")

    # Edit notification

    def add_edit_listener(self, listener: Callable[[], None]):
        self._listeners.append(listener)

    def remove_edit_listener(self, listener: Callable[[], None]):
        self._listeners.remove(listener)

    def start_editing(self):
        """
        Notifies the listeners that the tree is about to change. Called by
        all of the editing methods; tree operators that make several edits
        directly through the arrays must call this themselves.
        """
        for listener in self._listeners:
            listener()

    def set_height(self, u: int, height: float):
        self.start_editing()
        self._height[u] = height

    def set_children(self, u: int, children: Tuple[int, int]):
        """
        Makes the specified nodes the children of ``u``, updating their
        parent pointers. Previous children of ``u`` that are not in the new
        pair must be reattached by the caller before :meth:`validate` is run.
        """
        self.start_editing()
        for c in self._children[u]:
            if c != NULL and self._parent[c] == u:
                self._parent[c] = NULL
        for c in children:
            old = self._parent[c]
            if old != NULL and old != u:
                k = 0 if self._children[old, 0] == c else 1
                self._children[old, k] = NULL
            self._parent[c] = u
        self._children[u] = children
        roots = np.where(self._parent == NULL)[0]
        self._root = int(roots[0]) if len(roots) == 1 else NULL

    def assign(self, other: ClonalFrame):
        """
        Overwrites the contents of this arena with a copy of the specified
        clonal frame, keeping the registered listeners.
        """
        if other.num_nodes != self.num_nodes:
            raise ValueError("Clonal frames have different numbers of nodes")
        self.start_editing()
        self._parent[:] = other._parent
        self._height[:] = other._height
        self._children[:] = other._children
        self._labels = list(other._labels)
        self._root = other._root

    def copy(self) -> ClonalFrame:
        """
        Returns a deep copy of this clonal frame without any listeners.
        """
        other = ClonalFrame.__new__(ClonalFrame)
        other._num_leaves = self._num_leaves
        other._parent = self._parent.copy()
        other._height = self._height.copy()
        other._children = self._children.copy()
        other._labels = list(self._labels)
        other._listeners = []
        other._root = self._root
        return other

    # Queries

    @property
    def num_nodes(self) -> int:
        return self._parent.shape[0]

    @property
    def num_leaves(self) -> int:
        return self._num_leaves

    @property
    def root(self) -> int:
        return self._root

    @property
    def labels(self) -> List[str]:
        return list(self._labels)

    @property
    def parent_array(self) -> np.ndarray:
        a = self._parent.view()
        a.flags.writeable = False
        return a

    @property
    def height_array(self) -> np.ndarray:
        a = self._height.view()
        a.flags.writeable = False
        return a

    def parent(self, u: int) -> int:
        return int(self._parent[u])

    def children(self, u: int) -> Tuple[int, ...]:
        return tuple(int(c) for c in self._children[u] if c != NULL)

    def height(self, u: int) -> float:
        return float(self._height[u])

    def label(self, u: int) -> str:
        return self._labels[u]

    def is_leaf(self, u: int) -> bool:
        return u < self._num_leaves

    def is_root(self, u: int) -> bool:
        return u == self._root

    def branch_length(self, u: int) -> float:
        """
        Returns the length of the branch above ``u``, which is zero for the
        root.
        """
        if self._parent[u] == NULL:
            return 0.0
        return float(self._height[self._parent[u]] - self._height[u])

    def total_branch_length(self) -> float:
        """
        Returns the sum of the lengths of all branches except the semi-infinite
        branch above the root.
        """
        non_root = self._parent != NULL
        return float(np.sum(self._height[self._parent[non_root]] - self._height[non_root]))

    def lineages_at(self, height: float) -> List[int]:
        """
        Returns the nodes whose branch spans the specified height, that is
        nodes ``u`` with ``height(u) <= height < height(parent(u))``. The
        root's branch extends to infinity.
        """
        ret = []
        for u in range(self.num_nodes):
            if self._height[u] <= height and (
                self._parent[u] == NULL or height < self._height[self._parent[u]]
            ):
                ret.append(u)
        return ret

    def nodes(self, order="preorder"):
        """
        Iterates over the nodes reachable from the root in the specified
        order, either "preorder" or "postorder".
        """
        if order not in ("preorder", "postorder"):
            raise ValueError(f"Unknown traversal order '{order}'")
        if self._root == NULL:
            return
        stack = [self._root]
        if order == "preorder":
            while len(stack) > 0:
                u = stack.pop()
                yield u
                stack.extend(reversed(self.children(u)))
        else:
            out = []
            while len(stack) > 0:
                u = stack.pop()
                out.append(u)
                stack.extend(self.children(u))
            yield from reversed(out)

    def leaves_below(self, u: int) -> List[int]:
        return [v for v in self._subtree(u) if self.is_leaf(v)]

    def _subtree(self, u):
        stack = [u]
        while len(stack) > 0:
            v = stack.pop()
            yield v
            stack.extend(self.children(v))

    def newick(self, precision=None) -> str:
        """
        Returns the clonal frame as a plain Newick string with the leaves
        labelled by their labels and internal nodes unlabelled.
        """
        fmt = "{:.17g}" if precision is None else f"{{:.{precision}f}}"
        text = {}
        for u in self.nodes("postorder"):
            if self.is_leaf(u):
                s = self._labels[u]
            else:
                s = "(" + ",".join(text.pop(c) for c in self.children(u)) + ")"
            text[u] = s + ":" + fmt.format(self.branch_length(u))
        return text[self._root] + ";"

    def __eq__(self, other):
        if not isinstance(other, ClonalFrame):
            return NotImplemented
        return (
            np.array_equal(self._parent, other._parent)
            and np.array_equal(self._height, other._height)
            and self._labels == other._labels
        )

    def __repr__(self):
        return f"ClonalFrame(num_leaves={self.num_leaves}, root={self.root})"

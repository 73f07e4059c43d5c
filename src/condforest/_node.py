"""Tree nodes stored in an index-addressed arena.

Children are referenced by their index in the arena, with -1 meaning no
child. The root is always index 0.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Sequence

from ._split import Sample, Split

LeafFitter = Callable[[Sequence[Sample]], Any]

NO_CHILD = -1


@dataclass
class TreeNode:
    """A node of a conditional regression tree.

    A node is unresolved (no split, no leaf), internal (split and two
    children) or a leaf. Leaving the unresolved state is permanent.
    """
    depth: int
    split: Split | None = None
    leaf: Any = None
    left: int = NO_CHILD
    right: int = NO_CHILD

    def is_leaf(self) -> bool:
        return self.leaf is not None

    def has_split(self) -> bool:
        return self.split is not None

    def is_unresolved(self) -> bool:
        return self.split is None and self.leaf is None

    def set_split(self, split: Split) -> None:
        if not self.is_unresolved():
            raise RuntimeError(f"Cannot set split on a resolved node at depth {self.depth}")
        self.split = split

    def create_leaf(self, samples: Sequence[Sample], fit_leaf: LeafFitter) -> None:
        """Fit the leaf model from the samples routed to this node.

        Refitting an existing leaf is allowed; turning an internal node into a
        leaf is not.
        """
        if self.has_split():
            raise RuntimeError(f"Cannot make a leaf of a split node at depth {self.depth}")
        leaf = fit_leaf(samples)
        if leaf is None:
            raise RuntimeError("Leaf fitter returned None")
        self.leaf = leaf

    def eval(self, sample: Sample) -> bool:
        """True when `sample` is routed to the left child.

        A single sample has no population to balance against, so values
        inside a split's margin band are routed by `threshold` alone and may
        land on the other side from where training placed them.
        """
        return sample.eval_test(self.split) < self.split.threshold


class NodeArena:
    """Owns every node of one tree."""

    def __init__(self, nodes: list[TreeNode] | None = None):
        self.nodes: list[TreeNode] = nodes if nodes is not None else []

    def __len__(self) -> int:
        return len(self.nodes)

    def __getitem__(self, node_id: int) -> TreeNode:
        return self.nodes[node_id]

    def __iter__(self):
        return iter(self.nodes)

    def add_node(self, depth: int) -> int:
        self.nodes.append(TreeNode(depth=depth))
        return len(self.nodes) - 1

    def add_children(self, node_id: int) -> tuple[int, int]:
        """Create two unresolved children one level below `node_id`."""
        node = self.nodes[node_id]
        if node.left != NO_CHILD or node.right != NO_CHILD:
            raise RuntimeError(f"Node {node_id} already has children")
        node.left = self.add_node(node.depth + 1)
        node.right = self.add_node(node.depth + 1)
        return node.left, node.right

    @property
    def root(self) -> TreeNode:
        return self.nodes[0]

    def n_leaves(self) -> int:
        return sum(1 for n in self.nodes if n.is_leaf())

    def validate(self, max_depth: int) -> None:
        """Check structural invariants, raising ValueError on the first violation."""
        if not self.nodes:
            raise ValueError("Arena has no root node")
        if self.nodes[0].depth != 0:
            raise ValueError(f"Root depth must be 0, got {self.nodes[0].depth}")

        n = len(self.nodes)
        parents = [NO_CHILD] * n
        for i, node in enumerate(self.nodes):
            if node.depth > max_depth:
                raise ValueError(f"Node {i} depth {node.depth} exceeds max_depth {max_depth}")
            if node.is_leaf() and node.has_split():
                raise ValueError(f"Node {i} is both a leaf and a split node")

            children = [c for c in (node.left, node.right) if c != NO_CHILD]
            if node.has_split():
                if len(children) != 2:
                    raise ValueError(f"Split node {i} has {len(children)} children, expected 2")
            elif children:
                raise ValueError(f"Node {i} has children but no split")

            for child in children:
                if not 0 < child < n:
                    raise ValueError(f"Node {i} references missing child {child}")
                if parents[child] != NO_CHILD:
                    raise ValueError(f"Node {child} has more than one parent")
                parents[child] = i
                if self.nodes[child].depth != node.depth + 1:
                    raise ValueError(
                        f"Child {child} depth {self.nodes[child].depth} is not "
                        f"parent depth {node.depth} + 1"
                    )

        orphans = [i for i in range(1, n) if parents[i] == NO_CHILD]
        if orphans:
            raise ValueError(f"Nodes {orphans} are not reachable from the root")

"""Tests for tree nodes and the node arena."""

import pytest

import condforest as cf
from conftest import ScalarSample, mean_target_leaf


class TestTreeNode:
    """Node state transitions."""

    def test_new_node_unresolved(self):
        node = cf.TreeNode(depth=2)

        assert node.is_unresolved()
        assert not node.is_leaf()
        assert not node.has_split()
        assert node.left == node.right == -1

    def test_leaf_transition(self):
        node = cf.TreeNode(depth=1)
        node.create_leaf([ScalarSample(1.0, target=4.0)], mean_target_leaf)

        assert node.is_leaf()
        assert node.leaf == 4.0
        with pytest.raises(RuntimeError, match="resolved"):
            node.set_split(cf.Split(info=1.0))

    def test_leaf_refit_allowed(self):
        node = cf.TreeNode(depth=1)
        node.create_leaf([], mean_target_leaf)
        node.create_leaf([ScalarSample(0.0, target=2.0)], mean_target_leaf)

        assert node.leaf == 2.0

    def test_split_transition(self):
        node = cf.TreeNode(depth=0)
        node.set_split(cf.Split(info=1.0, threshold=0.5))

        assert node.has_split()
        with pytest.raises(RuntimeError, match="split node"):
            node.create_leaf([], mean_target_leaf)

    def test_none_leaf_rejected(self):
        node = cf.TreeNode(depth=0)
        with pytest.raises(RuntimeError, match="None"):
            node.create_leaf([], lambda samples: None)

    def test_eval_routes_left_below_threshold(self):
        node = cf.TreeNode(depth=0)
        node.set_split(cf.Split(info=1.0, threshold=0.5))

        assert node.eval(ScalarSample(0.4))
        assert not node.eval(ScalarSample(0.5))


class TestNodeArena:
    """Arena ownership and validation."""

    def test_add_children(self):
        arena = cf.NodeArena()
        root = arena.add_node(0)
        arena[root].set_split(cf.Split(info=1.0))

        left, right = arena.add_children(root)

        assert (left, right) == (1, 2)
        assert arena[left].depth == arena[right].depth == 1
        assert len(arena) == 3
        with pytest.raises(RuntimeError, match="already has children"):
            arena.add_children(root)

    def test_validate_ok(self):
        arena = cf.NodeArena()
        arena.add_node(0)
        arena[0].set_split(cf.Split(info=1.0))
        arena.add_children(0)
        arena[1].create_leaf([], mean_target_leaf)

        arena.validate(max_depth=1)
        assert arena.n_leaves() == 1

    def test_validate_children_without_split(self):
        arena = cf.NodeArena([cf.TreeNode(0, left=1, right=2), cf.TreeNode(1), cf.TreeNode(1)])

        with pytest.raises(ValueError, match="no split"):
            arena.validate(max_depth=3)

    def test_validate_shared_child(self):
        split = cf.Split(info=1.0)
        arena = cf.NodeArena([
            cf.TreeNode(0, split=split, left=1, right=2),
            cf.TreeNode(1, split=split, left=3, right=4),
            cf.TreeNode(1, split=split, left=3, right=4),
            cf.TreeNode(2),
            cf.TreeNode(2),
        ])

        with pytest.raises(ValueError, match="more than one parent"):
            arena.validate(max_depth=3)

    def test_validate_orphan(self):
        arena = cf.NodeArena([cf.TreeNode(0), cf.TreeNode(1)])

        with pytest.raises(ValueError, match="not reachable"):
            arena.validate(max_depth=3)

    def test_validate_dangling_child(self):
        arena = cf.NodeArena([cf.TreeNode(0, split=cf.Split(info=1.0), left=1, right=7),
                              cf.TreeNode(1)])

        with pytest.raises(ValueError, match="missing child"):
            arena.validate(max_depth=3)

    def test_validate_leaf_and_split(self):
        arena = cf.NodeArena([cf.TreeNode(0, split=cf.Split(info=1.0), leaf=1.0)])

        with pytest.raises(ValueError, match="both"):
            arena.validate(max_depth=3)

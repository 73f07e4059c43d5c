"""Conditional regression tree training with resumable checkpoints.

Growth is depth-first and pre-order: a node is resolved (split or leaf)
before its children are grown, left subtree first. Every resolved node
advances `i_node`; a leaf credits its whole unbuilt subtree, so a tree is
finished exactly when `i_node` reaches `2**max_depth - 1`.

A tree reloaded from a checkpoint keeps the splits that were already
chosen. Growing it again re-applies those splits to the supplied samples
and only searches for splits at unresolved nodes.

Example:
    >>> import condforest as cf
    >>> param = cf.ForestParam(max_depth=8, min_patches=20, ntests=100, features=[0])
    >>> tree = cf.Tree(samples, param, rng=42, save_path="trees/tree_000.joblib",
    ...                generator=cf.RandomPatchSplitGenerator(),
    ...                fit_leaf=cf.fit_regression_leaf)
    >>> leaf = tree.evaluate(sample)
"""

from __future__ import annotations

import logging
import os
import time
from typing import TYPE_CHECKING, Any, Sequence

import numpy as np
from joblib import Parallel, delayed

from ._node import LeafFitter, NodeArena, TreeNode
from ._param import ForestParam
from ._persistence import (
    SAVE_ERRORS,
    CheckpointCorruptError,
    CheckpointNotFoundError,
    LoadResult,
    LoadStatus,
    TreeState,
    load_checkpoint,
    save_checkpoint,
)
from ._split import Sample, SplitGenerator, apply_optimal_split, find_optimal_split

if TYPE_CHECKING:
    from numpy.random import Generator

logger = logging.getLogger(__name__)

# Seconds between automatic checkpoints during growth
AUTOSAVE_INTERVAL = 600.0


def _as_generator(rng) -> Generator:
    # default_rng returns Generator instances unchanged
    return np.random.default_rng(rng)


class Tree:
    """A single conditional regression tree.

    Args:
        samples: Training samples; referenced, never copied.
        param: Forest configuration.
        rng: numpy Generator or seed. The same generator is consumed by the
            whole growth call.
        save_path: Checkpoint file.
        generator: Candidate split generator.
        fit_leaf: Callable fitting a leaf model from a sequence of samples.
        autosave_interval: Seconds between automatic checkpoints.
    """

    def __init__(
        self,
        samples: Sequence[Sample],
        param: ForestParam,
        rng: Any,
        save_path: str | os.PathLike,
        *,
        generator: SplitGenerator,
        fit_leaf: LeafFitter,
        autosave_interval: float = AUTOSAVE_INTERVAL,
    ):
        self.param = param
        self.save_path = os.fspath(save_path)
        self.generator = generator
        self.fit_leaf = fit_leaf
        self.autosave_interval = autosave_interval
        self.num_nodes = param.num_nodes
        self.i_node = 0
        self.i_leaf = 0
        self.n_samples: int | None = len(samples)
        self.arena = NodeArena()
        self.arena.add_node(0)

        self._rng = _as_generator(rng)
        logger.info("Start training")
        self._ticks = time.monotonic()
        self.grow(0, samples)
        self.save()

    @classmethod
    def _from_state(cls, state: TreeState) -> Tree:
        tree = cls.__new__(cls)
        tree.param = state.param
        tree.save_path = state.save_path
        tree.generator = state.generator
        tree.fit_leaf = state.fit_leaf
        tree.autosave_interval = state.autosave_interval
        tree.num_nodes = state.num_nodes
        tree.i_node = state.i_node
        tree.i_leaf = state.i_leaf
        tree.n_samples = state.n_samples
        tree.arena = state.arena
        tree._rng = None
        tree._ticks = time.monotonic()
        return tree

    def _to_state(self) -> TreeState:
        return TreeState(
            num_nodes=self.num_nodes,
            i_node=self.i_node,
            i_leaf=self.i_leaf,
            param=self.param,
            save_path=self.save_path,
            n_samples=self.n_samples,
            arena=self.arena,
            generator=self.generator,
            fit_leaf=self.fit_leaf,
            autosave_interval=self.autosave_interval,
        )

    @property
    def root(self) -> TreeNode:
        return self.arena.root

    @property
    def progress(self) -> float:
        """Percentage of the node budget resolved so far."""
        if self.num_nodes == 0:
            return 0.0
        return 100.0 * self.i_node / self.num_nodes

    def is_finished(self) -> bool:
        if self.num_nodes == 0:
            return False
        return self.i_node == self.num_nodes

    # =========================================================================
    # Growth
    # =========================================================================

    def update(self, samples: Sequence[Sample], rng: Any) -> None:
        """Resume growth of an unfinished tree; no-op when finished.

        The caller must supply the same sample population the tree was
        started with, since splits chosen before the interruption are
        re-applied without re-validation.

        Raises:
            ValueError: `samples` differs in size from the original population.
        """
        self._rng = _as_generator(rng)
        logger.info("%.2f%% : update tree", self.progress)
        if self.is_finished():
            return

        if self.n_samples is not None and len(samples) != self.n_samples:
            raise ValueError(
                f"Resuming requires the original sample population "
                f"({self.n_samples} samples), got {len(samples)}"
            )

        self.i_node = 0
        self.i_leaf = 0
        logger.info("Start training")
        self._ticks = time.monotonic()
        self.grow(0, samples)
        self.save()

    def grow(self, node_id: int, samples: Sequence[Sample]) -> None:
        """Resolve `node_id` and, for split nodes, both of its subtrees."""
        node = self.arena[node_id]
        depth = node.depth
        n = len(samples)

        if n < self.param.min_patches or depth >= self.param.max_depth or node.is_leaf():
            self._make_leaf(node, samples, branch=1)
        elif node.has_split():
            # Split restored from a checkpoint
            left, right = apply_optimal_split(samples, node.split, self.generator)
            self._advance(1)
            logger.info("  (2) %.2f%% : split(depth: %d, elements: %d) [A: %d, B: %d]",
                        self.progress, depth, n, len(left), len(right))
            self.grow(node.left, left)
            self.grow(node.right, right)
        else:
            split = find_optimal_split(
                samples, self._rng, self.generator,
                self.param.patch_size, depth, self.param.ntests,
            )
            if split is None:
                logger.info("  No valid split found")
                self._make_leaf(node, samples, branch=4)
                return

            left, right = apply_optimal_split(samples, split, self.generator)
            node.set_split(split)
            self._advance(1)
            left_id, right_id = self.arena.add_children(node_id)

            self.save_auto()
            logger.info("  (3) %.2f%% : split(depth: %d, elements: %d) [A: %d, B: %d]",
                        self.progress, depth, n, len(left), len(right))
            self.grow(left_id, left)
            self.grow(right_id, right)

    def _make_leaf(self, node: TreeNode, samples: Sequence[Sample], branch: int) -> None:
        node.create_leaf(samples, self.fit_leaf)
        self._advance(2**(self.param.max_depth - node.depth) - 1)
        self.i_leaf += 1
        logger.info("  (%d) %.2f%% : make leaf(depth: %d, elements: %d) [i_leaf: %d]",
                    branch, self.progress, node.depth, len(samples), self.i_leaf)

    def _advance(self, count: int) -> None:
        if self.i_node + count > self.num_nodes:
            raise RuntimeError(
                f"Node counter overflow: {self.i_node} + {count} > {self.num_nodes}"
            )
        self.i_node += count

    # =========================================================================
    # Evaluation
    # =========================================================================

    def evaluate(self, sample: Sample) -> Any:
        """Return the leaf reached by `sample`."""
        return evaluate_mt(sample, self.arena)

    def evaluate_batch(self, samples: Sequence[Sample], n_jobs: int = -1) -> list[Any]:
        """Evaluate many samples concurrently on worker threads.

        The tree must not be grown while this runs.
        """
        return Parallel(n_jobs=n_jobs, prefer="threads")(
            delayed(evaluate_mt)(sample, self.arena) for sample in samples
        )

    # =========================================================================
    # Persistence
    # =========================================================================

    def save_auto(self) -> bool:
        """Save when more than `autosave_interval` seconds passed since the last save."""
        ticks = time.monotonic()
        elapsed = ticks - self._ticks
        logger.debug("Time: %.1f ms", elapsed * 1000)
        if elapsed > self.autosave_interval:
            self._ticks = ticks
            logger.info("Automatic tree save after %.1f s", elapsed)
            return self.save()
        return False

    def save(self) -> bool:
        """Write the full tree state to `save_path`.

        Returns:
            True on success. Failures are logged and leave the in-memory
            tree untouched.
        """
        try:
            save_checkpoint(self._to_state(), self.save_path)
        except SAVE_ERRORS as exc:
            logger.error("Exception during tree serialization: %s", exc)
            return False
        logger.info("Complete tree saved: %s", self.save_path)
        return True

    @classmethod
    def from_checkpoint(cls, path: str | os.PathLike) -> Tree:
        """Load a tree, raising CheckpointNotFoundError or CheckpointCorruptError."""
        return cls._from_state(load_checkpoint(path))

    @classmethod
    def load(cls, path: str | os.PathLike) -> LoadResult:
        """Load a tree and report the outcome instead of raising."""
        try:
            tree = cls.from_checkpoint(path)
        except CheckpointNotFoundError as exc:
            logger.info("  %s", exc)
            return LoadResult(LoadStatus.NOT_FOUND, message=str(exc))
        except CheckpointCorruptError as exc:
            logger.error("  Exception during tree serialization: %s", exc)
            return LoadResult(LoadStatus.CORRUPT, message=str(exc))

        if tree.is_finished():
            message = "Complete tree reloaded"
        else:
            message = "Unfinished tree reloaded"
        logger.info("  %s", message)
        return LoadResult(LoadStatus.OK, tree=tree, message=message)

    def __repr__(self) -> str:
        return (
            f"Tree(max_depth={self.param.max_depth}, i_node={self.i_node}, "
            f"num_nodes={self.num_nodes}, i_leaf={self.i_leaf}, "
            f"save_path={self.save_path!r})"
        )


def evaluate_mt(sample: Sample, arena: NodeArena, node_id: int = 0) -> Any:
    """Descend from `node_id` to a leaf and return its model.

    Read-only; safe to call from several threads on a tree nobody is growing.

    Raises:
        RuntimeError: the path reaches a node that has not been resolved yet.
    """
    node = arena[node_id]
    while not node.is_leaf():
        if not node.has_split():
            raise RuntimeError(f"Reached unresolved node {node_id} at depth {node.depth}")
        node_id = node.left if node.eval(sample) else node.right
        node = arena[node_id]
    return node.leaf


def train_or_resume(
    samples: Sequence[Sample],
    param: ForestParam,
    rng: Any,
    save_path: str | os.PathLike,
    *,
    generator: SplitGenerator,
    fit_leaf: LeafFitter,
) -> Tree:
    """Return a finished tree for `save_path`, reusing any checkpoint there.

    A missing checkpoint starts fresh training and an unfinished one is
    resumed. A corrupt checkpoint raises CheckpointCorruptError.
    """
    try:
        tree = Tree.from_checkpoint(save_path)
    except CheckpointNotFoundError:
        logger.info("No checkpoint at %s, training from scratch", os.fspath(save_path))
        return Tree(samples, param, rng, save_path, generator=generator, fit_leaf=fit_leaf)

    if not tree.is_finished():
        logger.info("Resuming unfinished tree at %.2f%%", tree.progress)
        tree.update(samples, rng)
    return tree

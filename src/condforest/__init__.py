"""condforest: conditional regression trees for facial feature detection.

Trains the individual trees of a conditional regression forest. Each tree
is grown depth-first from randomized candidate splits and checkpoints
itself, so training can be interrupted and resumed.

Quick Start:
    >>> import condforest as cf
    >>> param = cf.ForestParam(max_depth=10, min_patches=20, ntests=200, features=[0, 1])
    >>> tree = cf.train_or_resume(
    ...     samples, param, rng=0, save_path="trees/tree_000.joblib",
    ...     generator=cf.RandomPatchSplitGenerator(param.features),
    ...     fit_leaf=cf.fit_regression_leaf,
    ... )
    >>> leaf = tree.evaluate(samples[0])

Resuming by hand:
    >>> result = cf.Tree.load("trees/tree_000.joblib")
    >>> if result.ok and not result.finished:
    ...     result.tree.update(samples, rng=1)

Custom samples only need an `eval_test(split) -> float` method; custom
generators implement the `SplitGenerator` protocol.
"""

__version__ = "0.1.0"

from ._logging import get_logger
from ._node import NodeArena, TreeNode
from ._param import ForestParam, load_param
from ._patch import (
    PatchSample, PatchTest, RandomPatchSplitGenerator,
    RegressionLeaf, fit_regression_leaf,
)
from ._persistence import (
    CheckpointCorruptError, CheckpointError, CheckpointNotFoundError,
    LoadResult, LoadStatus, TreeState, load_checkpoint, save_checkpoint,
)
from ._split import (
    HIGHEST_OOB, LOWEST_INFO, Sample, Split, SplitGenerator,
    apply_optimal_split, find_optimal_split, split_sorted_samples,
)
from ._tree import AUTOSAVE_INTERVAL, Tree, evaluate_mt, train_or_resume

__all__ = [
    # Version
    "__version__",
    # Configuration
    "ForestParam",
    "load_param",
    # Training
    "Tree",
    "train_or_resume",
    "AUTOSAVE_INTERVAL",
    # Evaluation
    "evaluate_mt",
    # Nodes
    "TreeNode",
    "NodeArena",
    # Splits
    "Split",
    "Sample",
    "SplitGenerator",
    "LOWEST_INFO",
    "HIGHEST_OOB",
    "find_optimal_split",
    "apply_optimal_split",
    "split_sorted_samples",
    # Persistence
    "TreeState",
    "LoadResult",
    "LoadStatus",
    "CheckpointError",
    "CheckpointNotFoundError",
    "CheckpointCorruptError",
    "save_checkpoint",
    "load_checkpoint",
    # Reference patch model
    "PatchSample",
    "PatchTest",
    "RegressionLeaf",
    "fit_regression_leaf",
    "RandomPatchSplitGenerator",
    # Logging
    "get_logger",
]

"""Checkpoint persistence for condforest trees.

A checkpoint captures the full training state of one tree: progress
counters, parameters, save path, the node arena and the collaborators
needed to keep growing it. Files are written with joblib to a temporary
name and renamed into place, so a checkpoint on disk is always complete.
"""

from __future__ import annotations

import enum
import logging
import os
import pickle
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, NamedTuple

import joblib

from ._node import LeafFitter, NodeArena, TreeNode
from ._param import ForestParam
from ._split import Split, SplitGenerator

if TYPE_CHECKING:
    from ._tree import Tree

logger = logging.getLogger(__name__)

CHECKPOINT_VERSION = 1

# Errors a failed write can raise; anything else is a bug and propagates
SAVE_ERRORS = (OSError, pickle.PicklingError, AttributeError, TypeError)

_REQUIRED_KEYS = (
    "version", "num_nodes", "i_node", "i_leaf", "param", "save_path",
    "n_samples", "nodes", "generator", "fit_leaf", "autosave_interval",
)


class CheckpointError(Exception):
    """Base class for checkpoint load failures."""


class CheckpointNotFoundError(CheckpointError, FileNotFoundError):
    """No checkpoint exists at the requested path."""


class CheckpointCorruptError(CheckpointError, ValueError):
    """The checkpoint exists but cannot be decoded or violates tree invariants."""


class LoadStatus(enum.Enum):
    OK = "ok"
    NOT_FOUND = "not_found"
    CORRUPT = "corrupt"


class LoadResult(NamedTuple):
    """Outcome of `Tree.load`. `tree` is None unless `status` is OK."""
    status: LoadStatus
    tree: Tree | None = None
    message: str = ""

    @property
    def ok(self) -> bool:
        return self.status is LoadStatus.OK

    @property
    def finished(self) -> bool:
        return self.tree is not None and self.tree.is_finished()


@dataclass
class TreeState:
    """Serializable training state of one tree."""
    num_nodes: int
    i_node: int
    i_leaf: int
    param: ForestParam
    save_path: str
    n_samples: int | None
    arena: NodeArena
    generator: SplitGenerator
    fit_leaf: LeafFitter
    autosave_interval: float

    def to_payload(self) -> dict[str, Any]:
        return {
            "version": CHECKPOINT_VERSION,
            "num_nodes": self.num_nodes,
            "i_node": self.i_node,
            "i_leaf": self.i_leaf,
            "param": self.param.to_dict(),
            "save_path": self.save_path,
            "n_samples": self.n_samples,
            "nodes": [
                (n.depth, n.split, n.leaf, n.left, n.right) for n in self.arena
            ],
            "generator": self.generator,
            "fit_leaf": self.fit_leaf,
            "autosave_interval": self.autosave_interval,
        }

    @classmethod
    def from_payload(cls, payload: Any) -> TreeState:
        """Rebuild and validate a state, raising ValueError on any inconsistency."""
        if not isinstance(payload, dict):
            raise ValueError(f"Expected a mapping, got {type(payload).__name__}")
        missing = [k for k in _REQUIRED_KEYS if k not in payload]
        if missing:
            raise ValueError(f"Missing fields: {missing}")
        if payload["version"] != CHECKPOINT_VERSION:
            raise ValueError(
                f"Unsupported checkpoint version {payload['version']!r}, "
                f"expected {CHECKPOINT_VERSION}"
            )

        if not isinstance(payload["param"], dict):
            raise ValueError(
                f"param must be a mapping, got {type(payload['param']).__name__}"
            )
        param = ForestParam.from_dict(payload["param"])
        nodes = []
        for entry in payload["nodes"]:
            depth, split, leaf, left, right = entry
            if split is not None and not isinstance(split, Split):
                raise ValueError(f"Invalid split of type {type(split).__name__}")
            nodes.append(TreeNode(depth=int(depth), split=split, leaf=leaf,
                                  left=int(left), right=int(right)))
        arena = NodeArena(nodes)
        arena.validate(param.max_depth)

        num_nodes = int(payload["num_nodes"])
        i_node = int(payload["i_node"])
        i_leaf = int(payload["i_leaf"])
        if num_nodes != param.num_nodes:
            raise ValueError(
                f"num_nodes {num_nodes} does not match max_depth {param.max_depth}"
            )
        if not 0 <= i_node <= num_nodes:
            raise ValueError(f"i_node {i_node} outside [0, {num_nodes}]")
        if i_leaf < 0:
            raise ValueError(f"i_leaf must be >= 0, got {i_leaf}")

        return cls(
            num_nodes=num_nodes,
            i_node=i_node,
            i_leaf=i_leaf,
            param=param,
            save_path=str(payload["save_path"]),
            n_samples=payload["n_samples"],
            arena=arena,
            generator=payload["generator"],
            fit_leaf=payload["fit_leaf"],
            autosave_interval=float(payload["autosave_interval"]),
        )


def save_checkpoint(state: TreeState, path: str | os.PathLike) -> None:
    """Write `state` to `path` atomically.

    Raises:
        OSError, pickle.PicklingError, AttributeError, TypeError: when the
            state cannot be written; the previous file at `path` is kept.
    """
    path = os.fspath(path)
    directory = os.path.dirname(path)
    if directory:
        os.makedirs(directory, exist_ok=True)

    tmp_path = f"{path}.tmp-{os.getpid()}"
    try:
        joblib.dump(state.to_payload(), tmp_path)
        os.replace(tmp_path, path)
    finally:
        if os.path.exists(tmp_path):
            os.remove(tmp_path)


def load_checkpoint(path: str | os.PathLike) -> TreeState:
    """Read and validate a checkpoint.

    Raises:
        CheckpointNotFoundError: `path` does not exist.
        CheckpointCorruptError: the file cannot be decoded or describes an
            invalid tree.
    """
    path = os.fspath(path)
    if not os.path.isfile(path):
        raise CheckpointNotFoundError(f"File not found: {path}")

    try:
        payload = joblib.load(path)
    except Exception as exc:
        raise CheckpointCorruptError(
            f"Cannot decode checkpoint {path}: {type(exc).__name__}: {exc}"
        ) from exc

    try:
        return TreeState.from_payload(payload)
    except (ValueError, TypeError) as exc:
        raise CheckpointCorruptError(f"Invalid checkpoint {path}: {exc}") from exc

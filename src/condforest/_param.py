"""Forest configuration for condforest.

`ForestParam` is the read-only parameter block shared by every tree of a
forest. Trees only read `max_depth`, `min_patches`, `ntests`, `features` and
the patch geometry; the remaining fields travel with the checkpoint so a
reloaded tree carries the configuration it was trained with.
"""

from __future__ import annotations

import dataclasses
import os
from dataclasses import dataclass, field
from typing import Any

import yaml


@dataclass
class ForestParam:
    """Configuration for conditional regression forest training.

    Args:
        max_depth: Maximum tree depth (stopping criterion).
        min_patches: Minimum number of samples needed to split a node.
        ntests: Number of random candidate splits evaluated per node.
        ntrees: Number of trees per forest.
        nimages: Number of images per class.
        npatches: Number of patches sampled per image.
        face_size: Face size in pixels.
        patch_size_ratio: Patch side length relative to `face_size`.
        tree_path: Directory where trees are loaded from or saved to.
        image_path: Directory of the training images.
        features: Feature channel indices available to split tests.
    """
    max_depth: int = 15
    min_patches: int = 20
    ntests: int = 250
    ntrees: int = 10
    nimages: int = 1000
    npatches: int = 200
    face_size: int = 100
    patch_size_ratio: float = 0.25
    tree_path: str = "trees"
    image_path: str = "images"
    features: list[int] = field(default_factory=lambda: [0])

    def __post_init__(self):
        if self.max_depth < 0:
            raise ValueError(f"max_depth must be >= 0, got {self.max_depth}")
        if self.min_patches < 0:
            raise ValueError(f"min_patches must be >= 0, got {self.min_patches}")
        if self.ntests < 1:
            raise ValueError(f"ntests must be >= 1, got {self.ntests}")
        if self.face_size < 1:
            raise ValueError(f"face_size must be >= 1, got {self.face_size}")
        if self.patch_size_ratio <= 0:
            raise ValueError(
                f"patch_size_ratio must be > 0, got {self.patch_size_ratio}"
            )
        self.features = [int(f) for f in self.features]

    @property
    def patch_size(self) -> int:
        """Patch side length in pixels."""
        return int(round(self.face_size * self.patch_size_ratio))

    @property
    def num_nodes(self) -> int:
        """Node budget of a complete binary tree of depth `max_depth`."""
        return 2**self.max_depth - 1

    def to_dict(self) -> dict[str, Any]:
        return dataclasses.asdict(self)

    @classmethod
    def from_dict(cls, values: dict[str, Any]) -> ForestParam:
        """Build parameters from a mapping, ignoring unknown keys."""
        known = {f.name for f in dataclasses.fields(cls)}
        return cls(**{k: v for k, v in values.items() if k in known})


def load_param(path: str | os.PathLike, local_path: str | os.PathLike | None = None) -> ForestParam:
    """Load `ForestParam` from a YAML file.

    Args:
        path: Root configuration file.
        local_path: Optional override file; its values replace the root
            values when it exists.

    Returns:
        Parsed ForestParam.
    """
    with open(path, "r") as f:
        values = yaml.safe_load(f) or {}
    if not isinstance(values, dict):
        raise ValueError(f"Configuration in {path} must be a mapping")
    if local_path is not None and os.path.exists(local_path):
        with open(local_path, "r") as f:
            values.update(yaml.safe_load(f) or {})
    return ForestParam.from_dict(values)

"""Reference patch samples, leaf model and split generator.

These implement the collaborator protocols of the tree with the classic
facial-feature setup: a sample is a multi-channel image patch with a label
and a regression target (the offset from the patch to a facial feature),
and a split test compares the mean intensity of two rectangles in one
channel.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, NamedTuple, Sequence

import numpy as np

from ._backends import entropy_gain_cpu, rect_difference_cpu, regression_gain_cpu
from ._split import Split, ValSet, sorted_val_set, split_sorted_samples

if TYPE_CHECKING:
    from numpy.random import Generator
    from numpy.typing import NDArray

# Modes below this value score candidates by label entropy, the rest by offset variance
CLASSIFICATION_MODE_LIMIT = 50


class PatchTest(NamedTuple):
    """Two-rectangle intensity test. Rectangles are (x, y, width, height)."""
    channel: int
    rect1: tuple[int, int, int, int]
    rect2: tuple[int, int, int, int]


@dataclass(eq=False)
class PatchSample:
    """An image patch used for training.

    Attributes:
        channels: Feature channels, shape (n_channels, height, width)
        offset: Regression target, e.g. offset to a facial feature point
        label: Class label (non-negative)
    """
    channels: NDArray
    offset: NDArray
    label: int = 0

    def __post_init__(self):
        self.channels = np.ascontiguousarray(self.channels, dtype=np.float32)
        if self.channels.ndim != 3:
            raise ValueError(
                f"channels must be 3D (n_channels, height, width), got shape {self.channels.shape}"
            )
        self.offset = np.atleast_1d(np.asarray(self.offset, dtype=np.float64))
        if self.label < 0:
            raise ValueError(f"label must be >= 0, got {self.label}")

    def eval_test(self, split: Split) -> float:
        test = split.test
        return rect_difference_cpu(self.channels, test.channel, test.rect1, test.rect2)


@dataclass
class RegressionLeaf:
    """Leaf model summarizing the samples that reached it."""
    offset_mean: NDArray
    offset_var: float
    label_hist: NDArray = field(default_factory=lambda: np.zeros(0))
    n_samples: int = 0

    @property
    def label_probability(self) -> NDArray:
        total = self.label_hist.sum()
        if total == 0:
            return self.label_hist.astype(np.float64)
        return self.label_hist / total


def fit_regression_leaf(samples: Sequence[PatchSample], offset_dim: int = 2) -> RegressionLeaf:
    """Fit a leaf from samples; an empty sequence gives an all-zero leaf."""
    if len(samples) == 0:
        return RegressionLeaf(offset_mean=np.zeros(offset_dim), offset_var=0.0)

    offsets = np.stack([s.offset for s in samples])
    labels = np.array([s.label for s in samples], dtype=np.int64)
    mean = offsets.mean(axis=0)
    var = float(np.mean(np.sum((offsets - mean) ** 2, axis=1)))
    return RegressionLeaf(
        offset_mean=mean,
        offset_var=var,
        label_hist=np.bincount(labels),
        n_samples=len(samples),
    )


class RandomPatchSplitGenerator:
    """Generates random two-rectangle tests with random thresholds.

    Args:
        channels: Channel indices tests may use (typically `ForestParam.features`).
        n_thresholds: Thresholds tried per test.
        margin: Margin stored on every candidate.
        min_child: Candidates leaving fewer samples than this in a child are
            discarded.
    """

    def __init__(
        self,
        channels: Sequence[int] = (0,),
        n_thresholds: int = 10,
        margin: float = 0.0,
        min_child: int = 1,
    ):
        if len(channels) == 0:
            raise ValueError("channels must not be empty")
        if n_thresholds < 1:
            raise ValueError(f"n_thresholds must be >= 1, got {n_thresholds}")
        if margin < 0:
            raise ValueError(f"margin must be >= 0, got {margin}")
        self.channels = [int(c) for c in channels]
        self.n_thresholds = n_thresholds
        self.margin = margin
        self.min_child = max(1, min_child)

    def generate(
        self,
        samples: Sequence[PatchSample],
        rng: Generator,
        patch_size: int,
        depth: int,
        mode: int,
        ntests: int,
    ) -> list[Split]:
        n = len(samples)
        if n < 2 * self.min_child:
            return [Split() for _ in range(ntests)]

        _, height, width = samples[0].channels.shape
        size = max(1, min(patch_size, height, width))
        use_labels = mode < CLASSIFICATION_MODE_LIMIT
        labels = np.array([s.label for s in samples], dtype=np.int64)
        n_classes = int(labels.max()) + 1
        if use_labels and n_classes < 2:
            use_labels = False
        offsets = np.ascontiguousarray(np.stack([s.offset for s in samples]), dtype=np.float64)

        splits = []
        for _ in range(ntests):
            test = self._random_test(rng, size)
            query = Split(test=test)
            values = np.array([s.eval_test(query) for s in samples], dtype=np.float64)
            vmin, vmax = values.min(), values.max()
            val_set = sorted_val_set(values)

            best = Split()
            if vmax > vmin:
                for threshold in rng.uniform(vmin, vmax, self.n_thresholds):
                    go_left = self._left_mask(val_set, float(threshold))
                    if use_labels:
                        gain, n_left, oob = entropy_gain_cpu(labels, go_left, n_classes)
                    else:
                        gain, n_left, oob = regression_gain_cpu(offsets, go_left)
                    if n_left < self.min_child or n - n_left < self.min_child:
                        continue
                    if gain > best.info:
                        best = Split(
                            info=gain, oob=oob, threshold=float(threshold),
                            margin=self.margin, test=test,
                        )
            splits.append(best)
        return splits

    def split_samples(self, samples, val_set, threshold, margin):
        return split_sorted_samples(samples, val_set, threshold, margin)

    def _left_mask(self, val_set: ValSet, threshold: float) -> np.ndarray:
        # Scores candidates on the partition split_samples will apply
        n = len(val_set)
        left, _ = self.split_samples(range(n), val_set, threshold, self.margin)
        go_left = np.zeros(n, dtype=np.bool_)
        go_left[np.asarray(left, dtype=np.intp)] = True
        return go_left

    def _random_test(self, rng: Generator, size: int) -> PatchTest:
        channel = self.channels[int(rng.integers(0, len(self.channels)))]
        return PatchTest(channel, _random_rect(rng, size), _random_rect(rng, size))


def _random_rect(rng: Generator, size: int) -> tuple[int, int, int, int]:
    max_side = max(1, size // 2)
    w = int(rng.integers(1, max_side + 1))
    h = int(rng.integers(1, max_side + 1))
    x = int(rng.integers(0, size - w + 1))
    y = int(rng.integers(0, size - h + 1))
    return x, y, w, h

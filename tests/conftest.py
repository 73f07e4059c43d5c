"""Shared fixtures and stub collaborators for condforest tests."""

import numpy as np
import pytest

import condforest as cf


class ScalarSample:
    """Sample whose evaluation is a fixed scalar, whatever the split."""

    def __init__(self, value, target=0.0):
        self.value = float(value)
        self.target = float(target)

    def eval_test(self, split):
        return self.value

    def __repr__(self):
        return f"ScalarSample({self.value})"


def mean_target_leaf(samples):
    """Leaf value: mean target, 0.0 for an empty node."""
    if len(samples) == 0:
        return 0.0
    return float(np.mean([s.target for s in samples]))


class MedianSplitGenerator:
    """Splits at the median of the distinct values; fails when all values are equal.

    The usable candidate is placed at a random position so the generator
    consumes the shared random source like a real one.
    """

    def generate(self, samples, rng, patch_size, depth, mode, ntests):
        splits = [cf.Split() for _ in range(ntests)]
        values = sorted({s.eval_test(None) for s in samples})
        if len(values) >= 2:
            mid = len(values) // 2
            threshold = (values[mid - 1] + values[mid]) / 2
            position = int(rng.integers(0, ntests))
            splits[position] = cf.Split(info=float(len(samples)), oob=0.0,
                                        threshold=threshold, test="value")
        return splits

    def split_samples(self, samples, val_set, threshold, margin):
        return cf.split_sorted_samples(samples, val_set, threshold, margin)


class InterruptedTraining(Exception):
    pass


class InterruptingGenerator(MedianSplitGenerator):
    """Raises InterruptedTraining on generate call number `fail_at`."""

    def __init__(self, fail_at):
        self.fail_at = fail_at
        self.calls = 0

    def generate(self, samples, rng, patch_size, depth, mode, ntests):
        self.calls += 1
        if self.calls == self.fail_at:
            raise InterruptedTraining(f"interrupted at call {self.calls}")
        return super().generate(samples, rng, patch_size, depth, mode, ntests)


class InterruptingPatchGenerator(cf.RandomPatchSplitGenerator):
    """RandomPatchSplitGenerator raising InterruptedTraining on call `fail_at`."""

    def __init__(self, fail_at, channels=(0, 1)):
        super().__init__(channels)
        self.fail_at = fail_at
        self.calls = 0

    def generate(self, samples, rng, patch_size, depth, mode, ntests):
        self.calls += 1
        if self.calls == self.fail_at:
            raise InterruptedTraining(f"interrupted at call {self.calls}")
        return super().generate(samples, rng, patch_size, depth, mode, ntests)


class FixedSplitsGenerator:
    """Returns a fixed list of candidates every time."""

    def __init__(self, splits):
        self.splits = list(splits)

    def generate(self, samples, rng, patch_size, depth, mode, ntests):
        return list(self.splits)

    def split_samples(self, samples, val_set, threshold, margin):
        return cf.split_sorted_samples(samples, val_set, threshold, margin)


def tree_signature(tree):
    """Pre-order (depth, threshold, leaf) listing of a tree."""
    out = []
    stack = [0]
    while stack:
        node = tree.arena[stack.pop()]
        threshold = node.split.threshold if node.has_split() else None
        out.append((node.depth, threshold, node.leaf))
        if node.has_split():
            stack.append(node.right)
            stack.append(node.left)
    return out


@pytest.fixture
def scalar_samples():
    """Sixteen samples with distinct values and target equal to value."""
    return [ScalarSample(v, target=v) for v in range(16)]


@pytest.fixture
def median_generator():
    return MedianSplitGenerator()


@pytest.fixture
def small_param():
    return cf.ForestParam(max_depth=3, min_patches=1, ntests=5, face_size=20,
                          patch_size_ratio=0.5, features=[0])


@pytest.fixture
def patch_samples():
    """Two-class patches whose left and right halves differ in brightness."""
    rng = np.random.default_rng(0)
    samples = []
    for i in range(60):
        label = i % 2
        channels = rng.normal(0.0, 0.1, size=(2, 10, 10)).astype(np.float32)
        if label:
            channels[0, :, :5] += 1.0
            offset = np.array([5.0, -5.0])
        else:
            channels[0, :, 5:] += 1.0
            offset = np.array([-5.0, 5.0])
        samples.append(cf.PatchSample(channels, offset + rng.normal(0, 0.1, 2), label))
    return samples

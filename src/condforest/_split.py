"""Split selection and sample partitioning for conditional regression trees."""

from __future__ import annotations

import bisect
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Protocol, Sequence, runtime_checkable

import numpy as np

if TYPE_CHECKING:
    from numpy.random import Generator

# Sentinel values marking an unusable candidate
LOWEST_INFO = float("-inf")
HIGHEST_OOB = float("inf")

# Split modes are drawn uniformly from [0, SPLIT_MODE_MAX]
SPLIT_MODE_MAX = 100

# Sorted (value, original index) pairs
ValSet = list[tuple[float, int]]


@dataclass(frozen=True)
class Split:
    """A binary test and its measured quality.

    Attributes:
        info: Information gain (higher is better). `LOWEST_INFO` marks an
            unusable candidate.
        oob: Out-of-bag error estimate (lower is better), metadata only.
        threshold: Decision boundary on the evaluated scalar.
        margin: Half-width of the band around `threshold` whose samples are
            placed by the generator's partitioning rule.
        test: Opaque test descriptor consumed by `Sample.eval_test`.
    """
    info: float = LOWEST_INFO
    oob: float = HIGHEST_OOB
    threshold: float = 0.0
    margin: float = 0.0
    test: Any = None

    @property
    def is_valid(self) -> bool:
        return self.info != LOWEST_INFO


@runtime_checkable
class Sample(Protocol):
    """Training unit that can be evaluated against a split."""

    def eval_test(self, split: Split) -> float:
        """Evaluate this sample against the split's test descriptor."""
        ...


@runtime_checkable
class SplitGenerator(Protocol):
    """Produces randomized candidate splits and owns the partitioning rule."""

    def generate(
        self,
        samples: Sequence[Sample],
        rng: Generator,
        patch_size: int,
        depth: int,
        mode: int,
        ntests: int,
    ) -> list[Split]:
        """Return exactly `ntests` candidates (unusable ones at LOWEST_INFO)."""
        ...

    def split_samples(
        self,
        samples: Sequence[Sample],
        val_set: ValSet,
        threshold: float,
        margin: float,
    ) -> tuple[list[Sample], list[Sample]]:
        """Partition samples given their sorted evaluation values."""
        ...


def sorted_val_set(values: np.ndarray) -> ValSet:
    """Pair each value with its index, sorted by value then index."""
    order = np.argsort(values, kind="stable")
    return [(float(values[i]), int(i)) for i in order]


def split_sorted_samples(
    samples: Sequence[Sample],
    val_set: ValSet,
    threshold: float,
    margin: float,
) -> tuple[list[Sample], list[Sample]]:
    """Partition samples around `threshold` with a balancing margin band.

    Values below `threshold - margin` go left, values at or above
    `threshold + margin` go right. Values inside the band are taken in sorted
    order and each is given to whichever side currently holds fewer samples
    (the left side on ties). With `margin == 0` this is a plain
    `value < threshold` test.

    Args:
        samples: Samples in their original order.
        val_set: `(value, index)` pairs sorted ascending.
        threshold: Split threshold.
        margin: Band half-width, >= 0.

    Returns:
        (left, right) lists covering every sample exactly once.
    """
    values = [v for v, _ in val_set]
    lo = bisect.bisect_left(values, threshold - margin)
    hi = bisect.bisect_left(values, threshold + margin) if margin > 0 else lo

    left = [samples[i] for _, i in val_set[:lo]]
    right = [samples[i] for _, i in val_set[hi:]]
    for _, i in val_set[lo:hi]:
        if len(left) <= len(right):
            left.append(samples[i])
        else:
            right.append(samples[i])
    return left, right


def find_optimal_split(
    samples: Sequence[Sample],
    rng: Generator,
    generator: SplitGenerator,
    patch_size: int,
    depth: int,
    ntests: int,
) -> Split | None:
    """Pick the candidate with strictly maximal information gain.

    One split mode is drawn from `rng` before candidates are requested, so
    the order in which the random generator is consumed is fixed.

    Args:
        samples: Samples routed to the node.
        rng: Random generator threaded through the whole growth call.
        generator: Candidate generator.
        patch_size: Patch side length in pixels.
        depth: Depth of the node being split.
        ntests: Number of candidates to request.

    Returns:
        The best split, or None when every candidate is unusable.
    """
    mode = int(rng.integers(0, SPLIT_MODE_MAX + 1))
    splits = generator.generate(samples, rng, patch_size, depth, mode, ntests)
    if len(splits) != ntests:
        raise ValueError(
            f"Split generator returned {len(splits)} candidates, expected {ntests}"
        )

    best = Split()
    for split in splits:
        # First seen wins on ties
        if split.info > best.info:
            best = split

    if not best.is_valid:
        return None
    return best


def apply_optimal_split(
    samples: Sequence[Sample],
    split: Split,
    generator: SplitGenerator,
) -> tuple[list[Sample], list[Sample]]:
    """Route samples to the two children of `split`.

    Args:
        samples: Samples routed to the node.
        split: Chosen split.
        generator: Owner of the partitioning rule.

    Returns:
        (left, right) sample lists.
    """
    n = len(samples)
    values = np.fromiter((s.eval_test(split) for s in samples), dtype=np.float64, count=n)
    val_set = sorted_val_set(values)

    left, right = generator.split_samples(samples, val_set, split.threshold, split.margin)

    if len(left) + len(right) != n:
        raise RuntimeError(
            f"Partition lost samples: {len(left)} + {len(right)} != {n}"
        )
    seen = {id(s) for s in left}
    seen.update(id(s) for s in right)
    if seen != {id(s) for s in samples}:
        raise RuntimeError("Partition must place every sample in exactly one child")
    return left, right

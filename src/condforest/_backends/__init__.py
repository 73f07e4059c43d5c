"""Compute kernels for condforest."""

from ._cpu import entropy_gain_cpu, rect_difference_cpu, regression_gain_cpu

__all__ = [
    "entropy_gain_cpu",
    "rect_difference_cpu",
    "regression_gain_cpu",
]

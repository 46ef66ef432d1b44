"""Testing utilities for tilemm."""

from .comparators import Comparator, CompareResult, ExactComparator, Mismatch, TensorComparator

__all__ = [
    "Comparator",
    "CompareResult",
    "ExactComparator",
    "Mismatch",
    "TensorComparator",
]

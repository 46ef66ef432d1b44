"""Comparators for checking device outputs against the reference."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import torch

from tilemm.errors import ValidationMismatch


@dataclass(frozen=True)
class Mismatch:
    """One output element that differs from the reference."""

    index: int
    """Flat row-major index."""
    row: int
    col: int
    expected: float
    """Reference value."""
    actual: float
    """Device value."""

    def __str__(self) -> str:
        return (
            f"[{self.index}] (row {self.row}, col {self.col}): expected={self.expected!r}, "
            f"actual={self.actual!r}"
        )


@dataclass
class CompareResult:
    """Result of comparing reference and device outputs."""

    passed: bool
    """Whether the comparison passed."""
    stats: Dict[str, Any] = field(default_factory=dict)
    """Statistics from the comparison (e.g., max_abs_diff, num_mismatches)."""
    mismatches: List[Mismatch] = field(default_factory=list)
    """Elements that failed the comparison."""
    details: Optional[str] = None
    """Detailed error information if comparison failed."""

    def raise_for_mismatch(self) -> None:
        """Raise :class:`ValidationMismatch` if the comparison failed."""
        if not self.passed:
            raise ValidationMismatch(self.mismatches, self.details)


class Comparator(ABC):
    """Base class for output comparators."""

    @abstractmethod
    def compare(self, ref_output: torch.Tensor, output: torch.Tensor) -> CompareResult:
        """Compare a device output with the reference output.

        Parameters
        ----------
        ref_output : torch.Tensor
            Output of the reference implementation.
        output : torch.Tensor
            Output read back from the device.

        Returns
        -------
        CompareResult
            Comparison result with pass/fail status and statistics.
        """
        ...

    @staticmethod
    def _check_shapes(ref: torch.Tensor, out: torch.Tensor) -> Optional[CompareResult]:
        if ref.shape != out.shape:
            return CompareResult(
                passed=False,
                stats={"ref_shape": tuple(ref.shape), "shape": tuple(out.shape)},
                details=f"Shape mismatch: reference {tuple(ref.shape)}, output {tuple(out.shape)}",
            )
        return None

    @staticmethod
    def _collect(ref: torch.Tensor, out: torch.Tensor, bad: torch.Tensor) -> List[Mismatch]:
        cols = ref.shape[-1] if ref.dim() > 1 else ref.numel()
        ref_flat = ref.reshape(-1)
        out_flat = out.reshape(-1)
        mismatches = []
        for idx in torch.nonzero(bad.reshape(-1)).flatten().tolist():
            mismatches.append(
                Mismatch(
                    index=idx,
                    row=idx // cols,
                    col=idx % cols,
                    expected=ref_flat[idx].item(),
                    actual=out_flat[idx].item(),
                )
            )
        return mismatches


class ExactComparator(Comparator):
    """Elementwise exact equality, reporting every differing element.

    Exact equality is the contract for inputs whose partial sums are exactly representable in
    float32. NaN never compares equal.
    """

    def __init__(self, max_details: int = 10):
        """
        Parameters
        ----------
        max_details : int
            How many mismatches to spell out in ``details``. All of them are always listed in
            ``mismatches``.
        """
        self.max_details = max_details

    def compare(self, ref_output: torch.Tensor, output: torch.Tensor) -> CompareResult:
        ref = ref_output.detach().cpu().float()
        out = output.detach().cpu().float()
        shape_result = self._check_shapes(ref, out)
        if shape_result is not None:
            return shape_result

        bad = ref != out
        mismatches = self._collect(ref, out, bad)
        abs_diff = (ref - out).abs()
        stats = {
            "num_elements": ref.numel(),
            "num_mismatches": len(mismatches),
            "max_abs_diff": abs_diff.max().item() if ref.numel() else 0.0,
        }
        if not mismatches:
            return CompareResult(passed=True, stats=stats)

        lines = [f"{len(mismatches)} of {ref.numel()} elements differ:"]
        lines.extend(f"  {m}" for m in mismatches[: self.max_details])
        if len(mismatches) > self.max_details:
            lines.append(f"  ... and {len(mismatches) - self.max_details} more")
        return CompareResult(
            passed=False, stats=stats, mismatches=mismatches, details="\n".join(lines)
        )


class TensorComparator(Comparator):
    """Comparator using absolute and relative tolerances, for inputs outside the exact
    equality guarantee (arbitrary float values)."""

    def __init__(self, atol: float = 1e-4, rtol: float = 1e-4):
        """Initialize with tolerance values.

        Parameters
        ----------
        atol : float
            Absolute tolerance for comparison.
        rtol : float
            Relative tolerance for comparison.
        """
        self.atol = atol
        self.rtol = rtol

    def compare(self, ref_output: torch.Tensor, output: torch.Tensor) -> CompareResult:
        ref = ref_output.detach().cpu().float()
        out = output.detach().cpu().float()
        shape_result = self._check_shapes(ref, out)
        if shape_result is not None:
            return shape_result

        abs_diff = (ref - out).abs()
        rel_diff = abs_diff / (ref.abs() + 1e-8)
        bad = ~torch.isclose(out, ref, atol=self.atol, rtol=self.rtol)
        mismatches = self._collect(ref, out, bad)

        stats = {
            "max_abs_diff": abs_diff.max().item(),
            "mean_abs_diff": abs_diff.mean().item(),
            "max_rel_diff": rel_diff.max().item(),
            "num_mismatches": len(mismatches),
        }
        details = None
        if mismatches:
            worst = sorted(mismatches, key=lambda m: abs(m.expected - m.actual), reverse=True)[:5]
            details = "Top error locations:\n" + "\n".join(f"  {m}" for m in worst)
        return CompareResult(
            passed=not mismatches, stats=stats, mismatches=mismatches, details=details
        )

"""Problem dimensions, kernel configuration and launch geometry."""

from __future__ import annotations

from enum import Enum
from typing import Any, Tuple

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from tilemm.errors import ConfigurationError

FLOAT32_BYTES = 4
"""Size of one matrix element in bytes."""


def ceil_div(a: int, b: int) -> int:
    return (a + b - 1) // b


class BoundaryPolicy(str, Enum):
    """How the kernel treats elements outside the true matrix extent.

    The policy is resolved when the kernel is specialized; it is never a per-call switch.
    """

    STRICT = "strict"
    """No bounds checks. Every dimension must be an exact multiple of the tile size."""
    GENERAL = "general"
    """Bounds-checked staging (zero padding) and guarded output writes."""

    @property
    def check_bounds(self) -> bool:
        return self is BoundaryPolicy.GENERAL


class ProblemSize(BaseModel):
    """Dimensions of ``C (M x N) = A (M x K) @ B (K x N)``."""

    model_config = ConfigDict(frozen=True, use_attribute_docstrings=True)

    M: int = Field(gt=0)
    """Rows of A and rows of C."""
    K: int = Field(gt=0)
    """Columns of A and rows of B (the shared dimension)."""
    N: int = Field(gt=0)
    """Columns of B and columns of C."""

    @classmethod
    def from_operands(cls, a: Any, b: Any) -> "ProblemSize":
        """Read the problem size off two 2-D operands.

        Parameters
        ----------
        a : Any
            Left operand with a ``shape`` of ``(M, K)``.
        b : Any
            Right operand with a ``shape`` of ``(K, N)``.

        Returns
        -------
        ProblemSize
            The problem dimensions.

        Raises
        ------
        ConfigurationError
            If either operand is not 2-D, has an empty axis, or ``a`` columns differ from ``b``
            rows.
        """
        a_shape = tuple(a.shape)
        b_shape = tuple(b.shape)
        if len(a_shape) != 2 or len(b_shape) != 2:
            raise ConfigurationError(
                f"Operands must be 2-D matrices, got shapes {a_shape} and {b_shape}"
            )
        if a_shape[1] != b_shape[0]:
            raise ConfigurationError(
                f"Dimension mismatch: A is {a_shape[0]}x{a_shape[1]} but B is "
                f"{b_shape[0]}x{b_shape[1]}"
            )
        try:
            return cls(M=a_shape[0], K=a_shape[1], N=b_shape[1])
        except ValidationError as e:
            raise ConfigurationError(f"Matrix dimensions must be positive: {e}") from e

    def tile_steps(self, tile_size: int) -> int:
        """Number of tiles the shared dimension is split into."""
        return ceil_div(self.K, tile_size)

    def is_tile_aligned(self, tile_size: int) -> bool:
        """Whether every dimension is an exact multiple of ``tile_size``."""
        return self.M % tile_size == 0 and self.K % tile_size == 0 and self.N % tile_size == 0


class KernelConfig(BaseModel):
    """Build-time configuration of the tiled kernel.

    Two configs that differ in any field specialize to two different compiled kernels.
    Invalid values raise :class:`ConfigurationError` from the constructor as well as from
    :meth:`create`.
    """

    model_config = ConfigDict(frozen=True, use_attribute_docstrings=True)

    tile_size: int = Field(gt=0, strict=True)
    """Edge length T of the square tiles and of the T x T workgroup."""
    policy: BoundaryPolicy = BoundaryPolicy.GENERAL
    """Boundary-check policy the kernel is specialized with."""

    def __init__(self, **data: Any) -> None:
        try:
            super().__init__(**data)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid kernel configuration: {e}") from e

    @classmethod
    def create(cls, tile_size: int, policy: BoundaryPolicy | str = BoundaryPolicy.GENERAL):
        """Build a config, reporting invalid values as :class:`ConfigurationError`."""
        if isinstance(tile_size, bool) or not isinstance(tile_size, int):
            raise ConfigurationError(f"Tile size must be an integer, got {tile_size!r}")
        try:
            policy = BoundaryPolicy(policy)
        except ValueError as e:
            raise ConfigurationError(f"Invalid kernel configuration: {e}") from e
        return cls(tile_size=tile_size, policy=policy)

    @property
    def check_bounds(self) -> bool:
        return self.policy.check_bounds

    @property
    def workgroup_size(self) -> int:
        """Work-items per workgroup."""
        return self.tile_size * self.tile_size

    @property
    def tile_floats(self) -> int:
        """Floats in one tile cache."""
        return self.tile_size * self.tile_size

    @property
    def shared_memory_bytes(self) -> int:
        """Bytes of shared memory one workgroup needs for both tile caches."""
        return 2 * self.tile_floats * FLOAT32_BYTES

    @property
    def cache_key(self) -> str:
        return f"{self.policy.value}_t{self.tile_size}"


class LaunchGeometry(BaseModel):
    """Global and local (workgroup) sizes of a two dimensional launch.

    Axis 0 runs over output rows, axis 1 over output columns.
    """

    model_config = ConfigDict(frozen=True, use_attribute_docstrings=True)

    global_size: Tuple[int, int]
    """Total work-items per axis. Always a multiple of the local size."""
    local_size: Tuple[int, int]
    """Work-items per workgroup per axis."""

    @model_validator(mode="after")
    def _check_divisible(self) -> "LaunchGeometry":
        for g, l in zip(self.global_size, self.local_size):
            if l <= 0 or g <= 0:
                raise ValueError(f"Launch sizes must be positive, got {self}")
            if g % l != 0:
                raise ValueError(
                    f"Global size {self.global_size} is not a multiple of local size "
                    f"{self.local_size}"
                )
        return self

    @classmethod
    def for_problem(cls, problem: ProblemSize, config: KernelConfig) -> "LaunchGeometry":
        """One work-item per output element, rounded up to whole T x T workgroups."""
        t = config.tile_size
        groups = (ceil_div(problem.M, t), ceil_div(problem.N, t))
        return cls(global_size=(groups[0] * t, groups[1] * t), local_size=(t, t))

    @property
    def num_groups(self) -> Tuple[int, int]:
        return (
            self.global_size[0] // self.local_size[0],
            self.global_size[1] // self.local_size[1],
        )

    @property
    def workgroup_size(self) -> int:
        return self.local_size[0] * self.local_size[1]

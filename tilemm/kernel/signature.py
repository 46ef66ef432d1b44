"""Declared kernel entry signatures and positional argument checking."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Sequence, Tuple

from tilemm.data import BufferAccess, DeviceBuffer, KernelConfig
from tilemm.errors import ConfigurationError


class ArgKind(str, Enum):
    """Kinds of kernel parameters."""

    INT = "int"
    GLOBAL_READ_ONLY = "global read-only"
    GLOBAL_WRITE_ONLY = "global write-only"
    LOCAL = "local"


@dataclass(frozen=True)
class LocalMemory:
    """An explicitly sized shared-memory region passed as a kernel argument.

    The device allocates a fresh region of this size for every workgroup.
    """

    num_floats: int

    def __post_init__(self) -> None:
        if self.num_floats <= 0:
            raise ConfigurationError(f"LocalMemory size must be positive, got {self.num_floats}")

    @property
    def nbytes(self) -> int:
        return self.num_floats * 4


@dataclass(frozen=True)
class ArgSpec:
    name: str
    kind: ArgKind
    local_floats: Optional[int] = None
    """Required region size for ``LOCAL`` parameters."""


_BUFFER_ACCESS = {
    ArgKind.GLOBAL_READ_ONLY: BufferAccess.READ_ONLY,
    ArgKind.GLOBAL_WRITE_ONLY: BufferAccess.WRITE_ONLY,
}


@dataclass(frozen=True)
class KernelSignature:
    """Name and positional parameter list of a kernel entry point."""

    name: str
    args: Tuple[ArgSpec, ...]

    def check(self, args: Sequence[object]) -> None:
        """Check positional launch arguments against the declared parameters.

        Parameters
        ----------
        args : Sequence[object]
            The arguments in launch order.

        Raises
        ------
        ConfigurationError
            If the argument count differs, or any argument does not match the kind (and for
            buffers the declared access, for local regions the size) of its parameter.
        """
        if len(args) != len(self.args):
            raise ConfigurationError(
                f"Kernel '{self.name}' takes {len(self.args)} arguments "
                f"({', '.join(spec.name for spec in self.args)}), got {len(args)}"
            )
        for position, (spec, value) in enumerate(zip(self.args, args)):
            problem = self._mismatch(spec, value)
            if problem is not None:
                raise ConfigurationError(
                    f"Kernel '{self.name}' argument {position} ('{spec.name}', {spec.kind.value}): "
                    f"{problem}"
                )

    @staticmethod
    def _mismatch(spec: ArgSpec, value: object) -> Optional[str]:
        if spec.kind is ArgKind.INT:
            if isinstance(value, bool) or not isinstance(value, int):
                return f"expected an int, got {type(value).__name__}"
            return None
        if spec.kind is ArgKind.LOCAL:
            if not isinstance(value, LocalMemory):
                return f"expected LocalMemory, got {type(value).__name__}"
            if spec.local_floats is not None and value.num_floats != spec.local_floats:
                return f"expected {spec.local_floats} floats, got {value.num_floats}"
            return None
        if not isinstance(value, DeviceBuffer):
            return f"expected a DeviceBuffer, got {type(value).__name__}"
        if value.released:
            return "buffer has been released"
        if value.access is not _BUFFER_ACCESS[spec.kind]:
            return f"buffer was created {value.access.value}"
        return None


def tiled_matmul_signature(config: KernelConfig) -> KernelSignature:
    """Entry signature of the tiled matmul kernel specialized with ``config``.

    ``(M, N, K, A, B, C)``, followed for the bounds-checked variant by the two T x T tile
    caches as explicit local memory arguments.
    """
    args = [
        ArgSpec("M", ArgKind.INT),
        ArgSpec("N", ArgKind.INT),
        ArgSpec("K", ArgKind.INT),
        ArgSpec("A", ArgKind.GLOBAL_READ_ONLY),
        ArgSpec("B", ArgKind.GLOBAL_READ_ONLY),
        ArgSpec("C", ArgKind.GLOBAL_WRITE_ONLY),
    ]
    if config.check_bounds:
        args.append(ArgSpec("a_tile", ArgKind.LOCAL, local_floats=config.tile_floats))
        args.append(ArgSpec("b_tile", ArgKind.LOCAL, local_floats=config.tile_floats))
    return KernelSignature(name="tiled_matmul", args=tuple(args))

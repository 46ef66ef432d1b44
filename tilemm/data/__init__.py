"""Data model: matrices, buffers, problem and kernel configuration, device capabilities."""

from .buffer import BufferAccess, DeviceBuffer
from .device import DeviceInfo
from .matrix import as_row_major, filled, flat_index, from_bytes, iota, to_bytes
from .problem import BoundaryPolicy, KernelConfig, LaunchGeometry, ProblemSize, ceil_div

__all__ = [
    "BoundaryPolicy",
    "BufferAccess",
    "DeviceBuffer",
    "DeviceInfo",
    "KernelConfig",
    "LaunchGeometry",
    "ProblemSize",
    "as_row_major",
    "ceil_div",
    "filled",
    "flat_index",
    "from_bytes",
    "iota",
    "to_bytes",
]

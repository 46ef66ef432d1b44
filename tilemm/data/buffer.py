"""Device buffer handles."""

from __future__ import annotations

from enum import Enum
from typing import Optional

import numpy as np
import torch

from tilemm.errors import DeviceFault


class BufferAccess(str, Enum):
    """How a kernel is declared to use a buffer. Declared, not enforced at runtime."""

    READ_ONLY = "read_only"
    WRITE_ONLY = "write_only"


class DeviceBuffer:
    """A flat float32 buffer owned by one device for the duration of one invocation.

    ``load`` and ``store`` give element access with extent checking; they are used by kernels
    that execute on the host (the emulated device). Kernels running on a real accelerator use
    :attr:`storage` directly.
    """

    storage: torch.Tensor
    """Flat float32 storage on the owning device."""
    access: BufferAccess
    """Declared kernel access mode."""
    device_key: str
    """Key of the device that allocated the buffer."""

    def __init__(self, storage: torch.Tensor, access: BufferAccess, device_key: str) -> None:
        if storage.dim() != 1 or storage.dtype != torch.float32:
            raise ValueError("DeviceBuffer storage must be a flat float32 tensor")
        self.storage = storage
        self.access = access
        self.device_key = device_key
        self._host_view: Optional[np.ndarray] = (
            storage.numpy() if storage.device.type == "cpu" else None
        )
        self._released = False

    @property
    def size(self) -> int:
        """Number of float32 elements."""
        return self.storage.numel()

    @property
    def nbytes(self) -> int:
        return self.size * 4

    @property
    def released(self) -> bool:
        return self._released

    def _view(self, index: int) -> np.ndarray:
        if self._released:
            raise DeviceFault(f"Access to released buffer on {self.device_key}")
        if self._host_view is None:
            raise DeviceFault("Element access is only available for host-resident buffers")
        if index < 0 or index >= self.size:
            raise DeviceFault(
                f"Out-of-range access at element {index} of a {self.size}-element buffer"
            )
        return self._host_view

    def load(self, index: int) -> np.float32:
        return self._view(index)[index]

    def store(self, index: int, value: np.float32) -> None:
        self._view(index)[index] = value

    def mark_released(self) -> None:
        """Drop the storage reference. Further element access raises :class:`DeviceFault`."""
        self._released = True
        self._host_view = None
        self.storage = torch.empty(0, dtype=torch.float32)

    def __repr__(self) -> str:
        state = "released" if self._released else f"{self.size} floats"
        return f"DeviceBuffer({self.access.value}, {state}, device={self.device_key})"

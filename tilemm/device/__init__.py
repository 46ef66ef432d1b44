"""Compute devices and device selection."""

from __future__ import annotations

from typing import List, Optional

from tilemm.data import DeviceInfo
from tilemm.env import get_tilemm_device
from tilemm.errors import ConfigurationError

from .base import Device
from .cuda import CudaDevice, is_cuda_available
from .emulated import EmulatedDevice


def get_device(kind: Optional[str] = None) -> Device:
    """Create a device of the requested kind.

    Parameters
    ----------
    kind : Optional[str]
        ``"cuda"``, ``"emulated"`` or ``"auto"`` (CUDA when PyTorch sees a GPU, otherwise the
        emulated device). Default is the ``TILEMM_DEVICE`` environment variable.

    Returns
    -------
    Device
        A new device. The caller owns it and should close it.
    """
    kind = (kind or get_tilemm_device()).lower()
    if kind == "auto":
        kind = "cuda" if is_cuda_available() else "emulated"
    if kind == "cuda":
        return CudaDevice()
    if kind == "emulated":
        return EmulatedDevice()
    raise ConfigurationError(f"Unknown device kind '{kind}'")


def list_devices() -> List[DeviceInfo]:
    """Capabilities of every device tilemm can drive, CUDA devices first."""
    infos: List[DeviceInfo] = []
    if is_cuda_available():
        import torch

        for index in range(torch.cuda.device_count()):
            device = CudaDevice(index)
            infos.append(device.info)
            device.close()
    emulated = EmulatedDevice()
    infos.append(emulated.info)
    emulated.close()
    return infos


__all__ = [
    "CudaDevice",
    "Device",
    "EmulatedDevice",
    "get_device",
    "is_cuda_available",
    "list_devices",
]

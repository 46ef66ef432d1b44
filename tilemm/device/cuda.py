"""CUDA device driven through PyTorch."""

from __future__ import annotations

import concurrent.futures
import itertools
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, Optional

import torch

from tilemm.data import DeviceInfo
from tilemm.errors import AllocationError, DeviceFault, ReadbackTimeout
from tilemm.logging import get_logger

from .base import Device

logger = get_logger("CudaDevice")

_CUDA_MAX_THREADS_PER_BLOCK = 1024
_DEFAULT_SHARED_MEMORY_PER_BLOCK = 48 * 1024

_device_ids = itertools.count()


def is_cuda_available() -> bool:
    return torch.cuda.is_available()


class CudaDevice(Device):
    """A CUDA GPU. Kernels are enqueued on the current stream of the device.

    Parameters
    ----------
    index : int
        CUDA device ordinal.

    Raises
    ------
    AllocationError
        If CUDA is not available or the ordinal does not exist.
    """

    def __init__(self, index: int = 0) -> None:
        super().__init__()
        if not is_cuda_available():
            raise AllocationError("CUDA is not available from PyTorch")
        if index < 0 or index >= torch.cuda.device_count():
            raise AllocationError(
                f"CUDA device {index} does not exist ({torch.cuda.device_count()} visible)"
            )
        self._index = index
        self._key = f"cuda:{index}:{next(_device_ids)}"
        self._torch_device = torch.device("cuda", index)
        props = torch.cuda.get_device_properties(index)
        self._info = DeviceInfo(
            name=props.name,
            backend="cuda",
            compute_units=props.multi_processor_count,
            max_workgroup_size=_CUDA_MAX_THREADS_PER_BLOCK,
            local_mem_size=getattr(
                props, "shared_memory_per_block", _DEFAULT_SHARED_MEMORY_PER_BLOCK
            ),
            global_mem_size=props.total_memory,
        )
        self._watchdog = ThreadPoolExecutor(max_workers=1, thread_name_prefix="tilemm-watchdog")

    @property
    def info(self) -> DeviceInfo:
        return self._info

    @property
    def key(self) -> str:
        return self._key

    @property
    def torch_device(self) -> torch.device:
        return self._torch_device

    def _new_storage(self, num_floats: int) -> torch.Tensor:
        try:
            return torch.empty(num_floats, dtype=torch.float32, device=self._torch_device)
        except torch.cuda.OutOfMemoryError as e:
            raise AllocationError(
                f"Out of memory allocating {num_floats * 4} bytes on {self.key}"
            ) from e

    def enqueue(self, launch: Callable[..., Any], *args: Any) -> None:
        """Call a launch wrapper with this device current. The wrapper enqueues on the current
        stream and returns without waiting for the kernel."""
        if self._closed:
            raise DeviceFault(f"Device {self.key} is closed")
        self._check_usable()
        with torch.cuda.device(self._index):
            launch(*args)

    def _wait(self, timeout: Optional[float]) -> None:
        event = torch.cuda.Event()
        event.record(torch.cuda.current_stream(self._torch_device))
        future = self._watchdog.submit(event.synchronize)
        try:
            future.result(timeout=timeout)
        except concurrent.futures.TimeoutError as e:
            raise ReadbackTimeout(
                f"Enqueued work on {self.key} did not finish within {timeout} seconds"
            ) from e

    def close(self) -> None:
        if self._closed:
            return
        self._watchdog.shutdown(wait=False, cancel_futures=True)
        super().close()

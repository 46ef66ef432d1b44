"""Abstract compute device: buffer lifetime, ordering and blocking readback."""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from typing import Callable, Dict, Iterable, List, Optional, Tuple

import torch

from tilemm.data import BufferAccess, DeviceBuffer, DeviceInfo
from tilemm.errors import AllocationError, DeviceFault, ReadbackTimeout
from tilemm.logging import get_logger

logger = get_logger("Device")

CloseCallback = Callable[["Device"], None]


class Device(ABC):
    """A device that owns buffers and executes enqueued kernels in order.

    Kernel launches are asynchronous with respect to the host. :meth:`synchronize` (and
    :meth:`read`, which calls it) is the only blocking call; it drains every launch enqueued
    before it and surfaces any failure they raised. Subclasses provide storage allocation,
    the wait itself and their own launch entry points.

    A wait that outlives its watchdog leaves the device faulted. The launch it waited on is
    not cancelled, so every later allocation, launch or readback raises :class:`DeviceFault`
    instead of running next to it; only :meth:`close` remains.
    """

    def __init__(self) -> None:
        self._buffers: Dict[int, Tuple[DeviceBuffer, int]] = {}
        self._allocated_bytes = 0
        self._closed = False
        self._faulted = False
        self._lock = threading.RLock()
        self._close_callbacks: List[CloseCallback] = []

    @property
    @abstractmethod
    def info(self) -> DeviceInfo:
        """Capabilities of this device."""
        ...

    @property
    @abstractmethod
    def key(self) -> str:
        """Identifier unique to this device object. Compiled kernels are cached per key."""
        ...

    @abstractmethod
    def _new_storage(self, num_floats: int) -> torch.Tensor:
        """Allocate uninitialized flat float32 storage on the device."""
        ...

    @abstractmethod
    def _wait(self, timeout: Optional[float]) -> None:
        """Block until all enqueued work has finished, raising :class:`ReadbackTimeout` if it
        does not finish within ``timeout`` seconds."""
        ...

    @property
    def allocated_bytes(self) -> int:
        """Bytes currently held by live buffers."""
        return self._allocated_bytes

    @property
    def live_buffers(self) -> int:
        return len(self._buffers)

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def faulted(self) -> bool:
        """Whether a watchdog expired on this device."""
        return self._faulted

    def _check_usable(self) -> None:
        if self._faulted:
            raise DeviceFault(
                f"Device {self.key} is unusable after watchdog expiry; a timed-out launch may "
                f"still be running. Close it and use a new device"
            )

    def add_close_callback(self, callback: CloseCallback) -> None:
        """Call ``callback(device)`` when the device is closed, or now if it already is."""
        with self._lock:
            if not self._closed:
                self._close_callbacks.append(callback)
                return
        callback(self)

    def synchronize(self, timeout: Optional[float] = None) -> None:
        """Block until all enqueued work has finished.

        Parameters
        ----------
        timeout : Optional[float]
            Seconds to wait before giving up. None waits indefinitely.

        Raises
        ------
        ReadbackTimeout
            If the work does not finish within ``timeout``. The device is faulted afterwards.
        DeviceFault
            If the device is already faulted, or an enqueued kernel faulted.
        """
        self._check_usable()
        try:
            self._wait(timeout)
        except ReadbackTimeout:
            self._faulted = True
            logger.error("Watchdog expired after %s seconds on %s", timeout, self.key)
            raise

    def allocate(
        self,
        num_floats: int,
        access: BufferAccess,
        *,
        host_data: Optional[torch.Tensor] = None,
        fill_value: Optional[float] = None,
    ) -> DeviceBuffer:
        """Create a buffer, optionally initialized from host data or with a fill value.

        Parameters
        ----------
        num_floats : int
            Buffer length in float32 elements.
        access : BufferAccess
            The access the kernel declares for this buffer.
        host_data : Optional[torch.Tensor]
            Host float32 data copied into the buffer. Its element count must equal
            ``num_floats``.
        fill_value : Optional[float]
            Value every element is set to when ``host_data`` is not given.

        Returns
        -------
        DeviceBuffer
            The new buffer.

        Raises
        ------
        AllocationError
            If the device is closed, the size is not positive, or the device is out of memory.
        DeviceFault
            If the device is faulted.
        """
        if self._closed:
            raise AllocationError(f"Device {self.key} is closed")
        self._check_usable()
        if num_floats <= 0:
            raise AllocationError(f"Buffer size must be positive, got {num_floats} floats")
        nbytes = num_floats * 4
        if self._allocated_bytes + nbytes > self.info.global_mem_size:
            raise AllocationError(
                f"Cannot allocate {nbytes} bytes on {self.info.name}: {self._allocated_bytes} of "
                f"{self.info.global_mem_size} bytes already in use"
            )

        storage = self._new_storage(num_floats)
        if host_data is not None:
            flat = host_data.reshape(-1)
            if flat.numel() != num_floats:
                raise ValueError(
                    f"Host data has {flat.numel()} elements, buffer has {num_floats}"
                )
            storage.copy_(flat)
        elif fill_value is not None:
            storage.fill_(fill_value)

        buffer = DeviceBuffer(storage, access, self.key)
        with self._lock:
            self._buffers[id(buffer)] = (buffer, nbytes)
            self._allocated_bytes += nbytes
        logger.debug("Allocated %s (%d bytes) on %s", access.value, nbytes, self.key)
        return buffer

    def release(self, buffer: DeviceBuffer) -> None:
        """Release a buffer. Releasing twice is a no-op."""
        with self._lock:
            entry = self._buffers.pop(id(buffer), None)
            if entry is None:
                return
            self._allocated_bytes -= entry[1]
        buffer.mark_released()

    def release_when_idle(self, buffers: Iterable[DeviceBuffer]) -> None:
        """Release ``buffers`` once every launch enqueued so far has finished.

        The default releases at once, which suits backends whose storage lifetime is ordered
        with the launches (CUDA's caching allocator is stream ordered). Backends whose
        kernels touch buffers from the host defer until their queue drains.
        """
        for buffer in buffers:
            self.release(buffer)

    def read(self, buffer: DeviceBuffer, timeout: Optional[float] = None) -> torch.Tensor:
        """Copy a buffer back to the host after all enqueued work has finished.

        Parameters
        ----------
        buffer : DeviceBuffer
            The buffer to read.
        timeout : Optional[float]
            Watchdog limit in seconds for the wait on enqueued work.

        Returns
        -------
        torch.Tensor
            A flat float32 CPU tensor holding a copy of the buffer.
        """
        self.synchronize(timeout)
        return buffer.storage.detach().to("cpu", copy=True)

    def close(self) -> None:
        """Release every live buffer, mark the device closed and run the close callbacks.
        Idempotent."""
        with self._lock:
            if self._closed:
                return
            for buffer, _ in list(self._buffers.values()):
                self.release(buffer)
            self._closed = True
            callbacks, self._close_callbacks = self._close_callbacks, []
        for callback in callbacks:
            callback(self)

    def __enter__(self) -> "Device":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

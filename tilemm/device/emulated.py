"""A host-side device that executes work-item programs with workgroup barrier semantics."""

from __future__ import annotations

import concurrent.futures
import itertools
import random
import time
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Iterable, List, Literal, Optional, Sequence, Tuple

import numpy as np
import torch

from tilemm.data import DeviceBuffer, DeviceInfo, LaunchGeometry
from tilemm.errors import ConfigurationError, DeviceFault, ReadbackTimeout
from tilemm.kernel.signature import LocalMemory
from tilemm.kernel.workitem import BARRIER, WorkItem, WorkItemProgram
from tilemm.logging import get_logger

from .base import Device

logger = get_logger("EmulatedDevice")

Schedule = Literal["in_order", "shuffled"]

_device_ids = itertools.count()


class EmulatedDevice(Device):
    """Executes work-item programs on the host.

    Launches go onto a single-worker command queue, so they run asynchronously to the caller and
    in submission order. Within a launch, workgroups run one at a time; within a workgroup,
    every work-item runs until it yields a barrier or returns, and the group is resumed only
    when all of its members have reached the same barrier.

    Shared arenas (static or passed as :class:`LocalMemory`) are allocated fresh for every
    workgroup and filled with NaN, so reading a slot nobody staged shows up in the result.

    Parameters
    ----------
    max_workgroup_size : int
        Largest workgroup the device accepts.
    local_mem_size : int
        Bytes of shared memory per workgroup.
    global_mem_size : int
        Bytes available for buffers.
    schedule : Literal["in_order", "shuffled"]
        ``shuffled`` visits workgroups, and work-items within every barrier phase, in a
        pseudo-random order drawn from ``seed``.
    seed : int
        Seed of the shuffled schedule.
    """

    def __init__(
        self,
        *,
        name: str = "tilemm emulated device",
        max_workgroup_size: int = 1024,
        local_mem_size: int = 48 * 1024,
        global_mem_size: int = 256 * 1024 * 1024,
        schedule: Schedule = "in_order",
        seed: int = 0,
    ) -> None:
        super().__init__()
        if schedule not in ("in_order", "shuffled"):
            raise ValueError(f"Invalid schedule '{schedule}'")
        self._info = DeviceInfo(
            name=name,
            backend="emulated",
            compute_units=1,
            max_workgroup_size=max_workgroup_size,
            local_mem_size=local_mem_size,
            global_mem_size=global_mem_size,
        )
        self._key = f"emulated:{next(_device_ids)}"
        self._schedule = schedule
        self._rng = random.Random(seed)
        self._queue = ThreadPoolExecutor(max_workers=1, thread_name_prefix="tilemm-emulated")
        self._pending: List[Future] = []

    @property
    def info(self) -> DeviceInfo:
        return self._info

    @property
    def key(self) -> str:
        return self._key

    def _new_storage(self, num_floats: int) -> torch.Tensor:
        return torch.empty(num_floats, dtype=torch.float32)

    def enqueue_program(
        self, program: WorkItemProgram, geometry: LaunchGeometry, args: Sequence[object]
    ) -> Future:
        """Enqueue one launch of ``program`` over ``geometry``.

        Raises
        ------
        ConfigurationError
            If the workgroup or its shared memory exceeds the device limits.
        """
        if self._closed:
            raise DeviceFault(f"Device {self.key} is closed")
        self._check_usable()
        if geometry.workgroup_size > self._info.max_workgroup_size:
            raise ConfigurationError(
                f"Workgroup of {geometry.workgroup_size} items exceeds the device maximum of "
                f"{self._info.max_workgroup_size}"
            )
        local_bytes = program.static_local_bytes + sum(
            arg.nbytes for arg in args if isinstance(arg, LocalMemory)
        )
        if local_bytes > self._info.local_mem_size:
            raise ConfigurationError(
                f"{program.name} needs {local_bytes} bytes of local memory, device has "
                f"{self._info.local_mem_size}"
            )

        logger.debug(
            "Enqueue %s: %s groups of %s items", program.name, geometry.num_groups,
            geometry.local_size,
        )
        future = self._queue.submit(self._run_ndrange, program, geometry, tuple(args))
        self._pending.append(future)
        return future

    def _wait(self, timeout: Optional[float]) -> None:
        deadline = None if timeout is None else time.monotonic() + timeout
        while self._pending:
            future = self._pending[0]
            remaining = None if deadline is None else max(0.0, deadline - time.monotonic())
            try:
                future.result(timeout=remaining)
            except concurrent.futures.TimeoutError as e:
                raise ReadbackTimeout(
                    f"Enqueued work on {self.key} did not finish within {timeout} seconds"
                ) from e
            finally:
                if future.done():
                    self._pending.pop(0)

    def release_when_idle(self, buffers: Iterable[DeviceBuffer]) -> None:
        buffers = list(buffers)
        if not self._pending:
            super().release_when_idle(buffers)
            return

        def release(_future: Future) -> None:
            for buffer in buffers:
                self.release(buffer)

        logger.debug("Deferring release of %d buffers on %s", len(buffers), self.key)
        self._pending[-1].add_done_callback(release)

    def close(self) -> None:
        if self._closed:
            return
        self._queue.shutdown(wait=False, cancel_futures=True)
        self._pending.clear()
        super().close()

    def _ordered(self, values: list) -> list:
        if self._schedule == "shuffled":
            values = list(values)
            self._rng.shuffle(values)
        return values

    def _run_ndrange(
        self, program: WorkItemProgram, geometry: LaunchGeometry, args: Tuple[object, ...]
    ) -> None:
        groups = list(itertools.product(*(range(n) for n in geometry.num_groups)))
        for group_id in self._ordered(groups):
            self._run_workgroup(program, group_id, geometry.local_size, args)

    def _run_workgroup(
        self,
        program: WorkItemProgram,
        group_id: Tuple[int, int],
        local_size: Tuple[int, int],
        args: Tuple[object, ...],
    ) -> None:
        static_local = tuple(_new_arena(n) for n in program.static_local)
        bound_args = tuple(
            _new_arena(arg.num_floats) if isinstance(arg, LocalMemory) else arg for arg in args
        )
        items = [
            program(
                WorkItem(
                    local_id=local_id,
                    group_id=group_id,
                    local_size=local_size,
                    static_local=static_local,
                ),
                *bound_args,
            )
            for local_id in itertools.product(range(local_size[0]), range(local_size[1]))
        ]

        phase = 0
        while items:
            waiting = []
            finished = 0
            for item in self._ordered(items):
                try:
                    token = next(item)
                except StopIteration:
                    finished += 1
                    continue
                if token is not BARRIER:
                    raise DeviceFault(
                        f"{program.name}: work-item yielded {token!r} instead of BARRIER"
                    )
                waiting.append(item)
            if waiting and finished:
                raise DeviceFault(
                    f"{program.name}: barrier {phase} of workgroup {group_id} reached by "
                    f"{len(waiting)} of {len(waiting) + finished} work-items"
                )
            items = waiting
            phase += 1


def _new_arena(num_floats: int) -> np.ndarray:
    return np.full(num_floats, np.nan, dtype=np.float32)

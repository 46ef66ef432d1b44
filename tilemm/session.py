"""Host orchestration of the tiled matmul: stage, launch, read back, validate."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, List, Optional, Union

import torch

from tilemm.compile import BuilderRegistry, CompiledKernel
from tilemm.data import (
    BoundaryPolicy,
    BufferAccess,
    DeviceBuffer,
    KernelConfig,
    LaunchGeometry,
    ProblemSize,
    as_row_major,
)
from tilemm.device import Device, get_device
from tilemm.env import get_tilemm_readback_timeout
from tilemm.errors import BuildError, ConfigurationError
from tilemm.kernel import LocalMemory
from tilemm.logging import get_logger
from tilemm.reference import reference_multiply
from tilemm.testing.comparators import CompareResult, ExactComparator

logger = get_logger("Session")


@dataclass
class MultiplyResult:
    """Device output together with the reference and their comparison."""

    output: torch.Tensor
    reference: torch.Tensor
    comparison: CompareResult

    @property
    def passed(self) -> bool:
        return self.comparison.passed


class ComputeSession:
    """A scoped compute session: acquire a device, build the kernel, run, release.

    Used as a context manager. Entering validates the configuration against the device and
    builds (or fetches from the registry cache) the kernel; leaving releases every resource the
    session acquired, on every exit path including a failed build.

    Parameters
    ----------
    config : KernelConfig
        Tile size and boundary policy the kernel is specialized with.
    device : Optional[Device]
        Device to run on. When omitted the session creates one with
        :func:`tilemm.device.get_device` and closes it on exit; a device passed in stays open.
    registry : Optional[BuilderRegistry]
        Registry used to build the kernel. Default is the shared instance.
    readback_timeout : Optional[float]
        Watchdog limit in seconds for each blocking readback. Default is
        ``TILEMM_READBACK_TIMEOUT``.

    Examples
    --------
    >>> with ComputeSession(KernelConfig(tile_size=16)) as session:
    ...     c = session.multiply(a, b)
    """

    def __init__(
        self,
        config: KernelConfig,
        device: Optional[Device] = None,
        *,
        registry: Optional[BuilderRegistry] = None,
        readback_timeout: Optional[float] = None,
    ) -> None:
        self.config = config
        self._device = device
        self._owns_device = device is None
        self._registry = registry
        self._readback_timeout = readback_timeout
        self._kernel: Optional[CompiledKernel] = None
        self._active = False

    @property
    def device(self) -> Device:
        if self._device is None:
            raise RuntimeError("ComputeSession has not been entered")
        return self._device

    @property
    def kernel(self) -> CompiledKernel:
        if self._kernel is None:
            raise RuntimeError("ComputeSession has not been entered")
        return self._kernel

    def __enter__(self) -> "ComputeSession":
        if self._active:
            raise RuntimeError("ComputeSession is already active")
        if self._registry is None:
            self._registry = BuilderRegistry.get_instance()
        if self._readback_timeout is None:
            self._readback_timeout = get_tilemm_readback_timeout()
        if self._device is None:
            self._device = get_device()

        try:
            self._device.info.check_kernel_config(self.config)
            self._kernel = self._registry.build(self.config, self._device)
        except BuildError as e:
            logger.error(
                "Kernel build failed for %s on %s: %s\n%s",
                self.config.cache_key,
                self._device.key,
                e,
                e.log,
            )
            self._release()
            raise
        except BaseException:
            self._release()
            raise
        self._active = True
        logger.info("Session ready: %r", self._kernel)
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self._release()

    def _release(self) -> None:
        self._active = False
        self._kernel = None
        if self._owns_device and self._device is not None:
            self._device.close()
            self._device = None

    def _check_problem(self, problem: ProblemSize) -> None:
        if self.config.policy is BoundaryPolicy.STRICT and not problem.is_tile_aligned(
            self.config.tile_size
        ):
            raise ConfigurationError(
                f"Strict kernel requires M, K and N to be multiples of the tile size "
                f"{self.config.tile_size}, got M={problem.M}, K={problem.K}, N={problem.N}; "
                f"use the general policy for unaligned problems"
            )

    def multiply(self, a: Any, b: Any, *, fill_value: Optional[float] = None) -> torch.Tensor:
        """Compute ``a @ b`` on the device.

        Parameters
        ----------
        a : Any
            ``M x K`` left operand (tensor, array or nested list).
        b : Any
            ``K x N`` right operand.
        fill_value : Optional[float]
            Value the output buffer is filled with before the launch. Cells the kernel does not
            write keep it.

        Returns
        -------
        torch.Tensor
            The ``M x N`` float32 result on the host.

        Raises
        ------
        ConfigurationError
            On a dimension mismatch, or a strict kernel with an unaligned problem. Raised before
            any buffer is allocated.
        AllocationError
            If the device cannot hold the buffers.
        ReadbackTimeout
            If the readback watchdog expires. The buffers of this call are released once the
            launch finishes, and the device is faulted.
        DeviceFault
            If the kernel faulted, or an earlier readback on the device timed out.
        """
        if not self._active:
            raise RuntimeError("ComputeSession is not active; use it as a context manager")
        a = as_row_major(a)
        b = as_row_major(b)
        problem = ProblemSize.from_operands(a, b)
        self._check_problem(problem)
        geometry = LaunchGeometry.for_problem(problem, self.config)

        device = self.device
        buffers: List[DeviceBuffer] = []
        try:
            a_buf = device.allocate(a.numel(), BufferAccess.READ_ONLY, host_data=a)
            buffers.append(a_buf)
            b_buf = device.allocate(b.numel(), BufferAccess.READ_ONLY, host_data=b)
            buffers.append(b_buf)
            c_buf = device.allocate(
                problem.M * problem.N, BufferAccess.WRITE_ONLY, fill_value=fill_value
            )
            buffers.append(c_buf)

            args: List[object] = [problem.M, problem.N, problem.K, a_buf, b_buf, c_buf]
            if self.config.check_bounds:
                args.append(LocalMemory(self.config.tile_floats))
                args.append(LocalMemory(self.config.tile_floats))

            logger.debug(
                "Launch %s: M=%d K=%d N=%d, %s groups of %s",
                self.config.cache_key,
                problem.M,
                problem.K,
                problem.N,
                geometry.num_groups,
                geometry.local_size,
            )
            self.kernel.launch(geometry, *args)
            flat = device.read(c_buf, timeout=self._readback_timeout)
        finally:
            # A timed-out launch may still be using the buffers
            device.release_when_idle(buffers)
        return flat.reshape(problem.M, problem.N)

    def run(self, a: Any, b: Any, *, raise_on_mismatch: bool = False) -> MultiplyResult:
        """Multiply on the device and check the result against :func:`reference_multiply`.

        Parameters
        ----------
        raise_on_mismatch : bool
            Raise :class:`ValidationMismatch` listing every mismatch instead of returning a
            failed result.
        """
        output = self.multiply(a, b)
        reference = reference_multiply(a, b)
        comparison = ExactComparator().compare(reference, output)
        if comparison.passed:
            logger.info("Validation passed for %s", tuple(output.shape))
        else:
            logger.warning("Validation failed:\n%s", comparison.details)
        if raise_on_mismatch:
            comparison.raise_for_mismatch()
        return MultiplyResult(output=output, reference=reference, comparison=comparison)


def tiled_multiply(
    a: Any,
    b: Any,
    tile_size: int,
    policy: Union[BoundaryPolicy, str] = BoundaryPolicy.GENERAL,
    *,
    device: Optional[Device] = None,
    fill_value: Optional[float] = None,
) -> torch.Tensor:
    """Compute ``a @ b`` with the tiled kernel in a one-shot session.

    Parameters
    ----------
    a : Any
        ``M x K`` left operand.
    b : Any
        ``K x N`` right operand.
    tile_size : int
        Tile edge length T.
    policy : Union[BoundaryPolicy, str]
        ``"general"`` (bounds-checked) or ``"strict"`` (tile-aligned problems only).
    device : Optional[Device]
        Device to run on; see :class:`ComputeSession`.
    fill_value : Optional[float]
        Initial value of the output buffer.

    Returns
    -------
    torch.Tensor
        The ``M x N`` float32 product.
    """
    config = KernelConfig.create(tile_size, policy)
    with ComputeSession(config, device) as session:
        return session.multiply(a, b, fill_value=fill_value)

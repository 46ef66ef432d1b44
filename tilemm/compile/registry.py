"""Builder registry for dispatching and caching kernel builds."""

from __future__ import annotations

import threading
from typing import ClassVar, Dict, List, Optional, Set, Tuple, Type

from tilemm.data import KernelConfig
from tilemm.device import Device
from tilemm.logging import get_logger

from .builder import Builder, BuildError
from .builders import CudaBuilder, EmulatedBuilder
from .runnable import CompiledKernel

logger = get_logger("BuilderRegistry")

_BUILDER_PRIORITY: List[Type[Builder]] = [CudaBuilder, EmulatedBuilder]
"""Builder types in priority order for automatic selection."""


class BuilderRegistry:
    """Central registry for managing and dispatching builders.

    The registry selects the first builder that can build for a device and caches the result
    per (device, configuration), so a given tile size and policy is specialized once per
    device. Closing a device evicts its kernels.

    This class follows the singleton pattern - use get_instance() to obtain the shared
    registry instance.
    """

    _instance: ClassVar[Optional["BuilderRegistry"]] = None
    """Singleton instance of the BuilderRegistry."""

    _builders: List[Builder]
    """List of available builders in priority order."""

    _cache: Dict[Tuple[str, str], CompiledKernel]
    """Compiled kernels keyed by (device key, config cache key)."""

    _watched: Set[str]
    """Keys of devices whose close evicts their cached kernels."""

    def __init__(self, builders: List[Builder]) -> None:
        """Initialize the registry with a list of builders.

        Parameters
        ----------
        builders : List[Builder]
            List of builder instances to use. Must contain at least one builder.

        Raises
        ------
        ValueError
            If the builders list is empty.
        """
        if len(builders) == 0:
            raise ValueError("BuilderRegistry requires at least one builder")
        self._builders = list(builders)
        self._cache = {}
        self._watched = set()
        self._lock = threading.Lock()

    @classmethod
    def get_instance(cls) -> "BuilderRegistry":
        """Get the singleton registry instance.

        On first call, this method instantiates all available builders (those whose
        is_available() returns True) in priority order:

        - CudaBuilder: CUDA devices, via torch inline extensions.
        - EmulatedBuilder: the emulated device.

        Returns
        -------
        BuilderRegistry
            The shared registry instance.
        """
        if cls._instance is None:
            builders = []
            for builder_type in _BUILDER_PRIORITY:
                if builder_type.is_available():
                    builders.append(builder_type())
            cls._instance = BuilderRegistry(builders)
        return cls._instance

    def build(self, config: KernelConfig, device: Device) -> CompiledKernel:
        """Build the kernel for ``config`` on ``device``, using the cache if available.

        Raises
        ------
        BuildError
            If no registered builder can build for the device, or if the build fails. Failed
            builds are not cached and are never retried with other parameters.
        """
        key = (device.key, config.cache_key)
        with self._lock:
            cached = self._cache.get(key)
            if cached is not None:
                logger.debug("Cache hit for %s on %s", config.cache_key, device.key)
                return cached

            for builder in self._builders:
                if builder.can_build(device):
                    kernel = builder.build(config, device)
                    self._cache[key] = kernel
                    logger.info("Built %r", kernel)
                    break
            else:
                raise BuildError(f"No registered builder can build for device '{device.key}'")
            watch = device.key not in self._watched
            self._watched.add(device.key)
        if watch:
            device.add_close_callback(self.evict_device)
        return kernel

    def evict_device(self, device: Device) -> int:
        """Drop every cached kernel bound to ``device``.

        Called when the device closes. Build artifacts stay on disk so a later build of the
        same configuration can reuse them; :meth:`cleanup` removes them.

        Returns
        -------
        int
            Number of kernels dropped.
        """
        with self._lock:
            keys = [key for key in self._cache if key[0] == device.key]
            for key in keys:
                del self._cache[key]
            self._watched.discard(device.key)
        return len(keys)

    def cleanup(self) -> None:
        """Clean up all cached kernels and clear the cache.

        Every kernel is cleaned up even if an earlier one fails; the first failure is re-raised
        afterwards.
        """
        with self._lock:
            kernels = list(self._cache.values())
            self._cache.clear()
        first_error: Optional[BaseException] = None
        for kernel in kernels:
            try:
                kernel.cleanup()
            except Exception as e:
                logger.warning("Cleanup of %r failed: %s", kernel, e)
                if first_error is None:
                    first_error = e
        if first_error is not None:
            raise first_error

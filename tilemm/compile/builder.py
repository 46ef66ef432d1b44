"""Abstract base class for kernel builders."""

from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import Path

from tilemm.data import KernelConfig
from tilemm.device import Device
from tilemm.env import get_tilemm_cache_path
from tilemm.errors import BuildError

from .runnable import CompiledKernel

__all__ = ["Builder", "BuildError"]


class Builder(ABC):
    """Abstract base class for specializing the tiled kernel for a device.

    A Builder turns a (KernelConfig, Device) pair into a :class:`CompiledKernel`. Builders that
    produce artifacts on disk keep them under ``TILEMM_CACHE_PATH / build_dir_name``.
    """

    def __init__(self, build_dir_name: str) -> None:
        """Initialize the builder.

        Parameters
        ----------
        build_dir_name : str
            The name of the build subdirectory of the concrete builder. This should be unique
            for each builder type.
        """
        self._build_dir_name = build_dir_name

    @staticmethod
    @abstractmethod
    def is_available() -> bool:
        """Check if this builder is usable in the current environment."""
        ...

    @abstractmethod
    def can_build(self, device: Device) -> bool:
        """Check if this builder can produce kernels for the given device."""
        ...

    @abstractmethod
    def build(self, config: KernelConfig, device: Device) -> CompiledKernel:
        """Specialize the kernel for ``config`` and bind it to ``device``.

        Parameters
        ----------
        config : KernelConfig
            Tile size and boundary policy.
        device : Device
            The device the kernel will be launched on.

        Returns
        -------
        CompiledKernel
            The launchable kernel.

        Raises
        ------
        BuildError
            If specialization or compilation fails. The exception carries the full compiler
            diagnostic.
        """
        ...

    def get_build_path(self, package_name: str) -> Path:
        """Build directory for a package: ``TILEMM_CACHE_PATH / build_dir_name / package``."""
        return get_tilemm_cache_path() / self._build_dir_name / package_name

"""Compiled kernel wrapper."""

from __future__ import annotations

from typing import Any, Callable, Dict, Literal, Optional, Sequence, Union

from pydantic import BaseModel, ConfigDict, Field

from tilemm.data import DeviceBuffer, KernelConfig, LaunchGeometry
from tilemm.errors import ConfigurationError
from tilemm.kernel.signature import KernelSignature


class KernelMetadata(BaseModel):
    """Metadata about how a compiled kernel was built."""

    model_config = ConfigDict(use_attribute_docstrings=True)

    build_type: Union[Literal["emulated", "cuda"], str]
    """The builder that produced this kernel."""
    kernel_name: str
    """Name of the kernel entry point."""
    config: KernelConfig
    """The configuration the kernel was specialized with."""
    device_key: str
    """Key of the device the kernel is bound to."""
    build_log: str = ""
    """Compiler output of a successful build, empty if the builder produced none."""
    misc: Dict[str, Any] = Field(default_factory=dict)
    """Builder-specific information, e.g. the build directory."""


Launcher = Callable[[LaunchGeometry, Sequence[object]], None]


class CompiledKernel:
    """A kernel specialized for one configuration and bound to one device.

    Launching checks the positional arguments against the declared signature and the workgroup
    shape against the configuration, then hands off to the builder's launcher, which enqueues
    without waiting.
    """

    signature: KernelSignature
    """Declared positional parameters."""
    metadata: KernelMetadata
    """How the kernel was built."""

    def __init__(
        self,
        launcher: Launcher,
        signature: KernelSignature,
        metadata: KernelMetadata,
        cleaner: Optional[Callable[[], None]] = None,
    ) -> None:
        self._launcher = launcher
        self.signature = signature
        self.metadata = metadata
        self._cleaner = cleaner

    @property
    def config(self) -> KernelConfig:
        return self.metadata.config

    def launch(self, geometry: LaunchGeometry, *args: object) -> None:
        """Enqueue one launch.

        Parameters
        ----------
        geometry : LaunchGeometry
            Global and local sizes. The local size must be T x T.
        args : object
            Positional kernel arguments, in the order of :attr:`signature`.

        Raises
        ------
        ConfigurationError
            If the arguments do not match the signature, a buffer belongs to another device, or
            the workgroup shape does not match the tile size.
        """
        tile = self.config.tile_size
        if geometry.local_size != (tile, tile):
            raise ConfigurationError(
                f"Kernel specialized for {tile}x{tile} workgroups cannot be launched with local "
                f"size {geometry.local_size}"
            )
        self.signature.check(args)
        for arg in args:
            if isinstance(arg, DeviceBuffer) and arg.device_key != self.metadata.device_key:
                raise ConfigurationError(
                    f"Buffer on {arg.device_key} passed to a kernel bound to "
                    f"{self.metadata.device_key}"
                )
        self._launcher(geometry, args)

    def cleanup(self) -> None:
        """Release build artifacts. Idempotent."""
        if self._cleaner:
            try:
                self._cleaner()
            finally:
                self._cleaner = None

    def __repr__(self) -> str:
        return (
            f"CompiledKernel({self.metadata.kernel_name}, {self.metadata.build_type}, "
            f"{self.config.cache_key}, device={self.metadata.device_key})"
        )

"""Device capability description."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from tilemm.errors import ConfigurationError

from .problem import KernelConfig


class DeviceInfo(BaseModel):
    """Capabilities of a compute device that constrain kernel configuration."""

    model_config = ConfigDict(frozen=True, use_attribute_docstrings=True)

    name: str
    """Human readable device name."""
    backend: Literal["emulated", "cuda"]
    """Which device implementation drives this device."""
    compute_units: int = Field(default=1, gt=0)
    """Number of parallel compute units (multiprocessors)."""
    max_workgroup_size: int = Field(gt=0)
    """Maximum number of work-items in one workgroup."""
    local_mem_size: int = Field(gt=0)
    """Bytes of shared (local) memory available to one workgroup."""
    global_mem_size: int = Field(gt=0)
    """Bytes of global memory available for buffers."""

    def check_kernel_config(self, config: KernelConfig) -> None:
        """Reject a kernel configuration this device cannot launch.

        Raises
        ------
        ConfigurationError
            If the T x T workgroup exceeds the maximum workgroup size, or the two tile caches do
            not fit into local memory.
        """
        if config.workgroup_size > self.max_workgroup_size:
            raise ConfigurationError(
                f"Tile size {config.tile_size} needs {config.workgroup_size} work-items per "
                f"workgroup, but {self.name} supports at most {self.max_workgroup_size}"
            )
        if config.shared_memory_bytes > self.local_mem_size:
            raise ConfigurationError(
                f"Tile size {config.tile_size} needs {config.shared_memory_bytes} bytes of local "
                f"memory, but {self.name} has {self.local_mem_size}"
            )

"""Kernel build subsystem.

This package specializes the tiled kernel for a configuration and binds it to a device.
It includes:
- Builder: Abstract base class for the per-device build implementations
- BuilderRegistry: Central registry for dispatching and caching builds
- CompiledKernel: Launchable wrapper around a built kernel
- KernelMetadata: Metadata about the build

The typical workflow is:
1. Get the singleton registry: registry = BuilderRegistry.get_instance()
2. Build: kernel = registry.build(config, device)
3. Launch: kernel.launch(geometry, *args)
"""

from .builder import Builder, BuildError
from .registry import BuilderRegistry
from .runnable import CompiledKernel, KernelMetadata

__all__ = ["Builder", "BuildError", "BuilderRegistry", "CompiledKernel", "KernelMetadata"]

from tilemm.compile import BuilderRegistry, CompiledKernel
from tilemm.data import (
    BoundaryPolicy,
    BufferAccess,
    DeviceBuffer,
    DeviceInfo,
    KernelConfig,
    LaunchGeometry,
    ProblemSize,
)
from tilemm.device import CudaDevice, Device, EmulatedDevice, get_device, list_devices
from tilemm.errors import (
    AllocationError,
    BuildError,
    ConfigurationError,
    DeviceFault,
    ReadbackTimeout,
    ValidationMismatch,
)
from tilemm.logging import configure_logging, get_logger
from tilemm.reference import reference_multiply
from tilemm.session import ComputeSession, MultiplyResult, tiled_multiply

__all__ = [
    # Main entry points
    "ComputeSession",
    "MultiplyResult",
    "tiled_multiply",
    "reference_multiply",
    # Configuration
    "BoundaryPolicy",
    "KernelConfig",
    "LaunchGeometry",
    "ProblemSize",
    # Devices and buffers
    "Device",
    "DeviceInfo",
    "DeviceBuffer",
    "BufferAccess",
    "CudaDevice",
    "EmulatedDevice",
    "get_device",
    "list_devices",
    # Build subsystem
    "BuilderRegistry",
    "CompiledKernel",
    # Errors
    "AllocationError",
    "BuildError",
    "ConfigurationError",
    "DeviceFault",
    "ReadbackTimeout",
    "ValidationMismatch",
    "configure_logging",
    "get_logger",
]

"""Builder for the emulated device."""

from __future__ import annotations

from typing import Sequence

from tilemm.compile.builder import Builder, BuildError
from tilemm.compile.runnable import CompiledKernel, KernelMetadata
from tilemm.data import KernelConfig, LaunchGeometry
from tilemm.device import Device, EmulatedDevice
from tilemm.kernel import specialize_tiled_matmul, tiled_matmul_signature


class EmulatedBuilder(Builder):
    """Specializes the work-item program of the tiled kernel for an :class:`EmulatedDevice`.

    Specialization binds the tile size and boundary policy; nothing is written to disk.
    """

    def __init__(self) -> None:
        super().__init__("emulated")

    @staticmethod
    def is_available() -> bool:
        return True

    def can_build(self, device: Device) -> bool:
        return isinstance(device, EmulatedDevice)

    def build(self, config: KernelConfig, device: Device) -> CompiledKernel:
        if not isinstance(device, EmulatedDevice):
            raise BuildError(f"EmulatedBuilder cannot build for device {device.key}")

        try:
            program = specialize_tiled_matmul(config)
        except Exception as e:
            raise BuildError(f"Failed to specialize {config.cache_key}: {e}", log=str(e)) from e

        def launcher(geometry: LaunchGeometry, args: Sequence[object]) -> None:
            device.enqueue_program(program, geometry, args)

        metadata = KernelMetadata(
            build_type="emulated",
            kernel_name=program.name,
            config=config,
            device_key=device.key,
            misc={"static_local": list(program.static_local)},
        )
        return CompiledKernel(
            launcher=launcher, signature=tiled_matmul_signature(config), metadata=metadata
        )

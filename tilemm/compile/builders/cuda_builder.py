"""Builder for CUDA kernels using PyTorch's inline C++/CUDA extension loader."""

from __future__ import annotations

import shutil
from pathlib import Path
from typing import Callable, ClassVar, Sequence

from tilemm.compile.builder import Builder, BuildError
from tilemm.compile.runnable import CompiledKernel, KernelMetadata
from tilemm.data import KernelConfig, LaunchGeometry
from tilemm.device import CudaDevice, Device
from tilemm.kernel import render_cuda_source, tiled_matmul_signature
from tilemm.kernel.cuda_source import ENTRY_FUNCTION, NVCC_FLAGS
from tilemm.logging import get_logger

logger = get_logger("CudaBuilder")


class CudaBuilder(Builder):
    """Builder for the CUDA rendition of the tiled kernel.

    The kernel template is rendered with the configuration's constants and compiled into a
    Python extension module with ``torch.utils.cpp_extension.load_inline``. Each configuration
    gets its own build directory under ``TILEMM_CACHE_PATH / cuda``, named after the
    configuration and a digest of the rendered source.
    """

    _PACKAGE_PREFIX: ClassVar[str] = "tilemm_cuda_"
    """Prefix of generated extension names."""

    _BUILD_DIR_NAME: ClassVar[str] = "cuda"
    """Subdirectory under TILEMM_CACHE_PATH where build results are stored."""

    def __init__(self) -> None:
        super().__init__(self._BUILD_DIR_NAME)

    @staticmethod
    def is_available() -> bool:
        """Check if CUDA is available from PyTorch.

        Returns
        -------
        bool
            True if PyTorch is installed and CUDA is available, False otherwise.
        """
        try:
            import torch
        except ImportError:
            return False
        return torch.cuda.is_available()

    def can_build(self, device: Device) -> bool:
        return isinstance(device, CudaDevice)

    def _get_cleaner(self, build_dir: Path) -> Callable[[], None]:
        def cleaner() -> None:
            shutil.rmtree(build_dir, ignore_errors=True)

        return cleaner

    def build(self, config: KernelConfig, device: Device) -> CompiledKernel:
        """Compile the kernel for ``config``.

        Raises
        ------
        BuildError
            If compilation fails, with the complete compiler output on ``BuildError.log``, or
            if the extension does not export the launch wrapper.
        """
        from torch.utils.cpp_extension import load_inline

        if not isinstance(device, CudaDevice):
            raise BuildError(f"CudaBuilder cannot build for device {device.key}")

        source = render_cuda_source(config)
        package_name = f"{self._PACKAGE_PREFIX}{config.cache_key}_{source.digest()[:8]}"
        build_dir = self.get_build_path(package_name)
        build_dir.mkdir(parents=True, exist_ok=True)

        logger.info("Compiling %s in %s", package_name, build_dir)
        try:
            ext = load_inline(
                name=package_name,
                cpp_sources=[source.cpp_source],
                cuda_sources=[source.cuda_source],
                functions=[ENTRY_FUNCTION],
                extra_cuda_cflags=list(NVCC_FLAGS),
                build_directory=str(build_dir),
                verbose=False,
            )
        except Exception as e:
            raise BuildError(
                f"CUDA build failed for kernel configuration '{config.cache_key}'", log=str(e)
            ) from e

        try:
            fn = getattr(ext, ENTRY_FUNCTION)
        except AttributeError as e:
            raise BuildError(
                f"Exported symbol '{ENTRY_FUNCTION}' not found in built extension"
            ) from e

        def launcher(geometry: LaunchGeometry, args: Sequence[object]) -> None:
            M, N, K, A, B, C, *local = args
            groups_row, groups_col = geometry.num_groups
            local_floats = [region.num_floats for region in local]
            device.enqueue(
                fn, groups_row, groups_col, M, N, K, A.storage, B.storage, C.storage,
                *local_floats,
            )

        metadata = KernelMetadata(
            build_type="cuda",
            kernel_name="tiled_matmul_kernel",
            config=config,
            device_key=device.key,
            misc={
                "package": package_name,
                "build_dir": str(build_dir),
                "binary": getattr(ext, "__file__", None),
                "nvcc_flags": list(NVCC_FLAGS),
            },
        )
        return CompiledKernel(
            launcher=launcher,
            signature=tiled_matmul_signature(config),
            metadata=metadata,
            cleaner=self._get_cleaner(build_dir),
        )

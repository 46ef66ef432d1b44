"""The tiled matrix multiplication kernel and its entry signature."""

from .cuda_source import CudaKernelSource, render_cuda_source
from .signature import ArgKind, ArgSpec, KernelSignature, LocalMemory, tiled_matmul_signature
from .tiled import specialize_tiled_matmul, tiled_matmul
from .workitem import BARRIER, WorkItem, WorkItemProgram

__all__ = [
    "BARRIER",
    "ArgKind",
    "ArgSpec",
    "CudaKernelSource",
    "KernelSignature",
    "LocalMemory",
    "WorkItem",
    "WorkItemProgram",
    "render_cuda_source",
    "specialize_tiled_matmul",
    "tiled_matmul",
    "tiled_matmul_signature",
]

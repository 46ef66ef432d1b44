"""CUDA C++ rendition of the tiled matmul kernel, for torch's inline extension loader."""

from __future__ import annotations

import hashlib
from dataclasses import dataclass
from typing import List

from tilemm.data import KernelConfig

ENTRY_FUNCTION = "launch"
"""Name of the host-side launch wrapper exported by the extension."""

_KERNEL_TEMPLATE = r"""
#include <torch/extension.h>
#include <ATen/cuda/CUDAContext.h>
#include <c10/cuda/CUDAException.h>

constexpr int kTileSize = @TILE_SIZE@;
constexpr bool kCheckBounds = @CHECK_BOUNDS@;

// One thread per output element, one TILE x TILE block per output tile.
// Both tile caches are row-major slices of the dynamic shared memory.
template <int TILE, bool CHECK_BOUNDS>
__global__ void tiled_matmul_kernel(const int64_t M, const int64_t N, const int64_t K,
                                    const float* __restrict__ A,
                                    const float* __restrict__ B,
                                    float* __restrict__ C) {
  extern __shared__ float shared[];
  float* a_tile = shared;
  float* b_tile = shared + TILE * TILE;

  const int local_row = threadIdx.y;
  const int local_col = threadIdx.x;
  // Global indices are 64-bit: M * K and K * N may exceed INT_MAX.
  const int64_t row = static_cast<int64_t>(blockIdx.y) * TILE + local_row;
  const int64_t col = static_cast<int64_t>(blockIdx.x) * TILE + local_col;
  const int slot = local_row * TILE + local_col;

  float sum = 0.0f;
  const int64_t steps = (K + TILE - 1) / TILE;
  for (int64_t t = 0; t < steps; ++t) {
    const int64_t a_col = t * TILE + local_col;
    const int64_t b_row = t * TILE + local_row;
    if (!CHECK_BOUNDS || (row < M && a_col < K)) {
      a_tile[slot] = A[row * K + a_col];
    } else {
      a_tile[slot] = 0.0f;
    }
    if (!CHECK_BOUNDS || (b_row < K && col < N)) {
      b_tile[slot] = B[b_row * N + col];
    } else {
      b_tile[slot] = 0.0f;
    }
    __syncthreads();

    // Separately rounded multiply and add, in ascending k.
    for (int k = 0; k < TILE; ++k) {
      sum = __fadd_rn(sum, __fmul_rn(a_tile[local_row * TILE + k], b_tile[k * TILE + local_col]));
    }
    __syncthreads();
  }

  if (!CHECK_BOUNDS || (row < M && col < N)) {
    C[row * N + col] = sum;
  }
}

static void check_operand(const torch::Tensor& t, const char* name) {
  TORCH_CHECK(t.is_cuda(), name, " must be a CUDA tensor");
  TORCH_CHECK(t.scalar_type() == torch::kFloat32, name, " must be float32");
  TORCH_CHECK(t.is_contiguous(), name, " must be contiguous");
}

static void enqueue(int64_t groups_row, int64_t groups_col, int64_t M, int64_t N, int64_t K,
                    const torch::Tensor& A, const torch::Tensor& B, torch::Tensor& C,
                    int64_t shared_bytes) {
  check_operand(A, "A");
  check_operand(B, "B");
  check_operand(C, "C");
  TORCH_CHECK(groups_row <= 65535, "M needs ", groups_row, " row blocks, the grid allows 65535");
  const dim3 grid(static_cast<unsigned>(groups_col), static_cast<unsigned>(groups_row));
  const dim3 block(kTileSize, kTileSize);
  auto stream = at::cuda::getCurrentCUDAStream();
  tiled_matmul_kernel<kTileSize, kCheckBounds><<<grid, block, shared_bytes, stream>>>(
      M, N, K, A.data_ptr<float>(), B.data_ptr<float>(), C.data_ptr<float>());
  C10_CUDA_KERNEL_LAUNCH_CHECK();
}

@ENTRY_DEFINITION@
"""

_STRICT_ENTRY = r"""
void launch(int64_t groups_row, int64_t groups_col, int64_t M, int64_t N, int64_t K,
            torch::Tensor A, torch::Tensor B, torch::Tensor C) {
  enqueue(groups_row, groups_col, M, N, K, A, B, C,
          2 * kTileSize * kTileSize * static_cast<int64_t>(sizeof(float)));
}
"""

_GENERAL_ENTRY = r"""
void launch(int64_t groups_row, int64_t groups_col, int64_t M, int64_t N, int64_t K,
            torch::Tensor A, torch::Tensor B, torch::Tensor C,
            int64_t a_tile_floats, int64_t b_tile_floats) {
  TORCH_CHECK(a_tile_floats == kTileSize * kTileSize && b_tile_floats == kTileSize * kTileSize,
              "tile caches must hold TILE x TILE floats each");
  enqueue(groups_row, groups_col, M, N, K, A, B, C,
          (a_tile_floats + b_tile_floats) * static_cast<int64_t>(sizeof(float)));
}
"""

_STRICT_DECLARATION = (
    "void launch(int64_t groups_row, int64_t groups_col, int64_t M, int64_t N, int64_t K, "
    "torch::Tensor A, torch::Tensor B, torch::Tensor C);"
)

_GENERAL_DECLARATION = (
    "void launch(int64_t groups_row, int64_t groups_col, int64_t M, int64_t N, int64_t K, "
    "torch::Tensor A, torch::Tensor B, torch::Tensor C, "
    "int64_t a_tile_floats, int64_t b_tile_floats);"
)

NVCC_FLAGS: List[str] = ["-O3", "-fmad=false"]
"""Compiler flags. Multiply-add contraction is disabled to keep results bit-reproducible."""


@dataclass(frozen=True)
class CudaKernelSource:
    """Rendered sources for one kernel configuration."""

    cpp_source: str
    """Declaration of the launch wrapper, for the generated Python binding."""
    cuda_source: str
    """Kernel template, its specialization constants and the launch wrapper."""

    def digest(self) -> str:
        content = self.cpp_source + "\0" + self.cuda_source + "\0" + " ".join(NVCC_FLAGS)
        return hashlib.sha256(content.encode("utf-8")).hexdigest()


def render_cuda_source(config: KernelConfig) -> CudaKernelSource:
    """Render the CUDA sources specialized with ``config``.

    The tile size and boundary policy become ``constexpr`` values the kernel template is
    instantiated with.
    """
    entry = _GENERAL_ENTRY if config.check_bounds else _STRICT_ENTRY
    declaration = _GENERAL_DECLARATION if config.check_bounds else _STRICT_DECLARATION
    cuda_source = (
        _KERNEL_TEMPLATE.replace("@TILE_SIZE@", str(config.tile_size))
        .replace("@CHECK_BOUNDS@", "true" if config.check_bounds else "false")
        .replace("@ENTRY_DEFINITION@", entry)
    )
    return CudaKernelSource(cpp_source=declaration, cuda_source=cuda_source)

import sys

import pytest

from tilemm.data import KernelConfig
from tilemm.kernel import render_cuda_source
from tilemm.kernel.cuda_source import ENTRY_FUNCTION, NVCC_FLAGS


def test_render_substitutes_constants():
    source = render_cuda_source(KernelConfig(tile_size=16))
    assert "constexpr int kTileSize = 16;" in source.cuda_source
    assert "constexpr bool kCheckBounds = true;" in source.cuda_source
    assert "@" not in source.cuda_source
    assert f"void {ENTRY_FUNCTION}(" in source.cpp_source


def test_entry_signature_follows_policy():
    strict = render_cuda_source(KernelConfig(tile_size=8, policy="strict"))
    general = render_cuda_source(KernelConfig(tile_size=8, policy="general"))
    assert "constexpr bool kCheckBounds = false;" in strict.cuda_source
    assert "a_tile_floats" not in strict.cpp_source
    assert "a_tile_floats" in general.cpp_source
    assert "a_tile_floats" in general.cuda_source


def test_digest_distinguishes_configurations():
    digests = {
        render_cuda_source(KernelConfig(tile_size=t, policy=p)).digest()
        for t in (4, 8)
        for p in ("strict", "general")
    }
    assert len(digests) == 4
    again = render_cuda_source(KernelConfig(tile_size=4)).digest()
    assert again in digests


def test_global_indices_are_64_bit():
    source = render_cuda_source(KernelConfig(tile_size=16)).cuda_source
    assert "const int64_t M, const int64_t N, const int64_t K" in source
    assert "static_cast<int64_t>(blockIdx.y) * TILE" in source
    assert "static_cast<int>(" not in source
    # Row blocks run on grid.y, which is capped at 65535
    assert "groups_row <= 65535" in source

def test_contraction_disabled():
    assert "-fmad=false" in NVCC_FLAGS


if __name__ == "__main__":
    pytest.main(sys.argv)

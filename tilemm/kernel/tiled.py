"""Tiled matrix multiplication as a work-item program.

Each work-item owns one output element ``C[row][col]``; each T x T workgroup owns one output
tile. For every tile step the workgroup stages one T x T tile of A and of B into its shared
caches, waits at a barrier, accumulates the partial dot products out of the caches, and waits
again before the next step overwrites them.

Both operands and both caches are row-major; neither operand is transposed:
``a_tile[r * T + c]`` holds ``A[row0 + r][t * T + c]`` and ``b_tile[r * T + c]`` holds
``B[t * T + r][col0 + c]``.
"""

from __future__ import annotations

import functools

import numpy as np

from tilemm.data import KernelConfig, ceil_div

from .workitem import BARRIER, WorkItem, WorkItemGenerator, WorkItemProgram

_ZERO = np.float32(0.0)


def tiled_matmul(
    item: WorkItem,
    M: int,
    N: int,
    K: int,
    A,
    B,
    C,
    *local_args: np.ndarray,
    tile_size: int,
    check_bounds: bool,
) -> WorkItemGenerator:
    """Work-item body of the tiled kernel.

    The bounds-checked variant receives its caches as the two local memory arguments; the
    strict variant declares them statically and finds them on ``item.static_local``.
    """
    T = tile_size
    a_tile, b_tile = local_args if check_bounds else item.static_local

    local_row, local_col = item.local_id
    row = item.global_id(0)
    col = item.global_id(1)
    slot = local_row * T + local_col

    acc = np.float32(0.0)
    for t in range(ceil_div(K, T)):
        a_col = t * T + local_col
        b_row = t * T + local_row

        if not check_bounds or (row < M and a_col < K):
            a_tile[slot] = A.load(row * K + a_col)
        else:
            a_tile[slot] = _ZERO
        if not check_bounds or (b_row < K and col < N):
            b_tile[slot] = B.load(b_row * N + col)
        else:
            b_tile[slot] = _ZERO

        yield BARRIER

        a_base = local_row * T
        for k in range(T):
            acc = acc + a_tile[a_base + k] * b_tile[k * T + local_col]

        yield BARRIER

    if not check_bounds or (row < M and col < N):
        C.store(row * N + col, acc)


def specialize_tiled_matmul(config: KernelConfig) -> WorkItemProgram:
    """Bind the tile size and boundary policy, producing a launchable program."""
    fn = functools.partial(
        tiled_matmul, tile_size=config.tile_size, check_bounds=config.check_bounds
    )
    static_local = () if config.check_bounds else (config.tile_floats, config.tile_floats)
    return WorkItemProgram(
        name=f"tiled_matmul[{config.cache_key}]", fn=fn, static_local=static_local
    )

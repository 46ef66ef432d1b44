"""Sequential reference multiplication, the ground truth device results are checked against."""

from __future__ import annotations

from typing import Any

import numpy as np
import torch

from tilemm.data import as_row_major


def reference_multiply(a: Any, b: Any) -> torch.Tensor:
    """Multiply ``a (rows x cols)`` by ``b (cols x cols2)`` with a plain triple loop.

    Each output element is accumulated in float32, multiplying then adding (each rounded) in
    ascending ``k``, the same order the tiled kernel uses. The operands must already agree on
    the shared dimension; this function does not check it.

    Parameters
    ----------
    a : Any
        Left operand, anything :func:`tilemm.data.as_row_major` accepts.
    b : Any
        Right operand.

    Returns
    -------
    torch.Tensor
        The ``rows x cols2`` float32 product.
    """
    a = as_row_major(a)
    b = as_row_major(b)
    rows, cols = a.shape
    cols2 = b.shape[1]
    a_flat = a.reshape(-1).numpy()
    b_flat = b.reshape(-1).numpy()
    out = np.zeros(rows * cols2, dtype=np.float32)

    for row in range(rows):
        for col in range(cols2):
            acc = np.float32(0.0)
            for k in range(cols):
                acc = acc + a_flat[row * cols + k] * b_flat[k * cols2 + col]
            out[row * cols2 + col] = acc
    return torch.from_numpy(out).reshape(rows, cols2)

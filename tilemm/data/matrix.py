"""Host-side matrix marshaling.

Host matrices are contiguous CPU ``torch.float32`` tensors. Element ``(r, c)`` of a
``rows x cols`` matrix lives at flat offset ``r * cols + c``; the same flat layout is copied
byte-for-byte to and from device buffers.
"""

from __future__ import annotations

from typing import Any

import numpy as np
import torch

from tilemm.errors import ConfigurationError


def flat_index(row: int, col: int, cols: int) -> int:
    """Row-major offset of element ``(row, col)`` in a matrix with ``cols`` columns."""
    return row * cols + col


def as_row_major(data: Any) -> torch.Tensor:
    """Convert ``data`` into a contiguous 2-D float32 CPU tensor.

    Tensors must already be float32; other float precisions are rejected rather than
    converted. NumPy arrays and nested sequences are converted with ``float32`` precision.

    Parameters
    ----------
    data : Any
        A ``torch.Tensor``, ``numpy.ndarray`` or nested sequence of numbers.

    Returns
    -------
    torch.Tensor
        A contiguous ``(rows, cols)`` float32 tensor on the CPU. It shares memory with
        ``data`` when no conversion was necessary.

    Raises
    ------
    ConfigurationError
        If the data is not two dimensional or is a tensor of another dtype.
    """
    if isinstance(data, torch.Tensor):
        if data.dtype != torch.float32:
            raise ConfigurationError(f"Matrices must be float32, got {data.dtype}")
        tensor = data.detach().cpu()
    elif isinstance(data, np.ndarray):
        tensor = torch.from_numpy(np.ascontiguousarray(data, dtype=np.float32))
    else:
        tensor = torch.as_tensor(data, dtype=torch.float32)

    if tensor.dim() != 2:
        raise ConfigurationError(f"Matrices must be 2-D, got shape {tuple(tensor.shape)}")
    return tensor.contiguous()


def filled(rows: int, cols: int, value: float) -> torch.Tensor:
    """A ``rows x cols`` matrix with every element set to ``value``."""
    return torch.full((rows, cols), value, dtype=torch.float32)


def iota(rows: int, cols: int, start: float = 0.0) -> torch.Tensor:
    """A ``rows x cols`` matrix holding ``start, start + 1, ...`` in row-major order."""
    return torch.arange(start, start + rows * cols, dtype=torch.float32).reshape(rows, cols)


def to_bytes(matrix: torch.Tensor) -> bytes:
    """Serialize a matrix as row-major float32 bytes with no header or padding."""
    return as_row_major(matrix).numpy().tobytes()


def from_bytes(data: bytes, rows: int, cols: int) -> torch.Tensor:
    """Inverse of :func:`to_bytes`.

    Raises
    ------
    ConfigurationError
        If the byte count does not match ``rows * cols`` float32 values.
    """
    expected = rows * cols * 4
    if len(data) != expected:
        raise ConfigurationError(
            f"Expected {expected} bytes for a {rows}x{cols} float32 matrix, got {len(data)}"
        )
    array = np.frombuffer(data, dtype=np.float32).copy()
    return torch.from_numpy(array).reshape(rows, cols)

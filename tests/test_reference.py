import sys

import numpy as np
import pytest
import torch

from tilemm.data import iota
from tilemm.reference import reference_multiply


def test_small_product():
    a = [[1.0, 2.0], [3.0, 4.0]]
    b = [[5.0, 6.0], [7.0, 8.0]]
    assert reference_multiply(a, b).tolist() == [[19.0, 22.0], [43.0, 50.0]]


def test_matches_torch_on_exact_inputs():
    a = iota(4, 6) - 10
    b = iota(6, 5) % 3
    out = reference_multiply(a, b)
    assert out.dtype == torch.float32
    assert torch.equal(out, a @ b)


def test_accumulates_in_float32_ascending_k():
    # In float32, 2**24 + 1 rounds back to 2**24; ascending order drops both ones
    a = np.array([[2.0**24, 1.0, 1.0]], dtype=np.float32)
    b = np.ones((3, 1), dtype=np.float32)
    assert reference_multiply(a, b).item() == 2.0**24


def test_non_square():
    a = torch.ones(1, 3)
    b = torch.ones(3, 7)
    out = reference_multiply(a, b)
    assert out.shape == (1, 7)
    assert torch.all(out == 3.0)


if __name__ == "__main__":
    pytest.main(sys.argv)

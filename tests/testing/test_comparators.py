import sys

import pytest
import torch

from tilemm.errors import ValidationMismatch
from tilemm.testing import ExactComparator, TensorComparator


def test_exact_pass():
    ref = torch.arange(6, dtype=torch.float32).reshape(2, 3)
    result = ExactComparator().compare(ref, ref.clone())
    assert result.passed
    assert result.stats["num_mismatches"] == 0
    assert result.stats["num_elements"] == 6
    result.raise_for_mismatch()


def test_exact_reports_every_mismatch_with_position():
    ref = torch.zeros(3, 4)
    out = ref.clone()
    out[0, 1] = 1.0
    out[2, 3] = -2.0
    result = ExactComparator().compare(ref, out)
    assert not result.passed
    assert [(m.index, m.row, m.col) for m in result.mismatches] == [(1, 0, 1), (11, 2, 3)]
    assert result.mismatches[1].expected == 0.0
    assert result.mismatches[1].actual == -2.0
    assert result.stats["max_abs_diff"] == 2.0
    assert "(row 2, col 3)" in result.details


def test_exact_truncates_details_but_not_mismatches():
    ref = torch.zeros(4, 4)
    out = torch.ones(4, 4)
    result = ExactComparator(max_details=3).compare(ref, out)
    assert len(result.mismatches) == 16
    assert "and 13 more" in result.details


def test_exact_nan_never_matches():
    ref = torch.tensor([[float("nan")]])
    assert not ExactComparator().compare(ref, ref.clone()).passed


def test_shape_mismatch():
    result = ExactComparator().compare(torch.zeros(2, 2), torch.zeros(2, 3))
    assert not result.passed
    assert "Shape mismatch" in result.details


def test_raise_for_mismatch():
    ref = torch.zeros(2, 2)
    out = ref.clone()
    out[1, 0] = 5.0
    result = ExactComparator().compare(ref, out)
    with pytest.raises(ValidationMismatch, match="1 element") as exc_info:
        result.raise_for_mismatch()
    assert exc_info.value.mismatches == result.mismatches


def test_tensor_comparator_tolerances():
    ref = torch.ones(2, 2)
    assert TensorComparator(atol=1e-3, rtol=0).compare(ref, ref + 1e-4).passed
    result = TensorComparator(atol=1e-6, rtol=1e-6).compare(ref, ref + 1e-2)
    assert not result.passed
    assert result.stats["num_mismatches"] == 4
    assert "Top error locations" in result.details


if __name__ == "__main__":
    pytest.main(sys.argv)

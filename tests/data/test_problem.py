import sys

import pytest
import torch
from pydantic import ValidationError

from tilemm.data import BoundaryPolicy, KernelConfig, LaunchGeometry, ProblemSize, ceil_div
from tilemm.errors import ConfigurationError


def test_ceil_div():
    assert ceil_div(5, 2) == 3
    assert ceil_div(4, 2) == 2
    assert ceil_div(1, 16) == 1


def test_problem_from_operands():
    a = torch.zeros(5, 7)
    b = torch.zeros(7, 3)
    problem = ProblemSize.from_operands(a, b)
    assert (problem.M, problem.K, problem.N) == (5, 7, 3)


def test_problem_dimension_mismatch():
    with pytest.raises(ConfigurationError, match="Dimension mismatch"):
        ProblemSize.from_operands(torch.zeros(4, 5), torch.zeros(6, 4))


def test_problem_rejects_non_matrix():
    with pytest.raises(ConfigurationError, match="2-D"):
        ProblemSize.from_operands(torch.zeros(4), torch.zeros(4, 4))


def test_problem_rejects_empty_axis():
    with pytest.raises(ConfigurationError, match="positive"):
        ProblemSize.from_operands(torch.zeros(0, 3), torch.zeros(3, 2))


def test_problem_is_frozen():
    problem = ProblemSize(M=2, K=2, N=2)
    with pytest.raises(ValidationError):
        problem.M = 4


def test_tile_alignment():
    assert ProblemSize(M=32, K=16, N=48).is_tile_aligned(16)
    # K unaligned: the strict kernel would read past A's rows
    assert not ProblemSize(M=32, K=20, N=48).is_tile_aligned(16)
    assert ProblemSize(M=5, K=7, N=3).tile_steps(3) == 3


def test_kernel_config_defaults_and_properties():
    config = KernelConfig(tile_size=16)
    assert config.policy is BoundaryPolicy.GENERAL
    assert config.check_bounds
    assert config.workgroup_size == 256
    assert config.tile_floats == 256
    assert config.shared_memory_bytes == 2 * 256 * 4
    assert config.cache_key == "general_t16"

    strict = KernelConfig(tile_size=8, policy="strict")
    assert not strict.check_bounds
    assert strict.cache_key == "strict_t8"


def test_kernel_config_create_rejects_bad_values():
    with pytest.raises(ConfigurationError):
        KernelConfig.create(0)
    with pytest.raises(ConfigurationError):
        KernelConfig.create(-4)
    with pytest.raises(ConfigurationError, match="integer"):
        KernelConfig.create(2.5)
    with pytest.raises(ConfigurationError, match="integer"):
        KernelConfig.create(True)
    with pytest.raises(ConfigurationError):
        KernelConfig.create(4, "lenient")


def test_kernel_config_constructor_rejects_bad_values():
    with pytest.raises(ConfigurationError, match="Invalid kernel configuration"):
        KernelConfig(tile_size=0)
    with pytest.raises(ConfigurationError):
        KernelConfig(tile_size=True)
    with pytest.raises(ConfigurationError):
        KernelConfig(tile_size=4.0)
    with pytest.raises(ConfigurationError):
        KernelConfig(tile_size=4, policy="lenient")
    with pytest.raises(ConfigurationError):
        KernelConfig()

def test_kernel_config_create_accepts_policy_names():
    assert KernelConfig.create(4, "strict").policy is BoundaryPolicy.STRICT
    assert KernelConfig.create(4, BoundaryPolicy.GENERAL).policy is BoundaryPolicy.GENERAL


def test_configs_hash_by_value():
    assert KernelConfig(tile_size=4) == KernelConfig.create(4, "general")
    assert len({KernelConfig(tile_size=4), KernelConfig(tile_size=4, policy="strict")}) == 2


def test_launch_geometry_rounds_up():
    problem = ProblemSize(M=5, K=7, N=3)
    geometry = LaunchGeometry.for_problem(problem, KernelConfig(tile_size=3))
    assert geometry.num_groups == (2, 1)
    assert geometry.global_size == (6, 3)
    assert geometry.local_size == (3, 3)
    assert geometry.workgroup_size == 9


def test_launch_geometry_aligned():
    problem = ProblemSize(M=32, K=16, N=48)
    geometry = LaunchGeometry.for_problem(problem, KernelConfig(tile_size=16))
    assert geometry.num_groups == (2, 3)
    assert geometry.global_size == (32, 48)


def test_launch_geometry_rejects_indivisible_sizes():
    with pytest.raises(ValidationError, match="multiple"):
        LaunchGeometry(global_size=(10, 8), local_size=(4, 4))
    with pytest.raises(ValidationError, match="positive"):
        LaunchGeometry(global_size=(0, 8), local_size=(4, 4))


if __name__ == "__main__":
    pytest.main(sys.argv)

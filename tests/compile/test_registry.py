import sys

import pytest

from tilemm.compile import Builder, BuilderRegistry, BuildError, CompiledKernel
from tilemm.compile.builders import EmulatedBuilder
from tilemm.data import KernelConfig
from tilemm.device import EmulatedDevice


class _CountingBuilder(EmulatedBuilder):
    def __init__(self) -> None:
        super().__init__()
        self.builds = 0

    def build(self, config, device) -> CompiledKernel:
        self.builds += 1
        return super().build(config, device)


class _NeverBuilder(Builder):
    def __init__(self) -> None:
        super().__init__("never")

    @staticmethod
    def is_available() -> bool:
        return True

    def can_build(self, device) -> bool:
        return False

    def build(self, config, device) -> CompiledKernel:
        raise AssertionError("unreachable")


def test_registry_requires_builders():
    with pytest.raises(ValueError):
        BuilderRegistry([])


def test_get_instance_is_singleton():
    assert BuilderRegistry.get_instance() is BuilderRegistry.get_instance()


def test_build_is_cached_per_device_and_config(emulated_device):
    builder = _CountingBuilder()
    registry = BuilderRegistry([builder])
    config = KernelConfig(tile_size=4)

    first = registry.build(config, emulated_device)
    assert registry.build(KernelConfig.create(4, "general"), emulated_device) is first
    assert builder.builds == 1

    registry.build(KernelConfig(tile_size=4, policy="strict"), emulated_device)
    assert builder.builds == 2

    other = EmulatedDevice()
    try:
        assert registry.build(config, other) is not first
        assert builder.builds == 3
    finally:
        other.close()


def test_no_capable_builder(emulated_device):
    registry = BuilderRegistry([_NeverBuilder()])
    with pytest.raises(BuildError, match="No registered builder"):
        registry.build(KernelConfig(tile_size=4), emulated_device)


def test_builder_priority(emulated_device):
    first = _CountingBuilder()
    second = _CountingBuilder()
    registry = BuilderRegistry([_NeverBuilder(), first, second])
    registry.build(KernelConfig(tile_size=2), emulated_device)
    assert (first.builds, second.builds) == (1, 0)


def test_evict_device(emulated_device):
    builder = _CountingBuilder()
    registry = BuilderRegistry([builder])
    registry.build(KernelConfig(tile_size=2), emulated_device)
    registry.build(KernelConfig(tile_size=4), emulated_device)
    assert registry.evict_device(emulated_device) == 2
    assert registry.evict_device(emulated_device) == 0
    registry.build(KernelConfig(tile_size=2), emulated_device)
    assert builder.builds == 3


def test_close_evicts_device():
    builder = _CountingBuilder()
    registry = BuilderRegistry([builder])
    first = EmulatedDevice()
    second = EmulatedDevice()
    try:
        registry.build(KernelConfig(tile_size=2), first)
        registry.build(KernelConfig(tile_size=4), first)
        registry.build(KernelConfig(tile_size=2), second)
        first.close()
        assert registry.evict_device(first) == 0
        assert registry.evict_device(second) == 1
    finally:
        first.close()
        second.close()


def test_build_for_closed_device_is_not_cached():
    builder = _CountingBuilder()
    registry = BuilderRegistry([builder])
    device = EmulatedDevice()
    device.close()
    registry.build(KernelConfig(tile_size=2), device)
    registry.build(KernelConfig(tile_size=2), device)
    assert builder.builds == 2
    assert registry.evict_device(device) == 0

def test_cleanup_clears_cache(emulated_device):
    builder = _CountingBuilder()
    registry = BuilderRegistry([builder])
    registry.build(KernelConfig(tile_size=2), emulated_device)
    registry.cleanup()
    registry.build(KernelConfig(tile_size=2), emulated_device)
    assert builder.builds == 2


if __name__ == "__main__":
    pytest.main(sys.argv)

"""Concrete builder implementations for the supported devices."""

from .cuda_builder import CudaBuilder
from .emulated_builder import EmulatedBuilder

__all__ = ["CudaBuilder", "EmulatedBuilder"]

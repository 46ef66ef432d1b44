"""Exception types raised by tilemm."""

from __future__ import annotations

from typing import TYPE_CHECKING, List, Optional

if TYPE_CHECKING:
    from tilemm.testing.comparators import Mismatch


class ConfigurationError(ValueError):
    """Raised when a tile size, problem shape, device capability or launch argument list is
    invalid. Always raised before any device work is enqueued."""


class BuildError(RuntimeError):
    """Raised when a kernel fails to specialize or compile.

    The full compiler diagnostic is kept on :attr:`log` so callers can surface it.
    """

    def __init__(self, message: str, log: Optional[str] = None) -> None:
        super().__init__(message)
        self.log = log or ""
        """The complete compiler diagnostic text, empty if the builder produced none."""


class AllocationError(RuntimeError):
    """Raised when a device context or device buffer cannot be created."""


class DeviceFault(RuntimeError):
    """Raised when a kernel performs an invalid memory access or its work-items diverge at a
    barrier."""


class ReadbackTimeout(TimeoutError):
    """Raised when the blocking result readback does not complete within the watchdog limit."""


class ValidationMismatch(AssertionError):
    """Raised when a device result disagrees with the sequential reference."""

    def __init__(self, mismatches: List["Mismatch"], details: Optional[str] = None) -> None:
        self.mismatches = list(mismatches)
        """Every mismatching element, in flat index order."""
        message = f"{len(self.mismatches)} element(s) differ from the reference"
        if details:
            message = f"{message}\n{details}"
        super().__init__(message)

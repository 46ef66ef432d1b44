"""Environment variable lookups."""

from __future__ import annotations

import os
from pathlib import Path

_DEFAULT_READBACK_TIMEOUT = 60.0
_DEVICE_KINDS = ("auto", "cuda", "emulated")
_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def get_tilemm_cache_path() -> Path:
    """Root directory for kernel build artifacts. ``TILEMM_CACHE_PATH``, or
    ``~/.cache/tilemm``."""
    value = os.environ.get("TILEMM_CACHE_PATH")
    if value:
        return Path(value).expanduser()
    return Path.home() / ".cache" / "tilemm"


def get_tilemm_device() -> str:
    """Device kind requested by ``TILEMM_DEVICE``: ``auto``, ``cuda`` or ``emulated``."""
    value = os.environ.get("TILEMM_DEVICE", "auto").strip().lower()
    if value not in _DEVICE_KINDS:
        raise ValueError(f"Invalid TILEMM_DEVICE '{value}'. Allowed values: {_DEVICE_KINDS}")
    return value


def get_tilemm_readback_timeout() -> float:
    """Seconds a blocking readback may wait before the watchdog fires.
    ``TILEMM_READBACK_TIMEOUT``, default 60."""
    raw = os.environ.get("TILEMM_READBACK_TIMEOUT")
    if raw is None or raw.strip() == "":
        return _DEFAULT_READBACK_TIMEOUT
    try:
        value = float(raw)
    except ValueError as e:
        raise ValueError(f"TILEMM_READBACK_TIMEOUT must be a number, got '{raw}'") from e
    if value <= 0:
        raise ValueError(f"TILEMM_READBACK_TIMEOUT must be > 0, got {value}")
    return value


def get_tilemm_log_level() -> str:
    """Default log level from ``TILEMM_LOG_LEVEL``, ``WARNING`` if unset."""
    value = os.environ.get("TILEMM_LOG_LEVEL", "WARNING").strip().upper()
    if value not in _LOG_LEVELS:
        raise ValueError(f"Invalid TILEMM_LOG_LEVEL '{value}'. Allowed values: {_LOG_LEVELS}")
    return value

"""Execution model for kernels written as Python work-item programs.

A work-item program is a generator function called once per work-item as
``fn(item, *args)``. It yields :data:`BARRIER` wherever the workgroup must rendezvous; the
device resumes no member past a barrier until every member has reached it, so writes to the
shared arenas before a barrier are visible to all members after it.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Generator, Tuple

import numpy as np


class _Barrier:
    def __repr__(self) -> str:
        return "BARRIER"


BARRIER = _Barrier()
"""Token a work-item yields to wait at a workgroup barrier."""

WorkItemGenerator = Generator[_Barrier, None, None]


@dataclass(frozen=True)
class WorkItem:
    """Identity of one work-item and the static shared arenas of its workgroup."""

    local_id: Tuple[int, int]
    group_id: Tuple[int, int]
    local_size: Tuple[int, int]
    static_local: Tuple[np.ndarray, ...] = ()
    """Workgroup-private arenas the program declared statically, shared by reference."""

    def global_id(self, dim: int) -> int:
        return self.group_id[dim] * self.local_size[dim] + self.local_id[dim]


@dataclass(frozen=True)
class WorkItemProgram:
    """A specialized work-item program ready to be enqueued on an emulated device."""

    name: str
    fn: Callable[..., WorkItemGenerator]
    static_local: Tuple[int, ...] = ()
    """Sizes in floats of the arenas allocated per workgroup and exposed as
    ``WorkItem.static_local``."""

    def __call__(self, item: WorkItem, *args: Any) -> WorkItemGenerator:
        return self.fn(item, *args)

    @property
    def static_local_bytes(self) -> int:
        return sum(self.static_local) * 4

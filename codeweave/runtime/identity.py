"""Unique names for generated units."""

from __future__ import annotations

import threading
from dataclasses import dataclass

from ..constants import UNIT_NAMESPACE, UNIT_PREFIX


@dataclass(frozen=True)
class UnitId:
    """Identity of one weave request: its module namespace and simple name."""

    namespace: str
    simple_name: str

    def __post_init__(self):
        if not self.namespace or not self.simple_name:
            raise ValueError("UnitId requires a namespace and a simple name")
        if "." in self.simple_name:
            raise ValueError(f"Unit simple name must not be dotted: {self.simple_name}")

    @property
    def qualified_name(self) -> str:
        return f"{self.namespace}.{self.simple_name}"

    def __str__(self) -> str:
        return self.qualified_name

    @classmethod
    def parse(cls, name: str) -> "UnitId":
        """Build an id from ``"namespace.name"`` (or a bare name in the default namespace)."""

        name = (name or "").strip()
        namespace, _, simple = name.rpartition(".")
        return cls(namespace or UNIT_NAMESPACE, simple)

    @classmethod
    def generated(cls, number: int) -> "UnitId":
        return cls(UNIT_NAMESPACE, f"{UNIT_PREFIX}{number}")


class UnitIdAllocator:
    """Strictly increasing counter shared by every thread of the process.

    Values are never handed out twice, including those of weave requests
    that later fail.
    """

    def __init__(self, start: int = 0):
        self._lock = threading.Lock()
        self._last = start

    def next(self) -> int:
        with self._lock:
            self._last += 1
            return self._last

    def allocate(self) -> UnitId:
        return UnitId.generated(self.next())

    @property
    def last(self) -> int:
        return self._last


ALLOCATOR = UnitIdAllocator()


def next_unit_id() -> int:
    return ALLOCATOR.next()


def allocate_unit() -> UnitId:
    """Allocate the next ``woven.gen<k>`` unit id."""

    return ALLOCATOR.allocate()


__all__ = [
    "ALLOCATOR",
    "UnitId",
    "UnitIdAllocator",
    "allocate_unit",
    "next_unit_id",
]

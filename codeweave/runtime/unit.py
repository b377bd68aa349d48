"""Data carried through one weave request."""

from __future__ import annotations

import abc
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Generic, Optional, TypeVar

from .identity import UnitId
from .inference import TypeDescriptor

T = TypeVar("T")


class UnitKind(Enum):
    INLINE = "inline"
    METHOD = "method"


class Invocable(abc.ABC, Generic[T]):
    """Zero-argument entry point implemented by inline units."""

    @abc.abstractmethod
    def __call__(self) -> T:
        raise NotImplementedError

    def call(self) -> T:
        return self()


@dataclass(frozen=True)
class BindingRecord:
    unit: UnitId
    name: str
    value: Any
    descriptor: TypeDescriptor


@dataclass
class GeneratedUnit:
    """Source text of one unit and what went into it."""

    unit: UnitId
    kind: UnitKind
    source: str
    fragment: str
    bindings: list[BindingRecord] = field(default_factory=list)
    result_type: Optional[str] = None
    imports: list[str] = field(default_factory=list)

    @property
    def filename(self) -> str:
        return f"{self.unit.simple_name}.py"

    def __repr__(self) -> str:  # pragma: no cover - representation helper
        return f"<GeneratedUnit {self.unit} {self.kind.value} bindings={len(self.bindings)}>"


__all__ = [
    "BindingRecord",
    "GeneratedUnit",
    "Invocable",
    "UnitKind",
]

"""Process-wide store handing runtime values to generated units.

Values never cross into generated source text. The weaver stages them here
under ``(unit, name)`` and the unit's own module body takes each one back out
exactly once while it is being loaded.
"""

from __future__ import annotations

import logging
import threading
from typing import Any

LOG = logging.getLogger(__name__)


class _Missing:
    """Sentinel returned by :func:`steal` when no binding is staged."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:  # pragma: no cover - representation helper
        return "<missing binding>"

    def __bool__(self) -> bool:
        return False


MISSING = _Missing()


class BindingStore:
    """Map of ``unit -> {name: value}`` guarded by a single lock."""

    def __init__(self):
        self._lock = threading.Lock()
        self._units: dict[str, dict[str, Any]] = {}

    def put(self, unit, name: str | None, value: Any) -> None:
        """Stage ``value`` for ``unit``; a ``None`` name is ignored."""

        if name is None:
            return
        with self._lock:
            self._units.setdefault(str(unit), {})[name] = value

    def steal(self, unit, name: str) -> Any:
        """Remove and return a staged value, or ``MISSING`` if there is none."""

        key = str(unit)
        with self._lock:
            staged = self._units.get(key)
            if staged is None or name not in staged:
                LOG.warning("No binding '%s' for unit '%s'", name, key)
                return MISSING
            value = staged.pop(name)
            if not staged:
                del self._units[key]
            return value

    def discard(self, unit) -> int:
        """Drop every binding still staged for ``unit``."""

        with self._lock:
            staged = self._units.pop(str(unit), None)
        if not staged:
            return 0
        LOG.debug("Discarded %d unclaimed binding(s) of unit '%s'", len(staged), unit)
        return len(staged)

    def pending(self, unit=None) -> dict:
        """Return a snapshot of staged binding names."""

        with self._lock:
            if unit is not None:
                return {str(unit): sorted(self._units.get(str(unit), {}))}
            return {key: sorted(names) for key, names in self._units.items()}

    def clear(self) -> None:
        with self._lock:
            self._units.clear()

    def __len__(self) -> int:
        with self._lock:
            return sum(len(names) for names in self._units.values())


BINDINGS = BindingStore()


def put(unit, name, value):
    """Stage a binding in the process-wide store."""

    BINDINGS.put(unit, name, value)


def steal(unit, name):
    """Take a binding out of the process-wide store (called by generated units)."""

    return BINDINGS.steal(unit, name)


def discard(unit):
    return BINDINGS.discard(unit)


def pending_bindings(unit=None):
    return BINDINGS.pending(unit)


def clear_bindings():
    """Remove every staged binding."""

    BINDINGS.clear()


def cast(cls, value):
    """Check a stolen value against the class its field was declared with."""

    if value is MISSING:
        if cls is object:
            return None
        raise TypeError(f"Cannot cast a missing binding to {cls.__qualname__}")
    if not isinstance(value, cls):
        raise TypeError(
            f"Binding of type {type(value).__qualname__} is not a {cls.__qualname__}"
        )
    return value


def unbox(wrapper, value):
    """Unwrap a boxed ctypes primitive into its plain Python value."""

    if value is MISSING:
        raise TypeError(f"Cannot unbox a missing binding as {wrapper.__qualname__}")
    if type(value) is not wrapper:
        raise TypeError(
            f"Binding of type {type(value).__qualname__} is not a {wrapper.__qualname__}"
        )
    return value.value


__all__ = [
    "BINDINGS",
    "BindingStore",
    "MISSING",
    "cast",
    "clear_bindings",
    "discard",
    "pending_bindings",
    "put",
    "steal",
    "unbox",
]

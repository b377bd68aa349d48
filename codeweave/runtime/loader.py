"""Loading compiled units into a request-scoped import context."""

from __future__ import annotations

import importlib.abc
import importlib.machinery
import importlib.util
import logging
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from ..constants import ARTIFACT_SUFFIX, NESTED_SEPARATOR, UNIT_NAMESPACE
from .identity import UnitId

LOG = logging.getLogger(__name__)


class WeaveLoadError(RuntimeError):
    """A compiled unit could not be loaded or instantiated.

    The original exception is kept as ``__cause__``.
    """

    def __init__(self, unit, phase: str, message: str | None = None):
        self.unit = unit
        self.phase = phase
        super().__init__(message or f"Failed to {phase} unit {unit}")


@dataclass
class LoadedArtifact:
    handle: Any
    unit: UnitId
    modules: list[str] = field(default_factory=list)


class _ContextFinder(importlib.abc.MetaPathFinder):
    def __init__(self, context: "LoadingContext"):
        self.context = context

    def find_spec(self, fullname, path=None, target=None):
        return self.context.find_spec(fullname)


class LoadingContext:
    """Import scope for the compiled units of one weave request.

    While open (as a context manager or after :meth:`open`), ``<namespace>``
    and ``<namespace>.<name>`` resolve to the ``.pyc`` files under ``root``,
    so a unit can import its nested artifacts.
    Closing removes the finder and every module the context created from
    ``sys.modules``; objects already built from those modules stay usable.
    """

    def __init__(self, root, namespace: str = UNIT_NAMESPACE):
        self.root = Path(root)
        self.namespace = namespace
        self.directory = self.root.joinpath(*namespace.split("."))
        parts = namespace.split(".")
        self._packages = {".".join(parts[: i + 1]) for i in range(len(parts))}
        self._specs: dict[str, list] = {}
        self._loaded: list[str] = []
        self._finder = _ContextFinder(self)
        self.closed = False

    def open(self) -> "LoadingContext":
        """Put the context's finder in front of ``sys.meta_path``."""

        if self.closed:
            raise RuntimeError(f"Loading context for {self.namespace} is closed")
        if self._finder not in sys.meta_path:
            sys.meta_path.insert(0, self._finder)
        return self

    def __enter__(self):
        return self.open()

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False

    def find_spec(self, fullname):
        if self.closed:
            return None
        if fullname in self._packages:
            spec = importlib.machinery.ModuleSpec(fullname, None, is_package=True)
        else:
            parent, _, name = fullname.rpartition(".")
            if parent != self.namespace:
                return None
            artifact = self.directory / f"{name}{ARTIFACT_SUFFIX}"
            if not artifact.is_file():
                return None
            loader = importlib.machinery.SourcelessFileLoader(fullname, str(artifact))
            spec = importlib.util.spec_from_file_location(fullname, str(artifact), loader=loader)
        self._specs.setdefault(fullname, []).append(spec)
        return spec

    def _owned(self, fullname):
        module = sys.modules.get(fullname)
        if module is None:
            return None
        if any(module.__spec__ is spec for spec in self._specs.get(fullname, ())):
            return module
        return None

    def load(self, fullname: str):
        """Execute the artifact for ``fullname`` (once per context) and return its module."""

        module = self._owned(fullname)
        if module is not None:
            return module
        spec = self.find_spec(fullname)
        if spec is None or spec.loader is None:
            raise ModuleNotFoundError(
                f"No compiled artifact for {fullname} under {self.directory}", name=fullname
            )
        module = importlib.util.module_from_spec(spec)
        sys.modules[fullname] = module
        try:
            spec.loader.exec_module(module)
        except BaseException:
            if sys.modules.get(fullname) is module:
                del sys.modules[fullname]
            raise
        self._loaded.append(fullname)
        return module

    def discover_nested(self, unit: UnitId) -> list[str]:
        """Module names of the nested artifacts compiled next to ``unit``."""

        prefix = f"{unit.simple_name}{NESTED_SEPARATOR}"
        return [
            f"{self.namespace}.{artifact.stem}"
            for artifact in sorted(self.directory.glob(f"{prefix}*{ARTIFACT_SUFFIX}"))
        ]

    @property
    def loaded(self) -> list[str]:
        return list(self._loaded)

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        try:
            sys.meta_path.remove(self._finder)
        except ValueError:
            pass
        for fullname in list(self._specs):
            if self._owned(fullname) is not None:
                del sys.modules[fullname]
        self._specs.clear()


def _notify(host, unit, exc) -> None:
    if host is None:
        return
    try:
        host.handle_exception(exc)
    except Exception:
        LOG.exception("Host could not report the load failure of %s", unit)


def load_artifact(unit: UnitId, root, host=None) -> LoadedArtifact:
    """Load ``unit`` (and its nested artifacts) from ``root`` and instantiate it."""

    phase = "load"
    with LoadingContext(root, unit.namespace) as context:
        try:
            for fullname in context.discover_nested(unit):
                context.load(fullname)
            module = context.load(unit.qualified_name)
            factory = getattr(module, unit.simple_name)
            phase = "instantiate"
            handle = factory()
        except Exception as exc:
            _notify(host, unit, exc)
            raise WeaveLoadError(unit, phase) from exc
        LOG.debug("Loaded %s (%d module(s))", unit, len(context.loaded))
        return LoadedArtifact(handle, unit, context.loaded)


__all__ = [
    "LoadedArtifact",
    "LoadingContext",
    "WeaveLoadError",
    "load_artifact",
]

"""The weave pipeline: synthesize, stage, compile, load."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterable, Mapping, Optional

from ..bindings import BINDINGS
from .compiler import (
    CompilationResult,
    PythonToolchain,
    append_to_path,
    default_search_path,
    purge_stale_artifacts,
    source_root,
    stage_source,
    staging_root,
    unit_directory,
)
from .host import ConsoleHost
from .identity import ALLOCATOR, UnitId
from .loader import load_artifact
from .synthesis import synthesize
from .unit import UnitKind

LOG = logging.getLogger(__name__)


@dataclass
class WeaveResult:
    """Outcome of one weave request."""

    unit: UnitId
    source: str
    compilation: Optional[CompilationResult] = None
    handle: Any = None

    @property
    def diagnostics(self) -> str:
        return self.compilation.diagnostics if self.compilation is not None else ""

    def __bool__(self) -> bool:
        return self.handle is not None


class Weaver:
    """Turns source fragments into loaded, callable units.

    ``staging_root`` defaults to :func:`staging_root` at call time,
    ``search_path`` to :func:`default_search_path`. Bindings a request staged
    but its unit never claimed are discarded before the request returns.
    """

    def __init__(
        self,
        staging_root=None,
        toolchain=None,
        host=None,
        allocator=None,
        search_path: Optional[str] = None,
    ):
        self.staging_root = Path(staging_root) if staging_root is not None else None
        self.toolchain = toolchain if toolchain is not None else PythonToolchain()
        self.host = host if host is not None else ConsoleHost()
        self.allocator = allocator if allocator is not None else ALLOCATOR
        self.search_path = search_path

    @property
    def root(self) -> Path:
        return self.staging_root if self.staging_root is not None else staging_root()

    def _show(self, generated) -> None:
        try:
            self.host.show_source(generated.filename, generated.source)
        except Exception:
            LOG.exception("Host could not show the source of %s", generated.unit)

    def weave_inline(
        self,
        fragment: str,
        bindings: Optional[Mapping[str, Any]] = None,
        result_type=None,
        *,
        imports: Iterable = (),
        show_source: bool = False,
        helpers: Optional[Mapping[str, str]] = None,
    ) -> WeaveResult:
        unit = self.allocator.allocate()
        try:
            generated = synthesize(fragment, bindings, result_type, imports, UnitKind.INLINE, unit=unit)
            if show_source:
                self._show(generated)
            return self.generate(unit, generated.source, helpers=helpers)
        finally:
            BINDINGS.discard(unit)

    def inline(self, fragment, bindings=None, result_type=None, **options):
        """Weave ``fragment`` as the body of a zero-argument callable.

        Returns the callable, or ``None`` when the unit did not compile.
        """

        return self.weave_inline(fragment, bindings, result_type, **options).handle

    def weave_method(
        self,
        methods: str,
        imports: Iterable = (),
        *,
        show_source: bool = False,
        name: Optional[str] = None,
        helpers: Optional[Mapping[str, str]] = None,
    ) -> WeaveResult:
        unit = UnitId.parse(name) if name else self.allocator.allocate()
        generated = synthesize(methods, None, None, imports, UnitKind.METHOD, unit=unit)
        if show_source:
            self._show(generated)
        return self.generate(unit, generated.source, helpers=helpers)

    def method(self, methods, imports=(), **options):
        """Weave method definitions into a class and return an instance of it."""

        return self.weave_method(methods, imports, **options).handle

    def generate(self, unit: UnitId, source: str, helpers: Optional[Mapping[str, str]] = None) -> WeaveResult:
        """Stage, compile and load ``source`` as ``unit``.

        A failed compilation is logged and yields a result without a handle;
        a failed load raises :class:`~codeweave.runtime.loader.WeaveLoadError`.
        """

        root = self.root
        try:
            path = stage_source(unit, source, root, helpers)
            purged = purge_stale_artifacts(unit, root)
            if purged:
                LOG.info("Removed %d stale artifact(s) of %s", len(purged), unit)
            search_path = self.search_path if self.search_path is not None else default_search_path()
            search_path = append_to_path(str(source_root(path, unit)), search_path)

            result = self.toolchain.compile(path, search_path, unit_directory(root, unit))
            if not result:
                LOG.error("%s", result.diagnostics)
                return WeaveResult(unit, source, result)

            loaded = load_artifact(unit, root, self.host)
            return WeaveResult(unit, source, result, loaded.handle)
        finally:
            dropped = BINDINGS.discard(unit)
            if dropped:
                LOG.warning("Unit %s left %d binding(s) unclaimed", unit, dropped)


_DEFAULT_WEAVER = None
_DEFAULT_LOCK = threading.Lock()


def default_weaver() -> Weaver:
    global _DEFAULT_WEAVER
    with _DEFAULT_LOCK:
        if _DEFAULT_WEAVER is None:
            _DEFAULT_WEAVER = Weaver()
        return _DEFAULT_WEAVER


def inline(fragment, bindings=None, result_type=None, **options):
    """Weave ``fragment`` with the process-wide default :class:`Weaver`."""

    return default_weaver().inline(fragment, bindings, result_type, **options)


def method(methods, imports=(), **options):
    return default_weaver().method(methods, imports, **options)


__all__ = [
    "WeaveResult",
    "Weaver",
    "default_weaver",
    "inline",
    "method",
]

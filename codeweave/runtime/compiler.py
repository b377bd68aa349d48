"""Staging and compiling generated units."""

from __future__ import annotations

import logging
import os
import subprocess
import sys
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Mapping, Optional

from ..constants import (
    ARCHIVE_SUFFIXES,
    ARTIFACT_SUFFIX,
    NESTED_SEPARATOR,
    SEARCH_PATH_ENV,
    SOURCE_SUFFIX,
    STAGING_DIR_ENV,
)
from .identity import UnitId

LOG = logging.getLogger(__name__)

# Runs in the child interpreter: argv = [optimize, source, target, source, target, ...]
_DRIVER = """\
import py_compile
import sys

optimize = int(sys.argv[1])
failed = False
for source, target in zip(sys.argv[2::2], sys.argv[3::2]):
    try:
        py_compile.compile(source, cfile=target, doraise=True, optimize=optimize)
    except py_compile.PyCompileError as exc:
        sys.stderr.write(exc.msg.rstrip() + "\\n")
        failed = True
sys.exit(1 if failed else 0)
"""


@dataclass
class CompilationResult:
    success: bool
    diagnostics: str = ""
    artifacts: list[Path] = field(default_factory=list)

    def __bool__(self) -> bool:
        return self.success


def staging_root() -> Path:
    """Directory generated units are staged under."""

    override = os.environ.get(STAGING_DIR_ENV)
    return Path(override) if override else Path(tempfile.gettempdir())


def unit_directory(root, unit: UnitId) -> Path:
    return Path(root).joinpath(*unit.namespace.split("."))


def source_root(source_path, unit: UnitId) -> Path:
    """Return the directory the unit's namespace is rooted at."""

    directory = Path(source_path).resolve().parent
    for _ in unit.namespace.split("."):
        directory = directory.parent
    return directory


def append_to_path(path: str, extra: str) -> str:
    if not extra:
        return path
    if not path:
        return extra
    return f"{path}{os.pathsep}{extra}"


def discover_archives(path) -> list[str]:
    """Find importable archives at or below ``path``."""

    path = Path(path)
    if path.is_file():
        return [str(path)] if path.suffix in ARCHIVE_SUFFIXES else []
    found = []
    if path.is_dir():
        for child in sorted(path.iterdir()):
            if child.name.startswith("."):
                continue
            found.extend(discover_archives(child))
    return found


def default_search_path(extra: Iterable[str] = ()) -> str:
    """Build the search path handed to the toolchain.

    Starts from ``sys.path`` and adds every directory listed in
    ``$CODEWEAVE_PATH`` together with the archives found beneath it.
    """

    entries = [entry for entry in sys.path if entry]
    for directory in os.environ.get(SEARCH_PATH_ENV, "").split(os.pathsep):
        if not directory:
            continue
        entries.append(directory)
        entries.extend(discover_archives(directory))
    entries.extend(str(entry) for entry in extra)
    search_path = ""
    for entry in dict.fromkeys(entries):
        search_path = append_to_path(search_path, entry)
    return search_path


def stage_source(unit: UnitId, source: str, root, companions: Optional[Mapping[str, str]] = None) -> Path:
    """Write the unit's source (and any companion helper sources) under ``root``."""

    directory = unit_directory(root, unit)
    directory.mkdir(parents=True, exist_ok=True)
    for stale in directory.glob(f"{unit.simple_name}{NESTED_SEPARATOR}*{SOURCE_SUFFIX}"):
        stale.unlink(missing_ok=True)
    path = directory / f"{unit.simple_name}{SOURCE_SUFFIX}"
    path.write_text(source, encoding="utf-8")
    for suffix, text in (companions or {}).items():
        companion = directory / f"{unit.simple_name}{NESTED_SEPARATOR}{suffix}{SOURCE_SUFFIX}"
        companion.write_text(text, encoding="utf-8")
    return path


def unit_artifacts(unit: UnitId, directory) -> list[Path]:
    """Compiled files belonging to ``unit``: the primary one and its nested ones."""

    directory = Path(directory)
    primary = directory / f"{unit.simple_name}{ARTIFACT_SUFFIX}"
    nested = sorted(directory.glob(f"{unit.simple_name}{NESTED_SEPARATOR}*{ARTIFACT_SUFFIX}"))
    return ([primary] if primary.exists() else []) + nested


def purge_stale_artifacts(unit: UnitId, root) -> list[Path]:
    """Delete compiled output left over from an earlier unit with the same name."""

    removed = []
    for artifact in unit_artifacts(unit, unit_directory(root, unit)):
        try:
            artifact.unlink()
        except OSError as exc:
            LOG.warning("Failed to delete stale artifact %s: %s", artifact, exc)
        else:
            removed.append(artifact)
    return removed


class PythonToolchain:
    """Byte-compiles staged sources in a child interpreter.

    The primary source is compiled together with every companion source
    ``<name>__<suffix>.py`` beside it; each lands in ``output_dir`` as a
    ``.pyc`` of the same stem.
    """

    def __init__(self, python=None, *, optimize: Optional[int] = None, timeout=None, extra_args=()):
        self.python = python or sys.executable
        self.optimize = -1 if optimize is None else optimize
        self.timeout = timeout
        self.extra_args = list(extra_args)

    def command(self, sources, output_dir) -> list[str]:
        args = [self.python, *self.extra_args, "-c", _DRIVER, str(self.optimize)]
        for source in sources:
            args += [str(source), str(Path(output_dir) / f"{source.stem}{ARTIFACT_SUFFIX}")]
        return args

    def compile(self, source_path, search_path: str, output_dir) -> CompilationResult:
        source_path = Path(source_path)
        sources = [source_path] + sorted(
            source_path.parent.glob(f"{source_path.stem}{NESTED_SEPARATOR}*{SOURCE_SUFFIX}")
        )
        env = dict(os.environ)
        env["PYTHONPATH"] = search_path or ""
        try:
            Path(output_dir).mkdir(parents=True, exist_ok=True)
            completed = subprocess.run(
                self.command(sources, output_dir),
                capture_output=True,
                text=True,
                env=env,
                timeout=self.timeout,
                check=False,
            )
        except subprocess.TimeoutExpired:
            return CompilationResult(
                False, f"Could not compile {source_path}:\ntimed out after {self.timeout}s"
            )
        except OSError as exc:
            return CompilationResult(False, f"Could not compile {source_path}:\n{exc}")

        if completed.returncode != 0:
            output = (completed.stderr or completed.stdout or "").strip()
            return CompilationResult(False, f"Could not compile {source_path}:\n{output}")
        artifacts = [Path(output_dir) / f"{source.stem}{ARTIFACT_SUFFIX}" for source in sources]
        return CompilationResult(True, (completed.stderr or "").strip(), artifacts)


__all__ = [
    "CompilationResult",
    "PythonToolchain",
    "append_to_path",
    "default_search_path",
    "discover_archives",
    "purge_stale_artifacts",
    "source_root",
    "stage_source",
    "staging_root",
    "unit_artifacts",
    "unit_directory",
]

"""Render the source text of generated units."""

from __future__ import annotations

import keyword
import logging
import textwrap
import types
from typing import Iterable, Mapping, Optional

from ..bindings import BINDINGS
from ..constants import DEFAULT_RESULT_TYPE, INVOCABLE_MODULE, SUPPORT_MODULE
from .identity import ALLOCATOR, UnitId
from .inference import infer, name_type, public_name
from .unit import BindingRecord, GeneratedUnit, UnitKind

LOG = logging.getLogger(__name__)

HEADER = "# Generated by codeweave for unit {unit}. Do not edit."

# Names the unit binds for its own use; bindings may not start with it.
PRIVATE_PREFIX = "_cw_"


def render_import(entry) -> str:
    """Turn one extra import (statement, module name, module or class) into a line."""

    if isinstance(entry, str):
        text = entry.strip()
        if text.startswith(("import ", "from ")):
            return text
        return f"import {text}"
    if isinstance(entry, types.ModuleType):
        return f"import {entry.__name__}"
    if isinstance(entry, type):
        named = public_name(entry)
        if named is not None and named[0] is not None:
            module, dotted = named
            return f"from {module} import {dotted[len(module) + 1:].split('.')[0]}"
        top = entry.__qualname__.split(".")[0]
        return f"from {entry.__module__} import {top}"
    raise TypeError(f"Unsupported import entry: {entry!r}")


def render_result_type(result_type):
    """Return ``(annotation, modules)`` for a declared result type."""

    if result_type is None:
        return DEFAULT_RESULT_TYPE, ()
    if isinstance(result_type, str):
        return result_type.strip() or DEFAULT_RESULT_TYPE, ()
    if isinstance(result_type, type):
        descriptor = name_type(result_type)
        return descriptor.type_name, descriptor.modules
    raise TypeError(f"Result type must be a class or a type name, not {result_type!r}")


def indent_block(text: str, prefix: str) -> str:
    body = textwrap.dedent(text or "").strip("\n")
    if not body.strip():
        return prefix + "pass"
    return textwrap.indent(body, prefix)


def _header(unit, modules, imports):
    lines = [HEADER.format(unit=unit), "from __future__ import annotations", "", "import typing"]
    lines.extend(f"import {module}" for module in modules)
    lines.extend(imports)
    return lines


def _private_alias(module):
    return PRIVATE_PREFIX + module.replace(".", "_")


def _cast_target(descriptor):
    """Return ``(expression, module)`` for the class a binding is checked against.

    The expression goes through a private alias so that a binding sharing
    its name with a module or builtin cannot redirect later checks.
    """

    for module in descriptor.modules:
        if descriptor.cast_name.startswith(module + "."):
            return _private_alias(module) + descriptor.cast_name[len(module):], module
    return f"{PRIVATE_PREFIX}builtins.{descriptor.cast_name}", None


def _check_binding_name(unit, name):
    if not isinstance(name, str) or not name.isidentifier() or keyword.iskeyword(name):
        raise ValueError(f"Binding name is not an identifier: {name!r}")
    if name.startswith(PRIVATE_PREFIX) or name == unit.simple_name:
        raise ValueError(f"Binding name {name!r} is reserved in unit {unit}")


def _synthesize_inline(unit, fragment, bindings, result_type, imports):
    annotation, result_modules = render_result_type(result_type)
    records = []
    for name, value in (bindings or {}).items():
        if name is None:
            continue
        _check_binding_name(unit, name)
        records.append(BindingRecord(unit, name, value, infer(value)))

    modules = sorted(
        {m for record in records for m in record.descriptor.modules} | set(result_modules)
    )
    fields = []
    cast_modules = set()
    for record in records:
        descriptor = record.descriptor
        helper = f"{PRIVATE_PREFIX}unbox" if descriptor.is_boxed else f"{PRIVATE_PREFIX}cast"
        target, module = _cast_target(descriptor)
        if module is not None:
            cast_modules.add(module)
        fields.append(
            f"{record.name}: typing.Final[{descriptor.type_name}] = "
            f"{helper}({target}, {PRIVATE_PREFIX}steal({str(unit)!r}, {record.name!r}))"
        )

    lines = _header(unit, modules, imports)
    lines += ["", f"import builtins as {PRIVATE_PREFIX}builtins"]
    lines.extend(f"import {m} as {_private_alias(m)}" for m in sorted(cast_modules))
    lines += [
        f"from {SUPPORT_MODULE} import cast as {PRIVATE_PREFIX}cast, "
        f"steal as {PRIVATE_PREFIX}steal, unbox as {PRIVATE_PREFIX}unbox",
        f"from {INVOCABLE_MODULE} import Invocable as {PRIVATE_PREFIX}Invocable",
        "",
        "",
        "@typing.final",
        f"class {unit.simple_name}({PRIVATE_PREFIX}Invocable[{annotation}]):",
        f"    def __call__(self) -> {annotation}:",
        indent_block(fragment, " " * 8),
        "",
        "",
    ]
    # The class is built before any binding can shadow a name it uses.
    lines += fields
    lines.append("")
    for record in records:
        # Staged before compilation; the module body steals it back on load.
        BINDINGS.put(unit, record.name, record.value)
    return GeneratedUnit(
        unit=unit,
        kind=UnitKind.INLINE,
        source="\n".join(lines),
        fragment=fragment,
        bindings=records,
        result_type=annotation,
        imports=list(imports),
    )


def _synthesize_method(unit, methods, imports):
    lines = _header(unit, (), imports)
    lines += [
        "",
        "",
        "@typing.final",
        f"class {unit.simple_name}:",
        indent_block(methods, " " * 4),
        "",
    ]
    return GeneratedUnit(
        unit=unit,
        kind=UnitKind.METHOD,
        source="\n".join(lines),
        fragment=methods,
        imports=list(imports),
    )


def synthesize(
    fragment: str,
    bindings: Optional[Mapping] = None,
    result_type=None,
    imports: Iterable = (),
    kind: UnitKind = UnitKind.INLINE,
    *,
    unit: Optional[UnitId] = None,
    allocator=None,
) -> GeneratedUnit:
    """Build a unit around ``fragment``.

    For :attr:`UnitKind.INLINE` the fragment becomes the body of ``__call__``
    and every binding is staged in the process-wide binding store before
    this returns. Binding names must be identifiers other than the unit's
    simple name and must not start with ``PRIVATE_PREFIX``; otherwise
    ``ValueError`` is raised and nothing is staged. For :attr:`UnitKind.METHOD`
    the fragment holds whole method definitions and no bindings are staged.
    """

    if unit is None:
        unit = (allocator or ALLOCATOR).allocate()
    rendered = [render_import(entry) for entry in imports or ()]
    if kind is UnitKind.METHOD:
        if bindings:
            LOG.warning("Ignoring %d binding(s) for method unit %s", len(bindings), unit)
        return _synthesize_method(unit, fragment, rendered)
    return _synthesize_inline(unit, fragment, bindings, result_type, rendered)


__all__ = [
    "HEADER",
    "PRIVATE_PREFIX",
    "indent_block",
    "render_import",
    "render_result_type",
    "synthesize",
]

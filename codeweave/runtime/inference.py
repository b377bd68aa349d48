"""Static type names for runtime values.

A generated unit declares one constant per binding, so every bound value
needs a type that can be written in source text and checked at load time.
The concrete class of a value is often not usable for that (defined in a
function, private to its module, or a C type that is not exported), so the
class hierarchy is walked up to the closest class that is.
"""

from __future__ import annotations

import array
import builtins
import ctypes
import sys
from dataclasses import dataclass
from enum import Enum


class TypeKind(Enum):
    PRIMITIVE = "primitive"
    PLAIN = "plain"
    ARRAY = "array"


@dataclass(frozen=True)
class TypeDescriptor:
    """How a bound value is declared (``type_name``) and checked (``cast_name``)."""

    type_name: str
    cast_name: str
    kind: TypeKind = TypeKind.PLAIN
    modules: tuple = ()

    @property
    def is_boxed(self) -> bool:
        return self.kind is TypeKind.PRIMITIVE


OBJECT = TypeDescriptor("object", "object")

# Exact ctypes wrappers and the plain value their ``.value`` holds.
_WRAPPED_PRIMITIVES = (
    ("c_bool", "bool"),
    ("c_char", "bytes"),
    ("c_wchar", "str"),
    ("c_byte", "int"),
    ("c_ubyte", "int"),
    ("c_short", "int"),
    ("c_ushort", "int"),
    ("c_int", "int"),
    ("c_uint", "int"),
    ("c_long", "int"),
    ("c_ulong", "int"),
    ("c_longlong", "int"),
    ("c_ulonglong", "int"),
    ("c_float", "float"),
    ("c_double", "float"),
    ("c_longdouble", "float"),
)

PRIMITIVE_WRAPPERS = {
    getattr(ctypes, wrapper): primitive
    for wrapper, primitive in _WRAPPED_PRIMITIVES
    if hasattr(ctypes, wrapper)
}

ARRAY_TYPECODES = {
    **dict.fromkeys("bBhHiIlLqQ", "int"),
    **dict.fromkeys("fd", "float"),
    **dict.fromkeys("uw", "str"),
}

PRIMITIVE_BUILTINS = (bool, int, float, complex, str, bytes)


def _resolve(owner, qualname):
    obj = owner
    for part in qualname.split("."):
        obj = getattr(obj, part, None)
        if obj is None:
            return None
    return obj


def _is_private(dotted):
    return any(part.startswith("_") for part in dotted.split("."))


def _module_aliases(module):
    yield module
    # C accelerators such as ``_io`` are re-exported by their public module.
    public = ".".join(
        part[1:] if part.startswith("_") and not part.startswith("__") else part
        for part in module.split(".")
    )
    if public != module:
        yield public


def public_name(cls):
    """Return ``(module, dotted_name)`` for a nameable, accessible class, else ``None``.

    ``module`` is ``None`` for builtins, which need no import.
    """

    qualname = getattr(cls, "__qualname__", cls.__name__)
    if "<" in qualname or _is_private(qualname):
        return None
    module = getattr(cls, "__module__", None) or "builtins"
    if module == "builtins":
        return (None, qualname) if _resolve(builtins, qualname) is cls else None
    for candidate in _module_aliases(module):
        if _is_private(candidate):
            continue
        owner = sys.modules.get(candidate)
        if owner is not None and _resolve(owner, qualname) is cls:
            return candidate, f"{candidate}.{qualname}"
    return None


def name_type(cls) -> TypeDescriptor:
    """Walk ``cls`` and its ancestors up to the first class source text can name."""

    for candidate in cls.__mro__:
        named = public_name(candidate)
        if named is None:
            continue
        module, dotted = named
        return TypeDescriptor(dotted, dotted, TypeKind.PLAIN, (module,) if module else ())
    return OBJECT


def _common_type(classes) -> TypeDescriptor:
    first, *rest = classes
    for candidate in first.__mro__:
        if all(issubclass(other, candidate) for other in rest):
            named = public_name(candidate)
            if named is not None:
                module, dotted = named
                return TypeDescriptor(dotted, dotted, TypeKind.PLAIN, (module,) if module else ())
    return OBJECT


def _list_shape(value):
    """Return ``(depth, leaves)`` of a regular nested list, or ``None``."""

    depth = 0
    level = [value]
    seen = set()
    while all(type(item) is list for item in level):
        if not all(level):
            return None
        # A list reachable from itself has no finite depth.
        if any(id(item) in seen for item in level):
            return None
        seen.update(id(item) for item in level)
        depth += 1
        level = [leaf for item in level for leaf in item]
    if any(type(item) is list for item in level):
        return None
    return depth, level


def _nest(element, depth):
    for _ in range(depth):
        element = f"list[{element}]"
    return element


def _typecoded_array(value) -> TypeDescriptor:
    primitive = ARRAY_TYPECODES.get(value.typecode, "object")
    return TypeDescriptor(f"array.array[{primitive}]", "array.array", TypeKind.ARRAY, ("array",))


def _list_array(value) -> TypeDescriptor:
    shape = _list_shape(value)
    if shape is None:
        return TypeDescriptor("list", "list")
    depth, leaves = shape
    leaf_types = list(dict.fromkeys(type(leaf) for leaf in leaves))
    if len(leaf_types) == 1 and leaf_types[0] in PRIMITIVE_BUILTINS:
        element = TypeDescriptor(leaf_types[0].__name__, leaf_types[0].__name__)
    else:
        element = _common_type(leaf_types)
    return TypeDescriptor(_nest(element.type_name, depth), "list", TypeKind.ARRAY, element.modules)


def infer(value) -> TypeDescriptor:
    """Pick the narrowest type a generated unit can declare ``value`` with."""

    if value is None:
        return OBJECT
    cls = type(value)
    primitive = PRIMITIVE_WRAPPERS.get(cls)
    if primitive is not None:
        return TypeDescriptor(primitive, f"ctypes.{cls.__name__}", TypeKind.PRIMITIVE, ("ctypes",))
    if cls is array.array:
        return _typecoded_array(value)
    if cls is list:
        return _list_array(value)
    return name_type(cls)


__all__ = [
    "ARRAY_TYPECODES",
    "OBJECT",
    "PRIMITIVE_BUILTINS",
    "PRIMITIVE_WRAPPERS",
    "TypeDescriptor",
    "TypeKind",
    "infer",
    "name_type",
    "public_name",
]

"""Public :mod:`codeweave` API: weave source fragments into callable units."""

from . import bindings as _bindings
from . import constants as _constants
from . import runtime as _runtime
from .bindings import *  # noqa: F401,F403
from .constants import *  # noqa: F401,F403
from .runtime import *  # noqa: F401,F403

__all__ = []
__all__ += getattr(_constants, "__all__", [])
__all__ += getattr(_bindings, "__all__", [])
__all__ += getattr(_runtime, "__all__", [])

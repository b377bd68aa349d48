"""
codeweave runtime — turns source fragments into loaded, callable units.

  allocate → infer → stage bindings → synthesize → compile → load

| Stage                   | Module        |
<------------------------ + ------------- >
| **Unit identity**       | `identity`    |
| **Type inference**      | `inference`   |
| **Code synthesis**      | `synthesis`   |
| **Compilation**         | `compiler`    |
| **Artifact loading**    | `loader`      |
| **Host hooks**          | `host`        |
| **Pipeline**            | `weaver`      |
"""

from . import identity as _identity
from . import inference as _inference
from . import unit as _unit
from . import synthesis as _synthesis
from . import compiler as _compiler
from . import loader as _loader
from . import host as _host
from . import weaver as _weaver
from .cli import main, parse_args

from .identity import *
from .inference import *
from .unit import *
from .synthesis import *
from .compiler import *
from .loader import *
from .host import *
from .weaver import *

__all__ = []
for module in (_identity, _inference, _unit, _synthesis, _compiler, _loader, _host, _weaver):
    __all__.extend(getattr(module, '__all__', []))
__all__ += ['main', 'parse_args']
__all__ = list(dict.fromkeys(__all__))

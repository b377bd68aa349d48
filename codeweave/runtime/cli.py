"""Command-line interface for weaving fragments."""
from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

from .compiler import PythonToolchain
from .loader import WeaveLoadError
from .weaver import Weaver


def _parse_value(text):
    try:
        return json.loads(text)
    except ValueError:
        return text


def _parse_binding(text):
    name, sep, value = text.partition("=")
    if not sep or not name.strip():
        raise argparse.ArgumentTypeError(f"binding must look like NAME=VALUE: {text!r}")
    return name.strip(), _parse_value(value)


def parse_args(args):
    argp = argparse.ArgumentParser(
        prog="codeweave", description="Compile and run woven Python fragments"
    )
    argp.add_argument(
        "--staging-dir",
        metavar="DIR",
        help="Directory generated units are written to (default: system temp dir)",
    )
    argp.add_argument(
        "--timeout",
        type=float,
        help="Give up on compilation after this many seconds",
    )
    argp.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help="Log more (repeat for debug output)",
    )
    sub = argp.add_subparsers(dest="command", required=True)

    inline_p = sub.add_parser("inline", help="Weave a fragment and call it once")
    inline_p.add_argument("fragment", help="Body of the generated callable")
    inline_p.add_argument(
        "--bind",
        action="append",
        type=_parse_binding,
        default=[],
        metavar="NAME=JSON",
        help="Bind NAME to a JSON value (plain text if it is not JSON)",
    )
    inline_p.add_argument("--result-type", metavar="TYPE", help="Declared result type")

    method_p = sub.add_parser("method", help="Weave method definitions from a file")
    method_p.add_argument("file", help="File holding one or more method definitions")
    method_p.add_argument("--call", metavar="NAME", help="Method to call on the woven instance")
    method_p.add_argument(
        "--arg",
        action="append",
        dest="call_args",
        default=[],
        metavar="JSON",
        help="Argument passed to --call (repeatable)",
    )
    method_p.add_argument("--name", help="Reuse a fixed unit name such as woven.helpers")

    for parser in (inline_p, method_p):
        parser.add_argument(
            "--import",
            action="append",
            dest="imports",
            default=[],
            metavar="STMT",
            help="Extra import for the generated unit (repeatable)",
        )
        parser.add_argument(
            "--show-source",
            action="store_true",
            help="Print the generated source before compiling",
        )

    return argp.parse_args(args)


def _report_failure(result):
    print(f"✗ {result.unit} did not compile")
    for line in result.diagnostics.splitlines():
        print("   ", line)


def _invoke(unit, target, *call_args):
    try:
        value = target(*call_args)
    except Exception as exc:
        print(f"✗ {unit} raised {type(exc).__name__}: {exc}")
        return 1
    print(f"→ {value!r}")
    return 0


def main(args) -> int:
    params = parse_args(args)
    level = logging.WARNING - 10 * min(params.verbose, 2)
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")

    weaver = Weaver(
        staging_root=params.staging_dir,
        toolchain=PythonToolchain(timeout=params.timeout),
    )
    try:
        if params.command == "inline":
            result = weaver.weave_inline(
                params.fragment,
                dict(params.bind),
                params.result_type,
                imports=params.imports,
                show_source=params.show_source,
            )
            if not result:
                _report_failure(result)
                return 1
            return _invoke(result.unit, result.handle)

        methods = Path(params.file).read_text(encoding="utf-8")
        result = weaver.weave_method(
            methods,
            params.imports,
            show_source=params.show_source,
            name=params.name,
        )
        if not result:
            _report_failure(result)
            return 1
        if params.call:
            target = getattr(result.handle, params.call, None)
            if not callable(target):
                print(f"✗ {result.unit} has no method {params.call!r}")
                return 1
            call_args = [_parse_value(arg) for arg in params.call_args]
            return _invoke(result.unit, target, *call_args)
        names = sorted(n for n in dir(type(result.handle)) if not n.startswith("_"))
        print(f"✓ {result.unit}: {', '.join(names) or '(no public methods)'}")
        return 0
    except WeaveLoadError as exc:
        print(f"✗ {exc}: {exc.__cause__!r}")
        return 1
    except ValueError as exc:
        print(f"✗ {exc}")
        return 1


__all__ = [
    "main",
    "parse_args",
]


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main(sys.argv[1:]))

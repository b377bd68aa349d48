import ctypes
import logging
import sys
import threading
from collections import OrderedDict
from pathlib import Path

import pytest

sys.path.append(str(Path(__file__).resolve().parents[1]))

import codeweave  # noqa: E402
from codeweave import (  # noqa: E402
    BINDINGS,
    SOURCE_BANNER,
    ConsoleHost,
    HostInterface,
    UnitId,
    UnitKind,
    WeaveLoadError,
    Weaver,
    clear_bindings,
    pending_bindings,
    synthesize,
)


class Shape:
    def area(self):
        return 0


class _Square(Shape):
    def area(self):
        return 4


class RecordingHost(HostInterface):
    def __init__(self):
        self.sources = []
        self.errors = []

    def show_source(self, filename, source):
        self.sources.append((filename, source))

    def handle_exception(self, exc):
        self.errors.append(exc)


@pytest.fixture(autouse=True)
def clean_store():
    clear_bindings()
    yield
    clear_bindings()


@pytest.fixture
def host():
    return RecordingHost()


@pytest.fixture
def weaver(tmp_path, host):
    return Weaver(staging_root=tmp_path, host=host)


def test_inline_fragment_round_trip(weaver):
    handle = weaver.inline("return 2 + 2", result_type=int)

    assert handle() == 4
    assert handle.call() == 4
    assert isinstance(handle, codeweave.Invocable)


def test_bindings_are_read_once_at_load(weaver, monkeypatch):
    handle = weaver.inline("return n * n", {"n": 5}, int)
    calls = []
    monkeypatch.setattr(BINDINGS, "steal", lambda *args: calls.append(args))

    assert handle() == 25
    assert handle() == 25
    assert calls == []
    assert pending_bindings() == {}


def test_boxed_and_array_bindings(weaver):
    handle = weaver.inline(
        "return [[scale * v for v in row] for row in grid]",
        {"scale": ctypes.c_double(2.0), "grid": [[1, 2], [3, 4]]},
    )

    assert handle() == [[2.0, 4.0], [6.0, 8.0]]


def test_bound_objects_keep_their_identity(weaver):
    box = OrderedDict(a=1)
    handle = weaver.inline("return box", {"box": box})

    assert handle() is box


def test_none_binding(weaver):
    handle = weaver.inline("return value is None", {"value": None}, bool)

    assert handle() is True


def test_private_classes_are_declared_by_a_public_ancestor(weaver):
    result = weaver.weave_inline("return shape.area()", {"shape": _Square()}, int)

    assert f"shape: typing.Final[{Shape.__module__}.Shape]" in result.source
    assert result.handle() == 4


def test_compile_failure_returns_no_handle(weaver, caplog):
    with caplog.at_level(logging.ERROR, logger="codeweave.runtime.weaver"):
        result = weaver.weave_inline("return (", {"n": 1})

    assert result.handle is None
    assert not result
    assert "Could not compile" in result.diagnostics
    assert "SyntaxError" in result.diagnostics
    assert pending_bindings() == {}
    assert "Could not compile" in caplog.text
    assert weaver.inline("return )") is None


def test_repeated_failures_leave_no_bindings_behind(weaver):
    for _ in range(3):
        assert weaver.inline("def (", {"a": 1, "b": 2}) is None

    assert len(BINDINGS) == 0


def test_fixed_names_replace_old_artifacts(weaver, tmp_path):
    first = weaver.method("def value(self):\n    return 1\n", name="woven.fixedunit")
    second = weaver.method("def value(self):\n    return 2\n", name="woven.fixedunit")

    assert first.value() == 1
    assert second.value() == 2

    result = weaver.weave_method("def value(self)\n", name="woven.fixedunit")

    assert result.handle is None
    assert not (tmp_path / "woven" / "fixedunit.pyc").exists()


def test_method_units(weaver):
    handle = weaver.method(
        "@staticmethod\ndef hypot(a, b):\n    return math.hypot(a, b)\n\n"
        "def double(self, x):\n    return 2 * x\n",
        imports=["import math"],
    )

    assert handle.hypot(3, 4) == 5.0
    assert handle.double(21) == 42
    assert not isinstance(handle, codeweave.Invocable)


def test_helpers_are_compiled_as_nested_artifacts(weaver):
    handle = weaver.method(
        "def run(self, x):\n    return helped__util.double(x)\n",
        imports=["from woven import helped__util"],
        name="woven.helped",
        helpers={"util": "def double(x):\n    return 2 * x\n"},
    )

    assert handle.run(8) == 16


def test_show_source_goes_to_the_host(weaver, host):
    result = weaver.weave_inline("return 1", show_source=True)

    assert host.sources == [(f"{result.unit.simple_name}.py", result.source)]
    assert weaver.inline("return 1") is not None
    assert len(host.sources) == 1


def test_console_host_prints_a_banner(tmp_path, capsys):
    weaver = Weaver(staging_root=tmp_path, host=ConsoleHost())
    result = weaver.weave_inline("return 'shown'", show_source=True)

    out = capsys.readouterr().out
    assert SOURCE_BANNER in out
    assert f"# {result.unit.simple_name}.py" in out
    assert "return 'shown'" in out


def test_missing_import_raises_a_load_error(weaver, host):
    with pytest.raises(WeaveLoadError) as info:
        weaver.inline("return 1", imports=["import codeweave_missing_module"])

    assert info.value.phase == "load"
    assert isinstance(info.value.__cause__, ModuleNotFoundError)
    assert host.errors == [info.value.__cause__]


def test_unit_without_its_binding_fails_to_load(weaver, caplog):
    unit = UnitId.parse("woven.orphan")
    generated = synthesize("return n", {"n": 1}, int, kind=UnitKind.INLINE, unit=unit)
    clear_bindings()

    with caplog.at_level(logging.WARNING, logger="codeweave.bindings"):
        with pytest.raises(WeaveLoadError) as info:
            weaver.generate(unit, generated.source)

    assert isinstance(info.value.__cause__, TypeError)
    assert "No binding 'n' for unit 'woven.orphan'" in caplog.text


def test_concurrent_requests_get_distinct_units(weaver):
    results = {}

    def worker(index):
        result = weaver.weave_inline("return k * 10", {"k": index}, int)
        results[index] = (result.unit, result.handle())

    threads = [threading.Thread(target=worker, args=(i,)) for i in range(6)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert {index: value for index, (_, value) in results.items()} == {
        i: i * 10 for i in range(6)
    }
    assert len({unit for unit, _ in results.values()}) == 6
    assert len(BINDINGS) == 0


def test_module_level_inline_uses_the_configured_staging_dir(tmp_path, monkeypatch):
    monkeypatch.setenv("CODEWEAVE_STAGING_DIR", str(tmp_path))

    handle = codeweave.inline("return 'default'", result_type=str)

    assert handle() == "default"
    assert list((tmp_path / "woven").glob("gen*.pyc"))


@pytest.mark.parametrize(
    "fragment, bindings, expected",
    [
        ("return typing + 1", {"typing": 1}, 2),
        ("return int * y", {"int": 2, "y": 3}, 6),
        ("return list + other", {"list": [1], "other": [2]}, [1, 2]),
        ("return (collections, box)", {"collections": 5, "box": OrderedDict()}, (5, OrderedDict())),
        ("return ctypes + scale", {"ctypes": 1.5, "scale": ctypes.c_double(2.0)}, 3.5),
    ],
)
def test_bindings_may_shadow_names_the_unit_uses(weaver, fragment, bindings, expected):
    handle = weaver.inline(fragment, bindings)

    assert handle() == expected
    assert len(BINDINGS) == 0


def test_reserved_binding_names_are_rejected_before_staging(weaver):
    with pytest.raises(ValueError):
        weaver.inline("return 1", {"n": 1, "_cw_steal": 2})

    assert len(BINDINGS) == 0

import ctypes
import logging
import sys
import threading
from pathlib import Path

import pytest

sys.path.append(str(Path(__file__).resolve().parents[1]))

from codeweave import (  # noqa: E402
    MISSING,
    BindingStore,
    UnitId,
    cast,
    unbox,
)


@pytest.fixture
def store():
    return BindingStore()


def test_steal_hands_over_a_value_exactly_once(store):
    payload = object()
    store.put("woven.gen1", "x", payload)

    assert store.steal("woven.gen1", "x") is payload
    assert store.steal("woven.gen1", "x") is MISSING


def test_missing_binding_is_logged_instead_of_raised(store, caplog):
    with caplog.at_level(logging.WARNING, logger="codeweave.bindings"):
        assert store.steal("woven.gen404", "ghost") is MISSING

    assert "No binding 'ghost' for unit 'woven.gen404'" in caplog.text
    assert not MISSING


def test_put_ignores_unnamed_bindings(store):
    store.put("woven.gen1", None, 42)

    assert len(store) == 0
    assert store.pending() == {}


def test_unit_entry_disappears_once_every_binding_is_stolen(store):
    store.put("woven.gen2", "a", 1)
    store.put("woven.gen2", "b", 2)

    assert store.steal("woven.gen2", "a") == 1
    assert store.pending() == {"woven.gen2": ["b"]}
    assert store.steal("woven.gen2", "b") == 2
    assert store.pending() == {}


def test_put_replaces_a_staged_value(store):
    store.put("woven.gen3", "x", "old")
    store.put("woven.gen3", "x", "new")

    assert store.steal("woven.gen3", "x") == "new"
    assert len(store) == 0


def test_discard_drops_unclaimed_bindings(store):
    store.put("woven.gen4", "a", 1)
    store.put("woven.gen4", "b", 2)
    store.put("woven.gen5", "c", 3)

    assert store.discard("woven.gen4") == 2
    assert store.discard("woven.gen4") == 0
    assert store.pending() == {"woven.gen5": ["c"]}
    assert store.pending("woven.gen4") == {"woven.gen4": []}


def test_unit_ids_and_names_share_the_same_key(store):
    store.put(UnitId.parse("woven.gen7"), "n", 3)

    assert store.steal("woven.gen7", "n") == 3


def test_clear_empties_the_store(store):
    store.put("woven.gen8", "a", 1)
    store.clear()

    assert len(store) == 0


def test_concurrent_put_and_steal_hand_over_every_value(store):
    count = 200
    results = [None] * count

    def worker(index):
        unit = f"woven.gen{index}"
        store.put(unit, "v", index)
        results[index] = store.steal(unit, "v")

    threads = [threading.Thread(target=worker, args=(i,)) for i in range(count)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert results == list(range(count))
    assert len(store) == 0


def test_cast_checks_the_declared_class():
    assert cast(int, 3) == 3
    assert cast(object, None) is None
    assert cast(object, MISSING) is None

    with pytest.raises(TypeError):
        cast(int, "3")
    with pytest.raises(TypeError):
        cast(int, MISSING)


def test_unbox_unwraps_exact_ctypes_wrappers():
    assert unbox(ctypes.c_int, ctypes.c_int(7)) == 7
    assert unbox(ctypes.c_double, ctypes.c_double(1.5)) == 1.5
    assert unbox(ctypes.c_char, ctypes.c_char(b"z")) == b"z"

    with pytest.raises(TypeError):
        unbox(ctypes.c_int, 7)
    with pytest.raises(TypeError):
        unbox(ctypes.c_int, MISSING)

"""Tests for patch() and reset()."""

import pytest

from stashx import UNSET, MutationKind, UnsupportedOperation, define_store, getter


@pytest.fixture
def profile(registry):
    define_store(
        "profile",
        lambda: {"a": 0, "b": 0, "c": 0, "prefs": {"theme": "light", "size": 12}, "items": []},
    )
    store = registry.get("profile")
    log = []
    store.subscribe(lambda mutation, state: log.append(mutation))
    return store, log


class TestObjectPatch:
    def test_each_patch_is_one_record(self, profile):
        store, log = profile
        store.patch({"a": 1})
        store.patch({"b": 2})
        assert [m.affected_fields for m in log] == [frozenset({"a"}), frozenset({"b"})]
        assert all(m.kind is MutationKind.PATCH_OBJECT for m in log)
        assert (store.a, store.b, store.c) == (1, 2, 0)

    def test_payload_recorded(self, profile):
        store, log = profile
        store.patch({"a": 5, "b": UNSET})
        assert log[0].payload == {"a": 5}

    def test_unset_means_no_change(self, profile):
        store, log = profile
        store.patch({"a": UNSET, "b": 3})
        assert store.a == 0
        assert log[0].affected_fields == frozenset({"b"})

    def test_none_is_a_value(self, profile):
        store, _ = profile
        store.patch({"a": None})
        assert store.a is None

    def test_nested_dicts_merge(self, profile):
        store, log = profile
        store.patch({"prefs": {"theme": "dark"}})
        assert store.prefs == {"theme": "dark", "size": 12}
        assert log[0].affected_fields == frozenset({"prefs"})

    def test_lists_are_replaced(self, profile):
        store, _ = profile
        store.patch({"items": [1, 2]})
        store.patch({"items": [3]})
        assert store.items == [3]

    def test_new_fields_can_be_added(self, profile):
        store, _ = profile
        store.patch({"fresh": True})
        assert store.fresh is True

    def test_new_field_names_are_checked(self, profile):
        store, log = profile
        with pytest.raises(ValueError):
            store.patch({"a": 1, "reset": 1})
        with pytest.raises(ValueError):
            store.patch({"_hidden": 1})
        assert store.a == 0
        assert "reset" not in store.state
        assert log == []

    def test_rejects_other_types(self, profile):
        store, _ = profile
        with pytest.raises(TypeError):
            store.patch(42)


class TestFunctionPatch:
    def test_three_fields_one_record(self, profile):
        store, log = profile

        def edit(state):
            state.a = 1
            state.b = 2
            state["c"] = 3

        store.patch(edit)
        assert len(log) == 1
        assert log[0].kind is MutationKind.PATCH_FUNCTION
        assert log[0].affected_fields == frozenset({"a", "b", "c"})

    def test_reserved_field_refused(self, profile):
        store, log = profile
        with pytest.raises(ValueError):
            store.patch(lambda state: setattr(state, "dispose", 1))
        assert "dispose" not in store.state
        assert log == []

    def test_structural_edits(self, profile):
        store, log = profile
        store.patch({"items": [1, 2, 3, 4]})

        def truncate(state):
            del state["items"][2:]
            state["items"].append(9)

        store.patch(truncate)
        assert store.items == [1, 2, 9]
        assert len(log) == 2

    def test_nested_patch_commits_once(self, profile):
        store, log = profile

        def outer(state):
            state.a = 1
            store.patch({"b": 2})

        store.patch(outer)
        assert len(log) == 1
        assert log[0].affected_fields == frozenset({"a", "b"})

    def test_untouched_patch_still_notifies(self, profile):
        store, log = profile
        store.patch(lambda state: None)
        assert len(log) == 1
        assert log[0].affected_fields == frozenset()

    def test_raising_patch_keeps_writes(self, profile):
        store, log = profile

        def broken(state):
            state.a = 1
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError):
            store.patch(broken)
        assert store.a == 1
        assert len(log) == 1


class TestReset:
    def test_counter_scenario(self, registry):
        define_store(
            "counter",
            lambda: {"count": 0},
            actions={"increment": lambda store: setattr(store, "count", store.count + 1)},
        )
        counter = registry.get("counter")
        log = []
        counter.subscribe(lambda mutation, state: log.append(mutation))

        counter.increment()
        counter.increment()
        counter.increment()

        assert [m.sequence for m in log] == [1, 2, 3]
        assert all(m.kind is MutationKind.DIRECT for m in log)
        assert counter.count == 3

        counter.reset()
        assert counter.count == 0
        assert log[-1].kind is MutationKind.RESET

    def test_list_scenario(self, registry):
        define_store("list", lambda: {"items": []})
        store = registry.get("list")
        log = []
        store.subscribe(lambda mutation, state: log.append(mutation))
        store.patch(lambda state: state.items.append(1))
        assert len(log) == 1
        assert log[0].affected_fields == frozenset({"items"})
        assert store.items == [1]

    def test_handles_follow_reset(self, profile):
        store, _ = profile
        a = store.handle("a")
        items = store.handle("items")
        store.patch({"a": 9, "items": [1]})
        store.reset()
        assert a.value == 0
        assert items.value == []

    def test_reset_is_history_independent(self, profile):
        store, _ = profile
        store.patch(lambda state: state["prefs"].update(theme="dark"))
        store.patch({"extra": 1})
        store.items.append(1)
        store.reset()
        assert store.state.to_dict() == {
            "a": 0, "b": 0, "c": 0, "prefs": {"theme": "light", "size": 12}, "items": []
        }

    def test_reset_is_one_record(self, profile):
        store, log = profile
        store.patch({"a": 1, "b": 1})
        store.reset()
        assert len(log) == 2
        assert log[1].kind is MutationKind.RESET
        assert log[1].affected_fields == frozenset({"a", "b"})

    def test_reset_detaches_old_values(self, profile):
        store, log = profile
        store.patch({"items": [1]})
        old = store.items
        store.reset()
        log.clear()
        old.append(2)
        assert log == []
        assert store.items == []

    def test_setup_store_cannot_reset(self, registry):
        define_store("setup-counter", setup=lambda: {"count": 0, "double": getter(lambda s: s["count"] * 2)})
        store = registry.get("setup-counter")
        store.count = 4
        with pytest.raises(UnsupportedOperation) as exc:
            store.reset()
        assert exc.value.store_id == "setup-counter"
        assert store.count == 4

"""Tests for subscription delivery."""

import logging

import pytest

from stashx import MutationKind, StoreRegistry, SubscriberFailure, SubscriptionBus, define_store


@pytest.fixture
def stores(registry):
    define_store("a", lambda: {"x": 0, "y": 0})
    define_store("b", lambda: {"x": 0})
    return registry.get("a"), registry.get("b")


class TestStoreSubscriptions:
    def test_receives_mutation_and_state(self, stores):
        a, _ = stores
        log = []
        a.subscribe(lambda mutation, state: log.append((mutation, state["x"])))
        a.x = 5
        mutation, seen = log[0]
        assert mutation.store_id == "a"
        assert mutation.kind is MutationKind.DIRECT
        assert mutation.affected_fields == frozenset({"x"})
        assert seen == 5

    def test_only_own_store(self, stores):
        a, b = stores
        log = []
        a.subscribe(lambda mutation, state: log.append(mutation.store_id))
        b.x = 1
        a.x = 1
        assert log == ["a"]

    def test_strictly_increasing_sequence(self, stores):
        a, _ = stores
        log = []
        a.subscribe(lambda mutation, state: log.append(mutation.sequence))
        for i in range(1, 6):
            a.x = i
        assert log == sorted(log)
        assert len(set(log)) == 5

    def test_unsubscribe(self, stores):
        a, _ = stores
        log = []
        remove = a.subscribe(lambda mutation, state: log.append(mutation.sequence))
        a.x = 1
        remove()
        remove()  # idempotent
        a.x = 2
        assert log == [1]

    def test_removed_mid_delivery_is_skipped(self, stores):
        a, _ = stores
        log = []
        removers = {}

        def first(mutation, state):
            log.append("first")
            removers["second"]()

        a.subscribe(first)
        removers["second"] = a.subscribe(lambda mutation, state: log.append("second"))
        a.x = 1
        a.x = 2
        assert log == ["first", "first"]

    def test_registration_order(self, stores):
        a, _ = stores
        log = []
        a.subscribe(lambda mutation, state: log.append("first"))
        a.subscribe(lambda mutation, state: log.append("second"))
        a.x = 1
        assert log == ["first", "second"]


class TestGlobalSubscriptions:
    def test_union_in_global_order(self, registry, stores):
        a, b = stores
        log = []
        registry.subscribe(lambda mutation, state: log.append((mutation.store_id, mutation.sequence)))
        a.x = 1
        b.x = 1
        a.patch({"y": 2})
        assert log == [("a", 1), ("b", 2), ("a", 3)]

    def test_store_subscribers_before_global(self, registry, stores):
        a, _ = stores
        log = []
        registry.subscribe(lambda mutation, state: log.append("global"))
        a.subscribe(lambda mutation, state: log.append("store"))
        a.x = 1
        assert log == ["store", "global"]


class TestReentrancy:
    def test_mutation_from_subscriber_is_queued(self, registry, stores):
        a, b = stores
        log = []

        def mirror(mutation, state):
            log.append(("mirror", mutation.sequence))
            if mutation.store_id == "a":
                b.x = state["x"]

        a.subscribe(mirror)
        registry.subscribe(lambda mutation, state: log.append(("global", mutation.store_id, mutation.sequence)))
        a.x = 7

        assert log == [("mirror", 1), ("global", "a", 1), ("global", "b", 2)]
        assert b.x == 7

    def test_self_mutation_does_not_recurse(self, stores):
        a, _ = stores
        log = []

        def clamp(mutation, state):
            log.append(state["x"])
            if state["x"] > 10:
                state["x"] = 10

        a.subscribe(clamp)
        a.x = 50
        assert log == [50, 10]
        assert a.x == 10

    def test_subscribe_during_delivery_waits(self, stores):
        a, _ = stores
        log = []

        def late(mutation, state):
            log.append(("late", mutation.sequence))

        def first(mutation, state):
            log.append(("first", mutation.sequence))
            if mutation.sequence == 1:
                a.subscribe(late)

        a.subscribe(first)
        a.x = 1
        a.x = 2
        assert log == [("first", 1), ("first", 2), ("late", 2)]


class TestSubscriberFailure:
    def test_failure_is_isolated_and_logged(self, stores, caplog):
        a, _ = stores
        log = []

        def broken(mutation, state):
            raise RuntimeError("subscriber boom")

        a.subscribe(broken)
        a.subscribe(lambda mutation, state: log.append(mutation.sequence))

        with caplog.at_level(logging.ERROR, logger="stashx.subscription"):
            a.x = 3

        assert a.x == 3  # not rolled back
        assert log == [1]
        assert "subscriber boom" in caplog.text

    def test_custom_error_handler(self):
        failures = []
        registry = StoreRegistry(on_subscriber_error=failures.append)
        define_store("c", lambda: {"x": 0})
        store = registry.get("c")

        def broken(mutation, state):
            raise KeyError("k")

        store.subscribe(broken)
        store.x = 1

        assert len(failures) == 1
        failure = failures[0]
        assert isinstance(failure, SubscriberFailure)
        assert isinstance(failure.error, KeyError)
        assert failure.sequence == 1
        assert failure.to_dict()["details"]["store_id"] == "c"


class TestBus:
    def test_standalone_bus(self):
        bus = SubscriptionBus()
        log = []
        bus.subscribe(lambda mutation, state: log.append(mutation), "s")
        first = bus.publish("s", MutationKind.RESET, frozenset({"x"}), state=None)
        second = bus.publish("other", MutationKind.DIRECT, frozenset(), state=None)
        assert log == [first]
        assert (first.sequence, second.sequence) == (1, 2)

    def test_drop(self):
        bus = SubscriptionBus()
        log = []
        bus.subscribe(lambda mutation, state: log.append(mutation), "s")
        assert len(bus.subscriptions("s")) == 1
        bus.drop("s")
        bus.publish("s", MutationKind.DIRECT, frozenset(), state=None)
        assert log == []
        assert bus.subscriptions("s") == []

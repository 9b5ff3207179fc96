"""StoreRegistry — owns one Store per id.

The hosting application creates a registry and passes it to whatever needs
store access. Nothing here is module-global, so each test can use a fresh
registry (or dispose() what it created).

    registry = StoreRegistry()
    registry.use(my_plugin)
    counter = registry.get("counter")   # created on first request
    assert registry.get("counter") is counter
"""

from __future__ import annotations

import itertools
import logging
from types import MappingProxyType
from typing import Any, Callable, Iterator, Mapping

from stashx.errors import SubscriberFailure, UnknownStore
from stashx.mutation import Mutation
from stashx.plugin import Plugin, PluginHost
from stashx.scope import collecting
from stashx.state import ReactiveStateContainer
from stashx.store import Store, StoreDefinition, lookup_definition
from stashx.subscription import SubscriptionBus

logger = logging.getLogger("stashx.registry")


class StoreRegistry:
    """Singleton store instances, the subscription bus and the plugin host."""

    def __init__(self, on_subscriber_error: Callable[[SubscriberFailure], None] | None = None) -> None:
        self._stores: dict[str, Store] = {}
        self._definitions: dict[str, StoreDefinition] = {}
        self._bus = SubscriptionBus(on_error=on_subscriber_error)
        self._plugins = PluginHost()
        self._call_sequence = itertools.count(1)

    def _next_call_sequence(self) -> int:
        return next(self._call_sequence)

    # --- Definitions ---

    def register(self, definition: StoreDefinition) -> None:
        """Make definition resolvable by id in this registry."""
        self._definitions[definition.id] = definition

    def definition(self, store_id: str) -> StoreDefinition:
        definition = self._definitions.get(store_id) or lookup_definition(store_id)
        if definition is None:
            raise UnknownStore(store_id)
        return definition

    # --- Instances ---

    def get(self, store: str | StoreDefinition) -> Store:
        """Return the store for an id or definition, creating it on first use."""
        if isinstance(store, StoreDefinition):
            definition = store
            self._definitions.setdefault(definition.id, definition)
        else:
            existing = self._stores.get(store)
            if existing is not None:
                return existing
            definition = self.definition(store)

        existing = self._stores.get(definition.id)
        if existing is not None:
            return existing
        return self._create(definition)

    def _create(self, definition: StoreDefinition) -> Store:
        instance = Store(self, definition)
        # Cached before plugins run so a plugin can look the store up.
        self._stores[definition.id] = instance
        with collecting() as disposers:
            try:
                self._plugins.apply(self, instance)
            except Exception:
                self._stores.pop(definition.id, None)
                for dispose in reversed(disposers):
                    dispose()
                instance._teardown()
                raise
        logger.debug("Created store %r", definition.id)
        return instance

    def has(self, store_id: str) -> bool:
        return store_id in self._stores

    def __contains__(self, store_id: object) -> bool:
        return store_id in self._stores

    def __iter__(self) -> Iterator[Store]:
        return iter(list(self._stores.values()))

    def __len__(self) -> int:
        return len(self._stores)

    @property
    def state(self) -> Mapping[str, ReactiveStateContainer]:
        """Live state containers of every created store, keyed by id."""
        return MappingProxyType({store_id: store.state for store_id, store in self._stores.items()})

    def dispose(self, store_id: str) -> None:
        """Tear down a store's subscriptions and hooks and forget the instance."""
        instance = self._stores.pop(store_id, None)
        if instance is None:
            return
        instance._teardown()
        logger.debug("Disposed store %r", store_id)

    def dispose_all(self) -> None:
        for store_id in list(self._stores):
            self.dispose(store_id)

    # --- Plugins and global subscriptions ---

    def use(self, plugin: Plugin) -> StoreRegistry:
        """Register a plugin for stores created from now on."""
        self._plugins.use(plugin)
        if self._stores:
            logger.debug(
                "Plugin %s registered after %d store(s) were created; they are not extended",
                getattr(plugin, "__name__", plugin), len(self._stores),
            )
        return self

    @property
    def plugins(self) -> list[Plugin]:
        return self._plugins.plugins

    def subscribe(
        self,
        callback: Callable[[Mutation, Any], None],
        *,
        detached: bool = False,
    ) -> Callable[[], None]:
        """Call callback(mutation, state) after every mutation of every store."""
        return self._bus.subscribe(callback, None, detached=detached)

    def __repr__(self) -> str:
        return f"StoreRegistry({sorted(self._stores)})"

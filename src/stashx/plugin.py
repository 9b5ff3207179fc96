"""PluginHost — extends every store at creation time.

A plugin is a function taking a PluginContext and returning either None or a
mapping of properties to add to the store:

    def greeter(context):
        return {"greet": lambda: f"hello from {context.store.id}"}

    registry.use(greeter)
    registry.get("counter").greet()

Plugins run only while a store is being created, in registration order.
Stores that already exist when a plugin is registered are not touched.

Plugins read their per-store settings from the definition's options with
a pydantic model of their own:

    class PersistOptions(BaseModel):
        key: str
        debounce: float = 0.0

    def persist(context):
        opts = context.options_for("persist", PersistOptions)
        if opts is None:
            return None
        ...
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable, Mapping, TypeVar

from pydantic import BaseModel

from stashx.errors import PluginInitFailure

if TYPE_CHECKING:
    from stashx.registry import StoreRegistry
    from stashx.store import Store

logger = logging.getLogger("stashx.plugin")

M = TypeVar("M", bound=BaseModel)


@dataclass(frozen=True)
class PluginContext:
    registry: StoreRegistry
    store: Store
    options: Mapping[str, Any]

    def options_for(self, key: str, model: type[M]) -> M | None:
        """Validate options[key] into model. None when the key is absent."""
        raw = self.options.get(key)
        if raw is None:
            return None
        if isinstance(raw, model):
            return raw
        return model.model_validate(raw)


Plugin = Callable[[PluginContext], "Mapping[str, Any] | None"]


class PluginHost:
    """Ordered list of plugins applied to each new store."""

    def __init__(self) -> None:
        self._plugins: list[Plugin] = []

    @property
    def plugins(self) -> list[Plugin]:
        return list(self._plugins)

    def use(self, plugin: Plugin) -> None:
        if not callable(plugin):
            raise TypeError(f"Plugin must be callable, got {type(plugin).__name__}")
        self._plugins.append(plugin)

    def apply(self, registry: StoreRegistry, store: Store) -> None:
        """Run every plugin against store. Any failure aborts with PluginInitFailure."""
        context = PluginContext(registry, store, store.definition.options)
        for plugin in list(self._plugins):
            try:
                props = plugin(context)
                if props is None:
                    continue
                if not isinstance(props, Mapping):
                    raise TypeError(f"plugin returned {type(props).__name__}, expected a mapping or None")
                store._merge_plugin_props(props)
            except Exception as err:
                raise PluginInitFailure(store.id, plugin, err) from err
            logger.debug("Plugin %s added %s to %r", getattr(plugin, "__name__", plugin), sorted(props), store.id)

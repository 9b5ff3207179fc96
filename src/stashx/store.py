"""Store definitions and store instances.

A StoreDefinition describes a store; a Store is its live instance inside one
StoreRegistry. Two definition styles are supported:

Option style keeps a state factory, so reset() works:

    counter = define_store(
        "counter",
        lambda: {"count": 0},
        actions={"increment": lambda store: setattr(store, "count", store.count + 1)},
        getters={"double": lambda state: state["count"] * 2},
    )

Setup style builds everything in one function that runs once per instance.
Callables become actions, getter(...) values become getters and everything
else is initial state. No factory is kept, so reset() is unsupported:

    def setup():
        return {"count": 0, "increment": increment, "double": getter(double)}

    counter = define_store("counter", setup=setup)
"""

from __future__ import annotations

import functools
import logging
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, Callable, Mapping

from stashx.action import ActionDispatcher, ActionHook
from stashx.computed import Computed
from stashx.mutation import MutationKind
from stashx.patch import Patch, PatchEngine, ResetEngine
from stashx.state import FieldHandle, ReactiveStateContainer

if TYPE_CHECKING:
    from stashx.registry import StoreRegistry

logger = logging.getLogger("stashx.store")

StateFactory = Callable[[], Mapping[str, Any]]

_EMPTY: Mapping[str, Any] = MappingProxyType({})


class getter:
    """Marks a function returned from a setup function as a getter."""

    __slots__ = ("fn",)

    def __init__(self, fn: Callable[[ReactiveStateContainer], Any]) -> None:
        if not callable(fn):
            raise TypeError("getter() needs a callable")
        self.fn = fn


@dataclass(frozen=True)
class StoreDefinition:
    id: str
    state_factory: StateFactory | None = None
    actions: Mapping[str, Callable] = field(default_factory=lambda: _EMPTY)
    getters: Mapping[str, Callable] = field(default_factory=lambda: _EMPTY)
    options: Mapping[str, Any] = field(default_factory=lambda: _EMPTY)
    setup: Callable[[], Mapping[str, Any]] | None = None

    def __call__(self, registry: StoreRegistry) -> Store:
        """Shorthand for registry.get(definition)."""
        return registry.get(self)

    def build_parts(self) -> tuple[dict, dict, dict]:
        """Produce (initial state, actions, getters) for a new instance."""
        if self.setup is None:
            snapshot = self.state_factory()
            if not isinstance(snapshot, Mapping):
                raise TypeError(
                    f"State factory of {self.id!r} returned {type(snapshot).__name__}, expected a mapping"
                )
            return dict(snapshot), dict(self.actions), dict(self.getters)

        produced = self.setup()
        if not isinstance(produced, Mapping):
            raise TypeError(f"Setup of {self.id!r} returned {type(produced).__name__}, expected a mapping")
        state, actions, getters = {}, {}, {}
        for name, value in produced.items():
            if isinstance(value, getter):
                getters[name] = value.fn
            elif callable(value):
                actions[name] = value
            else:
                state[name] = value
        return state, actions, getters


# Process-wide catalog of definitions, keyed by id. Instances live in registries.
_catalog: dict[str, StoreDefinition] = {}


def define_store(
    id: str,
    state: StateFactory | None = None,
    *,
    actions: Mapping[str, Callable] | None = None,
    getters: Mapping[str, Callable] | None = None,
    options: Mapping[str, Any] | None = None,
    setup: Callable[[], Mapping[str, Any]] | None = None,
) -> StoreDefinition:
    """Define a store and record it in the process-wide catalog.

    Defining an id again replaces the catalog entry; stores already created
    in a registry keep the definition they were built from.
    """
    if not isinstance(id, str) or not id:
        raise ValueError("Store id must be a non-empty string")
    if (state is None) == (setup is None):
        raise ValueError(f"Store {id!r} needs exactly one of a state factory or a setup function")
    if setup is not None and (actions or getters):
        raise ValueError(f"Setup store {id!r} declares its actions and getters inside setup()")
    if state is not None and not callable(state):
        raise TypeError(f"State of {id!r} must be a factory function returning a mapping")
    for kind, functions in (("action", actions or {}), ("getter", getters or {})):
        for name, fn in functions.items():
            if not callable(fn):
                raise TypeError(f"{kind.capitalize()} {id}.{name} is not callable")
            _check_name(id, name, kind)
    if actions and getters:
        clash = set(actions) & set(getters)
        if clash:
            raise ValueError(f"Store {id!r} uses {sorted(clash)} as both action and getter")

    definition = StoreDefinition(
        id=id,
        state_factory=state,
        actions=MappingProxyType(dict(actions or {})),
        getters=MappingProxyType(dict(getters or {})),
        options=MappingProxyType(dict(options or {})),
        setup=setup,
    )
    if id in _catalog:
        logger.debug("Redefining store %r", id)
    _catalog[id] = definition
    return definition


def lookup_definition(id: str) -> StoreDefinition | None:
    return _catalog.get(id)


def _check_name(store_id: str, name: str, kind: str) -> None:
    if not isinstance(name, str) or not name.isidentifier():
        raise ValueError(f"{kind.capitalize()} name {name!r} of {store_id!r} is not an identifier")
    if name.startswith("_") or name in RESERVED:
        raise ValueError(f"{kind.capitalize()} name {name!r} of {store_id!r} is reserved")


class Store:
    """A live store: state container, bound actions, getters, plugin props.

    Fields, getters, actions and plugin properties are all reachable as
    attributes. Assigning an attribute writes the field (or updates a plugin
    property); getters and actions are read-only.
    """

    def __init__(self, registry: StoreRegistry, definition: StoreDefinition) -> None:
        _init = object.__setattr__
        _init(self, "_registry", registry)
        _init(self, "_definition", definition)
        _init(self, "_disposed", False)
        _init(self, "_plugin_props", {})

        snapshot, actions, getters = definition.build_parts()
        for name in snapshot:
            _check_name(definition.id, name, "state field")

        container = ReactiveStateContainer(snapshot, self._commit, self._check_field)
        _init(self, "_state", container)
        _init(self, "_dispatcher", ActionDispatcher(definition.id, registry._next_call_sequence))
        _init(self, "_patcher", PatchEngine(container))
        self._adopt_definition(definition)
        _init(self, "_actions", {})
        _init(self, "_getters", {})
        self._install(actions, getters)

    def _install(self, actions: Mapping[str, Callable], getters: Mapping[str, Callable]) -> None:
        """Replace actions and getters. Nothing changes if validation fails."""
        for kind, names in (("action", actions), ("getter", getters)):
            for name in names:
                _check_name(self.id, name, kind)
        clash = set(self._state) & (set(actions) | set(getters))
        if clash:
            raise ValueError(f"Store {self.id!r} uses {sorted(clash)} as both state and action/getter")
        bound = {name: self._bind_action(name, fn) for name, fn in actions.items()}
        memoized = {name: Computed(functools.partial(fn, self._state)) for name, fn in getters.items()}
        for computed in self._getters.values():
            computed.dispose()
        self._actions.clear()
        self._actions.update(bound)
        self._getters.clear()
        self._getters.update(memoized)

    def _check_field(self, name: str) -> None:
        _check_name(self.id, name, "state field")
        if name in self._actions or name in self._getters or name in self._plugin_props:
            raise ValueError(f"State field {name!r} would shadow a member of store {self.id!r}")

    def _adopt_definition(self, definition: StoreDefinition) -> None:
        factory = definition.state_factory if definition.setup is None else None
        object.__setattr__(self, "_definition", definition)
        object.__setattr__(self, "_resetter", ResetEngine(self._state, definition.id, factory))

    def _bind_action(self, name: str, fn: Callable) -> Callable:
        @functools.wraps(fn)
        def bound(*args, **kwargs):
            return self._dispatcher.invoke(self, name, fn, args, kwargs)

        return bound

    def _commit(self, kind: MutationKind, fields: frozenset, payload) -> None:
        if not self._disposed:
            self._registry._bus.publish(self.id, kind, fields, self._state, payload)

    # --- Public surface ---

    @property
    def id(self) -> str:
        return self._definition.id

    @property
    def definition(self) -> StoreDefinition:
        return self._definition

    @property
    def registry(self) -> StoreRegistry:
        return self._registry

    @property
    def state(self) -> ReactiveStateContainer:
        return self._state

    @property
    def actions(self) -> Mapping[str, Callable]:
        return MappingProxyType(self._actions)

    @property
    def getters(self) -> Mapping[str, Computed]:
        return MappingProxyType(self._getters)

    @property
    def plugin_props(self) -> Mapping[str, Any]:
        return MappingProxyType(self._plugin_props)

    @property
    def disposed(self) -> bool:
        return self._disposed

    def patch(self, update: Patch) -> None:
        """Apply a mapping or a function to the state as one mutation."""
        self._patcher.apply(update)

    def reset(self) -> None:
        """Restore the state to a fresh state-factory output."""
        self._resetter.reset()

    def subscribe(self, callback: Callable, *, detached: bool = False) -> Callable[[], None]:
        """Call callback(mutation, state) after every mutation of this store."""
        if self._disposed:
            return _noop
        return self._registry._bus.subscribe(callback, self.id, detached=detached)

    def on_action(self, hook: ActionHook, *, detached: bool = False) -> Callable[[], None]:
        """Call hook(context) before every action of this store."""
        if self._disposed:
            return _noop
        return self._dispatcher.on_action(hook, detached=detached)

    def handle(self, name: str) -> FieldHandle:
        return self._state._handle(name)

    def dispose(self) -> None:
        """Remove this store from its registry, dropping subscriptions and hooks."""
        if not self._disposed:
            self._registry.dispose(self.id)

    def _teardown(self) -> None:
        object.__setattr__(self, "_disposed", True)
        self._registry._bus.drop(self.id)
        self._dispatcher.clear()
        for computed in self._getters.values():
            computed.dispose()

    def _merge_plugin_props(self, props: Mapping[str, Any]) -> None:
        for name in props:
            if not isinstance(name, str) or name.startswith("_") or name in RESERVED:
                raise ValueError(f"Plugin property {name!r} is reserved")
            if name in self._state or name in self._actions or name in self._getters:
                raise ValueError(f"Plugin property {name!r} shadows a member of store {self.id!r}")
        self._plugin_props.update(props)

    # --- Attribute forwarding ---

    def __getattr__(self, name: str) -> Any:
        if name.startswith("_"):
            raise AttributeError(name)
        if name in self._state:
            return self._state[name]
        computed = self._getters.get(name)
        if computed is not None:
            return computed.get()
        action = self._actions.get(name)
        if action is not None:
            return action
        if name in self._plugin_props:
            return self._plugin_props[name]
        raise AttributeError(f"Store {self.id!r} has no member {name!r}")

    def __setattr__(self, name: str, value: Any) -> None:
        if name.startswith("_") or name in RESERVED:
            raise AttributeError(f"Cannot assign {name!r} on store {self.id!r}")
        if name in self._getters or name in self._actions:
            raise AttributeError(f"{self.id}.{name} is read-only")
        if name in self._state:
            self._state[name] = value
        elif name in self._plugin_props:
            self._plugin_props[name] = value
        else:
            raise AttributeError(
                f"Store {self.id!r} has no field {name!r}; add new fields with patch()"
            )

    def __dir__(self):
        return sorted(set(super().__dir__()) | set(self._state) | set(self._getters)
                      | set(self._actions) | set(self._plugin_props))

    def __repr__(self) -> str:
        state = "disposed" if self._disposed else "active"
        return f"Store({self.id!r}, {state})"


RESERVED = frozenset(name for name in dir(Store) if not name.startswith("_"))


def _noop() -> None:
    pass


def store_to_handles(store: Store) -> dict[str, FieldHandle | Computed]:
    """Live handles for every state field, plus the store's getters.

    Use this instead of plain extraction when local names must keep
    following the store:

        handles = store_to_handles(store)
        count = handles["count"]
        store.increment()
        count.value  # current
    """
    handles: dict[str, FieldHandle | Computed] = {name: store.handle(name) for name in store.state}
    handles.update(store.getters)
    return handles

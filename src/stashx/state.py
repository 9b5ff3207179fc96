"""ReactiveStateContainer and FieldHandle.

A container holds one store's fields. Fields can be reached two ways:

- through the container (or the owning store): state["count"], state.count
- through a FieldHandle: count = state.handle("count"); count.value += 1

Handles resolve by field name against the container every time, so they stay
current no matter how the state was produced — including after reset()
replaces every value. Copying a value out (x = state["count"]) is a snapshot
and does not follow later writes.

Writes outside a batch commit one "direct" mutation each. Inside batch(),
touched fields are collected and committed once when the outermost batch
exits.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Callable, Iterable, Iterator, Mapping

from stashx._tracking import invalidate, track
from stashx.mutation import MutationKind
from stashx.observable import detach, unwrap, wrap

# commit(kind, fields, payload)
Commit = Callable[[MutationKind, frozenset, "Mapping[str, Any] | None"], None]


class FieldHandle:
    """Stable, independently passable reference to one field of a container."""

    __slots__ = ("_container", "_name")

    def __init__(self, container: ReactiveStateContainer, name: str) -> None:
        self._container = container
        self._name = name

    @property
    def name(self) -> str:
        return self._name

    def get(self) -> Any:
        """Read the field's current value. Missing fields read as None."""
        return self._container._lookup(self._name, None)

    def set(self, value: Any) -> None:
        self._container._write(self._name, value)

    @property
    def value(self) -> Any:
        return self.get()

    @value.setter
    def value(self, value: Any) -> None:
        self.set(value)

    # Dependency-tracking protocol, keyed by field name.

    def _add_observer(self, observer) -> None:
        self._container._observers.setdefault(self._name, set()).add(observer)

    def _remove_observer(self, observer) -> None:
        observers = self._container._observers.get(self._name)
        if observers is not None:
            observers.discard(observer)

    def __repr__(self) -> str:
        return f"FieldHandle({self._name!r}={self.get()!r})"


class ReactiveStateContainer:
    """Mutable field storage that reports every write.

    On attribute access fields win over methods: with a field named
    ``items``, state.items is the field's value and the items() method is
    only reachable as ReactiveStateContainer.items(state). Item access and
    handles always mean fields.

    check_name, when given, is called with every field name the container
    does not hold yet, before anything is written. It raises to refuse it.
    """

    __slots__ = ("_values", "_observers", "_handles", "_commit", "_check_name", "_batch_depth", "_touched")

    def __init__(
        self,
        snapshot: Mapping[str, Any],
        commit: Commit | None = None,
        check_name: Callable[[str], None] | None = None,
    ) -> None:
        _init = object.__setattr__
        _init(self, "_values", {})
        _init(self, "_observers", {})
        _init(self, "_handles", {})
        _init(self, "_commit", commit)
        _init(self, "_check_name", check_name)
        _init(self, "_batch_depth", 0)
        _init(self, "_touched", set())
        for name, value in snapshot.items():
            self._values[name] = wrap(value, self._notifier(name))

    def __getattribute__(self, name: str) -> Any:
        if name[:1] != "_":
            values = object.__getattribute__(self, "_values")
            if name in values:
                return object.__getattribute__(self, "_read")(name)
        return object.__getattribute__(self, name)

    def __getattr__(self, name: str) -> Any:
        raise AttributeError(f"State has no field {name!r}")

    # --- Read operations (track) ---

    def get(self, name: str, default: Any = None) -> Any:
        return self._lookup(name, default)

    def __getitem__(self, name: str) -> Any:
        return self._read(name)

    def __contains__(self, name: object) -> bool:
        return name in self._values

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._values))

    def __len__(self) -> int:
        return len(self._values)

    def keys(self) -> list[str]:
        return list(self._values)

    def items(self) -> list[tuple[str, Any]]:
        return [(name, self._read(name)) for name in list(self._values)]

    def to_dict(self) -> dict[str, Any]:
        """Plain deep copy of the current values."""
        return {name: unwrap(value) for name, value in self._values.items()}

    def handle(self, name: str) -> FieldHandle:
        """Live handle to a field. The same handle is returned on every call."""
        return self._handle(name)

    def _read(self, name: str) -> Any:
        track(self._handle(name))
        return self._values[name]

    def _lookup(self, name: str, default: Any) -> Any:
        track(self._handle(name))
        return self._values.get(name, default)

    def _handle(self, name: str) -> FieldHandle:
        handle = self._handles.get(name)
        if handle is None:
            handle = self._handles[name] = FieldHandle(self, name)
        return handle

    # --- Write operations (notify) ---

    def set(self, name: str, value: Any) -> None:
        self._write(name, value)

    def __setitem__(self, name: str, value: Any) -> None:
        self._write(name, value)

    def __setattr__(self, name: str, value: Any) -> None:
        if name.startswith("_"):
            raise AttributeError(f"Cannot set private attribute {name!r} on state")
        self._write(name, value)

    def delete(self, name: str) -> None:
        self._remove(name)

    def __delitem__(self, name: str) -> None:
        self._remove(name)

    def __delattr__(self, name: str) -> None:
        try:
            self._remove(name)
        except KeyError:
            raise AttributeError(name) from None

    def replace(self, snapshot: Mapping[str, Any]) -> None:
        """Make the container hold exactly snapshot's fields and values."""
        self._replace(snapshot)

    def adopt(self, name: str, value: Any) -> None:
        """Add a field without committing a mutation. Used by hot updates."""
        self._adopt(name, value)

    def _write(self, name: str, value: Any) -> None:
        old = self._values.get(name, _MISSING)
        if old is _MISSING:
            self._admit((name,))
        elif old is value or old == value:
            return
        self._values[name] = wrap(value, self._notifier(name))
        detach(old)
        self._touch(name)

    def _remove(self, name: str) -> None:
        detach(self._values.pop(name))
        self._touch(name)

    def _replace(self, snapshot: Mapping[str, Any]) -> None:
        self._admit(snapshot)
        for name in [n for n in self._values if n not in snapshot]:
            self._remove(name)
        for name, value in snapshot.items():
            self._write(name, value)

    def _adopt(self, name: str, value: Any) -> None:
        if name not in self._values:
            self._admit((name,))
        detach(self._values.get(name))
        self._values[name] = wrap(value, self._notifier(name))
        invalidate(self._observers.get(name, ()))

    def _admit(self, names: Iterable[str]) -> None:
        """Run check_name over the names this container does not hold yet."""
        if self._check_name is None:
            return
        for name in names:
            if name not in self._values:
                self._check_name(name)

    def batch(self, kind: MutationKind, payload: Mapping[str, Any] | None = None):
        """Collect writes and commit them as one mutation of the given kind.

        Nested batches fold into the outermost one. If the body raises,
        writes already made stay, and a mutation is committed only if some
        field was touched.
        """
        return self._batch(kind, payload)

    @contextmanager
    def _batch(self, kind: MutationKind, payload: Mapping[str, Any] | None = None):
        object.__setattr__(self, "_batch_depth", self._batch_depth + 1)
        failed = False
        try:
            yield self
        except BaseException:
            failed = True
            raise
        finally:
            object.__setattr__(self, "_batch_depth", self._batch_depth - 1)
            if self._batch_depth == 0:
                touched = frozenset(self._touched)
                self._touched.clear()
                if not failed or touched:
                    self._emit(kind, touched, payload)

    @property
    def batching(self) -> bool:
        return self._batch_depth > 0

    def _notifier(self, name: str) -> Callable[[], None]:
        return lambda: self._touch(name)

    def _touch(self, name: str) -> None:
        invalidate(self._observers.get(name, ()))
        if self._batch_depth > 0:
            self._touched.add(name)
        else:
            self._emit(MutationKind.DIRECT, frozenset((name,)), None)

    def _emit(self, kind: MutationKind, fields: frozenset, payload) -> None:
        if self._commit is not None:
            self._commit(kind, fields, payload)

    def __repr__(self) -> str:
        return f"ReactiveStateContainer({ReactiveStateContainer.to_dict(self)!r})"


_MISSING = object()

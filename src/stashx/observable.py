"""Observable collections — list and dict values that report in-place edits.

When a list or dict is stored in a state field, the container copies it into
an ObservableList or ObservableDict bound to that field. Every mutation
(append, extend, __setitem__, truncation, etc.) then counts as a write to the
owning field, nested collections included. Reads are plain list/dict reads;
dependency tracking happens at the field level.

Copies (copy(), copy.copy, copy.deepcopy, pickling) are plain lists and dicts.
"""

from __future__ import annotations

from typing import Callable, Iterable, TypeVar

T = TypeVar("T")
KT = TypeVar("KT")
VT = TypeVar("VT")

Notify = Callable[[], None]


def wrap(value, notify: Notify | None):
    """Copy lists and dicts into observable collections reporting to notify."""
    if isinstance(value, list):
        return ObservableList(value, notify)
    if isinstance(value, dict):
        return ObservableDict(value, notify)
    return value


def unwrap(value):
    """Deep-convert observable collections back to plain lists and dicts."""
    if isinstance(value, list):
        return [unwrap(item) for item in value]
    if isinstance(value, dict):
        return {key: unwrap(item) for key, item in value.items()}
    return value


def detach(value) -> None:
    """Stop value and the collections nested in it from reporting to their field."""
    if isinstance(value, (ObservableList, ObservableDict)):
        value._on_change = None
        for child in (value.values() if isinstance(value, dict) else value):
            detach(child)


class ObservableList(list):
    """A list that notifies its owning field on mutation."""

    __slots__ = ("_on_change",)

    def __init__(self, items: Iterable[T] = (), notify: Notify | None = None) -> None:
        self._on_change = notify
        super().__init__(wrap(item, notify) for item in items)

    def _notify(self) -> None:
        if self._on_change is not None:
            self._on_change()

    def _wrap(self, item):
        return wrap(item, self._on_change)

    def __reduce_ex__(self, protocol):
        return (list, (list(self),))

    # --- Write operations (notify) ---

    def append(self, item: T) -> None:
        super().append(self._wrap(item))
        self._notify()

    def extend(self, items: Iterable[T]) -> None:
        super().extend([self._wrap(item) for item in items])
        self._notify()

    def insert(self, index: int, item: T) -> None:
        super().insert(index, self._wrap(item))
        self._notify()

    def pop(self, index: int = -1) -> T:
        result = super().pop(index)
        detach(result)
        self._notify()
        return result

    def remove(self, item: T) -> None:
        removed = list.__getitem__(self, self.index(item))
        super().remove(item)
        detach(removed)
        self._notify()

    def clear(self) -> None:
        if self:
            for item in self:
                detach(item)
            super().clear()
            self._notify()

    def sort(self, *, key=None, reverse: bool = False) -> None:
        super().sort(key=key, reverse=reverse)
        self._notify()

    def reverse(self) -> None:
        super().reverse()
        self._notify()

    def __setitem__(self, index, value) -> None:
        old = list.__getitem__(self, index)
        if isinstance(index, slice):
            super().__setitem__(index, [self._wrap(item) for item in value])
            for item in old:
                detach(item)
        else:
            super().__setitem__(index, self._wrap(value))
            detach(old)
        self._notify()

    def __delitem__(self, index) -> None:
        old = list.__getitem__(self, index)
        super().__delitem__(index)
        for item in (old if isinstance(index, slice) else (old,)):
            detach(item)
        self._notify()

    def __iadd__(self, items: Iterable[T]):
        self.extend(items)
        return self

    def __imul__(self, count: int):
        if count <= 0:
            for item in self:
                detach(item)
        super().__imul__(count)
        self._notify()
        return self

    def __repr__(self) -> str:
        return f"ObservableList({list.__repr__(self)})"


class ObservableDict(dict):
    """A dict that notifies its owning field on mutation."""

    __slots__ = ("_on_change",)

    def __init__(self, data=(), notify: Notify | None = None) -> None:
        self._on_change = notify
        super().__init__((key, wrap(value, notify)) for key, value in dict(data).items())

    def _notify(self) -> None:
        if self._on_change is not None:
            self._on_change()

    def __reduce_ex__(self, protocol):
        return (dict, (dict(self),))

    # --- Write operations (notify) ---

    def __setitem__(self, key: KT, value: VT) -> None:
        old = dict.get(self, key)
        super().__setitem__(key, wrap(value, self._on_change))
        detach(old)
        self._notify()

    def __delitem__(self, key: KT) -> None:
        old = dict.__getitem__(self, key)
        super().__delitem__(key)
        detach(old)
        self._notify()

    def pop(self, key: KT, *default) -> VT:
        if key not in self:
            return super().pop(key, *default)
        result = super().pop(key)
        detach(result)
        self._notify()
        return result

    def popitem(self) -> tuple:
        result = super().popitem()
        detach(result[1])
        self._notify()
        return result

    def update(self, other=(), **kwargs) -> None:
        items = dict(other, **kwargs)
        if items:
            replaced = [dict.get(self, key) for key in items if key in self]
            super().update((key, wrap(value, self._on_change)) for key, value in items.items())
            for old in replaced:
                detach(old)
            self._notify()

    def clear(self) -> None:
        if self:
            for value in self.values():
                detach(value)
            super().clear()
            self._notify()

    def setdefault(self, key: KT, default: VT | None = None) -> VT:
        if key not in self:
            self[key] = default
        return super().__getitem__(key)

    def __ior__(self, other):
        self.update(other)
        return self

    def __repr__(self) -> str:
        return f"ObservableDict({dict.__repr__(self)})"

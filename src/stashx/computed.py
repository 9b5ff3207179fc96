"""Computed values — memoized getters with automatic dependency tracking.

A Computed wraps a function. When evaluated, it tracks which state fields
the function reads and caches the result. When any of those fields changes,
the cached value is invalidated. On next read, it re-evaluates.

Computed values are lazy — they only recompute when read.
"""

from __future__ import annotations

from typing import TypeVar, Generic, Callable
from stashx._tracking import current_derivation, invalidate, track

T = TypeVar("T")

_UNSET = object()


class Computed(Generic[T]):
    """A derived value that auto-tracks dependencies and caches the result."""

    __slots__ = ("_fn", "_cached", "_dirty", "_dependencies", "_observers")

    def __init__(self, fn: Callable[[], T]) -> None:
        self._fn = fn
        self._cached: object = _UNSET
        self._dirty = True
        self._dependencies: set = set()
        self._observers: set = set()

    def get(self) -> T:
        """Read the computed value. Recomputes if dirty."""
        track(self)
        if self._dirty:
            self._recompute()
        return self._cached

    @property
    def value(self) -> T:
        return self.get()

    def _recompute(self) -> None:
        """Re-evaluate the function, tracking dependencies."""
        for dep in self._dependencies:
            dep._remove_observer(self)
        self._dependencies.clear()

        token = current_derivation.set(self)
        try:
            self._cached = self._fn()
        finally:
            current_derivation.reset(token)

        self._dirty = False

    def _run(self) -> None:
        """Called when a dependency changed.

        Marks dirty and propagates to our own observers (getters built on
        this getter). We don't recompute eagerly — that happens on next .get().
        """
        if not self._dirty:
            self._dirty = True
            invalidate(self._observers)

    def _add_observer(self, observer) -> None:
        self._observers.add(observer)

    def _remove_observer(self, observer) -> None:
        self._observers.discard(observer)

    def dispose(self) -> None:
        """Disconnect from all dependencies. The computed becomes inert."""
        for dep in self._dependencies:
            dep._remove_observer(self)
        self._dependencies.clear()
        self._observers.clear()
        self._dirty = True
        self._cached = _UNSET

    def __repr__(self) -> str:
        state = "dirty" if self._dirty else f"cached={self._cached!r}"
        return f"Computed({getattr(self._fn, '__name__', 'fn')}, {state})"


def computed(fn: Callable[[], T]) -> Computed[T]:
    """Decorator/factory to create a Computed from a function.

    Usage:
        store = registry.get("counter")

        @computed
        def doubled():
            return store.count * 2

        doubled.get()  # 0
        store.count = 5
        doubled.get()  # 10
    """
    return Computed(fn)

"""Ownership scopes for subscriptions and action hooks.

A Scope collects the unsubscribe callables of every non-detached
subscription or hook registered while it is active. Disposing the scope
removes them all, which is how a short-lived owner (a view, a request, a
test) cleans up after itself.

Usage:
    with Scope():
        store.subscribe(on_change)      # removed when the block exits
        store.subscribe(audit, detached=True)  # outlives the block
"""

from __future__ import annotations

import contextvars
from contextlib import contextmanager
from typing import Callable, Iterator, TypeVar

R = TypeVar("R")

Disposer = Callable[[], None]

_current_scope: contextvars.ContextVar[Scope | None] = contextvars.ContextVar(
    "current_scope", default=None
)
_collector: contextvars.ContextVar[list | None] = contextvars.ContextVar("collector", default=None)


def current_scope() -> Scope | None:
    return _current_scope.get()


def bind_to_scope(disposer: Disposer, detached: bool) -> None:
    """Attach disposer to the active scope unless detached. collecting() sees it either way."""
    collected = _collector.get()
    if collected is not None:
        collected.append(disposer)
    if detached:
        return
    scope = _current_scope.get()
    if scope is not None:
        scope.add(disposer)


@contextmanager
def collecting() -> Iterator[list[Disposer]]:
    """Record every disposer bound while active, detached ones included.

    Used to undo what a failed initialization registered. Collection does not
    nest: an inner collecting() block keeps its disposers to itself.
    """
    collected: list[Disposer] = []
    token = _collector.set(collected)
    try:
        yield collected
    finally:
        _collector.reset(token)


class Scope:
    """Owner of a group of disposers."""

    __slots__ = ("_disposers", "_disposed", "_token")

    def __init__(self) -> None:
        self._disposers: list[Disposer] = []
        self._disposed = False
        self._token = None

    @property
    def disposed(self) -> bool:
        return self._disposed

    def add(self, disposer: Disposer) -> None:
        if self._disposed:
            disposer()
        else:
            self._disposers.append(disposer)

    def run(self, fn: Callable[[], R]) -> R:
        """Call fn with this scope active, without disposing it afterwards."""
        token = _current_scope.set(self)
        try:
            return fn()
        finally:
            _current_scope.reset(token)

    def dispose(self) -> None:
        """Run every collected disposer, newest first. Idempotent."""
        if self._disposed:
            return
        self._disposed = True
        while self._disposers:
            self._disposers.pop()()

    def __enter__(self) -> Scope:
        self._token = _current_scope.set(self)
        return self

    def __exit__(self, *exc) -> None:
        _current_scope.reset(self._token)
        self._token = None
        self.dispose()

    def __repr__(self) -> str:
        state = "disposed" if self._disposed else f"{len(self._disposers)} disposers"
        return f"Scope({state})"

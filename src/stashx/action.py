"""Actions — store methods wrapped in a before/after/error hook pipeline.

Every call walks idle -> running -> (ok | errored) -> settled:

1. An ActionCallContext is allocated with the next call sequence number.
2. on_action hooks run in registration order. They may register per-call
   after() and on_error() callbacks on the context. A hook that raises
   aborts the call: the body never runs and error callbacks fire.
3. The body runs with the store as its first argument.
4. On failure, error callbacks run in order with the exception. With none
   registered, the caller gets an ActionFailure chained to it.
5. On success, after callbacks run in order with the result. An after
   callback that returns something other than None replaces the result.

Bodies that return an awaitable (async def actions) hand control back to the
caller at once; steps 4-5 run when the awaitable settles.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Any, Callable

from stashx.errors import ActionFailure
from stashx.scope import bind_to_scope

logger = logging.getLogger("stashx.action")

Disposer = Callable[[], None]
ActionHook = Callable[["ActionCallContext"], None]


def _remover(callbacks: list, callback) -> Disposer:
    def _remove() -> None:
        try:
            callbacks.remove(callback)
        except ValueError:
            pass  # already removed

    return _remove


class ActionCallContext:
    """One action invocation, as seen by on_action hooks."""

    __slots__ = ("name", "args", "kwargs", "store", "sequence", "_after", "_errors")

    def __init__(self, name: str, args: tuple, kwargs: dict, store, sequence: int) -> None:
        self.name = name
        self.args = args
        self.kwargs = kwargs
        self.store = store
        self.sequence = sequence
        self._after: list[Callable[[Any], Any]] = []
        self._errors: list[Callable[[BaseException], None]] = []

    @property
    def store_id(self) -> str:
        return self.store.id

    def after(self, callback: Callable[[Any], Any]) -> Disposer:
        """Call callback(result) once this invocation succeeds."""
        self._after.append(callback)
        return _remover(self._after, callback)

    def on_error(self, callback: Callable[[BaseException], None]) -> Disposer:
        """Call callback(error) if this invocation fails."""
        self._errors.append(callback)
        return _remover(self._errors, callback)

    def __repr__(self) -> str:
        return f"ActionCallContext({self.store_id}.{self.name} #{self.sequence})"


class ActionDispatcher:
    """Runs a store's actions through its on_action hooks."""

    def __init__(self, store_id: str, sequence: Callable[[], int]) -> None:
        self._store_id = store_id
        self._next_sequence = sequence
        self._hooks: list[ActionHook] = []

    @property
    def hooks(self) -> list[ActionHook]:
        return list(self._hooks)

    def on_action(self, hook: ActionHook, *, detached: bool = False) -> Disposer:
        """Register hook(context) for every action of the store."""
        self._hooks.append(hook)
        remove = _remover(self._hooks, hook)
        bind_to_scope(remove, detached)
        return remove

    def clear(self) -> None:
        self._hooks.clear()

    def invoke(self, store, name: str, fn: Callable, args: tuple, kwargs: dict) -> Any:
        context = ActionCallContext(name, args, kwargs, store, self._next_sequence())

        for hook in list(self._hooks):
            try:
                hook(context)
            except Exception as err:
                return self._fail(context, err)

        try:
            result = fn(store, *args, **kwargs)
        except Exception as err:
            return self._fail(context, err)

        if inspect.isawaitable(result):
            return self._defer(context, result)
        return self._succeed(context, result)

    def _defer(self, context: ActionCallContext, awaitable):
        settle = self._settle(context, awaitable)
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No loop yet: the caller awaits the coroutine to drive it.
            return settle
        return loop.create_task(settle)

    async def _settle(self, context: ActionCallContext, awaitable) -> Any:
        try:
            result = await awaitable
        except Exception as err:
            return self._fail(context, err)
        return self._succeed(context, result)

    def _succeed(self, context: ActionCallContext, result: Any) -> Any:
        for callback in list(context._after):
            try:
                replaced = callback(result)
            except Exception:
                logger.exception("after() callback failed for %r", context)
                continue
            if replaced is not None:
                result = replaced
        return result

    def _fail(self, context: ActionCallContext, error: Exception) -> None:
        callbacks = list(context._errors)
        if not callbacks:
            if isinstance(error, ActionFailure):
                raise error  # nested action already failed
            raise ActionFailure(self._store_id, context.name, error) from error
        for callback in callbacks:
            try:
                callback(error)
            except Exception:
                logger.exception("on_error() callback failed for %r", context)
        return None

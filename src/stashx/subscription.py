"""SubscriptionBus — ordered delivery of mutation records.

One bus per registry. Each committed mutation receives the next sequence
number and is queued; the queue is drained synchronously, store subscribers
first, then global subscribers, each in registration order. A mutation
committed by a subscriber is queued behind the one being delivered, so
delivery never re-enters.
"""

from __future__ import annotations

import itertools
import logging
from collections import deque
from typing import Any, Callable, Mapping

from stashx.errors import SubscriberFailure
from stashx.mutation import Mutation, MutationKind
from stashx.scope import bind_to_scope

logger = logging.getLogger("stashx.subscription")

Subscriber = Callable[[Mutation, Any], None]
Disposer = Callable[[], None]


class Subscription:
    """A registered callback. store_id is None for global subscriptions."""

    __slots__ = ("callback", "store_id", "detached", "active")

    def __init__(self, callback: Subscriber, store_id: str | None, detached: bool) -> None:
        self.callback = callback
        self.store_id = store_id
        self.detached = detached
        self.active = True

    def __repr__(self) -> str:
        target = self.store_id if self.store_id is not None else "*"
        return f"Subscription({getattr(self.callback, '__name__', 'callback')} -> {target})"


class SubscriptionBus:
    """Records subscribers and delivers mutations to them in commit order."""

    def __init__(self, on_error: Callable[[SubscriberFailure], None] | None = None) -> None:
        self._by_store: dict[str, list[Subscription]] = {}
        self._global: list[Subscription] = []
        self._queue: deque[tuple[Mutation, Any]] = deque()
        self._delivering = False
        self._sequence = itertools.count(1)
        self._on_error = on_error

    def subscribe(
        self,
        callback: Subscriber,
        store_id: str | None = None,
        *,
        detached: bool = False,
    ) -> Disposer:
        """Register callback(mutation, state). Returns a function that removes it."""
        subscription = Subscription(callback, store_id, detached)
        bucket = self._global if store_id is None else self._by_store.setdefault(store_id, [])
        bucket.append(subscription)

        def _unsubscribe() -> None:
            subscription.active = False
            try:
                bucket.remove(subscription)
            except ValueError:
                pass  # already removed

        bind_to_scope(_unsubscribe, detached)
        return _unsubscribe

    def subscriptions(self, store_id: str | None = None) -> list[Subscription]:
        if store_id is None:
            return list(self._global)
        return list(self._by_store.get(store_id, ()))

    def publish(
        self,
        store_id: str,
        kind: MutationKind,
        fields: frozenset[str],
        state: Any,
        payload: Mapping[str, Any] | None = None,
    ) -> Mutation:
        """Commit a mutation: number it, queue it, and drain the queue."""
        mutation = Mutation(store_id, kind, next(self._sequence), fields, payload)
        self._queue.append((mutation, state))
        if not self._delivering:
            self._drain()
        return mutation

    def drop(self, store_id: str) -> None:
        """Remove every subscription of a store."""
        for subscription in self._by_store.pop(store_id, ()):
            subscription.active = False

    def _drain(self) -> None:
        self._delivering = True
        try:
            while self._queue:
                mutation, state = self._queue.popleft()
                self._deliver(mutation, state)
        finally:
            self._delivering = False

    def _deliver(self, mutation: Mutation, state: Any) -> None:
        # Snapshot both lists; callbacks may subscribe or unsubscribe.
        targets = list(self._by_store.get(mutation.store_id, ())) + list(self._global)
        for subscription in targets:
            if not subscription.active:
                continue
            try:
                subscription.callback(mutation, state)
            except Exception as err:
                self._report(SubscriberFailure(mutation.store_id, mutation.sequence, subscription.callback, err))

    def _report(self, failure: SubscriberFailure) -> None:
        if self._on_error is None:
            logger.error("%s", failure, exc_info=failure.error)
            return
        try:
            self._on_error(failure)
        except Exception:
            logger.exception("Subscriber error handler failed")

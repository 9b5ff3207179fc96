"""Errors raised or reported by the store runtime."""

from __future__ import annotations

from typing import Any


class StashError(Exception):
    """Base class for every stashx error."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": type(self).__name__,
            "message": self.message,
            "details": dict(self.details),
        }

    def __str__(self) -> str:
        return self.message


class UnknownStore(StashError, LookupError):
    """No definition is registered under the requested id."""

    def __init__(self, store_id: str) -> None:
        super().__init__(f"No store is defined with id {store_id!r}", {"store_id": store_id})
        self.store_id = store_id


class UnsupportedOperation(StashError):
    """The store's definition style cannot perform the operation."""

    def __init__(self, store_id: str, operation: str, reason: str) -> None:
        super().__init__(
            f"Store {store_id!r} does not support {operation}(): {reason}",
            {"store_id": store_id, "operation": operation},
        )
        self.store_id = store_id
        self.operation = operation


class ActionFailure(StashError):
    """An action body, one of its before hooks, or its awaitable raised."""

    def __init__(self, store_id: str, action_name: str, error: BaseException) -> None:
        super().__init__(
            f"Action {store_id}.{action_name}() failed: {error!r}",
            {"store_id": store_id, "action": action_name},
        )
        self.store_id = store_id
        self.action_name = action_name
        self.error = error


class PluginInitFailure(StashError):
    """A plugin raised while a store was being created."""

    def __init__(self, store_id: str, plugin: Any, error: BaseException) -> None:
        name = getattr(plugin, "__name__", None) or repr(plugin)
        super().__init__(
            f"Plugin {name} failed while creating store {store_id!r}: {error!r}",
            {"store_id": store_id, "plugin": name},
        )
        self.store_id = store_id
        self.plugin = plugin
        self.error = error


class SubscriberFailure(StashError):
    """A subscriber raised during delivery. Reported, never raised to the mutator."""

    def __init__(self, store_id: str, sequence: int, callback: Any, error: BaseException) -> None:
        name = getattr(callback, "__name__", None) or repr(callback)
        super().__init__(
            f"Subscriber {name} failed on mutation #{sequence} of {store_id!r}: {error!r}",
            {"store_id": store_id, "sequence": sequence, "subscriber": name},
        )
        self.store_id = store_id
        self.sequence = sequence
        self.callback = callback
        self.error = error

"""PatchEngine and ResetEngine — bulk updates committed as one mutation."""

from __future__ import annotations

from typing import Any, Callable, Mapping, Union

from stashx.errors import UnsupportedOperation
from stashx.mutation import MutationKind
from stashx.state import ReactiveStateContainer


class _Unset:
    """Marker for "leave this field alone" inside an object patch."""

    __slots__ = ()

    def __repr__(self) -> str:
        return "UNSET"

    def __bool__(self) -> bool:
        return False


UNSET: Any = _Unset()

PatchFn = Callable[[ReactiveStateContainer], Any]
Patch = Union[Mapping[str, Any], PatchFn]


class PatchEngine:
    """Applies object-merge or function patches to a container."""

    __slots__ = ("_container",)

    def __init__(self, container: ReactiveStateContainer) -> None:
        self._container = container

    def apply(self, update: Patch) -> None:
        """Apply update as one mutation.

        Mapping: merge the given keys; UNSET values are skipped, nested plain
        dicts merge into existing dict fields, anything else is replaced.

        Callable: call update(state) and collect everything it writes,
        structural edits included (state.items.append(1),
        del state.items[2:]).
        """
        if isinstance(update, Mapping):
            payload = {key: value for key, value in update.items() if value is not UNSET}
            self._container._admit(payload)
            with self._container._batch(MutationKind.PATCH_OBJECT, payload):
                _merge(self._container, payload)
        elif callable(update):
            with self._container._batch(MutationKind.PATCH_FUNCTION):
                update(self._container)
        else:
            raise TypeError(f"patch() takes a mapping or a callable, not {type(update).__name__}")


def _merge(target, update: Mapping[str, Any]) -> None:
    for key, value in update.items():
        if value is UNSET:
            continue
        current = target[key] if key in target else None
        if isinstance(value, Mapping) and isinstance(current, dict):
            _merge(current, value)
        else:
            target[key] = value


class ResetEngine:
    """Restores a container to a fresh state-factory output."""

    __slots__ = ("_container", "_store_id", "_factory")

    def __init__(
        self,
        container: ReactiveStateContainer,
        store_id: str,
        factory: Callable[[], Mapping[str, Any]] | None,
    ) -> None:
        self._container = container
        self._store_id = store_id
        self._factory = factory

    @property
    def supported(self) -> bool:
        return self._factory is not None

    def reset(self) -> None:
        if self._factory is None:
            raise UnsupportedOperation(
                self._store_id, "reset", "setup-style stores keep no state factory"
            )
        snapshot = self._factory()
        if not isinstance(snapshot, Mapping):
            raise TypeError(
                f"State factory of {self._store_id!r} returned {type(snapshot).__name__}, expected a mapping"
            )
        with self._container._batch(MutationKind.RESET):
            self._container._replace(snapshot)

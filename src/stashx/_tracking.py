"""Dependency tracking for getters.

Uses contextvars to record which container fields are read while a getter
evaluates, so the getter is invalidated only when one of those fields changes.
"""

from __future__ import annotations

import contextvars
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from stashx.computed import Computed

# The getter currently evaluating. When set, every field read registers
# the getter as a dependent of that field.
current_derivation: contextvars.ContextVar[Computed | None] = contextvars.ContextVar(
    "current_derivation", default=None
)


def track(source) -> None:
    """Register the evaluating getter (if any) as an observer of source.

    source must provide _add_observer() and _remove_observer().
    """
    derivation = current_derivation.get()
    if derivation is not None:
        source._add_observer(derivation)
        derivation._dependencies.add(source)


def invalidate(observers: set) -> None:
    """Mark every observer stale. Observers may drop out during the pass."""
    for observer in list(observers):
        observer._run()

"""Mutation records delivered to subscribers."""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Any, Mapping


class MutationKind(str, enum.Enum):
    DIRECT = "direct"
    PATCH_OBJECT = "patch object"
    PATCH_FUNCTION = "patch function"
    RESET = "reset"


@dataclass(frozen=True)
class Mutation:
    """One committed change to a store's state.

    sequence is global to the registry: comparing sequences across stores
    gives commit order. affected_fields lists the top-level fields written,
    and payload holds the mapping passed to an object patch.
    """

    store_id: str
    kind: MutationKind
    sequence: int
    affected_fields: frozenset[str] = frozenset()
    payload: Mapping[str, Any] | None = None

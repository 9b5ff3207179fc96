"""Hot update of live stores. Opt-in — import only if you reload store modules."""

import logging

from stashx.registry import StoreRegistry
from stashx.store import StoreDefinition

logger = logging.getLogger("stashx.hot_reload")


def accept_update(registry: StoreRegistry, definition: StoreDefinition) -> bool:
    """Swap a redefinition into the live store with the same id.

    - New state fields get their fresh defaults; existing values are untouched.
    - Actions and getters are replaced; hooks and subscriptions stay.
    - Exception safety: failures are logged and the store keeps its previous
      actions and getters (degraded, never crashes).

    Returns True when the live store was updated. With no live store the
    definition is only registered, and the next get() builds from it.
    """
    registry.register(definition)
    if not registry.has(definition.id):
        return False
    store = registry.get(definition.id)

    try:
        snapshot, actions, getters = definition.build_parts()
    except Exception:
        logger.exception("Failed to rebuild store %r during hot update", definition.id)
        return False

    try:
        clash = set(snapshot) & (set(actions) | set(getters))
        if clash:
            raise ValueError(f"Store {definition.id!r} uses {sorted(clash)} as both state and action/getter")
        store.state._admit(snapshot)
        store._install(actions, getters)
    except Exception:
        logger.exception("Failed to install fields, actions or getters of %r during hot update", definition.id)
        return False

    new_fields = [name for name in snapshot if name not in store.state]
    for name in new_fields:
        store.state._adopt(name, snapshot[name])
    store._adopt_definition(definition)
    logger.info(
        "Hot-updated %r: %d new fields, %d actions, %d getters",
        definition.id, len(new_fields), len(actions), len(getters),
    )
    return True

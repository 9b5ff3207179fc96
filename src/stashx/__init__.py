"""stashx: reactive singleton stores with patches, action hooks and plugins."""

from importlib.metadata import version as _version

__version__ = _version("stashx")

from stashx.errors import (
    StashError,
    UnknownStore,
    UnsupportedOperation,
    ActionFailure,
    PluginInitFailure,
    SubscriberFailure,
)
from stashx.mutation import Mutation, MutationKind
from stashx.observable import ObservableList, ObservableDict
from stashx.state import ReactiveStateContainer, FieldHandle
from stashx.computed import Computed, computed
from stashx.action import ActionCallContext, ActionDispatcher
from stashx.patch import PatchEngine, ResetEngine, UNSET
from stashx.subscription import Subscription, SubscriptionBus
from stashx.scope import Scope, current_scope
from stashx.store import Store, StoreDefinition, define_store, getter, store_to_handles
from stashx.plugin import PluginContext, PluginHost
from stashx.registry import StoreRegistry
# hot_reload is opt-in, not imported here

__all__ = [
    "StashError",
    "UnknownStore",
    "UnsupportedOperation",
    "ActionFailure",
    "PluginInitFailure",
    "SubscriberFailure",
    "Mutation",
    "MutationKind",
    "ObservableList",
    "ObservableDict",
    "ReactiveStateContainer",
    "FieldHandle",
    "Computed",
    "computed",
    "ActionCallContext",
    "ActionDispatcher",
    "PatchEngine",
    "ResetEngine",
    "UNSET",
    "Subscription",
    "SubscriptionBus",
    "Scope",
    "current_scope",
    "Store",
    "StoreDefinition",
    "define_store",
    "getter",
    "store_to_handles",
    "PluginContext",
    "PluginHost",
    "StoreRegistry",
]

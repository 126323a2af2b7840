"""
UnifX - Unidirectional Flow Exchange

A single immutable state tree updated by pure reducers, derived values computed
by memoized selectors, and asynchronous side effects driven by the stream of
dispatched actions.
"""

from .action import Action, ActionCreator, KindFilter, create_action, kind_of, of_kind
from .config import DEFAULT_LOG_MAXLEN, StoreConfig
from .effects import (
    EFFECT_ERROR,
    Effect,
    EffectHandle,
    EffectOrchestrator,
    EffectStats,
    Invocation,
    InvocationState,
    Recovery,
    Strategy,
    drop,
    emit_failure,
    retry,
)
from .equality import deep_equal, is_same
from .errors import (
    CircularDependencyError,
    EffectFault,
    ReducerFault,
    ReentrancyViolation,
    SelectorFault,
    UnifxError,
)
from .graph import DependencyGraph, SelectorGraph
from .guards import ALLOW, Decision, Guard, all_of, any_of, guard
from .log import ActionLog, LogEntry
from .reducer import (
    INIT,
    CombinedReducer,
    SliceReducer,
    State,
    combine_reducers,
    create_reducer,
    on,
)
from .selector import (
    Selector,
    SelectorFactory,
    create_selector,
    create_selector_factory,
    select_slice,
    select_state,
)
from .store import Store, create_store
from .subscription import Subscription, SubscriptionManager

__all__ = [
    # Actions
    "Action",
    "ActionCreator",
    "KindFilter",
    "create_action",
    "kind_of",
    "of_kind",
    # Reducers and state
    "INIT",
    "State",
    "SliceReducer",
    "CombinedReducer",
    "on",
    "create_reducer",
    "combine_reducers",
    # Selectors
    "Selector",
    "SelectorFactory",
    "SelectorGraph",
    "DependencyGraph",
    "create_selector",
    "create_selector_factory",
    "select_slice",
    "select_state",
    # Store
    "Store",
    "StoreConfig",
    "DEFAULT_LOG_MAXLEN",
    "create_store",
    "Subscription",
    "SubscriptionManager",
    "ActionLog",
    "LogEntry",
    # Effects
    "EFFECT_ERROR",
    "Effect",
    "EffectHandle",
    "EffectOrchestrator",
    "EffectStats",
    "Invocation",
    "InvocationState",
    "Recovery",
    "Strategy",
    "drop",
    "emit_failure",
    "retry",
    # Guards
    "ALLOW",
    "Decision",
    "Guard",
    "guard",
    "all_of",
    "any_of",
    # Equality
    "is_same",
    "deep_equal",
    # Exceptions
    "UnifxError",
    "ReducerFault",
    "SelectorFault",
    "EffectFault",
    "ReentrancyViolation",
    "CircularDependencyError",
]

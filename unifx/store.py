"""
UnifX Store - Single-Writer State Container
===========================================

The `Store` owns the current state snapshot and is the only component that ever
replaces it. Everything else reads.

Why a Store?
------------

A store gives every part of an application one place to read state from and one
way to change it:

- **One source of truth**: `get_state()` returns the current immutable snapshot.
- **One way in**: `dispatch(action)` runs the reducers and commits the result.
- **Cheap change detection**: when no slice changes, the snapshot keeps its
  identity, so subscribers and selectors skip work with a single `is` check.
- **Async at the edges**: effects do I/O and answer with more actions.

Basic Usage
-----------

```python
from unifx import create_action, create_reducer, create_store, on

increment = create_action("counter/increment")

counter = create_reducer(0, on(increment, lambda n, a: n + 1))
store = create_store({"counter": counter})

@store.subscribe("counter")
def show(value):
    print(f"counter={value}")

store.dispatch(increment())   # prints "counter=1"
store.get_state().counter     # 1
```

Dispatch Rules
--------------

`dispatch` is synchronous: when it returns, the new state is committed and every
subscriber has been notified. Calling `dispatch` from inside a reducer, a
selector, or a subscriber callback raises `ReentrancyViolation` instead of being
queued. Effects are the legitimate way to follow one action with another; their
follow-ups are dispatched later, each on its own cycle.

A reducer failure raises `ReducerFault` to the caller and leaves the state
exactly as it was.
"""

import logging
import threading
from collections.abc import Mapping
from typing import Any, Callable, Dict, Optional, Union

from .action import Action
from .config import StoreConfig
from .effects import Effect, EffectHandle, EffectOrchestrator, RecoveryPolicy, Strategy
from .errors import ReducerFault, ReentrancyViolation
from .graph import SelectorGraph
from .guards import Decision, Guard
from .log import ActionLog
from .reducer import INIT, Reducer, State, changed_slices, combine_reducers, reduce_state
from .selector import SelectorFactory, as_selector
from .subscription import SubscriptionManager


class Store:
    """
    Holds the current state, applies the reducer on dispatch, and fans changes
    out to subscribers and effects.

    Args:
        reducer: Mapping of slice name to slice reducer, or a whole-state reducer
        initial_state: Optional initial snapshot; missing slices are filled in
            by running the reducer once with the `@unifx/init` action
        config: Store settings
    """

    def __init__(
        self,
        reducer: Union[Mapping, Reducer],
        initial_state: Optional[Mapping] = None,
        config: Optional[StoreConfig] = None,
    ):
        self._config = config or StoreConfig()

        if isinstance(reducer, Mapping):
            reducer = combine_reducers(reducer)
        elif not callable(reducer):
            raise TypeError(f"reducer must be a mapping or callable, got {reducer!r}")
        self._reducer = reducer

        self._lock = threading.Lock()
        self._owner: Optional[int] = None
        self._ctx = threading.local()

        seed = initial_state if isinstance(initial_state, State) else State(initial_state)
        self._state: State = reduce_state(reducer, seed, Action(INIT))
        self._initial_state = self._state

        self._graph = SelectorGraph()
        self._subscriptions = SubscriptionManager(self._graph)
        self._log: Optional[ActionLog] = None
        if self._config.record_actions:
            self._log = ActionLog(
                base_state=self._state,
                reducer=reducer,
                maxlen=self._config.log_maxlen,
                clock=self._config.clock,
            )
        self._effects = EffectOrchestrator(self.dispatch, self.get_state)

        self._stats = {"dispatches": 0, "commits": 0, "noops": 0, "faults": 0}

    # ========================================================================
    # STATE ACCESS
    # ========================================================================

    def get_state(self) -> State:
        """Return the current snapshot. It is never mutated; safe to keep."""
        return self._state

    @property
    def state(self) -> State:
        return self._state

    @property
    def initial_state(self) -> State:
        return self._initial_state

    @property
    def reducer(self) -> Reducer:
        return self._reducer

    @property
    def config(self) -> StoreConfig:
        return self._config

    @property
    def log(self) -> Optional[ActionLog]:
        return self._log

    @property
    def selectors(self) -> SelectorGraph:
        return self._graph

    @property
    def effects(self) -> EffectOrchestrator:
        return self._effects

    def select(self, target: Any) -> Any:
        """Read a slice name, selector, or state function against the current state."""
        selector = as_selector(target)
        depth = getattr(self._ctx, "selecting", 0)
        self._ctx.selecting = depth + 1
        try:
            return selector(self._state)
        finally:
            self._ctx.selecting = depth

    def check(self, guard: Guard) -> Decision:
        """Evaluate a guard against the current state."""
        return guard(self._state)

    # ========================================================================
    # DISPATCH
    # ========================================================================

    def dispatch(self, action: Action) -> None:
        """
        Apply `action` and commit the resulting state.

        Raises:
            TypeError: If `action` is not an Action
            ReentrancyViolation: If called while this thread is dispatching or selecting
            ReducerFault: If a reducer failed; the state is left unchanged
        """
        if not isinstance(action, Action):
            raise TypeError(f"dispatch() takes an Action, got {action!r}")

        me = threading.get_ident()
        if self._owner == me:
            raise ReentrancyViolation(
                f"dispatch({action.kind!r}) called while another dispatch is in progress"
            )
        if getattr(self._ctx, "selecting", 0):
            raise ReentrancyViolation(
                f"dispatch({action.kind!r}) called from inside a selector"
            )

        committed = False
        try:
            with self._lock:
                self._owner = me
                try:
                    changed = self._commit(action)
                    committed = True
                    if changed:
                        self._subscriptions.notify(self._state, changed)
                finally:
                    self._owner = None
        finally:
            # A committed action reaches the effects even if a subscriber misbehaved
            if committed:
                self._effects.on_action(action)

    def _commit(self, action: Action) -> frozenset:
        previous = self._state
        try:
            next_state = reduce_state(self._reducer, previous, action)
        except ReducerFault:
            self._stats["faults"] += 1
            logging.debug(f"Reducer fault on {action.kind!r}; state unchanged")
            raise

        changed = changed_slices(previous, next_state)
        self._stats["dispatches"] += 1
        if self._log is not None:
            self._log.append(action)

        if not changed:
            self._stats["noops"] += 1
            logging.debug(f"Dispatched {action.kind!r}: no slice changed")
            return changed

        # Single reference swap; readers see either the old or the new snapshot
        self._state = next_state
        self._stats["commits"] += 1
        logging.debug(f"Dispatched {action.kind!r}: changed {sorted(changed)}")
        return changed

    # ========================================================================
    # SUBSCRIPTION
    # ========================================================================

    def subscribe(
        self,
        target: Any,
        callback: Optional[Callable[[Any], Any]] = None,
        *,
        immediate: bool = False,
    ):
        """
        Call `callback(value)` whenever `target` produces a new value.

        `target` is a slice name, a selector, or a function of the state. Used
        without a callback, returns a decorator that subscribes the decorated
        function and leaves it unchanged.
        """
        if callback is None:

            def decorator(func: Callable[[Any], Any]) -> Callable[[Any], Any]:
                self.subscribe(target, func, immediate=immediate)
                return func

            return decorator

        return self._subscriptions.add(target, callback, self._state, immediate=immediate)

    # ========================================================================
    # EFFECTS
    # ========================================================================

    def register_effect(
        self,
        trigger: Any,
        work: Optional[Callable[..., Any]] = None,
        *,
        strategy: Optional[Union[Strategy, str]] = None,
        recovery: Optional[RecoveryPolicy] = None,
        dispatch: bool = True,
        with_state: bool = False,
        name: Optional[str] = None,
    ):
        """
        Register an effect for actions matching `trigger`.

        `trigger` is a kind, an action creator, a collection of those, or a
        predicate. Without `work`, returns a decorator.
        """
        if work is None:

            def decorator(func: Callable[..., Any]) -> Callable[..., Any]:
                self.register_effect(
                    trigger,
                    func,
                    strategy=strategy,
                    recovery=recovery,
                    dispatch=dispatch,
                    with_state=with_state,
                    name=name,
                )
                return func

            return decorator

        effect = Effect(
            predicate=trigger,
            work=work,
            strategy=strategy if strategy is not None else self._config.default_strategy,
            recovery=recovery,
            dispatch=dispatch,
            with_state=with_state,
            name=name,
        )
        return self.add_effect(effect)

    def add_effect(self, effect: Effect) -> EffectHandle:
        return self._effects.register(effect)

    async def shutdown(self) -> None:
        """Cancel outstanding effect invocations and wait for them to settle."""
        await self._effects.shutdown()
        logging.debug("Store shut down")

    async def __aenter__(self) -> "Store":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.shutdown()
        return False

    # ========================================================================
    # UTILITY METHODS
    # ========================================================================

    def create_selector_factory(self, builder: Callable[..., Any]) -> SelectorFactory:
        """Selector factory bounded by `config.selector_cache_size`."""
        return SelectorFactory(builder, maxsize=self._config.selector_cache_size)

    def verify_replay(self) -> bool:
        """Replay the action log and compare with the current state."""
        if self._log is None:
            raise RuntimeError("Action recording is disabled for this store")
        return self._log.verify(self._state)

    def get_stats(self) -> Dict[str, Any]:
        stats: Dict[str, Any] = dict(self._stats)
        stats["subscriptions"] = len(self._subscriptions)
        stats["selectors"] = len(self._graph)
        stats["log_entries"] = len(self._log) if self._log is not None else 0
        stats["effects"] = self._effects.get_stats()
        return stats

    def __repr__(self) -> str:
        return f"Store(slices={list(self._state)!r}, subscriptions={len(self._subscriptions)})"


def create_store(
    reducers: Union[Mapping, Reducer],
    initial_state: Optional[Mapping] = None,
    *,
    config: Optional[StoreConfig] = None,
    **overrides: Any,
) -> Store:
    """
    Create a store with the given reducer(s) and settings.

    Args:
        reducers: Mapping of slice reducers, or a whole-state reducer
        initial_state: Optional initial snapshot
        config: Base settings (defaults to `StoreConfig()`)
        **overrides: Individual `StoreConfig` fields to override

    Returns:
        Configured Store instance
    """
    config = config or StoreConfig()
    if overrides:
        config = config.replace(**overrides)
    return Store(reducers, initial_state, config=config)


__all__ = ["Store", "create_store"]

"""
UnifX Reducers - Pure State Transitions
=======================================

This module provides the immutable `State` snapshot and the tools for building
the single whole-state reducer the store applies on every dispatch.

Slice Reducers
--------------

A slice reducer is any pure, total function `(slice_state, action) -> slice_state`.
`create_reducer` builds one from cases declared with `on`:

```python
from unifx import create_action, create_reducer, on

login_success = create_action("[Auth] Login Success", "user")
logout_success = create_action("[Auth] Logout Success")

initial = {"user": None, "is_authenticated": False}

auth = create_reducer(
    initial,
    on(login_success, lambda s, a: {**s, "user": a.payload["user"], "is_authenticated": True}),
    on(logout_success, lambda s, a: initial),
)
```

Unknown action kinds return the input state object untouched, which is what
lets the store detect "nothing changed" with an identity check.

Composition
-----------

`combine_reducers` builds the whole-state reducer from named slice reducers.
When no slice changes, the combined reducer returns the very same `State`
object it received; otherwise it returns a new `State` that shares every
unchanged slice with its predecessor.
"""

import inspect
from collections.abc import Mapping
from typing import Any, Callable, Dict, Iterator, Optional, Tuple

from .action import Action, KindLike, kind_of
from .equality import is_same
from .errors import ReducerFault, ReentrancyViolation

INIT = "@unifx/init"

Reducer = Callable[[Any, Action], Any]


# ============================================================================
# STATE SNAPSHOT
# ============================================================================


class State(Mapping):
    """
    Immutable mapping from slice name to slice value.

    Slices can be read as items (`state["auth"]`) or attributes (`state.auth`).
    There are no mutators; `replace()` returns a new snapshot that shares the
    slices it does not override.
    """

    __slots__ = ("_slices",)

    def __init__(self, slices: Optional[Mapping] = None, **kwargs: Any):
        data: Dict[str, Any] = dict(slices or {})
        data.update(kwargs)
        object.__setattr__(self, "_slices", data)

    def __getitem__(self, key: str) -> Any:
        return self._slices[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._slices)

    def __len__(self) -> int:
        return len(self._slices)

    def __getattr__(self, name: str) -> Any:
        if name.startswith("_"):
            raise AttributeError(name)
        try:
            return self._slices[name]
        except KeyError:
            raise AttributeError(f"State has no slice {name!r}") from None

    def __setattr__(self, name: str, value: Any) -> None:
        raise TypeError("State is immutable; dispatch an action instead")

    def __setitem__(self, key: str, value: Any) -> None:
        raise TypeError("State is immutable; dispatch an action instead")

    def __delitem__(self, key: str) -> None:
        raise TypeError("State is immutable; dispatch an action instead")

    def replace(self, **slices: Any) -> "State":
        """Return a new snapshot with the given slices replaced."""
        data = dict(self._slices)
        data.update(slices)
        return State(data)

    def to_dict(self) -> Dict[str, Any]:
        return dict(self._slices)

    def __reduce__(self):
        return (State, (self._slices,))

    def __repr__(self) -> str:
        return f"State({self._slices!r})"


# ============================================================================
# SLICE REDUCERS
# ============================================================================


class ReducerCase:
    """Handler bound to one or more action kinds."""

    __slots__ = ("kinds", "handler")

    def __init__(self, kinds: Tuple[str, ...], handler: Reducer):
        self.kinds = kinds
        self.handler = handler

    def __repr__(self) -> str:
        return f"on({', '.join(self.kinds)})"


def on(*args: Any) -> ReducerCase:
    """
    Declare a reducer case: `on(kind_or_creator, ..., handler)`.

    The last argument is the handler `(state, action) -> state`; every argument
    before it is an action kind or action creator.
    """
    if len(args) < 2:
        raise TypeError("on() needs at least one kind and a handler")
    *kinds, handler = args
    if not callable(handler):
        raise TypeError(f"on() handler must be callable, got {handler!r}")
    return ReducerCase(tuple(kind_of(k) for k in kinds), handler)


class SliceReducer:
    """Total reducer built from `on` cases with an initial state."""

    def __init__(self, initial_state: Any, cases: Tuple[ReducerCase, ...]):
        self.initial_state = initial_state
        self._handlers: Dict[str, Reducer] = {}
        for case in cases:
            for kind in case.kinds:
                if kind in self._handlers:
                    raise ValueError(f"Duplicate reducer case for {kind!r}")
                self._handlers[kind] = case.handler

    @property
    def kinds(self) -> Tuple[str, ...]:
        return tuple(self._handlers)

    def __call__(self, state: Any, action: Action) -> Any:
        if state is None:
            state = self.initial_state
        handler = self._handlers.get(action.kind)
        if handler is None:
            return state
        return handler(state, action)

    def __repr__(self) -> str:
        return f"SliceReducer(kinds={list(self._handlers)!r})"


def create_reducer(initial_state: Any, *cases: ReducerCase) -> SliceReducer:
    """Build a slice reducer from an initial state and `on` cases."""
    for case in cases:
        if not isinstance(case, ReducerCase):
            raise TypeError(f"create_reducer() takes on() cases, got {case!r}")
    return SliceReducer(initial_state, cases)


# ============================================================================
# COMPOSITION
# ============================================================================


def _check_result(result: Any, action: Action, slice_name: Optional[str]) -> Any:
    if inspect.isawaitable(result):
        if inspect.iscoroutine(result):
            result.close()
        where = f"slice {slice_name!r}" if slice_name else "reducer"
        raise ReducerFault(
            f"{where} returned an awaitable for {action.kind!r}; reducers must not suspend",
            action=action,
            slice_name=slice_name,
        )
    return result


def apply_reducer(
    reducer: Reducer, state: Any, action: Action, slice_name: Optional[str] = None
) -> Any:
    """Run one reducer, turning any failure into a `ReducerFault`."""
    try:
        result = reducer(state, action)
    except (ReducerFault, ReentrancyViolation):
        raise
    except Exception as exc:
        where = f"slice {slice_name!r}" if slice_name else "reducer"
        raise ReducerFault(
            f"{where} failed on {action.kind!r}: {exc}",
            action=action,
            slice_name=slice_name,
        ) from exc
    return _check_result(result, action, slice_name)


class CombinedReducer:
    """Whole-state reducer composed of independent slice reducers."""

    def __init__(self, reducers: Mapping):
        if not reducers:
            raise ValueError("combine_reducers() needs at least one slice reducer")
        for name, reducer in reducers.items():
            if not isinstance(name, str):
                raise TypeError(f"Slice names must be strings, got {name!r}")
            if not callable(reducer):
                raise TypeError(f"Reducer for slice {name!r} is not callable")
        self._reducers: Dict[str, Reducer] = dict(reducers)

    @property
    def slices(self) -> Tuple[str, ...]:
        return tuple(self._reducers)

    def __call__(self, state: Optional[Mapping], action: Action) -> State:
        if state is None:
            state = State()
        elif not isinstance(state, State):
            state = State(state)

        next_slices: Dict[str, Any] = {}
        changed = False
        for name, reducer in self._reducers.items():
            previous = state.get(name)
            value = apply_reducer(reducer, previous, action, name)
            next_slices[name] = value
            if name not in state or not is_same(previous, value):
                changed = True

        if not changed:
            return state

        # Slices without a reducer ride along untouched
        for name, value in state.items():
            if name not in next_slices:
                next_slices[name] = value
        return State(next_slices)

    def __repr__(self) -> str:
        return f"CombinedReducer(slices={list(self._reducers)!r})"


def combine_reducers(reducers: Optional[Mapping] = None, **kwargs: Reducer) -> CombinedReducer:
    """Compose named slice reducers into one whole-state reducer."""
    merged: Dict[str, Reducer] = dict(reducers or {})
    merged.update(kwargs)
    return CombinedReducer(merged)


def reduce_state(reducer: Reducer, state: "State", action: Action) -> "State":
    """
    Apply a whole-state reducer the way the store does.

    Plain mappings returned by a custom root reducer are wrapped in `State`;
    an unchanged result keeps the identity of the input snapshot.
    """
    result = apply_reducer(reducer, state, action)
    if result is state or isinstance(result, State):
        return result
    if not isinstance(result, Mapping):
        raise ReducerFault(
            f"root reducer returned {type(result).__name__} for {action.kind!r}; expected a mapping",
            action=action,
        )
    return State(result)


def changed_slices(previous: Mapping, current: Mapping) -> frozenset:
    """Names of slices whose value differs between two snapshots."""
    if previous is current:
        return frozenset()
    names = set(previous) | set(current)
    return frozenset(
        name
        for name in names
        if name not in previous
        or name not in current
        or not is_same(previous[name], current[name])
    )


__all__ = [
    "INIT",
    "State",
    "ReducerCase",
    "SliceReducer",
    "CombinedReducer",
    "on",
    "create_reducer",
    "combine_reducers",
    "apply_reducer",
    "reduce_state",
    "changed_slices",
]

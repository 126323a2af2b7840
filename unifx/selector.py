"""
UnifX Selectors - Memoized Derived Values
=========================================

Selectors derive values from the state tree and remember what they computed.
A selector only runs its projector again when one of its inputs changed, so
reading the same derived value a thousand times after one dispatch costs one
computation.

Building Selectors
------------------

```python
from unifx import create_selector, select_slice

select_auth = select_slice("auth")
select_user = create_selector(select_auth, lambda auth: auth["user"])
select_name = create_selector(select_user, lambda user: user and user["name"])

select_name(store.get_state())
```

Inputs may be selectors, slice names (`"auth"` is shorthand for
`select_slice("auth")`), or plain functions of the whole state.

Change Detection
----------------

Each selector keeps the input values it last saw. Inputs are compared with
`unifx.equality.is_same`: by value for primitives, by identity for everything
else. Since state is never mutated, a slice that was not touched by a dispatch
keeps its identity and every selector built on it returns its cached output.

Parameterized Selectors
-----------------------

`create_selector_factory` turns a selector builder into a bounded cache of
selectors keyed by argument:

```python
select_item = create_selector_factory(
    lambda item_id: create_selector("items", lambda items: items.get(item_id)),
    maxsize=64,
)
select_item("a")(state)
```

The least recently used selectors are evicted once `maxsize` distinct
arguments have been seen.
"""

import threading
from typing import Any, Callable, Dict, Optional, Tuple

from cachetools import LRUCache

from .equality import is_same
from .errors import ReentrancyViolation, SelectorFault

DEFAULT_SELECTOR_CACHE_SIZE = 128

_UNSET = object()


class Selector:
    """
    Memoized derivation with explicitly declared inputs.

    Attributes:
        inputs: Upstream selectors, read in order and passed to the projector
        recomputations: Number of times the projector has run
    """

    slice_name: Optional[str] = None
    is_root = False

    def __init__(
        self,
        inputs: Tuple["Selector", ...],
        projector: Callable[..., Any],
        name: Optional[str] = None,
    ):
        self.inputs = inputs
        self._projector = projector
        self.name = name or getattr(projector, "__name__", "selector")
        self.recomputations = 0
        self._last_state: Any = _UNSET
        self._last_args: Optional[Tuple[Any, ...]] = None
        self._last_result: Any = _UNSET
        self._lock = threading.RLock()

    def __call__(self, state: Any) -> Any:
        with self._lock:
            if state is self._last_state:
                return self._last_result

            args = tuple(upstream(state) for upstream in self.inputs)
            if self._last_args is not None and self._inputs_unchanged(args):
                self._last_state = state
                return self._last_result

            result = self._project(args)
            self.recomputations += 1
            self._last_args = args
            self._last_result = result
            self._last_state = state
            return result

    def _inputs_unchanged(self, args: Tuple[Any, ...]) -> bool:
        return len(args) == len(self._last_args) and all(
            is_same(new, old) for new, old in zip(args, self._last_args)
        )

    def _project(self, args: Tuple[Any, ...]) -> Any:
        try:
            return self._projector(*args)
        except (SelectorFault, ReentrancyViolation):
            raise
        except Exception as exc:
            raise SelectorFault(
                f"Selector {self.name!r} failed: {exc}", selector=self
            ) from exc

    @property
    def last_result(self) -> Any:
        """Most recently computed output, or None if never computed."""
        return None if self._last_result is _UNSET else self._last_result

    def reset_recomputations(self) -> None:
        self.recomputations = 0

    def release(self) -> None:
        """Forget the memoized inputs and output."""
        with self._lock:
            self._last_state = _UNSET
            self._last_args = None
            self._last_result = _UNSET

    def __repr__(self) -> str:
        return f"Selector({self.name!r}, inputs={len(self.inputs)})"


class SliceSelector(Selector):
    """Reads one named slice of the state; missing slices read as None."""

    def __init__(self, slice_name: str):
        super().__init__((), lambda: None, name=f"slice:{slice_name}")
        self.slice_name = slice_name

    def __call__(self, state: Any) -> Any:
        if state is None:
            return None
        return state.get(self.slice_name)

    def __repr__(self) -> str:
        return f"SliceSelector({self.slice_name!r})"


class RootSelector(Selector):
    """Returns the whole state snapshot."""

    is_root = True

    def __init__(self):
        super().__init__((), lambda: None, name="state")

    def __call__(self, state: Any) -> Any:
        return state

    def __repr__(self) -> str:
        return "RootSelector()"


_slice_selectors: Dict[str, SliceSelector] = {}
_slice_lock = threading.Lock()
_root = RootSelector()


def select_slice(name: str) -> SliceSelector:
    """Feature selector for the slice `name` (one shared instance per name)."""
    if not isinstance(name, str):
        raise TypeError(f"Slice name must be a string, got {name!r}")
    with _slice_lock:
        selector = _slice_selectors.get(name)
        if selector is None:
            selector = _slice_selectors[name] = SliceSelector(name)
        return selector


def select_state() -> RootSelector:
    """Selector returning the whole state snapshot."""
    return _root


def as_selector(target: Any) -> Selector:
    """Promote a slice name or plain state function to a Selector."""
    if isinstance(target, Selector):
        return target
    if isinstance(target, str):
        return select_slice(target)
    if callable(target):
        return Selector((_root,), target, name=getattr(target, "__name__", None))
    raise TypeError(f"Cannot select from {target!r}")


def create_selector(*args: Any, projector: Optional[Callable] = None, name: Optional[str] = None) -> Selector:
    """
    Create a memoized selector: `create_selector(*inputs, projector)`.

    The projector may be passed as the last positional argument or by keyword.
    It receives one argument per input, in order.
    """
    if projector is None:
        if not args:
            raise TypeError("create_selector() needs a projector")
        *inputs, projector = args
    else:
        inputs = list(args)

    if not callable(projector):
        raise TypeError(f"Projector must be callable, got {projector!r}")
    if not inputs:
        raise TypeError("create_selector() needs at least one input")

    return Selector(tuple(as_selector(i) for i in inputs), projector, name=name)


class SelectorFactory:
    """
    Bounded cache of parameterized selectors.

    Calling the factory with an argument returns the selector built for it,
    building (and caching) it on first use. Arguments must be hashable.
    """

    def __init__(self, builder: Callable[..., Selector], maxsize: Optional[int] = None):
        if maxsize is None:
            maxsize = DEFAULT_SELECTOR_CACHE_SIZE
        if maxsize < 1:
            raise ValueError("maxsize must be at least 1")
        self._builder = builder
        self._cache = LRUCache(maxsize=maxsize)
        self._lock = threading.RLock()
        self._stats = {"hits": 0, "misses": 0}

    def __call__(self, *args: Any) -> Selector:
        key = args[0] if len(args) == 1 else args
        try:
            hash(key)
        except TypeError:
            raise TypeError(f"Selector factory arguments must be hashable, got {key!r}") from None

        with self._lock:
            selector = self._cache.get(key, _UNSET)
            if selector is not _UNSET:
                self._stats["hits"] += 1
                return selector

            self._stats["misses"] += 1
            selector = as_selector(self._builder(*args))
            self._cache[key] = selector
            return selector

    @property
    def maxsize(self) -> int:
        return self._cache.maxsize

    def __len__(self) -> int:
        return len(self._cache)

    def __contains__(self, key: Any) -> bool:
        return key in self._cache

    def clear(self) -> None:
        with self._lock:
            for selector in self._cache.values():
                selector.release()
            self._cache.clear()

    def get_stats(self) -> Dict[str, Any]:
        with self._lock:
            stats = dict(self._stats)
            stats["size"] = len(self._cache)
            stats["maxsize"] = self._cache.maxsize
            return stats


def create_selector_factory(
    builder: Callable[..., Selector], maxsize: Optional[int] = None
) -> SelectorFactory:
    """Create a parameterized selector factory with an LRU-bounded cache."""
    return SelectorFactory(builder, maxsize=maxsize)


__all__ = [
    "DEFAULT_SELECTOR_CACHE_SIZE",
    "Selector",
    "SliceSelector",
    "RootSelector",
    "SelectorFactory",
    "as_selector",
    "create_selector",
    "create_selector_factory",
    "select_slice",
    "select_state",
]

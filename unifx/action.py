"""
UnifX Actions - Change-Intent Records
=====================================

An `Action` is the only way to ask the store for a new state. It is an immutable
record with a stable `kind` discriminator and an opaque `payload`:

```python
from unifx import Action, create_action

Action("counter/increment", 1)

login = create_action("[Auth] Login", "username", "password")
login(username="a", password="b")
# Action(kind='[Auth] Login', payload=mappingproxy({'username': 'a', 'password': 'b'}))

logout = create_action("[Auth] Logout")
logout()
# Action(kind='[Auth] Logout', payload=None)
```

Action creators remember their kind, so they double as keys for reducer cases
(`on(login, ...)`) and effect filters (`of_kind(login, logout)`).
"""

from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Callable, FrozenSet, Iterable, Tuple, Union


@dataclass(frozen=True, slots=True)
class Action:
    """Immutable change-intent record."""

    kind: str
    payload: Any = None

    def __post_init__(self):
        if not isinstance(self.kind, str) or not self.kind:
            raise TypeError(f"Action kind must be a non-empty string, got {self.kind!r}")

    def __repr__(self) -> str:
        if self.payload is None:
            return f"Action({self.kind!r})"
        return f"Action({self.kind!r}, {self.payload!r})"


class ActionCreator:
    """
    Factory for actions of a single kind.

    When field names are declared, calling the creator requires exactly those
    keyword arguments and produces a read-only payload mapping. Without fields
    the creator accepts an optional positional payload.
    """

    __slots__ = ("kind", "fields")

    def __init__(self, kind: str, fields: Tuple[str, ...] = ()):
        self.kind = kind
        self.fields = fields

    def __call__(self, payload: Any = None, **props: Any) -> Action:
        if not self.fields:
            if props:
                raise TypeError(
                    f"{self.kind!r} takes no fields, got {sorted(props)!r}"
                )
            return Action(self.kind, payload)

        if payload is not None:
            raise TypeError(f"{self.kind!r} takes keyword fields only")

        missing = [name for name in self.fields if name not in props]
        extra = [name for name in props if name not in self.fields]
        if missing or extra:
            raise TypeError(
                f"{self.kind!r} expects fields {list(self.fields)!r}"
                f" (missing={missing!r}, unexpected={extra!r})"
            )
        return Action(self.kind, MappingProxyType(dict(props)))

    def matches(self, action: Action) -> bool:
        return action.kind == self.kind

    def __repr__(self) -> str:
        return f"ActionCreator({self.kind!r}, fields={list(self.fields)!r})"


def create_action(kind: str, *fields: str) -> ActionCreator:
    """Create an action creator for `kind` with optional payload field names."""
    if not isinstance(kind, str) or not kind:
        raise TypeError("kind must be a non-empty string")
    return ActionCreator(kind, tuple(fields))


KindLike = Union[str, ActionCreator]


def kind_of(value: KindLike) -> str:
    """Resolve a kind string from a string or an action creator."""
    if isinstance(value, ActionCreator):
        return value.kind
    if isinstance(value, str):
        return value
    raise TypeError(f"Expected an action kind or creator, got {value!r}")


class KindFilter:
    """Predicate matching actions whose kind is in a fixed set."""

    __slots__ = ("kinds",)

    def __init__(self, kinds: Iterable[KindLike]):
        self.kinds: FrozenSet[str] = frozenset(kind_of(k) for k in kinds)
        if not self.kinds:
            raise ValueError("of_kind() needs at least one kind")

    def __call__(self, action: Action) -> bool:
        return action.kind in self.kinds

    def __repr__(self) -> str:
        return f"of_kind({', '.join(sorted(self.kinds))})"


def of_kind(*kinds: KindLike) -> Callable[[Action], bool]:
    """Build an action predicate from kinds or action creators."""
    return KindFilter(kinds)


__all__ = [
    "Action",
    "ActionCreator",
    "KindFilter",
    "create_action",
    "kind_of",
    "of_kind",
]

"""
UnifX Guards - State Capability Checks
======================================

A guard answers "may this happen in the current state?" and, when the answer is
no, optionally says where to go instead. Guards are plain functions of the
state, so a routing layer, a command handler or a test can all ask the same
question:

```python
is_authenticated = create_selector("auth", lambda auth: auth["user"] is not None)
requires_login = guard(is_authenticated, redirect="/login")

decision = store.check(requires_login)
if not decision:
    navigate(decision.redirect)
```

`all_of` and `any_of` compose guards. Guards never dispatch.
"""

from dataclasses import dataclass
from typing import Any, Callable, Optional

from .reducer import State
from .selector import as_selector


@dataclass(frozen=True, slots=True)
class Decision:
    """Outcome of a guard. Truthy when allowed."""

    allowed: bool
    redirect: Optional[Any] = None

    def __bool__(self) -> bool:
        return self.allowed


ALLOW = Decision(True)

Guard = Callable[[State], Decision]


def guard(target: Any, redirect: Optional[Any] = None) -> Guard:
    """
    Build a guard from a boolean selector, slice name or state function.

    Args:
        target: Anything `as_selector` accepts; its value is read for truthiness
        redirect: Where a denied caller should go instead

    Returns:
        Guard function returning a `Decision`
    """
    selector = as_selector(target)

    def check(state: State) -> Decision:
        if selector(state):
            return ALLOW
        return Decision(False, redirect)

    check.__name__ = f"guard({selector.name})"
    return check


def all_of(*guards: Guard) -> Guard:
    """Allowed when every guard allows; otherwise the first denial wins."""

    def check(state: State) -> Decision:
        for g in guards:
            decision = g(state)
            if not decision:
                return decision
        return ALLOW

    return check


def any_of(*guards: Guard) -> Guard:
    """Allowed when any guard allows; otherwise the first denial is returned."""
    if not guards:
        raise ValueError("any_of() needs at least one guard")

    def check(state: State) -> Decision:
        denied: Optional[Decision] = None
        for g in guards:
            decision = g(state)
            if decision:
                return decision
            if denied is None:
                denied = decision
        return denied

    return check


__all__ = ["ALLOW", "Decision", "Guard", "all_of", "any_of", "guard"]

"""
UnifX Errors - Failure Taxonomy
===============================

Every failure the engine raises derives from `UnifxError` so callers can catch
the whole family at once, or pick out the kind they care about:

- `ReducerFault`: a reducer raised or produced a non-total result. The dispatch
  that triggered it is abandoned and the store keeps its previous state.
- `SelectorFault`: a selector projector raised while recomputing. The reader
  sees the fault; the selector keeps its previous cache.
- `EffectFault`: an effect work function raised. Never escapes the
  orchestrator; recovery policies receive it.
- `ReentrancyViolation`: dispatch was called while a dispatch was already
  running on the same thread.
- `CircularDependencyError`: a selector would depend on itself.
"""

from typing import Any, Optional


class UnifxError(Exception):
    """Base class for all engine errors."""

    pass


class ReducerFault(UnifxError):
    """Raised when a reducer fails for the dispatched action."""

    def __init__(
        self, message: str, action: Any = None, slice_name: Optional[str] = None
    ):
        super().__init__(message)
        self.action = action
        self.slice_name = slice_name


class SelectorFault(UnifxError):
    """Raised when a selector projector fails during recomputation."""

    def __init__(self, message: str, selector: Any = None):
        super().__init__(message)
        self.selector = selector


class EffectFault(UnifxError):
    """Wraps an exception raised by an effect's work function."""

    def __init__(self, message: str, effect: Any = None, action: Any = None):
        super().__init__(message)
        self.effect = effect
        self.action = action
        self.attempts = 1

    @property
    def error(self) -> Optional[BaseException]:
        return self.__cause__


class ReentrancyViolation(UnifxError, RuntimeError):
    """Raised when dispatch is re-entered from a reducer, selector or subscriber."""

    pass


class CircularDependencyError(UnifxError):
    """Raised when a circular dependency is detected."""

    pass


__all__ = [
    "UnifxError",
    "ReducerFault",
    "SelectorFault",
    "EffectFault",
    "ReentrancyViolation",
    "CircularDependencyError",
]

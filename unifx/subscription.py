"""
UnifX Subscriptions - Distinct-Until-Changed Notifications
==========================================================

Observers subscribe to a slice name or a selector. After every committed
dispatch the manager re-reads only the targets whose dependencies changed and
calls a subscriber only when its target produced a different value than the one
it last delivered.

Subscriptions are release handles. They can be released explicitly, by calling
the handle, or by scope:

```python
with store.subscribe("auth", render_header):
    store.dispatch(login_success(user=user))
# released here, on every exit path
```

Releasing is idempotent. Once `unsubscribe()` returns, no later dispatch will
call the callback.
"""

import logging
import threading
from typing import Any, Callable, List, Optional

from .equality import is_same
from .errors import ReentrancyViolation, SelectorFault
from .graph import SelectorGraph
from .selector import Selector, as_selector


class Subscription:
    """Handle for one observer; release it to stop notifications."""

    __slots__ = ("selector", "callback", "_last_value", "_active", "_manager")

    def __init__(
        self,
        manager: "SubscriptionManager",
        selector: Selector,
        callback: Callable[[Any], Any],
        last_value: Any,
    ):
        self.selector = selector
        self.callback = callback
        self._last_value = last_value
        self._active = True
        self._manager = manager

    @property
    def active(self) -> bool:
        return self._active

    @property
    def last_value(self) -> Any:
        return self._last_value

    def unsubscribe(self) -> None:
        if not self._active:
            return
        self._active = False
        self._manager._remove(self)

    def __call__(self) -> None:
        self.unsubscribe()

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.unsubscribe()
        return False

    def _deliver(self, value: Any) -> bool:
        if not self._active or is_same(value, self._last_value):
            return False
        self._last_value = value
        self.callback(value)
        return True

    def __repr__(self) -> str:
        state = "active" if self._active else "released"
        return f"Subscription({self.selector!r}, {state})"


class SubscriptionManager:
    """Fans committed state changes out to subscribers."""

    def __init__(self, graph: Optional[SelectorGraph] = None):
        self._graph = graph if graph is not None else SelectorGraph()
        self._subscriptions: List[Subscription] = []
        self._lock = threading.RLock()
        self._stats = {"notifications": 0, "suppressed": 0, "errors": 0}

    @property
    def graph(self) -> SelectorGraph:
        return self._graph

    def add(
        self,
        target: Any,
        callback: Callable[[Any], Any],
        state: Any,
        immediate: bool = False,
    ) -> Subscription:
        """Register `callback` for `target`, remembering its current value."""
        if not callable(callback):
            raise TypeError(f"Subscriber callback must be callable, got {callback!r}")

        selector = as_selector(target)
        current = selector(state)

        with self._lock:
            self._graph.register(selector)
            subscription = Subscription(self, selector, callback, current)
            self._subscriptions.append(subscription)

        if immediate:
            callback(current)
        return subscription

    def _remove(self, subscription: Subscription) -> None:
        with self._lock:
            try:
                self._subscriptions.remove(subscription)
            except ValueError:
                return
            self._graph.release(subscription.selector)

    def notify(self, state: Any, changed: frozenset) -> int:
        """
        Deliver the committed `state` to subscribers whose targets may have
        changed. Returns the number of callbacks invoked.

        Every affected subscriber is visited even when one of them tries to
        dispatch; the first `ReentrancyViolation` is raised after the fan-out.
        """
        if not changed:
            return 0

        with self._lock:
            subscriptions = list(self._subscriptions)
            affected = set(self._graph.affected(changed))

        delivered = 0
        violation: Optional[ReentrancyViolation] = None
        for subscription in subscriptions:
            if subscription.selector not in affected or not subscription.active:
                continue
            try:
                value = subscription.selector(state)
                if subscription._deliver(value):
                    delivered += 1
                else:
                    self._stats["suppressed"] += 1
            except ReentrancyViolation as e:
                self._stats["errors"] += 1
                logging.error(f"Subscriber {subscription!r} dispatched during notification")
                if violation is None:
                    violation = e
            except SelectorFault as e:
                self._stats["errors"] += 1
                logging.error(f"Selector failed while notifying {subscription!r}: {e}")
            except Exception as e:
                self._stats["errors"] += 1
                logging.error(
                    f"Error in subscriber callback for {subscription!r}: {e}",
                    exc_info=True,
                )

        self._stats["notifications"] += delivered
        if violation is not None:
            raise violation
        return delivered

    def __len__(self) -> int:
        with self._lock:
            return len(self._subscriptions)

    def clear(self) -> None:
        with self._lock:
            for subscription in list(self._subscriptions):
                subscription._active = False
                self._graph.release(subscription.selector)
            self._subscriptions.clear()

    def get_stats(self) -> dict:
        with self._lock:
            stats = dict(self._stats)
            stats["subscriptions"] = len(self._subscriptions)
            return stats


__all__ = ["Subscription", "SubscriptionManager"]

"""
UnifX Effects - Asynchronous Work Driven by Actions
===================================================

Effects are where the engine meets the outside world. An effect watches the
stream of dispatched actions, runs asynchronous work for the ones it cares
about, and feeds the results back into the store as new actions. Effects never
touch state directly; dispatch is their only way in.

Declaring Effects
-----------------

```python
from unifx import Strategy, emit_failure, of_kind

@store.register_effect(of_kind(login), strategy=Strategy.SUPERSEDE,
                       recovery=emit_failure(login_failure))
async def do_login(action):
    user = await auth_service.login(**action.payload)
    return login_success(user=user)

# Side effect only: nothing is dispatched back
store.register_effect(of_kind(logout_success), navigate_to_login, dispatch=False)
```

A work function may be sync or async and may return `None`, an `Action`, an
iterable of actions, or be an async generator yielding actions. Every action it
produces is dispatched on its own dispatch cycle, after the work function has
handed control back.

Concurrency Strategies
----------------------

`Strategy` decides what happens when a matching action arrives while an earlier
invocation of the same effect is still running:

- `SERIALIZE`: queue it; invocations start and finish in submission order.
- `CONCURRENT`: start it right away; completions may arrive in any order.
- `SUPERSEDE`: cancel the running invocation and start the new one. A
  superseded invocation never dispatches, even if its work finishes later.
- `IGNORE_WHILE_BUSY`: drop the action. Drops are counted in
  `EffectStats.dropped` and logged at debug level.

Failure Recovery
----------------

A work function that raises moves its invocation to `ERRORED` and hands an
`EffectFault` to the effect's recovery policy. Policies are small callables:
`emit_failure()` (the default) dispatches a failure action, `retry()` runs the
work again with exponential backoff, `drop()` only logs. A failing invocation
never stops the orchestrator or any other effect.
"""

import asyncio
import inspect
import logging
from collections import deque
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Any, Callable, Deque, Dict, List, Optional, Set, Tuple, Union

from .action import Action, ActionCreator, of_kind
from .errors import EffectFault, UnifxError

EFFECT_ERROR = "@unifx/effect-error"


class Strategy(Enum):
    """How overlapping invocations of one effect are handled."""

    SERIALIZE = "serialize"
    CONCURRENT = "concurrent"
    SUPERSEDE = "supersede"
    IGNORE_WHILE_BUSY = "ignore-while-busy"

    @classmethod
    def coerce(cls, value: Union["Strategy", str]) -> "Strategy":
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            normalized = value.strip().lower().replace("_", "-")
            for member in cls:
                if member.value == normalized:
                    return member
        raise ValueError(f"Unknown concurrency strategy: {value!r}")


class InvocationState(Enum):
    """Lifecycle of a single effect invocation."""

    IDLE = "idle"
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    ERRORED = "errored"


# ============================================================================
# RECOVERY POLICIES
# ============================================================================


@dataclass(frozen=True)
class Recovery:
    """Outcome chosen by a recovery policy."""

    actions: Tuple[Action, ...] = ()
    retry_after: Optional[float] = None


RecoveryPolicy = Callable[[EffectFault], Recovery]


def emit_failure(
    kind: Union[str, ActionCreator] = EFFECT_ERROR,
    payload: Optional[Callable[[EffectFault], Any]] = None,
) -> RecoveryPolicy:
    """
    Recover by dispatching a failure action.

    With an action creator that declares an `error` field the creator is called
    with the error message; with a kind string the payload describes the effect,
    the error and the triggering action. `payload` overrides both.
    """

    def policy(fault: EffectFault) -> Recovery:
        message = str(fault.error) if fault.error is not None else str(fault)
        if payload is not None:
            body = payload(fault)
            if isinstance(kind, ActionCreator):
                action = kind(**body) if kind.fields else kind(body)
            else:
                action = Action(kind, body)
        elif isinstance(kind, ActionCreator):
            if kind.fields == ("error",):
                action = kind(error=message)
            elif not kind.fields:
                action = kind(message)
            else:
                raise TypeError(
                    f"emit_failure({kind.kind!r}) needs a payload builder for fields {kind.fields!r}"
                )
        else:
            action = Action(
                kind,
                MappingProxyType(
                    {
                        "effect": getattr(fault.effect, "name", None),
                        "error": message,
                        "action": fault.action,
                    }
                ),
            )
        return Recovery(actions=(action,))

    return policy


def retry(
    attempts: int = 3,
    backoff: float = 0.05,
    factor: float = 2.0,
    then: Optional[RecoveryPolicy] = None,
) -> RecoveryPolicy:
    """
    Recover by running the work again, waiting `backoff * factor**n` seconds
    before retry `n + 1`. After `attempts` total tries, defer to `then`
    (`emit_failure()` by default).
    """
    if attempts < 1:
        raise ValueError("attempts must be at least 1")
    fallback = then or emit_failure()

    def policy(fault: EffectFault) -> Recovery:
        if fault.attempts < attempts:
            return Recovery(retry_after=backoff * factor ** (fault.attempts - 1))
        return fallback(fault)

    return policy


def drop() -> RecoveryPolicy:
    """Recover by discarding the failure (it is still logged)."""

    def policy(fault: EffectFault) -> Recovery:
        return Recovery()

    return policy


# ============================================================================
# EFFECT DECLARATION
# ============================================================================


def as_predicate(trigger: Any) -> Callable[[Action], bool]:
    """Normalize a kind, creator, collection of those, or predicate."""
    if isinstance(trigger, (str, ActionCreator)):
        return of_kind(trigger)
    if isinstance(trigger, (list, tuple, set, frozenset)):
        return of_kind(*trigger)
    if callable(trigger):
        return trigger
    raise TypeError(f"Cannot build an action predicate from {trigger!r}")


@dataclass(frozen=True)
class Effect:
    """Declaration of one effect."""

    predicate: Callable[[Action], bool]
    work: Callable[..., Any]
    strategy: Strategy = Strategy.CONCURRENT
    recovery: Optional[RecoveryPolicy] = None
    dispatch: bool = True
    with_state: bool = False
    name: Optional[str] = None

    def __post_init__(self):
        if not callable(self.work):
            raise TypeError(f"Effect work must be callable, got {self.work!r}")
        object.__setattr__(self, "predicate", as_predicate(self.predicate))
        object.__setattr__(self, "strategy", Strategy.coerce(self.strategy))
        if self.recovery is None:
            object.__setattr__(self, "recovery", emit_failure())
        if self.name is None:
            object.__setattr__(
                self, "name", getattr(self.work, "__name__", "effect")
            )


@dataclass
class EffectStats:
    """Per-effect counters."""

    started: int = 0
    completed: int = 0
    cancelled: int = 0
    errored: int = 0
    dropped: int = 0
    emitted: int = 0

    def as_dict(self) -> Dict[str, int]:
        return {
            "started": self.started,
            "completed": self.completed,
            "cancelled": self.cancelled,
            "errored": self.errored,
            "dropped": self.dropped,
            "emitted": self.emitted,
        }


class Invocation:
    """One run of an effect for one triggering action."""

    def __init__(self, effect: Effect, action: Action, seq: int):
        self.effect = effect
        self.action = action
        self.seq = seq
        self.state = InvocationState.IDLE
        self.task: Optional[asyncio.Task] = None
        self.error: Optional[EffectFault] = None
        self.superseded = False
        self.attempts = 0

    @property
    def done(self) -> bool:
        return self.state in (
            InvocationState.COMPLETED,
            InvocationState.CANCELLED,
            InvocationState.ERRORED,
        )

    def cancel(self, superseded: bool = False) -> None:
        if superseded:
            self.superseded = True
        if self.task is not None and not self.task.done():
            self.task.cancel()

    def _transition(self, state: InvocationState) -> None:
        logging.debug(
            f"Effect {self.effect.name!r} #{self.seq} ({self.action.kind}): "
            f"{self.state.value} -> {state.value}"
        )
        self.state = state

    def __repr__(self) -> str:
        return f"Invocation({self.effect.name!r}, #{self.seq}, {self.state.value})"


# ============================================================================
# ORCHESTRATOR
# ============================================================================


class EffectHandle:
    """Runtime bookkeeping for one registered effect."""

    _HISTORY = 32

    def __init__(self, effect: Effect):
        self.effect = effect
        self.stats = EffectStats()
        self.active: List[Invocation] = []
        self.queue: Deque[Action] = deque()
        self.history: Deque[Invocation] = deque(maxlen=self._HISTORY)
        self._seq = 0

    @property
    def name(self) -> str:
        return self.effect.name

    @property
    def busy(self) -> bool:
        return bool(self.active)

    def _next_seq(self) -> int:
        self._seq += 1
        return self._seq

    def __repr__(self) -> str:
        return f"EffectHandle({self.name!r}, {self.effect.strategy.value}, active={len(self.active)})"


class EffectOrchestrator:
    """
    Runs registered effects against the action stream.

    Args:
        dispatch: Callable used to feed follow-up actions back into the store
        get_state: Callable returning the current state (for `with_state` effects)
    """

    def __init__(
        self,
        dispatch: Callable[[Action], None],
        get_state: Optional[Callable[[], Any]] = None,
    ):
        self._dispatch = dispatch
        self._get_state = get_state or (lambda: None)
        self._handles: List[EffectHandle] = []
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def effects(self) -> Tuple[EffectHandle, ...]:
        return tuple(self._handles)

    def register(self, effect: Effect) -> EffectHandle:
        if self._closed:
            raise RuntimeError("Cannot register effects after shutdown")
        handle = EffectHandle(effect)
        self._handles.append(handle)
        logging.debug(
            f"Registered effect {effect.name!r} ({effect.strategy.value}, predicate={effect.predicate!r})"
        )
        return handle

    def on_action(self, action: Action) -> None:
        """Offer a committed action to every effect."""
        if self._closed:
            return
        for handle in self._handles:
            try:
                matched = handle.effect.predicate(action)
            except Exception as e:
                logging.error(
                    f"Predicate of effect {handle.name!r} failed on {action.kind!r}: {e}"
                )
                continue
            if matched:
                self._trigger(handle, action)

    def _trigger(self, handle: EffectHandle, action: Action) -> None:
        strategy = handle.effect.strategy

        if strategy is Strategy.SERIALIZE and handle.busy:
            handle.queue.append(action)
            logging.debug(f"Effect {handle.name!r} queued {action.kind!r}")
            return

        if strategy is Strategy.IGNORE_WHILE_BUSY and handle.busy:
            handle.stats.dropped += 1
            logging.debug(f"Effect {handle.name!r} busy, dropped {action.kind!r}")
            return

        if strategy is Strategy.SUPERSEDE:
            for invocation in list(handle.active):
                invocation.cancel(superseded=True)

        self._start(handle, action)

    def _start(self, handle: EffectHandle, action: Action) -> Optional[Invocation]:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            handle.stats.dropped += 1
            logging.error(
                f"Effect {handle.name!r} cannot run {action.kind!r}: no running event loop"
            )
            return None

        invocation = Invocation(handle.effect, action, handle._next_seq())
        invocation._transition(InvocationState.ACTIVE)
        handle.active.append(invocation)
        handle.history.append(invocation)
        handle.stats.started += 1
        invocation.task = loop.create_task(self._run(handle, invocation))
        invocation.task.add_done_callback(
            lambda task: self._finalize(handle, invocation, task)
        )
        return invocation

    async def _run(self, handle: EffectHandle, invocation: Invocation) -> None:
        effect = handle.effect
        try:
            while True:
                invocation.attempts += 1
                try:
                    await self._execute(handle, invocation)
                    if invocation.superseded:
                        raise asyncio.CancelledError()
                    invocation._transition(InvocationState.COMPLETED)
                    handle.stats.completed += 1
                    return
                except asyncio.CancelledError:
                    raise
                except Exception as exc:
                    if invocation.superseded:
                        raise asyncio.CancelledError() from exc
                    fault = EffectFault(
                        f"Effect {effect.name!r} failed on {invocation.action.kind!r}: {exc}",
                        effect=effect,
                        action=invocation.action,
                    )
                    fault.__cause__ = exc
                    fault.attempts = invocation.attempts
                    invocation.error = fault

                    try:
                        recovery = effect.recovery(fault)
                    except Exception as policy_error:
                        logging.error(
                            f"Recovery policy of effect {effect.name!r} failed: {policy_error}"
                        )
                        recovery = Recovery()

                    if recovery.retry_after is not None:
                        logging.debug(
                            f"{fault}; retrying in {recovery.retry_after:.3f}s"
                            f" (attempt {invocation.attempts + 1})"
                        )
                        await asyncio.sleep(recovery.retry_after)
                        continue

                    logging.error(str(fault))
                    invocation._transition(InvocationState.ERRORED)
                    handle.stats.errored += 1
                    for action in recovery.actions:
                        self._emit(handle, invocation, action, force=True)
                    return
        except asyncio.CancelledError:
            invocation._transition(InvocationState.CANCELLED)
            handle.stats.cancelled += 1
            raise

    def _finalize(
        self, handle: EffectHandle, invocation: Invocation, task: asyncio.Task
    ) -> None:
        # A task cancelled before its first step never enters _run
        if not invocation.done and task.cancelled():
            invocation._transition(InvocationState.CANCELLED)
            handle.stats.cancelled += 1
        if invocation in handle.active:
            handle.active.remove(invocation)
        self._settled(handle)

    async def _execute(self, handle: EffectHandle, invocation: Invocation) -> None:
        effect = handle.effect
        if effect.with_state:
            result = effect.work(invocation.action, self._get_state())
        else:
            result = effect.work(invocation.action)

        if inspect.isawaitable(result):
            result = await result

        if result is None:
            return
        if isinstance(result, Action):
            self._emit(handle, invocation, result)
        elif hasattr(result, "__aiter__"):
            async for item in result:
                self._emit(handle, invocation, item)
        elif isinstance(result, Iterable) and not isinstance(result, (str, bytes, Mapping)):
            for item in result:
                self._emit(handle, invocation, item)
        else:
            raise TypeError(
                f"Effect {effect.name!r} produced {type(result).__name__}; expected actions"
            )

    def _emit(
        self,
        handle: EffectHandle,
        invocation: Invocation,
        action: Any,
        force: bool = False,
    ) -> None:
        if action is None:
            return
        if not isinstance(action, Action):
            raise TypeError(
                f"Effect {handle.name!r} produced {action!r}; expected an Action"
            )
        if invocation.superseded or self._closed:
            return
        if not handle.effect.dispatch and not force:
            return

        handle.stats.emitted += 1
        try:
            self._dispatch(action)
        except UnifxError as e:
            logging.error(
                f"Dispatch of {action.kind!r} from effect {handle.name!r} failed: {e}"
            )

    def _settled(self, handle: EffectHandle) -> None:
        if self._closed or handle.busy or not handle.queue:
            return
        self._start(handle, handle.queue.popleft())

    def outstanding(self) -> List[Invocation]:
        return [inv for handle in self._handles for inv in handle.active]

    async def shutdown(self) -> None:
        """Cancel every outstanding invocation and wait for all to settle."""
        self._closed = True
        tasks: Set[asyncio.Task] = set()
        for handle in self._handles:
            handle.queue.clear()
            for invocation in list(handle.active):
                invocation.cancel()
                if invocation.task is not None:
                    tasks.add(invocation.task)

        if tasks:
            logging.debug(f"Waiting for {len(tasks)} effect invocation(s) to settle")
            await asyncio.gather(*tasks, return_exceptions=True)

    def get_stats(self) -> Dict[str, Dict[str, int]]:
        return {handle.name: handle.stats.as_dict() for handle in self._handles}


__all__ = [
    "EFFECT_ERROR",
    "Effect",
    "EffectHandle",
    "EffectOrchestrator",
    "EffectStats",
    "Invocation",
    "InvocationState",
    "Recovery",
    "RecoveryPolicy",
    "Strategy",
    "as_predicate",
    "drop",
    "emit_failure",
    "retry",
]

"""
UnifX Action Log - Deterministic Replay
=======================================

The store appends every committed action to an `ActionLog`. Because reducers
are pure, folding the logged actions over the log's base state reproduces the
store's current state exactly:

```python
store.dispatch(increment())
store.dispatch(increment())
assert deep_equal(store.log.replay(), store.get_state())
```

A log may be bounded (`maxlen`, like a devtools `maxAge`). Entries falling off
the front are folded into the base state, so the replay contract still holds
for the entries that remain.

Records are plain dictionaries (`seq`, `kind`, `payload`, `timestamp`) so an
external persistence layer can store them. Records turn tuples into lists;
`dumps`/`loads` offer JSON that keeps them as tuples.
"""

import json
import threading
import time
from collections import deque
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, Iterator, List, Optional

from .action import Action
from .equality import deep_equal
from .reducer import Reducer, State, reduce_state


@dataclass(frozen=True, slots=True)
class LogEntry:
    """One committed action."""

    seq: int
    kind: str
    payload: Any
    timestamp: float

    def to_action(self) -> Action:
        return Action(self.kind, self.payload)

    def to_record(self, keep_tuples: bool = False) -> Dict[str, Any]:
        return {
            "seq": self.seq,
            "kind": self.kind,
            "payload": _plain(self.payload, keep_tuples),
            "timestamp": self.timestamp,
        }


_TUPLE_TAG = "__tuple__"


def _plain(value: Any, keep_tuples: bool = False) -> Any:
    """
    Convert read-only payload containers into JSON-friendly builtins.

    Tuples become lists unless `keep_tuples` is set, in which case they are
    wrapped as `{"__tuple__": [...]}` so `_restore_tuples` can bring them back.
    """
    if isinstance(value, Mapping):
        return {k: _plain(v, keep_tuples) for k, v in value.items()}
    if isinstance(value, tuple) and keep_tuples:
        return {_TUPLE_TAG: [_plain(v, keep_tuples) for v in value]}
    if isinstance(value, (list, tuple)):
        return [_plain(v, keep_tuples) for v in value]
    return value


def _restore_tuples(obj: Dict[str, Any]) -> Any:
    if len(obj) == 1 and _TUPLE_TAG in obj:
        return tuple(obj[_TUPLE_TAG])
    return obj


class ActionLog:
    """Ordered, optionally bounded record of committed actions."""

    def __init__(
        self,
        base_state: Any = None,
        reducer: Optional[Reducer] = None,
        maxlen: Optional[int] = None,
        clock: Callable[[], float] = time.time,
    ):
        if maxlen is not None and maxlen < 1:
            raise ValueError("maxlen must be at least 1")
        if maxlen is not None and reducer is None:
            raise ValueError("A bounded log needs the reducer to fold evicted entries")

        self._base_state = State() if base_state is None else base_state
        self._reducer = reducer
        self._maxlen = maxlen
        self._clock = clock
        self._entries: deque = deque()
        self._next_seq = 0
        self._lock = threading.RLock()

    @property
    def base_state(self) -> Any:
        """State the retained entries replay from."""
        return self._base_state

    @property
    def maxlen(self) -> Optional[int]:
        return self._maxlen

    def append(self, action: Action) -> LogEntry:
        with self._lock:
            entry = LogEntry(
                seq=self._next_seq,
                kind=action.kind,
                payload=action.payload,
                timestamp=self._clock(),
            )
            self._next_seq += 1
            self._entries.append(entry)

            while self._maxlen is not None and len(self._entries) > self._maxlen:
                evicted = self._entries.popleft()
                self._base_state = reduce_state(
                    self._reducer, self._base_state, evicted.to_action()
                )
            return entry

    def replay(self, reducer: Optional[Reducer] = None, initial_state: Any = None) -> Any:
        """Fold the retained entries over the base state (or `initial_state`)."""
        reducer = reducer or self._reducer
        if reducer is None:
            raise ValueError("replay() needs a reducer")

        with self._lock:
            entries = list(self._entries)
            state = self._base_state if initial_state is None else initial_state

        if not isinstance(state, State):
            state = State(state)
        for entry in entries:
            state = reduce_state(reducer, state, entry.to_action())
        return state

    def verify(self, state: Any, reducer: Optional[Reducer] = None) -> bool:
        """True if replaying the log reproduces `state`."""
        return deep_equal(self.replay(reducer), state)

    def actions(self) -> List[Action]:
        with self._lock:
            return [entry.to_action() for entry in self._entries]

    def entries(self, limit: Optional[int] = None) -> List[LogEntry]:
        with self._lock:
            entries = list(self._entries)
        return entries if limit is None else entries[-limit:]

    def to_records(self) -> List[Dict[str, Any]]:
        with self._lock:
            return [entry.to_record() for entry in self._entries]

    @classmethod
    def from_records(
        cls,
        records: Iterable[Mapping],
        base_state: Any = None,
        reducer: Optional[Reducer] = None,
        maxlen: Optional[int] = None,
    ) -> "ActionLog":
        log = cls(base_state=base_state, reducer=reducer, maxlen=maxlen)
        for record in sorted(records, key=lambda r: r["seq"]):
            entry = LogEntry(
                seq=int(record["seq"]),
                kind=record["kind"],
                payload=record.get("payload"),
                timestamp=float(record.get("timestamp", 0.0)),
            )
            log._entries.append(entry)
            log._next_seq = entry.seq + 1
        while maxlen is not None and len(log._entries) > maxlen:
            evicted = log._entries.popleft()
            log._base_state = reduce_state(reducer, log._base_state, evicted.to_action())
        return log

    def dumps(self) -> str:
        """JSON text of the entries; tuple payloads survive a `loads` round trip."""
        with self._lock:
            records = [entry.to_record(keep_tuples=True) for entry in self._entries]
        return json.dumps(records, sort_keys=True)

    @classmethod
    def loads(cls, text: str, **kwargs: Any) -> "ActionLog":
        return cls.from_records(json.loads(text, object_hook=_restore_tuples), **kwargs)

    def clear(self) -> None:
        """Drop all entries, folding them into the base state when possible."""
        with self._lock:
            if self._reducer is not None and self._entries:
                self._base_state = self.replay()
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __iter__(self) -> Iterator[LogEntry]:
        return iter(self.entries())

    def __repr__(self) -> str:
        return f"ActionLog(entries={len(self)}, maxlen={self._maxlen})"


__all__ = ["ActionLog", "LogEntry"]

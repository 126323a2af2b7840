"""Unit tests for the action log and deterministic replay."""

import pytest

from unifx import Action, ActionLog, State, combine_reducers, create_reducer, deep_equal, on

increment = "counter/increment"


def counter_reducer():
    return combine_reducers(
        counter=create_reducer(0, on(increment, lambda n, a: n + 1)),
        items=create_reducer((), on("items/add", lambda items, a: items + (a.payload,))),
    )


def fold(reducer, state, actions):
    for action in actions:
        state = reducer(state, action)
    return state


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        self.now += 1.0
        return self.now


@pytest.mark.unit
def test_entries_are_numbered_and_timestamped():
    """Appended entries carry sequence numbers and clock timestamps"""
    log = ActionLog(reducer=counter_reducer(), clock=FakeClock())

    first = log.append(Action(increment))
    second = log.append(Action("items/add", "x"))

    assert (first.seq, second.seq) == (0, 1)
    assert (first.timestamp, second.timestamp) == (1001.0, 1002.0)
    assert log.actions() == [Action(increment), Action("items/add", "x")]


@pytest.mark.unit
def test_replay_reproduces_folded_state():
    """Replaying the log equals folding the same actions"""
    reducer = counter_reducer()
    base = reducer(State(), Action("@unifx/init"))
    actions = [Action(increment), Action("items/add", "a"), Action(increment)]
    log = ActionLog(base_state=base, reducer=reducer)
    for action in actions:
        log.append(action)

    replayed = log.replay()

    assert deep_equal(replayed, fold(reducer, base, actions))
    assert log.verify(replayed)


@pytest.mark.unit
def test_bounded_log_folds_evicted_entries_into_base():
    """Evicted entries move into the base state so replay still holds"""
    reducer = counter_reducer()
    base = reducer(State(), Action("@unifx/init"))
    log = ActionLog(base_state=base, reducer=reducer, maxlen=2)
    actions = [Action(increment)] * 4 + [Action("items/add", "a")]

    for action in actions:
        log.append(action)

    assert len(log) == 2
    assert log.base_state["counter"] == 3
    assert [entry.seq for entry in log] == [3, 4]
    assert log.replay() == {"counter": 4, "items": ("a",)}


@pytest.mark.unit
@pytest.mark.edge_case
def test_bounded_log_needs_a_reducer():
    """A bounded log cannot fold evictions without a reducer"""
    with pytest.raises(ValueError):
        ActionLog(maxlen=3)
    with pytest.raises(ValueError):
        ActionLog(reducer=counter_reducer(), maxlen=0)


@pytest.mark.unit
def test_records_round_trip_through_json():
    """dumps()/loads() restore a log that replays to the same state"""
    reducer = counter_reducer()
    base = reducer(State(), Action("@unifx/init"))
    log = ActionLog(base_state=base, reducer=reducer)
    log.append(Action(increment))
    log.append(Action("items/add", "a"))

    restored = ActionLog.loads(log.dumps(), base_state=base, reducer=reducer)

    assert [entry.kind for entry in restored] == [increment, "items/add"]
    assert deep_equal(restored.replay(), log.replay())


@pytest.mark.unit
def test_json_round_trip_keeps_tuple_payloads():
    """Tuples in payloads come back as tuples from loads()"""
    reducer = counter_reducer()
    base = reducer(State(), Action("@unifx/init"))
    log = ActionLog(base_state=base, reducer=reducer)
    log.append(Action("items/add", ("a", 1)))
    log.append(Action("items/add", {"tags": ("x", ("y", "z")), "names": ["p"]}))

    restored = ActionLog.loads(log.dumps(), base_state=base, reducer=reducer)
    first, second = restored.actions()

    assert first.payload == ("a", 1)
    assert second.payload["tags"] == ("x", ("y", "z"))
    assert second.payload["names"] == ["p"]
    assert restored.replay()["items"] == log.replay()["items"]


@pytest.mark.unit
def test_records_convert_read_only_payloads():
    """Mapping payloads become plain dicts in records"""
    from types import MappingProxyType

    log = ActionLog()
    log.append(Action("auth/login", MappingProxyType({"username": "a", "roles": ("x",)})))

    record = log.to_records()[0]

    assert record["payload"] == {"username": "a", "roles": ["x"]}
    assert set(record) == {"seq", "kind", "payload", "timestamp"}


@pytest.mark.unit
def test_from_records_orders_by_sequence_and_applies_bound():
    """Records are replayed in seq order; excess entries are folded"""
    reducer = counter_reducer()
    base = reducer(State(), Action("@unifx/init"))
    records = [
        {"seq": 2, "kind": "items/add", "payload": "c"},
        {"seq": 0, "kind": "items/add", "payload": "a"},
        {"seq": 1, "kind": "items/add", "payload": "b"},
    ]

    log = ActionLog.from_records(records, base_state=base, reducer=reducer, maxlen=2)

    assert log.base_state["items"] == ("a",)
    assert log.replay()["items"] == ("a", "b", "c")


@pytest.mark.unit
def test_clear_keeps_replay_consistent():
    """Clearing folds entries into the base state"""
    reducer = counter_reducer()
    log = ActionLog(base_state=reducer(State(), Action("@unifx/init")), reducer=reducer)
    log.append(Action(increment))

    log.clear()

    assert len(log) == 0
    assert log.replay()["counter"] == 1


@pytest.mark.unit
def test_entries_limit_returns_latest():
    """entries(limit) returns the most recent entries"""
    log = ActionLog()
    for n in range(5):
        log.append(Action("tick", n))

    assert [entry.payload for entry in log.entries(2)] == [3, 4]

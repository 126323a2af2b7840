"""Integration tests for deterministic replay through the store's action log."""

import numpy as np
import pytest

from unifx import (
    Action,
    ActionLog,
    create_action,
    create_reducer,
    create_store,
    deep_equal,
    on,
)

paint = create_action("canvas/paint", "x", "y", "value")
rename = create_action("canvas/rename")


def canvas_reducer():
    def apply_paint(grid, action):
        updated = grid.copy()
        updated[action.payload["y"], action.payload["x"]] = action.payload["value"]
        return updated

    return create_reducer(np.zeros((3, 3)), on(paint, apply_paint))


def reducers():
    return {
        "canvas": canvas_reducer(),
        "title": create_reducer("untitled", on(rename, lambda t, a: a.payload)),
    }


SEQUENCE = [
    paint(x=0, y=0, value=1.0),
    rename("sketch"),
    Action("unhandled/kind"),
    paint(x=2, y=1, value=0.5),
    paint(x=0, y=0, value=2.0),
]


@pytest.mark.integration
def test_replay_from_initial_state_reproduces_final_state():
    """Replaying the dispatched sequence gives a deeply equal state"""
    store = create_store(reducers())
    for action in SEQUENCE:
        store.dispatch(action)

    replayed = store.log.replay(store.reducer, store.initial_state)

    assert deep_equal(replayed, store.get_state())
    assert replayed["canvas"][0, 0] == 2.0
    assert store.verify_replay()


@pytest.mark.integration
def test_replay_on_a_fresh_store_matches():
    """Dispatching the logged actions into a new store reaches the same state"""
    original = create_store(reducers())
    for action in SEQUENCE:
        original.dispatch(action)

    copy = create_store(reducers())
    for action in original.log.actions():
        copy.dispatch(action)

    assert deep_equal(copy.get_state(), original.get_state())


@pytest.mark.integration
def test_bounded_log_still_replays_current_state():
    """With log_maxlen set, evicted actions are folded and replay holds"""
    store = create_store(reducers(), log_maxlen=2)
    for action in SEQUENCE:
        store.dispatch(action)

    assert len(store.log) == 2
    assert store.verify_replay()
    assert not deep_equal(store.log.base_state, store.initial_state)


@pytest.mark.integration
def test_persisted_log_restores_state():
    """A JSON-persisted log replays to the same state"""
    store = create_store(reducers())
    for action in SEQUENCE:
        store.dispatch(action)

    restored = ActionLog.loads(
        store.log.dumps(), base_state=store.initial_state, reducer=store.reducer
    )

    assert deep_equal(restored.replay(), store.get_state())


@pytest.mark.integration
def test_changed_array_is_detected_by_deep_equal():
    """Replay verification notices a differing array"""
    store = create_store(reducers())
    store.dispatch(paint(x=1, y=1, value=3.0))

    tampered = store.get_state().replace(canvas=np.zeros((3, 3)))

    assert not store.log.verify(tampered)

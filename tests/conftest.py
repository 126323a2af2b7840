"""
Shared pytest fixtures and configuration for UnifX tests.
"""

from types import SimpleNamespace

import pytest

from unifx import create_action, create_reducer, create_store, on


@pytest.fixture
def actions():
    """Action creators for a small counter + todo list state."""
    return SimpleNamespace(
        increment=create_action("counter/increment"),
        add=create_action("counter/add"),
        add_todo=create_action("todos/add", "text"),
        unknown=create_action("nobody/handles-this"),
    )


@pytest.fixture
def reducers(actions):
    """Slice reducers for the counter and todo slices."""
    return {
        "counter": create_reducer(
            0,
            on(actions.increment, lambda n, a: n + 1),
            on(actions.add, lambda n, a: n + a.payload),
        ),
        "todos": create_reducer(
            (), on(actions.add_todo, lambda todos, a: todos + (a.payload["text"],))
        ),
    }


@pytest.fixture
def store(reducers):
    """Provide a fresh store for tests that need it."""
    return create_store(reducers)


@pytest.fixture
def notifications(store):
    """Record every value delivered per slice."""
    seen = {"counter": [], "todos": []}
    store.subscribe("counter", seen["counter"].append)
    store.subscribe("todos", seen["todos"].append)
    return seen

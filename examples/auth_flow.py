"""
Auth Flow Example - Effects, Guards and Failure Recovery

A login form dispatches `login/request`. An effect calls a (fake) remote
service and answers with `login/success` or `login/failure`. A logout effect
navigates without dispatching anything back. Guards decide whether protected
pages may be shown.
"""

import asyncio
import logging

from unifx import (
    Strategy,
    create_action,
    create_reducer,
    create_selector,
    create_store,
    emit_failure,
    guard,
    on,
)

login = create_action("login/request", "username", "password")
login_success = create_action("login/success", "user")
login_failure = create_action("login/failure", "error")
logout = create_action("logout/request")
logout_success = create_action("logout/success")

INITIAL_AUTH = {"user": None, "is_authenticated": False, "error": None}

auth = create_reducer(
    INITIAL_AUTH,
    on(login_success, lambda s, a: {"user": a.payload["user"], "is_authenticated": True, "error": None}),
    on(login_failure, lambda s, a: {**s, "error": a.payload["error"]}),
    on(logout_success, lambda s, a: INITIAL_AUTH),
)

is_authenticated = create_selector("auth", lambda s: s["is_authenticated"])
requires_login = guard(is_authenticated, redirect="/login")

USERS = {("alice", "wonderland"): {"id": "1", "name": "Alice"}}


async def remote_login(username, password):
    await asyncio.sleep(0.05)
    user = USERS.get((username, password))
    if user is None:
        raise PermissionError("invalid credentials")
    return user


def open_dashboard(store):
    decision = store.check(requires_login)
    if decision:
        print(">>> dashboard")
    else:
        print(f">>> redirect to {decision.redirect}")


async def main():
    store = create_store({"auth": auth})

    @store.register_effect(login, strategy=Strategy.SUPERSEDE, recovery=emit_failure(login_failure))
    async def authenticate(action):
        user = await remote_login(action.payload["username"], action.payload["password"])
        return login_success(user=user)

    store.register_effect(logout, lambda action: logout_success())
    store.register_effect(
        logout_success, lambda action: print(">>> navigate to /login"), dispatch=False
    )

    store.subscribe("auth", lambda s: print(f"auth: {s}"))

    async with store:
        open_dashboard(store)

        store.dispatch(login(username="alice", password="wrong"))
        await asyncio.sleep(0.1)

        # The first attempt is superseded by the second
        store.dispatch(login(username="alice", password="oops"))
        store.dispatch(login(username="alice", password="wonderland"))
        await asyncio.sleep(0.1)
        open_dashboard(store)

        store.dispatch(logout())
        await asyncio.sleep(0.01)
        open_dashboard(store)

    print(store.effects.get_stats())


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    asyncio.run(main())

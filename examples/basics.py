from unifx import (
    create_action,
    create_reducer,
    create_selector,
    create_selector_factory,
    create_store,
    on,
)

# ------------------------------------------------------------------------------------------------

print()
print("=" * 100)
print("Defining actions and reducers")
print("-" * 100)
print()

# Actions describe what happened. Creators remember their kind.
add_item = create_action("cart/add", "name", "price")
remove_item = create_action("cart/remove", "name")
set_discount = create_action("pricing/discount")

# Reducers compute the next slice from the current slice and an action.
cart = create_reducer(
    (),
    on(add_item, lambda items, a: items + ((a.payload["name"], a.payload["price"]),)),
    on(remove_item, lambda items, a: tuple(i for i in items if i[0] != a.payload["name"])),
)
pricing = create_reducer({"discount": 0.0}, on(set_discount, lambda p, a: {"discount": a.payload}))

store = create_store({"cart": cart, "pricing": pricing})
print(store.get_state())

# ------------------------------------------------------------------------------------------------

print()
print("=" * 100)
print("Selectors and subscriptions")
print("-" * 100)
print()

subtotal = create_selector("cart", lambda items: sum(price for _, price in items))
total = create_selector(
    subtotal, "pricing", lambda amount, p: round(amount * (1 - p["discount"]), 2)
)

# Subscribers only hear about values that actually changed.
store.subscribe(total, lambda value: print(f">>> Cart Total: ${value:.2f}"))

store.dispatch(add_item(name="book", price=12.0))
store.dispatch(add_item(name="pen", price=3.0))
store.dispatch(set_discount(0.1))
store.dispatch(create_action("nobody/listens")())  # no output, same state object

print(f"subtotal recomputed {subtotal.recomputations} times")

# ------------------------------------------------------------------------------------------------

print()
print("=" * 100)
print("Parameterized selectors")
print("-" * 100)
print()

price_of = create_selector_factory(
    lambda name: create_selector("cart", lambda items: dict(items).get(name))
)
print("book:", store.select(price_of("book")))
store.dispatch(remove_item(name="book"))
print("book after removal:", store.select(price_of("book")))

# ------------------------------------------------------------------------------------------------

print()
print("=" * 100)
print("Replay")
print("-" * 100)
print()

for entry in store.log:
    print(f"#{entry.seq} {entry.kind}")
print("replay matches:", store.verify_replay())

import asyncio
from decimal import Decimal
from unittest.mock import patch

import pytest

from app.core.errors import ConflictError, InsufficientStock, ReferenceNotFoundError, StorageError
from app.models.order import OrderStatus
from app.schemas.order import AcceptedOrder, RejectedOrder

from helpers import (
    COLD_BREW,
    COLD_BREW_CONCENTRATE,
    DOUBLE_ESPRESSO,
    ESPRESSO,
    LATTE,
    MILK,
    MYSTERY_BLEND,
    make_order,
)


# --- SINGLE ORDER ---

@pytest.mark.asyncio
async def test_create_order_reserves_stock_and_prices_order(services, db):
    order = await services.fulfillment.create_order(make_order("Ada", (COLD_BREW, 2)))

    assert order.id == 1
    assert order.status == OrderStatus.PENDING
    assert order.total_amount == Decimal("8.50")
    assert order.items[0].price_at_order == Decimal("4.25")
    assert db.inventory[COLD_BREW_CONCENTRATE].quantity == Decimal("4")
    assert [row.status for row in db.status_history] == [OrderStatus.PENDING]


@pytest.mark.asyncio
async def test_total_uses_price_captured_at_order_time(services, db):
    order = await services.fulfillment.create_order(make_order("Ada", (LATTE, 1), (DOUBLE_ESPRESSO, 2)))
    db.menu[LATTE].price = Decimal("9.99")

    stored = await services.orders.get_order(order.id)
    assert stored.total_amount == Decimal("8.50")
    assert stored.total_amount == sum(i.price_at_order * i.quantity for i in stored.items)


@pytest.mark.asyncio
async def test_create_order_with_insufficient_stock_writes_nothing(services, db):
    with pytest.raises(InsufficientStock) as excinfo:
        await services.fulfillment.create_order(make_order("Ada", (LATTE, 1), (DOUBLE_ESPRESSO, 5)))

    assert "Espresso Shot" in excinfo.value.message
    assert db.orders == {}
    assert db.inventory[ESPRESSO].quantity == Decimal("10")
    assert db.inventory[MILK].quantity == Decimal("1000")


@pytest.mark.asyncio
async def test_create_order_with_unknown_ingredient(services, db):
    with pytest.raises(ReferenceNotFoundError):
        await services.fulfillment.create_order(make_order("Ada", (MYSTERY_BLEND, 1)))
    assert db.orders == {}


@pytest.mark.asyncio
async def test_repeated_idempotency_key_is_a_conflict(services, db):
    await services.fulfillment.create_order(make_order("Ada", (LATTE, 1), idempotency_key="ada-1"))

    with pytest.raises(ConflictError):
        await services.fulfillment.create_order(make_order("Ada", (LATTE, 1), idempotency_key="ada-1"))

    assert len(db.orders) == 1
    assert db.inventory[ESPRESSO].quantity == Decimal("9")


@pytest.mark.asyncio
async def test_concurrent_orders_cannot_overcommit_stock(services, db):
    """Two orders each want 6 of the 10 shots; only one can have them."""
    results = await asyncio.gather(
        services.fulfillment.create_order(make_order("Ada", (DOUBLE_ESPRESSO, 3))),
        services.fulfillment.create_order(make_order("Grace", (DOUBLE_ESPRESSO, 3))),
        return_exceptions=True,
    )

    assert sum(isinstance(r, InsufficientStock) for r in results) == 1
    assert len(db.orders) == 1
    assert db.inventory[ESPRESSO].quantity == Decimal("4")


# --- BATCH ---

@pytest.mark.asyncio
async def test_batch_first_order_wins_scarce_stock(services, db):
    summary = await services.fulfillment.process_batch([
        make_order("O1", (DOUBLE_ESPRESSO, 3)),
        make_order("O2", (DOUBLE_ESPRESSO, 3)),
    ])

    assert summary.total_orders == 2
    assert summary.accepted == 1
    assert summary.rejected == 1
    first, second = summary.processed_orders
    assert isinstance(first, AcceptedOrder) and first.customer_name == "O1"
    assert isinstance(second, RejectedOrder) and second.customer_name == "O2"
    assert second.reason == "insufficient_inventory"
    assert second.details["name"] == "Espresso Shot"
    assert db.inventory[ESPRESSO].quantity == Decimal("4")


@pytest.mark.asyncio
async def test_batch_order_decides_who_is_rejected(services):
    """Same total demand, reversed submission order: the assignment flips."""
    summary = await services.fulfillment.process_batch([
        make_order("Small", (DOUBLE_ESPRESSO, 2)),
        make_order("Large", (DOUBLE_ESPRESSO, 4)),
    ])
    assert [o.status for o in summary.processed_orders] == ["accepted", "rejected"]


@pytest.mark.asyncio
async def test_batch_order_decides_who_is_rejected_reversed(services):
    summary = await services.fulfillment.process_batch([
        make_order("Large", (DOUBLE_ESPRESSO, 4)),
        make_order("Small", (DOUBLE_ESPRESSO, 2)),
    ])
    assert [o.status for o in summary.processed_orders] == ["accepted", "rejected"]
    assert summary.processed_orders[0].customer_name == "Large"


@pytest.mark.asyncio
async def test_batch_summary_totals_and_inventory_updates(services, db):
    summary = await services.fulfillment.process_batch([
        make_order("Ada", (LATTE, 2)),
        make_order("Grace", (DOUBLE_ESPRESSO, 1), (COLD_BREW, 1)),
        make_order("Linus", (COLD_BREW, 5)),
    ])

    assert summary.accepted + summary.rejected == summary.total_orders == 3
    assert summary.rejected == 1
    accepted_totals = [o.total for o in summary.processed_orders if isinstance(o, AcceptedOrder)]
    assert summary.total_revenue == sum(accepted_totals) == Decimal("13.75")

    updates = {u.ingredient_id: u for u in summary.inventory_updates}
    assert updates[ESPRESSO].quantity_used == Decimal("4")
    assert updates[ESPRESSO].remaining == Decimal("6")
    assert updates[MILK].quantity_used == Decimal("400")
    assert updates[COLD_BREW_CONCENTRATE].quantity_used == Decimal("3")
    assert db.inventory[COLD_BREW_CONCENTRATE].quantity == Decimal("7")


@pytest.mark.asyncio
async def test_batch_persists_accepted_and_rejected_orders(services, db):
    summary = await services.fulfillment.process_batch([
        make_order("O1", (DOUBLE_ESPRESSO, 3), idempotency_key="o1"),
        make_order("O2", (DOUBLE_ESPRESSO, 3), idempotency_key="o2"),
    ])

    accepted, rejected = summary.processed_orders
    assert db.orders[accepted.order_id].status == OrderStatus.ACCEPTED
    assert db.orders[rejected.order_id].status == OrderStatus.REJECTED
    # A rejected order can be resubmitted with the same key
    assert db.orders[rejected.order_id].idempotency_key is None


@pytest.mark.asyncio
async def test_batch_rejects_duplicate_key(services):
    summary = await services.fulfillment.process_batch([
        make_order("Ada", (LATTE, 1), idempotency_key="same"),
        make_order("Ada", (LATTE, 1), idempotency_key="same"),
    ])
    assert summary.accepted == 1
    assert summary.processed_orders[1].reason == "duplicate_order"


@pytest.mark.asyncio
async def test_batch_duplicate_found_on_insert_keeps_the_rest(services, db):
    """A key the lookup missed is refused on insert; only that order is undone."""
    await services.fulfillment.create_order(make_order("Ada", (LATTE, 1), idempotency_key="ada-1"))

    with patch.object(services.fulfillment.orders, "find_by_idempotency_key", return_value=None):
        summary = await services.fulfillment.process_batch([
            make_order("Grace", (COLD_BREW, 1)),
            make_order("Ada", (LATTE, 1), idempotency_key="ada-1"),
        ])

    assert [o.status for o in summary.processed_orders] == ["accepted", "rejected"]
    assert summary.processed_orders[1].reason == "duplicate_order"
    assert summary.total_revenue == Decimal("4.25")
    assert {u.ingredient_id for u in summary.inventory_updates} == {COLD_BREW_CONCENTRATE}
    assert len(db.orders) == 2
    assert db.inventory[ESPRESSO].quantity == Decimal("9")
    assert db.inventory[MILK].quantity == Decimal("800")
    assert db.inventory[COLD_BREW_CONCENTRATE].quantity == Decimal("7")


@pytest.mark.asyncio
async def test_duplicate_found_on_insert_is_a_conflict(services, db):
    await services.fulfillment.create_order(make_order("Ada", (LATTE, 1), idempotency_key="ada-1"))

    with patch.object(services.fulfillment.orders, "find_by_idempotency_key", return_value=None):
        with pytest.raises(ConflictError):
            await services.fulfillment.create_order(make_order("Ada", (LATTE, 1), idempotency_key="ada-1"))

    assert len(db.orders) == 1
    assert db.inventory[ESPRESSO].quantity == Decimal("9")


@pytest.mark.asyncio
async def test_batch_storage_failure_rolls_back_everything(services, db):
    orders_repo = services.fulfillment.orders
    real_create = orders_repo.create
    calls = 0

    async def flaky_create(*args, **kwargs):
        nonlocal calls
        calls += 1
        if calls == 2:
            raise StorageError("connection reset")
        return await real_create(*args, **kwargs)

    with patch.object(orders_repo, "create", side_effect=flaky_create):
        with pytest.raises(StorageError):
            await services.fulfillment.process_batch([
                make_order("Ada", (LATTE, 1)),
                make_order("Grace", (COLD_BREW, 1)),
            ])

    assert db.orders == {}
    assert db.status_history == []
    assert db.inventory[ESPRESSO].quantity == Decimal("10")
    assert db.inventory[MILK].quantity == Decimal("1000")
    assert db.inventory[COLD_BREW_CONCENTRATE].quantity == Decimal("10")


@pytest.mark.asyncio
async def test_batch_unknown_menu_item_aborts_batch(services, db):
    with pytest.raises(ReferenceNotFoundError):
        await services.fulfillment.process_batch([
            make_order("Ada", (LATTE, 1)),
            make_order("Grace", (404, 1)),
        ])

    assert db.orders == {}
    assert db.inventory[ESPRESSO].quantity == Decimal("10")

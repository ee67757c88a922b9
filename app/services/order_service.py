import logging
from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional

from app.core.errors import ConflictError, InvalidRange
from app.models.order import OrderStatus
from app.repositories.base import MenuRepository, OrderRepository, Storage
from app.schemas.order import (
    ChangeRecord,
    OrderItemRecord,
    OrderItemRequest,
    OrderRecord,
    OrderUpdateRequest,
    StatusHistoryRecord,
)
from app.services.history_service import ChangeHistoryRecorder
from app.services.inventory_service import require_recipe

log = logging.getLogger(__name__)

# Completed is terminal and handled before this table is consulted
ALLOWED_TRANSITIONS = {
    OrderStatus.PENDING: {OrderStatus.PENDING, OrderStatus.ACCEPTED, OrderStatus.CANCELLED, OrderStatus.COMPLETED},
    OrderStatus.ACCEPTED: {OrderStatus.ACCEPTED, OrderStatus.CANCELLED, OrderStatus.COMPLETED},
    OrderStatus.CANCELLED: {OrderStatus.CANCELLED},
    OrderStatus.REJECTED: {OrderStatus.REJECTED},
}

CLOSABLE_STATUSES = (OrderStatus.PENDING, OrderStatus.ACCEPTED)


def _day_start(day: date) -> datetime:
    return datetime.combine(day, time.min, tzinfo=timezone.utc)


class OrderService:
    """Lookup, update, close, delete and reporting for stored orders."""

    def __init__(
        self,
        storage: Storage,
        orders: OrderRepository,
        menu: MenuRepository,
        history: ChangeHistoryRecorder,
    ):
        self.storage = storage
        self.orders = orders
        self.menu = menu
        self.history = history

    async def get_order(self, order_id: int) -> OrderRecord:
        return await self.orders.get_by_id(order_id)

    async def list_orders(self) -> List[OrderRecord]:
        return await self.orders.list()

    async def get_status_history(self, order_id: int) -> List[StatusHistoryRecord]:
        await self.orders.get_by_id(order_id)
        return await self.orders.list_status_history(order_id)

    async def get_change_history(self, order_id: int) -> List[ChangeRecord]:
        await self.orders.get_by_id(order_id)
        return await self.history.history(order_id)

    async def _price_items(
        self, existing: OrderRecord, items: List[OrderItemRequest], conn: Any
    ) -> List[OrderItemRecord]:
        # Lines already on the order keep the price captured when it was placed
        known_prices = {item.product_id: item.price_at_order for item in existing.items}
        priced = []
        for item in items:
            price = known_prices.get(item.product_id)
            if price is None:
                price = require_recipe(await self.menu.get_by_id(item.product_id, conn)).price
                known_prices[item.product_id] = price
            priced.append(OrderItemRecord(product_id=item.product_id, quantity=item.quantity, price_at_order=price))
        return priced

    async def update_order(self, order_id: int, request: OrderUpdateRequest) -> OrderRecord:
        """
        Applies the incoming fields to a stored order. One change record per
        differing field is appended before the order row is written; both happen
        in the same transaction.
        """
        async with self.storage.transaction() as conn:
            existing = await self.orders.get_by_id(order_id, conn, lock=True)
            if existing.status == OrderStatus.COMPLETED:
                raise ConflictError("Cannot update a completed order!", details={"order_id": order_id})

            new_status = request.status or existing.status
            if new_status not in ALLOWED_TRANSITIONS[existing.status]:
                raise ConflictError(
                    f"Cannot move order {order_id} from {existing.status.value} to {new_status.value}",
                    details={"order_id": order_id},
                )

            items = await self._price_items(existing, request.items, conn)
            incoming = existing.model_copy(update={
                "customer_name": request.customer_name,
                "items": items,
                "special_instructions": (
                    request.special_instructions
                    if request.special_instructions is not None
                    else existing.special_instructions
                ),
                "status": new_status,
                "total_amount": sum((i.price_at_order * i.quantity for i in items), Decimal("0")),
            })

            changes = self.history.collect_changes(existing, incoming)
            if not changes:
                return existing

            await self.history.record(order_id, changes, conn)
            order = await self.orders.update(incoming, conn)
            if new_status != existing.status:
                await self.orders.add_status_history(order_id, new_status, conn)

        log.info(f"Order {order_id} updated: {', '.join(change.field for change in changes)}")
        return order

    async def close_order(self, order_id: int) -> OrderRecord:
        """Marks an order completed. Stock was already deducted when it was placed."""
        async with self.storage.transaction() as conn:
            existing = await self.orders.get_by_id(order_id, conn, lock=True)
            if existing.status == OrderStatus.COMPLETED:
                raise ConflictError(f"Order {order_id} is already completed", details={"order_id": order_id})
            if existing.status not in CLOSABLE_STATUSES:
                raise ConflictError(
                    f"Cannot close order {order_id} in status {existing.status.value}",
                    details={"order_id": order_id},
                )

            order = await self.orders.update(existing.model_copy(update={"status": OrderStatus.COMPLETED}), conn)
            await self.orders.add_status_history(order_id, OrderStatus.COMPLETED, conn)

        log.info(f"Order {order_id} completed")
        return order

    async def delete_order(self, order_id: int) -> None:
        async with self.storage.transaction() as conn:
            await self.orders.get_by_id(order_id, conn, lock=True)
            if await self.history.has_history(order_id, conn):
                raise ConflictError(
                    f"Order {order_id} has change history and cannot be deleted",
                    details={"order_id": order_id},
                )
            await self.orders.delete(order_id, conn)

        log.info(f"Order {order_id} deleted")

    async def get_ordered_items_count(
        self, start: Optional[date] = None, end: Optional[date] = None
    ) -> Dict[str, int]:
        """
        Sums ordered quantities per menu item name over orders created between
        the two dates, both days included. A missing bound is unconstrained.
        """
        if start is not None and end is not None and start > end:
            raise InvalidRange(
                "'startDate' cannot be later than 'endDate'.",
                details={"start": start.isoformat(), "end": end.isoformat()},
            )

        start_at = _day_start(start) if start is not None else None
        end_before = _day_start(end + timedelta(days=1)) if end is not None else None
        return await self.orders.ordered_items_count(start_at, end_before)

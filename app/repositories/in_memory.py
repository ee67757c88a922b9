from __future__ import annotations

import asyncio
import copy
from collections import defaultdict
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional

from app.core.errors import ConflictError, ReferenceNotFoundError
from app.models.order import OrderStatus
from app.schemas.inventory import InventoryItemRecord
from app.schemas.menu import MenuItemRecord
from app.schemas.order import (
    ChangeRecord,
    OrderItemRecord,
    OrderRecord,
    OrderRequest,
    StatusHistoryRecord,
)

from .base import (
    ChangeHistoryRepository,
    InventoryRepository,
    MenuRepository,
    OrderRepository,
    Storage,
)


def _now() -> datetime:
    return datetime.now(timezone.utc)


class InMemoryDatabase:
    """Process-local tables shared by the in-memory repositories."""

    def __init__(self) -> None:
        self.menu: Dict[int, MenuItemRecord] = {}
        self.inventory: Dict[int, InventoryItemRecord] = {}
        self.orders: Dict[int, OrderRecord] = {}
        self.status_history: List[StatusHistoryRecord] = []
        self.change_records: List[ChangeRecord] = []
        self.next_order_id = 1

    def add_menu_item(self, item: MenuItemRecord) -> MenuItemRecord:
        self.menu[item.id] = item
        return item

    def add_ingredient(self, item: InventoryItemRecord) -> InventoryItemRecord:
        self.inventory[item.id] = item
        return item

    def snapshot(self) -> Dict[str, Any]:
        return copy.deepcopy(self.__dict__)

    def restore(self, state: Dict[str, Any]) -> None:
        self.__dict__.update(state)


class InMemoryStorage(Storage):
    """
    Transactions are serialized by a single lock, which stands in for row locks,
    and roll back by restoring a snapshot taken when the transaction started.
    """

    def __init__(self, db: InMemoryDatabase):
        self.db = db
        self._lock = asyncio.Lock()

    @asynccontextmanager
    async def transaction(self):
        async with self._lock:
            state = self.db.snapshot()
            try:
                yield self.db
            except BaseException:
                self.db.restore(state)
                raise

    @asynccontextmanager
    async def savepoint(self, conn: Any):
        # Runs under the lock already held by the enclosing transaction
        state = self.db.snapshot()
        try:
            yield conn
        except BaseException:
            self.db.restore(state)
            raise


class InMemoryMenuRepository(MenuRepository):
    def __init__(self, db: InMemoryDatabase):
        self.db = db

    async def get_by_id(self, menu_item_id: int, conn: Any = None) -> MenuItemRecord:
        item = self.db.menu.get(menu_item_id)
        if item is None:
            raise ReferenceNotFoundError(f"menu item not found: {menu_item_id}")
        return item.model_copy(deep=True)


class InMemoryInventoryRepository(InventoryRepository):
    def __init__(self, db: InMemoryDatabase):
        self.db = db

    async def get_by_id(self, ingredient_id: int, conn: Any = None) -> InventoryItemRecord:
        item = self.db.inventory.get(ingredient_id)
        if item is None:
            raise ReferenceNotFoundError(f"ingredient not found: {ingredient_id}")
        return item.model_copy()

    async def list(self, conn: Any = None) -> List[InventoryItemRecord]:
        return [self.db.inventory[key].model_copy() for key in sorted(self.db.inventory)]

    async def lock_for_update(self, ingredient_ids: Iterable[int], conn: Any) -> Dict[int, InventoryItemRecord]:
        return {
            ingredient_id: self.db.inventory[ingredient_id].model_copy()
            for ingredient_id in sorted(set(ingredient_ids))
            if ingredient_id in self.db.inventory
        }

    async def set_quantity(self, ingredient_id: int, quantity: Decimal, conn: Any) -> None:
        item = self.db.inventory.get(ingredient_id)
        if item is None:
            raise ReferenceNotFoundError(f"ingredient not found: {ingredient_id}")
        self.db.inventory[ingredient_id] = item.model_copy(update={"quantity": quantity})


class InMemoryOrderRepository(OrderRepository):
    def __init__(self, db: InMemoryDatabase):
        self.db = db

    def _get(self, order_id: int) -> OrderRecord:
        order = self.db.orders.get(order_id)
        if order is None:
            raise ReferenceNotFoundError(f"order with ID {order_id} not found")
        return order

    async def create(
        self,
        order: OrderRequest,
        status: OrderStatus,
        total_amount: Decimal,
        unit_prices: Dict[int, Decimal],
        conn: Any,
        idempotency_key: Optional[str] = None,
    ) -> OrderRecord:
        if idempotency_key is not None:
            for existing in self.db.orders.values():
                if existing.idempotency_key == idempotency_key:
                    raise ConflictError(
                        f"order already exists with ID {existing.id}",
                        details={"order_id": existing.id, "idempotency_key": idempotency_key},
                    )

        now = _now()
        record = OrderRecord(
            id=self.db.next_order_id,
            customer_name=order.customer_name,
            items=[
                OrderItemRecord(
                    product_id=item.product_id,
                    quantity=item.quantity,
                    price_at_order=unit_prices[item.product_id],
                )
                for item in order.items
            ],
            special_instructions=list(order.special_instructions),
            status=status,
            total_amount=total_amount,
            idempotency_key=idempotency_key,
            created_at=now,
            updated_at=now,
        )
        self.db.next_order_id += 1
        self.db.orders[record.id] = record
        await self.add_status_history(record.id, status, conn)
        return record.model_copy(deep=True)

    async def get_by_id(self, order_id: int, conn: Any = None, lock: bool = False) -> OrderRecord:
        return self._get(order_id).model_copy(deep=True)

    async def find_by_idempotency_key(self, key: str, conn: Any = None) -> Optional[OrderRecord]:
        for order in self.db.orders.values():
            if order.idempotency_key == key:
                return order.model_copy(deep=True)
        return None

    async def list(self, conn: Any = None) -> List[OrderRecord]:
        return [self.db.orders[key].model_copy(deep=True) for key in sorted(self.db.orders)]

    async def update(self, order: OrderRecord, conn: Any) -> OrderRecord:
        self._get(order.id)
        stored = order.model_copy(deep=True, update={"updated_at": _now()})
        self.db.orders[order.id] = stored
        return stored.model_copy(deep=True)

    async def add_status_history(self, order_id: int, status: OrderStatus, conn: Any) -> None:
        self.db.status_history.append(StatusHistoryRecord(order_id=order_id, status=status, changed_at=_now()))

    async def list_status_history(self, order_id: int, conn: Any = None) -> List[StatusHistoryRecord]:
        return [row for row in self.db.status_history if row.order_id == order_id]

    async def delete(self, order_id: int, conn: Any) -> None:
        self._get(order_id)
        del self.db.orders[order_id]
        self.db.status_history = [row for row in self.db.status_history if row.order_id != order_id]

    async def ordered_items_count(
        self, start: Optional[datetime], end: Optional[datetime], conn: Any = None
    ) -> Dict[str, int]:
        counts: Dict[str, int] = defaultdict(int)
        for order in self.db.orders.values():
            if start is not None and order.created_at < start:
                continue
            if end is not None and order.created_at >= end:
                continue
            for item in order.items:
                menu_item = self.db.menu.get(item.product_id)
                if menu_item is not None:
                    counts[menu_item.name] += item.quantity
        return dict(counts)


class InMemoryChangeHistoryRepository(ChangeHistoryRepository):
    def __init__(self, db: InMemoryDatabase):
        self.db = db

    async def append(self, records: List[ChangeRecord], conn: Any) -> None:
        self.db.change_records.extend(record.model_copy() for record in records)

    async def list_for_order(self, order_id: int, conn: Any = None) -> List[ChangeRecord]:
        return [record for record in self.db.change_records if record.order_id == order_id]

    async def exists_for_order(self, order_id: int, conn: Any = None) -> bool:
        return any(record.order_id == order_id for record in self.db.change_records)

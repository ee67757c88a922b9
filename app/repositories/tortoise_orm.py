from __future__ import annotations

from collections import defaultdict
from contextlib import asynccontextmanager, contextmanager
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional

from tortoise import timezone
from tortoise.exceptions import (
    DBConnectionError,
    IntegrityError,
    OperationalError,
    TransactionManagementError,
)
from tortoise.transactions import in_transaction

from app.core.errors import ConflictError, ReferenceNotFoundError, StorageError
from app.models.history import OrderChangeRecord
from app.models.inventory import InventoryItem
from app.models.menu import MenuItem, MenuItemIngredient
from app.models.order import Order, OrderItem, OrderStatus, OrderStatusHistory
from app.schemas.inventory import InventoryItemRecord
from app.schemas.menu import IngredientRequirement, MenuItemRecord
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

ORM_ERRORS = (DBConnectionError, IntegrityError, OperationalError, TransactionManagementError)


@contextmanager
def storage_errors(action: str):
    """Re-raises ORM and driver failures as StorageError."""
    try:
        yield
    except ORM_ERRORS as e:
        raise StorageError(f"failed to {action}: {e}") from e


class TortoiseStorage(Storage):
    def __init__(self, connection_name: Optional[str] = None):
        self.connection_name = connection_name

    @asynccontextmanager
    async def transaction(self):
        # in_transaction rolls back on any exception and commits on a clean exit
        with storage_errors("run transaction"):
            async with in_transaction(self.connection_name) as conn:
                yield conn

    @asynccontextmanager
    async def savepoint(self, conn: Any):
        # Inside an open transaction in_transaction() resolves to that transaction
        # and opens a SAVEPOINT on it
        with storage_errors("run savepoint"):
            async with in_transaction(self.connection_name) as nested:
                yield nested


def _inventory_record(item: InventoryItem) -> InventoryItemRecord:
    return InventoryItemRecord(
        id=item.id,
        name=item.name,
        quantity=item.quantity,
        unit=item.unit,
        price=item.price,
    )


class TortoiseMenuRepository(MenuRepository):
    async def get_by_id(self, menu_item_id: int, conn: Any = None) -> MenuItemRecord:
        with storage_errors("fetch menu item"):
            menu_item = await MenuItem.get_or_none(id=menu_item_id).using_db(conn)
            if not menu_item:
                raise ReferenceNotFoundError(f"menu item not found: {menu_item_id}")
            ingredients = await MenuItemIngredient.filter(menu_item_id=menu_item.id).using_db(conn).order_by("position", "id")

        return MenuItemRecord(
            id=menu_item.id,
            name=menu_item.name,
            description=menu_item.description,
            price=menu_item.price,
            categories=menu_item.categories or [],
            allergens=menu_item.allergens or [],
            ingredients=[
                IngredientRequirement(ingredient_id=row.inventory_id, quantity=row.quantity)
                for row in ingredients
            ],
        )


class TortoiseInventoryRepository(InventoryRepository):
    async def get_by_id(self, ingredient_id: int, conn: Any = None) -> InventoryItemRecord:
        with storage_errors("fetch ingredient"):
            item = await InventoryItem.get_or_none(id=ingredient_id).using_db(conn)
        if not item:
            raise ReferenceNotFoundError(f"ingredient not found: {ingredient_id}")
        return _inventory_record(item)

    async def list(self, conn: Any = None) -> List[InventoryItemRecord]:
        with storage_errors("list inventory"):
            items = await InventoryItem.all().using_db(conn).order_by("id")
        return [_inventory_record(item) for item in items]

    async def lock_for_update(self, ingredient_ids: Iterable[int], conn: Any) -> Dict[int, InventoryItemRecord]:
        ids = sorted(set(ingredient_ids))
        if not ids:
            return {}
        # Rows are locked in id order so concurrent reservations cannot deadlock
        with storage_errors("lock inventory"):
            rows = await InventoryItem.filter(id__in=ids).using_db(conn).order_by("id").select_for_update()
        return {row.id: _inventory_record(row) for row in rows}

    async def set_quantity(self, ingredient_id: int, quantity: Decimal, conn: Any) -> None:
        with storage_errors("update ingredient quantity"):
            updated = await InventoryItem.filter(id=ingredient_id).using_db(conn).update(
                quantity=quantity, updated_at=timezone.now()
            )
        if not updated:
            raise ReferenceNotFoundError(f"ingredient not found: {ingredient_id}")


class TortoiseOrderRepository(OrderRepository):
    @staticmethod
    def _to_record(order: Order) -> OrderRecord:
        items = sorted(order.items, key=lambda i: (i.position, i.id))
        return OrderRecord(
            id=order.id,
            customer_name=order.customer_name,
            items=[
                OrderItemRecord(product_id=i.menu_item_id, quantity=i.quantity, price_at_order=i.price_at_order)
                for i in items
            ],
            special_instructions=order.special_instructions or [],
            status=order.status,
            total_amount=order.total_amount,
            idempotency_key=order.idempotency_key,
            created_at=order.created_at,
            updated_at=order.updated_at,
        )

    async def _insert_items(self, order_id: int, items: List[OrderItemRecord], conn: Any) -> None:
        for position, item in enumerate(items):
            await OrderItem.create(
                order_id=order_id,
                menu_item_id=item.product_id,
                quantity=item.quantity,
                price_at_order=item.price_at_order,
                position=position,
                using_db=conn,
            )

    async def create(
        self,
        order: OrderRequest,
        status: OrderStatus,
        total_amount: Decimal,
        unit_prices: Dict[int, Decimal],
        conn: Any,
        idempotency_key: Optional[str] = None,
    ) -> OrderRecord:
        with storage_errors("create order"):
            try:
                created = await Order.create(
                    customer_name=order.customer_name,
                    total_amount=total_amount,
                    special_instructions=order.special_instructions,
                    status=status,
                    idempotency_key=idempotency_key,
                    using_db=conn,
                )
            except IntegrityError as e:
                # idempotency_key is the only unique column on orders
                if idempotency_key is None:
                    raise
                raise ConflictError(
                    f"order already exists with idempotency key {idempotency_key}",
                    details={"idempotency_key": idempotency_key},
                ) from e
            items = [
                OrderItemRecord(
                    product_id=item.product_id,
                    quantity=item.quantity,
                    price_at_order=unit_prices[item.product_id],
                )
                for item in order.items
            ]
            await self._insert_items(created.id, items, conn)
            await OrderStatusHistory.create(order_id=created.id, status=status, using_db=conn)
            await created.fetch_related("items", using_db=conn)
        return self._to_record(created)

    async def get_by_id(self, order_id: int, conn: Any = None, lock: bool = False) -> OrderRecord:
        with storage_errors("fetch order"):
            query = Order.filter(id=order_id).using_db(conn)
            if lock:
                query = query.select_for_update()
            order = await query.first()
            if not order:
                raise ReferenceNotFoundError(f"order with ID {order_id} not found")
            await order.fetch_related("items", using_db=conn)
        return self._to_record(order)

    async def find_by_idempotency_key(self, key: str, conn: Any = None) -> Optional[OrderRecord]:
        with storage_errors("look up idempotency key"):
            order = await Order.get_or_none(idempotency_key=key).using_db(conn).prefetch_related("items")
        return self._to_record(order) if order else None

    async def list(self, conn: Any = None) -> List[OrderRecord]:
        with storage_errors("list orders"):
            orders = await Order.all().using_db(conn).order_by("id").prefetch_related("items")
        return [self._to_record(order) for order in orders]

    async def update(self, order: OrderRecord, conn: Any) -> OrderRecord:
        with storage_errors("update order"):
            row = await Order.get_or_none(id=order.id).using_db(conn)
            if not row:
                raise ReferenceNotFoundError(f"order with ID {order.id} not found")
            row.customer_name = order.customer_name
            row.total_amount = order.total_amount
            row.special_instructions = order.special_instructions
            row.status = order.status
            await row.save(using_db=conn)
            await OrderItem.filter(order_id=order.id).using_db(conn).delete()
            await self._insert_items(order.id, order.items, conn)
        return await self.get_by_id(order.id, conn)

    async def add_status_history(self, order_id: int, status: OrderStatus, conn: Any) -> None:
        with storage_errors("insert order status history"):
            await OrderStatusHistory.create(order_id=order_id, status=status, using_db=conn)

    async def list_status_history(self, order_id: int, conn: Any = None) -> List[StatusHistoryRecord]:
        with storage_errors("list order status history"):
            rows = await OrderStatusHistory.filter(order_id=order_id).using_db(conn).order_by("id")
        return [
            StatusHistoryRecord(order_id=row.order_id, status=row.status, changed_at=row.changed_at)
            for row in rows
        ]

    async def delete(self, order_id: int, conn: Any) -> None:
        with storage_errors("delete order"):
            await OrderItem.filter(order_id=order_id).using_db(conn).delete()
            await OrderStatusHistory.filter(order_id=order_id).using_db(conn).delete()
            deleted = await Order.filter(id=order_id).using_db(conn).delete()
        if not deleted:
            raise ReferenceNotFoundError(f"order with ID {order_id} not found")

    async def ordered_items_count(
        self, start: Optional[datetime], end: Optional[datetime], conn: Any = None
    ) -> Dict[str, int]:
        query = OrderItem.all().using_db(conn)
        if start is not None:
            query = query.filter(order__created_at__gte=start)
        if end is not None:
            query = query.filter(order__created_at__lt=end)

        with storage_errors("count ordered items"):
            rows = await query.values("menu_item__name", "quantity")

        counts: Dict[str, int] = defaultdict(int)
        for row in rows:
            counts[row["menu_item__name"]] += row["quantity"]
        return dict(counts)


class TortoiseChangeHistoryRepository(ChangeHistoryRepository):
    async def append(self, records: List[ChangeRecord], conn: Any) -> None:
        with storage_errors("write change history"):
            for record in records:
                await OrderChangeRecord.create(**record.model_dump(), using_db=conn)

    async def list_for_order(self, order_id: int, conn: Any = None) -> List[ChangeRecord]:
        with storage_errors("read change history"):
            rows = await OrderChangeRecord.filter(order_id=order_id).using_db(conn).order_by("id")
        return [
            ChangeRecord(
                order_id=row.order_id,
                field=row.field,
                event_type=row.event_type,
                old_value=row.old_value,
                new_value=row.new_value,
                timestamp=row.timestamp,
            )
            for row in rows
        ]

    async def exists_for_order(self, order_id: int, conn: Any = None) -> bool:
        with storage_errors("read change history"):
            return await OrderChangeRecord.filter(order_id=order_id).using_db(conn).exists()

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime
from decimal import Decimal
from typing import Any, AsyncContextManager, Dict, Iterable, List, Optional

from app.models.order import OrderStatus
from app.schemas.inventory import InventoryItemRecord
from app.schemas.menu import MenuItemRecord
from app.schemas.order import ChangeRecord, OrderRecord, OrderRequest, StatusHistoryRecord


class Storage(ABC):
    """
    Storage handle owned by the process and injected into every service.
    `transaction()` yields the connection that repositories receive as `conn`;
    everything done through it commits together or rolls back together.
    """

    @abstractmethod
    def transaction(self) -> AsyncContextManager[Any]:
        raise NotImplementedError

    @abstractmethod
    def savepoint(self, conn: Any) -> AsyncContextManager[Any]:
        """
        Nested scope inside an open transaction. An exception leaving it undoes
        only the writes made inside it; the outer transaction stays usable.
        """
        raise NotImplementedError


class MenuRepository(ABC):
    @abstractmethod
    async def get_by_id(self, menu_item_id: int, conn: Any = None) -> MenuItemRecord:
        """Raises ReferenceNotFoundError for an unknown id."""
        raise NotImplementedError


class InventoryRepository(ABC):
    @abstractmethod
    async def get_by_id(self, ingredient_id: int, conn: Any = None) -> InventoryItemRecord:
        raise NotImplementedError

    @abstractmethod
    async def list(self, conn: Any = None) -> List[InventoryItemRecord]:
        raise NotImplementedError

    @abstractmethod
    async def lock_for_update(self, ingredient_ids: Iterable[int], conn: Any) -> Dict[int, InventoryItemRecord]:
        """
        Reads and locks the given ingredient rows until `conn` commits.
        Unknown ids are absent from the result.
        """
        raise NotImplementedError

    @abstractmethod
    async def set_quantity(self, ingredient_id: int, quantity: Decimal, conn: Any) -> None:
        raise NotImplementedError


class OrderRepository(ABC):
    @abstractmethod
    async def create(
        self,
        order: OrderRequest,
        status: OrderStatus,
        total_amount: Decimal,
        unit_prices: Dict[int, Decimal],
        conn: Any,
        idempotency_key: Optional[str] = None,
    ) -> OrderRecord:
        """Inserts the order, its items and the initial status-history row."""
        raise NotImplementedError

    @abstractmethod
    async def get_by_id(self, order_id: int, conn: Any = None, lock: bool = False) -> OrderRecord:
        raise NotImplementedError

    @abstractmethod
    async def find_by_idempotency_key(self, key: str, conn: Any = None) -> Optional[OrderRecord]:
        raise NotImplementedError

    @abstractmethod
    async def list(self, conn: Any = None) -> List[OrderRecord]:
        raise NotImplementedError

    @abstractmethod
    async def update(self, order: OrderRecord, conn: Any) -> OrderRecord:
        """Writes every editable field of `order` and replaces its items."""
        raise NotImplementedError

    @abstractmethod
    async def add_status_history(self, order_id: int, status: OrderStatus, conn: Any) -> None:
        raise NotImplementedError

    @abstractmethod
    async def list_status_history(self, order_id: int, conn: Any = None) -> List[StatusHistoryRecord]:
        raise NotImplementedError

    @abstractmethod
    async def delete(self, order_id: int, conn: Any) -> None:
        """Deletes the order together with its items and status history."""
        raise NotImplementedError

    @abstractmethod
    async def ordered_items_count(
        self, start: Optional[datetime], end: Optional[datetime], conn: Any = None
    ) -> Dict[str, int]:
        """Sums ordered quantities per menu item name for orders created in [start, end)."""
        raise NotImplementedError


class ChangeHistoryRepository(ABC):
    @abstractmethod
    async def append(self, records: List[ChangeRecord], conn: Any) -> None:
        raise NotImplementedError

    @abstractmethod
    async def list_for_order(self, order_id: int, conn: Any = None) -> List[ChangeRecord]:
        raise NotImplementedError

    @abstractmethod
    async def exists_for_order(self, order_id: int, conn: Any = None) -> bool:
        raise NotImplementedError

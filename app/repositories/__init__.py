from .base import (
    ChangeHistoryRepository,
    InventoryRepository,
    MenuRepository,
    OrderRepository,
    Storage,
)
from .in_memory import (
    InMemoryChangeHistoryRepository,
    InMemoryDatabase,
    InMemoryInventoryRepository,
    InMemoryMenuRepository,
    InMemoryOrderRepository,
    InMemoryStorage,
)
from .tortoise_orm import (
    TortoiseChangeHistoryRepository,
    TortoiseInventoryRepository,
    TortoiseMenuRepository,
    TortoiseOrderRepository,
    TortoiseStorage,
)

__all__ = [
    "Storage",
    "MenuRepository",
    "InventoryRepository",
    "OrderRepository",
    "ChangeHistoryRepository",
    "InMemoryDatabase",
    "InMemoryStorage",
    "InMemoryMenuRepository",
    "InMemoryInventoryRepository",
    "InMemoryOrderRepository",
    "InMemoryChangeHistoryRepository",
    "TortoiseStorage",
    "TortoiseMenuRepository",
    "TortoiseInventoryRepository",
    "TortoiseOrderRepository",
    "TortoiseChangeHistoryRepository",
]

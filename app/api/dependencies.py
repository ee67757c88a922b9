from typing import Optional

from fastapi import Request

from app.repositories import (
    ChangeHistoryRepository,
    InMemoryChangeHistoryRepository,
    InMemoryDatabase,
    InMemoryInventoryRepository,
    InMemoryMenuRepository,
    InMemoryOrderRepository,
    InMemoryStorage,
    InventoryRepository,
    MenuRepository,
    OrderRepository,
    Storage,
    TortoiseChangeHistoryRepository,
    TortoiseInventoryRepository,
    TortoiseMenuRepository,
    TortoiseOrderRepository,
    TortoiseStorage,
)
from app.services.fulfillment_service import FulfillmentEngine
from app.services.history_service import ChangeHistoryRecorder
from app.services.inventory_service import InventoryLedger
from app.services.order_service import OrderService


class Services:
    """Wires one storage handle and its repositories into the services the routes use."""

    def __init__(
        self,
        storage: Storage,
        menu: MenuRepository,
        inventory: InventoryRepository,
        orders: OrderRepository,
        history: ChangeHistoryRepository,
    ):
        self.storage = storage
        self.inventory = inventory
        self.ledger = InventoryLedger(menu, inventory)
        self.fulfillment = FulfillmentEngine(storage, self.ledger, orders)
        self.orders = OrderService(storage, orders, menu, ChangeHistoryRecorder(history))


def build_tortoise_services(connection_name: Optional[str] = None) -> Services:
    return Services(
        storage=TortoiseStorage(connection_name),
        menu=TortoiseMenuRepository(),
        inventory=TortoiseInventoryRepository(),
        orders=TortoiseOrderRepository(),
        history=TortoiseChangeHistoryRepository(),
    )


def build_in_memory_services(db: Optional[InMemoryDatabase] = None) -> Services:
    db = db or InMemoryDatabase()
    return Services(
        storage=InMemoryStorage(db),
        menu=InMemoryMenuRepository(db),
        inventory=InMemoryInventoryRepository(db),
        orders=InMemoryOrderRepository(db),
        history=InMemoryChangeHistoryRepository(db),
    )


def get_services(request: Request) -> Services:
    return request.app.state.services

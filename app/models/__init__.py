# app/models/__init__.py
from .inventory import InventoryItem
from .menu import MenuItem, MenuItemIngredient
from .order import Order, OrderItem, OrderStatus, OrderStatusHistory
from .history import OrderChangeRecord

# Export all models
__all__ = [
    "InventoryItem",
    "MenuItem",
    "MenuItemIngredient",
    "Order",
    "OrderItem",
    "OrderStatus",
    "OrderStatusHistory",
    "OrderChangeRecord",
]

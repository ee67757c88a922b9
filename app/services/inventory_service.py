import logging
from decimal import Decimal
from typing import Any, Dict, List, Sequence

from app.core.config import LOW_STOCK_THRESHOLD
from app.core.errors import InsufficientStock, ReferenceNotFoundError, ValidationError
from app.repositories.base import InventoryRepository, MenuRepository
from app.schemas.inventory import Demand, InventoryReservation, Reservation
from app.schemas.menu import MenuItemRecord
from app.schemas.order import OrderItemRequest

log = logging.getLogger(__name__)


def require_recipe(menu_item: MenuItemRecord) -> MenuItemRecord:
    """Menu items without an ingredient mapping cannot be ordered."""
    if not menu_item.ingredients:
        raise ReferenceNotFoundError(f"no inventory found for menu item: {menu_item.id}")
    return menu_item


class InventoryLedger:
    """
    Check-and-reserve over ingredient stock.

    None of the methods commit: they run on the connection of the caller's
    transaction, and the caller decides whether to commit or roll back.
    """

    def __init__(
        self,
        menu_repo: MenuRepository,
        inventory_repo: InventoryRepository,
        low_stock_threshold: Decimal = Decimal(LOW_STOCK_THRESHOLD),
    ):
        self.menu_repo = menu_repo
        self.inventory_repo = inventory_repo
        self.low_stock_threshold = low_stock_threshold

    async def resolve_demand(self, items: Sequence[OrderItemRequest], conn: Any = None) -> Demand:
        """
        Multiplies each menu item's recipe by the ordered quantity and sums the
        result per ingredient. Also prices the items at the current menu price.
        """
        required: Dict[int, Decimal] = {}
        unit_prices: Dict[int, Decimal] = {}
        total = Decimal("0")

        for item in items:
            if not item.product_id:
                raise ReferenceNotFoundError(f"menu item not found: {item.product_id}")
            if item.quantity <= 0:
                raise ValidationError(
                    f"quantity must be positive for menu item {item.product_id}",
                    details={"product_id": item.product_id, "quantity": item.quantity},
                )

            menu_item = require_recipe(await self.menu_repo.get_by_id(item.product_id, conn))

            unit_prices[menu_item.id] = menu_item.price
            total += menu_item.price * item.quantity

            for requirement in menu_item.ingredients:
                needed = requirement.quantity * item.quantity
                required[requirement.ingredient_id] = required.get(requirement.ingredient_id, Decimal("0")) + needed

        return Demand(total_amount=total, unit_prices=unit_prices, required=required)

    async def reserve(self, demand: Demand, conn: Any) -> List[InventoryReservation]:
        """
        Deducts the whole demand or nothing. Every ingredient is checked before
        the first deduction is written.
        """
        stock = await self.inventory_repo.lock_for_update(demand.required.keys(), conn)

        for ingredient_id, needed in demand.required.items():
            ingredient = stock.get(ingredient_id)
            if ingredient is None:
                raise ReferenceNotFoundError(f"ingredient not found: {ingredient_id}")
            if ingredient.quantity < needed:
                log.info(
                    f"Not enough {ingredient.name}: required {needed}, available {ingredient.quantity}"
                )
                raise InsufficientStock(ingredient.id, ingredient.name, needed, ingredient.quantity)

        reservations = []
        for ingredient_id, needed in demand.required.items():
            ingredient = stock[ingredient_id]
            remaining = ingredient.quantity - needed
            await self.inventory_repo.set_quantity(ingredient_id, remaining, conn)

            if remaining <= self.low_stock_threshold:
                log.warning(f"Low stock for ingredient {ingredient.name} ({ingredient_id}): {remaining} {ingredient.unit} left")

            reservations.append(
                InventoryReservation(
                    ingredient_id=ingredient_id,
                    name=ingredient.name,
                    quantity_used=needed,
                    remaining=remaining,
                )
            )
        return reservations

    async def check_and_reserve(self, items: Sequence[OrderItemRequest], conn: Any) -> Reservation:
        demand = await self.resolve_demand(items, conn)
        reservations = await self.reserve(demand, conn)
        return Reservation(
            total_amount=demand.total_amount,
            unit_prices=demand.unit_prices,
            reservations=reservations,
        )

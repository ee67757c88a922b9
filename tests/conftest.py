"""Pytest configuration and fixtures."""

from decimal import Decimal

import pytest

from app.api.dependencies import Services, build_in_memory_services
from app.repositories import InMemoryDatabase
from app.schemas.inventory import InventoryItemRecord
from app.schemas.menu import IngredientRequirement, MenuItemRecord

from helpers import COLD_BREW, COLD_BREW_CONCENTRATE, DOUBLE_ESPRESSO, ESPRESSO, GIFT_CARD, LATTE, MILK, MYSTERY_BLEND


@pytest.fixture
def db() -> InMemoryDatabase:
    """A small catalog: two coffee ingredients plus a few odd menu items."""
    db = InMemoryDatabase()
    db.add_ingredient(InventoryItemRecord(id=ESPRESSO, name="Espresso Shot", quantity=Decimal("10"), unit="shots"))
    db.add_ingredient(InventoryItemRecord(id=MILK, name="Milk", quantity=Decimal("1000"), unit="ml"))
    db.add_ingredient(InventoryItemRecord(
        id=COLD_BREW_CONCENTRATE, name="Cold Brew Concentrate", quantity=Decimal("10"), unit="oz"
    ))

    db.add_menu_item(MenuItemRecord(
        id=LATTE, name="Caffe Latte", price=Decimal("3.50"), categories=["Coffee"], allergens=["Milk"],
        ingredients=[
            IngredientRequirement(ingredient_id=ESPRESSO, quantity=Decimal("1")),
            IngredientRequirement(ingredient_id=MILK, quantity=Decimal("200")),
        ],
    ))
    db.add_menu_item(MenuItemRecord(
        id=DOUBLE_ESPRESSO, name="Double Espresso", price=Decimal("2.50"),
        ingredients=[IngredientRequirement(ingredient_id=ESPRESSO, quantity=Decimal("2"))],
    ))
    db.add_menu_item(MenuItemRecord(
        id=COLD_BREW, name="Cold Brew", price=Decimal("4.25"),
        ingredients=[IngredientRequirement(ingredient_id=COLD_BREW_CONCENTRATE, quantity=Decimal("3"))],
    ))
    # No recipe at all
    db.add_menu_item(MenuItemRecord(id=GIFT_CARD, name="Gift Card", price=Decimal("25.00")))
    # Recipe points at an ingredient that is not stocked
    db.add_menu_item(MenuItemRecord(
        id=MYSTERY_BLEND, name="Mystery Blend", price=Decimal("5.00"),
        ingredients=[IngredientRequirement(ingredient_id=99, quantity=Decimal("1"))],
    ))
    return db


@pytest.fixture
def services(db: InMemoryDatabase) -> Services:
    return build_in_memory_services(db)


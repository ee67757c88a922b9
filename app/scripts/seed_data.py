# scripts/seed_data.py
import asyncio
from decimal import Decimal
from tortoise import Tortoise
from app.core.db import DB_URL, MODELS_MODULES
from app.models.inventory import InventoryItem
from app.models.menu import MenuItem, MenuItemIngredient

INGREDIENTS = [
    # name, quantity, unit, price per unit
    ("Espresso Shot", "500", "shots", "0.50"),
    ("Milk", "5000", "ml", "0.002"),
    ("Flour", "10000", "g", "0.001"),
    ("Chocolate Chips", "2000", "g", "0.01"),
    ("Sugar", "5000", "g", "0.001"),
]

MENU = [
    # name, price, description, categories, allergens, [(ingredient name, quantity per unit)]
    ("Caffe Latte", "3.50", "Espresso with steamed milk", ["Coffee"], ["Milk"],
     [("Espresso Shot", "1"), ("Milk", "200")]),
    ("Double Espresso", "2.50", "Two shots of espresso", ["Coffee"], [],
     [("Espresso Shot", "2")]),
    ("Chocolate Chip Muffin", "2.00", "Baked daily", ["Bakery"], ["Gluten"],
     [("Flour", "100"), ("Chocolate Chips", "20"), ("Sugar", "30")]),
]


async def init():
    await Tortoise.init(db_url=DB_URL, modules={"models": MODELS_MODULES})
    # don't generate schemas here (already created), but safe to call in dev:
    # await Tortoise.generate_schemas()


async def seed():
    ingredients = {}
    for name, quantity, unit, price in INGREDIENTS:
        item, _ = await InventoryItem.get_or_create(
            name=name, defaults={"quantity": Decimal(quantity), "unit": unit, "price": Decimal(price)}
        )
        # If existing, reset quantities (idempotent)
        item.quantity = Decimal(quantity)
        await item.save()
        ingredients[name] = item
    print("Inventory seeded:", {name: item.id for name, item in ingredients.items()})

    for name, price, description, categories, allergens, recipe in MENU:
        menu_item, _ = await MenuItem.get_or_create(
            name=name,
            defaults={
                "price": Decimal(price),
                "description": description,
                "categories": categories,
                "allergens": allergens,
            },
        )
        for position, (ingredient_name, quantity) in enumerate(recipe):
            await MenuItemIngredient.get_or_create(
                menu_item=menu_item,
                inventory=ingredients[ingredient_name],
                defaults={"quantity": Decimal(quantity), "position": position},
            )
        print("Menu item:", name, menu_item.id)


async def main():
    await init()
    await seed()
    await Tortoise.close_connections()

if __name__ == "__main__":
    asyncio.run(main())

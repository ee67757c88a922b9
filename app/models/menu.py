from tortoise import fields, models


class MenuItem(models.Model):
    id = fields.IntField(primary_key=True)
    name = fields.CharField(max_length=255, unique=True)
    description = fields.TextField(default="")
    price = fields.DecimalField(max_digits=12, decimal_places=2)
    # JSON lists rather than native arrays so the schema also runs on SQLite
    categories = fields.JSONField(default=list)
    allergens = fields.JSONField(default=list)
    created_at = fields.DatetimeField(auto_now_add=True)

    class Meta:
        table = "menu_items"


class MenuItemIngredient(models.Model):
    id = fields.IntField(primary_key=True)
    menu_item = fields.ForeignKeyField("models.MenuItem", related_name="ingredients", on_delete=fields.CASCADE)
    inventory = fields.ForeignKeyField("models.InventoryItem", related_name="used_in", on_delete=fields.RESTRICT)
    quantity = fields.DecimalField(max_digits=12, decimal_places=3)
    # Preserves the recipe order of ingredients
    position = fields.IntField(default=0)

    class Meta:
        table = "menu_item_ingredients"
        unique_together = (("menu_item", "inventory"),)

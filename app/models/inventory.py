from tortoise import fields, models


class InventoryItem(models.Model):
    id = fields.IntField(primary_key=True)
    name = fields.CharField(max_length=255, unique=True)
    # Never negative after a committed reservation
    quantity = fields.DecimalField(max_digits=12, decimal_places=3)
    unit = fields.CharField(max_length=32)
    price = fields.DecimalField(max_digits=12, decimal_places=2, default=0)
    updated_at = fields.DatetimeField(auto_now=True)

    class Meta:
        table = "inventory"

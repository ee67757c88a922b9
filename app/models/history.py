from tortoise import fields, models


class OrderChangeRecord(models.Model):
    """
    Append-only audit log of field-level changes applied to an order.
    Rows are written in the same transaction as the order update and are never
    modified afterwards.
    """
    id = fields.IntField(primary_key=True)
    # Plain column, not a foreign key; the service refuses to delete orders that have records
    order_id = fields.IntField()
    field = fields.CharField(max_length=64) # e.g., 'customer_name', 'items'
    event_type = fields.CharField(max_length=128) # e.g., '42_changed'
    old_value = fields.TextField()
    new_value = fields.TextField()
    timestamp = fields.DatetimeField()

    class Meta:
        table = "order_change_history"
        indexes = [
            ("order_id",),
        ]

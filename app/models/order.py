from enum import Enum
from tortoise import fields, models


class OrderStatus(str, Enum):
    PENDING = "pending"      # Created through the single-order path, stock already reserved
    ACCEPTED = "accepted"    # Accepted by batch processing
    COMPLETED = "completed"  # Terminal
    CANCELLED = "cancelled"
    REJECTED = "rejected"    # Batch order that could not be covered by stock


class Order(models.Model):
    id = fields.IntField(primary_key=True)
    customer_name = fields.CharField(max_length=255)
    total_amount = fields.DecimalField(max_digits=14, decimal_places=2, default=0)
    special_instructions = fields.JSONField(default=list)
    status = fields.CharEnumField(OrderStatus, default=OrderStatus.PENDING)
    idempotency_key = fields.CharField(max_length=128, null=True, unique=True)
    created_at = fields.DatetimeField(auto_now_add=True)
    updated_at = fields.DatetimeField(auto_now=True)

    class Meta:
        table = "orders"
        indexes = [
            ("status",),                 # Status-based filtering
            ("created_at",),             # Time-based reports
        ]


class OrderItem(models.Model):
    id = fields.IntField(primary_key=True)
    order = fields.ForeignKeyField("models.Order", related_name="items", on_delete=fields.CASCADE)
    menu_item = fields.ForeignKeyField("models.MenuItem", related_name="order_items", on_delete=fields.RESTRICT)
    quantity = fields.IntField()
    # Menu price captured when the order was processed
    price_at_order = fields.DecimalField(max_digits=12, decimal_places=2)
    position = fields.IntField(default=0)

    class Meta:
        table = "order_items"
        indexes = [
            ("menu_item_id",),          # Ordered-items report
        ]


class OrderStatusHistory(models.Model):
    id = fields.IntField(primary_key=True)
    order = fields.ForeignKeyField("models.Order", related_name="status_history", on_delete=fields.CASCADE)
    status = fields.CharEnumField(OrderStatus)
    changed_at = fields.DatetimeField(auto_now_add=True)

    class Meta:
        table = "order_status_history"

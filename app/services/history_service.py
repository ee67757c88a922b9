import json
import logging
from datetime import datetime, timezone
from typing import Any, List

from app.repositories.base import ChangeHistoryRepository
from app.schemas.order import ChangeRecord, FieldChange, OrderItemRecord, OrderRecord

log = logging.getLogger(__name__)


def _serialize_items(items: List[OrderItemRecord]) -> str:
    return json.dumps([{"product_id": i.product_id, "quantity": i.quantity} for i in items])


def _item_pairs(items: List[OrderItemRecord]):
    return [(i.product_id, i.quantity) for i in items]


class ChangeHistoryRecorder:
    """Append-only audit trail of field-level order changes."""

    def __init__(self, repo: ChangeHistoryRepository):
        self.repo = repo

    def collect_changes(self, existing: OrderRecord, incoming: OrderRecord) -> List[FieldChange]:
        changes = []

        if existing.customer_name != incoming.customer_name:
            changes.append(FieldChange(
                field="customer_name",
                old_value=existing.customer_name,
                new_value=incoming.customer_name,
            ))

        # Items are equal only as the same ordered (product_id, quantity) pairs
        if _item_pairs(existing.items) != _item_pairs(incoming.items):
            changes.append(FieldChange(
                field="items",
                old_value=_serialize_items(existing.items),
                new_value=_serialize_items(incoming.items),
            ))

        if existing.special_instructions != incoming.special_instructions:
            changes.append(FieldChange(
                field="special_instructions",
                old_value=json.dumps(existing.special_instructions),
                new_value=json.dumps(incoming.special_instructions),
            ))

        if existing.status != incoming.status:
            changes.append(FieldChange(
                field="status",
                old_value=existing.status.value,
                new_value=incoming.status.value,
            ))

        return changes

    async def record(self, order_id: int, changes: List[FieldChange], conn: Any) -> List[ChangeRecord]:
        timestamp = datetime.now(timezone.utc)
        records = [
            ChangeRecord(
                order_id=order_id,
                field=change.field,
                event_type=f"{order_id}_changed",
                old_value=change.old_value,
                new_value=change.new_value,
                timestamp=timestamp,
            )
            for change in changes
        ]
        await self.repo.append(records, conn)
        log.info(f"Recorded {len(records)} change(s) for order {order_id}")
        return records

    async def history(self, order_id: int, conn: Any = None) -> List[ChangeRecord]:
        return await self.repo.list_for_order(order_id, conn)

    async def has_history(self, order_id: int, conn: Any = None) -> bool:
        return await self.repo.exists_for_order(order_id, conn)

from datetime import datetime
from decimal import Decimal
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field

from app.models.order import OrderStatus
from app.schemas.inventory import InventoryReservation


class OrderItemRequest(BaseModel):
    """Schema for a single item in the order request."""
    product_id: int = Field(..., gt=0, description="Menu item id.")
    quantity: int = Field(..., gt=0)


class OrderRequest(BaseModel):
    """Schema for the full order placement request body."""
    customer_name: str = Field(..., min_length=1)
    items: List[OrderItemRequest] = Field(..., min_length=1)
    special_instructions: List[str] = Field(default_factory=list)
    idempotency_key: Optional[str] = Field(None, max_length=128, description="Client key; a repeated key is refused.")


class OrderUpdateRequest(BaseModel):
    """Schema for replacing the editable fields of an existing order."""
    customer_name: str = Field(..., min_length=1)
    items: List[OrderItemRequest] = Field(..., min_length=1)
    special_instructions: Optional[List[str]] = None
    status: Optional[OrderStatus] = None


class BatchOrderRequest(BaseModel):
    orders: List[OrderRequest] = Field(..., min_length=1)


class OrderItemRecord(BaseModel):
    product_id: int
    quantity: int
    price_at_order: Decimal


class OrderRecord(BaseModel):
    """A persisted order as returned by the order store."""
    id: int
    customer_name: str
    items: List[OrderItemRecord]
    special_instructions: List[str] = Field(default_factory=list)
    status: OrderStatus
    total_amount: Decimal
    idempotency_key: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class AcceptedOrder(BaseModel):
    status: Literal["accepted"] = "accepted"
    order_id: int
    customer_name: str
    total: Decimal


class RejectedOrder(BaseModel):
    status: Literal["rejected"] = "rejected"
    order_id: Optional[int] = None
    customer_name: str
    reason: str
    details: Dict[str, Any] = Field(default_factory=dict)


ProcessedOrder = Annotated[Union[AcceptedOrder, RejectedOrder], Field(discriminator="status")]


class BatchSummary(BaseModel):
    total_orders: int
    accepted: int
    rejected: int
    total_revenue: Decimal
    processed_orders: List[ProcessedOrder]
    inventory_updates: List[InventoryReservation]


class FieldChange(BaseModel):
    """A difference between the stored and the incoming version of an order field."""
    field: str
    old_value: str
    new_value: str


class ChangeRecord(BaseModel):
    order_id: int
    field: str
    event_type: str
    old_value: str
    new_value: str
    timestamp: datetime


class StatusHistoryRecord(BaseModel):
    order_id: int
    status: OrderStatus
    changed_at: datetime

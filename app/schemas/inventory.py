from decimal import Decimal
from typing import Dict, List

from pydantic import BaseModel, Field


class InventoryItemRecord(BaseModel):
    """Schema for an ingredient's stock record."""
    id: int
    name: str
    quantity: Decimal = Field(..., ge=0)
    unit: str
    price: Decimal = Decimal("0")


class InventoryReservation(BaseModel):
    """Stock consumed from one ingredient and what is left afterwards."""
    ingredient_id: int
    name: str
    quantity_used: Decimal
    remaining: Decimal


class Demand(BaseModel):
    """Aggregate ingredient demand and pricing for one order's items."""
    total_amount: Decimal
    unit_prices: Dict[int, Decimal]
    required: Dict[int, Decimal]


class Reservation(BaseModel):
    total_amount: Decimal
    unit_prices: Dict[int, Decimal]
    reservations: List[InventoryReservation]

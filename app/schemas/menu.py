from decimal import Decimal
from typing import List

from pydantic import BaseModel, Field


class IngredientRequirement(BaseModel):
    """One line of a menu item's recipe: how much of an ingredient a single unit uses."""
    ingredient_id: int
    quantity: Decimal = Field(..., gt=0)


class MenuItemRecord(BaseModel):
    id: int
    name: str
    description: str = ""
    price: Decimal = Field(..., gt=0)
    categories: List[str] = Field(default_factory=list)
    allergens: List[str] = Field(default_factory=list)
    ingredients: List[IngredientRequirement] = Field(default_factory=list)

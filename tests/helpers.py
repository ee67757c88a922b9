"""Catalog ids and request builders shared by the test modules."""

from app.schemas.order import OrderItemRequest, OrderRequest

# Ingredients
ESPRESSO, MILK, COLD_BREW_CONCENTRATE = 1, 2, 3
# Menu items
LATTE, DOUBLE_ESPRESSO, COLD_BREW, GIFT_CARD, MYSTERY_BLEND = 1, 2, 3, 4, 5


def make_order(customer_name: str, *items, **kwargs) -> OrderRequest:
    """Builds an order request from (product_id, quantity) pairs."""
    return OrderRequest(
        customer_name=customer_name,
        items=[OrderItemRequest(product_id=product_id, quantity=quantity) for product_id, quantity in items],
        **kwargs,
    )

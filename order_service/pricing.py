"""
pricing.py — Price snapshots and order totals.

Prices always come from the validated catalog, never from the caller.
All arithmetic is done on Decimal values.
"""

from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, List, NamedTuple, Sequence

from .errors import PricingError
from .models import OrderItemRequest, OrderLine, ValidatedProduct


# Money is stored with two decimal places.
CENTS = Decimal("0.01")


class PricedOrder(NamedTuple):
    lines: List[OrderLine]
    total_amount: Decimal
    total_items: int


def to_cents(amount: Decimal) -> Decimal:
    return amount.quantize(CENTS, rounding=ROUND_HALF_UP)


def find_product(catalog: Iterable[ValidatedProduct], product_id: str):
    """Returns the first catalog entry with the given id, or None."""
    return next((product for product in catalog if product.id == product_id), None)


def price_order(items: Sequence[OrderItemRequest], catalog: Sequence[ValidatedProduct]) -> PricedOrder:
    """
    Builds the order lines and totals for the requested items.

    Lines follow the order of `items`, not the order of `catalog`. Catalog
    prices are rounded half-up to cents before they are snapshotted, so the
    totals match what the database stores.

    Raises:
        PricingError: If an item's product id is missing from `catalog`.
    """
    lines = []
    total_amount = Decimal("0")
    total_items = 0

    for item in items:
        product = find_product(catalog, item.product_id)
        if product is None:
            raise PricingError(f"Product {item.product_id} was not returned by the product service")

        price = to_cents(product.price)
        lines.append(OrderLine(
            product_id=item.product_id,
            quantity=item.quantity,
            price=price,
            product_name=product.name,
        ))
        total_amount += price * item.quantity
        total_items += item.quantity

    return PricedOrder(lines=lines, total_amount=total_amount, total_items=total_items)

"""
Public availability format.

Turns assembled batch entries into the JSON shape every storefront page
and the availability API share, so listing, product and cart pages show
the same stock and delivery wording.
"""

from typing import Dict, List, Optional

from storefront.schemas import (
    AggregatedBatch,
    AggregatedProductEntry,
    ON_ORDER_TEXT,
    ProductAvailabilityResponse,
    WarehouseStock,
)

# Above this many units the exact count is not shown
PLENTY_THRESHOLD = 10


def parse_product_ids(csv: str) -> List[str]:
    """Split a comma-separated id list; filtering happens in the service."""
    return [token.strip() for token in csv.split(",") if token.strip()]


def availability_text(quantity: int) -> str:
    if quantity > PLENTY_THRESHOLD:
        return "in stock"
    if quantity > 0:
        return f"only {quantity} left"
    return ON_ORDER_TEXT


def _money(value) -> Optional[float]:
    return float(value) if value is not None else None


def to_response(entry: AggregatedProductEntry) -> ProductAvailabilityResponse:
    """Public view of one aggregated entry."""
    quantity = entry.stock.total_available
    delivery_date = entry.delivery.date
    return ProductAvailabilityResponse(
        quantity=quantity,
        in_stock=entry.available,
        delivery_date=delivery_date.strftime("%d.%m.%Y") if delivery_date else None,
        delivery_text=entry.delivery.display_text,
        availability_text=availability_text(quantity),
        price=_money(entry.price.final) if entry.price else None,
        base_price=_money(entry.price.base) if entry.price else None,
        has_special_price=entry.price.has_override if entry.price else False,
        warehouses=[
            WarehouseStock(id=a.warehouse_id, name=a.warehouse_name, quantity=a.available_quantity)
            for a in entry.stock.allocations
        ],
    )


def batch_to_response(batch: AggregatedBatch) -> Dict[str, dict]:
    """Response body keyed by product id string."""
    return {str(product_id): to_response(entry).model_dump() for product_id, entry in batch.items()}

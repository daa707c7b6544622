"""
Pydantic v2 schemas for the dynamic product data engine.

Domain records (PriceRecord, StockRecord, DeliveryRecord,
AggregatedProductEntry) are what the resolvers and the aggregation cache
exchange. API schemas describe the HTTP boundary; request schemas use
extra="forbid" to reject unknown fields.
"""

import datetime as dt
from decimal import Decimal
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, model_validator


INQUIRE_TEXT = "inquire"
ON_ORDER_TEXT = "on order"


#
# Domain records
#

class PriceRecord(BaseModel):
    """Resolved price of one product for one buyer (or for anonymous visitors)."""
    model_config = ConfigDict(frozen=True)

    base: Decimal = Field(..., description="Currently valid catalog base price")
    final: Decimal = Field(..., description="Price the buyer pays")
    has_override: bool = Field(False, description="True when an organization price replaced the base price")

    @model_validator(mode="after")
    def _final_matches_base_without_override(self) -> "PriceRecord":
        if not self.has_override and self.final != self.base:
            raise ValueError("final must equal base when there is no override")
        return self


class WarehouseAllocation(BaseModel):
    """One warehouse's contribution to a product's available stock in a city."""
    model_config = ConfigDict(frozen=True)

    warehouse_id: int
    warehouse_name: str
    available_quantity: int = Field(..., ge=1, description="on hand minus reserved")


class StockRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    total_available: int = Field(0, ge=0)
    allocations: List[WarehouseAllocation] = Field(default_factory=list)

    @model_validator(mode="after")
    def _total_matches_allocations(self) -> "StockRecord":
        if self.total_available != sum(a.available_quantity for a in self.allocations):
            raise ValueError("total_available must equal the sum of allocations")
        return self

    @classmethod
    def from_allocations(cls, allocations: List[WarehouseAllocation]) -> "StockRecord":
        return cls(
            total_available=sum(a.available_quantity for a in allocations),
            allocations=list(allocations),
        )

    @classmethod
    def empty(cls) -> "StockRecord":
        return cls(total_available=0, allocations=[])

    @property
    def warehouse_ids(self) -> List[int]:
        return [a.warehouse_id for a in self.allocations]


class DeliveryRecord(BaseModel):
    """Predicted delivery date; date is None when no schedule matched."""
    model_config = ConfigDict(frozen=True)

    date: Optional[dt.date] = None
    display_text: str = INQUIRE_TEXT

    @classmethod
    def inquire(cls) -> "DeliveryRecord":
        return cls(date=None, display_text=INQUIRE_TEXT)


class AggregatedProductEntry(BaseModel):
    """Everything the storefront shows for one product: price, stock and delivery."""
    model_config = ConfigDict(frozen=True)

    price: Optional[PriceRecord] = None
    stock: StockRecord = Field(default_factory=StockRecord.empty)
    delivery: DeliveryRecord = Field(default_factory=DeliveryRecord.inquire)
    available: bool = False

    @model_validator(mode="after")
    def _available_follows_stock(self) -> "AggregatedProductEntry":
        if self.available != (self.stock.total_available > 0):
            raise ValueError("available must be true exactly when stock is positive")
        return self

    @classmethod
    def assemble(
        cls,
        price: Optional[PriceRecord],
        stock: Optional[StockRecord],
        delivery: Optional[DeliveryRecord],
    ) -> "AggregatedProductEntry":
        """Join resolver outputs for one product, defaulting whatever is missing."""
        if stock is None:
            stock = StockRecord.empty()
        return cls(
            price=price,
            stock=stock,
            delivery=delivery or DeliveryRecord.inquire(),
            available=stock.total_available > 0,
        )


# Cached value type: product id -> entry
AggregatedBatch = Dict[int, AggregatedProductEntry]
batch_adapter = TypeAdapter(Dict[int, AggregatedProductEntry])


#
# API schemas
#

class AvailabilityRequest(BaseModel):
    """
    Batch availability lookup.

    product_ids is a comma-separated list; tokens that are not positive
    integers are dropped before the batch is processed.
    """
    model_config = ConfigDict(extra="forbid")

    product_ids: str = Field(..., min_length=1, max_length=10000,
                             description="Comma-separated product ids, e.g. '101,102,103'")
    city_id: int = Field(..., ge=1, le=10000, description="City the buyer is shopping for")
    buyer_id: Optional[int] = Field(None, ge=1,
                                    description="Authenticated buyer; omitted for anonymous visitors")


class WarehouseStock(BaseModel):
    id: int
    name: str
    quantity: int


class ProductAvailabilityResponse(BaseModel):
    """One product in the availability response, keyed by product id string."""
    quantity: int
    in_stock: bool
    delivery_date: Optional[str] = Field(None, description="DD.MM.YYYY or null")
    delivery_text: str
    availability_text: str
    price: Optional[float] = None
    base_price: Optional[float] = None
    has_special_price: bool = False
    warehouses: List[WarehouseStock] = Field(default_factory=list)


class ErrorResponse(BaseModel):
    success: bool = False
    message: str

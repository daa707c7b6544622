"""
SQLAlchemy database models.
These map the read-only tables the dynamic data engine queries.

The catalog database is authoritative for:
- Prices (base prices and organization-specific client prices)
- Stock balances per warehouse
- City -> warehouse routing
- Delivery schedules per city
"""

from sqlalchemy import (
    Boolean, Column, Date, ForeignKey, Index, Integer, JSON, Numeric, SmallInteger, String, Time,
)
from storefront.database import Base


# Delivery schedule types; only courier schedules feed delivery estimates
DELIVERY_TYPE_COURIER = 1
DELIVERY_TYPE_PICKUP = 2

DELIVERY_MODE_WEEKLY = "weekly"
DELIVERY_MODE_SPECIFIC_DATES = "specific_dates"


class City(Base):
    """City with its dispatch cutoff, out-of-stock lead time and timezone."""
    __tablename__ = "cities"

    city_id = Column(Integer, primary_key=True)
    name = Column(String(255), nullable=False)
    cutoff_time = Column(Time, nullable=True)            # NULL -> config default (16:00)
    delivery_base_days = Column(Integer, nullable=True)  # NULL -> config default (3)
    timezone = Column(String(64), nullable=True)         # NULL -> config default


class Warehouse(Base):
    __tablename__ = "warehouses"

    warehouse_id = Column(Integer, primary_key=True)
    name = Column(String(255), nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)


class CityWarehouseMapping(Base):
    """Which warehouses can ship to which city."""
    __tablename__ = "city_warehouse_mapping"

    city_id = Column(Integer, ForeignKey("cities.city_id"), primary_key=True)
    warehouse_id = Column(Integer, ForeignKey("warehouses.warehouse_id"), primary_key=True)


class StockBalance(Base):
    """On-hand and reserved quantity of one product in one warehouse."""
    __tablename__ = "stock_balances"
    __table_args__ = (
        Index("ix_stock_balances_product_warehouse", "product_id", "warehouse_id"),
    )

    product_id = Column(Integer, primary_key=True)
    warehouse_id = Column(Integer, ForeignKey("warehouses.warehouse_id"), primary_key=True)
    quantity = Column(Integer, nullable=False, default=0)
    reserved = Column(Integer, nullable=False, default=0)


class Price(Base):
    """Catalog price row. Only rows with is_base=True are list prices."""
    __tablename__ = "prices"
    __table_args__ = (
        Index("ix_prices_product_base", "product_id", "is_base"),
    )

    price_id = Column(Integer, primary_key=True, autoincrement=True)
    product_id = Column(Integer, nullable=False)
    price = Column(Numeric(12, 2), nullable=False)
    is_base = Column(Boolean, nullable=False, default=True)
    valid_from = Column(Date, nullable=False)
    valid_to = Column(Date, nullable=True)               # NULL = open-ended


class ClientOrganization(Base):
    """Membership of a buyer account in a client organization."""
    __tablename__ = "clients_organizations"

    user_id = Column(Integer, primary_key=True)
    org_id = Column(Integer, primary_key=True)


class ClientPrice(Base):
    """Negotiated price of a product for one client organization."""
    __tablename__ = "client_prices"
    __table_args__ = (
        Index("ix_client_prices_org_product", "org_id", "product_id"),
    )

    client_price_id = Column(Integer, primary_key=True, autoincrement=True)
    org_id = Column(Integer, nullable=False)
    product_id = Column(Integer, nullable=False)
    price = Column(Numeric(12, 2), nullable=False)
    valid_from = Column(Date, nullable=False)
    valid_to = Column(Date, nullable=True)


class DeliverySchedule(Base):
    """
    Delivery calendar of one warehouse into one city.

    delivery_mode selects which column is meaningful:
    - "weekly":          delivery_days holds ISO weekday numbers, e.g. [1, 3, 5]
    - "specific_dates":  specific_dates holds ISO dates, e.g. ["2026-10-21"]
    """
    __tablename__ = "delivery_schedules"

    schedule_id = Column(Integer, primary_key=True, autoincrement=True)
    city_id = Column(Integer, ForeignKey("cities.city_id"), nullable=False, index=True)
    warehouse_id = Column(Integer, ForeignKey("warehouses.warehouse_id"), nullable=True)
    delivery_type = Column(SmallInteger, nullable=False, default=DELIVERY_TYPE_COURIER)
    delivery_mode = Column(String(32), nullable=False, default=DELIVERY_MODE_WEEKLY)
    delivery_days = Column(JSON, nullable=True)
    specific_dates = Column(JSON, nullable=True)
    is_express = Column(Boolean, nullable=False, default=False)

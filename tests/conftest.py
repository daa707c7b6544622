"""Pytest configuration for storefront tests.

Every test gets its own SQLite file database under tmp_path, created through
the ORM models and seeded with a small catalog:

    city 1  Moscow   cutoff 16:00, lead 3 days, warehouses Central(10), North(11), Closed(12, inactive)
    city 2  Tundra   no warehouses, no schedules
    city 3  Broken   timezone that does not exist

The reference "now" is Tuesday 2026-10-20 17:00 Moscow time, one hour past
the cutoff.
"""

import os
import sys
from datetime import date, datetime, time
from decimal import Decimal

import pytest
from sqlalchemy.orm import sessionmaker

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from storefront.database import init_db, make_engine
from storefront.models import (
    DELIVERY_MODE_SPECIFIC_DATES,
    DELIVERY_MODE_WEEKLY,
    DELIVERY_TYPE_PICKUP,
    City,
    CityWarehouseMapping,
    ClientOrganization,
    ClientPrice,
    DeliverySchedule,
    Price,
    StockBalance,
    Warehouse,
)

TUESDAY = date(2026, 10, 20)


def fixed_clock(hour: int, minute: int = 0, day: date = TUESDAY):
    """Clock returning a fixed city-local time."""
    def clock(tz):
        return datetime(day.year, day.month, day.day, hour, minute, tzinfo=tz)
    return clock


@pytest.fixture
def engine(tmp_path):
    eng = make_engine(f"sqlite:///{tmp_path / 'storefront.db'}")
    init_db(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def catalog(session_factory):
    """Seed cities, warehouses, stock, prices and schedules."""
    with session_factory() as db:
        db.add_all([
            City(city_id=1, name="Moscow", cutoff_time=time(16, 0), delivery_base_days=3,
                 timezone="Europe/Moscow"),
            City(city_id=2, name="Tundra", cutoff_time=time(16, 0), delivery_base_days=3,
                 timezone="Europe/Moscow"),
            City(city_id=3, name="Broken", cutoff_time=time(16, 0), delivery_base_days=3,
                 timezone="Mars/Olympus_Mons"),
            Warehouse(warehouse_id=10, name="Central", is_active=True),
            Warehouse(warehouse_id=11, name="North", is_active=True),
            Warehouse(warehouse_id=12, name="Closed", is_active=False),
        ])
        db.flush()
        db.add_all([
            CityWarehouseMapping(city_id=1, warehouse_id=10),
            CityWarehouseMapping(city_id=1, warehouse_id=11),
            CityWarehouseMapping(city_id=1, warehouse_id=12),
            CityWarehouseMapping(city_id=3, warehouse_id=10),

            # 101: 15 in Central + 3 in North
            StockBalance(product_id=101, warehouse_id=10, quantity=20, reserved=5),
            StockBalance(product_id=101, warehouse_id=11, quantity=3, reserved=0),
            # 102: fully reserved in Central, plenty only in the inactive warehouse
            StockBalance(product_id=102, warehouse_id=10, quantity=5, reserved=5),
            StockBalance(product_id=102, warehouse_id=12, quantity=50, reserved=0),
            # 103: 3 in North only
            StockBalance(product_id=103, warehouse_id=11, quantity=4, reserved=1),

            # 101: newer base price supersedes the older one
            Price(product_id=101, price=Decimal("90.00"), is_base=True, valid_from=date(2025, 1, 1)),
            Price(product_id=101, price=Decimal("100.00"), is_base=True, valid_from=date(2026, 1, 1)),
            Price(product_id=101, price=Decimal("70.00"), is_base=False, valid_from=date(2026, 1, 1)),
            Price(product_id=102, price=Decimal("250.00"), is_base=True, valid_from=date(2026, 1, 1)),
            # 103: expired; 104: not valid yet
            Price(product_id=103, price=Decimal("40.00"), is_base=True, valid_from=date(2025, 1, 1),
                  valid_to=date(2026, 1, 1)),
            Price(product_id=104, price=Decimal("60.00"), is_base=True, valid_from=date(2099, 1, 1)),

            ClientOrganization(user_id=7, org_id=70),
            ClientOrganization(user_id=8, org_id=80),
            ClientOrganization(user_id=8, org_id=81),
            ClientPrice(org_id=70, product_id=101, price=Decimal("80.00"), valid_from=date(2026, 1, 1)),
            ClientPrice(org_id=70, product_id=102, price=Decimal("200.00"), valid_from=date(2026, 1, 1),
                        valid_to=date(2026, 6, 1)),
            ClientPrice(org_id=70, product_id=103, price=Decimal("35.00"), valid_from=date(2026, 1, 1)),
            ClientPrice(org_id=80, product_id=101, price=Decimal("95.00"), valid_from=date(2026, 3, 1)),
            ClientPrice(org_id=81, product_id=101, price=Decimal("85.00"), valid_from=date(2026, 2, 1)),

            # City 1 courier calendars
            DeliverySchedule(city_id=1, warehouse_id=10, delivery_mode=DELIVERY_MODE_WEEKLY,
                             delivery_days=[1, 3, 5]),
            DeliverySchedule(city_id=1, warehouse_id=11, delivery_mode=DELIVERY_MODE_SPECIFIC_DATES,
                             specific_dates=["2026-11-02", "2026-10-30", "2026-10-16"]),
            DeliverySchedule(city_id=1, warehouse_id=10, delivery_mode=DELIVERY_MODE_WEEKLY,
                             delivery_days="not json"),
            # Pickup points never feed courier delivery estimates
            DeliverySchedule(city_id=1, warehouse_id=10, delivery_type=DELIVERY_TYPE_PICKUP,
                             delivery_mode=DELIVERY_MODE_WEEKLY, delivery_days=[1, 2, 3, 4, 5, 6, 7]),
            DeliverySchedule(city_id=3, warehouse_id=10, delivery_mode=DELIVERY_MODE_WEEKLY,
                             delivery_days=[1, 2, 3, 4, 5]),
        ])
        db.commit()
    return session_factory

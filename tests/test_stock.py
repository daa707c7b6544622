"""
Tests for per-city stock aggregation.
"""

from unittest.mock import MagicMock

import pytest
from pydantic import ValidationError
from sqlalchemy.exc import OperationalError

from storefront.errors import DataSourceError
from storefront.schemas import StockRecord, WarehouseAllocation
from storefront.stock import StockAggregator


class TestStockRecord:
    def test_total_is_sum_of_allocations(self):
        record = StockRecord.from_allocations([
            WarehouseAllocation(warehouse_id=1, warehouse_name="A", available_quantity=2),
            WarehouseAllocation(warehouse_id=2, warehouse_name="B", available_quantity=5),
        ])
        assert record.total_available == 7
        assert record.warehouse_ids == [1, 2]

    def test_mismatched_total_rejected(self):
        with pytest.raises(ValidationError):
            StockRecord(total_available=3, allocations=[])

    def test_allocation_must_be_positive(self):
        with pytest.raises(ValidationError):
            WarehouseAllocation(warehouse_id=1, warehouse_name="A", available_quantity=0)


class TestStockAggregator:
    def test_sums_available_across_city_warehouses(self, catalog):
        stock = StockAggregator(catalog).resolve_stock([101], 1)
        assert stock[101].total_available == 18
        assert [(a.warehouse_id, a.warehouse_name, a.available_quantity) for a in stock[101].allocations] == [
            (10, "Central", 15),
            (11, "North", 3),
        ]

    def test_reserved_and_inactive_stock_excluded(self, catalog):
        # 102 is fully reserved in Central; its 50 units sit in an inactive warehouse
        stock = StockAggregator(catalog).resolve_stock([101, 102, 103], 1)
        assert set(stock) == {101, 103}
        assert stock[103].total_available == 3

    def test_only_warehouses_mapped_to_city(self, catalog):
        stock = StockAggregator(catalog).resolve_stock([101, 103], 3)
        assert set(stock) == {101}
        assert stock[101].total_available == 15

    def test_city_without_warehouses(self, catalog):
        assert StockAggregator(catalog).resolve_stock([101, 102], 2) == {}

    def test_unknown_products(self, catalog):
        assert StockAggregator(catalog).resolve_stock([999], 1) == {}

    def test_every_reported_product_has_positive_stock(self, catalog):
        for record in StockAggregator(catalog).resolve_stock([101, 102, 103, 104], 1).values():
            assert record.total_available > 0
            assert record.total_available == sum(a.available_quantity for a in record.allocations)

    def test_query_failure_raises_data_source_error(self):
        session_factory = MagicMock()
        session = session_factory.return_value.__enter__.return_value
        session.execute.side_effect = OperationalError("SELECT", {}, Exception("connection refused"))
        with pytest.raises(DataSourceError) as exc_info:
            StockAggregator(session_factory).resolve_stock([101], 1)
        assert exc_info.value.source == "stock_balances"

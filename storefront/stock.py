"""
Stock aggregation: sum available quantity (on hand minus reserved) per
product across the active warehouses that ship to a city.
"""

from typing import Dict, Iterable, List

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from storefront.errors import DataSourceError
from storefront.logger import get_logger
from storefront.models import CityWarehouseMapping, StockBalance, Warehouse
from storefront.schemas import StockRecord, WarehouseAllocation

logger = get_logger("stock")


class StockAggregator:
    """Resolves per-city stock for a batch of products."""

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    def resolve_stock(self, product_ids: Iterable[int], city_id: int) -> Dict[int, StockRecord]:
        """
        Resolve available stock for a batch of products in one city.

        Products with nothing available in any of the city's warehouses are
        omitted; callers treat a missing product as zero stock.
        """
        ids = list(product_ids)
        if not ids:
            return {}

        try:
            with self._session_factory() as session:
                warehouses = self._city_warehouses(session, city_id)
                if not warehouses:
                    logger.info("no active warehouses mapped: city_id=%s", city_id)
                    return {}
                allocations = self._allocations(session, ids, warehouses)
        except SQLAlchemyError as exc:
            logger.error("stock lookup failed: city_id=%s products=%s error=%s", city_id, len(ids), exc)
            raise DataSourceError("stock lookup failed", source="stock_balances") from exc

        stock = {
            product_id: StockRecord.from_allocations(rows)
            for product_id, rows in allocations.items()
        }
        logger.debug(
            "stock resolved: city_id=%s warehouses=%s requested=%s in_stock=%s",
            city_id, len(warehouses), len(ids), len(stock),
        )
        return stock

    @staticmethod
    def _city_warehouses(session: Session, city_id: int) -> Dict[int, str]:
        """Active warehouses mapped to the city, as warehouse id -> name."""
        stmt = (
            select(Warehouse.warehouse_id, Warehouse.name)
            .join(CityWarehouseMapping, CityWarehouseMapping.warehouse_id == Warehouse.warehouse_id)
            .where(CityWarehouseMapping.city_id == city_id, Warehouse.is_active.is_(True))
            .distinct()
        )
        return {warehouse_id: name for warehouse_id, name in session.execute(stmt)}

    @staticmethod
    def _allocations(
        session: Session, ids: List[int], warehouses: Dict[int, str]
    ) -> Dict[int, List[WarehouseAllocation]]:
        stmt = (
            select(StockBalance.product_id, StockBalance.warehouse_id,
                   StockBalance.quantity, StockBalance.reserved)
            .where(
                StockBalance.product_id.in_(ids),
                StockBalance.warehouse_id.in_(list(warehouses)),
                StockBalance.quantity > StockBalance.reserved,
            )
            .order_by(StockBalance.product_id, StockBalance.warehouse_id)
        )
        allocations: Dict[int, List[WarehouseAllocation]] = {}
        for product_id, warehouse_id, quantity, reserved in session.execute(stmt):
            allocations.setdefault(product_id, []).append(
                WarehouseAllocation(
                    warehouse_id=warehouse_id,
                    warehouse_name=warehouses[warehouse_id],
                    available_quantity=quantity - (reserved or 0),
                )
            )
        return allocations

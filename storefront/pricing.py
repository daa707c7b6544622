"""
Price resolution: catalog base price, replaced by a client-organization
price when the buyer belongs to an organization with a valid override.

Data access (two or three batch queries) is kept apart from the
precedence rule in select_price() so the rule can be tested on its own.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Callable, Dict, Iterable, List, Optional
from zoneinfo import ZoneInfo

from sqlalchemy import or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from storefront.config import get_config
from storefront.errors import DataSourceError
from storefront.logger import get_logger
from storefront.models import ClientOrganization, ClientPrice, Price
from storefront.schemas import PriceRecord

logger = get_logger("pricing")


def select_price(base: Decimal, override: Optional[Decimal]) -> PriceRecord:
    """Override wins when present; otherwise the buyer pays the base price."""
    if override is None:
        return PriceRecord(base=base, final=base, has_override=False)
    return PriceRecord(base=base, final=override, has_override=True)


def _to_decimal(value) -> Decimal:
    return value if isinstance(value, Decimal) else Decimal(str(value))


class PriceResolver:
    """Resolves base and buyer-specific prices for a batch of products."""

    def __init__(
        self,
        session_factory: sessionmaker,
        today: Optional[Callable[[], date]] = None,
        timezone: Optional[str] = None,
    ):
        self._session_factory = session_factory
        self._timezone = timezone
        self._today = today or self._local_today

    def _local_today(self) -> date:
        """Current date in the configured timezone (global config when none was given)."""
        return datetime.now(ZoneInfo(self._timezone or get_config().default_timezone)).date()

    def resolve_prices(
        self,
        product_ids: Iterable[int],
        buyer_id: Optional[int] = None,
        today: Optional[date] = None,
    ) -> Dict[int, PriceRecord]:
        """
        Resolve prices for a batch of products.

        Args:
            product_ids: Normalized product ids
            buyer_id: Authenticated buyer, or None for anonymous visitors
            today: Reference date for validity windows (defaults to today)

        Returns:
            Dict of product id -> PriceRecord. Products without a valid base
            price are omitted.
        """
        ids = list(product_ids)
        if not ids:
            return {}
        today = today or self._today()

        try:
            with self._session_factory() as session:
                base_prices = self._load_base_prices(session, ids, today)
                overrides: Dict[int, Decimal] = {}
                if buyer_id and base_prices:
                    overrides = self._load_overrides(session, list(base_prices), buyer_id, today)
        except SQLAlchemyError as exc:
            logger.error("price lookup failed: products=%s buyer_id=%s error=%s", len(ids), buyer_id, exc)
            raise DataSourceError("price lookup failed", source="prices") from exc

        logger.debug(
            "prices resolved: requested=%s priced=%s overrides=%s buyer_id=%s",
            len(ids), len(base_prices), len(overrides), buyer_id,
        )
        return {
            product_id: select_price(base, overrides.get(product_id))
            for product_id, base in base_prices.items()
        }

    @staticmethod
    def _load_base_prices(session: Session, ids: List[int], today: date) -> Dict[int, Decimal]:
        stmt = (
            select(Price.product_id, Price.price)
            .where(
                Price.product_id.in_(ids),
                Price.is_base.is_(True),
                Price.valid_from <= today,
                or_(Price.valid_to.is_(None), Price.valid_to >= today),
            )
            # Latest valid_from first; the first row per product wins
            .order_by(Price.product_id, Price.valid_from.desc(), Price.price_id.desc())
        )
        prices: Dict[int, Decimal] = {}
        for product_id, price in session.execute(stmt):
            prices.setdefault(product_id, _to_decimal(price))
        return prices

    @staticmethod
    def _load_overrides(session: Session, ids: List[int], buyer_id: int, today: date) -> Dict[int, Decimal]:
        buyer_orgs = (
            select(ClientOrganization.org_id)
            .where(ClientOrganization.user_id == buyer_id)
        )
        stmt = (
            select(ClientPrice.product_id, ClientPrice.price)
            .where(
                ClientPrice.product_id.in_(ids),
                ClientPrice.org_id.in_(buyer_orgs),
                ClientPrice.valid_from <= today,
                or_(ClientPrice.valid_to.is_(None), ClientPrice.valid_to >= today),
            )
            # Most recent override wins; across organizations the cheaper one breaks ties
            .order_by(ClientPrice.product_id, ClientPrice.valid_from.desc(), ClientPrice.price)
        )
        overrides: Dict[int, Decimal] = {}
        for product_id, price in session.execute(stmt):
            overrides.setdefault(product_id, _to_decimal(price))
        return overrides

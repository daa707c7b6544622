"""
Delivery date prediction.

For each product the scheduler picks a working start date (today in the
city's timezone, pushed to tomorrow after the dispatch cutoff and further
by the city's lead time when the product is on order), then takes the
earliest day any applicable delivery schedule serves on or after it.

Timeline example (cutoff 16:00, Mon/Wed/Fri schedule):

    Tue 17:00  -> past cutoff, start = Wed -> delivery Wed ("tomorrow")
    Tue 10:00  -> before cutoff, start = Tue -> delivery Wed ("tomorrow")
"""

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, tzinfo
from typing import Callable, Dict, Iterable, List, Mapping, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from storefront.config import StorefrontConfig, get_config
from storefront.errors import DataSourceError, ScheduleParseError
from storefront.logger import get_logger
from storefront.models import DELIVERY_TYPE_COURIER, City, DeliverySchedule
from storefront.schedules import Schedule, earliest_delivery, parse_schedule
from storefront.schemas import ON_ORDER_TEXT, DeliveryRecord, StockRecord

logger = get_logger("delivery")

WEEKDAY_NAMES = {
    1: "Monday",
    2: "Tuesday",
    3: "Wednesday",
    4: "Thursday",
    5: "Friday",
    6: "Saturday",
    7: "Sunday",
}

Clock = Callable[[tzinfo], datetime]


def _system_clock(tz: tzinfo) -> datetime:
    return datetime.now(tz)


def working_start_date(now: datetime, cutoff: time, lead_days: int, on_order: bool) -> date:
    """First day a shipment could arrive, before looking at any schedule."""
    start = now.date()
    if now.time().replace(tzinfo=None) > cutoff:
        start += timedelta(days=1)
    if on_order:
        start += timedelta(days=lead_days)
    return start


def format_delivery_text(delivery_date: date, today: date) -> str:
    """Human-readable delivery day relative to today."""
    days = (delivery_date - today).days
    if days <= 0:
        return "today"
    if days == 1:
        return "tomorrow"
    if days <= 6:
        return WEEKDAY_NAMES[delivery_date.isoweekday()]
    return delivery_date.strftime("%d.%m")


@dataclass(frozen=True)
class CityDeliveryProfile:
    cutoff: time
    lead_days: int
    timezone: tzinfo


class DeliveryScheduler:
    """Predicts delivery dates for a batch of products in one city."""

    def __init__(
        self,
        session_factory: sessionmaker,
        clock: Optional[Clock] = None,
        config: Optional[StorefrontConfig] = None,
    ):
        self._session_factory = session_factory
        self._clock = clock or _system_clock
        self._config = config

    @property
    def config(self) -> StorefrontConfig:
        return self._config or get_config()

    def resolve_delivery(
        self,
        product_ids: Iterable[int],
        city_id: int,
        stock_by_product: Mapping[int, StockRecord],
    ) -> Dict[int, DeliveryRecord]:
        """
        Resolve delivery records for a batch of products.

        Args:
            product_ids: Normalized product ids
            city_id: Destination city
            stock_by_product: Output of the stock aggregator for the same batch

        Returns:
            Dict of product id -> DeliveryRecord; empty when the city is unknown.
        """
        ids = list(product_ids)
        if not ids:
            return {}

        try:
            with self._session_factory() as session:
                city = session.get(City, city_id)
                if city is None:
                    logger.warning("unknown city, delivery not resolved: city_id=%s", city_id)
                    return {}
                rows = session.execute(
                    select(DeliverySchedule)
                    .where(
                        DeliverySchedule.city_id == city_id,
                        DeliverySchedule.delivery_type == DELIVERY_TYPE_COURIER,
                    )
                    .order_by(DeliverySchedule.is_express.desc(), DeliverySchedule.schedule_id)
                ).scalars().all()
                profile_source = (city.cutoff_time, city.delivery_base_days, city.timezone)
        except SQLAlchemyError as exc:
            logger.error("schedule lookup failed: city_id=%s error=%s", city_id, exc)
            raise DataSourceError("delivery schedule lookup failed", source="delivery_schedules") from exc

        try:
            profile = self._profile(*profile_source)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            logger.warning("city delivery settings unusable: city_id=%s error=%s", city_id, exc)
            return {product_id: DeliveryRecord.inquire() for product_id in ids}

        schedules = self._parse_schedules(rows, city_id)
        now = self._clock(profile.timezone)
        if now.tzinfo is not None:
            now = now.astimezone(profile.timezone)

        records = {
            product_id: self._record_for(stock_by_product.get(product_id), schedules, profile, now)
            for product_id in ids
        }
        logger.debug(
            "delivery resolved: city_id=%s schedules=%s dated=%s",
            city_id, len(schedules), sum(1 for r in records.values() if r.date is not None),
        )
        return records

    def _profile(self, cutoff: Optional[time], lead_days: Optional[int], tz_name: Optional[str]) -> CityDeliveryProfile:
        config = self.config
        return CityDeliveryProfile(
            cutoff=cutoff if cutoff is not None else time.fromisoformat(config.default_cutoff),
            lead_days=lead_days if lead_days is not None else config.default_lead_days,
            timezone=ZoneInfo(tz_name or config.default_timezone),
        )

    @staticmethod
    def _parse_schedules(rows: Iterable[DeliverySchedule], city_id: int) -> List[Schedule]:
        schedules = []
        for row in rows:
            try:
                schedules.append(parse_schedule(row))
            except ScheduleParseError as exc:
                logger.warning(
                    "skipping malformed schedule: city_id=%s schedule_id=%s error=%s",
                    city_id, row.schedule_id, exc,
                )
        return schedules

    @staticmethod
    def _record_for(
        stock: Optional[StockRecord],
        schedules: List[Schedule],
        profile: CityDeliveryProfile,
        now: datetime,
    ) -> DeliveryRecord:
        in_stock = stock is not None and stock.total_available > 0
        candidates = stock.warehouse_ids if in_stock else []
        start = working_start_date(now, profile.cutoff, profile.lead_days, on_order=not in_stock)

        found = earliest_delivery(schedules, candidates, start)
        if found is not None:
            return DeliveryRecord(date=found, display_text=format_delivery_text(found, now.date()))
        if not in_stock:
            return DeliveryRecord(date=None, display_text=ON_ORDER_TEXT)
        return DeliveryRecord.inquire()

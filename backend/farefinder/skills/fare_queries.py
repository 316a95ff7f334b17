import asyncio
import logging
from typing import List

from farefinder.config import settings
from farefinder.core import policies
from farefinder.core.cache import QuerySnapshot
from farefinder.core.errors import ValidationError
from farefinder.core.fare_calendar import merge_day_fares, month_windows, months_between, summarize_series
from farefinder.models import (
    CheapestFarePerDay,
    DailyRangeParams,
    DayFare,
    FareSearchParams,
    FareSeries,
    RoundTripOption,
    RoundTripParams,
)
from farefinder.skills.base_queries import CachedQueries, is_enabled, require_route

logger = logging.getLogger(__name__)

def _iso(value):
    return value.isoformat() if value else None

# Query keys for cache management
class FareKeys:
    ALL = ("fares",)

    @staticmethod
    def cheapest_per_day(params: FareSearchParams):
        return FareKeys.ALL + ("cheapest-per-day", params.origin, params.destination, _iso(params.start_date), params.currency)

    @staticmethod
    def daily_range(params: DailyRangeParams):
        return FareKeys.ALL + ("daily-range", params.origin, params.destination,
                               _iso(params.start_date), _iso(params.end_date), params.currency)

    @staticmethod
    def round_trip(params: RoundTripParams):
        return FareKeys.ALL + ("round-trip", params.origin, params.destination,
                               _iso(params.outbound_date), _iso(params.inbound_date), params.currency)

# --- Parameter validation (enable predicates) ---

def validate_cheapest_per_day(params: FareSearchParams) -> None:
    require_route(params.origin, params.destination)
    if not params.start_date:
        raise ValidationError("Start date is required")

def validate_daily_range(params: DailyRangeParams, max_months: int = settings.MAX_RANGE_MONTHS) -> None:
    require_route(params.origin, params.destination)
    if not params.start_date or not params.end_date:
        raise ValidationError("Start and end dates are required")
    if params.start_date > params.end_date:
        raise ValidationError("Start date must be on or before end date.")
    if months_between(params.start_date, params.end_date) > max_months:
        raise ValidationError(f"Date range cannot exceed {max_months} months.")

def validate_round_trip(params: RoundTripParams) -> None:
    require_route(params.origin, params.destination)
    if not params.outbound_date or not params.inbound_date:
        raise ValidationError("Outbound and inbound dates are required")
    if params.outbound_date > params.inbound_date:
        raise ValidationError("Return date must be on or after departure date.")

def is_cheapest_per_day_enabled(params: FareSearchParams) -> bool:
    return is_enabled(validate_cheapest_per_day, params)

def is_daily_range_enabled(params: DailyRangeParams) -> bool:
    return is_enabled(validate_daily_range, params)

def is_round_trip_enabled(params: RoundTripParams) -> bool:
    return is_enabled(validate_round_trip, params)

class FareQueries(CachedQueries):
    """Fare data: short-lived, keyed by route, dates and currency."""

    def cheapest_per_day(self, params: FareSearchParams) -> QuerySnapshot:
        return self._resolve(policies.CHEAPEST_PER_DAY, FareKeys.cheapest_per_day(params),
                             lambda: validate_cheapest_per_day(params),
                             lambda key: self.service.get_cheapest_per_day(params))

    async def fetch_cheapest_per_day(self, params: FareSearchParams) -> CheapestFarePerDay:
        return await self._fetch(policies.CHEAPEST_PER_DAY, FareKeys.cheapest_per_day(params),
                                 lambda: validate_cheapest_per_day(params),
                                 lambda key: self.service.get_cheapest_per_day(params))

    def daily_range(self, params: DailyRangeParams) -> QuerySnapshot:
        return self._resolve(policies.DAILY_RANGE, FareKeys.daily_range(params),
                             lambda: validate_daily_range(params),
                             lambda key: self.service.get_daily_range(params))

    async def fetch_daily_range(self, params: DailyRangeParams) -> List[DayFare]:
        return await self._fetch(policies.DAILY_RANGE, FareKeys.daily_range(params),
                                 lambda: validate_daily_range(params),
                                 lambda key: self.service.get_daily_range(params))

    def round_trip(self, params: RoundTripParams) -> QuerySnapshot:
        return self._resolve(policies.ROUND_TRIP, FareKeys.round_trip(params),
                             lambda: validate_round_trip(params),
                             lambda key: self.service.get_cheapest_round_trip(params))

    async def fetch_round_trip(self, params: RoundTripParams) -> List[RoundTripOption]:
        return await self._fetch(policies.ROUND_TRIP, FareKeys.round_trip(params),
                                 lambda: validate_round_trip(params),
                                 lambda key: self.service.get_cheapest_round_trip(params))

    async def fetch_calendar(self, params: DailyRangeParams) -> FareSeries:
        """
        Daily fares for a multi-month calendar. Each month is its own cache
        entry, so overlapping calendars reuse the months they share.
        """
        validate_daily_range(params)
        windows = month_windows(params.start_date, params.end_date)
        logger.info(f"Fetching calendar {params.origin}->{params.destination} in {len(windows)} month window(s)")
        results = await asyncio.gather(*(
            self.fetch_daily_range(params.model_copy(update={"start_date": start, "end_date": end}))
            for start, end in windows
        ))
        return summarize_series(merge_day_fares(*results))

    def invalidate(self) -> int:
        return self.cache.invalidate(FareKeys.ALL)

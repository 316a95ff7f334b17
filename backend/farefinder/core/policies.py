from typing import Dict

from farefinder.config import Settings, settings as default_settings
from farefinder.core.cache import QueryPolicy, is_retryable
from farefinder.core.errors import LocationPermissionError

ACTIVE_AIRPORTS = "airports.active"
AIRPORT_DETAIL = "airports.detail"
CLOSEST_AIRPORT = "airports.closest"
NEARBY_AIRPORTS = "airports.nearby"
DESTINATIONS = "airports.destinations"
SCHEDULES = "airports.schedules"
ROUTE = "airports.routes"
CHEAPEST_PER_DAY = "fares.cheapest-per-day"
DAILY_RANGE = "fares.daily-range"
ROUND_TRIP = "fares.round-trip"

def is_retryable_location_error(error: BaseException) -> bool:
    # A denied or unavailable position will not change on the next attempt
    if isinstance(error, LocationPermissionError):
        return False
    return is_retryable(error)

def _minutes(value: int) -> float:
    return value * 60.0

def build_policies(settings: Settings = default_settings) -> Dict[str, QueryPolicy]:
    """
    Freshness / eviction / retry table for every query family.
    Airport reference data lives for hours, fares for minutes.
    """
    default_gc = _minutes(settings.GC_DEFAULT_MINUTES)
    retry_limit = settings.RETRY_LIMIT

    def policy(family: str, stale: int, gc: float = default_gc, **kwargs) -> QueryPolicy:
        # An entry is never evicted before it goes stale
        stale_time = _minutes(stale)
        return QueryPolicy(family=family, stale_time=stale_time, gc_time=max(gc, stale_time),
                           retry_limit=retry_limit, **kwargs)

    return {
        ACTIVE_AIRPORTS: policy(ACTIVE_AIRPORTS, settings.STALE_ACTIVE_AIRPORTS_MINUTES, _minutes(settings.GC_ACTIVE_AIRPORTS_MINUTES)),
        AIRPORT_DETAIL: policy(AIRPORT_DETAIL, settings.STALE_AIRPORT_DETAIL_MINUTES),
        CLOSEST_AIRPORT: policy(CLOSEST_AIRPORT, settings.STALE_CLOSEST_AIRPORT_MINUTES, retry_classifier=is_retryable_location_error),
        NEARBY_AIRPORTS: policy(NEARBY_AIRPORTS, settings.STALE_CLOSEST_AIRPORT_MINUTES, retry_classifier=is_retryable_location_error),
        DESTINATIONS: policy(DESTINATIONS, settings.STALE_DESTINATIONS_MINUTES),
        SCHEDULES: policy(SCHEDULES, settings.STALE_SCHEDULES_MINUTES),
        ROUTE: policy(ROUTE, settings.STALE_ROUTE_MINUTES),
        CHEAPEST_PER_DAY: policy(CHEAPEST_PER_DAY, settings.STALE_CHEAPEST_PER_DAY_MINUTES, _minutes(settings.GC_CHEAPEST_PER_DAY_MINUTES)),
        DAILY_RANGE: policy(DAILY_RANGE, settings.STALE_DAILY_RANGE_MINUTES, _minutes(settings.GC_DAILY_RANGE_MINUTES)),
        ROUND_TRIP: policy(ROUND_TRIP, settings.STALE_ROUND_TRIP_MINUTES, _minutes(settings.GC_ROUND_TRIP_MINUTES)),
    }

POLICIES = build_policies()

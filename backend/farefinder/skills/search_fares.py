from datetime import date
from typing import Optional
import asyncio
import logging

from farefinder.config import settings
from farefinder.core.errors import ValidationError
from farefinder.core.fare_calendar import combine_round_trip, is_bookable, lookup, select_alternatives
from farefinder.models import DailyRangeParams, FareSearchParams, FareSearchResult, RoundTripParams
from farefinder.skills.fare_queries import FareQueries, validate_round_trip

logger = logging.getLogger(__name__)

TRIP_TYPES = ("one-way", "round-trip")

async def search_fares(
    queries: FareQueries,
    origin: str,
    destination: str,
    departure_date: Optional[date],
    return_date: Optional[date] = None,
    trip_type: str = "one-way",
    currency: str = settings.DEFAULT_CURRENCY,
    alternatives_limit: int = 3,
) -> FareSearchResult:
    """
    Orchestrate a fare search.
    one-way: cheapest fare per day around the departure date, the fare for
    that day if bookable, otherwise the cheapest alternative days.
    round-trip: the service's cheapest outbound/return combinations.
    """
    if trip_type not in TRIP_TYPES:
        raise ValidationError(f"Unknown trip type: {trip_type}")

    logger.info(f"Searching fares: {origin}->{destination} on {departure_date} ({trip_type})")

    if trip_type == "round-trip":
        params = RoundTripParams(origin=origin, destination=destination, outbound_date=departure_date,
                                 inbound_date=return_date, currency=currency)
        options = await queries.fetch_round_trip(params)
        options = sorted(options, key=lambda o: (o.total_price.value, o.departure.day))
        warning = None if options else "No round-trip fares found for these dates"
        return FareSearchResult(
            trip_type=trip_type,
            round_trips=options,
            best_option=options[0] if options else None,
            warning=warning,
        )

    params = FareSearchParams(origin=origin, destination=destination, start_date=departure_date, currency=currency)
    data = await queries.fetch_cheapest_per_day(params)
    outbound = data.outbound

    requested = lookup(outbound, departure_date)
    if is_bookable(requested):
        return FareSearchResult(trip_type=trip_type, fares=outbound, selected_fare=requested)

    alternatives = select_alternatives(outbound, departure_date, limit=alternatives_limit)
    logger.info(f"No fare on {departure_date}; {len(alternatives)} alternative day(s)")
    return FareSearchResult(
        trip_type=trip_type,
        fares=outbound,
        alternatives=alternatives,
        warning=f"No flights available on {departure_date.isoformat()}",
    )

async def plan_round_trip(queries: FareQueries, params: RoundTripParams) -> FareSearchResult:
    """
    Cheapest round trip built locally from two daily calendars
    (origin->destination and back) covering [outbound_date, inbound_date].
    """
    validate_round_trip(params)
    outbound_params = DailyRangeParams(origin=params.origin, destination=params.destination,
                                       start_date=params.outbound_date, end_date=params.inbound_date,
                                       currency=params.currency)
    inbound_params = DailyRangeParams(origin=params.destination, destination=params.origin,
                                      start_date=params.outbound_date, end_date=params.inbound_date,
                                      currency=params.currency)
    outbound, inbound = await asyncio.gather(
        queries.fetch_calendar(outbound_params),
        queries.fetch_calendar(inbound_params),
    )
    options = combine_round_trip(outbound, inbound)
    return FareSearchResult(
        trip_type="round-trip",
        fares=outbound,
        round_trips=options,
        best_option=options[0] if options else None,
        warning=None if options else "No bookable outbound/return combination in this range",
    )

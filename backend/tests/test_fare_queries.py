import asyncio
from datetime import date, timedelta

import pytest

from farefinder.core.cache import QueryState, RequestCache
from farefinder.core.errors import LocationPermissionError, ValidationError
from farefinder.core.fare_calendar import summarize_series
from farefinder.models import (
    Airport,
    CheapestFarePerDay,
    DailyRangeParams,
    FareSearchParams,
    RoundTripParams,
)
from farefinder.skills.airport_queries import AirportKeys, AirportQueries, is_route_query_enabled
from farefinder.skills.fare_queries import (
    FareKeys,
    FareQueries,
    is_daily_range_enabled,
    is_round_trip_enabled,
    validate_daily_range,
)

from fare_factories import FakeClock, FakeService, make_fare, ten_day_series

def daily_fares(params):
    days = (params.end_date - params.start_date).days + 1
    return [make_fare(params.start_date + timedelta(days=i), 40 + i) for i in range(days)]

@pytest.fixture
def clock():
    return FakeClock()

@pytest.fixture
def service():
    return FakeService(
        get_daily_range=daily_fares,
        get_active_airports=[Airport(code="DUB", name="Dublin", country="Ireland", timezone="Europe/Dublin")],
        get_cheapest_per_day=lambda params: CheapestFarePerDay(outbound=summarize_series(ten_day_series())),
    )

@pytest.fixture
def fares(service, clock):
    return FareQueries(RequestCache(clock=clock), service)

@pytest.fixture
def airports(service, clock):
    return AirportQueries(RequestCache(clock=clock), service)

def test_daily_range_over_six_months_is_disabled(fares, service):
    params = DailyRangeParams(origin="DUB", destination="BCN", start_date="2024-01-01", end_date="2024-08-01")

    snapshot = fares.daily_range(params)

    assert snapshot.state == QueryState.DISABLED
    assert isinstance(snapshot.error, ValidationError)
    assert not is_daily_range_enabled(params)
    assert service.calls == []

async def test_daily_range_within_six_months_is_fetched(fares, service):
    params = DailyRangeParams(origin="DUB", destination="BCN", start_date="2024-01-01", end_date="2024-06-01")

    assert is_daily_range_enabled(params)
    snapshot = fares.daily_range(params)
    assert snapshot.state == QueryState.PENDING

    result = await fares.fetch_daily_range(params)
    assert len(result) == 153
    assert service.count("get_daily_range") == 1

def test_daily_range_requires_ordered_dates():
    params = DailyRangeParams(origin="DUB", destination="BCN", start_date="2024-03-10", end_date="2024-03-01")
    with pytest.raises(ValidationError):
        validate_daily_range(params)

def test_route_parameters_gate_queries():
    assert not is_daily_range_enabled(DailyRangeParams(origin="DUB", start_date="2024-03-01", end_date="2024-03-31"))
    assert not is_daily_range_enabled(DailyRangeParams(origin="dub", destination="DUB", start_date="2024-03-01", end_date="2024-03-31"))
    assert is_daily_range_enabled(DailyRangeParams(origin=" dub ", destination="bcn", start_date="2024-03-01", end_date="2024-03-31"))
    assert not is_route_query_enabled("DUB", "")
    assert is_route_query_enabled("DUB", "STN")

async def test_round_trip_with_return_before_departure_is_disabled(fares, service):
    params = RoundTripParams(origin="DUB", destination="BCN", outbound_date="2024-03-10", inbound_date="2024-03-05")

    assert not is_round_trip_enabled(params)
    assert fares.round_trip(params).state == QueryState.DISABLED
    with pytest.raises(ValidationError):
        await fares.fetch_round_trip(params)
    assert service.calls == []

def test_round_trip_same_day_is_enabled():
    params = RoundTripParams(origin="DUB", destination="BCN", outbound_date="2024-03-10", inbound_date="2024-03-10")
    assert is_round_trip_enabled(params)

async def test_cheapest_per_day_concurrent_callers_share_request(fares, service):
    params = FareSearchParams(origin="DUB", destination="BCN", start_date="2024-03-05")
    service.gate = asyncio.Event()

    waiters = asyncio.gather(*(fares.fetch_cheapest_per_day(params) for _ in range(3)))
    await asyncio.sleep(0)
    service.gate.set()
    results = await waiters

    assert service.count("get_cheapest_per_day") == 1
    assert results[0] is results[1] is results[2]

async def test_active_airports_cached_for_thirty_minutes(airports, service, clock):
    await airports.fetch_active_airports()
    clock.advance(1)
    assert airports.active_airports().state == QueryState.FRESH
    await airports.fetch_active_airports()
    assert service.count("get_active_airports") == 1

    clock.advance(30 * 60)
    assert airports.active_airports().state == QueryState.PENDING
    await airports.fetch_active_airports()
    assert service.count("get_active_airports") == 2

async def test_closest_airport_permission_error_surfaces_without_retry(clock):
    service = FakeService(get_closest_airport=LocationPermissionError("Location permission denied", status=403))
    airports = AirportQueries(RequestCache(clock=clock), service)

    with pytest.raises(LocationPermissionError):
        await airports.fetch_closest_airport()

    assert service.count("get_closest_airport") == 1
    snapshot = airports.cache.get_snapshot(AirportKeys.closest())
    assert snapshot.state == QueryState.FAILED
    assert isinstance(snapshot.error, LocationPermissionError)

def test_airport_keys_normalize_codes():
    assert AirportKeys.destinations(" dub") == ("airports", "destinations", "DUB")
    assert AirportKeys.routes("dub", "bcn") == ("airports", "routes", "DUB", "BCN")

def test_empty_airport_code_disables_query(airports, service):
    snapshot = airports.destinations("")
    assert snapshot.state == QueryState.DISABLED
    assert isinstance(snapshot.error, ValidationError)
    assert service.calls == []

def test_fare_keys_are_order_significant():
    a = FareKeys.daily_range(DailyRangeParams(origin="DUB", destination="BCN", start_date="2024-03-01", end_date="2024-03-31"))
    b = FareKeys.daily_range(DailyRangeParams(origin="BCN", destination="DUB", start_date="2024-03-01", end_date="2024-03-31"))
    assert a != b
    assert a == ("fares", "daily-range", "DUB", "BCN", "2024-03-01", "2024-03-31", "EUR")

async def test_calendar_reuses_overlapping_month_windows(fares, service):
    wide = DailyRangeParams(origin="DUB", destination="BCN", start_date="2024-01-15", end_date="2024-03-10")
    february = DailyRangeParams(origin="DUB", destination="BCN", start_date="2024-02-01", end_date="2024-02-29")

    series = await fares.fetch_calendar(wide)
    assert service.count("get_daily_range") == 3
    assert series.fares[0].day == date(2024, 1, 15)
    assert series.fares[-1].day == date(2024, 3, 10)
    assert series.min_fare.day == date(2024, 1, 15)  # 40 EUR opens every window; earliest wins

    await fares.fetch_calendar(february)
    await fares.fetch_daily_range(february)
    assert service.count("get_daily_range") == 3

async def test_invalidate_only_touches_fares(fares, service):
    params = DailyRangeParams(origin="DUB", destination="BCN", start_date="2024-03-01", end_date="2024-03-31")
    await fares.fetch_daily_range(params)

    assert fares.invalidate() == 1
    await fares.fetch_daily_range(params)
    assert service.count("get_daily_range") == 2

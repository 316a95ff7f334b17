from contextlib import asynccontextmanager
from datetime import date
from typing import Optional
import asyncio
import logging

import aiohttp
from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware

from farefinder.config import settings
from farefinder.core.cache import RequestCache
from farefinder.core.errors import ErrorKind, FareServiceError
from farefinder.core.fare_calendar import best_fare, build_fare_lookup, calendar_months, expand_calendar_grid
from farefinder.models import DailyRangeParams, FareSearchResult, FareSeries, RoundTripParams
from farefinder.skills.airport_queries import AirportQueries
from farefinder.skills.fare_queries import FareQueries
from farefinder.skills.fare_service import FareServiceClient
from farefinder.skills.search_fares import plan_round_trip, search_fares

# Setup Logging
logging.basicConfig(level=settings.LOG_LEVEL.upper())
logger = logging.getLogger(__name__)

STATUS_BY_KIND = {
    ErrorKind.VALIDATION: 422,
    ErrorKind.PERMISSION: 403,
    ErrorKind.TRANSIENT: 502,
}

def to_http_error(e: FareServiceError) -> HTTPException:
    if e.kind == ErrorKind.CLIENT:
        status = e.status if e.status and 400 <= e.status < 500 else 404
    else:
        status = STATUS_BY_KIND[e.kind]
    return HTTPException(status_code=status, detail=e.to_dict())

async def sweep_cache(cache: RequestCache, interval: float):
    """Evict unobserved entries past their gc horizon until cancelled."""
    while True:
        await asyncio.sleep(interval)
        cache.collect_garbage()

def create_app(service=None, cache: Optional[RequestCache] = None) -> FastAPI:
    """
    Build the app. The request cache and the service client live as long
    as the app: created on startup, swept periodically, closed on shutdown.
    Passing `service` skips creating an HTTP session (tests, embedding).
    """
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        session = None
        client = service
        if client is None:
            session = aiohttp.ClientSession()
            client = FareServiceClient(session)
        request_cache = cache if cache is not None else RequestCache()
        app.state.cache = request_cache
        app.state.airports = AirportQueries(request_cache, client)
        app.state.fares = FareQueries(request_cache, client)
        sweeper = asyncio.create_task(sweep_cache(request_cache, settings.GC_SWEEP_INTERVAL_SECONDS))
        logger.info(f"Fare cache ready (env={settings.ENV}, upstream={settings.API_BASE_URL})")
        try:
            yield
        finally:
            sweeper.cancel()
            await asyncio.gather(sweeper, return_exceptions=True)
            await request_cache.aclose()
            if session is not None:
                await session.close()
            logger.info("Fare cache closed")

    app = FastAPI(title="Fare Finder", version="1.0.0", lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/health")
    async def health_check(request: Request):
        return {"status": "ok", "env": settings.ENV, "cached_queries": len(request.app.state.cache)}

    @app.get("/airports/active")
    async def active_airports(request: Request):
        try:
            return await request.app.state.airports.fetch_active_airports()
        except FareServiceError as e:
            logger.error(f"Active airports failed: {e}")
            raise to_http_error(e)

    @app.get("/airports/closest")
    async def closest_airport(request: Request):
        try:
            return await request.app.state.airports.fetch_closest_airport()
        except FareServiceError as e:
            logger.warning(f"Closest airport failed: {e}")
            raise to_http_error(e)

    @app.get("/airports/nearby")
    async def nearby_airports(request: Request):
        try:
            return await request.app.state.airports.fetch_nearby_airports()
        except FareServiceError as e:
            logger.warning(f"Nearby airports failed: {e}")
            raise to_http_error(e)

    @app.get("/airports/{code}")
    async def airport_detail(request: Request, code: str):
        try:
            return await request.app.state.airports.fetch_airport(code)
        except FareServiceError as e:
            logger.error(f"Airport {code} failed: {e}")
            raise to_http_error(e)

    @app.get("/airports/{code}/destinations")
    async def destinations(request: Request, code: str):
        try:
            return await request.app.state.airports.fetch_destinations(code)
        except FareServiceError as e:
            logger.error(f"Destinations from {code} failed: {e}")
            raise to_http_error(e)

    @app.get("/airports/{code}/schedules")
    async def schedules(request: Request, code: str):
        try:
            return await request.app.state.airports.fetch_schedules(code)
        except FareServiceError as e:
            logger.error(f"Schedules for {code} failed: {e}")
            raise to_http_error(e)

    @app.get("/airports/{origin}/routes/{destination}")
    async def route(request: Request, origin: str, destination: str):
        try:
            return await request.app.state.airports.fetch_route(origin, destination)
        except FareServiceError as e:
            logger.error(f"Route {origin}->{destination} failed: {e}")
            raise to_http_error(e)

    @app.get("/fares/calendar", response_model=FareSeries)
    async def fare_calendar(
        request: Request,
        origin: str = Query(alias="from"),
        destination: str = Query(alias="to"),
        start_date: date = Query(alias="startDate"),
        end_date: date = Query(alias="endDate"),
        currency: str = settings.DEFAULT_CURRENCY,
    ):
        params = DailyRangeParams(origin=origin, destination=destination, start_date=start_date,
                                  end_date=end_date, currency=currency)
        try:
            return await request.app.state.fares.fetch_calendar(params)
        except FareServiceError as e:
            logger.error(f"Calendar {origin}->{destination} failed: {e}")
            raise to_http_error(e)

    @app.get("/fares/alternatives", response_model=FareSearchResult)
    async def fare_alternatives(
        request: Request,
        origin: str = Query(alias="from"),
        destination: str = Query(alias="to"),
        day: date = Query(alias="date"),
        currency: str = settings.DEFAULT_CURRENCY,
        limit: int = Query(default=3, ge=1, le=10),
    ):
        try:
            return await search_fares(request.app.state.fares, origin, destination, day,
                                      currency=currency, alternatives_limit=limit)
        except FareServiceError as e:
            logger.error(f"Alternatives {origin}->{destination} failed: {e}")
            raise to_http_error(e)

    @app.get("/fares/round-trip", response_model=FareSearchResult)
    async def round_trip(
        request: Request,
        origin: str = Query(alias="from"),
        destination: str = Query(alias="to"),
        outbound_date: date = Query(alias="outboundDate"),
        inbound_date: date = Query(alias="inboundDate"),
        currency: str = settings.DEFAULT_CURRENCY,
        source: str = Query(default="service", pattern="^(service|calendar)$"),
    ):
        try:
            if source == "calendar":
                params = RoundTripParams(origin=origin, destination=destination, outbound_date=outbound_date,
                                         inbound_date=inbound_date, currency=currency)
                return await plan_round_trip(request.app.state.fares, params)
            return await search_fares(request.app.state.fares, origin, destination, outbound_date,
                                      return_date=inbound_date, trip_type="round-trip", currency=currency)
        except FareServiceError as e:
            logger.error(f"Round trip {origin}->{destination} failed: {e}")
            raise to_http_error(e)

    @app.get("/fares/calendar/grid")
    async def calendar_grid(
        request: Request,
        origin: str = Query(alias="from"),
        destination: str = Query(alias="to"),
        start_date: date = Query(alias="startDate"),
        end_date: date = Query(alias="endDate"),
        currency: str = settings.DEFAULT_CURRENCY,
    ):
        """
        Month grids (Sunday-first, 7 columns) with the fare of each day
        filled in; empty leading slots are null.
        """
        params = DailyRangeParams(origin=origin, destination=destination, start_date=start_date,
                                  end_date=end_date, currency=currency)
        try:
            series = await request.app.state.fares.fetch_calendar(params)
        except FareServiceError as e:
            logger.error(f"Calendar grid {origin}->{destination} failed: {e}")
            raise to_http_error(e)

        cheapest = best_fare(series)
        by_day = build_fare_lookup(series)
        months = []
        for month in calendar_months(start_date, end_date):
            slots = []
            for day in expand_calendar_grid(month):
                if day is None:
                    slots.append(None)
                    continue
                fare = by_day.get(day)
                slots.append({
                    "day": day.isoformat(),
                    "fare": fare.model_dump(mode="json", by_alias=True) if fare else None,
                    "isCheapest": cheapest is not None and fare is not None and fare.day == cheapest.day,
                })
            months.append({"month": month.isoformat(), "slots": slots})
        return {"months": months}

    @app.post("/cache/invalidate")
    async def invalidate(request: Request, prefix: Optional[str] = None):
        cache: RequestCache = request.app.state.cache
        key_prefix = tuple(p for p in (prefix or "").split("/") if p)
        return {"invalidated": cache.invalidate(key_prefix)}

    return app

app = create_app()

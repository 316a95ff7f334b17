"""
Remote fare / airport service client.

Read-only JSON API. Every failure leaves this module as a classified
FareServiceError so callers (the request cache in particular) decide on
retries by error kind, never by message text.
"""
import asyncio
import logging
from datetime import date
from typing import Any, Dict, List, Optional

import aiohttp
from pydantic import TypeAdapter, ValidationError as PydanticValidationError

from farefinder.config import settings
from farefinder.core.errors import NotFoundOrClientError, TransientNetworkError, classify_http_error
from farefinder.models import (
    Airport,
    AirportDetails,
    CheapestFarePerDay,
    ClosestAirport,
    DailyRangeParams,
    DayFare,
    Destination,
    FareSearchParams,
    HealthStatus,
    RoundTripOption,
    RoundTripParams,
    Route,
    Schedule,
)
from farefinder.skills.normalize_fares import normalize_cheapest_per_day, normalize_day_fares

logger = logging.getLogger(__name__)

_airports = TypeAdapter(List[Airport])
_closest_airports = TypeAdapter(List[ClosestAirport])
_destinations = TypeAdapter(List[Destination])
_schedules = TypeAdapter(List[Schedule])
_round_trips = TypeAdapter(List[RoundTripOption])

def _iso(value: Optional[date]) -> Optional[str]:
    return value.isoformat() if value else None

def _clean_params(params: Optional[Dict[str, Any]]) -> Optional[Dict[str, str]]:
    # Missing values are left out of the query string, never sent empty
    if not params:
        return None
    return {k: str(v) for k, v in params.items() if v not in (None, "")}

class FareServiceClient:
    def __init__(
        self,
        session: aiohttp.ClientSession,
        base_url: str = settings.API_BASE_URL,
        api_prefix: str = settings.API_PREFIX,
        timeout_seconds: float = settings.REQUEST_TIMEOUT_SECONDS,
    ):
        self.session = session
        self.base_url = base_url.rstrip("/")
        self.api_prefix = "/" + api_prefix.strip("/") if api_prefix.strip("/") else ""
        self.timeout = aiohttp.ClientTimeout(total=timeout_seconds)

    def _url(self, path: str, prefixed: bool = True) -> str:
        p = path if path.startswith("/") else f"/{path}"
        return f"{self.base_url}{self.api_prefix if prefixed else ''}{p}"

    async def _get(self, path: str, params: Optional[Dict[str, Any]] = None, *, location_scoped: bool = False, prefixed: bool = True) -> Any:
        url = self._url(path, prefixed)
        headers = {"Accept": "application/json", "Content-Type": "application/json"}
        logger.debug(f"GET {url} params={params}")

        try:
            async with self.session.get(url, params=_clean_params(params), headers=headers, timeout=self.timeout) as resp:
                if resp.status >= 400:
                    error_code, message = await self._error_body(resp)
                    raise classify_http_error(resp.status, message, error_code, location_scoped=location_scoped)
                try:
                    return await resp.json(content_type=None)
                except ValueError as e:
                    raise NotFoundOrClientError(f"Malformed JSON from {path}: {e}", status=resp.status)
        except asyncio.TimeoutError as e:
            logger.warning(f"Timeout calling {url}")
            raise TransientNetworkError(f"Network error: request to {path} timed out", code="timeout") from e
        except aiohttp.ClientError as e:
            logger.warning(f"Network error calling {url}: {e}")
            raise TransientNetworkError(f"Network error: {e}", code="network") from e

    async def _error_body(self, resp) -> tuple:
        """{error, message} body of a failed response, or the status line."""
        fallback = f"HTTP {resp.status}: {resp.reason or ''}".rstrip(": ").rstrip()
        try:
            body = await resp.json(content_type=None)
        except (ValueError, aiohttp.ClientError):
            return None, fallback
        if not isinstance(body, dict):
            return None, fallback
        return body.get("error"), body.get("message") or fallback

    def _parse(self, adapter_or_model, payload: Any, path: str):
        try:
            if isinstance(adapter_or_model, TypeAdapter):
                return adapter_or_model.validate_python(payload)
            return adapter_or_model.model_validate(payload)
        except PydanticValidationError as e:
            logger.error(f"Unexpected payload from {path}: {e}")
            raise NotFoundOrClientError(f"Malformed response from {path}") from e

    # --- Health ---

    async def get_health(self) -> HealthStatus:
        payload = await self._get("/health", prefixed=False)
        return self._parse(HealthStatus, payload, "/health")

    # --- Airports ---

    async def get_active_airports(self) -> List[Airport]:
        path = "/airports/active"
        return self._parse(_airports, await self._get(path), path)

    async def get_airport(self, code: str) -> AirportDetails:
        path = f"/airports/{code}"
        return self._parse(AirportDetails, await self._get(path), path)

    async def get_closest_airport(self) -> ClosestAirport:
        path = "/airports/closest"
        return self._parse(ClosestAirport, await self._get(path, location_scoped=True), path)

    async def get_nearby_airports(self) -> List[ClosestAirport]:
        path = "/airports/nearby"
        return self._parse(_closest_airports, await self._get(path, location_scoped=True), path)

    async def get_destinations(self, code: str) -> List[Destination]:
        path = f"/airports/{code}/destinations"
        return self._parse(_destinations, await self._get(path), path)

    async def get_schedules(self, code: str) -> List[Schedule]:
        path = f"/airports/{code}/schedules"
        return self._parse(_schedules, await self._get(path), path)

    async def get_route(self, origin: str, destination: str) -> Route:
        path = f"/airports/{origin}/routes/{destination}"
        return self._parse(Route, await self._get(path), path)

    # --- Fares ---

    async def get_cheapest_per_day(self, params: FareSearchParams) -> CheapestFarePerDay:
        path = "/fares/cheapest-per-day"
        payload = await self._get(path, {
            "from": params.origin,
            "to": params.destination,
            "startDate": _iso(params.start_date),
            "currency": params.currency or settings.DEFAULT_CURRENCY,
        })
        try:
            return normalize_cheapest_per_day(payload)
        except (PydanticValidationError, TypeError, KeyError) as e:
            logger.error(f"Unexpected payload from {path}: {e}")
            raise NotFoundOrClientError(f"Malformed response from {path}") from e

    async def get_daily_range(self, params: DailyRangeParams) -> List[DayFare]:
        path = "/fares/daily-range"
        payload = await self._get(path, {
            "from": params.origin,
            "to": params.destination,
            "startDate": _iso(params.start_date),
            "endDate": _iso(params.end_date),
            "currency": params.currency or settings.DEFAULT_CURRENCY,
        })
        if not isinstance(payload, list):
            raise NotFoundOrClientError(f"Malformed response from {path}")
        return normalize_day_fares(payload)

    async def get_cheapest_round_trip(self, params: RoundTripParams) -> List[RoundTripOption]:
        path = "/fares/cheapest-round-trip"
        payload = await self._get(path, {
            "from": params.origin,
            "to": params.destination,
            "startDate": _iso(params.outbound_date),
            "endDate": _iso(params.inbound_date),
            "currency": params.currency or settings.DEFAULT_CURRENCY,
        })
        return self._parse(_round_trips, payload, path)

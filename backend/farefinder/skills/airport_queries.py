from typing import List

from farefinder.core.cache import QuerySnapshot
from farefinder.core import policies
from farefinder.models import Airport, AirportDetails, ClosestAirport, Destination, Route, Schedule
from farefinder.skills.base_queries import CachedQueries, is_enabled, require_code, require_route

# Query keys for cache management
class AirportKeys:
    ALL = ("airports",)

    @staticmethod
    def active():
        return AirportKeys.ALL + ("active",)

    @staticmethod
    def detail(code):
        return AirportKeys.ALL + ("detail", (code or "").strip().upper())

    @staticmethod
    def closest():
        return AirportKeys.ALL + ("closest",)

    @staticmethod
    def nearby():
        return AirportKeys.ALL + ("nearby",)

    @staticmethod
    def destinations(code):
        return AirportKeys.ALL + ("destinations", (code or "").strip().upper())

    @staticmethod
    def schedules(code):
        return AirportKeys.ALL + ("schedules", (code or "").strip().upper())

    @staticmethod
    def routes(origin, destination):
        return AirportKeys.ALL + ("routes", (origin or "").strip().upper(), (destination or "").strip().upper())

def is_airport_query_enabled(code) -> bool:
    return is_enabled(require_code, code)

def is_route_query_enabled(origin, destination) -> bool:
    return is_enabled(require_route, origin, destination)

def _always_valid():
    return None

class AirportQueries(CachedQueries):
    """Airport reference data: long-lived, shared by every search."""

    def active_airports(self) -> QuerySnapshot:
        return self._resolve(policies.ACTIVE_AIRPORTS, AirportKeys.active(), _always_valid,
                             lambda key: self.service.get_active_airports())

    async def fetch_active_airports(self) -> List[Airport]:
        return await self._fetch(policies.ACTIVE_AIRPORTS, AirportKeys.active(), _always_valid,
                                 lambda key: self.service.get_active_airports())

    def airport(self, code: str) -> QuerySnapshot:
        return self._resolve(policies.AIRPORT_DETAIL, AirportKeys.detail(code), lambda: require_code(code),
                             lambda key: self.service.get_airport(key[-1]))

    async def fetch_airport(self, code: str) -> AirportDetails:
        return await self._fetch(policies.AIRPORT_DETAIL, AirportKeys.detail(code), lambda: require_code(code),
                                 lambda key: self.service.get_airport(key[-1]))

    def closest_airport(self) -> QuerySnapshot:
        return self._resolve(policies.CLOSEST_AIRPORT, AirportKeys.closest(), _always_valid,
                             lambda key: self.service.get_closest_airport())

    async def fetch_closest_airport(self) -> ClosestAirport:
        return await self._fetch(policies.CLOSEST_AIRPORT, AirportKeys.closest(), _always_valid,
                                 lambda key: self.service.get_closest_airport())

    def nearby_airports(self) -> QuerySnapshot:
        return self._resolve(policies.NEARBY_AIRPORTS, AirportKeys.nearby(), _always_valid,
                             lambda key: self.service.get_nearby_airports())

    async def fetch_nearby_airports(self) -> List[ClosestAirport]:
        return await self._fetch(policies.NEARBY_AIRPORTS, AirportKeys.nearby(), _always_valid,
                                 lambda key: self.service.get_nearby_airports())

    def destinations(self, code: str) -> QuerySnapshot:
        return self._resolve(policies.DESTINATIONS, AirportKeys.destinations(code), lambda: require_code(code),
                             lambda key: self.service.get_destinations(key[-1]))

    async def fetch_destinations(self, code: str) -> List[Destination]:
        return await self._fetch(policies.DESTINATIONS, AirportKeys.destinations(code), lambda: require_code(code),
                                 lambda key: self.service.get_destinations(key[-1]))

    def schedules(self, code: str) -> QuerySnapshot:
        return self._resolve(policies.SCHEDULES, AirportKeys.schedules(code), lambda: require_code(code),
                             lambda key: self.service.get_schedules(key[-1]))

    async def fetch_schedules(self, code: str) -> List[Schedule]:
        return await self._fetch(policies.SCHEDULES, AirportKeys.schedules(code), lambda: require_code(code),
                                 lambda key: self.service.get_schedules(key[-1]))

    def route(self, origin: str, destination: str) -> QuerySnapshot:
        return self._resolve(policies.ROUTE, AirportKeys.routes(origin, destination),
                             lambda: require_route(origin, destination),
                             lambda key: self.service.get_route(key[-2], key[-1]))

    async def fetch_route(self, origin: str, destination: str) -> Route:
        return await self._fetch(policies.ROUTE, AirportKeys.routes(origin, destination),
                                 lambda: require_route(origin, destination),
                                 lambda key: self.service.get_route(key[-2], key[-1]))

    def invalidate(self) -> int:
        return self.cache.invalidate(AirportKeys.ALL)

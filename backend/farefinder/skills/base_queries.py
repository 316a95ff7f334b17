from typing import Any, Callable, Dict

from farefinder.core.cache import QueryKey, QueryPolicy, QuerySnapshot, QueryState, RequestCache
from farefinder.core.errors import ValidationError
from farefinder.core.policies import POLICIES
from farefinder.skills.fare_service import FareServiceClient

def is_enabled(validator: Callable[..., None], *args) -> bool:
    """Enable predicate derived from a validator: valid parameters <=> enabled."""
    try:
        validator(*args)
    except ValidationError:
        return False
    return True

def require_code(code, label: str = "Airport code") -> str:
    code = (code or "").strip().upper()
    if not code:
        raise ValidationError(f"{label} is required")
    return code

def require_route(origin, destination) -> tuple:
    origin = require_code(origin, "Origin airport")
    destination = require_code(destination, "Destination airport")
    if origin == destination:
        raise ValidationError("Destination must be different from origin.")
    return origin, destination

class CachedQueries:
    """
    Shared plumbing for the per-family orchestrators: validate, then hand
    the key and fetcher to the request cache. Retrying is the cache's job.
    """
    def __init__(self, cache: RequestCache, service: FareServiceClient, policies: Dict[str, QueryPolicy] = POLICIES):
        self.cache = cache
        self.service = service
        self.policies = policies

    def _resolve(self, family: str, key: QueryKey, validate: Callable[[], Any], fetcher) -> QuerySnapshot:
        try:
            validate()
        except ValidationError as e:
            return QuerySnapshot(key=tuple(key), state=QueryState.DISABLED, error=e)
        return self.cache.resolve(key, fetcher, self.policies[family])

    async def _fetch(self, family: str, key: QueryKey, validate: Callable[[], Any], fetcher) -> Any:
        validate()
        return await self.cache.fetch(key, fetcher, self.policies[family])

from farefinder.core.fare_calendar import best_fare, most_expensive_fare
from farefinder.models import CheapestFarePerDay, DayFare, FareSeries
import logging

logger = logging.getLogger(__name__)

def normalize_day_fare(raw: dict) -> DayFare:
    """Parse one per-day record. A price block without a value counts as no price."""
    raw = dict(raw)
    price = raw.get('price')
    if isinstance(price, dict) and price.get('value') is None:
        raw['price'] = None
    return DayFare.model_validate(raw)

def normalize_day_fares(raw_fares: list[dict]) -> list[DayFare]:
    normalized = []
    for raw in raw_fares:
        try:
            normalized.append(normalize_day_fare(raw))
        except Exception as e:
            # One broken day must not hide the rest of the calendar
            logger.warning(f"Skipping malformed fare record {raw!r}: {e}")
            continue
    return normalized

def normalize_fare_series(raw: dict) -> FareSeries:
    """
    Build a FareSeries from a service payload ({fares, minFare, maxFare}).
    minFare / maxFare are recomputed from the bookable days so they are
    always consistent with `fares`, whatever the service sent.
    """
    fares = normalize_day_fares(raw.get('fares') or [])
    return FareSeries(
        fares=fares,
        min_fare=best_fare(fares),
        max_fare=most_expensive_fare(fares),
    )

def normalize_cheapest_per_day(raw: dict) -> CheapestFarePerDay:
    if not isinstance(raw, dict) or not isinstance(raw.get('outbound'), dict):
        raise TypeError("cheapest-per-day payload has no outbound series")
    inbound = raw.get('inbound')
    return CheapestFarePerDay(
        outbound=normalize_fare_series(raw['outbound']),
        inbound=normalize_fare_series(inbound) if isinstance(inbound, dict) else None,
    )

"""
Pure calendar computations over already-fetched fares.

Nothing here touches the network or the cache: every function takes fare
records (a FareSeries or a plain list of DayFare) and returns new values.
"""
import calendar
import logging
from datetime import date, datetime, timedelta
from typing import Dict, Iterable, List, Optional, Sequence, Tuple, Union

from farefinder.models import DayFare, FareSeries, Price, RoundTripOption

logger = logging.getLogger(__name__)

SeriesLike = Union[FareSeries, Sequence[DayFare], None]
DayLike = Union[date, datetime, str]

def _fares(series: SeriesLike) -> List[DayFare]:
    if series is None:
        return []
    if isinstance(series, FareSeries):
        return series.fares
    return list(series)

def as_day(value: DayLike) -> date:
    """Calendar day of a date, datetime or ISO string (time part ignored)."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value).strip()[:10])

def is_bookable(day_fare: Optional[DayFare]) -> bool:
    return (
        day_fare is not None
        and not day_fare.sold_out
        and not day_fare.unavailable
        and day_fare.price is not None
    )

def _price_order(day_fare: DayFare) -> Tuple[float, date]:
    return (day_fare.price.value, day_fare.day)

def lookup(series: SeriesLike, day: DayLike) -> Optional[DayFare]:
    target = as_day(day)
    for fare in _fares(series):
        if fare.day == target:
            return fare
    return None

def build_fare_lookup(series: SeriesLike) -> Dict[date, DayFare]:
    """Day -> fare map. The last record wins if the series repeats a day."""
    return {fare.day: fare for fare in _fares(series)}

def bookable_fares(series: SeriesLike) -> List[DayFare]:
    return [fare for fare in _fares(series) if is_bookable(fare)]

def best_fare(series: SeriesLike) -> Optional[DayFare]:
    """Cheapest bookable day; the earliest day wins a tie."""
    candidates = bookable_fares(series)
    if not candidates:
        return None
    return min(candidates, key=_price_order)

def most_expensive_fare(series: SeriesLike) -> Optional[DayFare]:
    candidates = bookable_fares(series)
    if not candidates:
        return None
    return min(candidates, key=lambda f: (-f.price.value, f.day))

def summarize_series(fares: Iterable[DayFare]) -> FareSeries:
    fares = sorted(fares, key=lambda f: f.day)
    return FareSeries(fares=fares, min_fare=best_fare(fares), max_fare=most_expensive_fare(fares))

def select_alternatives(series: SeriesLike, requested_day: DayLike, limit: int = 3) -> List[DayFare]:
    """
    Alternatives for a day without a bookable fare: the `limit` cheapest
    bookable days of the series, ordered by price then day.
    A bookable requested day needs no alternatives and yields [].
    """
    if limit <= 0 or is_bookable(lookup(series, requested_day)):
        return []
    return sorted(bookable_fares(series), key=_price_order)[:limit]

def combine_round_trip(outbound: SeriesLike, inbound: SeriesLike) -> List[RoundTripOption]:
    """
    Every bookable (departure, return) pair with departure on or before the
    return day, cheapest total first. Pairs priced in different currencies
    cannot be summed and are skipped.
    """
    options = []
    skipped = 0
    returns = bookable_fares(inbound)
    for departure in bookable_fares(outbound):
        for back in returns:
            if back.day < departure.day:
                continue
            if departure.price.currency_code != back.price.currency_code:
                skipped += 1
                continue
            total = Price(
                value=departure.price.value + back.price.value,
                currency_code=departure.price.currency_code,
            )
            options.append(RoundTripOption(departure=departure, return_=back, total_price=total))

    if skipped:
        logger.debug(f"Skipped {skipped} round-trip pairs with mismatched currencies")

    return sorted(options, key=lambda o: (o.total_price.value, o.departure.day, o.return_.day))

def merge_day_fares(*series: SeriesLike) -> List[DayFare]:
    """Union of several series by day; later series override earlier ones."""
    merged: Dict[date, DayFare] = {}
    for item in series:
        merged.update(build_fare_lookup(item))
    return [merged[day] for day in sorted(merged)]

# --- Calendar layout ---

def expand_calendar_grid(month_start: DayLike) -> List[Optional[date]]:
    """
    Sunday-first 7-column grid for the month containing `month_start`.
    Leading None slots align the 1st with its weekday.
    """
    first = as_day(month_start).replace(day=1)
    leading = (first.weekday() + 1) % 7  # Monday=0 -> Sunday-first column
    days_in_month = calendar.monthrange(first.year, first.month)[1]
    return [None] * leading + [first + timedelta(days=i) for i in range(days_in_month)]

def months_between(start: DayLike, end: DayLike) -> int:
    """Calendar month difference, ignoring the day of month."""
    start, end = as_day(start), as_day(end)
    return (end.year - start.year) * 12 + (end.month - start.month)

def calendar_months(start: DayLike, end: DayLike) -> List[date]:
    """First day of every month touched by [start, end]."""
    current = as_day(start).replace(day=1)
    last = as_day(end).replace(day=1)
    months = []
    while current <= last:
        months.append(current)
        current = (current + timedelta(days=32)).replace(day=1)
    return months

def month_windows(start: DayLike, end: DayLike) -> List[Tuple[date, date]]:
    """Split [start, end] into per-month windows clipped to the range."""
    start, end = as_day(start), as_day(end)
    windows = []
    for month in calendar_months(start, end):
        month_end = month.replace(day=calendar.monthrange(month.year, month.month)[1])
        windows.append((max(start, month), min(end, month_end)))
    return windows

from datetime import date

from farefinder.core.fare_calendar import (
    best_fare,
    build_fare_lookup,
    calendar_months,
    combine_round_trip,
    expand_calendar_grid,
    is_bookable,
    lookup,
    merge_day_fares,
    month_windows,
    months_between,
    most_expensive_fare,
    select_alternatives,
    summarize_series,
)
from farefinder.models import FareSeries

from fare_factories import make_fare, ten_day_series

def test_is_bookable_requires_price_and_availability():
    assert is_bookable(make_fare("2024-03-01", 20))
    assert not is_bookable(make_fare("2024-03-01", 20, sold_out=True))
    assert not is_bookable(make_fare("2024-03-01", 20, unavailable=True))
    assert not is_bookable(make_fare("2024-03-01"))
    assert not is_bookable(None)

def test_lookup_matches_calendar_day():
    series = FareSeries(fares=ten_day_series())
    assert lookup(series, "2024-03-08").price.value == 39.99
    assert lookup(series, date(2024, 3, 8)).day == date(2024, 3, 8)
    assert lookup(series, "2024-03-08T23:59:00").day == date(2024, 3, 8)
    assert lookup(series, "2024-04-01") is None
    assert lookup(None, "2024-03-08") is None

def test_build_fare_lookup_indexes_by_day():
    by_day = build_fare_lookup(ten_day_series())
    assert len(by_day) == 10
    assert by_day[date(2024, 3, 10)].unavailable

def test_alternatives_for_unavailable_day_dub_bcn():
    alternatives = select_alternatives(ten_day_series(), "2024-03-10")

    assert [f.day.isoformat() for f in alternatives] == ["2024-03-08", "2024-03-11", "2024-03-06"]
    assert all(f.day != date(2024, 3, 10) for f in alternatives)

def test_alternatives_sorted_by_price():
    alternatives = select_alternatives(ten_day_series(), "2024-03-10", limit=9)
    prices = [f.price.value for f in alternatives]
    assert len(alternatives) == 9
    assert prices == sorted(prices)

def test_alternatives_empty_when_nothing_bookable():
    fares = [
        make_fare("2024-03-01", 30, sold_out=True),
        make_fare("2024-03-02", unavailable=True),
        make_fare("2024-03-03"),
    ]
    assert select_alternatives(fares, "2024-03-02") == []

def test_alternatives_not_needed_for_bookable_day():
    assert select_alternatives(ten_day_series(), "2024-03-08") == []

def test_alternatives_for_day_outside_series():
    alternatives = select_alternatives(ten_day_series(), "2024-04-01", limit=1)
    assert [f.day.isoformat() for f in alternatives] == ["2024-03-08"]

def test_best_fare_prefers_earliest_day_on_tie():
    best = best_fare(ten_day_series())
    assert best.day == date(2024, 3, 8)
    assert best.price.value == 39.99

def test_best_fare_none_without_bookable_days():
    assert best_fare([make_fare("2024-03-01", 10, sold_out=True)]) is None
    assert best_fare(FareSeries()) is None

def test_best_fare_not_above_any_bookable_price():
    fares = ten_day_series()
    best = best_fare(fares)
    assert all(best.price.value <= f.price.value for f in fares if is_bookable(f))

def test_most_expensive_fare():
    assert most_expensive_fare(ten_day_series()).day == date(2024, 3, 12)

def test_summarize_series_sorts_and_derives_extremes():
    fares = list(reversed(ten_day_series()))
    series = summarize_series(fares)
    assert series.fares[0].day == date(2024, 3, 5)
    assert series.min_fare.day == date(2024, 3, 8)
    assert series.max_fare.day == date(2024, 3, 12)

def test_combine_round_trip_single_pair():
    options = combine_round_trip([make_fare("2024-03-05", 50)], [make_fare("2024-03-09", 70)])

    assert len(options) == 1
    assert options[0].total_price.value == 120
    assert options[0].total_price.currency_code == "EUR"
    assert options[0].return_.day == date(2024, 3, 9)

def test_combine_round_trip_sorted_and_ordered_days():
    outbound = [make_fare("2024-03-05", 50), make_fare("2024-03-06", 20), make_fare("2024-03-08", 10)]
    inbound = [make_fare("2024-03-07", 30), make_fare("2024-03-09", 25, sold_out=True), make_fare("2024-03-10", 40)]

    options = combine_round_trip(outbound, inbound)
    totals = [o.total_price.value for o in options]

    assert totals == sorted(totals)
    assert all(o.departure.day <= o.return_.day for o in options)
    # 03-08 cannot return on 03-07; the sold-out 03-09 is never paired
    assert len(options) == 5
    assert (options[0].departure.day, options[0].return_.day) == (date(2024, 3, 6), date(2024, 3, 7))

def test_combine_round_trip_tie_breaks_on_departure_day():
    outbound = [make_fare("2024-03-06", 30), make_fare("2024-03-05", 30)]
    inbound = [make_fare("2024-03-07", 30)]
    options = combine_round_trip(outbound, inbound)
    assert [o.departure.day.day for o in options] == [5, 6]

def test_combine_round_trip_skips_mixed_currencies():
    outbound = [make_fare("2024-03-05", 50, currency="EUR")]
    inbound = [make_fare("2024-03-06", 40, currency="GBP"), make_fare("2024-03-07", 70, currency="EUR")]

    options = combine_round_trip(outbound, inbound)

    assert len(options) == 1
    assert options[0].total_price.value == 120

def test_combine_round_trip_same_day_return_allowed():
    options = combine_round_trip([make_fare("2024-03-05", 50)], [make_fare("2024-03-05", 50)])
    assert len(options) == 1

def test_merge_day_fares_later_series_wins():
    first = [make_fare("2024-03-01", 10), make_fare("2024-03-02", 20)]
    second = [make_fare("2024-03-02", 25), make_fare("2024-03-03", 30)]

    merged = merge_day_fares(first, second)

    assert [f.day.day for f in merged] == [1, 2, 3]
    assert merged[1].price.value == 25

def test_calendar_grid_aligns_first_day_to_weekday():
    grid = expand_calendar_grid(date(2024, 3, 1))  # a Friday
    assert grid[:5] == [None] * 5
    assert grid[5] == date(2024, 3, 1)
    assert grid[-1] == date(2024, 3, 31)
    assert len(grid) == 5 + 31

def test_calendar_grid_sunday_start_has_no_padding():
    grid = expand_calendar_grid("2024-09-15")
    assert grid[0] == date(2024, 9, 1)
    assert len(grid) == 30

def test_calendar_grid_leap_february():
    grid = expand_calendar_grid(date(2024, 2, 10))
    assert grid.count(None) == 4  # Thursday
    assert grid[-1] == date(2024, 2, 29)

def test_months_between_ignores_day_of_month():
    assert months_between("2024-01-01", "2024-08-01") == 7
    assert months_between("2024-01-31", "2024-06-01") == 5
    assert months_between("2024-11-15", "2025-02-01") == 3

def test_calendar_months_and_windows():
    assert calendar_months("2024-01-15", "2024-03-10") == [date(2024, 1, 1), date(2024, 2, 1), date(2024, 3, 1)]
    assert month_windows("2024-01-15", "2024-03-10") == [
        (date(2024, 1, 15), date(2024, 1, 31)),
        (date(2024, 2, 1), date(2024, 2, 29)),
        (date(2024, 3, 1), date(2024, 3, 10)),
    ]
    assert month_windows("2024-05-02", "2024-05-09") == [(date(2024, 5, 2), date(2024, 5, 9))]

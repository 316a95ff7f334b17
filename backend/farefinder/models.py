from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel
from typing import List, Optional
from datetime import date, datetime
from farefinder.config import settings

class FareModel(BaseModel):
    # Wire format is camelCase (currencyCode, soldOut, ...)
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

class Price(FareModel):
    value: float = Field(ge=0)
    currency_code: str

class Coordinates(FareModel):
    latitude: float
    longitude: float

class Airport(FareModel):
    model_config = ConfigDict(frozen=True)

    code: str
    name: str
    country: str
    timezone: str

class AirportDetails(Airport):
    coordinates: Optional[Coordinates] = None
    city: Optional[str] = None
    region: Optional[str] = None

class ClosestAirport(Airport):
    distance: Optional[float] = None
    distance_unit: Optional[str] = None # e.g. "km"
    coordinates: Optional[Coordinates] = None

class Destination(FareModel):
    code: str
    name: str
    country: str
    popular: Optional[bool] = None

class Schedule(FareModel):
    flight_number: str
    departure_time: str
    arrival_time: str
    duration: str
    frequency: List[str] = []
    aircraft: Optional[str] = None

class AirportSummary(FareModel):
    code: str
    name: str
    country: str

class Route(FareModel):
    origin: AirportSummary
    destination: AirportSummary
    distance: Optional[float] = None
    duration: Optional[str] = None
    frequency: Optional[int] = None

class DayFare(FareModel):
    day: date
    departure_date: Optional[datetime] = None
    arrival_date: Optional[datetime] = None
    price: Optional[Price] = None
    sold_out: bool = False
    unavailable: bool = False

class FareSeries(FareModel):
    fares: List[DayFare] = []
    min_fare: Optional[DayFare] = None
    max_fare: Optional[DayFare] = None

class CheapestFarePerDay(FareModel):
    outbound: FareSeries
    inbound: Optional[FareSeries] = None

class RoundTripOption(FareModel):
    departure: DayFare
    return_: DayFare = Field(alias="return")
    total_price: Price

class HealthStatus(FareModel):
    status: str # 'healthy' or 'unhealthy'
    timestamp: str
    version: Optional[str] = None

# --- Request parameters ---
# Missing values are allowed here; they disable the query instead of failing.

class RouteParams(FareModel):
    origin: Optional[str] = Field(default=None, alias="from")
    destination: Optional[str] = Field(default=None, alias="to")
    currency: str = settings.DEFAULT_CURRENCY

    @field_validator("origin", "destination", mode="before")
    @classmethod
    def normalize_code(cls, value):
        if value is None:
            return None
        value = str(value).strip().upper()
        return value or None

    @field_validator("currency", mode="before")
    @classmethod
    def normalize_currency(cls, value):
        value = (value or "").strip().upper() if isinstance(value, str) else value
        return value or settings.DEFAULT_CURRENCY

class FareSearchParams(RouteParams):
    start_date: Optional[date] = None
    end_date: Optional[date] = None

class DailyRangeParams(RouteParams):
    start_date: Optional[date] = None
    end_date: Optional[date] = None

class RoundTripParams(RouteParams):
    outbound_date: Optional[date] = None
    inbound_date: Optional[date] = None

# --- Search results ---

class FareSearchResult(FareModel):
    trip_type: str # 'one-way' or 'round-trip'
    fares: Optional[FareSeries] = None
    selected_fare: Optional[DayFare] = None
    alternatives: List[DayFare] = []
    round_trips: List[RoundTripOption] = []
    best_option: Optional[RoundTripOption] = None
    warning: Optional[str] = None

from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    API_BASE_URL: str = "https://api-ryanair.jnobrega.com"
    API_PREFIX: str = "/api"
    REQUEST_TIMEOUT_SECONDS: float = 15.0

    DEFAULT_CURRENCY: str = "EUR"

    ENV: str = "development"
    DEBUG: bool = True
    LOG_LEVEL: str = "INFO"
    CORS_ORIGINS: list[str] = ["http://localhost:5173", "http://127.0.0.1:5173"]

    # Retry policy (shared by every query family)
    RETRY_LIMIT: int = 2
    RETRY_BASE_DELAY_SECONDS: float = 1.0
    RETRY_MAX_DELAY_SECONDS: float = 30.0

    # Calendar queries wider than this are never sent
    MAX_RANGE_MONTHS: int = 6

    # How often the app evicts unobserved entries past their gc horizon
    GC_SWEEP_INTERVAL_SECONDS: float = 60.0

    # Freshness (minutes) per query family
    STALE_ACTIVE_AIRPORTS_MINUTES: int = 30
    STALE_AIRPORT_DETAIL_MINUTES: int = 30
    STALE_CLOSEST_AIRPORT_MINUTES: int = 10
    STALE_DESTINATIONS_MINUTES: int = 60
    STALE_SCHEDULES_MINUTES: int = 15
    STALE_ROUTE_MINUTES: int = 60
    STALE_CHEAPEST_PER_DAY_MINUTES: int = 5
    STALE_DAILY_RANGE_MINUTES: int = 10
    STALE_ROUND_TRIP_MINUTES: int = 5

    # Eviction horizon (minutes) for unobserved entries
    GC_DEFAULT_MINUTES: int = 30
    GC_ACTIVE_AIRPORTS_MINUTES: int = 60
    GC_CHEAPEST_PER_DAY_MINUTES: int = 15
    GC_DAILY_RANGE_MINUTES: int = 30
    GC_ROUND_TRIP_MINUTES: int = 15

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

settings = Settings()
